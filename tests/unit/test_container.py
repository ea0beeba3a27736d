"""Unit tests for ServiceContainer wiring"""
import asyncio
import pytest
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

from ecoquest.auth.identity import InMemoryIdentityProvider
from ecoquest.exceptions import (
    AuthenticationError,
    ConfigurationError,
    HydrationFailed,
    LedgerNotHydrated,
    ValidationError,
)
from ecoquest.services.container import ServiceContainer
from ecoquest.services.ledger_session import SessionState


@pytest.fixture
def identity():
    return InMemoryIdentityProvider()


@pytest.fixture
def container(memory_store, identity, badge_catalog, episode_catalog, challenge_catalog):
    return ServiceContainer(
        store=memory_store,
        identity=identity,
        badge_catalog=badge_catalog,
        episode_catalog=episode_catalog,
        challenge_catalog=challenge_catalog,
    )


@pytest.mark.asyncio
async def test_sign_in_opens_session_and_sign_out_discards(container, identity, student):
    container.attach()

    await identity.sign_in(student)
    session = container.get_session(student.id)
    assert session is not None
    assert session.state == SessionState.HYDRATED

    await identity.sign_out()
    assert container.get_session(student.id) is None
    assert session.state == SessionState.NOT_HYDRATED
    container.detach()


@pytest.mark.asyncio
async def test_open_session_reuses_existing(container, student):
    first = await container.open_session(student)
    second = await container.open_session(student)

    assert first is second
    container.close_all_sessions()


@pytest.mark.asyncio
async def test_close_during_open_session_returns_no_ledger(container, memory_store, student):
    gate = asyncio.Event()
    load = memory_store.load_snapshot

    async def gated_load(user_id):
        await gate.wait()
        return await load(user_id)

    with patch.object(memory_store, "load_snapshot", new=gated_load):
        task = asyncio.create_task(container.open_session(student))
        await asyncio.sleep(0)
        session = container.get_session(student.id)
        container.close_session(student.id)
        gate.set()

        with pytest.raises(LedgerNotHydrated):
            await task

    assert container.get_session(student.id) is None
    assert session.state == SessionState.NOT_HYDRATED


@pytest.mark.asyncio
async def test_sign_out_during_sign_in_leaves_no_session(container, identity, memory_store, student):
    gate = asyncio.Event()
    load = memory_store.load_snapshot

    async def gated_load(user_id):
        await gate.wait()
        return await load(user_id)

    container.attach()
    with patch.object(memory_store, "load_snapshot", new=gated_load):
        sign_in = asyncio.create_task(identity.sign_in(student))
        await asyncio.sleep(0)
        await identity.sign_out()
        gate.set()
        await sign_in

    assert container.get_session(student.id) is None
    container.detach()


@pytest.mark.asyncio
async def test_current_session_requires_sign_in(container):
    with pytest.raises(AuthenticationError):
        await container.current_session()


@pytest.mark.asyncio
async def test_hydration_failure_propagates(flaky_store, identity, student):
    flaky_store.fail_loads = 1
    container = ServiceContainer(store=flaky_store, identity=identity)

    with pytest.raises(HydrationFailed):
        await container.open_session(student)

    session = await container.open_session(student)
    assert session.is_hydrated
    container.close_all_sessions()


@pytest.mark.asyncio
async def test_gamification_service_per_user(container, student, recycling_task):
    service = await container.gamification_service(student)

    result = await service.process_task_completion(recycling_task, date(2026, 10, 14))

    assert result["points_awarded"] == 25
    assert await container.gamification_service(student) is service
    assert service.challenge_board.get_challenge("c1") is not None
    container.close_all_sessions()


@pytest.mark.asyncio
@patch("ecoquest.services.container.queries.count_completed_tasks", new_callable=AsyncMock)
async def test_gamification_service_reads_completed_tasks(mock_count, memory_store, identity, student):
    mock_count.return_value = 6
    container = ServiceContainer(store=memory_store, identity=identity, db=MagicMock())

    service = await container.gamification_service(student)

    assert service.tasks_completed == 6
    container.close_all_sessions()


@pytest.mark.asyncio
@patch("ecoquest.services.container.queries.update_avatar_url", new_callable=AsyncMock)
async def test_upload_avatar(mock_update, memory_store, identity, student):
    storage = MagicMock()
    storage.upload_avatar = AsyncMock(return_value=f"{student.id}/avatar.png")
    storage.public_url.return_value = "https://cdn.test/avatar.png"
    db = MagicMock()
    container = ServiceContainer(store=memory_store, identity=identity, storage=storage, db=db)

    url = await container.upload_avatar(student, "me.png", "image/png", b"\x89PNG" + b"\x00" * 16)

    assert url == "https://cdn.test/avatar.png"
    mock_update.assert_awaited_once_with(db, student.id, f"{student.id}/avatar.png")


@pytest.mark.asyncio
async def test_upload_avatar_validates_first(memory_store, identity, student):
    storage = MagicMock()
    storage.upload_avatar = AsyncMock()
    container = ServiceContainer(store=memory_store, identity=identity, storage=storage)

    with pytest.raises(ValidationError):
        await container.upload_avatar(student, "notes.pdf", "application/pdf", b"%PDF")

    storage.upload_avatar.assert_not_awaited()


@pytest.mark.asyncio
@patch("ecoquest.services.container.queries.get_weekly_challenge_rows", new_callable=AsyncMock)
@patch("ecoquest.services.container.queries.get_episode_rows", new_callable=AsyncMock)
@patch("ecoquest.services.container.queries.get_badge_rows", new_callable=AsyncMock)
async def test_load_catalogs(mock_badges, mock_episodes, mock_challenges, memory_store, identity, badge_rows):
    mock_badges.return_value = badge_rows
    mock_episodes.return_value = [
        {"id": "e1", "title": "The Polluted River", "content": {"points": 50, "required_tasks": 0},
         "episode_order": 1, "published": True},
    ]
    mock_challenges.return_value = [
        {"id": 7, "title": "Plastic-Free Week", "description": None, "reward_points": 100,
         "start_date": date(2026, 10, 12), "end_date": date(2026, 10, 18)},
    ]
    container = ServiceContainer(store=memory_store, identity=identity, db=MagicMock())

    await container.load_catalogs()

    assert len(container.badge_catalog) == 5
    assert container.episode_catalog[0].points == 50
    assert container.challenge_catalog[0].id == "7"


@pytest.mark.asyncio
async def test_db_features_need_database(container):
    with pytest.raises(ConfigurationError):
        await container.load_catalogs()
    with pytest.raises(ConfigurationError):
        await container.get_leaderboard()


@pytest.mark.asyncio
@patch("ecoquest.services.container.queries.get_leaderboard_rows", new_callable=AsyncMock)
async def test_get_leaderboard(mock_rows, memory_store, identity, leaderboard_rows):
    mock_rows.return_value = leaderboard_rows
    container = ServiceContainer(store=memory_store, identity=identity, db=MagicMock())

    entries = await container.get_leaderboard(current_user_id="u-maya")

    assert entries[0].user_id == "u-alex"
    assert [e.rank for e in entries if e.is_current_user] == [2]


@pytest.mark.asyncio
@patch("ecoquest.services.container.queries.get_user_preferences", new_callable=AsyncMock)
async def test_get_preferences_migrates(mock_prefs, memory_store, identity):
    mock_prefs.return_value = None
    container = ServiceContainer(store=memory_store, identity=identity, db=MagicMock())

    prefs = await container.get_preferences("user-1")

    assert prefs.version == 2
    assert prefs.display.theme == "system"
