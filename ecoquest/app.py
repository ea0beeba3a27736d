"""Application bootstrap: logging and service wiring"""
import logging
from typing import Optional

from ecoquest import config
from ecoquest.auth.identity import IdentityProvider, InMemoryIdentityProvider
from ecoquest.db.connection import Database
from ecoquest.db.ledger_store import InMemoryLedgerStore, LedgerStore, PostgresLedgerStore
from ecoquest.db.queries import ensure_gamification_schema
from ecoquest.services.container import ServiceContainer
from ecoquest.storage.avatars import AvatarStorage

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the process"""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO),
    )


async def create_container(
    identity: Optional[IdentityProvider] = None,
    use_database: bool = True,
) -> ServiceContainer:
    """
    Build a ServiceContainer from configuration

    With use_database=False the ledger lives in memory and catalogs start
    empty (local runs, demos).
    """
    config.validate_config()

    db: Optional[Database] = None
    store: LedgerStore
    if use_database:
        db = Database()
        await db.init_pool()
        await ensure_gamification_schema(db)
        store = PostgresLedgerStore(db)
        logger.info("Using Postgres ledger store")
    else:
        store = InMemoryLedgerStore()
        logger.warning("Using in-memory ledger store: progress will NOT be persisted")

    storage = AvatarStorage()
    if not storage.enabled:
        logger.warning("Avatar storage disabled: SUPABASE_URL / SUPABASE_SERVICE_KEY not set")

    container = ServiceContainer(
        store=store,
        identity=identity or InMemoryIdentityProvider(),
        storage=storage,
        db=db,
    )
    if db is not None:
        await container.load_catalogs()

    container.attach()
    logger.info("Service container initialized")
    return container


async def shutdown(container: ServiceContainer) -> None:
    container.detach()
    container.close_all_sessions()
    if container.db is not None:
        await container.db.close_pool()
    logger.info("Shutdown complete")
