"""Durable ledger snapshot exchanged with the persistence boundary"""
from typing import Optional
from datetime import date
from pydantic import BaseModel, Field

from ecoquest.models.badge import Badge


class LedgerSnapshot(BaseModel):
    """
    Everything needed to rebuild a Ledger

    Level is not part of the snapshot: it is always derived from points.
    """
    user_id: str
    points: int = Field(default=0, ge=0)
    streak: int = Field(default=0, ge=0)
    badges: list[Badge] = Field(default_factory=list)
    last_active_date: Optional[date] = None
    # Idempotency keys of reward events already credited
    credited_events: list[str] = Field(default_factory=list)
    synced: bool = True
