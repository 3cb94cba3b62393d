"""Balizas V16 — Persistence Models.

``balizas`` is the mutable current-state projection (one row per beacon);
``baliza_history`` is the append-only audit trail feeding every time-based
analytic.
"""

from enum import Enum
from typing import Optional
from pydantic import NaiveDatetime
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

from balizas.core.time_utils import utcnow

NOT_AVAILABLE = "N/A"


# Timestamps are naive UTC (see core.time_utils); columns carry no time zone.
def _utc_column() -> DateTime:
    return DateTime(timezone=False)


class BeaconStatus(str, Enum):
    """Beacon lifecycle status as reported by the feed."""

    ACTIVE = "active"
    LOST = "lost"


class ChangeType(str, Enum):
    """Tag on a history entry."""

    NEW = "new"
    STATUS_CHANGE = "status_change"
    INFO_UPDATE = "info_update"


class Baliza(SQLModel, table=True):
    """Current state of a beacon — latest known value of every field."""

    __tablename__ = "balizas"

    id: str = Field(primary_key=True, max_length=255)
    lat: float
    lon: float
    status: str = Field(default=BeaconStatus.ACTIVE.value, index=True)
    carretera: Optional[str] = Field(default=None, index=True)
    pk: Optional[str] = None
    sentido: Optional[str] = None
    orientacion: Optional[str] = None
    comunidad: Optional[str] = Field(default=None, index=True)
    provincia: Optional[str] = Field(default=None, index=True)
    municipio: Optional[str] = None
    first_seen: Optional[NaiveDatetime] = Field(
        default=None,
        sa_type=_utc_column(),
        description="Earliest sighting — never regressed"
    )
    last_seen: NaiveDatetime = Field(sa_type=_utc_column(), index=True)
    updated_at: NaiveDatetime = Field(default_factory=utcnow, sa_type=_utc_column())


class BalizaHistory(SQLModel, table=True):
    """Snapshot of a beacon written on every non-trivial mutation.

    Rows are never updated; deleting the beacon cascades here.
    """

    __tablename__ = "baliza_history"

    seq: Optional[int] = Field(default=None, primary_key=True)
    baliza_id: str = Field(
        foreign_key="balizas.id", ondelete="CASCADE", index=True, max_length=255
    )
    status: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    carretera: Optional[str] = None
    pk: Optional[str] = None
    sentido: Optional[str] = None
    orientacion: Optional[str] = None
    comunidad: Optional[str] = None
    provincia: Optional[str] = None
    municipio: Optional[str] = None
    changed_at: NaiveDatetime = Field(
        default_factory=utcnow, sa_type=_utc_column(), index=True
    )
    change_type: str = Field(default=ChangeType.INFO_UPDATE.value, index=True)
