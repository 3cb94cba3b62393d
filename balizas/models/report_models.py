"""Balizas V16 — Canonical Feed Report & Ingestion Results."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from balizas.models.beacon_models import NOT_AVAILABLE, BeaconStatus


class BeaconReport(BaseModel):
    """A beacon as seen in one poll of the feed, after normalization.

    Every connector normalizes into this format before persistence.
    """

    id: str
    lat: float
    lon: float
    status: BeaconStatus = BeaconStatus.ACTIVE
    carretera: str = NOT_AVAILABLE
    pk: str = NOT_AVAILABLE
    sentido: str = NOT_AVAILABLE
    orientacion: str = NOT_AVAILABLE
    comunidad: str = NOT_AVAILABLE
    provincia: str = NOT_AVAILABLE
    municipio: str = NOT_AVAILABLE
    first_seen: Optional[datetime] = Field(default=None, alias="firstSeen")
    last_seen: Optional[datetime] = Field(default=None, alias="lastSeen")

    model_config = {"populate_by_name": True, "use_enum_values": True}


class UpsertResult(BaseModel):
    """Outcome of reconciling one report against stored state."""

    changed: bool
    created: bool = False


class SaveResult(BaseModel):
    """Counts for a batch of upserts."""

    saved: int = 0
    updated: int = 0
    errors: int = 0
    total: int = 0
