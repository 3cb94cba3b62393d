"""Balizas V16 — DGT 3.0 REST record extraction.

The REST response format is not fixed; each canonical field is read from the
first of several plausible key spellings.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from balizas.connectors.dgt.accessors import first_key, parse_coordinate
from balizas.core.logging import get_logger
from balizas.core.time_utils import parse_timestamp
from balizas.models.beacon_models import NOT_AVAILABLE, BeaconStatus
from balizas.models.report_models import BeaconReport

logger = get_logger("dgt.rest")

# Canonical field → candidate keys, tried in order
FIELD_KEYS: Dict[str, Tuple[str, ...]] = {
    "id": ("id", "identificador"),
    "lat": ("latitud", "lat", "latitude"),
    "lon": ("longitud", "lon", "longitude"),
    "carretera": ("carretera", "via", "road"),
    "pk": ("puntoKilometrico", "pk", "km"),
    "sentido": ("sentido", "direction"),
    "orientacion": ("orientacion", "orientation"),
    "first_seen": ("fechaInicio", "firstSeen", "timestamp"),
    "last_seen": ("fechaUltima", "lastSeen", "ultimaActualizacion"),
    "comunidad": ("comunidadAutonoma", "comunidad", "region"),
    "provincia": ("provincia", "province"),
    "municipio": ("municipio", "municipality"),
}

TEXT_FIELDS = ("carretera", "pk", "sentido", "orientacion", "comunidad", "provincia", "municipio")

LOST_WORDS = {"lost", "perdida", "inactive", "inactiva", "false", "0"}
TRUE_WORDS = {"true", "1", "si", "sí", "yes"}


def _text(record: Dict[str, Any], field: str) -> str:
    value = first_key(record, FIELD_KEYS[field])
    if value is None:
        return NOT_AVAILABLE
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def resolve_status(record: Dict[str, Any]) -> BeaconStatus:
    """``activa`` (bool) wins, then ``estado`` (Spanish word), then ``status``."""
    if "activa" in record and record["activa"] is not None:
        activa = record["activa"]
        if isinstance(activa, str):
            activa = activa.strip().lower() in TRUE_WORDS
        return BeaconStatus.ACTIVE if activa else BeaconStatus.LOST
    estado = record.get("estado")
    if estado:
        return BeaconStatus.ACTIVE if str(estado).strip().lower() == "activa" else BeaconStatus.LOST
    status = record.get("status")
    if status and str(status).strip().lower() in LOST_WORDS:
        return BeaconStatus.LOST
    return BeaconStatus.ACTIVE


def _coordinates(record: Dict[str, Any]) -> Optional[Tuple[float, float]]:
    lat = parse_coordinate(first_key(record, FIELD_KEYS["lat"]))
    lon = parse_coordinate(first_key(record, FIELD_KEYS["lon"]))
    if lat is None or lon is None:
        return None
    return lat, lon


def extract_rest_record(record: Any, now: datetime) -> Optional[BeaconReport]:
    """Map one loosely-typed REST record; None if it has no usable position."""
    if not isinstance(record, dict):
        return None
    coords = _coordinates(record)
    if coords is None:
        return None
    lat, lon = coords

    raw_id = first_key(record, FIELD_KEYS["id"])
    fields = {name: _text(record, name) for name in TEXT_FIELDS}

    return BeaconReport(
        # Coordinate key keeps the id stable across polls of the same event
        id=str(raw_id) if raw_id is not None else f"{lat}-{lon}",
        lat=lat,
        lon=lon,
        status=resolve_status(record),
        first_seen=parse_timestamp(first_key(record, FIELD_KEYS["first_seen"])) or now,
        last_seen=parse_timestamp(first_key(record, FIELD_KEYS["last_seen"])) or now,
        **fields,
    )


def extract_rest(records: List[Any], now: datetime) -> List[BeaconReport]:
    """Map every REST record, dropping those without valid coordinates."""
    reports: List[BeaconReport] = []
    dropped = 0
    for record in records:
        report = extract_rest_record(record, now)
        if report is None:
            dropped += 1
            continue
        reports.append(report)

    if dropped:
        logger.warning(f"Dropped {dropped} REST records without valid coordinates")
    logger.info(f"Extracted {len(reports)} beacons from REST feed", extra={"source": "rest"})
    return reports
