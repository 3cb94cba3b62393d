"""Balizas V16 — DATEX2 SituationPublication decoding & extraction.

The feed has no dedicated "V16 beacon" event type; a situation record whose
cause is ``vehicleObstruction`` / ``vehicleStuck`` is taken as a beacon.
"""

import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from balizas.connectors.dgt.accessors import (
    as_list,
    first_present,
    first_text,
    get_key,
    parse_coordinate,
    path,
    scalar,
)
from balizas.core.exceptions import FeedSourceError
from balizas.core.logging import get_logger
from balizas.core.time_utils import parse_timestamp
from balizas.models.beacon_models import BeaconStatus
from balizas.models.report_models import BeaconReport

logger = get_logger("dgt.datex2")

BEACON_CAUSE_TYPE = "vehicleObstruction"
BEACON_OBSTRUCTION_TYPE = "vehicleStuck"

# ── Location accessors, in fallback order: point location, then linear "from" ──

POINT = ("locationReference", "tpegPointLocation", "point")
LINEAR_FROM = ("locationReference", "tpegLinearLocation", "from")
EXTENSION = ("_tpegNonJunctionPointExtension", "extendedTpegNonJunctionPoint")

COORDINATE_SOURCES = [
    (path(*POINT, "pointCoordinates", "latitude"), path(*POINT, "pointCoordinates", "longitude")),
    (
        path(*LINEAR_FROM, "pointCoordinates", "latitude"),
        path(*LINEAR_FROM, "pointCoordinates", "longitude"),
    ),
]


def _extension_chain(field: str) -> list:
    return [path(*POINT, *EXTENSION, field), path(*LINEAR_FROM, *EXTENSION, field)]


KM_POINT = _extension_chain("kilometerPoint")
COMUNIDAD = _extension_chain("autonomousCommunity")
PROVINCIA = _extension_chain("province")
MUNICIPIO = _extension_chain("municipality")
ROAD_NAME = [
    path("locationReference", "supplementaryPositionalDescription", "roadInformation", "roadName")
]
DIRECTION = [
    path("locationReference", "tpegPointLocation", "tpegDirection"),
    path("locationReference", "tpegLinearLocation", "tpegDirection"),
]

CREATION_TIME = path("situationRecordCreationTime")
VERSION_TIME = path("situationRecordVersionTime")
START_TIME = path("validity", "validityTimeSpecification", "overallStartTime")
CAUSE_TYPE = path("cause", "causeType")
OBSTRUCTION_TYPE = path("cause", "detailedCauseType", "vehicleObstructionType")

ID_KEYS = ("@id", "@_id", "id")


# ─────────────────────────────────────────────
# XML → dict tree
# ─────────────────────────────────────────────


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if tag.startswith("{") else tag


def _element_to_dict(element: ET.Element) -> Any:
    """Attributes become ``@name``, repeated children become lists, text-only → str."""
    children = list(element)
    attrs: Dict[str, Any] = {
        f"@{_local_name(k)}": v for k, v in element.attrib.items()
    }
    text = (element.text or "").strip()
    if not children and not attrs:
        return text

    node: Dict[str, Any] = dict(attrs)
    for child in children:
        key = _local_name(child.tag)
        value = _element_to_dict(child)
        if key in node:
            existing = node[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                node[key] = [existing, value]
        else:
            node[key] = value
    if text:
        node["#text"] = text
    return node


def parse_datex2_xml(content: str | bytes) -> Dict[str, Any]:
    """Decode a DATEX2 XML document into ``{root_name: tree}``."""
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise FeedSourceError(f"Malformed DATEX2 XML: {e}", source="datex2") from e
    return {_local_name(root.tag): _element_to_dict(root)}


# ─────────────────────────────────────────────
# Extraction
# ─────────────────────────────────────────────


def is_beacon_record(record: Any) -> bool:
    """Vehicle-obstruction records of the vehicle-stuck sub-type."""
    cause_type = scalar(CAUSE_TYPE(record))
    obstruction = scalar(OBSTRUCTION_TYPE(record))
    return cause_type == BEACON_CAUSE_TYPE and obstruction == BEACON_OBSTRUCTION_TYPE


def resolve_coordinates(record: Any) -> Optional[Tuple[float, float]]:
    """First location whose latitude and longitude both parse as non-zero."""
    for lat_accessor, lon_accessor in COORDINATE_SOURCES:
        lat = parse_coordinate(lat_accessor(record))
        lon = parse_coordinate(lon_accessor(record))
        if lat is not None and lon is not None:
            return lat, lon
    return None


def _node_id(node: Any) -> Optional[str]:
    value = first_present(node, [path(k) for k in ID_KEYS])
    return str(value) if value is not None else None


def _situations(tree: Any) -> List[Any]:
    payload = get_key(tree, "payload")
    if payload is None:
        # Tree may already be the payload element itself
        payload = tree if get_key(tree, "situation") is not None else None
    if payload is None:
        logger.warning("No payload found in DATEX2 document")
        return []
    return [s for s in as_list(get_key(payload, "situation")) if s]


def extract_record(
    situation: Any, record: Any, now: datetime
) -> Optional[BeaconReport]:
    """Build a BeaconReport from one situation record, or None if it isn't a beacon."""
    if not is_beacon_record(record):
        return None

    coords = resolve_coordinates(record)
    if coords is None:
        logger.debug("Dropping beacon record without valid coordinates")
        return None
    lat, lon = coords

    creation = parse_timestamp(scalar(CREATION_TIME(record)))
    version = parse_timestamp(scalar(VERSION_TIME(record)))
    start = parse_timestamp(scalar(START_TIME(record)))

    sentido = first_text(record, DIRECTION)
    beacon_id = _node_id(situation) or _node_id(record) or f"{lat}-{lon}"

    return BeaconReport(
        id=beacon_id,
        lat=lat,
        lon=lon,
        status=BeaconStatus.ACTIVE,
        carretera=first_text(record, ROAD_NAME),
        pk=first_text(record, KM_POINT),
        sentido=sentido,
        orientacion=sentido,
        comunidad=first_text(record, COMUNIDAD),
        provincia=first_text(record, PROVINCIA),
        municipio=first_text(record, MUNICIPIO),
        first_seen=start or creation or now,
        last_seen=version or creation or now,
    )


def extract_datex2(tree: Any, now: datetime) -> List[BeaconReport]:
    """Extract every beacon from a decoded SituationPublication."""
    reports: List[BeaconReport] = []
    for situation in _situations(tree):
        for record in as_list(get_key(situation, "situationRecord")):
            if not record:
                continue
            report = extract_record(situation, record, now)
            if report is not None:
                reports.append(report)

    logger.info(f"Extracted {len(reports)} beacons from DATEX2 feed", extra={"source": "datex2"})
    return reports
