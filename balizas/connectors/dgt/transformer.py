"""Balizas V16 — DGT Raw → BeaconReport Transformer.

Converts any supported feed payload into the canonical BeaconReport list.
Pure: no I/O, no persistence.
"""

from datetime import datetime
from typing import Any, List, Optional, Union

from balizas.connectors.dgt.datex2 import extract_datex2
from balizas.connectors.dgt.payloads import (
    Datex2Payload,
    FeedPayload,
    RestArrayPayload,
    RestSinglePayload,
    RestWrappedPayload,
    SourceKind,
    detect_payload,
)
from balizas.connectors.dgt.rest import extract_rest
from balizas.core.logging import get_logger
from balizas.core.time_utils import utcnow
from balizas.models.report_models import BeaconReport

logger = get_logger("dgt.transformer")


def extract_reports(payload: FeedPayload, now: datetime) -> List[BeaconReport]:
    """Run the extraction function matching the payload variant."""
    if isinstance(payload, Datex2Payload):
        return extract_datex2(payload.tree, now)
    elif isinstance(payload, RestArrayPayload):
        return extract_rest(payload.records, now)
    elif isinstance(payload, RestWrappedPayload):
        return extract_rest(payload.records, now)
    elif isinstance(payload, RestSinglePayload):
        logger.warning("Unrecognized DGT 3.0 response shape, treating it as one record")
        return extract_rest([payload.record], now)
    raise TypeError(f"Unsupported payload variant: {type(payload).__name__}")


def normalize(
    raw_payload: Any,
    source_kind: Union[SourceKind, str],
    now: Optional[datetime] = None,
) -> List[BeaconReport]:
    """Normalize a raw feed payload (decoded tree, XML text or JSON) into BeaconReports."""
    now = now or utcnow()
    payload = detect_payload(raw_payload, source_kind)
    reports = extract_reports(payload, now)
    logger.info(
        f"Normalized {len(reports)} beacons ({type(payload).__name__})",
        extra={"source": SourceKind(source_kind).value},
    )
    return reports
