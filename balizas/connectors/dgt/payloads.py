"""Balizas V16 — Feed payload variants.

Every raw payload is classified once into one of a closed set of shapes;
each shape has its own extraction function in the transformer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Union

from balizas.connectors.dgt.datex2 import parse_datex2_xml

# Containers a REST response may wrap its records in, in lookup order
REST_CONTAINERS = ("balizas", "eventos", "data")


class SourceKind(str, Enum):
    """Which upstream produced the payload."""

    DATEX2 = "datex2"
    REST = "rest"


@dataclass(frozen=True)
class Datex2Payload:
    """Decoded DATEX2 SituationPublication tree."""

    tree: Any


@dataclass(frozen=True)
class RestArrayPayload:
    """REST response that is a bare JSON array of records."""

    records: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class RestWrappedPayload:
    """REST response object carrying its records under a known key."""

    container: str
    records: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class RestSinglePayload:
    """Unrecognized REST shape — treated as a single record."""

    record: Any


FeedPayload = Union[Datex2Payload, RestArrayPayload, RestWrappedPayload, RestSinglePayload]


def detect_payload(raw: Any, source_kind: Union[SourceKind, str]) -> FeedPayload:
    """Classify a raw payload into its variant."""
    kind = SourceKind(source_kind)

    if kind == SourceKind.DATEX2:
        if isinstance(raw, (str, bytes)):
            raw = parse_datex2_xml(raw)
        return Datex2Payload(tree=raw)

    if isinstance(raw, list):
        return RestArrayPayload(records=raw)
    if isinstance(raw, dict):
        for container in REST_CONTAINERS:
            if isinstance(raw.get(container), list):
                return RestWrappedPayload(container=container, records=raw[container])
    return RestSinglePayload(record=raw)
