"""Normalization of DATEX2 and DGT 3.0 REST payloads into BeaconReports."""

from datetime import datetime

import pytest

from balizas.connectors.dgt.accessors import first_text, parse_coordinate, path
from balizas.connectors.dgt.datex2 import parse_datex2_xml
from balizas.connectors.dgt.payloads import (
    Datex2Payload,
    RestArrayPayload,
    RestSinglePayload,
    RestWrappedPayload,
    detect_payload,
)
from balizas.connectors.dgt.rest import resolve_status
from balizas.connectors.dgt.transformer import normalize
from balizas.core.exceptions import FeedSourceError

NOW = datetime(2025, 1, 15, 12, 0, 0)

DATEX2_XML = """\
<d2:payload xmlns:d2="http://levelC/schema/3/d2Payload"
            xmlns:sit="http://levelC/schema/3/situation"
            xmlns:com="http://levelC/schema/3/common"
            xmlns:loc="http://levelC/schema/3/locationReferencing"
            xmlns:lse="http://levelC/schema/3/locationReferencingSpanishExtension"
            xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
  <sit:situation id="SIT-1">
    <sit:situationRecord id="REC-1" version="1" xsi:type="sit:VehicleObstruction">
      <sit:situationRecordCreationTime>2025-01-15T08:00:00+01:00</sit:situationRecordCreationTime>
      <sit:situationRecordVersionTime>2025-01-15T09:30:00Z</sit:situationRecordVersionTime>
      <sit:validity>
        <com:validityTimeSpecification>
          <com:overallStartTime>2025-01-15T06:45:00Z</com:overallStartTime>
        </com:validityTimeSpecification>
      </sit:validity>
      <sit:cause>
        <sit:causeType>vehicleObstruction</sit:causeType>
        <sit:detailedCauseType>
          <sit:vehicleObstructionType>vehicleStuck</sit:vehicleObstructionType>
        </sit:detailedCauseType>
      </sit:cause>
      <sit:locationReference>
        <loc:supplementaryPositionalDescription>
          <loc:roadInformation>
            <loc:roadName>A-6</loc:roadName>
          </loc:roadInformation>
        </loc:supplementaryPositionalDescription>
        <loc:tpegPointLocation>
          <loc:tpegDirection>negative</loc:tpegDirection>
          <loc:point>
            <loc:pointCoordinates>
              <loc:latitude>40.5123</loc:latitude>
              <loc:longitude>-3.8901</loc:longitude>
            </loc:pointCoordinates>
            <loc:_tpegNonJunctionPointExtension>
              <lse:extendedTpegNonJunctionPoint>
                <lse:kilometerPoint>23.4</lse:kilometerPoint>
                <lse:autonomousCommunity>Comunidad de Madrid</lse:autonomousCommunity>
                <lse:province>Madrid</lse:province>
                <lse:municipality>Las Rozas de Madrid</lse:municipality>
              </lse:extendedTpegNonJunctionPoint>
            </loc:_tpegNonJunctionPointExtension>
          </loc:point>
        </loc:tpegPointLocation>
      </sit:locationReference>
    </sit:situationRecord>
  </sit:situation>
  <sit:situation id="SIT-2">
    <sit:situationRecord id="REC-2">
      <sit:cause>
        <sit:causeType>roadMaintenance</sit:causeType>
      </sit:cause>
      <sit:locationReference>
        <loc:tpegPointLocation>
          <loc:point>
            <loc:pointCoordinates>
              <loc:latitude>41.0</loc:latitude>
              <loc:longitude>-4.0</loc:longitude>
            </loc:pointCoordinates>
          </loc:point>
        </loc:tpegPointLocation>
      </sit:locationReference>
    </sit:situationRecord>
  </sit:situation>
  <sit:situation id="SIT-3">
    <sit:situationRecord id="REC-3">
      <sit:cause>
        <sit:causeType>vehicleObstruction</sit:causeType>
        <sit:detailedCauseType>
          <sit:vehicleObstructionType>vehicleStuck</sit:vehicleObstructionType>
        </sit:detailedCauseType>
      </sit:cause>
      <sit:locationReference>
        <loc:tpegPointLocation>
          <loc:point>
            <loc:pointCoordinates>
              <loc:latitude>0</loc:latitude>
              <loc:longitude>0</loc:longitude>
            </loc:pointCoordinates>
          </loc:point>
        </loc:tpegPointLocation>
      </sit:locationReference>
    </sit:situationRecord>
  </sit:situation>
  <sit:situation id="SIT-4">
    <sit:situationRecord id="REC-4">
      <sit:cause>
        <sit:causeType>vehicleObstruction</sit:causeType>
        <sit:detailedCauseType>
          <sit:vehicleObstructionType>vehicleStuck</sit:vehicleObstructionType>
        </sit:detailedCauseType>
      </sit:cause>
      <sit:locationReference>
        <loc:tpegLinearLocation>
          <loc:tpegDirection>positive</loc:tpegDirection>
          <loc:from>
            <loc:pointCoordinates>
              <loc:latitude>39.47</loc:latitude>
              <loc:longitude>-0.376</loc:longitude>
            </loc:pointCoordinates>
            <loc:_tpegNonJunctionPointExtension>
              <lse:extendedTpegNonJunctionPoint>
                <lse:province>Valencia</lse:province>
              </lse:extendedTpegNonJunctionPoint>
            </loc:_tpegNonJunctionPointExtension>
          </loc:from>
        </loc:tpegLinearLocation>
      </sit:locationReference>
    </sit:situationRecord>
  </sit:situation>
</d2:payload>
"""


# ── DATEX2 ──


def test_datex2_xml_extracts_only_positioned_beacons():
    reports = normalize(DATEX2_XML, "datex2", now=NOW)

    assert [r.id for r in reports] == ["SIT-1", "SIT-4"]


def test_datex2_point_location_fields():
    report = normalize(DATEX2_XML, "datex2", now=NOW)[0]

    assert report.lat == pytest.approx(40.5123)
    assert report.lon == pytest.approx(-3.8901)
    assert report.status == "active"
    assert report.carretera == "A-6"
    assert report.pk == "23.4"
    assert report.sentido == "negative"
    assert report.orientacion == "negative"
    assert report.comunidad == "Comunidad de Madrid"
    assert report.provincia == "Madrid"
    assert report.municipio == "Las Rozas de Madrid"
    assert report.first_seen == datetime(2025, 1, 15, 6, 45)
    assert report.last_seen == datetime(2025, 1, 15, 9, 30)


def test_datex2_linear_location_fallback_and_missing_fields():
    report = normalize(DATEX2_XML, "datex2", now=NOW)[1]

    assert (report.lat, report.lon) == (pytest.approx(39.47), pytest.approx(-0.376))
    assert report.provincia == "Valencia"
    assert report.sentido == "positive"
    assert report.carretera == "N/A"
    assert report.pk == "N/A"
    assert report.first_seen == NOW
    assert report.last_seen == NOW


def test_datex2_prefixed_dict_tree():
    """Trees decoded elsewhere may keep namespace prefixes in their keys."""
    tree = {
        "d2:payload": {
            "sit:situation": {
                "@id": "SIT-9",
                "sit:situationRecord": {
                    "sit:situationRecordCreationTime": "2025-01-15T10:00:00Z",
                    "sit:cause": {
                        "sit:causeType": "vehicleObstruction",
                        "sit:detailedCauseType": {"sit:vehicleObstructionType": "vehicleStuck"},
                    },
                    "sit:locationReference": {
                        "loc:tpegPointLocation": {
                            "loc:point": {
                                "loc:pointCoordinates": {
                                    "loc:latitude": "43,3623",
                                    "loc:longitude": "-8,4115",
                                }
                            }
                        }
                    },
                },
            }
        }
    }

    reports = normalize(tree, "datex2", now=NOW)

    assert len(reports) == 1
    assert reports[0].id == "SIT-9"
    assert reports[0].lat == pytest.approx(43.3623)
    assert reports[0].lon == pytest.approx(-8.4115)
    assert reports[0].first_seen == datetime(2025, 1, 15, 10, 0)
    assert reports[0].last_seen == datetime(2025, 1, 15, 10, 0)


def test_datex2_coordinate_id_fallback():
    tree = {
        "payload": {
            "situation": [
                {
                    "situationRecord": {
                        "cause": {
                            "causeType": "vehicleObstruction",
                            "detailedCauseType": {"vehicleObstructionType": "vehicleStuck"},
                        },
                        "locationReference": {
                            "tpegPointLocation": {
                                "point": {
                                    "pointCoordinates": {"latitude": "42.1", "longitude": "-1.5"}
                                }
                            }
                        },
                    }
                }
            ]
        }
    }

    assert normalize(tree, "datex2", now=NOW)[0].id == "42.1--1.5"


def test_datex2_without_payload_yields_nothing():
    assert normalize({"somethingElse": {}}, "datex2", now=NOW) == []


def test_malformed_xml_is_a_feed_error():
    with pytest.raises(FeedSourceError):
        parse_datex2_xml("<payload><situation></payload>")


# ── REST ──


def test_detect_payload_variants():
    assert isinstance(detect_payload("<payload/>", "datex2"), Datex2Payload)
    assert isinstance(detect_payload([{"id": 1}], "rest"), RestArrayPayload)
    wrapped = detect_payload({"eventos": [{"id": 1}]}, "rest")
    assert isinstance(wrapped, RestWrappedPayload)
    assert wrapped.container == "eventos"
    assert isinstance(detect_payload({"id": 1, "lat": 40}, "rest"), RestSinglePayload)


@pytest.mark.parametrize(
    "payload",
    [
        [{"id": "R1", "latitud": 40.1, "longitud": -3.2}],
        {"balizas": [{"id": "R1", "latitud": 40.1, "longitud": -3.2}]},
        {"data": [{"id": "R1", "latitud": 40.1, "longitud": -3.2}]},
        {"id": "R1", "latitud": 40.1, "longitud": -3.2},
    ],
)
def test_rest_shapes_normalize_alike(payload):
    reports = normalize(payload, "rest", now=NOW)

    assert len(reports) == 1
    assert reports[0].id == "R1"
    assert reports[0].status == "active"
    assert reports[0].first_seen == NOW


def test_rest_alternative_key_spellings():
    record = {
        "identificador": 77,
        "lat": "37.38",
        "longitude": "-5.98",
        "via": "A-4",
        "km": 530.0,
        "direction": "Cádiz",
        "orientation": "Sur",
        "region": "Andalucía",
        "province": "Sevilla",
        "municipality": "Dos Hermanas",
        "timestamp": "2025-01-15T07:00:00Z",
        "ultimaActualizacion": 1736928000000,
    }

    report = normalize([record], "rest", now=NOW)[0]

    assert report.id == "77"
    assert report.carretera == "A-4"
    assert report.pk == "530"
    assert report.sentido == "Cádiz"
    assert report.orientacion == "Sur"
    assert report.comunidad == "Andalucía"
    assert report.provincia == "Sevilla"
    assert report.municipio == "Dos Hermanas"
    assert report.first_seen == datetime(2025, 1, 15, 7, 0)
    assert report.last_seen == datetime(2025, 1, 15, 8, 0)


@pytest.mark.parametrize(
    "record",
    [
        {"id": "Z", "latitud": 0, "longitud": 0},
        {"id": "Z", "latitud": 40.0},
        {"id": "Z", "latitud": "abc", "longitud": -3.0},
        {"id": "Z", "latitud": None, "longitud": None},
        "not-a-record",
    ],
)
def test_rest_records_without_position_are_dropped(record):
    assert normalize([record], "rest", now=NOW) == []


def test_rest_coordinate_id_fallback_is_stable():
    record = {"latitud": 40.25, "longitud": -3.5}

    first = normalize([record], "rest", now=NOW)[0]
    second = normalize([record], "rest", now=NOW)[0]

    assert first.id == second.id == "40.25--3.5"


@pytest.mark.parametrize(
    "record, expected",
    [
        ({"activa": True}, "active"),
        ({"activa": False, "estado": "activa"}, "lost"),
        ({"activa": "true"}, "active"),
        ({"activa": "no"}, "lost"),
        ({"estado": "activa"}, "active"),
        ({"estado": "desactivada"}, "lost"),
        ({"status": "lost"}, "lost"),
        ({"status": "active"}, "active"),
        ({}, "active"),
    ],
)
def test_rest_status_precedence(record, expected):
    assert resolve_status(record).value == expected


# ── Accessors ──


@pytest.mark.parametrize(
    "value, expected",
    [
        ("40.5", 40.5),
        ("40,5", 40.5),
        (-3.7, -3.7),
        ({"#text": "41.2"}, 41.2),
        (0, None),
        ("0.0", None),
        ("nan", None),
        ("", None),
        (True, None),
        (None, None),
    ],
)
def test_parse_coordinate(value, expected):
    assert parse_coordinate(value) == expected


def test_first_text_walks_chain_and_skips_sentinel():
    node = {"a": {"x": "N/A"}, "b": {"x": 12.0}}

    assert first_text(node, [path("a", "x"), path("b", "x")]) == "12"
    assert first_text(node, [path("c", "x")]) == "N/A"
