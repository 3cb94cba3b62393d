"""Balizas V16 — Upsert-with-History.

Reconciles a BeaconReport against the ``balizas`` current-state row and keeps
``baliza_history`` in step with it. Each report is one transaction: the
current-row mutation and its history entry commit together or not at all.

Decision table for an existing row:

  status / lat / lon / carretera / pk differ  → full update + history entry
  nothing differs                              → touch last_seen only, no history
"""

from datetime import datetime
from typing import Iterable, Optional

from sqlmodel import Session

from balizas.config import settings
from balizas.core.logging import get_logger
from balizas.core.time_utils import to_naive_utc, utcnow
from balizas.models.beacon_models import Baliza, BalizaHistory, ChangeType
from balizas.models.report_models import BeaconReport, SaveResult, UpsertResult

logger = get_logger("ingest.reconciliation")

# Fields copied from the report on every full update
MUTABLE_FIELDS = (
    "lat",
    "lon",
    "status",
    "carretera",
    "pk",
    "sentido",
    "orientacion",
    "comunidad",
    "provincia",
    "municipio",
)


def _naive(dt: Optional[datetime]) -> Optional[datetime]:
    return to_naive_utc(dt) if dt is not None else None


def has_changes(existing: Baliza, report: BeaconReport) -> bool:
    """True if any tracked field differs. Coordinates compare as floats."""
    return (
        existing.status != report.status
        or float(existing.lat) != float(report.lat)
        or float(existing.lon) != float(report.lon)
        or existing.carretera != report.carretera
        or existing.pk != report.pk
    )


def classify_change(
    existing: Baliza,
    report: BeaconReport,
    distinguish_info_updates: Optional[bool] = None,
) -> ChangeType:
    """Tag for a history entry written on update.

    By default every persisted update is tagged ``status_change``, matching
    the data already collected. With ``distinguish_info_updates`` enabled,
    only an actual status flip is ``status_change``; other edits are
    ``info_update``.
    """
    if distinguish_info_updates is None:
        distinguish_info_updates = settings.distinguish_info_updates
    if distinguish_info_updates and existing.status == report.status:
        return ChangeType.INFO_UPDATE
    return ChangeType.STATUS_CHANGE


def _history_entry(
    report: BeaconReport, change_type: ChangeType, now: datetime
) -> BalizaHistory:
    """Full snapshot of the report as stored."""
    return BalizaHistory(
        baliza_id=report.id,
        status=report.status,
        lat=report.lat,
        lon=report.lon,
        carretera=report.carretera,
        pk=report.pk,
        sentido=report.sentido,
        orientacion=report.orientacion,
        comunidad=report.comunidad,
        provincia=report.provincia,
        municipio=report.municipio,
        changed_at=now,
        change_type=change_type.value,
    )


def upsert_baliza(
    session: Session,
    report: BeaconReport,
    now: Optional[datetime] = None,
) -> UpsertResult:
    """Insert, update or touch one beacon atomically.

    Rolls back and re-raises on any failure; nothing partial is committed.
    """
    now = now or utcnow()
    last_seen = _naive(report.last_seen) or now

    try:
        existing = session.get(Baliza, report.id)

        if existing is None:
            session.add(
                Baliza(
                    id=report.id,
                    first_seen=_naive(report.first_seen) or now,
                    last_seen=last_seen,
                    updated_at=now,
                    **{f: getattr(report, f) for f in MUTABLE_FIELDS},
                )
            )
            # Parent row must exist before the FK'd history row
            session.flush()
            session.add(_history_entry(report, ChangeType.NEW, now))
            result = UpsertResult(changed=True, created=True)

        elif has_changes(existing, report):
            change_type = classify_change(existing, report)
            for f in MUTABLE_FIELDS:
                setattr(existing, f, getattr(report, f))
            if existing.first_seen is None:
                existing.first_seen = _naive(report.first_seen)
            existing.last_seen = last_seen
            existing.updated_at = now
            session.add(existing)
            session.add(_history_entry(report, change_type, now))
            result = UpsertResult(changed=True)

        else:
            existing.last_seen = last_seen
            existing.updated_at = now
            session.add(existing)
            result = UpsertResult(changed=False)

        session.commit()
        return result
    except Exception:
        session.rollback()
        raise


def save_balizas(
    session: Session,
    reports: Iterable[BeaconReport],
    now: Optional[datetime] = None,
) -> SaveResult:
    """Upsert reports one by one; a failing report is counted, not fatal."""
    result = SaveResult()

    for report in reports:
        result.total += 1
        try:
            outcome = upsert_baliza(session, report, now=now)
        except Exception as e:
            logger.error(
                f"Error saving beacon {report.id}: {e}",
                extra={"baliza_id": report.id},
            )
            result.errors += 1
            continue

        if outcome.created:
            result.saved += 1
        elif outcome.changed:
            result.updated += 1

    logger.info(
        f"Saved beacons: {result.saved} new, {result.updated} updated, "
        f"{result.errors} errors of {result.total}"
    )
    return result
