"""
greenloop.services.reconciliation_service — Ledger Reconciliation
==================================================================

Periodic job that validates ``user_points.total_points`` against the
``point_transactions`` ledger and reports drift.

How it works:
    1. Query ``SUM(points)`` from ``point_transactions`` grouped by user.
    2. Compare against the stored ``user_points`` row.
    3. Hand each mismatch to :func:`ledger_service.reconcile_user`, which
       re-reads the sum under the user's ledger lock and writes it.
    4. Log all corrections for audit.

The ledger is the source of truth; streak fields are left alone.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from greenloop.database.models import PointTransaction, UserPoints
from greenloop.services import ledger_service

logger = logging.getLogger(__name__)


def find_drift(engine: Engine) -> tuple[int, list[dict]]:
    """Aggregates whose total differs from the ledger, read-only.

    Returns ``(checked, drift)`` where each drift entry is
    ``{"user_id", "stored", "actual", "diff"}``; ``stored`` is None when the
    aggregate row is missing.
    """
    with Session(engine) as session:
        truth_map: dict[str, int] = {
            row.user_id: int(row.actual)
            for row in session.execute(
                select(
                    PointTransaction.user_id,
                    func.sum(PointTransaction.points).label("actual"),
                ).group_by(PointTransaction.user_id)
            ).all()
        }
        stored_map: dict[str, int] = {
            row.user_id: row.total_points
            for row in session.execute(
                select(UserPoints.user_id, UserPoints.total_points)
            ).all()
        }

    user_ids = sorted(set(truth_map) | set(stored_map))
    drift: list[dict] = []
    for user_id in user_ids:
        actual = truth_map.get(user_id, 0)
        stored = stored_map.get(user_id)
        if stored == actual or (stored is None and actual == 0):
            continue
        drift.append({
            "user_id": user_id,
            "stored": stored,
            "actual": actual,
            "diff": actual - (stored or 0),
        })
    return len(user_ids), drift


def reconcile_points(
    engine: Engine,
    *,
    dry_run: bool = False,
    lock_timeout_ms: int | None = None,
) -> dict:
    """Validate every aggregate against the ledger and fix drift.

    Returns ``{"checked": N, "corrected": M, "corrections": [...]}``.
    With *dry_run* the drift is reported but nothing is written.
    """
    checked, corrections = find_drift(engine)

    if not dry_run:
        for correction in corrections:
            # An apply may have committed since the scan
            actual = ledger_service.reconcile_user(
                engine, correction["user_id"], lock_timeout_ms=lock_timeout_ms,
            )
            correction["actual"] = actual
            correction["diff"] = actual - (correction["stored"] or 0)

    if corrections:
        logger.warning(
            "Points reconciliation: %s %d/%d aggregates: %s",
            "found drift in" if dry_run else "corrected",
            len(corrections), checked, corrections,
        )
    else:
        logger.info("Points reconciliation: all %d aggregates match", checked)

    return {
        "checked": checked,
        "corrected": 0 if dry_run else len(corrections),
        "drifted": len(corrections),
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }
