from __future__ import annotations

import argparse
import os
import sys
import uuid
from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session, sessionmaker

# Ensure `backend/` is importable when running as a script.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from backoffice.core.db.session import get_engine  # noqa: E402
from backoffice.core.logging import configure_logging  # noqa: E402
from backoffice.domain.cash_management.services.ledger import get_positions_in_range, rebuild_positions  # noqa: E402
from backoffice.domain.stores.service import list_stores  # noqa: E402


@dataclass(frozen=True)
class RebuildCounts:
    store_id: uuid.UUID
    positions: int
    drifted: int
    drifted_dates: list[date]


def rebuild_store(db: Session, *, store_id: uuid.UUID, date_from: date, date_to: date) -> RebuildCounts:
    """Recompute one store's rollups from its movement log and report the days that had drifted."""
    positions = get_positions_in_range(db, store_id=store_id, date_from=date_from, date_to=date_to)
    drifted = rebuild_positions(db, store_id=store_id, date_from=date_from, date_to=date_to)
    return RebuildCounts(
        store_id=store_id,
        positions=len(positions),
        drifted=len(drifted),
        drifted_dates=[p.business_date for p in drifted],
    )


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Rebuild daily cash positions from the movement log (idempotent).")
    p.add_argument("--store-id", help="Store UUID (default: every active store)")
    p.add_argument("--date-from", required=True, type=date.fromisoformat, help="First business date, YYYY-MM-DD")
    p.add_argument("--date-to", required=True, type=date.fromisoformat, help="Last business date, YYYY-MM-DD")
    return p


def main() -> int:
    args = _build_arg_parser().parse_args()
    configure_logging()

    engine = get_engine()
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)
    with SessionLocal() as db:
        store_ids = [uuid.UUID(args.store_id)] if args.store_id else [s.id for s in list_stores(db)]
        results = [
            rebuild_store(db, store_id=store_id, date_from=args.date_from, date_to=args.date_to)
            for store_id in store_ids
        ]

    for counts in results:
        dates = ",".join(d.isoformat() for d in counts.drifted_dates) or "-"
        print(
            f"CASH_POSITIONS_REBUILD store_id={counts.store_id} positions={counts.positions} "
            f"drifted={counts.drifted} dates={dates}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
