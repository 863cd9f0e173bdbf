#!/usr/bin/env python3
"""
Reset demo data and seed a handful of users around a point, then file one report.

Truncates: user_locations, reports, confirmations, notification_alerts (keeps alembic_version).

Run from backend dir:
  cd backend && python scripts/seed_demo.py
  cd backend && python scripts/seed_demo.py --lat 12.9716 --lon 77.5946 --keep
"""
import argparse
import sys
from pathlib import Path

backend_dir = Path(__file__).resolve().parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from sqlalchemy import text

from theftwatch.db.session import SessionLocal
from theftwatch.db.tables import RESETTABLE_TABLE_NAMES
from theftwatch.services import profile_service
from theftwatch.services.fanout import submit_and_notify
from theftwatch.services.report_service import ReportSubmission

# (user_id, display name, north offset in degrees): 0.0045 deg latitude is roughly 500 m
DEMO_USERS = [
    ("demo-reporter", "Reporter", 0.0),
    ("demo-near", "Near neighbour", 0.0045),
    ("demo-edge", "Edge of radius", 0.0089),
    ("demo-far", "Across town", 0.05),
]


def reset(db) -> None:
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"TRUNCATE {', '.join(RESETTABLE_TABLE_NAMES)} RESTART IDENTITY CASCADE"))
    else:
        for name in RESETTABLE_TABLE_NAMES:
            db.execute(text(f"DELETE FROM {name}"))
    db.commit()


def main():
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--lat", type=float, default=12.9716)
    parser.add_argument("--lon", type=float, default=77.5946)
    parser.add_argument("--keep", action="store_true", help="Do not truncate existing data first")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        if not args.keep:
            print("Truncating:", ", ".join(RESETTABLE_TABLE_NAMES))
            reset(db)
        for user_id, name, dlat in DEMO_USERS:
            profile_service.upsert_profile(db, user_id, display_name=name)
            profile_service.update_location(db, user_id, args.lat + dlat, args.lon)
            print(f"  user {user_id:<14} at ({args.lat + dlat:.4f}, {args.lon:.4f})")

        result, alerts_sent = submit_and_notify(
            db,
            "demo-reporter",
            ReportSubmission(
                user_id="demo-reporter",
                vehicle_no="KA01AB1234",
                lat=args.lat,
                lon=args.lon,
                description="Black scooter taken from outside the market",
                idempotency_key="seed-demo",
            ),
        )
        print(f"Report {result.report.id} (duplicate={result.duplicate}); alerts sent: {alerts_sent}")
    except Exception as e:
        db.rollback()
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
