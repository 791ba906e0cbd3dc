# scripts/lock_expired_portals.py
"""
Lock every selection portal whose paid window has passed.

Portals are also locked lazily on the next customer request; this sweep is
for operators who want the dashboard and staff emails to reflect expiry
without waiting for the customer. Run from cron or by hand:

    python -m scripts.lock_expired_portals --dry-run
"""
import argparse

from brushquote.core.logging_config import setup_logging
from brushquote.db import SessionLocal
from brushquote.services.notifications import get_notifier
from brushquote.services.portal_access import sweep_expired_portals


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--dry-run", action="store_true", help="report, do not lock")
    parser.add_argument("--no-email", action="store_true", help="lock and mark the staff emails skipped")
    args = parser.parse_args(argv)

    setup_logging()
    db = SessionLocal()
    try:
        locked = sweep_expired_portals(
            db,
            dry_run=args.dry_run,
            notifier=get_notifier(),
            notify=not args.no_email,
        )
    finally:
        db.close()

    verb = "would lock" if args.dry_run else "locked"
    print(f"{verb} {len(locked)} portal(s): {locked}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
