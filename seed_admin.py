"""Create or reset the default administrator from the environment.

Usage: python seed_admin.py [--username NAME] [--full-name NAME]
The password is always read from ADMIN_DEFAULT_PASSWORD.
"""
import argparse
import sys

from slot_booking.bootstrap import ensure_default_admin
from slot_booking.config import get_settings
from slot_booking.core.logging import setup_logging
from slot_booking.database import SessionLocal, create_tables


def main(argv=None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--username", default=settings.admin_default_username)
    parser.add_argument("--full-name", default=settings.admin_default_full_name)
    args = parser.parse_args(argv)

    logger = setup_logging(settings.log_level, json_output=False)
    if not settings.admin_default_password:
        logger.error("admin_seed_failed", reason="ADMIN_DEFAULT_PASSWORD is not set")
        return 1

    create_tables()
    db = SessionLocal()
    try:
        admin = ensure_default_admin(db, args.username, settings.admin_default_password, args.full_name)
        logger.info("admin_seeded", username=admin.username, role=admin.role.value)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
