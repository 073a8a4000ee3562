#!/usr/bin/env python
"""
Recreate the local development database.

Drops the SQLite file, builds every table straight from the models (the
project ships no migrations) and adds a demo/demo admin login. Pass
``--keep`` to only sync missing tables on an existing database.
"""

import argparse
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import django

os.environ["DJANGO_SETTINGS_MODULE"] = "cert_hub.settings"
os.environ.setdefault("CERT_HUB_DOMAIN", "localhost:8000")
os.environ.setdefault("CERT_HUB_LEDGER_BACKEND", "cert_hub.ledger.sandbox.SandboxLedger")

django.setup()

from django.conf import settings  # noqa: E402
from django.contrib.auth import get_user_model  # noqa: E402
from django.core.management import call_command  # noqa: E402
from django.db import connection  # noqa: E402

DEMO_USER = "demo"


def drop_database(db_path):
    # type: (Path) -> None
    connection.close()
    for suffix in ("", "-wal", "-shm"):
        candidate = db_path.with_name(db_path.name + suffix)
        if candidate.exists():
            candidate.unlink()
            print(f"  removed {candidate.name}")


def ensure_demo_admin():
    # type: () -> bool
    """Create the demo superuser, return False if it already existed."""
    users = get_user_model().objects
    if users.filter(username=DEMO_USER).exists():
        return False
    users.create_superuser(username=DEMO_USER, email="demo@example.com", password=DEMO_USER)
    return True


def reset_dev_database(keep=False):
    # type: (bool) -> None
    db_path = Path(settings.DATABASES["default"]["NAME"])
    print(f"Database: {db_path}")

    if not keep:
        drop_database(db_path)

    call_command("migrate", run_syncdb=True, verbosity=0)
    print("  tables in sync with models")

    if ensure_demo_admin():
        print(f"  created superuser {DEMO_USER}/{DEMO_USER}")

    print("\nNext: python manage.py runserver, then open /admin/ or /api/docs")
    print("Note: the sandbox ledger lives in the server process and starts empty on every restart.")


def main():
    # type: () -> None
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--keep", action="store_true", help="Keep existing data, only create missing tables")
    args = parser.parse_args()
    try:
        reset_dev_database(keep=args.keep)
    except KeyboardInterrupt:
        sys.exit(1)


if __name__ == "__main__":
    main()
