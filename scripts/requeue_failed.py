"""Put permanently failed geocode queue items back in the pending state.

Usage:
    python scripts/requeue_failed.py
"""

import sys

from geoworker.core.config import ConfigError, get_settings
from geoworker.core.db import Database


def main() -> int:
    try:
        database = Database(get_settings().database_url)
    except ConfigError as exc:
        print("Configuration error:", exc)
        return 1

    try:
        count = database.requeue_failed_items()
    finally:
        database.close()

    print("Requeued", count, "failed geocode queue items")
    return 0


if __name__ == "__main__":
    sys.exit(main())
