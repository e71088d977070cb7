"""
Check that the environment and Firebase service account are usable before
starting the API.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from agency_api.config import get_settings, validate_environment
from agency_api.credentials import load_service_account, validate_service_account
from agency_api.errors import ConfigurationError, StorageError
from agency_api.mongo import connect

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Validate agency API configuration")
    parser.add_argument(
        "--skip-firebase",
        action="store_true",
        help="Do not load or validate the Firebase service account",
    )
    parser.add_argument(
        "--ping",
        action="store_true",
        help="Also connect to MongoDB and run a ping",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    settings = get_settings()
    try:
        validate_environment(settings)
        logger.info("Environment variables OK")

        if not args.skip_firebase:
            service_account = load_service_account(settings)
            validate_service_account(service_account, settings.firebase_project_id)
            logger.info(
                "Firebase service account OK (project: %s)",
                service_account["project_id"],
            )
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 1

    if args.ping:
        try:
            connect(settings).close()
        except StorageError as exc:
            logger.error("%s (%s)", exc.message, exc.detail)
            return 1

    logger.info("Setup looks good")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
