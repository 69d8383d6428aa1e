#!/usr/bin/env python3
# One-shot delivery-request expiry sweep for cron-style deployments

import sys
import logging
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from db.maintenance_operations import MaintenanceOperations
from db.manager import DocumentStore
from utils.config import Config
from utils.logger import setup_logging


def main() -> int:
    config = Config()
    setup_logging(config.config)

    with DocumentStore.from_config(config.get_database_config()) as store:
        result = MaintenanceOperations(store).expire_stale_requests()

    if result["failed"]:
        logging.warning(f"{len(result['failed'])} requests could not be expired, will retry next run")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
