"""
Run one notification scan from the command line or a cron job.

    python -m budgenudge.run_scan

Exits non-zero when the data store could not be reached.
"""

import logging
import sys

from budgenudge.logging_config import setup_logging
from budgenudge.services.scan_service import run_scan

logger = logging.getLogger(__name__)


def main() -> int:
    setup_logging()
    summary = run_scan()
    logger.info("Run summary: %s", summary.model_dump_json(exclude={"units"}))
    return 1 if summary.infrastructure_error else 0


if __name__ == "__main__":
    sys.exit(main())
