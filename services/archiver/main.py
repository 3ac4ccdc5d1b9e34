"""
Main entry point for the archiver service
"""

import logging
import sys
from datetime import datetime, timezone

from .archiver import PAYLOAD_DATE_KEY, run_archiver
from .config import load

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


def main(argv=None):
    """Main entry point; accepts an optional YYYY-MM-DD date to archive"""
    if argv is None:
        argv = sys.argv[1:]

    logger.info("=" * 80)
    logger.info("Starting Telemetry Archiver Service")
    logger.info(f"Run time: {datetime.now(timezone.utc).isoformat()}")
    logger.info("=" * 80)

    try:
        cfg = load()

        logger.info("Configuration:")
        logger.info(f"  Bucket: {cfg.bucket_name}")
        logger.info(f"  Days old: {cfg.days_old}")
        logger.info(f"  Deletion enabled: {cfg.deletion_enabled}")

        if not cfg.deletion_enabled:
            logger.warning("Deletion is disabled - archived readings stay in the database")

        payload = {PAYLOAD_DATE_KEY: argv[0]} if argv else None
        summary = run_archiver(payload, cfg)

        logger.info("=" * 80)
        logger.info("Archiver Service Complete")
        logger.info(summary)
        logger.info("=" * 80)

        return 0

    except Exception as e:
        logger.error(f"Archiver service failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
