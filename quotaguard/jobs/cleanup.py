"""
Stale quota entry cleanup for external schedulers (cron, Cloud Scheduler, k8s CronJob).

Removes entries whose window started before the retention horizon.

Usage:
    python -m quotaguard.jobs.cleanup [--all] [--max-batches N]

Options:
    --all            Keep running batches until one removes fewer than the batch size
    --max-batches    Upper bound on batches when --all is given
"""

from __future__ import annotations

import argparse
import logging
import sys

from quotaguard.core.config import settings
from quotaguard.core.errors import QuotaStoreError, ValidationAppError
from quotaguard.core.logging import configure_logging
from quotaguard.core.rate_limit import close_quota_store, get_quota_maintenance

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Remove stale rate limit entries")
    parser.add_argument(
        "--all",
        action="store_true",
        help="Run batches until the store has no stale entries left",
    )
    parser.add_argument(
        "--max-batches",
        type=int,
        default=None,
        help="Upper bound on batches when --all is given",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the cleanup job.

    Returns:
        Process exit code: 0 on success, 1 when the store failed or could not be built.
    """
    args = build_parser().parse_args(argv)
    configure_logging(settings.log)

    try:
        maintenance = get_quota_maintenance()
        if args.all:
            removed = maintenance.cleanup_all(max_batches=args.max_batches)
        else:
            removed = maintenance.cleanup()
    except (QuotaStoreError, ValidationAppError) as exc:
        logger.error("cleanup_job.failed", extra={"error_code": exc.code, "error_type": type(exc).__name__})
        return 1
    finally:
        close_quota_store()

    logger.info("cleanup_job.completed", extra={"removed": removed, "all_batches": args.all})
    return 0


if __name__ == "__main__":
    sys.exit(main())
