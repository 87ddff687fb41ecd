from __future__ import annotations

import argparse
import logging

from app.workers.payout_worker import process_once, run_forever
from services.observability import configure_logging
from settings import validate_env_settings

logger = logging.getLogger("nexus.payout_worker")


def main() -> None:
    parser = argparse.ArgumentParser(description="Retry payouts that never reached the provider.")
    parser.add_argument("--once", action="store_true")
    parser.add_argument("--batch-size", type=int, default=50)
    parser.add_argument("--poll-seconds", type=int, default=5)
    args = parser.parse_args()

    configure_logging()
    validate_env_settings()

    if args.once:
        n = process_once(batch_size=args.batch_size)
        logger.info("processed=%s", n)
        return
    run_forever(poll_seconds=args.poll_seconds, batch_size=args.batch_size)


if __name__ == "__main__":
    main()
