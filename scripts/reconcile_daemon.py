# scripts/reconcile_daemon.py
from __future__ import annotations

import argparse
import logging

from app.gateway.factory import get_gateway
from app.store.factory import get_store
from app.workers.charge_worker import ChargeReconciler
from services.observability import configure_logging
from settings import settings, validate_env_settings


logger = logging.getLogger("nexus.reconcile_daemon")


def main() -> None:
    parser = argparse.ArgumentParser(description="Poll the Pix provider for outstanding charges and settle them.")
    parser.add_argument("--once", action="store_true", help="run a single pass and exit")
    parser.add_argument("--batch-size", type=int, default=settings.RECONCILE_BATCH_SIZE)
    parser.add_argument("--poll-seconds", type=int, default=settings.RECONCILE_POLL_SECONDS)
    args = parser.parse_args()

    configure_logging()
    validate_env_settings()

    if settings.GATEWAY_MODE == "sandbox":
        # MockGateway state lives in the API process; a separate poller would
        # see every charge as unknown and back off forever
        logger.error(
            "Charge reconciler refuses GATEWAY_MODE=sandbox; sandbox charges settle when "
            "GET /charges/{id} is called on the API"
        )
        raise SystemExit(2)

    reconciler = ChargeReconciler(get_store(), get_gateway(), fee_rate=settings.PLATFORM_FEE_RATE)
    logger.info(
        "Charge reconciler starting; store=%s gateway=%s batch=%s interval=%ss",
        settings.STORE_BACKEND,
        settings.GATEWAY_MODE,
        args.batch_size,
        args.poll_seconds,
    )

    if args.once:
        summary = reconciler.process_once(batch_size=args.batch_size)
        logger.info("Charge reconciler pass %s", summary.as_dict())
        return

    try:
        reconciler.run_forever(poll_seconds=args.poll_seconds, batch_size=args.batch_size)
    except KeyboardInterrupt:
        logger.info("Charge reconciler exiting")
        raise
    except Exception:
        logger.exception("Charge reconciler failed")
        raise


if __name__ == "__main__":
    main()
