from __future__ import annotations

import argparse

from services.observability import configure_logging
from services.reconcile import run_reconcile


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the settlement reconcile report once.")
    parser.add_argument("--stale-minutes", type=int, default=30)
    parser.add_argument("--limit", type=int, default=200)
    args = parser.parse_args()

    configure_logging()
    result = run_reconcile(stale_minutes=args.stale_minutes, limit=args.limit)
    summary = result["summary"]

    print("reconcile_report_id:", result["id"])
    print(
        "counts:",
        f"manual_refund_required={summary['manual_refund_required']}",
        f"payout_failed={summary['payout_failed']}",
        f"payout_stale={summary['payout_stale']}",
        f"completed_without_order={summary['completed_without_order']}",
    )
    for item in result["items"]:
        print(item)


if __name__ == "__main__":
    main()
