"""
Run fulfillment for one order against the configured backends.

Usage:
    python scripts/process_order.py ORDER_ID
    python scripts/process_order.py ORDER_ID --mark-paid 2999

Configuration comes from the environment (SUPABASE_URL, LULU_* and friends).
Re-running for an order that already finished is safe and reports the
existing outcome.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storybook_fulfillment.common.errors import InvalidTransitionError, OrderNotFoundError  # noqa: E402
from storybook_fulfillment.common.settings import load_settings  # noqa: E402
from storybook_fulfillment.main import build_services  # noqa: E402
from storybook_fulfillment.orders import OrderStateMachine  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fulfill a single storybook order.")
    parser.add_argument("order_id", help="Identifier of the order to fulfill.")
    parser.add_argument(
        "--mark-paid",
        type=int,
        default=None,
        metavar="AMOUNT_CENTS",
        help="Record payment (in cents) before fulfilling a pending order.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    services = build_services(load_settings())
    try:
        if args.mark_paid is not None:
            OrderStateMachine(services.repository).record_payment(args.order_id, amount_paid=args.mark_paid)
        result = services.dispatcher.run(args.order_id)
    except OrderNotFoundError:
        print(f"Order {args.order_id} not found", file=sys.stderr)
        return 2
    except InvalidTransitionError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    summary = {
        "order_id": result.order_id,
        "outcome": result.outcome.value,
        "status": result.status.value if result.status else None,
        "download": result.download.to_dict() if result.download else None,
        "provider_job_id": result.provider_job_id,
        "failure": result.failure.message if result.failure else None,
    }
    print(json.dumps(summary, indent=2))
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
