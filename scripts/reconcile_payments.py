#!/usr/bin/env python3
"""
Operator tool for the manual payment reconciliation queue.

Payment notifications that could not be applied when they arrived are
stored as NEEDS_REVIEW receipts.  This script lists them, retries one, or
closes one without applying it.

Usage:
    python3 scripts/reconcile_payments.py --operator-id UUID list
    python3 scripts/reconcile_payments.py --operator-id UUID retry PROJECT_ID TOKEN
    python3 scripts/reconcile_payments.py --operator-id UUID resolve PROJECT_ID TOKEN --note "refunded"

Configuration comes from get_active_config(): --config PATH or the default
YAML, with ENGAGEMENT_* environment overrides.
"""

import argparse
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from engagement_config import get_active_config
from engagement_kernel.domain.access import Actor
from engagement_kernel.domain.enums import Role
from engagement_kernel.exceptions import EngagementKernelError
from engagement_kernel.logging_config import configure_logging
from engagement_services.engagement_orchestrator import EngagementOrchestrator


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Manual payment reconciliation queue")
    p.add_argument("--config", type=Path, default=None, help="Config YAML path")
    p.add_argument(
        "--operator-id",
        type=UUID,
        required=True,
        help="Admin member id recorded as the acting operator",
    )
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List receipts waiting for review")

    retry = sub.add_parser("retry", help="Re-apply a queued receipt")
    retry.add_argument("project_id", type=UUID)
    retry.add_argument("token")

    resolve = sub.add_parser("resolve", help="Close a queued receipt without applying it")
    resolve.add_argument("project_id", type=UUID)
    resolve.add_argument("token")
    resolve.add_argument("--note", required=True, help="Why the receipt is being closed")
    return p.parse_args(argv)


def _print_receipt(receipt) -> None:
    print(
        f"  {receipt.project_id}  {receipt.idempotency_token:<32}  "
        f"{receipt.outcome.value:<9}  {receipt.status.value:<12}  "
        f"attempts={receipt.attempts}"
    )
    if receipt.failure_message:
        print(f"      last failure: {receipt.failure_message}")
    if receipt.resolution_note:
        print(f"      note: {receipt.resolution_note}")


def main(argv: list[str] | None = None, orchestrator: EngagementOrchestrator | None = None) -> int:
    args = _parse_args(argv)
    operator = Actor(id=args.operator_id, role=Role.ADMIN)

    if orchestrator is None:
        configure_logging()
        try:
            config = get_active_config(args.config)
        except (FileNotFoundError, ValueError) as exc:
            print(f"  ERROR: {exc}", file=sys.stderr)
            return 2
        orchestrator = EngagementOrchestrator.from_config(config)

    try:
        if args.command == "list":
            receipts = orchestrator.pending_payment_reviews(operator)
            if not receipts:
                print("No receipts waiting for review.")
            for receipt in receipts:
                _print_receipt(receipt)
        elif args.command == "retry":
            receipt = orchestrator.retry_payment(operator, args.project_id, args.token)
            _print_receipt(receipt)
        elif args.command == "resolve":
            receipt = orchestrator.resolve_payment(
                operator, args.project_id, args.token, args.note
            )
            _print_receipt(receipt)
    except EngagementKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
