#!/usr/bin/env python3
"""Operator entrypoint for inspecting and resetting webhook targets.

Usage:
    # Show every target on a board with its delivery health
    python scripts/webhooks_admin.py --list --board BOARD_ID

    # Close the circuit breaker of a target that hit the failure threshold
    python scripts/webhooks_admin.py --reactivate WEBHOOK_ID

Environment variables:
    DATABASE_URL: Database holding the webhook_targets table
    WEBHOOK_FAILURE_THRESHOLD: Failures that open a breaker (default: 10)
"""

import argparse
import logging
import sys
from uuid import UUID

from sqlmodel import Session

from kanban_notify.config import get_settings
from kanban_notify.db.session import engine
from kanban_notify.services.webhooks import get_webhook, list_board_webhooks, reactivate_webhook
from kanban_notify.workers.pool import configure_worker_logging


def main() -> int:
    """Main entrypoint for webhook administration."""
    parser = argparse.ArgumentParser(
        description="Inspect and reset board webhook targets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Mode selection
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--list",
        action="store_true",
        help="List targets on a board (requires --board)",
    )
    mode.add_argument(
        "--reactivate",
        metavar="WEBHOOK_ID",
        type=UUID,
        help="Reactivate a target and reset its failure counter",
    )

    parser.add_argument(
        "--board",
        default=None,
        help="Board ID (list mode only)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()
    configure_worker_logging(logging.DEBUG if args.verbose else logging.WARNING)
    logger = logging.getLogger(__name__)
    threshold = get_settings().WEBHOOK_FAILURE_THRESHOLD

    try:
        with Session(engine) as session:
            if args.list:
                if not args.board:
                    parser.error("--list requires --board")
                targets, total = list_board_webhooks(session, args.board, limit=100)
                print(f"\n--- Webhooks on board {args.board} ({total}) ---")
                for target in targets:
                    breaker = "OPEN" if target.failure_count >= threshold else "closed"
                    state = "active" if target.active else "inactive"
                    events = ", ".join(target.event_allowlist or []) or "all events"
                    print(f"{target.id}  {state:<8}  breaker={breaker:<6}  "
                          f"failures={target.failure_count:<3}  {target.callback_url}")
                    print(f"    events: {events}")
                    print(f"    last attempt: {target.last_attempt_at or 'never'}")
                return 0

            target = get_webhook(session, args.reactivate)
            if target is None:
                print(f"Webhook {args.reactivate} not found", file=sys.stderr)
                return 1
            reactivate_webhook(session, target)
            print(f"Webhook {args.reactivate} reactivated")
            return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Webhook admin failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
