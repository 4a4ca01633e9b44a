"""
CLI helper for out-of-band entry administration.

    python -m contest_backend.admin set-status <entry_id> finalist
    python -m contest_backend.admin seed-demo user_test123
"""

from __future__ import annotations

import argparse
import logging
import sys
import time

from contest_backend.dependencies import get_backends
from contest_backend.errors import ContestError
from contest_backend.fees import calculate_fees
from contest_backend.schemas import PaymentStatus, ReviewStatus, parse_entry

DEMO_TEXT = (
    "This business strategy focuses on digital transformation for small and "
    "medium enterprises that still run most of their operations on paper. "
    "It proposes a phased rollout of cloud tools, starting with invoicing and "
    "inventory, followed by customer relationship management and analytics. "
    "Each phase is funded by the savings of the previous one, which keeps the "
    "upfront investment low and lets owners see results within a quarter. "
)


def _demo_entries(user_id: str) -> list[dict]:
    stamp = int(time.time() * 1000)
    text = DEMO_TEXT * 3
    specs = [
        ("business", "text", "Innovative Business Strategy", ReviewStatus.SUBMITTED),
        ("technology", "text", "AI-Powered Solution Platform", ReviewStatus.UNDER_REVIEW),
        ("creative", "video", "Creative Digital Showcase", ReviewStatus.FINALIST),
    ]
    entries = []
    for category, entry_type, title, status in specs:
        fees = calculate_fees(category)
        data = {
            "user_id": user_id,
            "category": category,
            "entry_type": entry_type,
            "title": title,
            "description": f"Demo {category} entry",
            "entry_fee": fees.entry_fee,
            "surcharge": fees.surcharge,
            "total_amount": fees.total_amount,
            "payment_intent_id": f"pi_test_{category}_{stamp}",
            "payment_status": PaymentStatus.SUCCEEDED.value,
            "status": status.value,
        }
        if entry_type == "text":
            data["text_content"] = text
        else:
            data["video_url"] = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        entries.append(data)
    return entries


def set_status(args: argparse.Namespace) -> int:
    store = get_backends().store
    record = store.update_review_status(args.entry_id, ReviewStatus(args.status))
    print(f"{record.entry_id}: {record.entry.status}")
    return 0


def seed_demo(args: argparse.Namespace) -> int:
    backends = get_backends()
    if backends.settings.is_production:
        print("Refusing to seed demo entries in production", file=sys.stderr)
        return 1
    for data in _demo_entries(args.user_id):
        record = backends.store.insert(parse_entry(data))
        print(f"{record.entry_id}: {record.entry.title} ({record.entry.status})")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Contest entry administration")
    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser(
        "set-status", help="Move an entry to another review status"
    )
    status_parser.add_argument("entry_id")
    status_parser.add_argument(
        "status", choices=[status.value for status in ReviewStatus]
    )
    status_parser.set_defaults(func=set_status)

    seed_parser = subparsers.add_parser(
        "seed-demo", help="Insert demo entries for a user (not in production)"
    )
    seed_parser.add_argument("user_id")
    seed_parser.set_defaults(func=seed_demo)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    try:
        return args.func(args)
    except ContestError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
