#!/usr/bin/env python3
"""Print the derived wallet for a child as JSON.

Useful when a family reports a balance that looks wrong: the output shows the
resolved ids, per-category totals, cap status, and excluded points side by side.

Example:
    python tooling/scripts/export_wallet_snapshot.py <child-id> --days 90
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export a child's wallet snapshot")
    parser.add_argument("subject_key", help="Canonical child id or legacy child uid")
    parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="Only include ledger rows from the last N days (default: full history).",
    )
    parser.add_argument(
        "--with-entries",
        action="store_true",
        help="Include the reconciled ledger rows that fed the snapshot.",
    )
    return parser.parse_args()


async def _run(subject_key: str, days: int | None, with_entries: bool) -> dict[str, object]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from kidwallet_api.db.session import async_session  # type: ignore import-position
    from kidwallet_api.services.wallet import WalletCalculator  # type: ignore import-position
    from kidwallet_api.services.ledger import IdentityResolver, LedgerAggregator  # type: ignore import-position

    since = datetime.now(timezone.utc) - timedelta(days=days) if days is not None else None

    async with async_session() as session:
        snapshot = await WalletCalculator(session).compute_wallet(subject_key, since=since)
        payload: dict[str, object] = asdict(snapshot)
        if with_entries:
            subject_ids = await IdentityResolver(session).resolve(subject_key)
            entries = await LedgerAggregator(session).load_entries(subject_ids, since)
            payload["entries"] = [asdict(entry) for entry in entries]
        return payload


def main() -> int:
    args = parse_args()
    payload = asyncio.run(_run(args.subject_key, args.days, args.with_entries))
    print(json.dumps(payload, indent=2, default=str))
    logger.success("Wallet snapshot exported", subject_key=args.subject_key, days=args.days)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
