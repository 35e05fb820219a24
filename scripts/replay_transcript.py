#!/usr/bin/env python3
"""
Replay a saved chat transcript through the extraction pipeline.

Each non-empty line of the transcript is `Speaker: message`. Lines without a
speaker prefix are attributed to "Unknown". By default the actions are only
printed; with --apply they are written to the database in DATABASE_URL and
the batch summary that the chat would receive is printed instead.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from datetime import timedelta
from pathlib import Path

from yardline.applying import ActionApplier
from yardline.kernel.time import utc_now
from yardline.matching import EntityResolver, MatchPolicy
from yardline.monitoring import configure_logging
from yardline.pipeline.graph import run_extraction
from yardline.pipeline.state import InboundMessage
from yardline.service import format_summary
from yardline.store.client import close_db, init_db
from yardline.store.sql import SqlVehicleStore


def _parse_transcript(path: Path, conversation_id: str) -> list[InboundMessage]:
    started = utc_now()
    messages = []
    for number, raw in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        speaker, sep, text = line.partition(":")
        if not sep or not text.strip():
            speaker, text = "Unknown", line
        messages.append(
            InboundMessage(
                conversation_id=conversation_id,
                key=str(number),
                speaker=speaker.strip(),
                text=text.strip(),
                timestamp=started + timedelta(seconds=number),
            )
        )
    return messages


async def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("transcript", type=Path, help="Transcript file, one `Speaker: message` per line")
    parser.add_argument("--conversation", default="replay", help="Conversation id (default: replay)")
    parser.add_argument("--apply", action="store_true", help="Apply actions to the database")
    parser.add_argument("--create-schema", action="store_true", help="Create missing tables before applying")
    args = parser.parse_args(argv)

    configure_logging()
    messages = _parse_transcript(args.transcript, args.conversation)
    if not messages:
        print("Transcript is empty")
        return 1

    if not args.apply:
        result = await run_extraction(args.conversation, messages)
        print(json.dumps([action.wire() for action in result.actions], indent=2))
        for action in result.dropped_actions:
            print(f"dropped by audit: {json.dumps(action.wire())}")
        for error in result.errors:
            print(f"error: {error}")
        return 0

    await init_db(create_schema=args.create_schema)
    try:
        store = SqlVehicleStore()
        categories = await store.list_recon_categories()
        result = await run_extraction(args.conversation, messages, categories)
        outcomes = await ActionApplier(store, EntityResolver(store, MatchPolicy.from_settings())).apply_all(
            result.actions
        )
        print(format_summary(result, outcomes))
    finally:
        await close_db()
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
