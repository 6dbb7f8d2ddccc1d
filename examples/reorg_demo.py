#!/usr/bin/env python3
"""
Reorg demo for the event tracker store.

Stores logs for three blocks, then replays a chain reorganization that
replaces the last block's logs in one atomic batch.
"""

import tempfile
from pathlib import Path

from eventtracker import Block, Event, Log, TrackerStore
from eventtracker.store import JSONCodec
from eventtracker.utils.logging import configure_logging

CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def print_stream(entry):
    checkpoint = entry.get_checkpoint()
    print(f"  last block: {checkpoint.number if checkpoint else None}")
    for index, log in entry.iter_records():
        print(f"  [{index}] block={log.block_number} hash={log.block_hash} logIndex={log.log_index}")


def main():
    configure_logging(log_level="WARNING", log_format="console")

    print("=" * 60)
    print("Event tracker store - reorg demo")
    print("=" * 60)

    with tempfile.TemporaryDirectory() as tmpdir:
        with TrackerStore.open(Path(tmpdir) / "tracker.db") as store:
            entry = store.get_entry(
                CONTRACT,
                record_codec=JSONCodec.for_type(Log),
                checkpoint_codec=JSONCodec.for_type(Block),
            )

            print("\n[1] Syncing blocks 1-3...")
            for number in (1, 2, 3):
                logs = [
                    Log(address=CONTRACT, block_number=number, block_hash=f"0xb{number}", log_index=i)
                    for i in range(2)
                ]
                entry.store_event(Event(added=logs, block=Block(number=number, hash=f"0xb{number}")))
            print_stream(entry)

            print("\n[2] Block 3 reorganized into 3'...")
            first_stale = 4
            removed = [log for _, log in entry.iter_records(start=first_stale)]
            replacement = [Log(address=CONTRACT, block_number=3, block_hash="0xb3'", log_index=0)]
            result = entry.store_event(
                Event(
                    index=first_stale,
                    added=replacement,
                    removed=removed,
                    block=Block(number=3, hash="0xb3'", parent_hash="0xb2"),
                )
            )
            print(f"  removed={result.removed} appended={result.appended} next_index={result.next_index}")
            print_stream(entry)


if __name__ == "__main__":
    main()
