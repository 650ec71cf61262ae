"""Create or inspect counter records.

Usage:
    python -m idgen.tools.counters create --key orders
    python -m idgen.tools.counters create --key orders --block-size 100 --start-value 1000
    python -m idgen.tools.counters show --key orders
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from idgen.adapters.persistence.database import async_session_factory, engine
from idgen.adapters.persistence.repositories import SqlCounterStore
from idgen.application.ports.counter_store import CounterStore
from idgen.config import settings
from idgen.domain.entities.counter_record import CounterRecord
from idgen.domain.errors import StoreError
from idgen.domain.value_objects.enums import AnchorConvention

logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(message)s")
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage hi-lo counter records")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Create the record if it does not exist")
    create.add_argument("--key", required=True)
    create.add_argument("--block-size", type=int, default=settings.default_block_size)
    create.add_argument("--start-value", type=int, default=settings.default_start_value)
    create.add_argument(
        "--anchor",
        choices=[a.value for a in AnchorConvention],
        default=settings.anchor_convention.value,
        help="Anchor convention the allocators for this key will use",
    )

    show = sub.add_parser("show", help="Print the stored record")
    show.add_argument("--key", required=True)
    return parser


async def create_counter(
    store: CounterStore,
    key: str,
    block_size: int,
    start_value: int,
    anchor: AnchorConvention,
) -> CounterRecord:
    if block_size <= 0:
        raise ValueError("block size must be positive")
    return await store.upsert_if_absent(
        CounterRecord(
            key=key,
            start_value=start_value,
            high_value=anchor.initial_high_value,
            block_size=block_size,
            anchor=anchor,
        )
    )


def _format(record: CounterRecord) -> str:
    return (
        f"key={record.key} start_value={record.start_value} "
        f"high_value={record.high_value} block_size={record.block_size} "
        f"anchor={record.anchor.value}"
    )


async def run(args: argparse.Namespace, store: CounterStore) -> int:
    if args.command == "create":
        record = await create_counter(
            store, args.key, args.block_size, args.start_value, AnchorConvention(args.anchor)
        )
        print(_format(record))
        return 0

    record = await store.get(args.key)
    if record is None:
        logger.error("No counter record for key %r", args.key)
        return 1
    print(_format(record))
    return 0


async def _main(argv: list[str] | None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return await run(args, SqlCounterStore(async_session_factory))
    except (StoreError, ValueError) as e:
        logger.error("%s", e)
        return 2
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_main(argv))


if __name__ == "__main__":
    sys.exit(main())
