#!/usr/bin/env python3
"""Script to re-upsert every item into the external vector index.

Items are paged by id in ascending order, so an interrupted run resumes with
``--after-id`` set to the last id it reported; ``--max-batches`` bounds a run
for chunked execution.
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, List, Optional

import structlog

from inventory_libs.common.config import ConfigurationError, IndexerConfig
from inventory_libs.common.logging import configure_logging
from inventory_libs.vector_index.base import IndexableItem
from inventory_libs.vector_index.factory import create_vector_index
from inventory_libs.vector_index.writer import IndexWriter
from inventory_search.retrievers.candidates import PgCandidateStore, is_uuid

logger = structlog.get_logger("reindex_items")

DEFAULT_BATCH_SIZE = 100
MAX_BATCH_SIZE = 1000

FetchBatch = Callable[[Optional[str], int], Awaitable[List[IndexableItem]]]


@dataclass
class ReindexSummary:
    batch_size: int
    batches: int = 0
    total_processed: int = 0
    failed: int = 0
    last_item_id: Optional[str] = None
    completed: bool = False


def normalize_batch_size(batch_size: Optional[int]) -> int:
    if batch_size is None:
        return DEFAULT_BATCH_SIZE
    if batch_size < 1:
        raise ValueError("batch-size must be at least 1")
    return min(batch_size, MAX_BATCH_SIZE)


def normalize_after_id(after_id: Optional[str]) -> Optional[str]:
    if not after_id:
        return None
    if not is_uuid(after_id):
        raise ValueError("after-id must be a UUID")
    return after_id


def normalize_max_batches(max_batches: Optional[int]) -> Optional[int]:
    if max_batches is None:
        return None
    if max_batches < 1:
        raise ValueError("max-batches must be at least 1")
    return max_batches


async def reindex_items(
    fetch_batch: FetchBatch,
    writer: IndexWriter,
    batch_size: Optional[int] = None,
    after_id: Optional[str] = None,
    max_batches: Optional[int] = None,
    on_batch: Optional[Callable[[dict], None]] = None
) -> ReindexSummary:
    """Page items after ``after_id`` and upsert each into the index.

    Upsert failures are counted and skipped; the run always advances.
    """
    summary = ReindexSummary(batch_size=normalize_batch_size(batch_size))
    summary.last_item_id = normalize_after_id(after_id)
    max_batches = normalize_max_batches(max_batches)

    while max_batches is None or summary.batches < max_batches:
        items = await fetch_batch(summary.last_item_id, summary.batch_size)
        if not items:
            summary.completed = True
            break

        failed = 0
        for item in items:
            if not await writer.upsert(item):
                failed += 1

        summary.batches += 1
        summary.total_processed += len(items)
        summary.failed += failed
        summary.last_item_id = items[-1].id

        progress = {
            "event": "batch",
            "batch": summary.batches,
            "processed": len(items),
            "failed": failed,
            "total_processed": summary.total_processed,
            "last_item_id": summary.last_item_id,
        }
        logger.info("Reindex batch completed", **{k: v for k, v in progress.items() if k != "event"})
        if on_batch:
            on_batch(progress)

    return summary


async def run(args: argparse.Namespace, config: IndexerConfig) -> ReindexSummary:
    index = create_vector_index(config)
    if index is None:
        raise ConfigurationError("Reindexing requires INV_SEARCH_PROVIDER=pinecone")

    store = PgCandidateStore(config.inv_database_dsn)
    try:
        return await reindex_items(
            store.fetch_index_batch,
            IndexWriter(index),
            batch_size=args.batch_size or config.inv_reindex_batch_size,
            after_id=args.after_id,
            max_batches=args.max_batches,
            on_batch=lambda progress: print(json.dumps(progress)),
        )
    finally:
        await store.close()
        await index.close()


def main():
    """Main function for CLI."""
    parser = argparse.ArgumentParser(description="Re-upsert every item into the external vector index")
    parser.add_argument("--batch-size", type=int, default=None, help=f"Items per batch (default: {DEFAULT_BATCH_SIZE}, max: {MAX_BATCH_SIZE})")
    parser.add_argument("--after-id", default=None, help="Resume after this item id")
    parser.add_argument("--max-batches", type=int, default=None, help="Stop after N batches")

    args = parser.parse_args()

    config = IndexerConfig()
    configure_logging("reindex_items", config.inv_log_level, config.inv_log_format)

    try:
        summary = asyncio.run(run(args, config))
    except (ConfigurationError, ValueError) as e:
        logger.error("Reindex aborted", error=str(e))
        print(f"Reindex aborted: {e}")
        sys.exit(2)
    except Exception as e:
        logger.error("Reindex failed", error=str(e))
        print(f"Reindex failed: {e}")
        sys.exit(1)

    print(json.dumps({"event": "done" if summary.completed else "stopped", **asdict(summary)}))
    sys.exit(0 if summary.failed == 0 else 1)


if __name__ == "__main__":
    main()
