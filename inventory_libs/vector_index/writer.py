"""Write-path wrapper for the vector index.

Item create/update/delete handlers call ``IndexWriter`` after their
transaction commits. Index failures are logged and counted, never raised:
a stale index entry is repaired by the next write or by a reindex run,
while a failed item write would lose user data.
"""

from typing import Optional

import structlog

from inventory_libs.common.metrics import MetricsCollector
from .base import IndexableItem, VectorIndex, scope_tags

logger = structlog.get_logger("vector_index.writer")


class IndexWriter:
    """Best-effort ``upsert``/``delete`` against a ``VectorIndex``."""

    def __init__(self, index: VectorIndex, metrics: Optional[MetricsCollector] = None):
        self.index = index
        self.metrics = metrics

    def _record(self, operation: str, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_vector_index_operation(operation, status)

    async def upsert(self, item: IndexableItem) -> bool:
        """Send ``item`` to the index; ``False`` when the index call failed."""
        try:
            await self.index.upsert(item, scope_tags(item), item.source_text)
        except Exception as e:
            logger.error("Vector index upsert failed", item_id=item.id, error=str(e))
            self._record("upsert", "error")
            return False

        self._record("upsert", "ok")
        return True

    async def delete(self, item_id: str) -> bool:
        """Remove ``item_id`` from the index; ``False`` when the index call failed."""
        try:
            await self.index.delete(item_id)
        except Exception as e:
            logger.error("Vector index delete failed", item_id=item_id, error=str(e))
            self._record("delete", "error")
            return False

        self._record("delete", "ok")
        return True
