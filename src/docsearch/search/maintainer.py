"""Keeps each shard in sync with canonical records."""

import threading
from contextlib import ExitStack

import structlog

from docsearch.content.schemas import ContentType, IndexableRecord
from docsearch.content.source import ContentSource
from docsearch.errors import IndexWriteError, ReindexError
from docsearch.search.index import SearchIndex
from docsearch.search.schemas import IndexStats, ReindexCounts

logger = structlog.get_logger()

_LOCK_STRIPES = 64


class IndexMaintainer:
    """Single-record upserts and removals, and full rebuilds.

    Writes to the same record key are serialized through a striped lock so
    a delete racing an insert cannot leave two rows behind. Distinct keys
    usually land on distinct stripes and proceed in parallel. A rebuild
    holds every stripe, so single-record writes wait until it finishes;
    searches running during a rebuild may see a partially filled index.
    """

    def __init__(self, index: SearchIndex, source: ContentSource) -> None:
        """Initialize maintainer.

        Args:
            index: Index to write.
            source: Canonical read model used by rebuilds.
        """
        self._index = index
        self._source = source
        self._stripes = [threading.Lock() for _ in range(_LOCK_STRIPES)]
        self._rebuild_lock = threading.Lock()

    def _lock_for(self, content_type: ContentType, record_id: str) -> threading.Lock:
        return self._stripes[hash((content_type.value, record_id)) % _LOCK_STRIPES]

    def upsert(self, content_type: ContentType, record: IndexableRecord) -> None:
        """Index or re-index one record (delete-then-insert).

        Args:
            content_type: Shard the record belongs to.
            record: Current state of the canonical record.

        Raises:
            IndexWriteError: If the write fails.
        """
        record_id = record.record_id
        with self._lock_for(content_type, record_id):
            try:
                self._index.upsert(content_type, record)
            except Exception as e:
                logger.error(
                    "search_upsert_failed",
                    type=content_type.value,
                    id=record_id,
                    error=str(e),
                )
                raise IndexWriteError(content_type.value, record_id) from e

        logger.info("search_record_upserted", type=content_type.value, id=record_id)

    def remove(self, content_type: ContentType, record_id: str) -> None:
        """Remove one record from its shard. Absent keys are a no-op.

        Args:
            content_type: Shard the record belongs to.
            record_id: Key of the record.

        Raises:
            IndexWriteError: If the delete fails.
        """
        with self._lock_for(content_type, record_id):
            try:
                self._index.delete(content_type, record_id)
            except Exception as e:
                logger.error(
                    "search_remove_failed",
                    type=content_type.value,
                    id=record_id,
                    error=str(e),
                )
                raise IndexWriteError(content_type.value, record_id) from e

        logger.info("search_record_removed", type=content_type.value, id=record_id)

    def rebuild_all(self) -> ReindexCounts:
        """Clear every shard and re-derive it from the canonical records.

        Soft-deleted records are skipped by the content source. A failure
        aborts the rebuild; shards already cleared are not restored.

        Returns:
            Number of rows written per shard.

        Raises:
            ReindexError: If any step fails.
        """
        with self._rebuild_lock, ExitStack() as stack:
            for stripe in self._stripes:
                stack.enter_context(stripe)
            logger.info("search_rebuild_started")
            counts: dict[str, int] = {}
            try:
                self._index.clear_all()
                for content_type in ContentType:
                    counts[content_type.plural] = self._index.insert_many(
                        content_type, self._source.iter_records(content_type)
                    )
            except Exception as e:
                logger.error("search_rebuild_failed", completed=counts, error=str(e))
                raise ReindexError() from e

        result = ReindexCounts(**counts)
        logger.info("search_rebuild_completed", **result.model_dump())
        return result

    def get_index_stats(self) -> IndexStats:
        """Current row count of every shard.

        Returns:
            Per-shard counts and their sum.
        """
        counts = {ct.plural: self._index.count(ct) for ct in ContentType}
        return IndexStats(**counts, total_size=sum(counts.values()))
