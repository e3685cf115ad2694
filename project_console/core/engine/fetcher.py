"""
BATCHED FETCHER - Query large id sets without blowing request limits

Purpose:
    1. Split an id list into fixed-size chunks (IN clauses have a size limit)
    2. Follow continuation cursors, up to a fixed number of pages per chunk
    3. Keep going when one chunk fails, and say so in the result
    4. Stop cleanly when the request's deadline runs out

Results are merged into a dict keyed by record id (or by group value for
aggregate rows), so chunk completion order never matters and a record
returned by two chunks appears once.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Set

from project_console.core.config import settings
from project_console.core.engine import soql
from project_console.core.engine.deadline import DeadlineBudget
from project_console.core.engine.errors import EngineError, PartialFailure
from project_console.core.engine.resolver import RelationshipCandidate, RelationshipKind

logger = logging.getLogger(__name__)


# ============================================================================
# RECORD TYPES
# ============================================================================


@dataclass
class RemoteRecord:
    id: Optional[str]
    fields: Dict[str, Any]

    @classmethod
    def from_api(cls, raw: Dict[str, Any], key_field: str = "Id") -> "RemoteRecord":
        """
        Build a record from a query row.

        The transport 'attributes' entry is dropped and resolved references
        (nested dicts) become nested records.
        """
        fields = {}
        for name, value in raw.items():
            if name == "attributes":
                continue
            if isinstance(value, dict) and "records" in value:
                fields[name] = [cls.from_api(r) for r in value.get("records") or []]
            elif isinstance(value, dict):
                fields[name] = cls.from_api(value)
            else:
                fields[name] = value
        return cls(id=raw.get(key_field), fields=fields)

    def get(self, path: str, default: Any = None) -> Any:
        """Read a field, following dotted paths into nested records."""
        current: Any = self
        for part in path.split("."):
            if not isinstance(current, RemoteRecord):
                return default
            current = current.fields.get(part)
            if current is None:
                return default
        return current


@dataclass
class BatchCursor:
    next_page_token: Optional[str] = None

    @classmethod
    def from_page(cls, page: Dict[str, Any]) -> "BatchCursor":
        if page.get("done", True):
            return cls()
        return cls(next_page_token=page.get("nextRecordsUrl"))

    @property
    def exhausted(self) -> bool:
        return not self.next_page_token


@dataclass
class FetchResult:
    records: Dict[str, RemoteRecord] = field(default_factory=dict)
    batch_count: int = 0
    succeeded_batches: List[int] = field(default_factory=list)
    failed_batches: Dict[int, str] = field(default_factory=dict)
    timed_out: bool = False
    truncated: bool = False

    @property
    def partial(self) -> bool:
        return bool(self.failed_batches)

    def values(self) -> List[RemoteRecord]:
        return list(self.records.values())

    def add(self, record: RemoteRecord) -> None:
        if record.id is not None:
            self.records[record.id] = record

    def raise_for_failures(self) -> None:
        """Raise PartialFailure if any batch failed."""
        if self.failed_batches:
            raise PartialFailure(sorted(self.succeeded_batches), dict(self.failed_batches))


@dataclass
class ChildIndex:
    """parent id -> child records, plus how complete the lookup was."""

    children: Dict[str, List[RemoteRecord]] = field(default_factory=dict)
    partial: bool = False
    timed_out: bool = False
    _seen: Dict[str, Set[str]] = field(default_factory=dict, repr=False)

    def add(self, parent_id: str, record: RemoteRecord) -> None:
        bucket = self.children.setdefault(parent_id, [])
        if record.id is None:
            bucket.append(record)
            return
        seen = self._seen.setdefault(parent_id, set())
        if record.id not in seen:
            seen.add(record.id)
            bucket.append(record)

    def get(self, parent_id: str) -> List[RemoteRecord]:
        return self.children.get(parent_id, [])

    def child_ids(self) -> List[str]:
        ids = []
        for records in self.children.values():
            ids.extend(r.id for r in records if r.id)
        return list(dict.fromkeys(ids))

    def absorb(self, result: FetchResult) -> None:
        self.partial = self.partial or result.partial
        self.timed_out = self.timed_out or result.timed_out


# ============================================================================
# FETCHER
# ============================================================================


class BatchedFetcher:
    """
    Batched, bounded reads against the remote store for one request.

    Args:
        store: remote store client (query / query_more)
        deadline: request budget, checked before every chunk and page
        concurrency: chunks allowed in flight at once
        max_pages: continuation pages followed per chunk
    """

    def __init__(
        self,
        store,
        deadline: Optional[DeadlineBudget] = None,
        concurrency: Optional[int] = None,
        max_pages: Optional[int] = None,
    ):
        self.store = store
        self.deadline = deadline
        self.concurrency = max(1, concurrency or settings.FETCH_CONCURRENCY)
        self.max_pages = max_pages or settings.MAX_PAGES_PER_BATCH

    def _expired(self) -> bool:
        return self.deadline is not None and self.deadline.expired()

    async def _pages(self, query: str, result: FetchResult, label: str) -> AsyncIterator[List[dict]]:
        """Yield raw record pages for one query, stopping at the page bound or deadline."""
        page = await self.store.query(query)
        pages = 1
        yield page.get("records") or []

        cursor = BatchCursor.from_page(page)
        while not cursor.exhausted:
            if pages >= self.max_pages:
                logger.warning(f"{label}: stopped after {pages} pages, results truncated")
                result.truncated = True
                return
            if self._expired():
                logger.warning(f"{label}: deadline reached during pagination")
                result.timed_out = True
                return
            page = await self.store.query_more(cursor.next_page_token)
            pages += 1
            yield page.get("records") or []
            cursor = BatchCursor.from_page(page)

    @staticmethod
    def _chunk(ids: Sequence[str], batch_size: int) -> List[List[str]]:
        unique = list(dict.fromkeys(i for i in ids if i))
        for record_id in unique:
            soql.validate_record_id(record_id)
        return [unique[i : i + batch_size] for i in range(0, len(unique), batch_size)]

    @staticmethod
    def _chunk_query(
        object_type: str,
        chunk: List[str],
        fields: Sequence[str],
        filter_expr: Optional[str],
        id_field: str,
        group_by: Optional[str],
    ) -> str:
        where = [f"{soql.validate_identifier(id_field)} IN ({soql.quote_ids(chunk)})"]
        if filter_expr:
            where.append(filter_expr)
        return soql.build_select(object_type, fields, where=where, group_by=group_by)

    async def fetch_by_ids(
        self,
        object_type: str,
        ids: Sequence[str],
        fields: Sequence[str],
        filter_expr: Optional[str] = None,
        batch_size: Optional[int] = None,
        id_field: str = "Id",
        group_by: Optional[str] = None,
        key_field: str = "Id",
    ) -> FetchResult:
        """
        Fetch records of object_type whose id_field is in ids.

        Args:
            object_type: object to query
            ids: ids to match against id_field (deduplicated, validated)
            fields: fields to select
            filter_expr: extra WHERE condition ANDed onto every chunk
            batch_size: ids per chunk
            id_field: field matched by the IN clause
            group_by: GROUP BY field for aggregate queries
            key_field: row field used as the merge key ("Id", or the
                group alias for aggregate rows)

        Returns:
            FetchResult; failed chunks are listed in failed_batches (1-based
            chunk numbers) and timed_out is set if the deadline ran out.

        Example:
            450 ids, batch_size=200 -> 3 queries of 200, 200 and 50 ids
        """
        batch_size = batch_size or settings.DEFAULT_BATCH_SIZE
        chunks = self._chunk(ids, batch_size)
        result = FetchResult(batch_count=len(chunks))
        if not chunks:
            return result

        semaphore = asyncio.Semaphore(self.concurrency)

        async def run_chunk(number: int, chunk: List[str]):
            async with semaphore:
                label = f"{object_type} batch {number}/{len(chunks)}"
                if self._expired():
                    logger.warning(f"{label}: skipped, deadline reached")
                    result.timed_out = True
                    return

                query = self._chunk_query(object_type, chunk, fields, filter_expr, id_field, group_by)
                fetched = 0
                try:
                    async for rows in self._pages(query, result, label):
                        for row in rows:
                            result.add(RemoteRecord.from_api(row, key_field))
                        fetched += len(rows)
                except EngineError as e:
                    logger.warning(f"{label} failed: {e}")
                    result.failed_batches[number] = str(e)
                    return

                result.succeeded_batches.append(number)
                logger.info(f"{label}: {fetched} rows")

        await asyncio.gather(*(run_chunk(n, c) for n, c in enumerate(chunks, start=1)))
        result.succeeded_batches.sort()
        return result

    async def iter_by_ids(
        self,
        object_type: str,
        ids: Sequence[str],
        fields: Sequence[str],
        filter_expr: Optional[str] = None,
        batch_size: Optional[int] = None,
        id_field: str = "Id",
        result: Optional[FetchResult] = None,
    ) -> AsyncIterator[RemoteRecord]:
        """
        Lazy form of fetch_by_ids: yield records chunk by chunk.

        Chunks run one after another. Each call starts over from the first
        chunk. Errors propagate to the consumer.

        Pass a FetchResult as `result` to learn how the stream ended: its
        timed_out and truncated flags are set when the deadline or the page
        bound cut the stream short, and succeeded_batches lists the chunks
        that were fully read. Records are not stored on it.
        """
        batch_size = batch_size or settings.DEFAULT_BATCH_SIZE
        chunks = self._chunk(ids, batch_size)
        status = result if result is not None else FetchResult()
        status.batch_count = len(chunks)
        seen = set()
        for number, chunk in enumerate(chunks, start=1):
            if self._expired():
                logger.warning(f"{object_type}: iteration stopped at batch {number}, deadline reached")
                status.timed_out = True
                return
            query = self._chunk_query(object_type, chunk, fields, filter_expr, id_field, None)
            async for rows in self._pages(query, status, f"{object_type} batch {number}"):
                for row in rows:
                    record = RemoteRecord.from_api(row)
                    if record.id in seen:
                        continue
                    seen.add(record.id)
                    yield record
            if status.timed_out:
                return
            status.succeeded_batches.append(number)

    async def fetch_all(self, query: str, key_field: str = "Id") -> FetchResult:
        """Drain a single query (e.g. a parent list) under the page bound and deadline."""
        result = FetchResult(batch_count=1)
        if self._expired():
            result.timed_out = True
            return result
        async for rows in self._pages(query, result, "fetch_all"):
            for row in rows:
                result.add(RemoteRecord.from_api(row, key_field))
        result.succeeded_batches.append(1)
        return result

    async def fetch_related(
        self,
        candidate: RelationshipCandidate,
        parent_object: str,
        parent_ids: Sequence[str],
        child_object: str,
        child_fields: Sequence[str],
        filter_expr: Optional[str] = None,
        batch_size: Optional[int] = None,
    ) -> ChildIndex:
        """
        Follow a resolved relationship from parents to their children.

        DIRECT:   query the child by its reference field
        REVERSE:  read the parents' reference field, then fetch children by id
        JUNCTION: read link rows, then fetch children by id

        Returns:
            ChildIndex keyed by parent id
        """
        index = ChildIndex()
        fields = list(dict.fromkeys(["Id", *child_fields]))

        if candidate.kind == RelationshipKind.DIRECT:
            link = candidate.target_field
            result = await self.fetch_by_ids(
                child_object,
                parent_ids,
                list(dict.fromkeys([*fields, link])),
                filter_expr=filter_expr,
                batch_size=batch_size,
                id_field=link,
            )
            index.absorb(result)
            for child in result.values():
                parent_id = child.get(link)
                if parent_id:
                    index.add(parent_id, child)
            return index

        # REVERSE and JUNCTION both resolve child ids first
        if candidate.kind == RelationshipKind.REVERSE:
            link_result = await self.fetch_by_ids(
                parent_object,
                parent_ids,
                ["Id", candidate.source_field],
                batch_size=batch_size,
            )
            pairs = [(r.id, r.get(candidate.source_field)) for r in link_result.values()]
        else:
            link_result = await self.fetch_by_ids(
                candidate.junction_object,
                parent_ids,
                ["Id", candidate.source_field, candidate.target_field],
                batch_size=batch_size,
                id_field=candidate.source_field,
            )
            pairs = [
                (r.get(candidate.source_field), r.get(candidate.target_field))
                for r in link_result.values()
            ]
        index.absorb(link_result)

        parents_by_child: Dict[str, List[str]] = {}
        for parent_id, child_id in pairs:
            if parent_id and child_id:
                parents_by_child.setdefault(child_id, []).append(parent_id)

        if not parents_by_child:
            return index

        child_result = await self.fetch_by_ids(
            child_object,
            list(parents_by_child),
            fields,
            filter_expr=filter_expr,
            batch_size=batch_size,
        )
        index.absorb(child_result)
        for child in child_result.values():
            for parent_id in parents_by_child.get(child.id, []):
                index.add(parent_id, child)
        return index
