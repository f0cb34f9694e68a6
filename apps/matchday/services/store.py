"""
Replicated store: keyed, versioned JSON documents with atomic multi-path
updates and push notifications to subscribers.

Paths look like ``users/<id>/name`` or ``current-match/score/team1``. The
first one (collections) or two segments name the document; the rest address
a field inside it. Every committed write bumps the document version and is
published through the ``PubSubBroker``.

Usage:
    store = get_replicated_store()
    await store.patch(
        {"current-match/score/team1": increment(1),
         "current-match/events": append(event)},
        conditions={"current-match/status": equals("active")},
        idempotency_key=f"event:{event['id']}",
    )
"""

import asyncio
import copy
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from matchday.database import db
from matchday.database.models import StoreDocument, StoreIdempotencyRecord
from matchday.services.errors import ConditionFailedError, StoreUnavailableError
from matchday.services.pubsub_broker import PubSubBroker, Subscription
from matchday.utils.datetime_utils import now_ms, utcnow
from matchday.utils.store_paths import (
    delete_in,
    document_key,
    get_in,
    is_collection_root,
    join_path,
    set_in,
    split_path,
)

logger = logging.getLogger(__name__)

STORE_WRITE_RETRIES = int(os.getenv("STORE_WRITE_RETRIES", "3"))


@dataclass(frozen=True)
class Increment:
    """Add ``amount`` to the committed number at a path (missing counts as 0)."""

    amount: int = 1


@dataclass(frozen=True)
class Append:
    """Append ``value`` to the committed list at a path (missing counts as [])."""

    value: Any


def increment(amount: int = 1) -> Increment:
    return Increment(amount)


def append(value: Any) -> Append:
    return Append(value)


class Condition:
    """Predicate over the committed value of a path, checked inside the write transaction."""

    def __init__(self, allowed: Tuple[Any, ...]):
        self.allowed = allowed

    def check(self, actual: Any) -> bool:
        return any(actual == value for value in self.allowed)

    def __repr__(self) -> str:
        return f"Condition(one_of={self.allowed!r})"


def equals(value: Any) -> Condition:
    return Condition((value,))


def one_of(*values: Any) -> Condition:
    return Condition(values)


def generate_child_key() -> str:
    """Unique key that sorts by creation time."""
    return f"{now_ms():012x}{uuid.uuid4().hex[:12]}"


class _WriteConflict(Exception):
    """Another writer committed the same document first."""


def _apply_update(value: Any, fields: List[str], new: Any) -> Any:
    if new is None:
        return delete_in(value, fields)
    if isinstance(new, Increment):
        current = get_in(value, fields) if fields else value
        if current is None:
            current = 0
        if not isinstance(current, (int, float)) or isinstance(current, bool):
            raise ValueError(f"Cannot increment non-numeric value at '{'/'.join(fields)}'")
        return set_in(value, fields, current + new.amount)
    if isinstance(new, Append):
        current = get_in(value, fields) if fields else value
        if current is None:
            current = []
        if not isinstance(current, list):
            raise ValueError(f"Cannot append to non-list value at '{'/'.join(fields)}'")
        return set_in(value, fields, current + [copy.deepcopy(new.value)])
    return set_in(value, fields, copy.deepcopy(new))


class ReplicatedStore:
    """Versioned document store over SQLAlchemy with pub/sub change notifications."""

    def __init__(self, session_factory: async_sessionmaker, broker: Optional[PubSubBroker] = None):
        self._session_factory = session_factory
        self.broker = broker or PubSubBroker()
        # Serializes writers of this process; other processes are handled by version checks
        self._write_lock = asyncio.Lock()

    async def read(self, path: str) -> Any:
        """
        Point-in-time fetch of a path.

        Returns:
            The value, ``{child_id: value}`` for a collection root, or None if absent
        """
        parts = split_path(path)
        try:
            async with self._session_factory() as session:
                if is_collection_root(parts):
                    result = await session.execute(
                        select(StoreDocument)
                        .where(StoreDocument.key.like(f"{parts[0]}/%"))
                        .order_by(StoreDocument.key)
                    )
                    children = {
                        row.key.split("/", 1)[1]: copy.deepcopy(row.value)
                        for row in result.scalars()
                    }
                    return children or None

                key, fields = document_key(parts)
                row = await session.get(StoreDocument, key)
                if row is None:
                    return None
                return copy.deepcopy(get_in(row.value, fields))
        except (DBAPIError, OSError) as e:
            raise StoreUnavailableError(f"Store read failed for '{path}': {e}") from e

    def subscribe(self, path: str) -> Subscription:
        """Live stream of ``path``; the first item is its current value."""
        return self.broker.subscribe(path, self.read)

    async def write(self, path: str, value: Any, idempotency_key: Optional[str] = None) -> None:
        """Overwrite the value at ``path``."""
        await self.patch({path: value}, idempotency_key=idempotency_key)

    async def remove(self, path: str, idempotency_key: Optional[str] = None) -> None:
        await self.patch({path: None}, idempotency_key=idempotency_key)

    async def append_child(
        self, path: str, value: Any, idempotency_key: Optional[str] = None
    ) -> str:
        """
        Store ``value`` under a freshly generated child key of ``path``.

        Returns:
            The generated key. Replaying an idempotency key returns the key
            generated the first time.
        """
        split_path(path)
        key = generate_child_key()
        return await self._commit({join_path(path, key): value}, {}, idempotency_key, result=key)

    async def patch(
        self,
        updates: Dict[str, Any],
        conditions: Optional[Dict[str, Condition]] = None,
        idempotency_key: Optional[str] = None,
    ) -> None:
        """
        Apply several path updates atomically.

        A None value removes the path; ``increment``/``append`` sentinels are
        evaluated against the committed value. All ``conditions`` are checked
        in the same transaction, and an existing document read only for a
        condition is pinned to the version checked, so a concurrent change to
        it fails this patch instead of slipping past. A condition on an absent
        document cannot be pinned; a writer creating it concurrently is not
        detected.

        Raises:
            ConditionFailedError: A condition did not hold; nothing was written
            StoreUnavailableError: The store could not be reached after retries
        """
        await self._commit(updates, conditions or {}, idempotency_key)

    async def purge_idempotency_records(
        self, cutoff: datetime, keep_prefixes: Iterable[str] = ()
    ) -> int:
        """
        Delete idempotency records created before ``cutoff``.

        A mutation replayed after its record is gone applies again.

        Args:
            cutoff: Records older than this are deleted
            keep_prefixes: Keys starting with any of these are never deleted

        Returns:
            Number of records deleted
        """
        stmt = delete(StoreIdempotencyRecord).where(StoreIdempotencyRecord.created_at < cutoff)
        for prefix in keep_prefixes:
            stmt = stmt.where(~StoreIdempotencyRecord.key.startswith(prefix))
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    outcome = await session.execute(stmt)
        except (DBAPIError, OSError) as e:
            raise StoreUnavailableError(f"Idempotency purge failed: {e}") from e
        return outcome.rowcount

    async def _commit(
        self,
        updates: Dict[str, Any],
        conditions: Dict[str, Condition],
        idempotency_key: Optional[str],
        result: Any = None,
    ) -> Any:
        if not updates:
            raise ValueError("Patch must contain at least one update")

        plan: Dict[str, List[Tuple[List[str], Any]]] = {}
        for path, value in updates.items():
            parts = split_path(path)
            if is_collection_root(parts):
                raise ValueError(f"Cannot write the whole '{parts[0]}' collection")
            key, fields = document_key(parts)
            plan.setdefault(key, []).append((fields, value))

        try:
            result, changed = await self._commit_with_retry(plan, conditions, idempotency_key, result)
        except _WriteConflict as e:
            raise StoreUnavailableError(f"Write contention on {e}") from e

        if changed:
            await self.broker.publish(changed)
        return result

    @retry(
        retry=retry_if_exception_type((StoreUnavailableError, _WriteConflict)),
        stop=stop_after_attempt(STORE_WRITE_RETRIES),
        wait=wait_random_exponential(multiplier=0.05, max=1),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _commit_with_retry(
        self,
        plan: Dict[str, List[Tuple[List[str], Any]]],
        conditions: Dict[str, Condition],
        idempotency_key: Optional[str],
        result: Any,
    ) -> Tuple[Any, List[str]]:
        condition_paths = {path: document_key(split_path(path)) for path in conditions}
        keys = set(plan) | {key for key, _ in condition_paths.values()}

        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        if idempotency_key is not None:
                            record = await session.get(StoreIdempotencyRecord, idempotency_key)
                            if record is not None:
                                logger.debug(f"Mutation '{idempotency_key}' already applied")
                                return record.result, []

                        rows = await session.execute(
                            select(StoreDocument).where(StoreDocument.key.in_(keys))
                        )
                        docs = {row.key: row for row in rows.scalars()}

                        for path, condition in conditions.items():
                            key, fields = condition_paths[path]
                            row = docs.get(key)
                            actual = get_in(row.value, fields) if row is not None else None
                            if not condition.check(actual):
                                raise ConditionFailedError(path, actual)

                        # Pin documents read only for conditions to the version checked
                        for key in keys - set(plan):
                            row = docs.get(key)
                            if row is None:
                                continue
                            outcome = await session.execute(
                                update(StoreDocument)
                                .where(
                                    StoreDocument.key == key,
                                    StoreDocument.version == row.version,
                                )
                                .values(version=row.version)
                            )
                            if outcome.rowcount != 1:
                                raise _WriteConflict(key)

                        changed = []
                        for key, field_updates in plan.items():
                            row = docs.get(key)
                            value = copy.deepcopy(row.value) if row is not None else None
                            for fields, new in field_updates:
                                value = _apply_update(value, fields, new)
                            if value == {}:
                                value = None

                            if row is None and value is None:
                                continue
                            if value is None:
                                outcome = await session.execute(
                                    delete(StoreDocument).where(
                                        StoreDocument.key == key,
                                        StoreDocument.version == row.version,
                                    )
                                )
                                if outcome.rowcount != 1:
                                    raise _WriteConflict(key)
                            elif row is None:
                                session.add(StoreDocument(key=key, value=value, version=1))
                                await session.flush()
                            else:
                                outcome = await session.execute(
                                    update(StoreDocument)
                                    .where(
                                        StoreDocument.key == key,
                                        StoreDocument.version == row.version,
                                    )
                                    .values(value=value, version=row.version + 1)
                                )
                                if outcome.rowcount != 1:
                                    raise _WriteConflict(key)
                            changed.append(key)

                        if idempotency_key is not None:
                            session.add(
                                StoreIdempotencyRecord(key=idempotency_key, result=result, created_at=utcnow())
                            )
                            await session.flush()
            except IntegrityError as e:
                raise _WriteConflict(", ".join(sorted(keys))) from e
            except (DBAPIError, OSError) as e:
                raise StoreUnavailableError(f"Store write failed: {e}") from e

        return result, changed


# Global store instance
_replicated_store: Optional[ReplicatedStore] = None


def get_replicated_store() -> ReplicatedStore:
    """
    Get the global replicated store instance.

    Returns:
        ReplicatedStore bound to the application database
    """
    global _replicated_store
    if _replicated_store is None:
        _replicated_store = ReplicatedStore(db.AsyncSessionLocal)
    return _replicated_store
