"""
Access layer in front of every mutating store operation.

Services never write to the ``ReplicatedStore`` directly; they receive a
``GuardedStore`` bound to the acting user. Reads and subscriptions pass
through, mutations are checked against the policy below and rejected with
``UnauthorizedError`` before anything is written:

- ``users/<self>/name|position|photo_ref``: the actor themself
- ``users/<self>/role``: nobody (``SelfRoleChangeError``)
- existing ``history/...`` entries: nobody (``ImmutableRecordError``)
- everything else: actors whose role in the store is currently ``privileged``
"""

import logging
from typing import Any, Dict, Iterable, Optional

from matchday.services.errors import (
    ImmutableRecordError,
    SelfRoleChangeError,
    UnauthorizedError,
)
from matchday.services.pubsub_broker import Subscription
from matchday.services.store import Condition, ReplicatedStore
from matchday.utils.constants import (
    HISTORY_PATH,
    ROLE_PRIVILEGED,
    SELF_SERVICE_FIELDS,
    USERS_PATH,
)
from matchday.utils.store_paths import join_path, split_path

logger = logging.getLogger(__name__)

# Actor id used by registration and the countdown scheduler
SYSTEM_ACTOR = "__system__"


class GuardedStore:
    """A ``ReplicatedStore`` view that enforces the access policy for one actor."""

    def __init__(self, store: ReplicatedStore, actor_id: str):
        self.store = store
        self.actor_id = actor_id

    @property
    def is_system(self) -> bool:
        return self.actor_id == SYSTEM_ACTOR

    async def read(self, path: str) -> Any:
        return await self.store.read(path)

    def subscribe(self, path: str) -> Subscription:
        return self.store.subscribe(path)

    async def is_privileged(self) -> bool:
        """Role is read from the store on every call; a demoted actor loses access immediately."""
        if self.is_system:
            return True
        role = await self.store.read(join_path(USERS_PATH, self.actor_id, "role"))
        return role == ROLE_PRIVILEGED

    async def require_privileged(self) -> None:
        if not await self.is_privileged():
            logger.info(f"Rejected privileged operation by {self.actor_id}")
            raise UnauthorizedError("Privileged role required")

    async def check_paths(self, paths: Iterable[str]) -> None:
        """
        Raise if the actor may not mutate any of ``paths``.

        Raises:
            SelfRoleChangeError: Path is the actor's own role
            ImmutableRecordError: Path is inside an archived history entry
            UnauthorizedError: Path needs the privileged role
        """
        needs_privilege = False
        for path in paths:
            parts = split_path(path)
            if parts[0] == HISTORY_PATH:
                raise ImmutableRecordError("History entries cannot be modified")
            if parts[0] == USERS_PATH and len(parts) >= 2 and parts[1] == self.actor_id:
                if len(parts) == 2:
                    # Whole-document writes could carry the role along
                    raise SelfRoleChangeError("Update your profile one field at a time")
                if parts[2] == "role":
                    raise SelfRoleChangeError("You cannot change your own role")
                if len(parts) == 3 and parts[2] in SELF_SERVICE_FIELDS:
                    continue
            needs_privilege = True
        if needs_privilege:
            await self.require_privileged()

    async def write(self, path: str, value: Any, idempotency_key: Optional[str] = None) -> None:
        await self.check_paths([path])
        await self.store.write(path, value, idempotency_key=idempotency_key)

    async def remove(self, path: str, idempotency_key: Optional[str] = None) -> None:
        await self.check_paths([path])
        await self.store.remove(path, idempotency_key=idempotency_key)

    async def patch(
        self,
        updates: Dict[str, Any],
        conditions: Optional[Dict[str, Condition]] = None,
        idempotency_key: Optional[str] = None,
    ) -> None:
        await self.check_paths(updates.keys())
        await self.store.patch(updates, conditions=conditions, idempotency_key=idempotency_key)

    async def append_child(
        self, path: str, value: Any, idempotency_key: Optional[str] = None
    ) -> str:
        """
        Raises:
            ImmutableRecordError: ``path`` is inside an existing history entry
            SelfRoleChangeError: ``path`` is inside the actor's own role
            UnauthorizedError: Actor is not privileged
        """
        if split_path(path) == [HISTORY_PATH]:
            # New entries are the only way into history
            await self.require_privileged()
        else:
            # Same policy as writing the generated child directly
            await self.check_paths([join_path(path, "_")])
        return await self.store.append_child(path, value, idempotency_key=idempotency_key)


def guard(store: ReplicatedStore, actor_id: str) -> GuardedStore:
    return GuardedStore(store, actor_id)


def system_store(store: ReplicatedStore) -> GuardedStore:
    """Store view for internal actors (registration, countdown scheduler)."""
    return GuardedStore(store, SYSTEM_ACTOR)
