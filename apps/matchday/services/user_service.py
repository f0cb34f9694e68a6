"""
User service: registration, authentication, roles and profiles.

Public profiles live at ``users/<id>`` and replicate to every observer.
Password hashes live at ``credentials/<id>`` and email uniqueness is
reserved atomically through ``email-index/<sha256(email)>``; neither is
exposed to clients.
"""

import hashlib
import logging
import os
import uuid
from typing import Any, Dict, List, Optional

from matchday.services import auth_service
from matchday.services.access_service import GuardedStore, system_store
from matchday.services.errors import (
    ConditionFailedError,
    DuplicateEmailError,
    InvalidCredentialsError,
    NotFoundError,
    SelfRoleChangeError,
    UnauthorizedError,
)
from matchday.services.store import ReplicatedStore, equals
from matchday.utils.constants import (
    CREDENTIALS_PATH,
    EMAIL_INDEX_PATH,
    POSITIONS,
    ROLE_PRIVILEGED,
    ROLE_STANDARD,
    ROLES,
    SELF_SERVICE_FIELDS,
    USERS_PATH,
)
from matchday.utils.datetime_utils import now_ms
from matchday.utils.store_paths import join_path

logger = logging.getLogger(__name__)


def _email_key(email: str) -> str:
    return join_path(EMAIL_INDEX_PATH, hashlib.sha256(email.encode("utf-8")).hexdigest())


def privileged_emails() -> set:
    """Emails that register with the privileged role (``PRIVILEGED_EMAILS``, comma-separated)."""
    setting = os.getenv("PRIVILEGED_EMAILS", "")
    return {e.strip().lower() for e in setting.split(",") if e.strip()}


async def register(store: ReplicatedStore, name: str, email: str, password: str) -> Dict:
    """
    Register a new user.

    Args:
        store: Replicated store
        name: Display name (formatted to capitalized words)
        email: Email address (normalized to lowercase)
        password: Plain text password (stored as a bcrypt hash)

    Returns:
        The new user's public profile

    Raises:
        DuplicateEmailError: If the email is already registered
        ValueError: If name, email or password are invalid
    """
    email = auth_service.normalize_email(email)
    auth_service.validate_password(password)
    name = auth_service.format_name(name)
    if not name:
        raise ValueError("Name is required")

    user_id = uuid.uuid4().hex
    role = ROLE_PRIVILEGED if email in privileged_emails() else ROLE_STANDARD
    user = {
        "id": user_id,
        "name": name,
        "email": email,
        "role": role,
        "position": None,
        "photo_ref": None,
        "created_at": now_ms(),
    }
    email_key = _email_key(email)

    try:
        await system_store(store).patch(
            {
                join_path(USERS_PATH, user_id): user,
                join_path(CREDENTIALS_PATH, user_id): {
                    "password_hash": auth_service.hash_password(password)
                },
                email_key: {"user_id": user_id},
            },
            conditions={email_key: equals(None)},
        )
    except ConditionFailedError:
        raise DuplicateEmailError(f"Email {email} is already registered")

    logger.info(f"Registered user {user_id} with role {role}")
    return user


async def authenticate(store: ReplicatedStore, email: str, password: str) -> Dict:
    """
    Check an email/password pair.

    Returns:
        The user's public profile

    Raises:
        InvalidCredentialsError: Unknown email or wrong password
    """
    try:
        email = auth_service.normalize_email(email)
    except ValueError:
        raise InvalidCredentialsError("Email or password is incorrect")

    index = await store.read(_email_key(email))
    if not index:
        raise InvalidCredentialsError("Email or password is incorrect")

    user_id = index["user_id"]
    credentials = await store.read(join_path(CREDENTIALS_PATH, user_id)) or {}
    if not auth_service.verify_password(password, credentials.get("password_hash")):
        raise InvalidCredentialsError("Email or password is incorrect")

    user = await get_user(store, user_id)
    if user is None:
        raise InvalidCredentialsError("Email or password is incorrect")
    return user


async def get_user(store, user_id: str) -> Optional[Dict]:
    """Public profile of a user, or None."""
    return await store.read(join_path(USERS_PATH, user_id))


async def list_users(store) -> List[Dict]:
    """All registered users ordered by name."""
    users = await store.read(USERS_PATH) or {}
    return sorted(users.values(), key=lambda u: ((u.get("name") or "").lower(), u["id"]))


async def set_role(store: GuardedStore, target_id: str, role: str) -> Dict:
    """
    Change another user's role.

    Raises:
        SelfRoleChangeError: The actor targeted themself (whatever their role)
        UnauthorizedError: The actor is not privileged
        NotFoundError: Target user does not exist
        ValueError: Unknown role
    """
    if target_id == store.actor_id:
        raise SelfRoleChangeError("You cannot change your own role")
    if role not in ROLES:
        raise ValueError(f"Unknown role '{role}'")
    await store.require_privileged()

    try:
        await store.patch(
            {join_path(USERS_PATH, target_id, "role"): role},
            conditions={join_path(USERS_PATH, target_id, "id"): equals(target_id)},
        )
    except ConditionFailedError:
        raise NotFoundError(f"User {target_id} not found")

    logger.info(f"User {store.actor_id} set role of {target_id} to {role}")
    return await get_user(store, target_id)


async def update_profile(store: GuardedStore, user_id: str, fields: Dict[str, Any]) -> Dict:
    """
    Self-service profile update.

    Args:
        store: Store guarded for the acting user
        user_id: Profile to update (must be the actor)
        fields: Any of ``name``, ``position``, ``photo_ref``; a None position clears it

    Returns:
        The updated profile

    Raises:
        UnauthorizedError: Updating someone else's profile
        NotFoundError: Profile does not exist
        ValueError: Unknown field, empty name or unknown position
    """
    if user_id != store.actor_id:
        raise UnauthorizedError("You can only update your own profile")

    unknown = set(fields) - set(SELF_SERVICE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
    if not fields:
        raise ValueError("No fields provided to update")

    updates = {}
    if "name" in fields:
        name = auth_service.format_name(fields["name"] or "")
        if not name:
            raise ValueError("Name is required")
        updates[join_path(USERS_PATH, user_id, "name")] = name
    if "position" in fields:
        position = (fields["position"] or "").strip().lower() or None
        if position is not None and position not in POSITIONS:
            raise ValueError(f"Position must be one of: {', '.join(POSITIONS)}")
        updates[join_path(USERS_PATH, user_id, "position")] = position
    if "photo_ref" in fields:
        updates[join_path(USERS_PATH, user_id, "photo_ref")] = fields["photo_ref"]

    try:
        await store.patch(
            updates,
            conditions={join_path(USERS_PATH, user_id, "id"): equals(user_id)},
        )
    except ConditionFailedError:
        raise NotFoundError(f"User {user_id} not found")

    return await get_user(store, user_id)
