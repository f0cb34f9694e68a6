"""
Domain errors raised by the match day services.

Routes translate these into HTTP responses; see ``HTTP_STATUS_BY_ERROR`` in
``matchday.api.routes``.
"""

from typing import Any, Optional


class MatchdayError(Exception):
    """Base class for all domain errors."""


class InvalidCredentialsError(MatchdayError):
    """Email/password pair does not match a registered user."""


class DuplicateEmailError(MatchdayError):
    """Email is already registered."""


class InsufficientPlayersError(MatchdayError):
    """A draw needs at least two selected players."""


class InvalidMatchStateError(MatchdayError):
    """Transition or event attempted outside the state that allows it."""


class PlayerNotInMatchError(MatchdayError):
    """Event references a player who is not on the given team's roster."""


class UnauthorizedError(MatchdayError):
    """Actor is not allowed to perform the mutation."""


class SelfRoleChangeError(UnauthorizedError):
    """An actor tried to change their own role."""


class ImmutableRecordError(UnauthorizedError):
    """Attempt to modify an archived history entry."""


class NotFoundError(MatchdayError):
    """Requested record does not exist."""


class StoreUnavailableError(MatchdayError):
    """The replicated store could not be reached. Safe to retry."""


class ConditionFailedError(MatchdayError):
    """
    A conditional patch was rejected because a guarded path no longer holds
    the expected value. Nothing was written.
    """

    def __init__(self, path: str, actual: Optional[Any] = None):
        super().__init__(f"Condition failed for '{path}' (current value: {actual!r})")
        self.path = path
        self.actual = actual
