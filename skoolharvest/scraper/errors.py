from __future__ import annotations

from typing import Iterable, Optional

from .error_codes import ErrorCode


class HarvestError(Exception):
    """Base class for failures raised by the harvester."""

    error_code: str = ErrorCode.INTERNAL

    def __init__(self, message: str) -> None:
        super().__init__(message)

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class AuthSetupError(HarvestError):
    """The session credential could not be turned into browser cookies."""

    error_code = ErrorCode.AUTH_SETUP


class NoItemsFoundError(HarvestError):
    """None of the candidate item locators matched on the first listing page."""

    error_code = ErrorCode.NO_ITEMS_FOUND

    def __init__(self, message: str, *, candidates: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.candidates = tuple(candidates)


class PersistenceError(HarvestError):
    error_code = ErrorCode.PERSISTENCE

    def __init__(self, kind: str, entity_id: Optional[str], cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to persist {kind} id={entity_id!r}{detail}")
        self.kind = kind
        self.entity_id = entity_id
        self.cause = cause


class NavigationError(HarvestError):
    """Both the primary and the fallback navigation attempts failed."""

    error_code = ErrorCode.NAVIGATION

    def __init__(self, message: str, *, url: Optional[str] = None, label: str = "") -> None:
        super().__init__(message)
        self.url = url
        self.label = label


__all__ = [
    "HarvestError",
    "AuthSetupError",
    "NoItemsFoundError",
    "PersistenceError",
    "NavigationError",
]
