"""Exception hierarchy shared by the bot commands and the HTTP API."""

from __future__ import annotations

from typing import Optional


class RegistryError(Exception):
    """Base class for every failure a registry operation can report."""


class PermissionDenied(RegistryError):
    """Raised when the caller lacks the role required for an operation."""


class DuplicateEntry(RegistryError):
    """Raised when an address is already registered for the owner."""


class EntryNotFound(RegistryError):
    """Raised when a replace targets an address the owner does not hold."""


class SlotLimitExceeded(RegistryError):
    """Raised when the owner already uses every slot on the list."""

    def __init__(self, message: str, *, used: int, limit: int):
        super().__init__(message)
        self.used = used
        self.limit = limit


class InvalidArgument(RegistryError):
    """Raised for malformed input such as a bad address or non-positive amount."""


class UpstreamUnavailable(RegistryError):
    """Raised when the document store cannot be reached."""


class InternalError(RegistryError):
    """Raised for unexpected failures."""


class InconsistentSlotLimits(InternalError):
    """Raised when an owner's legacy entries disagree on their slot limit."""

    def __init__(self, owner_id: str, list_kind: str, limits: Optional[set] = None):
        found = ", ".join(str(value) for value in sorted(limits or ()))
        super().__init__(f"Entries for {owner_id} on {list_kind} carry different slot limits: {found}")
        self.owner_id = owner_id
        self.list_kind = list_kind
        self.limits = limits or set()


__all__ = [
    "DuplicateEntry",
    "EntryNotFound",
    "InconsistentSlotLimits",
    "InternalError",
    "InvalidArgument",
    "PermissionDenied",
    "RegistryError",
    "SlotLimitExceeded",
    "UpstreamUnavailable",
]
