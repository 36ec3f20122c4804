"""Dataclasses and shared type definitions for the wallet registry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


WHITELIST = "whitelist"
FREEMINT = "freemint"
LIST_KINDS: Tuple[str, ...] = (WHITELIST, FREEMINT)

DEFAULT_MAX_SLOTS = 1

EntryKey = Tuple[str, str, str]
OwnerKey = Tuple[str, str]


@dataclass(frozen=True)
class Entry:
    owner_id: str
    address: str
    list_kind: str = WHITELIST
    max_slots: int = DEFAULT_MAX_SLOTS
    via_code: bool = False

    @property
    def key(self) -> EntryKey:
        return (self.owner_id, self.address, self.list_kind)


@dataclass(frozen=True)
class SlotLimit:
    """Authoritative slot ceiling for one owner on one list."""

    owner_id: str
    list_kind: str
    max_slots: int
    used: int = 0

    @property
    def key(self) -> OwnerKey:
        return (self.owner_id, self.list_kind)


@dataclass(frozen=True)
class SlotUsage:
    used: int
    limit: int


@dataclass(frozen=True)
class LimitChange:
    owner_id: str
    list_kind: str
    old_limit: int
    new_limit: int


__all__ = [
    "DEFAULT_MAX_SLOTS",
    "Entry",
    "EntryKey",
    "FREEMINT",
    "LIST_KINDS",
    "LimitChange",
    "OwnerKey",
    "SlotLimit",
    "SlotUsage",
    "WHITELIST",
]
