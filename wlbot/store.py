"""Registry storage interface and the in-process backend."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Dict, List, Optional

from .errors import DuplicateEntry
from .models import DEFAULT_MAX_SLOTS, Entry, EntryKey, OwnerKey, SlotLimit

logger = logging.getLogger("wlbot.store")


class RegistryStore:
    """Storage primitives the slot accountant is built on.

    Entries returned by the read methods carry the owner's current slot
    limit in ``max_slots``: the limit record when one exists, otherwise the
    value stored on the entry itself (older data), otherwise the default.

    ``reserve_slot`` and ``add_to_limit`` must be atomic with respect to
    concurrent callers; everything else may be a plain read or write.
    """

    def __init__(self, *, default_max_slots: int = DEFAULT_MAX_SLOTS):
        self.default_max_slots = default_max_slots

    async def ping(self) -> None:
        return None

    async def ensure_indexes(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def find_entries(self, owner_id: str, list_kind: str) -> List[Entry]:
        raise NotImplementedError

    async def find_entry(self, owner_id: str, address: str, list_kind: str) -> Optional[Entry]:
        raise NotImplementedError

    async def address_exists(self, address: str, list_kind: str) -> bool:
        raise NotImplementedError

    async def list_entries(self, list_kind: Optional[str] = None) -> List[Entry]:
        raise NotImplementedError

    async def insert_entry(self, entry: Entry) -> None:
        """Insert ``entry``; raises ``DuplicateEntry`` on a key collision."""
        raise NotImplementedError

    async def replace_address(self, owner_id: str, old_address: str, new_address: str, list_kind: str) -> bool:
        """Swap an address in place. Returns ``False`` when nothing matched."""
        raise NotImplementedError

    async def get_limit(self, owner_id: str, list_kind: str) -> Optional[SlotLimit]:
        raise NotImplementedError

    async def create_limit(self, limit: SlotLimit) -> SlotLimit:
        """Insert ``limit`` unless a record exists; returns the stored record."""
        raise NotImplementedError

    async def reserve_slot(self, owner_id: str, list_kind: str, *, enforce: bool = True) -> Optional[SlotLimit]:
        """Book one slot and return the updated record.

        With ``enforce`` the booking only happens while ``used < max_slots``;
        ``None`` means the owner is full.
        """
        raise NotImplementedError

    async def release_slot(self, owner_id: str, list_kind: str) -> None:
        raise NotImplementedError

    async def add_to_limit(self, owner_id: str, list_kind: str, delta: int) -> Optional[SlotLimit]:
        """Raise ``max_slots`` by ``delta``; returns the record as it was before."""
        raise NotImplementedError


class MemoryRegistryStore(RegistryStore):
    """Dictionary-backed store used by tests and `WLBOT_STORE=memory` runs."""

    def __init__(self, *, default_max_slots: int = DEFAULT_MAX_SLOTS):
        super().__init__(default_max_slots=default_max_slots)
        self._entries: Dict[EntryKey, Entry] = {}
        self._limits: Dict[OwnerKey, SlotLimit] = {}
        self._lock = asyncio.Lock()

    def seed_entry(self, entry: Entry) -> None:
        """Store an entry as-is, without booking a slot (imports, fixtures)."""
        self._entries[entry.key] = entry

    def _hydrate(self, entry: Entry) -> Entry:
        limit = self._limits.get((entry.owner_id, entry.list_kind))
        if limit is None:
            return entry
        return replace(entry, max_slots=limit.max_slots)

    async def find_entries(self, owner_id: str, list_kind: str) -> List[Entry]:
        return [
            self._hydrate(entry)
            for entry in self._entries.values()
            if entry.owner_id == owner_id and entry.list_kind == list_kind
        ]

    async def find_entry(self, owner_id: str, address: str, list_kind: str) -> Optional[Entry]:
        entry = self._entries.get((owner_id, address, list_kind))
        return self._hydrate(entry) if entry else None

    async def address_exists(self, address: str, list_kind: str) -> bool:
        return any(
            entry.address == address and entry.list_kind == list_kind for entry in self._entries.values()
        )

    async def list_entries(self, list_kind: Optional[str] = None) -> List[Entry]:
        return [
            self._hydrate(entry)
            for entry in self._entries.values()
            if list_kind is None or entry.list_kind == list_kind
        ]

    async def insert_entry(self, entry: Entry) -> None:
        async with self._lock:
            if entry.key in self._entries:
                raise DuplicateEntry(f"{entry.address} is already registered.")
            self._entries[entry.key] = entry

    async def replace_address(self, owner_id: str, old_address: str, new_address: str, list_kind: str) -> bool:
        async with self._lock:
            current = self._entries.get((owner_id, old_address, list_kind))
            if current is None:
                return False
            updated = replace(current, address=new_address)
            if updated.key in self._entries:
                raise DuplicateEntry(f"{new_address} is already registered.")
            del self._entries[current.key]
            self._entries[updated.key] = updated
            return True

    async def get_limit(self, owner_id: str, list_kind: str) -> Optional[SlotLimit]:
        return self._limits.get((owner_id, list_kind))

    async def create_limit(self, limit: SlotLimit) -> SlotLimit:
        async with self._lock:
            return self._limits.setdefault(limit.key, limit)

    async def reserve_slot(self, owner_id: str, list_kind: str, *, enforce: bool = True) -> Optional[SlotLimit]:
        async with self._lock:
            current = self._limits.get((owner_id, list_kind))
            if current is None:
                return None
            if enforce and current.used >= current.max_slots:
                return None
            updated = replace(current, used=current.used + 1)
            self._limits[updated.key] = updated
            return updated

    async def release_slot(self, owner_id: str, list_kind: str) -> None:
        async with self._lock:
            current = self._limits.get((owner_id, list_kind))
            if current is not None and current.used > 0:
                self._limits[current.key] = replace(current, used=current.used - 1)

    async def add_to_limit(self, owner_id: str, list_kind: str, delta: int) -> Optional[SlotLimit]:
        async with self._lock:
            current = self._limits.get((owner_id, list_kind))
            if current is None:
                return None
            self._limits[current.key] = replace(current, max_slots=current.max_slots + delta)
            return current


__all__ = ["MemoryRegistryStore", "RegistryStore"]
