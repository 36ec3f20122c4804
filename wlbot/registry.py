"""Slot accounting rules for the wallet registry."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence, Tuple

from .errors import (
    DuplicateEntry,
    EntryNotFound,
    InconsistentSlotLimits,
    InvalidArgument,
    PermissionDenied,
    RegistryError,
    SlotLimitExceeded,
    UpstreamUnavailable,
)
from .models import LIST_KINDS, WHITELIST, Entry, LimitChange, SlotLimit, SlotUsage
from .store import RegistryStore

logger = logging.getLogger("wlbot.registry")

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class Capabilities:
    """What a caller has proven it may do: write to some lists, and/or administer."""

    list_kinds: FrozenSet[str] = field(default_factory=frozenset)
    admin: bool = False

    @classmethod
    def trusted(cls) -> "Capabilities":
        return cls(list_kinds=frozenset(LIST_KINDS), admin=True)

    def allows(self, list_kind: str) -> bool:
        return list_kind in self.list_kinds


def normalize_list_kind(value: Optional[str], default: str = WHITELIST) -> str:
    if value is None or not str(value).strip():
        return default
    lowered = str(value).strip().lower()
    if lowered not in LIST_KINDS:
        raise InvalidArgument(f"Unknown list `{value}`. Use one of: {', '.join(LIST_KINDS)}.")
    return lowered


def validate_address(address: Optional[str], *, strict: bool = True) -> str:
    """Return the trimmed address or raise ``InvalidArgument``.

    Without ``strict`` any non-empty string is accepted, for chains whose
    addresses are not ``0x`` + 40 hex characters.
    """
    cleaned = (address or "").strip()
    if not cleaned:
        raise InvalidArgument("Provide a wallet address.")
    if strict and not ADDRESS_PATTERN.match(cleaned):
        raise InvalidArgument(f"`{cleaned}` is not a valid wallet address (expected 0x followed by 40 hex characters).")
    return cleaned


def resolve_limit(entries: Sequence[Entry], owner_id: str, list_kind: str, default: int) -> int:
    """Effective limit derived from the entries themselves.

    No entries means the default. Otherwise every entry must agree.
    """
    if not entries:
        return default
    limits = {entry.max_slots for entry in entries}
    if len(limits) > 1:
        raise InconsistentSlotLimits(owner_id, list_kind, limits)
    return entries[0].max_slots


class SlotAccountant:
    """Applies the registry rules on top of a :class:`RegistryStore`."""

    def __init__(self, store: RegistryStore, *, default_max_slots: Optional[int] = None, validate_addresses: bool = True):
        self.store = store
        self.default_max_slots = default_max_slots or store.default_max_slots
        self.validate_addresses = validate_addresses

    def _check_address(self, address: str) -> str:
        return validate_address(address, strict=self.validate_addresses)

    def _require_list(self, capabilities: Capabilities, list_kind: str) -> None:
        if not capabilities.allows(list_kind):
            raise PermissionDenied(f"You need the {list_kind} role to manage {list_kind} wallets.")

    def _require_admin(self, capabilities: Capabilities) -> None:
        if not capabilities.admin:
            raise PermissionDenied("Only admins can use this command.")

    async def _ensure_limit(self, owner_id: str, list_kind: str, entries: Optional[List[Entry]] = None) -> SlotLimit:
        existing = await self.store.get_limit(owner_id, list_kind)
        if existing is not None:
            return existing
        if entries is None:
            entries = await self.store.find_entries(owner_id, list_kind)
        seed = SlotLimit(
            owner_id=owner_id,
            list_kind=list_kind,
            max_slots=resolve_limit(entries, owner_id, list_kind, self.default_max_slots),
            used=len(entries),
        )
        return await self.store.create_limit(seed)

    async def _release(self, owner_id: str, list_kind: str) -> None:
        try:
            await self.store.release_slot(owner_id, list_kind)
        except UpstreamUnavailable:
            logger.error("Could not release slot for %s on %s; usage counter is one too high.", owner_id, list_kind)

    async def read_limit(self, owner_id: str, list_kind: str = WHITELIST) -> int:
        limit = await self.store.get_limit(owner_id, list_kind)
        if limit is not None:
            return limit.max_slots
        entries = await self.store.find_entries(owner_id, list_kind)
        return resolve_limit(entries, owner_id, list_kind, self.default_max_slots)

    async def add_entry(
        self,
        owner_id: str,
        address: str,
        list_kind: str,
        capabilities: Capabilities,
        *,
        enforce_limit: bool = True,
        via_code: bool = False,
    ) -> SlotUsage:
        self._require_list(capabilities, list_kind)
        address = self._check_address(address)

        entries = await self.store.find_entries(owner_id, list_kind)
        if any(entry.address == address for entry in entries):
            raise DuplicateEntry(f"`{address}` is already registered on the {list_kind}.")

        limit = await self._ensure_limit(owner_id, list_kind, entries)
        reserved = await self.store.reserve_slot(owner_id, list_kind, enforce=enforce_limit)
        if reserved is None:
            current = await self.store.get_limit(owner_id, list_kind) or limit
            logger.info(
                "Slot limit reached for %s on %s (%s/%s).", owner_id, list_kind, current.used, current.max_slots
            )
            raise SlotLimitExceeded(
                f"You already use {current.used} of {current.max_slots} {list_kind} slots.",
                used=current.used,
                limit=current.max_slots,
            )

        entry = Entry(
            owner_id=owner_id,
            address=address,
            list_kind=list_kind,
            max_slots=reserved.max_slots,
            via_code=via_code,
        )
        try:
            await self.store.insert_entry(entry)
        except RegistryError:
            await self._release(owner_id, list_kind)
            raise
        logger.info(
            "Registered %s for %s on %s (%s/%s).", address, owner_id, list_kind, reserved.used, reserved.max_slots
        )
        return SlotUsage(used=reserved.used, limit=reserved.max_slots)

    async def replace_entry(
        self,
        owner_id: str,
        old_address: str,
        new_address: str,
        list_kind: str,
        capabilities: Capabilities,
    ) -> Entry:
        self._require_list(capabilities, list_kind)
        old_address = (old_address or "").strip()
        new_address = self._check_address(new_address)

        current = await self.store.find_entry(owner_id, old_address, list_kind)
        if current is None:
            raise EntryNotFound(f"`{old_address}` is not registered to you on the {list_kind}.")
        if await self.store.find_entry(owner_id, new_address, list_kind) is not None:
            raise DuplicateEntry(f"`{new_address}` is already registered to you on the {list_kind}.")
        if not await self.store.replace_address(owner_id, old_address, new_address, list_kind):
            raise EntryNotFound(f"`{old_address}` is not registered to you on the {list_kind}.")
        logger.info("Replaced %s with %s for %s on %s.", old_address, new_address, owner_id, list_kind)
        return Entry(
            owner_id=owner_id,
            address=new_address,
            list_kind=list_kind,
            max_slots=current.max_slots,
            via_code=current.via_code,
        )

    async def increase_limit(
        self,
        owner_id: str,
        delta: int,
        capabilities: Capabilities,
        list_kind: str = WHITELIST,
    ) -> LimitChange:
        self._require_admin(capabilities)
        if isinstance(delta, bool) or not isinstance(delta, int) or delta <= 0:
            raise InvalidArgument("The amount must be a positive whole number.")

        await self._ensure_limit(owner_id, list_kind)
        before = await self.store.add_to_limit(owner_id, list_kind, delta)
        if before is None:
            raise UpstreamUnavailable(f"Slot limit record for {owner_id} on {list_kind} disappeared.")
        change = LimitChange(
            owner_id=owner_id,
            list_kind=list_kind,
            old_limit=before.max_slots,
            new_limit=before.max_slots + delta,
        )
        logger.info(
            "Raised %s slot limit for %s from %s to %s.", list_kind, owner_id, change.old_limit, change.new_limit
        )
        return change

    async def check_entry(self, address: str, list_kind: str = WHITELIST) -> bool:
        cleaned = (address or "").strip()
        if not cleaned:
            raise InvalidArgument("Provide a wallet address.")
        return await self.store.address_exists(cleaned, list_kind)

    async def owner_entries(self, owner_id: str, list_kind: str = WHITELIST) -> Tuple[List[Entry], SlotUsage]:
        entries = await self.store.find_entries(owner_id, list_kind)
        limit = await self.store.get_limit(owner_id, list_kind)
        if limit is None:
            usage = SlotUsage(
                used=len(entries),
                limit=resolve_limit(entries, owner_id, list_kind, self.default_max_slots),
            )
        else:
            usage = SlotUsage(used=limit.used, limit=limit.max_slots)
        return entries, usage

    async def has_entries(self, owner_id: str, list_kind: str) -> bool:
        return bool(await self.store.find_entries(owner_id, list_kind))

    async def list_entries(self, list_kind: Optional[str] = None) -> List[Entry]:
        entries = await self.store.list_entries(list_kind)
        return sorted(entries, key=lambda entry: (entry.owner_id, entry.address, entry.list_kind))

    async def export_entries(self, capabilities: Capabilities, list_kind: Optional[str] = None) -> List[Entry]:
        self._require_admin(capabilities)
        return await self.list_entries(list_kind)


__all__ = [
    "ADDRESS_PATTERN",
    "Capabilities",
    "SlotAccountant",
    "normalize_list_kind",
    "resolve_limit",
    "validate_address",
]
