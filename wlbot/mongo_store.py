"""MongoDB backend for the wallet registry."""

from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Dict, List, Mapping, Optional

from pymongo import ASCENDING, AsyncMongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .errors import DuplicateEntry, InternalError, UpstreamUnavailable
from .models import DEFAULT_MAX_SLOTS, WHITELIST, Entry, OwnerKey, SlotLimit
from .store import RegistryStore

logger = logging.getLogger("wlbot.mongo_store")

# Field names match the documents written by the original JavaScript bot.
OWNER_FIELD = "discordId"
ADDRESS_FIELD = "walletAddress"
KIND_FIELD = "listKind"
VIA_CODE_FIELD = "registeredViaCode"
LEGACY_MAX_FIELD = "maxWhitelistEntries"
MAX_FIELD = "maxSlots"
USED_FIELD = "used"


def kind_filter(list_kind: str) -> Dict[str, Any]:
    # Documents written before list kinds existed have no listKind and belong to the whitelist.
    if list_kind == WHITELIST:
        return {KIND_FIELD: {"$in": [WHITELIST, None]}}
    return {KIND_FIELD: list_kind}


def entry_to_document(entry: Entry) -> Dict[str, Any]:
    return {
        OWNER_FIELD: entry.owner_id,
        ADDRESS_FIELD: entry.address,
        KIND_FIELD: entry.list_kind,
        VIA_CODE_FIELD: entry.via_code,
    }


def entry_from_document(
    doc: Mapping[str, Any],
    *,
    limit: Optional[SlotLimit] = None,
    default_max_slots: int = DEFAULT_MAX_SLOTS,
) -> Entry:
    if limit is not None:
        max_slots = limit.max_slots
    else:
        max_slots = int(doc.get(LEGACY_MAX_FIELD) or default_max_slots)
    return Entry(
        owner_id=str(doc[OWNER_FIELD]),
        address=str(doc[ADDRESS_FIELD]),
        list_kind=str(doc.get(KIND_FIELD) or WHITELIST),
        max_slots=max_slots,
        via_code=bool(doc.get(VIA_CODE_FIELD, False)),
    )


def limit_from_document(doc: Mapping[str, Any]) -> SlotLimit:
    return SlotLimit(
        owner_id=str(doc[OWNER_FIELD]),
        list_kind=str(doc[KIND_FIELD]),
        max_slots=int(doc[MAX_FIELD]),
        used=int(doc.get(USED_FIELD, 0)),
    )


def _store_call(func):
    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except DuplicateKeyError as exc:
            raise DuplicateEntry("That wallet is already registered.") from exc
        except PyMongoError as exc:
            logger.error("MongoDB %s failed: %s", func.__name__, exc)
            raise UpstreamUnavailable("The registry database is unavailable. Try again later.") from exc

    return wrapper


class MongoRegistryStore(RegistryStore):
    """Stores entries in one collection and slot limits in another.

    Slot bookings are single-document ``find_one_and_update`` calls on the
    limit record, and the entry collection carries a unique compound index on
    owner, address and list kind, so concurrent adds cannot overshoot a limit
    or double-register an address.
    """

    def __init__(
        self,
        client: AsyncMongoClient,
        *,
        database: str,
        wallets_collection: str = "wallets",
        limits_collection: str = "slot_limits",
        default_max_slots: int = DEFAULT_MAX_SLOTS,
    ):
        super().__init__(default_max_slots=default_max_slots)
        self._client = client
        db = client[database]
        self._wallets = db[wallets_collection]
        self._limits = db[limits_collection]

    @classmethod
    def connect(
        cls,
        uri: str,
        *,
        database: str,
        timeout_ms: int = 5000,
        **kwargs: Any,
    ) -> "MongoRegistryStore":
        client: AsyncMongoClient = AsyncMongoClient(uri, serverSelectionTimeoutMS=timeout_ms)
        return cls(client, database=database, **kwargs)

    @_store_call
    async def ping(self) -> None:
        await self._client.admin.command("ping")

    @_store_call
    async def ensure_indexes(self) -> None:
        try:
            await self._wallets.create_index(
                [(OWNER_FIELD, ASCENDING), (ADDRESS_FIELD, ASCENDING), (KIND_FIELD, ASCENDING)],
                unique=True,
                name="owner_address_kind",
            )
        except DuplicateKeyError as exc:
            raise InternalError(
                f"Cannot create the unique wallet index: the {self._wallets.name} collection holds duplicate "
                f"({OWNER_FIELD}, {ADDRESS_FIELD}, {KIND_FIELD}) documents. Remove the duplicates and restart. "
                f"Driver said: {exc}"
            ) from exc
        await self._wallets.create_index([(ADDRESS_FIELD, ASCENDING), (KIND_FIELD, ASCENDING)], name="address_kind")
        await self._limits.create_index(
            [(OWNER_FIELD, ASCENDING), (KIND_FIELD, ASCENDING)],
            unique=True,
            name="owner_kind",
        )

    async def close(self) -> None:
        await self._client.close()

    def _owner_filter(self, owner_id: str, list_kind: str) -> Dict[str, Any]:
        query = {OWNER_FIELD: owner_id}
        query.update(kind_filter(list_kind))
        return query

    def _limit_filter(self, owner_id: str, list_kind: str) -> Dict[str, Any]:
        return {OWNER_FIELD: owner_id, KIND_FIELD: list_kind}

    def _to_entry(self, doc: Mapping[str, Any], limit: Optional[SlotLimit]) -> Entry:
        return entry_from_document(doc, limit=limit, default_max_slots=self.default_max_slots)

    @_store_call
    async def find_entries(self, owner_id: str, list_kind: str) -> List[Entry]:
        limit = await self.get_limit(owner_id, list_kind)
        docs = await self._wallets.find(self._owner_filter(owner_id, list_kind)).to_list(length=None)
        return [self._to_entry(doc, limit) for doc in docs]

    @_store_call
    async def find_entry(self, owner_id: str, address: str, list_kind: str) -> Optional[Entry]:
        query = self._owner_filter(owner_id, list_kind)
        query[ADDRESS_FIELD] = address
        doc = await self._wallets.find_one(query)
        if doc is None:
            return None
        return self._to_entry(doc, await self.get_limit(owner_id, list_kind))

    @_store_call
    async def address_exists(self, address: str, list_kind: str) -> bool:
        query = {ADDRESS_FIELD: address}
        query.update(kind_filter(list_kind))
        return await self._wallets.find_one(query, projection={"_id": 1}) is not None

    @_store_call
    async def list_entries(self, list_kind: Optional[str] = None) -> List[Entry]:
        wallet_query: Dict[str, Any] = kind_filter(list_kind) if list_kind else {}
        limit_query: Dict[str, Any] = {KIND_FIELD: list_kind} if list_kind else {}
        limits: Dict[OwnerKey, SlotLimit] = {}
        for doc in await self._limits.find(limit_query).to_list(length=None):
            limit = limit_from_document(doc)
            limits[limit.key] = limit
        docs = await self._wallets.find(wallet_query).to_list(length=None)
        entries = []
        for doc in docs:
            owner_id = str(doc[OWNER_FIELD])
            kind = str(doc.get(KIND_FIELD) or WHITELIST)
            entries.append(self._to_entry(doc, limits.get((owner_id, kind))))
        return entries

    @_store_call
    async def insert_entry(self, entry: Entry) -> None:
        await self._wallets.insert_one(entry_to_document(entry))

    @_store_call
    async def replace_address(self, owner_id: str, old_address: str, new_address: str, list_kind: str) -> bool:
        query = self._owner_filter(owner_id, list_kind)
        query[ADDRESS_FIELD] = old_address
        result = await self._wallets.update_one(query, {"$set": {ADDRESS_FIELD: new_address}})
        return result.matched_count > 0

    @_store_call
    async def get_limit(self, owner_id: str, list_kind: str) -> Optional[SlotLimit]:
        doc = await self._limits.find_one(self._limit_filter(owner_id, list_kind))
        return limit_from_document(doc) if doc else None

    @_store_call
    async def create_limit(self, limit: SlotLimit) -> SlotLimit:
        try:
            doc = await self._limits.find_one_and_update(
                self._limit_filter(limit.owner_id, limit.list_kind),
                {"$setOnInsert": {MAX_FIELD: limit.max_slots, USED_FIELD: limit.used}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Another request upserted the same record first.
            doc = await self._limits.find_one(self._limit_filter(limit.owner_id, limit.list_kind))
        return limit_from_document(doc)

    @_store_call
    async def reserve_slot(self, owner_id: str, list_kind: str, *, enforce: bool = True) -> Optional[SlotLimit]:
        query = self._limit_filter(owner_id, list_kind)
        if enforce:
            query["$expr"] = {"$lt": ["$" + USED_FIELD, "$" + MAX_FIELD]}
        doc = await self._limits.find_one_and_update(
            query,
            {"$inc": {USED_FIELD: 1}},
            return_document=ReturnDocument.AFTER,
        )
        return limit_from_document(doc) if doc else None

    @_store_call
    async def release_slot(self, owner_id: str, list_kind: str) -> None:
        query = self._limit_filter(owner_id, list_kind)
        query[USED_FIELD] = {"$gt": 0}
        await self._limits.update_one(query, {"$inc": {USED_FIELD: -1}})

    @_store_call
    async def add_to_limit(self, owner_id: str, list_kind: str, delta: int) -> Optional[SlotLimit]:
        doc = await self._limits.find_one_and_update(
            self._limit_filter(owner_id, list_kind),
            {"$inc": {MAX_FIELD: delta}},
            return_document=ReturnDocument.BEFORE,
        )
        return limit_from_document(doc) if doc else None


__all__ = [
    "MongoRegistryStore",
    "entry_from_document",
    "entry_to_document",
    "kind_filter",
    "limit_from_document",
]
