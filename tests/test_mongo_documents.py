import unittest

from wlbot.models import FREEMINT, WHITELIST, Entry, SlotLimit
from wlbot.mongo_store import (
    entry_from_document,
    entry_to_document,
    kind_filter,
    limit_from_document,
)


class DocumentMappingTests(unittest.TestCase):
    def test_entry_document_layout(self) -> None:
        doc = entry_to_document(Entry("111", "0xabc", FREEMINT, max_slots=4, via_code=True))
        self.assertEqual(
            doc,
            {"discordId": "111", "walletAddress": "0xabc", "listKind": FREEMINT, "registeredViaCode": True},
        )

    def test_limit_record_wins_over_stored_value(self) -> None:
        doc = {"discordId": "111", "walletAddress": "0xabc", "listKind": WHITELIST, "maxWhitelistEntries": 2}
        entry = entry_from_document(doc, limit=SlotLimit("111", WHITELIST, max_slots=5, used=1))
        self.assertEqual(entry.max_slots, 5)

    def test_legacy_document_without_list_kind(self) -> None:
        doc = {"discordId": 111, "walletAddress": "0xabc", "maxWhitelistEntries": 3}
        entry = entry_from_document(doc)
        self.assertEqual(entry, Entry("111", "0xabc", WHITELIST, max_slots=3, via_code=False))

    def test_missing_limit_uses_default(self) -> None:
        doc = {"discordId": "1", "walletAddress": "0xabc", "listKind": FREEMINT}
        self.assertEqual(entry_from_document(doc, default_max_slots=2).max_slots, 2)

    def test_limit_from_document(self) -> None:
        limit = limit_from_document({"discordId": "1", "listKind": WHITELIST, "maxSlots": 3})
        self.assertEqual(limit, SlotLimit("1", WHITELIST, max_slots=3, used=0))

    def test_whitelist_filter_includes_untagged_documents(self) -> None:
        self.assertEqual(kind_filter(WHITELIST), {"listKind": {"$in": [WHITELIST, None]}})
        self.assertEqual(kind_filter(FREEMINT), {"listKind": FREEMINT})


if __name__ == "__main__":
    unittest.main()
