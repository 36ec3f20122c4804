import unittest

from wlbot.commands import describe_error, resolve_capabilities
from wlbot.config import Settings
from wlbot.errors import (
    DuplicateEntry,
    InconsistentSlotLimits,
    InternalError,
    PermissionDenied,
    SlotLimitExceeded,
    UpstreamUnavailable,
)
from wlbot.models import FREEMINT, WHITELIST


class CapabilityResolutionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = Settings(discord_token="t", whitelist_role_id=100, freemint_role_id=200)

    def test_roles_grant_matching_lists(self) -> None:
        caps = resolve_capabilities([100], admin=False, settings=self.settings)
        self.assertTrue(caps.allows(WHITELIST))
        self.assertFalse(caps.allows(FREEMINT))
        self.assertFalse(caps.admin)

        caps = resolve_capabilities([100, 200], admin=True, settings=self.settings)
        self.assertEqual(caps.list_kinds, frozenset({WHITELIST, FREEMINT}))
        self.assertTrue(caps.admin)

    def test_no_roles_grant_nothing(self) -> None:
        caps = resolve_capabilities([], admin=False, settings=self.settings)
        self.assertEqual(caps.list_kinds, frozenset())

    def test_unset_role_opens_the_list(self) -> None:
        settings = Settings(discord_token="t", whitelist_role_id=0, freemint_role_id=200)
        caps = resolve_capabilities([], admin=False, settings=settings)
        self.assertEqual(caps.list_kinds, frozenset({WHITELIST}))


class DescribeErrorTests(unittest.TestCase):
    def test_user_errors_show_their_message(self) -> None:
        self.assertEqual(describe_error(DuplicateEntry("already there")), "❌ already there")
        self.assertEqual(describe_error(PermissionDenied("no role")), "❌ no role")

    def test_slot_limit_reports_usage(self) -> None:
        message = describe_error(SlotLimitExceeded("full", used=1, limit=1))
        self.assertIn("1 of 1", message)

    def test_internal_details_are_hidden(self) -> None:
        for exc in (
            UpstreamUnavailable("mongodb://secret-host timed out"),
            InternalError("stack details"),
            InconsistentSlotLimits("1", WHITELIST, {1, 3}),
        ):
            message = describe_error(exc)
            self.assertTrue(message.startswith("❌"))
            self.assertNotIn("secret-host", message)
            self.assertNotIn("stack details", message)


if __name__ == "__main__":
    unittest.main()
