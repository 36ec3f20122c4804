import os
import unittest
from unittest import mock

from wlbot.config import Settings
from wlbot.utils import bool_from_env, int_from_env, parse_id_list

BASE_ENV = {
    "DISCORD_TOKEN": "token",
    "API_KEY": "secret",
    "MONGO_URI": "mongodb://localhost:27017",
}


class SettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        with mock.patch.dict(os.environ, BASE_ENV, clear=True):
            settings = Settings.from_env()
        self.assertEqual(settings.discord_token, "token")
        self.assertEqual(settings.api_port, 3000)
        self.assertEqual(settings.store_backend, "mongo")
        self.assertEqual(settings.default_max_slots, 1)
        self.assertTrue(settings.validate_addresses)
        self.assertEqual(settings.admin_role_ids, frozenset())

    def test_legacy_bot_token_is_accepted(self) -> None:
        env = dict(BASE_ENV)
        del env["DISCORD_TOKEN"]
        env["BOT_TOKEN"] = "legacy"
        with mock.patch.dict(os.environ, env, clear=True):
            self.assertEqual(Settings.from_env().discord_token, "legacy")

    def test_missing_required_values_raise(self) -> None:
        for name in ("DISCORD_TOKEN", "API_KEY", "MONGO_URI"):
            env = {key: value for key, value in BASE_ENV.items() if key != name}
            with mock.patch.dict(os.environ, env, clear=True):
                with self.assertRaises(RuntimeError) as ctx:
                    Settings.from_env()
                self.assertIn(name, str(ctx.exception))

    def test_memory_store_and_disabled_api_need_no_secrets(self) -> None:
        env = {"DISCORD_TOKEN": "token", "WLBOT_STORE": "memory", "WLBOT_API_ENABLED": "false"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = Settings.from_env()
        self.assertEqual(settings.store_backend, "memory")
        self.assertFalse(settings.api_enabled)

    def test_unknown_store_backend_raises(self) -> None:
        env = dict(BASE_ENV, WLBOT_STORE="redis")
        with mock.patch.dict(os.environ, env, clear=True):
            with self.assertRaises(RuntimeError):
                Settings.from_env()

    def test_overrides(self) -> None:
        env = dict(
            BASE_ENV,
            PORT="8080",
            GUILD_ID="42",
            WLBOT_DEFAULT_MAX_SLOTS="2",
            WLBOT_VALIDATE_ADDRESSES="no",
            WLBOT_WHITELIST_ROLE_ID="7",
            WLBOT_ADMIN_ROLE_IDS="9, 10,bad",
        )
        with mock.patch.dict(os.environ, env, clear=True):
            settings = Settings.from_env()
        self.assertEqual(settings.api_port, 8080)
        self.assertEqual(settings.guild_id, 42)
        self.assertEqual(settings.default_max_slots, 2)
        self.assertFalse(settings.validate_addresses)
        self.assertEqual(settings.whitelist_role_id, 7)
        self.assertEqual(settings.admin_role_ids, frozenset({9, 10}))

    def test_non_positive_default_slots_fall_back(self) -> None:
        env = dict(BASE_ENV, WLBOT_DEFAULT_MAX_SLOTS="0")
        with mock.patch.dict(os.environ, env, clear=True):
            self.assertEqual(Settings.from_env().default_max_slots, 1)


class EnvHelperTests(unittest.TestCase):
    def test_int_from_env_falls_back_on_garbage(self) -> None:
        with mock.patch.dict(os.environ, {"WLBOT_X": "abc"}, clear=True):
            self.assertEqual(int_from_env("WLBOT_X", 5), 5)

    def test_bool_from_env(self) -> None:
        with mock.patch.dict(os.environ, {"A": "on", "B": "0", "C": "maybe"}, clear=True):
            self.assertTrue(bool_from_env("A", False))
            self.assertFalse(bool_from_env("B", True))
            self.assertTrue(bool_from_env("C", True))
            self.assertFalse(bool_from_env("MISSING", False))

    def test_parse_id_list(self) -> None:
        self.assertEqual(parse_id_list("1, 2,,x,3"), {1, 2, 3})


if __name__ == "__main__":
    unittest.main()
