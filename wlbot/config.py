"""Runtime configuration read from the environment (and `.env`)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet

from .models import DEFAULT_MAX_SLOTS
from .utils import bool_from_env, int_from_env, parse_id_list, str_from_env

logger = logging.getLogger("wlbot.config")

STORE_BACKENDS = ("mongo", "memory")


@dataclass(frozen=True)
class Settings:
    discord_token: str
    api_key: str = ""
    api_enabled: bool = True
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    store_backend: str = "mongo"
    mongo_uri: str = ""
    mongo_db: str = "wlbot"
    wallets_collection: str = "wallets"
    limits_collection: str = "slot_limits"
    mongo_timeout_ms: int = 5000
    guild_id: int = 0
    default_max_slots: int = DEFAULT_MAX_SLOTS
    validate_addresses: bool = True
    whitelist_role_id: int = 0
    freemint_role_id: int = 0
    admin_role_ids: FrozenSet[int] = field(default_factory=frozenset)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Raises ``RuntimeError`` when a value the bot cannot start without is
        missing, so the process exits before touching Discord or the store.
        """
        token = str_from_env("DISCORD_TOKEN", legacy_var="BOT_TOKEN")
        if not token:
            raise RuntimeError("Missing DISCORD_TOKEN. Set it in your environment or .env file.")

        api_enabled = bool_from_env("WLBOT_API_ENABLED", True)
        api_key = str_from_env("API_KEY")
        if api_enabled and not api_key:
            raise RuntimeError("Missing API_KEY. Set it or disable the HTTP API with WLBOT_API_ENABLED=false.")

        store_backend = str_from_env("WLBOT_STORE", "mongo").lower()
        if store_backend not in STORE_BACKENDS:
            raise RuntimeError(f"Unknown WLBOT_STORE={store_backend}. Use one of: {', '.join(STORE_BACKENDS)}.")
        mongo_uri = str_from_env("MONGO_URI")
        if store_backend == "mongo" and not mongo_uri:
            raise RuntimeError("Missing MONGO_URI. Set it in your environment or .env file.")

        default_max_slots = int_from_env("WLBOT_DEFAULT_MAX_SLOTS", DEFAULT_MAX_SLOTS)
        if default_max_slots < 1:
            logger.warning("WLBOT_DEFAULT_MAX_SLOTS must be positive; using %s.", DEFAULT_MAX_SLOTS)
            default_max_slots = DEFAULT_MAX_SLOTS

        return cls(
            discord_token=token,
            api_key=api_key,
            api_enabled=api_enabled,
            api_host=str_from_env("WLBOT_API_HOST", "0.0.0.0"),
            api_port=int_from_env("PORT", 3000),
            store_backend=store_backend,
            mongo_uri=mongo_uri,
            mongo_db=str_from_env("WLBOT_MONGO_DB", "wlbot"),
            wallets_collection=str_from_env("WLBOT_WALLETS_COLLECTION", "wallets"),
            limits_collection=str_from_env("WLBOT_LIMITS_COLLECTION", "slot_limits"),
            mongo_timeout_ms=int_from_env("WLBOT_MONGO_TIMEOUT_MS", 5000),
            guild_id=int_from_env("GUILD_ID", 0),
            default_max_slots=default_max_slots,
            validate_addresses=bool_from_env("WLBOT_VALIDATE_ADDRESSES", True),
            whitelist_role_id=int_from_env("WLBOT_WHITELIST_ROLE_ID", 0),
            freemint_role_id=int_from_env("WLBOT_FREEMINT_ROLE_ID", 0),
            admin_role_ids=frozenset(parse_id_list(str_from_env("WLBOT_ADMIN_ROLE_IDS"))),
            log_level=str_from_env("WLBOT_LOG_LEVEL", "INFO").upper(),
        )


__all__ = ["STORE_BACKENDS", "Settings"]
