import logging
import os
import sys
from typing import Optional

import discord
from aiohttp import web
from discord.ext import commands
from dotenv import load_dotenv

load_dotenv()

from wlbot.api import create_app, start_api
from wlbot.commands import add_registry_cog
from wlbot.config import Settings
from wlbot.errors import RegistryError, UpstreamUnavailable
from wlbot.registry import SlotAccountant
from wlbot.store import MemoryRegistryStore, RegistryStore

logging.basicConfig(
    level=os.getenv("WLBOT_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("wlbot")


def create_store(settings: Settings) -> RegistryStore:
    if settings.store_backend == "memory":
        logger.warning("Using the in-memory store; registrations are lost on restart.")
        return MemoryRegistryStore(default_max_slots=settings.default_max_slots)
    from wlbot.mongo_store import MongoRegistryStore

    return MongoRegistryStore.connect(
        settings.mongo_uri,
        database=settings.mongo_db,
        timeout_ms=settings.mongo_timeout_ms,
        wallets_collection=settings.wallets_collection,
        limits_collection=settings.limits_collection,
        default_max_slots=settings.default_max_slots,
    )


class WLBot(commands.Bot):
    def __init__(self, settings: Settings):
        intents = discord.Intents.default()
        intents.members = True
        super().__init__(command_prefix=commands.when_mentioned, intents=intents)
        self.settings = settings
        self.store: Optional[RegistryStore] = None
        self.accountant: Optional[SlotAccountant] = None
        self.api_runner: Optional[web.AppRunner] = None

    async def setup_hook(self) -> None:
        self.store = create_store(self.settings)
        await self.store.ping()
        await self.store.ensure_indexes()
        logger.info("Connected to the %s registry store.", self.settings.store_backend)

        self.accountant = SlotAccountant(
            self.store,
            default_max_slots=self.settings.default_max_slots,
            validate_addresses=self.settings.validate_addresses,
        )
        await add_registry_cog(self, accountant=self.accountant, settings=self.settings)
        await self._sync_commands()

        if self.settings.api_enabled:
            app = create_app(self.accountant, api_key=self.settings.api_key)
            self.api_runner = await start_api(app, host=self.settings.api_host, port=self.settings.api_port)

    async def _sync_commands(self) -> None:
        try:
            if self.settings.guild_id:
                guild = discord.Object(id=self.settings.guild_id)
                self.tree.copy_global_to(guild=guild)
                synced = await self.tree.sync(guild=guild)
                logger.info("Synced %s application commands for guild %s", len(synced), self.settings.guild_id)
            else:
                synced = await self.tree.sync()
                logger.info("Synced %s global application commands", len(synced))
        except discord.HTTPException as exc:
            logger.warning("Failed to sync application commands: %s", exc)

    async def on_ready(self) -> None:
        logger.info("Logged in as %s (id=%s)", self.user, self.user.id if self.user else "unknown")

    async def close(self) -> None:
        if self.api_runner is not None:
            await self.api_runner.cleanup()
            self.api_runner = None
        if self.store is not None:
            await self.store.close()
            self.store = None
        await super().close()


def main():
    try:
        settings = Settings.from_env()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        sys.exit(1)

    logging.getLogger().setLevel(settings.log_level)
    bot = WLBot(settings)
    try:
        bot.run(settings.discord_token, log_handler=None)
    except UpstreamUnavailable as exc:
        logger.critical("Could not reach the registry store at startup: %s", exc)
        sys.exit(1)
    except RegistryError as exc:
        logger.critical("Registry store failed to start: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
