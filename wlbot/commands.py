"""Slash commands for self-service wallet registration and admin tools."""

from __future__ import annotations

import io
import logging
from typing import Awaitable, Callable, Iterable, Optional, Set

import discord
from discord import app_commands
from discord.ext import commands

from .config import Settings
from .errors import (
    DuplicateEntry,
    EntryNotFound,
    InconsistentSlotLimits,
    InternalError,
    InvalidArgument,
    PermissionDenied,
    RegistryError,
    SlotLimitExceeded,
    UpstreamUnavailable,
)
from .export import export_filename, render_csv
from .models import FREEMINT, LIST_KINDS, WHITELIST
from .registry import Capabilities, SlotAccountant, normalize_list_kind
from .utils import is_admin, member_role_ids

logger = logging.getLogger("wlbot.commands")

LIST_KIND_CHOICES = [app_commands.Choice(name=kind.title(), value=kind) for kind in LIST_KINDS]
INTERNAL_ERROR_MESSAGE = "Something went wrong on our side. Please try again later or contact staff."


def resolve_capabilities(role_ids: Iterable[int], *, admin: bool, settings: Settings) -> Capabilities:
    """Translate a member's roles into registry capabilities.

    A gating role id of ``0`` leaves that list open to every member.
    """
    held: Set[int] = set(role_ids)
    kinds = set()
    for kind, role_id in ((WHITELIST, settings.whitelist_role_id), (FREEMINT, settings.freemint_role_id)):
        if role_id == 0 or role_id in held:
            kinds.add(kind)
    return Capabilities(list_kinds=frozenset(kinds), admin=admin)


def describe_error(exc: RegistryError) -> str:
    if isinstance(exc, SlotLimitExceeded):
        return f"❌ You have used all your slots ({exc.used} of {exc.limit}). Ask an admin for more."
    if isinstance(exc, InconsistentSlotLimits):
        return "❌ Your slot records look inconsistent. Please contact staff."
    if isinstance(exc, (PermissionDenied, DuplicateEntry, EntryNotFound, InvalidArgument)):
        return f"❌ {exc}"
    if isinstance(exc, UpstreamUnavailable):
        return "❌ The registry is unavailable right now. Please try again in a moment."
    return f"❌ {INTERNAL_ERROR_MESSAGE}"


def _choice_value(choice: Optional[app_commands.Choice[str]], default: Optional[str] = WHITELIST) -> Optional[str]:
    if choice is None:
        return default
    return normalize_list_kind(choice.value)


class RegistryCog(commands.Cog):
    """Wallet registry commands. Every handler defers, then edits its reply once."""

    def __init__(self, bot: commands.Bot, *, accountant: SlotAccountant, settings: Settings):
        self.bot = bot
        self.accountant = accountant
        self.settings = settings

    def capabilities_for(self, user: discord.abc.User) -> Capabilities:
        if not isinstance(user, discord.Member):
            return Capabilities()
        return resolve_capabilities(
            member_role_ids(user),
            admin=is_admin(user, self.settings.admin_role_ids),
            settings=self.settings,
        )

    async def _respond(
        self,
        interaction: discord.Interaction,
        action: Callable[[], Awaitable[dict]],
        *,
        ephemeral: bool = True,
    ) -> None:
        await interaction.response.defer(thinking=True, ephemeral=ephemeral)
        command_name = getattr(interaction.command, "qualified_name", "unknown")
        try:
            payload = await action()
        except RegistryError as exc:
            if isinstance(exc, (UpstreamUnavailable, InternalError)):
                logger.error("/%s failed for %s: %s", command_name, interaction.user.id, exc)
            else:
                logger.debug("/%s rejected for %s: %s", command_name, interaction.user.id, exc)
            payload = {"content": describe_error(exc)}
        except Exception:
            logger.exception("Unhandled error in /%s for %s", command_name, interaction.user.id)
            payload = {"content": f"❌ {INTERNAL_ERROR_MESSAGE}"}
        try:
            await interaction.edit_original_response(**payload)
        except discord.HTTPException as exc:
            logger.warning("Failed to edit response for /%s: %s", command_name, exc)

    @app_commands.command(name="add-entry", description="Register one of your wallet addresses.")
    @app_commands.describe(address="Your wallet address (0x...)", list_kind="Which list to join")
    @app_commands.choices(list_kind=LIST_KIND_CHOICES)
    @app_commands.guild_only()
    async def add_entry(
        self,
        interaction: discord.Interaction,
        address: str,
        list_kind: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        async def action() -> dict:
            kind = _choice_value(list_kind)
            usage = await self.accountant.add_entry(
                str(interaction.user.id),
                address,
                kind,
                self.capabilities_for(interaction.user),
            )
            return {
                "content": f"✅ Wallet **{address.strip()}** added to the {kind}! "
                f"You are using {usage.used} of {usage.limit} slots."
            }

        await self._respond(interaction, action)

    @app_commands.command(name="check-entry", description="Check if a wallet address is registered.")
    @app_commands.describe(address="The wallet address to check", list_kind="Which list to check")
    @app_commands.choices(list_kind=LIST_KIND_CHOICES)
    async def check_entry(
        self,
        interaction: discord.Interaction,
        address: str,
        list_kind: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        async def action() -> dict:
            kind = _choice_value(list_kind)
            found = await self.accountant.check_entry(address, kind)
            if found:
                return {"content": f"✅ Wallet **{address.strip()}** is on the {kind}!"}
            return {"content": f"❌ Wallet **{address.strip()}** is not on the {kind}."}

        await self._respond(interaction, action, ephemeral=False)

    @app_commands.command(name="replace-entry", description="Swap one of your registered wallets for another.")
    @app_commands.describe(
        old_address="The wallet currently registered",
        new_address="The wallet to register instead",
        list_kind="Which list the wallet is on",
    )
    @app_commands.choices(list_kind=LIST_KIND_CHOICES)
    @app_commands.guild_only()
    async def replace_entry(
        self,
        interaction: discord.Interaction,
        old_address: str,
        new_address: str,
        list_kind: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        async def action() -> dict:
            kind = _choice_value(list_kind)
            entry = await self.accountant.replace_entry(
                str(interaction.user.id),
                old_address,
                new_address,
                kind,
                self.capabilities_for(interaction.user),
            )
            return {"content": f"✅ Replaced **{old_address.strip()}** with **{entry.address}** on the {kind}."}

        await self._respond(interaction, action)

    @app_commands.command(name="increase-slots", description="Give a member more wallet slots (admin only).")
    @app_commands.describe(member="Member to receive the slots", amount="How many slots to add", list_kind="Which list")
    @app_commands.choices(list_kind=LIST_KIND_CHOICES)
    @app_commands.guild_only()
    async def increase_slots(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        amount: app_commands.Range[int, 1, 1000],
        list_kind: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        async def action() -> dict:
            kind = _choice_value(list_kind)
            change = await self.accountant.increase_limit(
                str(member.id),
                amount,
                self.capabilities_for(interaction.user),
                list_kind=kind,
            )
            return {
                "content": f"✅ {member.mention} can now register {change.new_limit} {kind} wallets "
                f"(was {change.old_limit}).",
                "allowed_mentions": discord.AllowedMentions.none(),
            }

        await self._respond(interaction, action)

    @app_commands.command(name="export-list", description="Export registered wallets as CSV (admin only).")
    @app_commands.describe(list_kind="Which list to export (leave blank for all)")
    @app_commands.choices(list_kind=LIST_KIND_CHOICES)
    @app_commands.guild_only()
    async def export_list(
        self,
        interaction: discord.Interaction,
        list_kind: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        async def action() -> dict:
            kind = _choice_value(list_kind, default=None)
            entries = await self.accountant.export_entries(self.capabilities_for(interaction.user), kind)
            data = render_csv(entries).encode("utf-8")
            export_file = discord.File(io.BytesIO(data), filename=export_filename(kind or ""))
            label = kind or "all lists"
            return {"content": f"📄 {len(entries)} wallets exported ({label}).", "attachments": [export_file]}

        await self._respond(interaction, action)


async def add_registry_cog(bot: commands.Bot, *, accountant: SlotAccountant, settings: Settings) -> RegistryCog:
    cog = RegistryCog(bot, accountant=accountant, settings=settings)
    await bot.add_cog(cog)
    logger.info("Registry commands loaded (validate addresses: %s)", settings.validate_addresses)
    return cog


__all__ = ["RegistryCog", "add_registry_cog", "describe_error", "resolve_capabilities"]
