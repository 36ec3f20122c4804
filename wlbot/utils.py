"""Utility helpers for wlbot."""

from __future__ import annotations

import logging
import os
from typing import Iterable, Optional, Set

import discord

logger = logging.getLogger("wlbot.utils")

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


def int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%s. Falling back to %s.", name, raw, default)
        return default


def bool_from_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    logger.warning("Invalid boolean for %s=%s. Falling back to %s.", name, raw, default)
    return default


def str_from_env(name: str, default: str = "", *, legacy_var: Optional[str] = None) -> str:
    raw = os.getenv(name)
    if raw is None and legacy_var:
        raw = os.getenv(legacy_var)
    if raw is None:
        return default
    return raw.strip() or default


def parse_id_list(raw: str) -> Set[int]:
    ids: Set[int] = set()
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            ids.add(int(chunk))
        except ValueError:
            logger.warning("Ignoring invalid id %s", chunk)
    return ids


def member_role_ids(member: discord.abc.User) -> Set[int]:
    roles: Iterable[discord.Role] = getattr(member, "roles", [])
    return {role.id for role in roles}


def is_admin(member: discord.abc.User, admin_role_ids: Iterable[int] = ()) -> bool:
    if isinstance(member, discord.Member):
        if member.guild_permissions.administrator:
            return True
        roles: Iterable[discord.Role] = getattr(member, "roles", [])
        if any(role.name.lower() == "admin" for role in roles):
            return True
        return bool(member_role_ids(member) & set(admin_role_ids))
    return False


__all__ = [
    "bool_from_env",
    "int_from_env",
    "is_admin",
    "member_role_ids",
    "parse_id_list",
    "str_from_env",
]
