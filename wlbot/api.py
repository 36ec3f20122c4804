"""HTTP API served next to the bot for the trusted backend."""

from __future__ import annotations

import hmac
import json
import logging
from typing import Any, Dict, Mapping, Optional

from aiohttp import web

from .errors import (
    DuplicateEntry,
    EntryNotFound,
    InvalidArgument,
    PermissionDenied,
    RegistryError,
    SlotLimitExceeded,
    UpstreamUnavailable,
)
from .export import render_csv
from .models import FREEMINT, Entry
from .registry import Capabilities, SlotAccountant, normalize_list_kind

logger = logging.getLogger("wlbot.api")

API_KEY_HEADER = "api-key"
PUBLIC_PATHS = frozenset({"/health"})
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": f"Content-Type, {API_KEY_HEADER}",
}

ERROR_STATUS = (
    (InvalidArgument, 400),
    (DuplicateEntry, 400),
    (SlotLimitExceeded, 400),
    (EntryNotFound, 404),
    (PermissionDenied, 403),
    (UpstreamUnavailable, 503),
)
ERROR_MESSAGES = {
    DuplicateEntry: "Wallet already registered",
    EntryNotFound: "Old wallet not found",
    PermissionDenied: "Unauthorized",
    UpstreamUnavailable: "Registry temporarily unavailable",
}
INTERNAL_ERROR_MESSAGE = "Internal server error"

ACCOUNTANT_KEY = web.AppKey("accountant", SlotAccountant)
API_KEY_KEY = web.AppKey("api_key", str)


def entry_to_json(entry: Entry) -> Dict[str, Any]:
    return {
        "discordId": entry.owner_id,
        "walletAddress": entry.address,
        "listKind": entry.list_kind,
        "registeredViaCode": entry.via_code,
        "maxWhitelistEntries": entry.max_slots,
    }


def status_for(exc: RegistryError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


def _error_response(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


@web.middleware
async def auth_middleware(request: web.Request, handler):
    if request.path in PUBLIC_PATHS:
        return await handler(request)
    expected = request.app[API_KEY_KEY]
    provided = request.headers.get(API_KEY_HEADER, "")
    if not expected or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Rejected %s %s from %s: bad api-key", request.method, request.path, request.remote)
        return _error_response(403, "Unauthorized")
    return await handler(request)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except RegistryError as exc:
        status = status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, exc)
        message = ERROR_MESSAGES.get(type(exc)) or (str(exc) if status < 500 else INTERNAL_ERROR_MESSAGE)
        return _error_response(status, message)
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return _error_response(500, INTERNAL_ERROR_MESSAGE)


async def _read_body(request: web.Request) -> Mapping[str, Any]:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidArgument("Request body must be JSON.") from exc
    if not isinstance(payload, Mapping):
        raise InvalidArgument("Request body must be a JSON object.")
    return payload


def _required(payload: Mapping[str, Any], name: str) -> str:
    value = payload.get(name)
    if value is None or not str(value).strip():
        raise InvalidArgument(f"Missing {name}")
    return str(value).strip()


def _query_list_kind(request: web.Request) -> Optional[str]:
    raw = request.query.get("listKind")
    return normalize_list_kind(raw) if raw else None


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "service": "wlbot"})


async def list_wallets(request: web.Request) -> web.Response:
    entries = await request.app[ACCOUNTANT_KEY].list_entries(_query_list_kind(request))
    return web.json_response([entry_to_json(entry) for entry in entries])


async def add_wallet(request: web.Request) -> web.Response:
    payload = await _read_body(request)
    owner_id = _required(payload, "discordId")
    address = _required(payload, "walletAddress")
    list_kind = normalize_list_kind(payload.get("listKind"))
    # The backend is trusted to have checked eligibility itself.
    await request.app[ACCOUNTANT_KEY].add_entry(
        owner_id,
        address,
        list_kind,
        Capabilities.trusted(),
        enforce_limit=False,
    )
    return web.json_response({"success": True, "message": "Wallet added"})


async def replace_wallet(request: web.Request) -> web.Response:
    payload = await _read_body(request)
    owner_id = _required(payload, "discordId")
    old_wallet = _required(payload, "oldWallet")
    new_wallet = _required(payload, "newWallet")
    list_kind = normalize_list_kind(payload.get("listKind"))
    await request.app[ACCOUNTANT_KEY].replace_entry(
        owner_id,
        old_wallet,
        new_wallet,
        list_kind,
        Capabilities.trusted(),
    )
    return web.json_response({"success": True, "message": "Wallet replaced"})


async def export_wallets(request: web.Request) -> web.Response:
    list_kind = _query_list_kind(request)
    entries = await request.app[ACCOUNTANT_KEY].export_entries(Capabilities.trusted(), list_kind)
    return web.Response(
        text=render_csv(entries),
        content_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={list_kind or 'whitelist'}.csv"},
    )


async def check_freemint(request: web.Request) -> web.Response:
    owner_id = request.match_info["discordId"]
    has_free_mint = await request.app[ACCOUNTANT_KEY].has_entries(owner_id, FREEMINT)
    return web.json_response({"hasFreeMint": has_free_mint})


def create_app(accountant: SlotAccountant, *, api_key: str) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, auth_middleware, error_middleware])
    app[ACCOUNTANT_KEY] = accountant
    app[API_KEY_KEY] = api_key
    app.router.add_get("/health", health)
    app.router.add_get("/whitelist", list_wallets)
    app.router.add_post("/whitelist", add_wallet)
    app.router.add_post("/replacewhitelist", replace_wallet)
    app.router.add_get("/exportwhitelist", export_wallets)
    app.router.add_get("/freemint/check/{discordId}", check_freemint)
    return app


async def start_api(app: web.Application, *, host: str, port: int) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("HTTP API listening on %s:%s", host, port)
    return runner


__all__ = [
    "API_KEY_HEADER",
    "create_app",
    "entry_to_json",
    "start_api",
    "status_for",
]
