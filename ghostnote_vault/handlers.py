"""Vault RPC handlers.

JSON-over-HTTP binding of the vault command surface for the UI layer.
Blocking commands run in the default executor so Argon2 and re-keying
never stall the event loop.
"""
import asyncio
import logging
import functools
from typing import Any, Callable

import orjson
from aiohttp import web

from .exceptions import (
    AlreadyInitializedError,
    AuthenticationError,
    ConfigurationError,
    FormatError,
    LockedError,
    NotInitializedError,
    VaultError,
    VaultIOError,
)
from .vault.autolock import AutoLockScheduler
from .vault.service import VaultService

logger = logging.getLogger("ghostnote.vault")

VAULT_SERVICE = web.AppKey("vault_service", VaultService)
VAULT_SCHEDULER = web.AppKey("vault_scheduler", AutoLockScheduler)

# most specific first
_ERROR_STATUS = (
    (AuthenticationError, 401, "authentication"),
    (LockedError, 423, "locked"),
    (AlreadyInitializedError, 409, "already_initialized"),
    (NotInitializedError, 409, "not_initialized"),
    (FormatError, 422, "format"),
    (VaultIOError, 500, "io"),
    (ConfigurationError, 500, "configuration"),
)


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=lambda d: orjson.dumps(d).decode())


def error_response(err: Exception) -> web.Response:
    if isinstance(err, ValueError) and not isinstance(err, VaultError):
        return json_response({"error": "invalid_request", "message": str(err)}, 400)
    for exc_type, status, kind in _ERROR_STATUS:
        if isinstance(err, exc_type):
            return json_response({"error": kind, "message": str(err)}, status)
    return json_response({"error": "vault", "message": str(err)}, 500)


async def _body(request: web.Request, *fields: str) -> list:
    raw = await request.read()
    try:
        data = orjson.loads(raw) if raw else {}
    except orjson.JSONDecodeError as err:
        raise web.HTTPBadRequest(text=f"Invalid JSON body: {err}") from err
    if not isinstance(data, dict):
        raise web.HTTPBadRequest(text="JSON body must be an object")
    missing = [f for f in fields if f not in data]
    if missing:
        raise web.HTTPBadRequest(text=f"Missing field(s): {', '.join(missing)}")
    return [data[f] for f in fields]


class VaultHandler:
    """Route handlers bound to one ``VaultService``."""

    def __init__(self, service: VaultService):
        self.service = service

    async def _call(self, fn: Callable, *args) -> web.Response:
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, functools.partial(fn, *args))
        except (VaultError, ValueError) as err:
            return error_response(err)
        if result is None:
            result = {"ok": True}
        return json_response(result)

    async def is_setup(self, request: web.Request) -> web.Response:
        return json_response({"initialized": self.service.is_setup()})

    async def setup(self, request: web.Request) -> web.Response:
        password, = await _body(request, "password")
        return await self._call(
            lambda: {"recovery_secret": self.service.setup(password)}
        )

    async def unlock(self, request: web.Request) -> web.Response:
        password, = await _body(request, "password")
        return await self._call(self.service.unlock, password)

    async def lock(self, request: web.Request) -> web.Response:
        return await self._call(self.service.lock)

    async def status(self, request: web.Request) -> web.Response:
        return await self._call(self.service.status)

    async def touch(self, request: web.Request) -> web.Response:
        return await self._call(self.service.touch)

    async def recover(self, request: web.Request) -> web.Response:
        secret, new_password = await _body(request, "recovery_secret", "new_password")
        return await self._call(
            lambda: {"recovery_secret": self.service.recover(secret, new_password)}
        )

    async def change_password(self, request: web.Request) -> web.Response:
        current, new_password = await _body(request, "current_password", "new_password")
        return await self._call(
            lambda: {
                "recovery_secret": self.service.change_password(current, new_password)
            }
        )

    async def set_timeout(self, request: web.Request) -> web.Response:
        seconds, = await _body(request, "seconds")
        if not isinstance(seconds, int) or isinstance(seconds, bool) or seconds < 1:
            raise web.HTTPBadRequest(text="seconds must be a positive integer")
        return await self._call(self.service.set_lock_timeout, seconds)


def setup_vault(app: web.Application, service: VaultService, prefix: str = "/vault") -> None:
    """Register vault routes and tie the auto-lock scheduler to the app lifecycle."""
    handler = VaultHandler(service)
    scheduler = AutoLockScheduler(service.state)
    app[VAULT_SERVICE] = service
    app[VAULT_SCHEDULER] = scheduler
    app.router.add_routes([
        web.get(f"{prefix}/setup", handler.is_setup),
        web.post(f"{prefix}/setup", handler.setup),
        web.post(f"{prefix}/unlock", handler.unlock),
        web.post(f"{prefix}/lock", handler.lock),
        web.get(f"{prefix}/status", handler.status),
        web.post(f"{prefix}/touch", handler.touch),
        web.post(f"{prefix}/recover", handler.recover),
        web.post(f"{prefix}/password", handler.change_password),
        web.post(f"{prefix}/timeout", handler.set_timeout),
    ])

    async def _start_scheduler(app: web.Application) -> None:
        scheduler.start()

    async def _stop_scheduler(app: web.Application) -> None:
        await scheduler.stop()
        service.close()

    app.on_startup.append(_start_scheduler)
    app.on_cleanup.append(_stop_scheduler)
    logger.debug("Vault routes registered under %s", prefix)
