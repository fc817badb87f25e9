"""FastAPI SMS webhook for Baintwallet (Twilio-compatible)."""

from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator
from xml.sax.saxutils import escape

from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.responses import Response

from baintwallet.api.rate_limiter import RateLimiter
from baintwallet.errors import GatewayError, NotProvisioned
from baintwallet.logutil import mask_identity
from baintwallet.session.interpreter import CommandInterpreter

logger = logging.getLogger("baintwallet.api")

RATE_LIMITED_REPLY = "⏳ Too many messages. Please wait a minute and try again."
ERROR_REPLY = "Sorry, an error occurred. Please try again later."


def twiml(message: str) -> str:
    """Wrap a reply in a TwiML ``<Message>`` document."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        "<Response>\n"
        f"  <Message>{escape(message)}</Message>\n"
        "</Response>"
    )


def create_app(
    interpreter: CommandInterpreter | None = None,
    *,
    base: Path | None = None,
    messages_per_minute: int = 10,
    wallet_api: bool = False,
    api_requests: int = 100,
    api_window_seconds: float = 900,
) -> FastAPI:
    """Build the webhook app.

    Parameters
    ----------
    interpreter:
        Use this interpreter directly.  When omitted, a
        :class:`~baintwallet.service.WalletService` is loaded from *base* on
        startup and shut down with the app.
    messages_per_minute:
        Per-sender limit on ``/sms/webhook``.
    wallet_api:
        Expose ``GET /api/wallet/{identity}``.  Unauthenticated; keep it
        off outside internal deployments.
    api_requests, api_window_seconds:
        Per-client-address limit on the wallet API.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if interpreter is not None:
            app.state.interpreter = interpreter
            yield
            return

        from baintwallet.service import WalletService

        service = await WalletService.load(base=base)
        app.state.interpreter = service.interpreter
        logger.info(f"Webhook started for '{service.config.name}'")
        try:
            yield
        finally:
            await service.shutdown()

    app = FastAPI(title="Baintwallet SMS Gateway", lifespan=lifespan)
    app.state.limiter = RateLimiter(max_count=messages_per_minute, window_seconds=60)
    app.state.api_limiter = RateLimiter(max_count=api_requests, window_seconds=api_window_seconds)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "Baintwallet SMS to EVM",
        }

    @app.post("/sms/webhook")
    async def sms_webhook(
        request: Request,
        From: str = Form(""),
        Body: str = Form(""),
    ):
        if not From:
            raise HTTPException(status_code=400, detail="Missing sender")
        limiter: RateLimiter = request.app.state.limiter
        if not limiter.check_and_record(From):
            logger.warning(
                f"Rate limited {mask_identity(From)} for {limiter.retry_after(From):.0f}s"
            )
            reply = RATE_LIMITED_REPLY
        else:
            try:
                reply = await request.app.state.interpreter.handle(From, Body)
            except Exception:
                logger.exception(f"Webhook failed for {mask_identity(From)}")
                reply = ERROR_REPLY
        return Response(content=twiml(reply), media_type="text/xml")

    if wallet_api:

        @app.get("/api/wallet/{identity}")
        async def wallet_info(identity: str, request: Request):
            client = request.client.host if request.client else "unknown"
            api_limiter: RateLimiter = request.app.state.api_limiter
            if not api_limiter.check_and_record(client):
                retry_after = api_limiter.retry_after(client)
                logger.warning(f"Wallet API rate limited {client} for {retry_after:.0f}s")
                raise HTTPException(
                    status_code=429,
                    detail="Too many requests",
                    headers={"Retry-After": str(math.ceil(retry_after))},
                )
            try:
                snapshot = await request.app.state.interpreter.describe_wallet(identity)
            except NotProvisioned:
                raise HTTPException(status_code=404, detail="No wallet found for this number")
            except GatewayError:
                raise HTTPException(status_code=502, detail="Balance unavailable")
            return {
                "address": snapshot.address,
                "balance": str(snapshot.balance),
                "symbol": snapshot.symbol,
                "chain": snapshot.chain,
            }

    return app
