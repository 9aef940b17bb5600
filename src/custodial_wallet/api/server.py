"""FastAPI adapter exposing the wallet service over HTTP.

Authentication happens upstream; the gateway forwards the caller's user id
in the ``x-user-id`` header.
"""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

import uvicorn
from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from custodial_wallet.config import WalletConfig
from custodial_wallet.errors import NotFoundError, WalletError
from custodial_wallet.wallet.manager import WalletService

logger = logging.getLogger("custodial_wallet.api")

ServiceFactory = Callable[[], Awaitable[WalletService]]

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class SendRequest(BaseModel):
    to: str = ""
    amount: str = ""


def _require_user(user_id: Optional[str]) -> str:
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=400, detail="User ID is required")
    return user_id.strip()


def create_app(service_factory: ServiceFactory) -> FastAPI:
    """Build the app; the service is created on startup and closed on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.service = await service_factory()
        logger.info("Wallet API started")
        try:
            yield
        finally:
            await app.state.service.close()

    app = FastAPI(title="Custodial Wallet API", lifespan=lifespan)

    def _service(request: Request) -> WalletService:
        return request.app.state.service

    @app.exception_handler(WalletError)
    async def wallet_error_handler(request: Request, exc: WalletError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "message": exc.message},
        )

    # ------------------------------------------------------------------
    # API routes
    # ------------------------------------------------------------------

    @app.post("/api/wallet")
    async def api_create_wallet(
        request: Request, x_user_id: Optional[str] = Header(None)
    ):
        user_id = _require_user(x_user_id)
        wallet = await _service(request).create_wallet(user_id)
        return wallet.model_dump(mode="json")

    @app.get("/api/wallet")
    async def api_get_wallet(
        request: Request, x_user_id: Optional[str] = Header(None)
    ):
        user_id = _require_user(x_user_id)
        try:
            wallet = await _service(request).get_wallet(user_id)
        except NotFoundError:
            return {"wallet": None}
        return wallet.model_dump(mode="json")

    @app.post("/api/wallet/send")
    async def api_send(
        body: SendRequest,
        request: Request,
        x_user_id: Optional[str] = Header(None),
    ):
        user_id = _require_user(x_user_id)
        if not body.to or not body.amount:
            raise HTTPException(
                status_code=400, detail="Recipient address and amount are required"
            )
        receipt = await _service(request).send_transaction(user_id, body.to, body.amount)
        return receipt.model_dump(mode="json")

    @app.get("/api/wallet/transactions")
    async def api_transactions(
        request: Request,
        x_user_id: Optional[str] = Header(None),
        limit: int = Query(50, ge=1, le=500),
    ):
        user_id = _require_user(x_user_id)
        txs = await _service(request).get_transactions(user_id, limit)
        return [tx.model_dump(mode="json") for tx in txs]

    @app.post("/api/wallet/sync/{tx_hash}")
    async def api_refresh(tx_hash: str, request: Request):
        if not _TX_HASH_RE.match(tx_hash):
            raise HTTPException(status_code=400, detail="Invalid transaction hash")
        receipt = await _service(request).refresh_transaction(tx_hash)
        return receipt.model_dump(mode="json") if receipt else None

    @app.post("/api/wallet/sync-incoming")
    async def api_sync_incoming(
        request: Request, x_user_id: Optional[str] = Header(None)
    ):
        user_id = _require_user(x_user_id)
        result = await _service(request).sync_incoming_transactions(user_id)
        return result.model_dump(mode="json")

    return app


# ------------------------------------------------------------------
# Runner
# ------------------------------------------------------------------


def run_server(config: WalletConfig) -> None:
    app = create_app(lambda: WalletService.open(config))
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level="info")
