"""HTTP API for player profiles, game settlement and admin tooling."""
from __future__ import annotations

import logging
import math
import re
from pathlib import Path
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict

from .config import LedgerSettings
from .ledger import Ledger, LedgerError, ValidationFailed

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_integer(value: Any) -> Optional[int]:
    """Parse ``value`` as a base-10 integer the way ``parseInt`` does.

    Leading digits of a string win and trailing characters are ignored.
    Finite floats are truncated. Anything else yields ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if not match:
            return None
        try:
            return int(match.group(1))
        except ValueError:
            # digit strings beyond the interpreter's int conversion limit
            return None
    return None


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def require_username(value: Any) -> str:
    username = clean_text(value)
    if not username:
        raise ValidationFailed("USERNAME_REQUIRED")
    return username


def require_balance(value: Any) -> int:
    balance = parse_integer(value)
    if balance is None or balance < 0:
        raise ValidationFailed("INVALID_BALANCE")
    return balance


def require_amount(value: Any) -> int:
    amount = parse_integer(value)
    if amount is None or amount <= 0:
        raise ValidationFailed("INVALID_AMOUNT")
    return amount


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SavePayload(_Payload):
    username: Any = None
    balance: Any = None


class GamePayload(_Payload):
    username: Any = None
    game: Any = None
    amount: Any = None
    desc: Any = None


class SetBalancePayload(_Payload):
    username: Any = None
    balance: Any = None
    note: Any = None


class DeletePayload(_Payload):
    username: Any = None


class ProfileResponse(BaseModel):
    ok: bool = True
    username: str
    balance: int


class OkResponse(BaseModel):
    ok: bool = True


class BalanceResponse(BaseModel):
    ok: bool = True
    balance: int


class UserSummary(BaseModel):
    username: str
    balance: int


class UsersResponse(BaseModel):
    ok: bool = True
    users: List[UserSummary]


class HistoryRecord(BaseModel):
    ts: str
    game: str
    delta: int
    desc: str


class UserDetailResponse(BaseModel):
    ok: bool = True
    username: str
    balance: int
    history: List[HistoryRecord]


def create_app(ledger: Ledger, settings: LedgerSettings) -> FastAPI:
    app = FastAPI(title="Casino Ledger", version="1.0.0")

    cors_origins = list(getattr(settings, "cors_origins", ["*"]) or [])
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    admin_token = getattr(settings, "api_admin_token", None)

    async def require_admin(request: Request) -> None:
        if not admin_token:
            return
        if request.headers.get("X-Admin-Token") != admin_token:
            raise LedgerError("ADMIN_TOKEN_REQUIRED", status_code=401)

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(_: Request, exc: LedgerError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.code})

    @app.exception_handler(RequestValidationError)
    async def request_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        logger.debug("Rejected malformed request: %s", exc)
        return JSONResponse(status_code=400, content={"ok": False, "error": "INVALID_REQUEST"})

    @app.get("/api/profile", response_model=ProfileResponse)
    async def get_profile(username: str = Query(default="")) -> ProfileResponse:
        name = require_username(username)
        with ledger.transaction() as store:
            player = ledger.get_or_create(store, name)
        return ProfileResponse(username=name, balance=player.balance)

    @app.post("/api/profile/save", response_model=OkResponse)
    async def save_profile(payload: Optional[SavePayload] = None) -> OkResponse:
        payload = payload or SavePayload()
        name = require_username(payload.username)
        balance = require_balance(payload.balance)
        with ledger.transaction() as store:
            ledger.record_save(store, name, balance)
        return OkResponse()

    @app.post("/api/game/charge", response_model=BalanceResponse)
    async def charge(payload: Optional[GamePayload] = None) -> BalanceResponse:
        payload = payload or GamePayload()
        name = require_username(payload.username)
        amount = require_amount(payload.amount)
        with ledger.transaction() as store:
            balance = ledger.charge(
                store, name, clean_text(payload.game), amount, clean_text(payload.desc)
            )
        return BalanceResponse(balance=balance)

    @app.post("/api/game/payout", response_model=BalanceResponse)
    async def payout(payload: Optional[GamePayload] = None) -> BalanceResponse:
        payload = payload or GamePayload()
        name = require_username(payload.username)
        amount = require_amount(payload.amount)
        with ledger.transaction() as store:
            balance = ledger.payout(
                store, name, clean_text(payload.game), amount, clean_text(payload.desc)
            )
        return BalanceResponse(balance=balance)

    @app.get("/api/admin/users", response_model=UsersResponse)
    async def list_users(_: Any = Depends(require_admin)) -> UsersResponse:
        with ledger.transaction() as store:
            users = ledger.list_users(store)
        return UsersResponse(
            users=[UserSummary(username=name, balance=balance) for name, balance in users]
        )

    @app.get("/api/admin/user-detail", response_model=UserDetailResponse)
    async def user_detail(
        username: str = Query(default=""), _: Any = Depends(require_admin)
    ) -> UserDetailResponse:
        name = require_username(username)
        with ledger.transaction() as store:
            player = ledger.get_user_detail(store, name)
        return UserDetailResponse(
            username=name,
            balance=player.balance,
            history=[HistoryRecord(**entry.to_dict()) for entry in player.history],
        )

    @app.post("/api/admin/set-balance", response_model=BalanceResponse)
    async def set_balance(
        payload: Optional[SetBalancePayload] = None, _: Any = Depends(require_admin)
    ) -> BalanceResponse:
        payload = payload or SetBalancePayload()
        name = require_username(payload.username)
        balance = require_balance(payload.balance)
        with ledger.transaction() as store:
            new_balance = ledger.admin_set_balance(store, name, balance, clean_text(payload.note))
        return BalanceResponse(balance=new_balance)

    @app.post("/api/admin/delete-user", response_model=OkResponse)
    async def delete_user(
        payload: Optional[DeletePayload] = None, _: Any = Depends(require_admin)
    ) -> OkResponse:
        payload = payload or DeletePayload()
        name = require_username(payload.username)
        with ledger.transaction() as store:
            ledger.admin_delete(store, name)
        return OkResponse()

    static_dir = getattr(settings, "static_dir", None)
    if static_dir:
        static_path = Path(static_dir)
        if static_path.is_dir():
            app.mount("/", StaticFiles(directory=static_path, html=True), name="static")
        else:
            logger.debug("Static directory %s not found; not serving static files", static_path)

    return app


def run_api(app: FastAPI, settings: LedgerSettings) -> None:
    """Run the FastAPI app using uvicorn."""
    import uvicorn  # Imported lazily to avoid mandatory dependency in tests

    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info",
        root_path=settings.api_root_path,
    )
    server = uvicorn.Server(config)
    server.run()


__all__ = ["create_app", "run_api", "parse_integer"]
