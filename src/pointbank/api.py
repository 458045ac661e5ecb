"""FastAPI application exposing sign-up, sign-in and the points ledger."""

from datetime import datetime
from typing import List, Optional, Union

import logging
from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

from pydantic import BaseModel, Field, StrictInt, StrictStr

from .auth import create_access_token, get_current_user_id
from .config import settings
from .errors import LedgerError
from .services import (
    TransactionKind,
    apply_transaction,
    authenticate,
    bootstrap,
    create_account,
    load_dashboard,
)


app = FastAPI(title=settings.api_title)

logger = logging.getLogger(__name__)

# Prometheus counter to track API requests by method, endpoint and status code
REQUEST_COUNTER = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)


@app.on_event("startup")
def initialize_database() -> None:
    logging.basicConfig(level=settings.log_level)
    bootstrap()


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming requests and their outcomes while updating metrics."""
    logger.info("request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status=str(response.status_code),
        ).inc()
        logger.info(
            "response %s %s status %s",
            request.method,
            request.url.path,
            response.status_code,
        )
        return response
    except Exception:
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status="500",
        ).inc()
        logger.exception(
            "error handling %s %s", request.method, request.url.path
        )
        raise


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Translate ledger failures into HTTP error responses."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


class Credentials(BaseModel):
    """Request body for sign-up and sign-in."""

    username: str
    password: str


class TokenResponse(BaseModel):
    """JWT access token for the signed-in user."""

    access_token: str
    token_type: str = "bearer"
    user_id: str


class TransactionRequest(BaseModel):
    """Request body for a deposit or withdrawal."""

    kind: TransactionKind
    amount: Union[StrictInt, StrictStr, None] = Field(None, description="Positive number of points")
    description: str = ""
    target_user_id: Optional[str] = Field(
        None, description="Account to change; defaults to the signed-in user"
    )


class TransactionEntry(BaseModel):
    """One row of a user's transaction history."""

    id: str
    amount: int
    description: str
    created_at: Optional[datetime] = None


class UserSummary(BaseModel):
    """Another account as listed on an admin dashboard."""

    id: str
    username: str
    points_balance: int


class DashboardResponse(BaseModel):
    """Profile, visible accounts and transaction history."""

    user_id: str
    username: str
    points_balance: int
    is_admin: bool
    users: List[UserSummary]
    transactions: List[TransactionEntry]


class TransactionCreated(BaseModel):
    """Identifier of the new transaction and the refreshed dashboard."""

    id: str
    dashboard: DashboardResponse


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/signup", response_model=TokenResponse)
def signup(payload: Credentials):
    """Create an account and sign it in."""
    user_id = create_account(payload.username, payload.password)
    return TokenResponse(access_token=create_access_token(user_id), user_id=user_id)


@app.post("/signin", response_model=TokenResponse)
def signin(payload: Credentials):
    user_id = authenticate(payload.username, payload.password)
    return TokenResponse(access_token=create_access_token(user_id), user_id=user_id)


@app.get("/dashboard", response_model=DashboardResponse)
def dashboard(user_id: str = Depends(get_current_user_id)):
    """Return the signed-in user's dashboard."""
    return load_dashboard(user_id)


@app.post("/transactions", response_model=TransactionCreated)
def post_transaction(
    payload: TransactionRequest, user_id: str = Depends(get_current_user_id)
):
    """Apply a deposit or withdrawal and return the refreshed dashboard."""

    transaction_id = apply_transaction(
        acting_user_id=user_id,
        kind=payload.kind,
        amount=payload.amount,
        description=payload.description,
        target_user_id=payload.target_user_id,
    )
    return TransactionCreated(id=transaction_id, dashboard=load_dashboard(user_id))
