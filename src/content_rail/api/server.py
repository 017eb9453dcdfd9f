"""
CONTENT RAIL - FastAPI Server

HTTP surface over the pay-per-use content ledger. The caller identity is
resolved from the X-API-Key header; request bodies never name the caller.

Endpoints:
- POST /content - Register content
- GET /content - List content ids
- GET /content/{id} - Content record
- POST /content/{id}/access - Buy units of content from escrow
- POST /content/{id}/earnings/withdraw - Withdraw creator earnings
- POST /escrow/deposit - Credit escrow
- POST /escrow/withdraw - Withdraw escrow
- GET /escrow/{identity}, /earnings/{identity}, /usage/{identity}/{id} - Balances
- GET /events, /events/verify - Signed notification log
- GET /metrics - Ledger metrics
"""

import base64
import binascii
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..config import RailConfig
from ..core.errors import LedgerError
from ..core.events import EventSigner
from ..engine.rail import ContentRail
from ..logging_utils import configure_logging
from ..persistence.database import get_database
from ..persistence.repository import LedgerRepository

logger = structlog.get_logger()

ERROR_STATUS = {
    "NotFound": 404,
    "NotCreator": 403,
    "AlreadyRegistered": 409,
    "TransferFailed": 502,
}


# ============================================================================
# Pydantic Models
# ============================================================================

class RegisterContentRequest(BaseModel):
    """Request to register content."""
    content_id: int = Field(..., description="Content id (uint256)")
    rate_per_unit: int = Field(..., description="Price per unit, greater than zero")
    max_units: int = Field(default=0, description="Per-user cap, 0 = unlimited")
    title: str = Field(..., description="Display title")
    data: str = Field(default="", description="Opaque content reference, base64")


class DepositRequest(BaseModel):
    """Request to credit escrow."""
    amount: int = Field(..., description="Amount already taken into custody")


class AccessRequest(BaseModel):
    """Request to buy units of content."""
    units: int = Field(..., description="Units to buy")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    contents: int
    events: int
    uptime_seconds: float


# ============================================================================
# Application State
# ============================================================================

class AppState:
    """Application state container."""

    def __init__(self, config: RailConfig):
        self.config = config
        self.repository = LedgerRepository(get_database(config.database_url))
        self.rail = ContentRail.from_repository(
            self.repository,
            signer=EventSigner(config.event_signing_key),
        )


app_state: Optional[AppState] = None


# ============================================================================
# Application Factory
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global app_state
    config = RailConfig.from_env()
    configure_logging(config.log_level, config.json_logs)
    logger.info("content_rail_starting", version=__version__)
    app_state = AppState(config)
    yield
    app_state.repository.db.close()
    app_state = None
    logger.info("content_rail_stopping")


def create_app(config: Optional[RailConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or RailConfig.from_env()
    application = FastAPI(
        title="Content Rail",
        description="Pay-per-use content access ledger: escrow, usage caps and creator earnings.",
        version=__version__,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        return JSONResponse(
            status_code=ERROR_STATUS.get(exc.code, 400),
            content=exc.to_dict(),
        )

    return application


app = create_app()


# ============================================================================
# Dependencies
# ============================================================================

def get_state() -> AppState:
    """Get application state."""
    if app_state is None:
        raise HTTPException(status_code=503, detail="Application not initialized")
    return app_state


def get_caller(
    x_api_key: str = Header(..., alias="X-API-Key"),
    state: AppState = Depends(get_state),
) -> str:
    """Resolve the API key to the caller identity."""
    identity = state.config.identity_for_key(x_api_key)
    if identity is None:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return identity


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(state: AppState = Depends(get_state)):
    """Health check endpoint."""
    uptime = (datetime.now(timezone.utc) - state.rail.start_time).total_seconds()
    return HealthResponse(
        status="healthy",
        version=__version__,
        contents=state.rail.get_content_count(),
        events=len(state.rail.events),
        uptime_seconds=uptime,
    )


@app.post("/content", status_code=201, tags=["Catalog"])
async def register_content(
    request: RegisterContentRequest,
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    """Register content owned by the caller."""
    try:
        data = base64.b64decode(request.data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="data must be base64")

    record = state.rail.register_content(
        caller,
        request.content_id,
        request.rate_per_unit,
        request.max_units,
        request.title,
        data,
    )
    return record.to_dict()


@app.get("/content", tags=["Catalog"])
async def get_all_content_ids(
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    """All content ids in registration order."""
    ids = state.rail.get_all_content_ids()
    return {"total": len(ids), "content_ids": ids}


@app.get("/content/{content_id}", tags=["Catalog"])
async def get_content_data(
    content_id: int,
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    """A content record."""
    return state.rail.get_content_data(content_id).to_dict()


@app.get("/content/{content_id}/quote", tags=["Access"])
async def quote(
    content_id: int,
    units: int,
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    """Price units of content without buying them."""
    return {
        "content_id": content_id,
        "units": units,
        "total_cost": state.rail.quote(content_id, units),
    }


@app.post("/content/{content_id}/access", tags=["Access"])
async def access_content(
    content_id: int,
    request: AccessRequest,
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    """Buy units of content out of the caller's escrow."""
    return state.rail.access_content(caller, content_id, request.units).to_dict()


@app.post("/content/{content_id}/earnings/withdraw", tags=["Earnings"])
async def withdraw_earnings(
    content_id: int,
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    """
    Withdraw the caller's earnings through one of their content ids.

    Pays out everything the caller has earned across all their content.
    """
    amount = state.rail.withdraw_earnings(caller, content_id)
    return {"creator": caller, "content_id": content_id, "amount": amount}


@app.post("/escrow/deposit", tags=["Escrow"])
async def deposit_to_escrow(
    request: DepositRequest,
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    """Credit the caller's escrow."""
    balance = state.rail.deposit_to_escrow(caller, request.amount)
    return {"identity": caller, "balance": balance}


@app.post("/escrow/withdraw", tags=["Escrow"])
async def withdraw_escrow(
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    """Pay out the caller's whole escrow balance."""
    amount = state.rail.withdraw_escrow(caller)
    return {"identity": caller, "amount": amount}


@app.get("/escrow/{identity}", tags=["Escrow"])
async def get_escrow_balance(
    identity: str,
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    return {"identity": identity, "balance": state.rail.get_escrow_balance(identity)}


@app.get("/earnings/{identity}", tags=["Earnings"])
async def get_earnings_balance(
    identity: str,
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    return {"identity": identity, "balance": state.rail.get_earnings_balance(identity)}


@app.get("/usage/{identity}/{content_id}", tags=["Access"])
async def get_user_usage(
    identity: str,
    content_id: int,
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    return {
        "identity": identity,
        "content_id": content_id,
        "units": state.rail.get_user_usage(identity, content_id),
    }


@app.get("/events", tags=["Audit"])
async def get_events(
    limit: int = 100,
    event_type: Optional[str] = None,
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    """Most recent ledger notifications."""
    events: List[Dict[str, Any]] = state.rail.events.export()
    if event_type:
        events = [e for e in events if e["event_type"] == event_type]
    events = events[-limit:] if limit > 0 else []
    return {"total": len(events), "events": events}


@app.get("/events/verify", tags=["Audit"])
async def verify_events(
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    """Verify hash links and signatures of the event log."""
    valid, error = state.rail.verify_event_log()
    return {
        "valid": valid,
        "error": error,
        "length": len(state.rail.events),
        "merkle_root": state.rail.events.merkle_root(),
        "conservation": state.rail.audit_conservation(),
    }


@app.get("/metrics", tags=["Monitoring"])
async def get_metrics(
    state: AppState = Depends(get_state),
    caller: str = Depends(get_caller),
):
    return state.rail.get_metrics()


@app.get("/public-key", tags=["Cryptography"])
async def get_public_key(state: AppState = Depends(get_state)):
    """Public key for verifying event signatures."""
    signer = state.rail.events.signer
    return {
        "key_id": signer.key_id,
        "algorithm": "Ed25519",
        "public_key_pem": signer.get_public_key_pem(),
    }


# ============================================================================
# Run
# ============================================================================

def run():
    """Run the server."""
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(
        "content_rail.api.server:app",
        host="0.0.0.0",
        port=port,
        reload=os.environ.get("DEBUG", "false").lower() == "true",
    )


if __name__ == "__main__":
    run()
