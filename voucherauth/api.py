"""
Voucher relay service.

Any holder of a signed voucher may submit it here; the relay recovers the
signer, enforces authority and replay rules, and applies the transition.
Run with: uvicorn voucherauth.api:app
"""

from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .config import (
    APPLY_RPM,
    DB_PATH,
    FIRST_ITEM_ID,
    LOG_JSON,
    LOG_LEVEL,
    STORE_BACKEND,
    is_debug,
    is_production,
    load_domain,
    load_signers,
    validate_config,
)
from .db import Database, SqliteEventLog, SqliteItemRegistry, SqliteReplayStore
from .errors import FailureCode, VoucherError
from .hashing import voucher_digest
from .logging_config import audit_log, configure_logging, set_request_id
from .models import (
    AdvancementSubmission,
    CreationSubmission,
    DomainResponse,
    EventsResponse,
    ItemResponse,
    VerifyResponse,
)
from .processor import VoucherProcessor
from .rate_limit import RateLimiter
from .registry import InMemoryItemRegistry
from .roles import MINTER_ROLE, InMemoryAccessControl, TrustOracle
from .util import bytes_to_hex, normalize_address

app = FastAPI(title="Voucher Authorization Relay", debug=is_debug())

HTTP_STATUS = {
    FailureCode.MALFORMED_SIGNATURE: 400,
    FailureCode.INVALID_SIGNATURE_ENCODING: 400,
    FailureCode.UNAUTHORIZED_SIGNER: 403,
    FailureCode.VOUCHER_EXPIRED: 403,
    FailureCode.STALE_OR_FUTURE_SEQUENCE: 409,
    FailureCode.INVALID_STAGE_TRANSITION: 409,
    FailureCode.UNKNOWN_ITEM: 404,
}

apply_limiter = RateLimiter(APPLY_RPM)
PROCESSOR: Optional[VoucherProcessor] = None
ROLES: Optional[InMemoryAccessControl] = None


def build_processor() -> VoucherProcessor:
    """Wire a processor from configuration and seed the signing role."""
    global ROLES
    ROLES = InMemoryAccessControl()
    for signer in load_signers():
        ROLES.grant_role(MINTER_ROLE, signer)

    if STORE_BACKEND == "sqlite":
        db = Database(DB_PATH)
        db.init_schema()
        return VoucherProcessor(
            load_domain(),
            SqliteItemRegistry(db, first_item_id=FIRST_ITEM_ID),
            TrustOracle(ROLES),
            replay_store=SqliteReplayStore(db),
            event_sink=SqliteEventLog(db),
        )

    return VoucherProcessor(
        load_domain(),
        InMemoryItemRegistry(first_item_id=FIRST_ITEM_ID),
        TrustOracle(ROLES),
    )


@app.on_event("startup")
def _startup():
    global PROCESSOR
    configure_logging(LOG_LEVEL, json_format=LOG_JSON)

    problems = validate_config()
    if problems:
        raise RuntimeError(f"Invalid configuration: {problems}")
    if is_production() and STORE_BACKEND == "memory":
        audit_log.security_event(
            "volatile_replay_store",
            severity="high",
            detail="consumed vouchers will be replayable after a restart",
        )

    PROCESSOR = build_processor()
    apply_limiter.reset()


@app.middleware("http")
async def _request_id(request: Request, call_next):
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(VoucherError)
async def _voucher_error(request: Request, exc: VoucherError):
    return JSONResponse(status_code=HTTP_STATUS[exc.code], content={"detail": exc.to_dict()})


def _rate_limit(request: Request) -> None:
    client_id = request.client.host if request.client else "unknown"
    result = apply_limiter.check(client_id)
    if not result.allowed:
        audit_log.rate_limit_exceeded(client_id, request.url.path)
        raise HTTPException(
            429, "RATE_LIMIT",
            headers={"Retry-After": str(int(result.retry_after or 0) + 1)},
        )


def _voucher(body):
    try:
        return body.to_voucher()
    except ValueError as e:
        raise HTTPException(422, str(e))


@app.get("/domain", response_model=DomainResponse)
def get_domain():
    domain = PROCESSOR.domain
    return DomainResponse(separator=domain.separator_hex, **domain.to_dict())


@app.post("/vouchers/creation/verify", response_model=VerifyResponse)
def verify_creation(req: CreationSubmission):
    voucher = _voucher(req.voucher)
    signer = PROCESSOR.verify_creation_voucher(voucher, req.signature)
    return VerifyResponse(
        signer=signer,
        digest=bytes_to_hex(voucher_digest(PROCESSOR.domain, voucher)),
        authorized=PROCESSOR.trust_oracle.is_authorized(signer),
    )


@app.post("/vouchers/advancement/verify", response_model=VerifyResponse)
def verify_advancement(req: AdvancementSubmission):
    voucher = _voucher(req.voucher)
    signer = PROCESSOR.verify_advancement_voucher(voucher, req.signature)
    return VerifyResponse(
        signer=signer,
        digest=bytes_to_hex(voucher_digest(PROCESSOR.domain, voucher)),
        authorized=PROCESSOR.trust_oracle.is_authorized(signer),
    )


@app.post("/vouchers/creation")
def apply_creation(req: CreationSubmission, request: Request):
    _rate_limit(request)
    event = PROCESSOR.apply_creation(_voucher(req.voucher), req.signature)
    return event.to_dict()


@app.post("/vouchers/advancement")
def apply_advancement(req: AdvancementSubmission, request: Request):
    _rate_limit(request)
    event = PROCESSOR.apply_advancement(_voucher(req.voucher), req.signature)
    return event.to_dict()


@app.get("/sequence/{identity}")
def get_sequence(identity: str):
    try:
        identity = normalize_address(identity, "identity")
    except ValueError as e:
        raise HTTPException(422, str(e))
    return {"identity": identity, "sequence": PROCESSOR.current_sequence(identity)}


@app.get("/stage/{item_id}")
def get_stage(item_id: int):
    return {"item_id": item_id, "stage": PROCESSOR.current_stage(item_id)}


@app.get("/items/{item_id}", response_model=ItemResponse)
def get_item(item_id: int):
    registry = PROCESSOR.registry
    owner = registry.owner_of(item_id)
    if owner is None:
        raise HTTPException(404, "NOT_FOUND")
    return ItemResponse(
        item_id=item_id,
        owner=owner,
        stage=PROCESSOR.current_stage(item_id),
        auxiliary=registry.auxiliary(item_id),
    )


@app.get("/events", response_model=EventsResponse)
def get_events(
    event_type: Optional[str] = None,
    item_id: Optional[int] = None,
    recipient: Optional[str] = None,
):
    events = PROCESSOR.events.query(event_type=event_type, item_id=item_id, recipient=recipient)
    return EventsResponse(events=[e.to_dict() for e in events])
