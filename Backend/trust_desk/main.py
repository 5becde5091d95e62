import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trust_desk.api.analytics import router as analytics_router
from trust_desk.api.ledger import router as ledger_router
from trust_desk.api.parse import router as parse_router
from trust_desk.api.policy import router as policy_router
from trust_desk.api.requests import router as requests_router
from trust_desk.api.reset import router as reset_router
from trust_desk.core.config import Settings, get_settings
from trust_desk.core.exceptions import (
    ExternalServiceError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    PolicyError,
    TrustDeskError,
    ValidationError,
)
from trust_desk.core.logging_config import LogContext, configure_logging, get_logger
from trust_desk.services.desk import TrustDesk

logger = get_logger("api")

STATUS_CODES = {
    ValidationError: 400,
    InsufficientFundsError: 400,
    PolicyError: 400,
    NotFoundError: 404,
    InvalidStateError: 409,
    ExternalServiceError: 502,
}


def status_for(exc: TrustDeskError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


def create_app(desk: Optional[TrustDesk] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or (desk.settings if desk else get_settings())
    configure_logging(level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "desk", None) is None:
            app.state.desk = TrustDesk(settings)
            app.state.desk.load()
        yield
        app.state.desk.repository.close()

    app = FastAPI(title="Trust Desk: Beneficiary Distribution Review", lifespan=lifespan)
    app.state.desk = desk

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlation_id(request: Request, call_next):
        cid = request.headers.get("X-Correlation-ID") or uuid.uuid4().hex
        with LogContext.bind(correlation_id=cid):
            response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response

    @app.exception_handler(TrustDeskError)
    async def trust_desk_error(request: Request, exc: TrustDeskError):
        status = status_for(exc)
        logger.info("request_failed", extra={"path": request.url.path, "status": status, "code": exc.code})
        return JSONResponse(status_code=status, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) for err in exc.errors())
        return JSONResponse(
            status_code=400,
            content={"error": f"Invalid request body ({fields})", "code": ValidationError.code},
        )

    @app.get("/")
    def root():
        return {"status": "ok", "message": "Backend running. Visit /docs for API."}

    app.include_router(ledger_router, prefix="/api", tags=["ledger"])
    app.include_router(requests_router, prefix="/api", tags=["requests"])
    app.include_router(parse_router, prefix="/api", tags=["parse"])
    app.include_router(policy_router, prefix="/api", tags=["policy"])
    app.include_router(analytics_router, prefix="/api", tags=["analytics"])
    app.include_router(reset_router, prefix="/api", tags=["reset"])
    return app


app = create_app()
