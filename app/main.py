"""
FastAPI Application - Folio Identity API
Accounts, sessions and tokens for the Folio content platform
"""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.core.errors import IdentityError
from app.core.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)
from app.core.tokens import AccessTokenIssuer, SigningKeys
from app.tasks.queue import close_queue

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def load_signing_keys() -> SigningKeys:
    """
    Load the access token key pair from settings.

    Inline PEM values take precedence over key file paths.
    """
    if settings.JWT_PRIVATE_KEY or settings.JWT_PUBLIC_KEY:
        return SigningKeys.from_pem(
            settings.JWT_ISSUER,
            private_pem=settings.JWT_PRIVATE_KEY,
            public_pem=settings.JWT_PUBLIC_KEY,
        )
    return SigningKeys.from_files(
        settings.JWT_ISSUER,
        private_key_path=settings.JWT_PRIVATE_KEY_PATH,
        public_key_path=settings.JWT_PUBLIC_KEY_PATH,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup and shutdown events"""
    configure_logging()
    app.state.token_issuer = AccessTokenIssuer(load_signing_keys())
    logger.info(
        "api_starting",
        environment=settings.ENVIRONMENT,
        issuer=settings.JWT_ISSUER,
    )
    yield
    await close_queue()
    logger.info("api_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Identity and session service for the Folio content platform",
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every log line of a request with a request id."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    set_request_context(request_id)
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.exception_handler(IdentityError)
async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.kind.value},
        headers=headers,
    )


@app.exception_handler(TimeoutError)
async def timeout_error_handler(request: Request, exc: TimeoutError) -> JSONResponse:
    logger.warning("identity_operation_timed_out", path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable", "code": "timeout"},
    )


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint - API information"""
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint"""
    return {"status": "healthy"}


from app.api.v1 import router as api_v1_router  # noqa: E402

app.include_router(api_v1_router, prefix=settings.API_V1_STR)
