"""Entry point for the vault HTTP server."""

import time
import uuid
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from common.logging_config import setup_logging
from engine.config import EngineConfig
from engine.exceptions import (
    BlobMissingError,
    ConfigurationError,
    DuplicateIdError,
    IntegrityError,
    MalformedContainerError,
    NotFoundError,
    PayloadTooLargeError,
    StorageIOError,
    VaultError,
)
from engine.lifecycle import StorageLifecycleManager
from server import config as server_config
from server.rate_limit import RateLimitExceededError, SlidingWindowRateLimiter
from server.reconcile_task import ReconcileTask
from server.schemas.common import ErrorResponse
from server.routes import file_router

logger = setup_logging('server')

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; img-src 'self' data: https:"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}


def _error_response(
    request: Request,
    exc: Exception,
    status_code: int,
    code: str,
    server_error: bool = False,
) -> JSONResponse:
    request_id = getattr(request.state, 'request_id', 'unknown')
    message = f"{type(exc).__name__}: {exc} [request_id={request_id}] path={request.url.path}"
    if server_error:
        logger.error(message, exc_info=exc)
    else:
        logger.warning(message)
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(detail=str(exc), code=code).model_dump(),
    )


async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(request, exc, status.HTTP_404_NOT_FOUND, "FILE_NOT_FOUND")


async def blob_missing_handler(request: Request, exc: BlobMissingError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(f"Catalog/blob desync: {exc} [request_id={request_id}] path={request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=ErrorResponse(detail="Encrypted file not found", code="BLOB_MISSING").model_dump(),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError):
    return _error_response(
        request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTEGRITY_CHECK_FAILED", server_error=True
    )


async def malformed_container_handler(request: Request, exc: MalformedContainerError):
    return _error_response(
        request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "MALFORMED_CONTAINER", server_error=True
    )


async def payload_too_large_handler(request: Request, exc: PayloadTooLargeError):
    return _error_response(request, exc, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "PAYLOAD_TOO_LARGE")


async def duplicate_id_handler(request: Request, exc: DuplicateIdError):
    return _error_response(
        request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "DUPLICATE_ID", server_error=True
    )


async def storage_io_handler(request: Request, exc: StorageIOError):
    return _error_response(
        request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "STORAGE_IO_ERROR", server_error=True
    )


async def rate_limit_handler(request: Request, exc: RateLimitExceededError):
    response = _error_response(request, exc, status.HTTP_429_TOO_MANY_REQUESTS, "RATE_LIMITED")
    response.headers["Retry-After"] = str(exc.retry_after)
    return response


async def vault_exception_handler(request: Request, exc: VaultError):
    return _error_response(
        request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", server_error=True
    )


def create_app(
    engine_config: Optional[EngineConfig] = None,
    upload_limiter: Optional[SlidingWindowRateLimiter] = None,
    reconcile_interval_seconds: Optional[int] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    The storage engine is created in the startup hook. Without an explicit
    engine_config the master key and data directory are read from the
    environment (and a .env file); a missing or invalid key aborts startup.

    Args:
        engine_config: Engine configuration (tests inject one)
        upload_limiter: Upload rate limiter (defaults to UPLOAD_RATE_LIMIT per window)
        reconcile_interval_seconds: Period of the background reconcile task

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Encrypted File Vault",
        description="AES-256-GCM encrypted file storage service",
        version="1.0.0",
    )

    app.state.storage = None
    app.state.reconcile_task = None
    app.state.upload_limiter = upload_limiter or SlidingWindowRateLimiter(
        limit=server_config.UPLOAD_RATE_LIMIT,
        window_seconds=server_config.UPLOAD_RATE_WINDOW_SECONDS,
    )
    if reconcile_interval_seconds is None:
        reconcile_interval_seconds = server_config.RECONCILE_INTERVAL_SECONDS

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[server_config.CLIENT_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Middleware to log all HTTP requests and add security headers.
        """
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()

        logger.info(f"Request started: {request.method} {request.url.path} [request_id={request_id}]")

        response = await call_next(request)

        duration = time.time() - start_time

        logger.info(
            f"Request completed: {request.method} {request.url.path} "
            f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
        )

        response.headers["X-Request-ID"] = request_id
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)

        return response

    @app.on_event("startup")
    async def startup_event():
        """
        Load the master key, build the engine and recover crash residue.
        """
        logger.info("Vault server starting up...")

        config = engine_config
        if config is None:
            load_dotenv()
            try:
                config = EngineConfig.from_env()
            except ConfigurationError as e:
                logger.critical(f"Fatal configuration error: {e}")
                raise

        storage = StorageLifecycleManager.from_config(config)
        logger.info(f"Storage initialized at {config.data_dir}")

        storage.recover()
        app.state.storage = storage

        reconcile_task = ReconcileTask(storage, reconcile_interval_seconds)
        await reconcile_task.start()
        app.state.reconcile_task = reconcile_task

        logger.info("Encryption enabled with AES-256-GCM")

    @app.on_event("shutdown")
    async def shutdown_event():
        """
        Stop background tasks on application shutdown.
        """
        logger.info("Vault server shutting down...")

        if app.state.reconcile_task:
            await app.state.reconcile_task.stop()

    app.add_exception_handler(BlobMissingError, blob_missing_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(MalformedContainerError, malformed_container_handler)
    app.add_exception_handler(PayloadTooLargeError, payload_too_large_handler)
    app.add_exception_handler(DuplicateIdError, duplicate_id_handler)
    app.add_exception_handler(StorageIOError, storage_io_handler)
    app.add_exception_handler(RateLimitExceededError, rate_limit_handler)
    app.add_exception_handler(VaultError, vault_exception_handler)

    app.include_router(file_router)

    @app.get("/")
    async def root():
        """
        Root endpoint.
        """
        return {"message": "Encrypted File Vault API", "status": "running"}

    return app


app = create_app()


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "server.main:app",
        host=server_config.VAULT_HOST,
        port=server_config.VAULT_PORT,
    )


if __name__ == "__main__":
    main()
