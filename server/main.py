"""Entry point for the upload server."""

import time
import uuid
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from common.exceptions import (
    ChunkUploadError,
    InvalidChunkError,
    ReassemblyError,
    SessionConflictError,
    UnknownSessionError,
)
from common.logging_config import setup_logging
from server.chunk_storage import ChunkStore
from server.cleanup_task import SessionSweeper
from server.config import ServerSettings, load_settings
from server.reassembly import ReassemblyEngine
from server.routes import upload_router
from server.session_registry import SessionRegistry
from server.upload_service import UploadService

logger = setup_logging('server')


def _request_id(request: Request) -> str:
    return getattr(request.state, 'request_id', 'unknown')


def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "code": code}
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map upload errors to JSON failure responses."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.warning(
            f"Malformed request: {exc.errors()} [request_id={_request_id(request)}] path={request.url.path}"
        )
        return _error(status.HTTP_400_BAD_REQUEST, "Malformed chunk upload request", "INVALID_METADATA")

    @app.exception_handler(InvalidChunkError)
    async def invalid_chunk_handler(request: Request, exc: InvalidChunkError):
        logger.warning(
            f"Invalid chunk: {exc} [request_id={_request_id(request)}] path={request.url.path}"
        )
        return _error(status.HTTP_400_BAD_REQUEST, str(exc), "INVALID_CHUNK")

    @app.exception_handler(UnknownSessionError)
    async def unknown_session_handler(request: Request, exc: UnknownSessionError):
        logger.info(
            f"Unknown upload session {exc.upload_id} [request_id={_request_id(request)}] path={request.url.path}"
        )
        return _error(status.HTTP_404_NOT_FOUND, "Upload not found", "UPLOAD_NOT_FOUND")

    @app.exception_handler(SessionConflictError)
    async def session_conflict_handler(request: Request, exc: SessionConflictError):
        logger.warning(
            f"Session conflict: {exc} [request_id={_request_id(request)}] path={request.url.path}"
        )
        return _error(status.HTTP_409_CONFLICT, str(exc), "SESSION_CONFLICT")

    @app.exception_handler(ReassemblyError)
    async def reassembly_error_handler(request: Request, exc: ReassemblyError):
        logger.error(
            f"Reassembly failed: {exc} [upload_id={exc.upload_id}] [request_id={_request_id(request)}]"
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), "REASSEMBLY_FAILED")

    @app.exception_handler(ChunkUploadError)
    async def chunk_upload_error_handler(request: Request, exc: ChunkUploadError):
        logger.error(
            f"Upload error: {exc} [request_id={_request_id(request)}] path={request.url.path}",
            exc_info=True
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), "INTERNAL_ERROR")


def create_app(settings: Optional[ServerSettings] = None) -> FastAPI:
    """
    Build the upload server application.

    Args:
        settings: Server settings; read from the environment when omitted

    Returns:
        FastAPI application with its own session registry and staging area
    """
    settings = settings or load_settings()

    app = FastAPI(
        title="Chunked Upload Server",
        description="Receives file chunks and reassembles them into the original file",
        version="1.0.0"
    )

    chunk_store = ChunkStore(settings.staging_dir)
    upload_service = UploadService(
        registry=SessionRegistry(),
        chunk_store=chunk_store,
        reassembly_engine=ReassemblyEngine(chunk_store, settings.output_dir),
    )
    sweeper = SessionSweeper(
        upload_service,
        interval_seconds=settings.sweep_interval,
        idle_timeout_seconds=settings.session_idle_timeout,
    )

    app.state.settings = settings
    app.state.upload_service = upload_service
    app.state.sweeper = sweeper

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Middleware to log all HTTP requests and responses.
        """
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        logger.info(f"Request started: {request.method} {request.url.path} [request_id={request_id}]")

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"Unhandled error: {exc} [request_id={request_id}] path={request.url.path}",
                exc_info=True
            )
            response = _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Chunk upload failed", "INTERNAL_ERROR")

        duration = time.time() - start_time
        logger.info(
            f"Request completed: {request.method} {request.url.path} "
            f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
        )

        response.headers["X-Request-ID"] = request_id
        return response

    @app.on_event("startup")
    async def startup_event():
        """
        Create storage directories and start the session sweeper.
        """
        logger.info("Upload server starting up...")
        settings.staging_dir.mkdir(parents=True, exist_ok=True)
        settings.output_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Staging chunks in {settings.staging_dir}, storing files in {settings.output_dir}")
        await sweeper.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """
        Stop background tasks on application shutdown.
        """
        logger.info("Upload server shutting down...")
        await sweeper.stop()

    register_exception_handlers(app)
    app.include_router(upload_router)

    @app.get("/health")
    async def health_check():
        """
        Health check endpoint.
        Returns 200 if service is alive.
        """
        return {"status": "healthy", "service": "upload-server", "activeSessions": len(upload_service.registry)}

    return app


app = create_app()


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    settings = app.state.settings
    logger.info(f"Chunk upload server listening on port {settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
