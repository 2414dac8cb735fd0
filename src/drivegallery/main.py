# main.py
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .albums import AlbumService
from .api import router
from .cache import AlbumCache
from .config import Settings, get_settings
from .exceptions import NotFoundError, PermanentError, TransientError, TransformError
from .gdrive import GoogleDriveClient
from .pagination import PaginationForwarder
from .storage.base import StorageClient


def setup_logging(settings: Optional[Settings] = None):
    """Configures logging to file and console explicitly."""
    settings = settings or get_settings()
    log_level_name = settings.LOG_LEVEL.upper()

    # Get the root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level_name)

    # Clear any existing handlers to prevent duplicate logs on re-runs or implicit configs
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if settings.LOG_FILE:
        try:
            file_handler = logging.FileHandler(settings.LOG_FILE)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except IOError as e:
            # Log to console if file logging fails (e.g., permissions)
            root_logger.error(f"Failed to set up file logging to {settings.LOG_FILE}: {e}")

    # Reducing "noise" from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _init_gdrive_client(settings: Settings) -> GoogleDriveClient:
    """Initializes and returns a GoogleDriveClient."""
    logging.info("Using Google Drive storage provider.")
    return GoogleDriveClient(
        credentials_json=settings.GDRIVE_CREDENTIALS_JSON,
        token_json=settings.GDRIVE_TOKEN_JSON,
    )


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_error_handlers(app: FastAPI) -> None:
    """
    Maps store and transform failures to HTTP statuses. Every failure is
    scoped to its request; the target id is logged for correlation.
    """

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        logging.warning(f"{request.method} {request.url.path}: not found '{exc.target_id}'")
        return _error_response(404, str(exc))

    @app.exception_handler(TransformError)
    async def handle_transform_error(request: Request, exc: TransformError):
        logging.error(f"{request.method} {request.url.path}: failed to process image. Error: {exc}")
        return _error_response(502, "Failed to process image")

    @app.exception_handler(TransientError)
    async def handle_transient_error(request: Request, exc: TransientError):
        logging.warning(
            f"TRANSIENT ERROR on {request.method} {request.url.path}. Error: {exc}",
            exc_info=exc,
        )
        return _error_response(503, "Storage temporarily unavailable")

    @app.exception_handler(PermanentError)
    async def handle_permanent_error(request: Request, exc: PermanentError):
        logging.error(
            f"PERMANENT ERROR on {request.method} {request.url.path}. Error: {exc}",
            exc_info=exc,
        )
        return _error_response(502, "Storage request failed")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logging.critical(
            f"UNHANDLED ERROR on {request.method} {request.url.path}. Error: {exc}",
            exc_info=exc,
        )
        return _error_response(500, "Internal server error")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[StorageClient] = None,
    cache: Optional[AlbumCache] = None,
) -> FastAPI:
    """
    Builds the application. The store, the cache and the album service are
    created here and handed to the routes through app.state.
    """
    settings = settings or get_settings()
    store = store or _init_gdrive_client(settings)
    cache = cache or AlbumCache(
        ttl_seconds=settings.ALBUM_CACHE_TTL_SECONDS,
        sliding=settings.ALBUM_CACHE_SLIDING,
        max_entries=settings.ALBUM_CACHE_MAX_ENTRIES,
    )

    app = FastAPI(title="drivegallery")
    app.state.settings = settings
    app.state.album_service = AlbumService(
        store,
        cache,
        forwarder=PaginationForwarder(store, page_size=settings.IMAGES_PAGE_SIZE),
        password_file_name=settings.PASSWORD_FILE_NAME,
        password_max_bytes=settings.PASSWORD_MAX_BYTES,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        allow_credentials=True,
    )
    register_error_handlers(app)
    app.include_router(router)
    return app


def main():
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(
        description="Serve Google Drive folders as photo albums."
    )
    parser.add_argument("--host", help="Interface to bind to (defaults to HOST).")
    parser.add_argument("--port", type=int, help="Port to listen on (defaults to PORT).")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings)

    host = args.host or settings.HOST
    port = args.port or settings.PORT
    logging.info(f"Backend running on http://{host}:{port}")
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
