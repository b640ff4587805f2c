"""FastAPI application for blossomd."""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, Response

from . import __version__
from .config import Settings, get_settings
from .errors import BlossomError
from .server import BlossomServer

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def get_server(request: Request) -> BlossomServer:
    return request.app.state.server


def create_app(settings: Optional[Settings] = None, server: Optional[BlossomServer] = None) -> FastAPI:
    """Build the application.

    :param settings: explicit settings; defaults to the environment.
    :param server: prebuilt server container, mainly for tests.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        blossom = server or BlossomServer(settings)
        await blossom.start()
        app.state.server = blossom
        logger.info("Blossom server v%s started on %s:%s", __version__, settings.host, settings.port)
        logger.info("Working directory: %s", settings.working_dir)
        logger.info("Server URL: %s", settings.base_url)
        logger.info("Authorization mode: %s", settings.auth_mode.value)
        try:
            yield
        finally:
            await blossom.close()
            logger.info("Blossom server shutdown complete")

    app = FastAPI(title="blossomd", version=__version__, lifespan=lifespan)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("%s %s %s (%.0fms)", response.status_code, request.method, request.url, elapsed_ms)
        return response

    @app.exception_handler(BlossomError)
    async def blossom_error_handler(request: Request, exc: BlossomError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.reason)
        return PlainTextResponse(exc.reason, status_code=exc.status_code, headers={"X-Reason": exc.reason})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        reason = "Internal server error"
        return PlainTextResponse(reason, status_code=500, headers={"X-Reason": reason})

    @app.get("/")
    async def root():
        return {"name": "blossomd", "version": __version__}

    @app.put("/upload")
    async def upload_blob(
        request: Request,
        authorization: Optional[str] = Header(None),
        content_type: Optional[str] = Header(None),
    ):
        descriptor = await get_server(request).upload(authorization, request.stream(), content_type)
        return JSONResponse(descriptor)

    @app.head("/upload")
    async def upload_requirements(request: Request):
        return Response(headers=get_server(request).upload_requirements())

    @app.get("/list/{pubkey}")
    async def list_blobs(request: Request, pubkey: str):
        return JSONResponse(await get_server(request).list_blobs(pubkey))

    @app.get("/{name}")
    async def get_blob(request: Request, name: str):
        info = await get_server(request).blob_info(name)
        return FileResponse(info.path, media_type=info.media_type)

    @app.head("/{name}")
    async def head_blob(request: Request, name: str):
        info = await get_server(request).blob_info(name)
        return Response(headers={"Content-Type": info.media_type, "Content-Length": str(info.size)})

    @app.delete("/{name}")
    async def delete_blob(request: Request, name: str, authorization: Optional[str] = Header(None)):
        await get_server(request).delete(authorization, name)
        return PlainTextResponse("Blob deleted successfully")

    return app
