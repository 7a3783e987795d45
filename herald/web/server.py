"""
Web Server Module for Herald.

This module provides the WebServer class that creates and manages the
FastAPI application serving the catalogue.

Routes, for each encoding (`json`, `edn`) and record type:
- GET /{enc}/{record}/{id}: one record by id
- GET /{enc}/{records}/?data=...&orderby=...: one result list per `data` query
- GET /health
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.responses import PlainTextResponse, Response

from herald import __version__
from herald.core import CoreError, NotPresentError
from herald.core.db.models import Album, Artist, Entity, Genre, Image, Library, Song
from herald.core.library_db import LibraryDb
from herald.web.encoding import ENCODINGS, Encoding, check_names

logger = logging.getLogger(__name__)

# (singular, plural, record type)
RECORDS: tuple[tuple[str, str, type[Entity]], ...] = (
    ("library", "libraries", Library),
    ("artist", "artists", Artist),
    ("album", "albums", Album),
    ("genre", "genres", Genre),
    ("song", "songs", Song),
    ("image", "images", Image),
)

Handler = Callable[..., Awaitable[Response]]


class WebServer:
    """
    FastAPI-based web server for Herald.

    Only reads the catalogue; ingestion happens through `MediaLibrary`.
    """

    def __init__(self, db: LibraryDb) -> None:
        self.db = db

        # Create FastAPI app
        self.app = FastAPI(
            title="Herald",
            description="Personal music catalogue",
            version=__version__,
        )

        # Server state
        self._server: uvicorn.Server | None = None
        self._host = "127.0.0.1"
        self._port = 8080

        self._register_error_handlers()
        self._register_routes()

    def _register_error_handlers(self) -> None:
        @self.app.exception_handler(NotPresentError)
        async def not_present(request: Request, exc: NotPresentError) -> PlainTextResponse:
            return PlainTextResponse(str(exc), status_code=404)

        @self.app.exception_handler(CoreError)
        async def core_error(request: Request, exc: CoreError) -> PlainTextResponse:
            return PlainTextResponse(str(exc), status_code=400)

        @self.app.exception_handler(ValueError)
        async def bad_value(request: Request, exc: ValueError) -> PlainTextResponse:
            return PlainTextResponse(str(exc), status_code=400)

    def _register_routes(self) -> None:
        """Register all routes with the FastAPI app."""

        # Health check
        @self.app.get("/health")
        async def health_check() -> dict[str, str]:
            """Health check endpoint."""
            return {"status": "ok", "server": "herald"}

        for enc in ENCODINGS:
            for singular, plural, entity_type in RECORDS:
                self.app.add_api_route(
                    f"/{enc.name}/{singular}/{{record_id}}",
                    self._unique_handler(enc, entity_type),
                    methods=["GET"],
                    tags=[enc.name],
                )
                self.app.add_api_route(
                    f"/{enc.name}/{plural}/",
                    self._query_handler(enc, entity_type),
                    methods=["GET"],
                    tags=[enc.name],
                )

    def _unique_handler(self, enc: Encoding, entity_type: type[Entity]) -> Handler:
        check_names(entity_type, enc.name)

        async def get_unique(record_id: str) -> Response:
            # ValueError on a non-numeric id -> 400
            record = entity_type.with_identity(int(record_id))
            await self.db.read_unique(record)
            return Response(enc.encode(record), media_type=enc.media_type)

        return get_unique

    def _query_handler(self, enc: Encoding, entity_type: type[Entity]) -> Handler:
        """
        Without `data`, every record is returned (as a single result list).

        `orderby` takes external field names of the encoding.
        """
        check_names(entity_type, enc.name)

        async def get_many(
            data: list[str] | None = Query(default=None),
            orderby: list[str] | None = Query(default=None),
        ) -> Response:
            order = enc.order_columns(entity_type, orderby or [])
            queries = [enc.decode(entity_type, d) for d in (data or ["{}"])]
            results = [await self.db.read(query, order_by=order) for query in queries]
            return Response(enc.encode_results(results), media_type=enc.media_type)

        return get_many

    async def serve(self, host: str = "127.0.0.1", port: int = 8080) -> None:
        """
        Run the web server until it is shut down (Ctrl+C / SIGTERM).

        Args:
            host: Host address to bind to
            port: Port to listen on
        """
        self._host = host
        self._port = port

        # Configure uvicorn
        config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)

        logger.info("Web server listening on http://%s:%d", host, port)
        try:
            await self._server.serve()
        finally:
            self._server = None
            logger.info("Web server stopped")

    @property
    def port(self) -> int:
        """Get the server port."""
        return self._port

    @property
    def host(self) -> str:
        """Get the server host."""
        return self._host
