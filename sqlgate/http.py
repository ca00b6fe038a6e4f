# sqlgate/http.py
from contextlib import asynccontextmanager
from typing import Optional, Sequence
from urllib.parse import parse_qs
from fastapi import FastAPI, Request, Response
import uvicorn

from .server import Dispatcher, Endpoint, RowHandle, _log
from .db import Config, create_pool, load_config

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "TRACE"]


class WriteFailureLogger:
    """ASGI wrapper: a broken client connection while sending is logged, not raised."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def guarded_send(message):
            try:
                await send(message)
            except OSError as e:
                _log("ERROR", "response_write_failed", path=scope.get("path"), error=str(e))

        await self.app(scope, receive, guarded_send)


def create_app(endpoints: Sequence[Endpoint], handle: Optional[RowHandle] = None,
               config: Optional[Config] = None) -> FastAPI:
    if handle is None and config is None:
        raise ValueError("either a database handle or a config is required")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if handle is not None:
            yield
            return
        pool = await create_pool(config)
        app.state.dispatcher = Dispatcher(endpoints, pool)
        host, port = config.listen_address()
        _log("INFO", "sqlgate http starting",
             database=config.connection_string(mask_password=True),
             listen=f"{host}:{port}", endpoints=len(endpoints))
        try:
            yield
        finally:
            await pool.close()

    app = FastAPI(title="sqlgate HTTP", lifespan=lifespan,
                  docs_url=None, redoc_url=None, openapi_url=None)
    if handle is not None:
        # usable without running the lifespan (plain TestClient)
        app.state.dispatcher = Dispatcher(endpoints, handle)
    app.add_middleware(WriteFailureLogger)

    @app.api_route("/{path:path}", methods=ALL_METHODS)
    async def gateway(request: Request):
        values = parse_qs(request.url.query, keep_blank_values=True)
        reply = await request.app.state.dispatcher.dispatch(
            request.method, request.url.path, values, request.body)
        if reply is None:
            return Response()
        media_type = "application/json" if reply.is_error else None
        return Response(content=reply.body, status_code=reply.status_code, media_type=media_type)

    return app


def serve(config_path: str, endpoints: Sequence[Endpoint]):
    """Load the config file, open the pool on startup and listen on tcp_host:tcp_port."""
    config = load_config(config_path)
    host, port = config.listen_address()
    app = create_app(endpoints, config=config)
    uvicorn.run(app, host=host, port=port)
