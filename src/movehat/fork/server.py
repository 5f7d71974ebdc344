"""HTTP server that serves a fork through a node-API-shaped interface.

Point any Movement/Aptos SDK at ``http://<host>:<port>/v1`` and read-style
calls (ledger info, accounts, resources) are answered from the fork, fetching
missing state from the original network on demand.

Routes:
  GET /v1, /v1/                                   ledger info (+ x-aptos-* headers)
  GET /v1/accounts/{address}                       account
  GET /v1/accounts/{address}/resource/{type...}    single resource
  GET /v1/accounts/{address}/resources             all resources
  OPTIONS *                                        CORS preflight, empty 200

Every response carries permissive CORS headers and a pretty-printed JSON body.
Errors use the node API's ``{message, error_code, vm_error_code}`` shape;
unexpected exceptions are logged here and returned as a bare 500.
"""

from __future__ import annotations

import asyncio
import errno
import json
import logging
import re
import socket
from typing import Any

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from movehat.fork.errors import ForkNotFoundError, ForkServerError, ResourceNotFoundError
from movehat.fork.manager import ForkManager

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080
DEFAULT_HOST = "127.0.0.1"
GIT_HASH = "movehat-fork"
NODE_ROLE = "full_node"

_ADDRESS_RE: re.Pattern[str] = re.compile(r"^0x[a-fA-F0-9]{1,64}$")
_CONTROL_CHARS_RE: re.Pattern[str] = re.compile(r"[\x00-\x1f\x7f]")
_MAX_LOGGED_PATH = 100

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class PrettyJSONResponse(JSONResponse):
    def render(self, content: Any) -> bytes:
        return json.dumps(content, indent=2, ensure_ascii=False).encode("utf-8")


def sanitize_pathname(pathname: str) -> str:
    """Strip control characters and cap the length, for logs and error messages."""
    cleaned = _CONTROL_CHARS_RE.sub("", pathname)
    if len(cleaned) > _MAX_LOGGED_PATH:
        return cleaned[:_MAX_LOGGED_PATH] + "..."
    return cleaned


def error_response(status_code: int, message: str, error_code: str) -> PrettyJSONResponse:
    return PrettyJSONResponse(
        status_code=status_code,
        content={"message": message, "error_code": error_code, "vm_error_code": None},
    )


def _endpoint_not_found(request: Request) -> PrettyJSONResponse:
    return error_response(
        404, f"Endpoint not found: {sanitize_pathname(request.url.path)}", "endpoint_not_found"
    )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def create_app(manager: ForkManager) -> FastAPI:
    """Build the ASGI app serving *manager*'s fork. The manager must be loaded."""
    app = FastAPI(
        title="movehat fork",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        redirect_slashes=False,
        default_response_class=PrettyJSONResponse,
    )

    @app.middleware("http")
    async def _boundary(request: Request, call_next):
        method = request.method
        path = sanitize_pathname(request.url.path)
        logger.info("%s %s", method, path)

        if method == "OPTIONS":
            response: Response = Response(status_code=200)
        else:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("Error handling request %s %s", method, path)
                response = error_response(500, "Internal server error", "internal_error")

        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _endpoint_not_found(request)
        if exc.status_code == 405:
            return error_response(405, f"Method {request.method} not allowed", "method_not_allowed")
        return error_response(exc.status_code, str(exc.detail), "invalid_request")

    async def ledger_info():
        meta = manager.get_metadata()
        body = {
            "chain_id": meta.chain_id,
            "epoch": meta.epoch,
            "ledger_version": meta.ledger_version,
            "oldest_ledger_version": "0",
            "ledger_timestamp": meta.timestamp,
            "node_role": NODE_ROLE,
            "oldest_block_height": "0",
            "block_height": meta.block_height,
            "git_hash": GIT_HASH,
        }
        headers = {
            "x-aptos-chain-id": str(meta.chain_id),
            "x-aptos-ledger-version": meta.ledger_version,
            "x-aptos-ledger-oldest-version": "0",
            "x-aptos-ledger-timestampusec": meta.timestamp,
            "x-aptos-epoch": meta.epoch,
            "x-aptos-block-height": meta.block_height,
            "x-aptos-oldest-block-height": "0",
        }
        return PrettyJSONResponse(content=body, headers=headers)

    app.add_api_route("/v1", ledger_info, methods=["GET"])
    app.add_api_route("/v1/", ledger_info, methods=["GET"])

    @app.get("/v1/accounts/{address}")
    async def get_account(address: str, request: Request):
        if not _ADDRESS_RE.match(address):
            return _endpoint_not_found(request)
        try:
            account = await manager.get_account(address)
        except ForkNotFoundError:
            return error_response(404, f"Account not found: {address}", "account_not_found")
        return {
            "sequence_number": account.sequence_number,
            "authentication_key": account.authentication_key,
        }

    @app.get("/v1/accounts/{address}/resource/{resource_type:path}")
    async def get_resource(address: str, resource_type: str, request: Request):
        if not _ADDRESS_RE.match(address) or not resource_type:
            return _endpoint_not_found(request)
        try:
            data = await manager.get_resource(address, resource_type)
        except ResourceNotFoundError:
            return error_response(
                404, f"Resource not found: {resource_type}", "resource_not_found"
            )
        return {"type": resource_type, "data": data}

    @app.get("/v1/accounts/{address}/resources")
    async def get_resources(address: str, request: Request):
        if not _ADDRESS_RE.match(address):
            return _endpoint_not_found(request)
        try:
            resources = await manager.get_all_resources(address)
        except ForkNotFoundError:
            return error_response(404, f"Account not found: {address}", "account_not_found")
        return [{"type": rtype, "data": data} for rtype, data in resources.items()]

    return app


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


class ForkServer:
    """Runs create_app() under uvicorn on a socket bound up front.

    Binding happens before uvicorn starts so that port-in-use and
    permission errors surface as ForkServerError with an actionable message.
    """

    def __init__(
        self,
        manager: ForkManager,
        port: int = DEFAULT_PORT,
        host: str = DEFAULT_HOST,
    ) -> None:
        self.manager = manager
        self.port = port
        self.host = host
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    async def start(self) -> None:
        """Load the fork, bind the port and start serving in the background.

        Raises:
            ForkNotFoundError: If the fork is missing or its metadata is corrupt.
            ForkServerError: If the port cannot be bound.
        """
        if self._task is not None:
            return

        metadata = self.manager.load()
        logger.info(
            "Starting fork server: network=%s chain_id=%s ledger_version=%s forked_at=%s",
            metadata.network,
            metadata.chain_id,
            metadata.ledger_version,
            metadata.created_at,
        )

        sock = self._bind()
        self.port = sock.getsockname()[1]

        config = uvicorn.Config(
            create_app(self.manager),
            log_level="warning",
            access_log=False,
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]))

        while not self._server.started:
            if self._task.done():
                server_task, self._server, self._task = self._task, None, None
                sock.close()
                server_task.result()
                raise ForkServerError(f"Fork server on port {self.port} exited during startup")
            await asyncio.sleep(0.05)

        logger.info("Fork server listening on %s", self.url)

    async def stop(self) -> None:
        """Stop accepting connections and wait for in-flight requests. No-op if not started."""
        if self._server is None or self._task is None:
            return
        server, task = self._server, self._task
        self._server, self._task = None, None

        server.should_exit = True
        await task
        await self.manager.close()
        logger.info("Fork server stopped")

    async def serve_forever(self) -> None:
        """start(), then block until the server exits (e.g. on SIGINT/SIGTERM)."""
        await self.start()
        task = self._task
        try:
            if task is not None:
                await task
        finally:
            await self.stop()

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as exc:
            sock.close()
            if exc.errno == errno.EADDRINUSE:
                raise ForkServerError(
                    f"Port {self.port} is already in use. "
                    "Please use a different port with --port <number>"
                ) from exc
            if exc.errno in (errno.EACCES, errno.EPERM):
                raise ForkServerError(
                    f"Permission denied to bind to port {self.port}. "
                    "Try using a port above 1024 or run with appropriate permissions."
                ) from exc
            raise ForkServerError(f"Failed to start server: {exc}") from exc
        return sock
