"""Command-line entry point: load the configuration and serve MCP."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import IO, Any

import platformdirs
import requests
from aiohttp import web

from .config import ConfigError, load_config
from .oci import OciError
from .service import JSONRPC_VERSION, SERVER_NAME, SERVER_VERSION, McpError, PluginService

log = logging.getLogger(__name__)

DEFAULT_BIND_ADDRESS = "127.0.0.1:3001"
TRANSPORTS = ("stdio", "sse")
SSE_PATH = "/sse"
POST_PATH = "/message"

LOG_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=SERVER_NAME,
        description="An MCP server that extends its capabilities through plugins",
    )
    parser.add_argument("-c", "--config-file", metavar="FILE", type=Path)
    parser.add_argument(
        "--log-level",
        metavar="LEVEL",
        default=os.environ.get("HYPER_MCP_LOG_LEVEL", "info"),
    )
    parser.add_argument(
        "--transport",
        metavar="TRANSPORT",
        choices=TRANSPORTS,
        default=os.environ.get("HYPER_MCP_TRANSPORT", "stdio"),
    )
    parser.add_argument(
        "--bind-address",
        metavar="ADDRESS",
        default=os.environ.get("HYPER_MCP_BIND_ADDRESS", DEFAULT_BIND_ADDRESS),
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {SERVER_VERSION}")
    return parser


def default_config_path() -> Path:
    """The config.json in the user's configuration directory."""
    return Path(platformdirs.user_config_dir(SERVER_NAME, appauthor=False)) / "config.json"


def _dumps(message: Any) -> str:
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False)


def serve_stdio(service: PluginService, reader: IO[str] | None = None, writer: IO[str] | None = None) -> None:
    """Serve newline-delimited JSON-RPC until the input ends."""
    reader = sys.stdin if reader is None else reader
    writer = sys.stdout if writer is None else writer
    for line in reader:
        line = line.strip()
        if not line:
            continue
        try:
            message = json.loads(line)
        except ValueError:
            error = McpError(McpError.PARSE_ERROR, "Parse error")
            response = {"jsonrpc": JSONRPC_VERSION, "id": None, "error": error.to_dict()}
        else:
            response = service.handle_message(message)
        if response is not None:
            writer.write(_dumps(response) + "\n")
            writer.flush()


def _parse_bind_address(bind_address: str) -> tuple[str, int]:
    host, sep, port = bind_address.rpartition(":")
    if not sep or not host or not port.isdigit() or int(port) > 65535:
        raise ValueError(f"invalid socket address syntax: {bind_address}")
    return host.removeprefix("[").removesuffix("]"), int(port)


def _event(name: str, data: str) -> bytes:
    return f"event: {name}\ndata: {data}\n\n".encode("utf-8")


def _sse_app(service: PluginService) -> web.Application:
    sessions: dict[str, asyncio.Queue[dict[str, Any]]] = {}

    async def open_stream(request: web.Request) -> web.StreamResponse:
        session_id = uuid.uuid4().hex
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        sessions[session_id] = queue
        response = web.StreamResponse(
            headers={"Content-Type": "text/event-stream", "Cache-Control": "no-cache"}
        )
        try:
            await response.prepare(request)
            await response.write(_event("endpoint", f"{POST_PATH}?sessionId={session_id}"))
            while True:
                message = await queue.get()
                await response.write(_event("message", _dumps(message)))
        except ConnectionResetError:
            log.info("SSE client %s disconnected", session_id)
        finally:
            sessions.pop(session_id, None)
        return response

    async def post_message(request: web.Request) -> web.Response:
        session_id = request.query.get("sessionId")
        queue = sessions.get(session_id) if session_id else None
        if queue is None:
            return web.Response(status=404, text="Session not found")
        try:
            message = await request.json()
        except ValueError:
            return web.Response(status=400, text="Invalid JSON")
        response = await asyncio.to_thread(service.handle_message, message)
        if response is not None:
            await queue.put(response)
        return web.Response(status=202, text="Accepted")

    app = web.Application()
    app.router.add_get(SSE_PATH, open_stream)
    app.router.add_post(POST_PATH, post_message)
    return app


async def serve_sse(service: PluginService, bind_address: str) -> None:
    """Serve MCP over server-sent events until cancelled."""
    host, port = _parse_bind_address(bind_address)
    runner = web.AppRunner(_sse_app(service))
    await runner.setup()
    try:
        await web.TCPSite(runner, host, port).start()
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.transport not in TRANSPORTS:
        parser.error(f"invalid transport: {args.transport}")
    level = LOG_LEVELS.get(args.log_level.lower())
    if level is None:
        parser.error(f"invalid log level: {args.log_level}")

    logging.basicConfig(
        level=level, stream=sys.stderr, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    log.info("Starting hyper-mcp server")

    config_path = args.config_file or default_config_path()
    log.info("Using config file at %s", config_path)

    try:
        config = load_config(config_path)
        service = PluginService(config)
        service.load_plugins()
    except (ConfigError, OciError, OSError, ValueError, requests.RequestException) as exc:
        log.error("%s", exc)
        return 1

    if args.transport == "stdio":
        serve_stdio(service)
    else:
        log.info("Starting SSE server at %s", args.bind_address)
        try:
            _parse_bind_address(args.bind_address)
            asyncio.run(serve_sse(service, args.bind_address))
        except ValueError as exc:
            log.error("%s", exc)
            return 1
        except KeyboardInterrupt:
            pass
    return 0