"""CLI entry point for the OpenAPI tool adapter."""

from __future__ import annotations

import asyncio

import uvicorn

from .config import get_settings
from .executors import create_http_client
from .logging import configure_logging
from .server import build_server


async def _run() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)

    async with create_http_client(
        settings.api_connect_timeout_ms, settings.api_read_timeout_ms
    ) as client:
        mcp, app = await build_server(settings, client)
        transport = settings.mcp_transport.lower()

        if transport in {"http", "streamable-http", "streamablehttp", "sse"}:
            if not app:
                raise RuntimeError(f"HTTP app unavailable for transport={transport}")
            config = uvicorn.Config(app, host=settings.mcp_host, port=settings.mcp_port)
            server = uvicorn.Server(config)
            await server.serve()
            return
        await mcp.run_stdio_async(show_banner=False)


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
