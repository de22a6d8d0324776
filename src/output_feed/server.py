"""MCP Server entry point for the output feed.

Runs FastMCP with Streamable HTTP transport. The feed controller is
started in the server lifespan so its first fetch and realtime
subscription run on the server's event loop.
"""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastmcp import FastMCP

from .client import RecordStoreClient, SubmissionClient
from .config import Config, load_config
from .feed import FeedController
from .realtime import RealtimeChannel
from .tools import register_tools

logger = logging.getLogger(__name__)


def create_server(config: Config) -> FastMCP:
    """Wire clients, channel and controller into a FastMCP server."""
    session = config.session()
    store = RecordStoreClient(config, session.access_token)
    submitter = SubmissionClient(config, session.access_token)
    channel = RealtimeChannel.from_config(config, session.access_token)
    controller = FeedController(
        store,
        channel,
        session,
        page_size=config.page_size,
        realtime_enabled=config.realtime_enabled,
    )

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        await controller.start()
        try:
            yield
        finally:
            logger.info("Shutting down, closing connections...")
            await controller.close()
            await store.aclose()
            await submitter.aclose()

    mcp = FastMCP("output-feed", lifespan=lifespan)
    register_tools(mcp, controller, submitter)
    return mcp


def main() -> None:
    """Run the output feed MCP server."""
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    config = load_config()
    mcp = create_server(config)

    logger.info(
        "Starting output feed MCP server on %s:%d (streamable-http)",
        config.server_host,
        config.server_port,
    )
    mcp.run(
        transport="streamable-http",
        host=config.server_host,
        port=config.server_port,
    )


if __name__ == "__main__":
    main()
