import logging
import os
from typing import Optional

import aiohttp
import click
from anyio import run
from api.core import build_services
from config import load_config
from dotenv import load_dotenv
from logging_setup import setup_logging
from prometheus_client import start_http_server

load_dotenv()
setup_logging()

logger = logging.getLogger(__name__)


async def __main__(max_cycles: Optional[int] = None) -> None:
    """Run the learning loop on its own, without the HTTP API"""
    config = load_config()

    start_http_server(int(os.getenv("LTP_PROM_PORT", "8000")))
    async with aiohttp.ClientSession() as session:
        services = await build_services(config, session)
        if services.loop is None:
            return
        logger.info(
            f"Learning from {config.feed.url} every {config.learning_interval_seconds}s"
        )
        await services.loop.run(max_cycles=max_cycles)


@click.command()
@click.option("--api-server", is_flag=True, default=False)
@click.option(
    "--once", is_flag=True, default=False, help="Run a single learning cycle and exit"
)
def run_main(api_server: bool, once: bool) -> None:
    if api_server:
        import api_server as server

        # Run Uvicorn synchronously; avoid anyio.run here to prevent
        # event loop/signal handling conflicts with the server.
        server.run_main()
    else:
        run(
            __main__,
            1 if once else None,
            backend="asyncio",
            backend_options={"use_uvloop": True},
        )


if __name__ == "__main__":
    run_main()
