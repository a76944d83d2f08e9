from contextlib import asynccontextmanager

import aiohttp
from anyio import create_task_group
from config import load_config
from fastapi import FastAPI

from .core import build_services, logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build shared services and run the learning loop alongside the API"""
    logger.info("Starting LIRR Track Prediction API...")

    async with aiohttp.ClientSession() as session:
        services = getattr(app.state, "services", None)
        if services is None:
            services = await build_services(load_config(), session)
            app.state.services = services

        async with create_task_group() as tg:
            if services.loop is not None and not services.realtime:
                tg.start_soon(services.loop.run)
            else:
                logger.info("Learning loop disabled; serving realtime passthrough")

            yield

            if services.loop is not None:
                services.loop.stop()
            tg.cancel_scope.cancel()

    logger.info("LIRR Track Prediction API stopped")
