from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from .core import Services
from .endpoints.health import router as health_router
from .endpoints.predictions import router as predictions_router
from .lifespan import lifespan
from .middleware import RequestTimingMiddleware


def create_app(
    services: Optional[Services] = None, origins: Optional[list[str]] = None
) -> FastAPI:
    app = FastAPI(
        title="LIRR Track Prediction API",
        description="Predicts Penn Station departure tracks from learned feed data",
        version="1.0.0",
        docs_url="/docs",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.add_middleware(RequestTimingMiddleware)
    if origins is None:
        origins = services.config.cors_origins if services else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    Instrumentator().instrument(app).expose(app)

    app.include_router(health_router)
    app.include_router(predictions_router)

    return app
