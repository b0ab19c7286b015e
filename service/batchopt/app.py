from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .config import get_settings
from .api.routes import info, batches, jobs, plans
from .core.session import get_optimization_session

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    session = get_optimization_session()
    outcome = session.connect()
    if outcome.succeeded:
        logger.info(outcome.message)
    else:
        logger.error("Starting without a planning engine: {}", outcome.message)
    app.state.optimization_session = session
    yield
    session.exit()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.project_name,
        version="0.1.0",
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(info.router, prefix=settings.api_prefix)
    app.include_router(batches.router, prefix=settings.api_prefix)
    app.include_router(jobs.router, prefix=settings.api_prefix)
    app.include_router(plans.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        return {"service": settings.project_name, "status": "ok"}

    return app
