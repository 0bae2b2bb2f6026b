from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orgchart.api.v1.router import api_router
from orgchart.core.config import settings
from orgchart.services.directory_service import directory_service
from orgchart.services.orgchart_repository import orgchart_repository
from orgchart.services.refresh_scheduler import RefreshScheduler
from orgchart.services.user_cache_service import user_cache_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    try:
        await orgchart_repository.initialize(settings)
    except Exception:
        logger.exception("Failed to initialize OrgChartRepository; continuing without a document store")
    try:
        await directory_service.initialize(settings)
    except Exception:
        logger.exception("Failed to initialize DirectoryService; continuing without profile enrichment")
    await user_cache_service.initialize(settings)

    scheduler: RefreshScheduler | None = None
    if directory_service.initialized and settings.USER_CACHE_BACKGROUND_REFRESH:
        scheduler = RefreshScheduler.from_settings(user_cache_service, settings)
        scheduler.start()
    application.state.refresh_scheduler = scheduler

    yield

    if scheduler is not None:
        await scheduler.stop()
    await user_cache_service.close()
    await directory_service.close()
    await orgchart_repository.close()


app = FastAPI(
    title="Org Chart API",
    description="Organizational chart editing with directory profile enrichment",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/")
async def root():
    return {"message": "Org Chart API"}
