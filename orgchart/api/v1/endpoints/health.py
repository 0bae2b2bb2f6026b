from __future__ import annotations

from fastapi import APIRouter

from orgchart.core.config import settings
from orgchart.services.directory_service import directory_service
from orgchart.services.orgchart_repository import orgchart_repository

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check():
    services: dict[str, str] = {}

    try:
        if orgchart_repository.initialized:
            ok = await orgchart_repository.check_connection()
            services["document_store"] = "ok" if ok else "error"
        else:
            services["document_store"] = "not_configured"
    except Exception:
        services["document_store"] = "error"

    try:
        if directory_service.initialized:
            ok = await directory_service.check_connection()
            services["directory"] = "ok" if ok else "error"
        else:
            services["directory"] = "not_configured"
    except Exception:
        services["directory"] = "error"

    all_ok = all(v in ("ok", "not_configured") for v in services.values())

    return {
        "status": "healthy" if all_ok else "degraded",
        "version": settings.APP_VERSION,
        "services": services,
    }


@router.get("/ready")
async def readiness_probe():
    return {"ready": True}
