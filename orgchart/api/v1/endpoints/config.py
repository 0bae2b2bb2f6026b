from __future__ import annotations

import logging

from fastapi import APIRouter

from orgchart.core.config import settings
from orgchart.services.orgchart_repository import orgchart_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/config", tags=["config"])


@router.get("")
async def get_frontend_config():
    """Anonymous endpoint the SPA reads before signing in."""
    tenant_id = settings.AZURE_AD_TENANT_ID
    logger.debug("Returning frontend configuration")
    return {
        "msal": {
            "clientId": settings.FRONTEND_CLIENT_ID,
            "tenantId": tenant_id,
            "authority": f"https://login.microsoftonline.com/{tenant_id}",
            "backendClientId": settings.AZURE_AD_CLIENT_ID,
        },
        "api": {"baseUrl": "/api/v1"},
        "features": {
            "authenticationEnabled": settings.AUTH_ENABLED,
            "insertEnabled": orgchart_repository.insert_enabled,
            "updateEnabled": orgchart_repository.update_enabled,
            "deleteEnabled": orgchart_repository.delete_enabled,
        },
    }
