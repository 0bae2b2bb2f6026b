from fastapi import APIRouter

from orgchart.api.v1.endpoints import config, health, orgchart, users

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router)
api_router.include_router(config.router)
api_router.include_router(orgchart.router)
api_router.include_router(users.router)
