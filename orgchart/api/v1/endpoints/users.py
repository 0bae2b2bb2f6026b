from __future__ import annotations

import asyncio
import base64
import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from orgchart.api.v1.errors import to_http_exception
from orgchart.core.dependencies import require_read, require_write
from orgchart.models.auth import UserInfo
from orgchart.models.directory import CacheStats, DirectoryUser, UserPhoto
from orgchart.services.exceptions import OrgChartError
from orgchart.services.user_cache_service import user_cache_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

MAX_BATCH_SIZE = 50
BATCH_CONCURRENCY = 10

_background_tasks: set[asyncio.Task] = set()


def _require_email(email: str) -> str:
    if not email.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email address is required")
    return email


@router.get("/profile", response_model=DirectoryUser)
async def get_user_profile(
    email: str = Query(...),
    user: UserInfo = Depends(require_read),  # noqa: B008
):
    _require_email(email)
    try:
        profile = await user_cache_service.get_profile(email)
    except OrgChartError as err:
        logger.error("Error retrieving user profile for %s: %s", email, err)
        raise to_http_exception(err) from err

    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User with email '{email}' not found in directory",
        )
    return profile


@router.get("/photo", response_model=UserPhoto)
async def get_user_photo(
    email: str = Query(...),
    user: UserInfo = Depends(require_read),  # noqa: B008
):
    _require_email(email)
    try:
        photo, content_type = await user_cache_service.get_photo(email)
    except OrgChartError as err:
        logger.error("Error retrieving user photo for %s: %s", email, err)
        raise to_http_exception(err) from err

    if photo is None or content_type is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Profile photo not found for user with email '{email}'",
        )

    encoded = base64.b64encode(photo).decode("ascii")
    return UserPhoto(photo_data=encoded, content_type=content_type, data_url=f"data:{content_type};base64,{encoded}")


@router.post("/profiles/batch", response_model=dict[str, DirectoryUser | None])
async def get_user_profiles_batch(
    emails: list[str] = Body(...),
    user: UserInfo = Depends(require_read),  # noqa: B008
):
    if not emails:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email addresses are required")
    if len(emails) > MAX_BATCH_SIZE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Maximum {MAX_BATCH_SIZE} email addresses allowed per batch request",
        )

    semaphore = asyncio.Semaphore(BATCH_CONCURRENCY)

    async def load(email: str) -> DirectoryUser | None:
        async with semaphore:
            return await user_cache_service.get_profile(email)

    try:
        profiles = await asyncio.gather(*(load(email) for email in emails))
    except OrgChartError as err:
        logger.error("Error retrieving user profiles for batch request: %s", err)
        raise to_http_exception(err) from err

    return dict(zip(emails, profiles))


@router.post("/refresh")
async def refresh_user(
    email: str = Query(...),
    user: UserInfo = Depends(require_write),  # noqa: B008
):
    _require_email(email)
    try:
        await user_cache_service.refresh(email)
    except OrgChartError as err:
        logger.error("Error refreshing user data for %s: %s", email, err)
        raise to_http_exception(err) from err
    return {"message": f"User data refreshed for {email}"}


async def _preload_in_background() -> None:
    try:
        await user_cache_service.preload_all()
    except Exception:
        logger.exception("Error during manual preload")


@router.post("/preload", status_code=status.HTTP_202_ACCEPTED)
async def preload_all_users(user: UserInfo = Depends(require_write)):  # noqa: B008
    task = asyncio.create_task(_preload_in_background())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return {"message": "User data preload started in background"}


@router.get("/cache/stats", response_model=CacheStats)
async def get_cache_stats(user: UserInfo = Depends(require_read)):  # noqa: B008
    return user_cache_service.stats()
