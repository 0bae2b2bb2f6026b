"""Microsoft Graph directory lookups (profile and photo by email)."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import aiohttp

from orgchart.core.config import Settings
from orgchart.models.directory import DirectoryUser, ManagerInfo
from orgchart.services.exceptions import DirectoryUnavailableError

logger = logging.getLogger(__name__)

_TOKEN_SCOPE = "https://graph.microsoft.com/.default"
_TOKEN_REFRESH_MARGIN_SECONDS = 60
_DEFAULT_PHOTO_CONTENT_TYPE = "image/jpeg"

_PROFILE_FIELDS = (
    "id,displayName,mail,mobilePhone,businessPhones,jobTitle,department,officeLocation,"
    "userPrincipalName,givenName,surname,companyName,employeeId,city,country,"
    "preferredLanguage,usageLocation"
)
_EXTENDED_FIELDS = "hireDate,birthday,aboutMe,interests,skills,responsibilities"


def _user_filter(email: str) -> str:
    quoted = email.replace("'", "''")
    return f"mail eq '{quoted}' or userPrincipalName eq '{quoted}'"


def _date_part(value: Any) -> str | None:
    if not value:
        return None
    return str(value)[:10]


class DirectoryService:
    def __init__(self) -> None:
        self.initialized = False
        self.tenant_id = ""
        self.client_id = ""
        self.client_secret = ""
        self.base_url = ""
        self.timeout_seconds = 30.0
        self._token: str | None = None
        self._token_expires_at = 0.0

    async def initialize(self, settings: Settings) -> None:
        if self.initialized:
            return

        if not settings.AZURE_AD_TENANT_ID or not settings.AZURE_AD_CLIENT_ID or not settings.AZURE_AD_CLIENT_SECRET:
            logger.warning("Azure AD client credentials missing; DirectoryService not initialized")
            return

        self.tenant_id = settings.AZURE_AD_TENANT_ID
        self.client_id = settings.AZURE_AD_CLIENT_ID
        self.client_secret = settings.AZURE_AD_CLIENT_SECRET
        self.base_url = settings.GRAPH_BASE_URL.rstrip("/")
        self.timeout_seconds = settings.GRAPH_TIMEOUT_SECONDS
        self.initialized = True

    async def close(self) -> None:
        self.initialized = False
        self._token = None
        self._token_expires_at = 0.0

    async def _get_token(self, session: aiohttp.ClientSession) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        url = f"https://login.microsoftonline.com/{self.tenant_id}/oauth2/v2.0/token"
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": _TOKEN_SCOPE,
        }
        async with session.post(url, data=form) as response:
            if response.status != 200:
                error_text = await response.text()
                raise DirectoryUnavailableError(f"Token request failed: {response.status} - {error_text}")
            data = await response.json()

        self._token = data["access_token"]
        expires_in = float(data.get("expires_in", 3600))
        self._token_expires_at = time.monotonic() + max(expires_in - _TOKEN_REFRESH_MARGIN_SECONDS, 0)
        return self._token

    async def _find_user(self, session: aiohttp.ClientSession, email: str, select: str) -> dict[str, Any] | None:
        params = {"$filter": _user_filter(email), "$select": select}
        if select != "id":
            params["$expand"] = "manager($select=displayName,mail,jobTitle)"

        token = await self._get_token(session)
        headers = {"Authorization": f"Bearer {token}"}
        async with session.get(f"{self.base_url}/users", headers=headers, params=params) as response:
            if response.status != 200:
                error_text = await response.text()
                raise DirectoryUnavailableError(f"Graph user lookup failed: {response.status} - {error_text}")
            data = await response.json()

        users = data.get("value", [])
        return users[0] if users else None

    async def _get_extended_properties(self, session: aiohttp.ClientSession, user_id: str) -> dict[str, Any]:
        """Fetch properties Graph only returns for a single-user request; missing ones are fine."""
        token = await self._get_token(session)
        headers = {"Authorization": f"Bearer {token}"}
        async with session.get(
            f"{self.base_url}/users/{user_id}", headers=headers, params={"$select": _EXTENDED_FIELDS}
        ) as response:
            if response.status != 200:
                logger.warning("Extended user properties not available for %s: %s", user_id, response.status)
                return {}
            return await response.json()

    async def get_user_by_email(self, email: str) -> DirectoryUser | None:
        if not self.initialized:
            raise DirectoryUnavailableError("DirectoryService not initialized")
        if not email or not email.strip():
            return None

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                user = await self._find_user(session, email, _PROFILE_FIELDS)
                if user is None:
                    logger.info("User not found for email: %s", email)
                    return None
                extended = await self._get_extended_properties(session, user["id"])
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Graph lookup failed for %s: %s", email, e)
            raise DirectoryUnavailableError(f"Graph lookup failed for {email}: {e}") from e

        return self._to_directory_user(user, extended, email)

    async def get_user_photo(self, email: str) -> tuple[bytes | None, str | None]:
        if not self.initialized:
            raise DirectoryUnavailableError("DirectoryService not initialized")
        if not email or not email.strip():
            return None, None

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                user = await self._find_user(session, email, "id")
                if user is None:
                    logger.info("User not found when fetching photo for email: %s", email)
                    return None, None

                token = await self._get_token(session)
                headers = {"Authorization": f"Bearer {token}"}
                async with session.get(f"{self.base_url}/users/{user['id']}/photo/$value", headers=headers) as response:
                    if response.status == 404:
                        logger.info("No photo available for user: %s", email)
                        return None, None
                    if response.status != 200:
                        raise DirectoryUnavailableError(f"Graph photo request failed: {response.status}")
                    photo = await response.read()
                    content_type = response.headers.get("Content-Type") or _DEFAULT_PHOTO_CONTENT_TYPE
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Graph photo lookup failed for %s: %s", email, e)
            raise DirectoryUnavailableError(f"Graph photo lookup failed for {email}: {e}") from e

        if not photo:
            return None, None
        return photo, content_type

    async def check_connection(self) -> bool:
        if not self.initialized:
            return False
        try:
            timeout = aiohttp.ClientTimeout(total=10)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                await self._get_token(session)
            return True
        except Exception:
            logger.exception("DirectoryService connection check failed")
            return False

    def _to_directory_user(self, raw: dict[str, Any], extended: dict[str, Any], email: str) -> DirectoryUser:
        manager_raw = raw.get("manager")
        manager = None
        if isinstance(manager_raw, dict):
            manager = ManagerInfo(
                display_name=manager_raw.get("displayName"),
                email=manager_raw.get("mail"),
                job_title=manager_raw.get("jobTitle"),
            )

        business_phones = raw.get("businessPhones") or []
        return DirectoryUser(
            display_name=raw.get("displayName") or "",
            email=raw.get("mail") or raw.get("userPrincipalName") or email,
            mobile_phone=raw.get("mobilePhone"),
            business_phone=business_phones[0] if business_phones else None,
            job_title=raw.get("jobTitle"),
            department=raw.get("department"),
            office_location=raw.get("officeLocation"),
            given_name=raw.get("givenName"),
            surname=raw.get("surname"),
            company_name=raw.get("companyName"),
            employee_id=raw.get("employeeId"),
            city=raw.get("city"),
            country=raw.get("country"),
            preferred_language=raw.get("preferredLanguage"),
            usage_location=raw.get("usageLocation"),
            hire_date=_date_part(extended.get("hireDate")),
            birthday=_date_part(extended.get("birthday")),
            about_me=extended.get("aboutMe"),
            interests=extended.get("interests") or None,
            skills=extended.get("skills") or None,
            responsibilities=extended.get("responsibilities") or None,
            manager=manager,
        )


directory_service = DirectoryService()
