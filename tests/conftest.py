from __future__ import annotations

import asyncio
import base64
import time

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from jose import jwt
from starlette.testclient import TestClient

from orgchart.core.auth import jwks_cache
from orgchart.core.dependencies import get_current_user
from orgchart.main import app
from orgchart.models.auth import ADMIN_ROLE, UserInfo
from orgchart.models.orgchart import OrgChartDocument
from orgchart.services.document_store import InMemoryDocumentStore
from orgchart.services.orgchart_repository import RepositoryPermissions, orgchart_repository

TEST_TENANT_ID = "test-tenant-00000000-0000-0000-0000-000000000000"
TEST_CLIENT_ID = "test-client-00000000-0000-0000-0000-000000000000"
TEST_KID = "test-kid-1"
DOCUMENT_KEY = "orgchart.json"

SAMPLE_ORGCHART: dict = {
    "organization": {
        "name": "Example GmbH",
        "positions": [
            {
                "id": "ceo",
                "title": "Chief Executive Officer",
                "department": "Management",
                "parentPositionId": None,
                "level": 1,
                "employees": [
                    {"id": "e-alice", "name": "Alice Example", "email": "alice@example.com", "isPrimary": True},
                ],
            },
            {
                "id": "cto",
                "title": "Chief Technology Officer",
                "department": "IT",
                "parentPositionId": "ceo",
                "level": 2,
                "employees": [
                    {"id": "e-bob", "name": "Bob Example", "email": "bob@example.com", "isPrimary": True},
                ],
            },
            {
                "id": "cfo",
                "title": "Chief Financial Officer",
                "department": "Finance",
                "parentPositionId": "ceo",
                "level": 2,
                "employees": [],
            },
            {
                "id": "dev",
                "title": "Developer",
                "department": "IT",
                "parentPositionId": "cto",
                "level": 3,
                "employees": [
                    {"id": "e-carol", "name": "Carol Example", "email": "carol@example.com", "isPrimary": True},
                    {"id": "e-alice-2", "name": "Alice Example", "email": "Alice@Example.com", "isPrimary": False},
                    {"id": "e-eve", "name": "Eve Example", "email": ""},
                ],
            },
        ],
    }
}


def sample_document() -> OrgChartDocument:
    return OrgChartDocument.model_validate(SAMPLE_ORGCHART)


def sample_bytes() -> bytes:
    return sample_document().model_dump_json(by_alias=True).encode("utf-8")


def _int_to_base64url(value: int) -> str:
    byte_length = (value.bit_length() + 7) // 8
    return base64.urlsafe_b64encode(value.to_bytes(byte_length, byteorder="big")).rstrip(b"=").decode("ascii")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _auth_settings():
    from orgchart.core.config import settings

    original_tenant = settings.AZURE_AD_TENANT_ID
    original_client = settings.AZURE_AD_CLIENT_ID
    original_secret = settings.AZURE_AD_CLIENT_SECRET
    original_enabled = settings.AUTH_ENABLED
    settings.AZURE_AD_TENANT_ID = TEST_TENANT_ID
    settings.AZURE_AD_CLIENT_ID = TEST_CLIENT_ID
    settings.AZURE_AD_CLIENT_SECRET = ""
    settings.AUTH_ENABLED = True
    jwks_cache.clear()
    yield
    settings.AZURE_AD_TENANT_ID = original_tenant
    settings.AZURE_AD_CLIENT_ID = original_client
    settings.AZURE_AD_CLIENT_SECRET = original_secret
    settings.AUTH_ENABLED = original_enabled
    jwks_cache.clear()


@pytest.fixture(autouse=True)
def memory_store():
    """Point the shared repository at a fresh in-memory copy of the sample org chart."""
    store = InMemoryDocumentStore({DOCUMENT_KEY: sample_bytes()})
    orgchart_repository.store = store
    orgchart_repository.permissions = RepositoryPermissions(
        insert_enabled=True,
        update_enabled=True,
        delete_enabled=True,
    )
    orgchart_repository.document_key = DOCUMENT_KEY
    orgchart_repository.initialized = True
    orgchart_repository._lane = asyncio.Lock()
    yield store
    orgchart_repository.store = None
    orgchart_repository.initialized = False


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def rsa_test_keys():
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("utf-8")

    pub = private_key.public_key().public_numbers()
    jwk_dict = {
        "kty": "RSA",
        "kid": TEST_KID,
        "use": "sig",
        "alg": "RS256",
        "n": _int_to_base64url(pub.n),
        "e": _int_to_base64url(pub.e),
    }
    jwks_response = {"keys": [jwk_dict]}
    return private_pem, jwks_response


def _make_token(
    private_pem: str,
    *,
    oid: str = "test-oid-123",
    name: str = "Test User",
    email: str = "test@example.com",
    roles: list[str] | None = None,
    expired: bool = False,
    audience: str = TEST_CLIENT_ID,
    kid: str = TEST_KID,
) -> str:
    now = int(time.time())
    claims = {
        "oid": oid,
        "name": name,
        "preferred_username": email,
        "roles": roles or [],
        "iss": f"https://login.microsoftonline.com/{TEST_TENANT_ID}/v2.0",
        "aud": audience,
        "exp": now - 3600 if expired else now + 3600,
        "iat": now - 60,
        "nbf": now - 60,
    }
    return jwt.encode(claims, private_pem, algorithm="RS256", headers={"kid": kid})


@pytest.fixture
def mock_user_reader():
    return UserInfo(id="reader-1", name="Reader User", email="reader@example.com", roles=[])


@pytest.fixture
def mock_user_admin():
    return UserInfo(id="admin-1", name="Admin User", email="admin@example.com", roles=[ADMIN_ROLE])


@pytest.fixture
def authenticated_client(mock_user_admin):
    app.dependency_overrides[get_current_user] = lambda: mock_user_admin
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def reader_client(mock_user_reader):
    app.dependency_overrides[get_current_user] = lambda: mock_user_reader
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
