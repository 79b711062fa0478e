import asyncio
import base64
import logging
import os
import threading
from typing import Any, Dict, List, Optional, Tuple

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from dotenv import find_dotenv, load_dotenv
from fastapi.testclient import TestClient

from .core.config import Credentials, Settings, get_credentials, get_settings
from .main import esign_gateway as fast_api_app

logger = logging.getLogger(__name__)

env_file = find_dotenv(f'.env{os.getenv("ENV", "")}')
logger.info("Fetching env_file %s", env_file)
load_dotenv(env_file)

TEST_CLIENT_ID = "test-client-id"
TEST_ACCOUNT_ID = "test-account-id"
TEST_USER_ID = "test-user-id"

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"
PDF_BASE64 = base64.b64encode(PDF_BYTES).decode("utf-8")


class FakeDocusign:
    """
    In-process stand-in for the DocuSign OAuth and eSignature REST hosts.
    Runs an aiohttp server on its own event loop thread so both TestClient
    and asyncio.run() callers can reach it.
    """

    def __init__(self):
        self.requests: List[Dict[str, Any]] = []
        self.token_response: Tuple[int, Any] = (
            200,
            {"access_token": "test-access-token", "token_type": "Bearer", "expires_in": 3600},
        )
        self.userinfo_response: Optional[Tuple[int, Any]] = None
        self.envelope_response: Tuple[int, Any] = (
            201,
            {
                "envelopeId": "env-123",
                "status": "sent",
                "statusDateTime": "2024-01-01T00:00:00.0000000Z",
                "uri": "/envelopes/env-123",
            },
        )
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
        self._server: TestServer = None

    @property
    def url(self) -> str:
        return f"http://{self.host}"

    @property
    def host(self) -> str:
        return f"{self._server.host}:{self._server.port}"

    def calls(self, path: str) -> List[Dict[str, Any]]:
        return [r for r in self.requests if r["path"] == path]

    async def _record(self, request: web.Request) -> Dict[str, Any]:
        entry = {
            "method": request.method,
            "path": request.path,
            "headers": {k.lower(): v for k, v in request.headers.items()},
        }
        if request.content_type == "application/x-www-form-urlencoded":
            entry["form"] = dict(await request.post())
        elif request.content_type == "application/json":
            entry["json"] = await request.json()
        self.requests.append(entry)
        return entry

    async def _token(self, request: web.Request) -> web.Response:
        await self._record(request)
        status, body = self.token_response
        return web.json_response(body, status=status)

    async def _userinfo(self, request: web.Request) -> web.Response:
        await self._record(request)
        if self.userinfo_response is not None:
            status, body = self.userinfo_response
            return web.json_response(body, status=status)
        return web.json_response(
            {
                "sub": TEST_USER_ID,
                "accounts": [
                    {
                        "account_id": TEST_ACCOUNT_ID,
                        "is_default": True,
                        "account_name": "Test Account",
                        "base_uri": self.url,
                    }
                ],
            }
        )

    async def _envelopes(self, request: web.Request) -> web.Response:
        await self._record(request)
        status, body = self.envelope_response
        return web.json_response(body, status=status)

    def _build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/oauth/token", self._token)
        app.router.add_get("/oauth/userinfo", self._userinfo)
        app.router.add_post("/restapi/v2.1/accounts/{account_id}/envelopes", self._envelopes)
        return app

    def start(self) -> None:
        self._thread.start()
        self._server = TestServer(self._build_app())
        asyncio.run_coroutine_threadsafe(self._server.start_server(), self._loop).result()

    def stop(self) -> None:
        asyncio.run_coroutine_threadsafe(self._server.close(), self._loop).result()
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()


@pytest.fixture(scope="session")
def rsa_private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture(scope="session")
def credentials(rsa_private_key_pem) -> Credentials:
    return Credentials(
        client_id=TEST_CLIENT_ID,
        account_id=TEST_ACCOUNT_ID,
        user_id=TEST_USER_ID,
        private_key=rsa_private_key_pem,
    )


@pytest.fixture
def fake_docusign():
    fake = FakeDocusign()
    fake.start()
    try:
        yield fake
    finally:
        fake.stop()


@pytest.fixture
def test_settings(fake_docusign) -> Settings:
    return Settings(
        docusign_auth_server=fake_docusign.host,
        docusign_auth_scheme="http",
    )


@pytest.fixture
def client(test_settings, credentials):

    # Point the gateway at the fake DocuSign hosts
    fast_api_app.dependency_overrides[get_settings] = lambda: test_settings
    fast_api_app.dependency_overrides[get_credentials] = lambda: credentials
    yield TestClient(fast_api_app)
    fast_api_app.dependency_overrides.clear()
