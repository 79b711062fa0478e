import asyncio
from datetime import datetime, timezone

import jwt
import pytest
from cryptography.hazmat.primitives import serialization

from esign_app.esign.exceptions import (
    BaseUriRetrievalException,
    ConsentRequiredException,
    EnvelopeCreationException,
    TokenGenerationException,
)
from esign_app.testing_dependencies import TEST_ACCOUNT_ID, TEST_CLIENT_ID, TEST_USER_ID
from esign_app.utils.docusign_utils import AccessToken, DocusignClient


@pytest.fixture
def docusign(credentials, test_settings):
    return DocusignClient(credentials, test_settings)


@pytest.fixture
def access_token():
    now = datetime.now(timezone.utc)
    return AccessToken(value="test-access-token", issued_at=now, expires_at=now)


def public_key_of(private_key_pem):
    return serialization.load_pem_private_key(
        private_key_pem.encode("utf-8"), password=None
    ).public_key()


def test_jwt_assertion_claims(docusign, rsa_private_key_pem, fake_docusign):
    issued_at = datetime.now(timezone.utc).replace(microsecond=0)

    assertion = docusign.build_jwt_assertion(issued_at)

    assert jwt.get_unverified_header(assertion)["alg"] == "RS256"
    claims = jwt.decode(
        assertion,
        public_key_of(rsa_private_key_pem),
        algorithms=["RS256"],
        audience=fake_docusign.host,
    )
    assert claims["iss"] == TEST_CLIENT_ID
    assert claims["sub"] == TEST_USER_ID
    assert claims["scope"] == "signature impersonation"
    assert claims["exp"] - claims["iat"] == 600


def test_get_access_token_posts_jwt_bearer_grant(docusign, fake_docusign, rsa_private_key_pem):
    token = asyncio.run(docusign.get_access_token())

    assert token.value == "test-access-token"
    assert (token.expires_at - token.issued_at).total_seconds() == 600

    call = fake_docusign.calls("/oauth/token")[0]
    assert call["headers"]["content-type"].startswith("application/x-www-form-urlencoded")
    assert call["form"]["grant_type"] == "urn:ietf:params:oauth:grant-type:jwt-bearer"
    claims = jwt.decode(
        call["form"]["assertion"],
        public_key_of(rsa_private_key_pem),
        algorithms=["RS256"],
        audience=fake_docusign.host,
    )
    assert claims["sub"] == TEST_USER_ID


def test_consent_required_carries_consent_url(docusign, fake_docusign):
    fake_docusign.token_response = (400, {"error": "consent_required"})

    with pytest.raises(ConsentRequiredException) as exc_info:
        asyncio.run(docusign.get_access_token())

    assert exc_info.value.message == "Failed to generate JWT token"
    assert exc_info.value.consent_url == (
        f"http://{fake_docusign.host}/oauth/auth?response_type=code"
        "&scope=signature%20impersonation"
        f"&client_id={TEST_CLIENT_ID}"
        "&redirect_uri=http://localhost:3000/ds/callback"
    )


@pytest.mark.parametrize(
    "token_response",
    [
        (400, {"error": "invalid_grant"}),
        (500, "upstream unavailable"),
        (200, {"token_type": "Bearer"}),
    ],
)
def test_token_failures_are_generic(docusign, fake_docusign, token_response):
    fake_docusign.token_response = token_response

    with pytest.raises(TokenGenerationException) as exc_info:
        asyncio.run(docusign.get_access_token())

    assert not isinstance(exc_info.value, ConsentRequiredException)
    assert exc_info.value.message == "Failed to generate JWT token"


def test_token_network_failure(credentials, test_settings, fake_docusign):
    unreachable = test_settings.model_copy(update={"docusign_auth_server": "127.0.0.1:1"})
    docusign = DocusignClient(credentials, unreachable)

    with pytest.raises(TokenGenerationException):
        asyncio.run(docusign.get_access_token())


def test_get_base_uri_prefers_configured_account(docusign, fake_docusign, access_token):
    fake_docusign.userinfo_response = (
        200,
        {
            "accounts": [
                {"account_id": "other-account", "base_uri": "https://na1.docusign.net"},
                {"account_id": TEST_ACCOUNT_ID, "base_uri": "https://demo.docusign.net/"},
            ]
        },
    )

    base_uri = asyncio.run(docusign.get_base_uri(access_token))

    assert base_uri == "https://demo.docusign.net"
    call = fake_docusign.calls("/oauth/userinfo")[0]
    assert call["headers"]["authorization"] == "Bearer test-access-token"


def test_get_base_uri_falls_back_to_first_account(docusign, fake_docusign, access_token):
    fake_docusign.userinfo_response = (
        200,
        {
            "accounts": [
                {"account_id": "first-account", "base_uri": "https://na2.docusign.net"},
                {"account_id": "second-account", "base_uri": "https://na3.docusign.net"},
            ]
        },
    )

    assert asyncio.run(docusign.get_base_uri(access_token)) == "https://na2.docusign.net"


@pytest.mark.parametrize(
    "userinfo_response",
    [
        (401, {"error": "invalid_token"}),
        (200, {"accounts": []}),
        (200, {"sub": TEST_USER_ID}),
        (200, {"accounts": [None]}),
        (200, {"accounts": ["x"]}),
        (200, {"accounts": {"k": "v"}}),
        (200, {"accounts": [{"account_id": "other-account"}]}),
        (200, ["not", "an", "object"]),
    ],
)
def test_base_uri_failures(docusign, fake_docusign, access_token, userinfo_response):
    fake_docusign.userinfo_response = userinfo_response

    with pytest.raises(BaseUriRetrievalException) as exc_info:
        asyncio.run(docusign.get_base_uri(access_token))

    assert exc_info.value.message == "Failed to retrieve base URI"


def test_base_uri_network_failure(credentials, test_settings, access_token):
    unreachable = test_settings.model_copy(update={"docusign_auth_server": "127.0.0.1:1"})
    docusign = DocusignClient(credentials, unreachable)

    with pytest.raises(BaseUriRetrievalException) as exc_info:
        asyncio.run(docusign.get_base_uri(access_token))

    assert exc_info.value.message == "Failed to retrieve base URI"
    assert "error" in exc_info.value.details


def test_create_envelope_network_failure(docusign, access_token):
    with pytest.raises(EnvelopeCreationException) as exc_info:
        asyncio.run(docusign.create_envelope(access_token, "http://127.0.0.1:1", {}))

    assert exc_info.value.message == "Failed to create envelope"
    assert "error" in exc_info.value.details


def test_create_envelope_returns_provider_body(docusign, fake_docusign, access_token):
    definition = {"emailSubject": "Please sign this agreement", "status": "sent"}

    result = asyncio.run(docusign.create_envelope(access_token, fake_docusign.url, definition))

    assert result == fake_docusign.envelope_response[1]
    call = fake_docusign.calls(f"/restapi/v2.1/accounts/{TEST_ACCOUNT_ID}/envelopes")[0]
    assert call["json"] == definition
    assert call["headers"]["authorization"] == "Bearer test-access-token"


def test_create_envelope_failure_keeps_provider_details(docusign, fake_docusign, access_token):
    fake_docusign.envelope_response = (400, {"errorCode": "ACCOUNT_LACKS_PERMISSIONS"})

    with pytest.raises(EnvelopeCreationException) as exc_info:
        asyncio.run(docusign.create_envelope(access_token, fake_docusign.url, {}))

    assert exc_info.value.message == "Failed to create envelope"
    assert exc_info.value.details == {
        "status": 400,
        "response": {"errorCode": "ACCOUNT_LACKS_PERMISSIONS"},
    }
