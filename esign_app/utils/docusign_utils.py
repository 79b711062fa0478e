# esign_app/utils/docusign_utils.py

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

import aiohttp
import jwt

from esign_app.core.config import Credentials, Settings
from esign_app.esign.exceptions import (
    BaseUriRetrievalException,
    ConsentRequiredException,
    EnvelopeCreationException,
    TokenGenerationException,
)
from esign_app.utils.logger import get_logger

logger = get_logger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
JWT_SCOPE = "signature impersonation"
JWT_LIFETIME = timedelta(seconds=600)


@dataclass(frozen=True)
class AccessToken:
    value: str
    issued_at: datetime
    expires_at: datetime


def _parse_body(body: str) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        return body


class DocusignClient:
    """
    Client for the three DocuSign calls behind a signing request:
    JWT grant, user info lookup and envelope creation.
    """

    def __init__(self, credentials: Credentials, settings: Settings):
        self.credentials = credentials
        self.auth_server = settings.docusign_auth_server
        self.auth_base_url = settings.auth_base_url
        self.consent_redirect_uri = settings.docusign_consent_redirect_uri

    def build_consent_url(self) -> str:
        """URL an administrator visits once to grant impersonation consent."""
        query = urlencode(
            {
                "response_type": "code",
                "scope": JWT_SCOPE,
                "client_id": self.credentials.client_id,
                "redirect_uri": self.consent_redirect_uri,
            },
            quote_via=quote,
            safe=":/",
        )
        return f"{self.auth_base_url}/oauth/auth?{query}"

    def build_jwt_assertion(self, issued_at: Optional[datetime] = None) -> str:
        """Sign the JWT grant assertion with the configured RSA key."""
        issued_at = issued_at or datetime.now(timezone.utc)
        jwt_payload = {
            "iss": self.credentials.client_id,
            "sub": self.credentials.user_id,
            "aud": self.auth_server,
            "iat": issued_at,
            "exp": issued_at + JWT_LIFETIME,
            "scope": JWT_SCOPE,
        }
        return jwt.encode(jwt_payload, self.credentials.private_key, algorithm="RS256")

    async def get_access_token(self) -> AccessToken:
        """
        Exchanges a freshly signed JWT for a DocuSign access token.
        A ``consent_required`` answer is reported separately so the operator
        can grant consent; every other failure is a generic token error.
        """
        issued_at = datetime.now(timezone.utc).replace(microsecond=0)
        try:
            assertion = self.build_jwt_assertion(issued_at)
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            logger.error("Error signing JWT assertion", error=str(e))
            raise TokenGenerationException({"error": str(e)}) from e

        url = f"{self.auth_base_url}/oauth/token"
        payload = {"grant_type": JWT_BEARER_GRANT, "assertion": assertion}
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, data=payload) as response:
                    body = await response.text()
                    status = response.status
        except aiohttp.ClientError as e:
            logger.error("Error generating JWT token", error=str(e))
            raise TokenGenerationException({"error": str(e)}) from e

        data = _parse_body(body)
        if status >= 300:
            if isinstance(data, dict) and data.get("error") == "consent_required":
                consent_url = self.build_consent_url()
                logger.error(
                    "Consent is required. Please grant consent using the following URL",
                    consent_url=consent_url,
                )
                raise ConsentRequiredException(consent_url)
            logger.error("Error generating JWT token", status=status, response=data)
            raise TokenGenerationException({"status": status, "response": data})

        if not isinstance(data, dict) or not data.get("access_token"):
            logger.error("Token response carries no access token", response=data)
            raise TokenGenerationException({"status": status, "response": data})

        return AccessToken(
            value=data["access_token"],
            issued_at=issued_at,
            expires_at=issued_at + JWT_LIFETIME,
        )

    async def get_base_uri(self, access_token: AccessToken) -> str:
        """
        Resolves the REST base URI for the configured account.
        Falls back to the first listed account when none matches the id.
        """
        url = f"{self.auth_base_url}/oauth/userinfo"
        headers = {"Authorization": f"Bearer {access_token.value}"}
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, headers=headers) as response:
                    body = await response.text()
                    status = response.status
        except aiohttp.ClientError as e:
            logger.error("Error retrieving base URI", error=str(e))
            raise BaseUriRetrievalException({"error": str(e)}) from e

        data = _parse_body(body)
        if status >= 300:
            logger.error("Error retrieving base URI", status=status, response=data)
            raise BaseUriRetrievalException({"status": status, "response": data})

        accounts = data.get("accounts") if isinstance(data, dict) else None
        if not accounts or not isinstance(accounts, list):
            logger.error("User info lists no accounts", response=data)
            raise BaseUriRetrievalException({"status": status, "response": data})

        account = next(
            (
                a
                for a in accounts
                if isinstance(a, dict) and a.get("account_id") == self.credentials.account_id
            ),
            None,
        )
        if account is None:
            logger.warning(
                "Configured account not in user info, using first account",
                account_id=self.credentials.account_id,
            )
            account = accounts[0]

        base_uri = account.get("base_uri") if isinstance(account, dict) else None
        if not base_uri or not isinstance(base_uri, str):
            logger.error("Account carries no base URI", response=data)
            raise BaseUriRetrievalException({"status": status, "response": data})
        return base_uri.rstrip("/")

    async def create_envelope(
        self,
        access_token: AccessToken,
        base_uri: str,
        envelope_definition: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Posts the envelope definition and returns DocuSign's response as is."""
        url = f"{base_uri}/restapi/v2.1/accounts/{self.credentials.account_id}/envelopes"
        headers = {
            "Authorization": f"Bearer {access_token.value}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url, headers=headers, json=envelope_definition
                ) as response:
                    body = await response.text()
                    status = response.status
        except aiohttp.ClientError as e:
            logger.error("Error creating envelope", error=str(e))
            raise EnvelopeCreationException({"error": str(e)}) from e

        data = _parse_body(body)
        if status >= 300:
            logger.error("Error creating envelope", status=status, response=data)
            raise EnvelopeCreationException({"status": status, "response": data})

        return data
