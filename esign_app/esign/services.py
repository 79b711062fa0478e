# esign_app/esign/services.py

from typing import Any, Dict

from esign_app.esign.schemas import SigningRequest
from esign_app.esign.utils import build_envelope_definition
from esign_app.utils.docusign_utils import DocusignClient
from esign_app.utils.logger import get_logger

logger = get_logger(__name__)


class ESignService:
    """Sends validated signing requests to DocuSign."""

    def __init__(self, client: DocusignClient, email_subject: str):
        self.client = client
        self.email_subject = email_subject

    async def send_for_signature(self, request: SigningRequest) -> Dict[str, Any]:
        """
        Token, base URI and envelope are fetched strictly in sequence; the
        first failing step raises and nothing after it runs.
        """
        access_token = await self.client.get_access_token()
        base_uri = await self.client.get_base_uri(access_token)

        envelope_definition = build_envelope_definition(request, self.email_subject)
        result = await self.client.create_envelope(
            access_token, base_uri, envelope_definition
        )
        logger.info(
            "Envelope created",
            envelope_id=result.get("envelopeId") if isinstance(result, dict) else None,
            signing_type=request.signing_type.value,
            participants=len(request.participants),
        )
        return result
