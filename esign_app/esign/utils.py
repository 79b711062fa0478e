# esign_app/esign/utils.py

import base64
import binascii
from typing import Any, Dict, List

from pydantic import ValidationError

from esign_app.esign.exceptions import SigningRequestValidationException
from esign_app.esign.schemas import (
    Participant,
    SigningRequest,
    SigningRequestPayload,
    SigningType,
)

PDF_DATA_URI_PREFIX = "data:application/pdf;base64,"

DOCUMENT_ID = "1"
DOCUMENT_NAME = "Agreement.pdf"

# Same placement for every signer: page 1, near the bottom of an A4 page
SIGN_HERE_TAB = {
    "documentId": DOCUMENT_ID,
    "pageNumber": "1",
    "xPosition": "250",
    "yPosition": "792",
}


def strip_data_uri_prefix(file_content: str) -> str:
    if file_content.startswith(PDF_DATA_URI_PREFIX):
        return file_content[len(PDF_DATA_URI_PREFIX):]
    return file_content


def _is_pdf_base64(content: str) -> bool:
    try:
        raw = base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError):
        return False
    return raw.startswith(b"%PDF")


def validate_signing_request(body: Any) -> SigningRequest:
    """
    Validate the raw request body in the order the form expects its errors:
    participants, signing type, then the file.
    """
    if not isinstance(body, dict):
        raise SigningRequestValidationException("Invalid JSON body")
    payload = SigningRequestPayload.model_validate(body)

    if not isinstance(payload.participants, list) or not payload.participants:
        raise SigningRequestValidationException("Participants are required")
    try:
        participants = [Participant.model_validate(p) for p in payload.participants]
    except ValidationError as e:
        raise SigningRequestValidationException(
            "Each participant requires a name and an email",
            {"errors": e.errors(include_url=False)},
        ) from e

    if payload.signing_type not in [t.value for t in SigningType]:
        raise SigningRequestValidationException("Invalid signing type")

    if not isinstance(payload.file, str) or not payload.file:
        raise SigningRequestValidationException("File is required")
    document_base64 = strip_data_uri_prefix(payload.file)
    if not _is_pdf_base64(document_base64):
        raise SigningRequestValidationException("Invalid PDF file content")

    return SigningRequest(
        participants=participants,
        signing_type=SigningType(payload.signing_type),
        document_base64=document_base64,
    )


def _recipient(participant: Participant, index: int) -> Dict[str, Any]:
    order = str(index + 1)
    return {
        "email": participant.email,
        "name": participant.name,
        "recipientId": order,
        "routingOrder": order,
    }


def build_signers(participants: List[Participant]) -> List[Dict[str, Any]]:
    return [
        {**_recipient(p, i), "tabs": {"signHereTabs": [dict(SIGN_HERE_TAB)]}}
        for i, p in enumerate(participants)
    ]


def build_notaries(participants: List[Participant]) -> List[Dict[str, Any]]:
    return [_recipient(p, i) for i, p in enumerate(participants)]


def build_envelope_definition(
    request: SigningRequest, email_subject: str
) -> Dict[str, Any]:
    """Envelope definition for a single PDF, dispatched immediately."""
    recipients: Dict[str, Any] = {"signers": build_signers(request.participants)}
    if request.signing_type == SigningType.NOTARY:
        recipients["notaries"] = build_notaries(request.participants)

    return {
        "emailSubject": email_subject,
        "documents": [
            {
                "documentBase64": request.document_base64,
                "name": DOCUMENT_NAME,
                "fileExtension": "pdf",
                "documentId": DOCUMENT_ID,
            }
        ],
        "recipients": recipients,
        "status": "sent",
    }
