# esign_app/esign/router.py

import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from esign_app.core.config import Credentials, Settings, get_credentials, get_settings
from esign_app.esign.exceptions import SigningRequestValidationException
from esign_app.esign.schemas import (
    CallbackResponse,
    ErrorResponse,
    SigningRequest,
    SigningResponse,
)
from esign_app.esign.services import ESignService
from esign_app.esign.utils import validate_signing_request
from esign_app.utils.docusign_utils import DocusignClient
from esign_app.utils.logger import get_logger

router = APIRouter(tags=["Esign"], prefix="/api/docusign")
logger = get_logger(__name__)


def get_esign_service(
    settings: Settings = Depends(get_settings),
    credentials: Credentials = Depends(get_credentials),
) -> ESignService:
    return ESignService(
        DocusignClient(credentials, settings), settings.docusign_email_subject
    )


async def read_signing_request(request: Request) -> SigningRequest:
    """
    Parses and validates the body before any DocuSign dependency is built,
    so bad input is rejected even when credentials are missing.

    The body is decoded here rather than declared as a pydantic body model:
    FastAPI's RequestValidationError would answer 422 with field lists, while
    callers expect 400 with one fixed message per rule, checked in order.
    """
    raw = await request.body()
    try:
        body = json.loads(raw.decode("utf-8")) if raw else None
    except (UnicodeDecodeError, ValueError) as e:
        raise SigningRequestValidationException("Invalid JSON body") from e
    return validate_signing_request(body)


@router.post(
    "",
    response_model=SigningResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def send_for_signature(
    signing_request: SigningRequest = Depends(read_signing_request),
    service: ESignService = Depends(get_esign_service),
):
    """
    Authenticates against DocuSign and sends the envelope for signature.
    """
    result = await service.send_for_signature(signing_request)
    return SigningResponse(message="Envelope created successfully", result=result)


@router.get(
    "",
    response_model=CallbackResponse,
    responses={400: {"model": ErrorResponse}},
)
async def docusign_callback(code: Optional[str] = Query(None)):
    """
    Receives the OAuth redirect after consent is granted and echoes the code.
    No token exchange happens here.
    """
    if not code:
        return JSONResponse(
            status_code=400, content={"error": "Authorization code is missing"}
        )
    logger.info("Authorization code received", code=code)
    return CallbackResponse(message="Callback received", code=code)
