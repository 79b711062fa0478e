# esign_app/esign/schemas.py

from enum import Enum
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field


class SigningType(str, Enum):
    """How the participants sign: plain signatures or notarized."""
    REGULAR = "regular"
    NOTARY = "notary"


class Participant(BaseModel):
    """
    A person asked to sign. Position in the list is the routing order.
    """
    name: str = Field(min_length=1)
    email: str = Field(min_length=1)


class SigningRequestPayload(BaseModel):
    """Raw body of ``POST /api/docusign`` as sent by the form."""

    model_config = ConfigDict(populate_by_name=True)

    participants: Any = None
    signing_type: Any = Field(default=None, alias="signingType")
    file: Any = None


class SigningRequest(BaseModel):
    """Validated signing request handed to the DocuSign workflow."""
    participants: List[Participant] = Field(min_length=1)
    signing_type: SigningType
    document_base64: str


class SigningResponse(BaseModel):
    message: str
    result: Any


class CallbackResponse(BaseModel):
    message: str
    code: str


class ErrorResponse(BaseModel):
    error: str
