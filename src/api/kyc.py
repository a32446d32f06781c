# coding: utf-8
"""
KYC API Endpoints
Verification status, document submission and review
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.api_key_auth import verify_api_key
from src.api.auth import get_current_user
from src.api.dependencies import get_services
from src.database.models import KycDocument, User
from src.services.container import ServiceContainer

# Create router
router = APIRouter(prefix="/kyc", tags=["kyc"])


class KycStatusResponse(BaseModel):
    kyc_level: int
    levels: Dict[int, str]
    limits: Dict[str, Optional[Decimal]]
    rejection_reason: Optional[str]


class KycDocumentResponse(BaseModel):
    id: int
    level: int
    document_type: str
    status: str
    rejection_reason: Optional[str]
    created_at: datetime
    reviewed_at: Optional[datetime]


class SubmitDocumentRequest(BaseModel):
    level: int = Field(..., ge=1, le=3)
    document_type: str
    document_path: str = Field(..., min_length=1, description="Path in document storage")


class ReviewDocumentRequest(BaseModel):
    approve: bool
    reason: Optional[str] = None


def document_response(document: KycDocument) -> KycDocumentResponse:
    return KycDocumentResponse(
        id=document.id,
        level=document.level,
        document_type=document.document_type,
        status=document.status,
        rejection_reason=document.rejection_reason,
        created_at=document.created_at,
        reviewed_at=document.reviewed_at,
    )


@router.get("/status", response_model=KycStatusResponse)
async def get_kyc_status(
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    status = await services.kyc.get_status(user.id)
    return KycStatusResponse(
        kyc_level=status["kyc_level"],
        levels={level: value.value for level, value in status["levels"].items()},
        limits={op.value: limit for op, limit in status["limits"].items()},
        rejection_reason=status["rejection_reason"],
    )


@router.post("/documents", response_model=KycDocumentResponse)
async def submit_document(
    request: SubmitDocumentRequest,
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """Register an uploaded document for review"""
    document = await services.kyc.submit_document(
        user.id, request.level, request.document_type, request.document_path
    )
    return document_response(document)


@router.post("/documents/{document_id}/review", response_model=KycDocumentResponse)
async def review_document(
    document_id: int,
    request: ReviewDocumentRequest,
    api_key: str = Depends(verify_api_key),
    services: ServiceContainer = Depends(get_services),
):
    """Approve or reject a document (verification service)"""
    document = await services.kyc.review_document(
        document_id, request.approve, reason=request.reason
    )
    return document_response(document)
