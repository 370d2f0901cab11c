"""
Servicer submission REST API endpoints

Endpoints:
- GET /healthz - Health check
- GET /servicers - Registered servicer adapters
- GET /servicers/{id}/config - Adapter configuration (credentials redacted)
- POST /servicers/{id}/test - Connection test
- POST /servicers/{id}/validate - Pre-flight validation
- POST /servicers/{id}/submit - Submit an application
- POST /submissions/outcome - Report a servicer outcome for learning
- GET /servicers/{id}/recommendations - Learned recommendations
- GET /servicers/{id}/intelligence - Full learned intelligence

Document content travels base64-encoded.
"""

import base64
import binascii
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path as PathParam
from pydantic import BaseModel, Field

from ..adapters.base import ApplicationDocument, PreparedApplication
from ..models import DocumentDescriptor, OutcomeStatus, Submission, SubmissionOutcome
from ..service import SubmissionService


# ============================================================================
# Request/Response Models
# ============================================================================

class DocumentModel(BaseModel):
    """One document file."""
    type: str = Field(..., description="Document type tag, e.g. hardship_letter")
    file_name: str
    mime_type: str
    content_base64: str = Field(..., description="Base64-encoded file content")
    size: Optional[int] = Field(None, ge=0, description="Defaults to decoded content length")


class ApplicationRequest(BaseModel):
    """Prepared application to validate or submit."""
    case_id: str
    loan_number: str
    borrower_name: str
    borrower_last_name: str
    documents: List[DocumentModel]
    submission_type: str = "loss_mitigation"
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_application(self) -> PreparedApplication:
        documents = []
        for doc in self.documents:
            try:
                content = base64.b64decode(doc.content_base64, validate=True)
            except binascii.Error as e:
                raise HTTPException(422, f"Document {doc.file_name} is not valid base64: {e}")
            documents.append(ApplicationDocument(
                type=doc.type,
                file_name=doc.file_name,
                content=content,
                mime_type=doc.mime_type,
                size=doc.size,
            ))
        return PreparedApplication(
            case_id=self.case_id,
            loan_number=self.loan_number,
            borrower_name=self.borrower_name,
            borrower_last_name=self.borrower_last_name,
            documents=documents,
            submission_type=self.submission_type,
            metadata=dict(self.metadata),
        )


class DocumentDescriptorModel(BaseModel):
    type: str
    format: str
    size: int = Field(..., ge=0)


class SubmissionModel(BaseModel):
    """Submission as it was sent to the servicer."""
    id: str
    servicer_id: str
    type: str = "loss_mitigation"
    documents: List[DocumentDescriptorModel]
    submitted_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class OutcomeModel(BaseModel):
    """Servicer response."""
    status: OutcomeStatus
    responded_at: datetime
    feedback: Optional[str] = None
    required_changes: Optional[List[str]] = None
    processing_time: Optional[float] = Field(None, ge=0.0, description="Milliseconds")


class OutcomeRequest(BaseModel):
    """Outcome report for learning."""
    submission: SubmissionModel
    outcome: OutcomeModel
    wait: bool = Field(False, description="Learn synchronously and return insights")

    def to_records(self) -> tuple[Submission, SubmissionOutcome]:
        submission = Submission(
            id=self.submission.id,
            servicer_id=self.submission.servicer_id,
            type=self.submission.type,
            documents=tuple(
                DocumentDescriptor(type=d.type, format=d.format, size=d.size)
                for d in self.submission.documents
            ),
            submitted_at=self.submission.submitted_at,
            metadata=dict(self.submission.metadata),
        )
        outcome = SubmissionOutcome(
            status=self.outcome.status,
            responded_at=self.outcome.responded_at,
            feedback=self.outcome.feedback,
            required_changes=self.outcome.required_changes,
            processing_time=self.outcome.processing_time,
        )
        return submission, outcome


class ValidationResponse(BaseModel):
    valid: bool
    errors: List[str]
    warnings: List[str]
    suggestions: List[str]


class ConnectionResponse(BaseModel):
    success: bool
    message: str


class RecommendationsResponse(BaseModel):
    servicer_id: str
    recommendations: List[str]


# ============================================================================
# Router
# ============================================================================

router = APIRouter(tags=["servicers"])

# Global instance (injected at startup)
_service: Optional[SubmissionService] = None


def set_service(service: Optional[SubmissionService]):
    """Set the global submission service.

    Called during app startup.
    """
    global _service
    _service = service


def get_service() -> SubmissionService:
    """Dependency: Get submission service."""
    if _service is None:
        raise HTTPException(
            status_code=503,
            detail="Submission service not initialized"
        )
    return _service


# ============================================================================
# Endpoints
# ============================================================================

@router.get("/healthz")
async def healthz(service: SubmissionService = Depends(get_service)):
    """Health check with registered servicers."""
    servicers = service.registered_servicers()
    return {
        "status": "healthy",
        "servicers_registered": len(servicers),
        "servicers": servicers,
    }


@router.get("/servicers")
async def list_servicers(service: SubmissionService = Depends(get_service)):
    """List servicers with dedicated adapters."""
    return {"servicers": service.factory.registry.list_metadata()}


@router.get("/servicers/{servicer_id}/config")
async def get_servicer_config(
    servicer_id: str = PathParam(..., description="Servicer identifier"),
    service: SubmissionService = Depends(get_service)
):
    """Adapter configuration; unknown servicers resolve to the Generic adapter."""
    config = await service.servicer_config(servicer_id)
    return config.to_dict()


@router.post("/servicers/{servicer_id}/test", response_model=ConnectionResponse)
async def test_connection(
    servicer_id: str = PathParam(..., description="Servicer identifier"),
    service: SubmissionService = Depends(get_service)
):
    check = await service.test_connection(servicer_id)
    return check.to_dict()


@router.post("/servicers/{servicer_id}/validate", response_model=ValidationResponse)
async def validate_application(
    req: ApplicationRequest,
    servicer_id: str = PathParam(..., description="Servicer identifier"),
    service: SubmissionService = Depends(get_service)
):
    result = await service.validate(servicer_id, req.to_application())
    return result.to_dict()


@router.post("/servicers/{servicer_id}/submit")
async def submit_application(
    req: ApplicationRequest,
    servicer_id: str = PathParam(..., description="Servicer identifier"),
    service: SubmissionService = Depends(get_service)
):
    """Submit an application.

    Always 200 with a typed result; inspect status and next_action.
    """
    result = await service.submit(servicer_id, req.to_application())
    return result.to_dict()


@router.post("/submissions/outcome", status_code=202)
async def record_outcome(
    req: OutcomeRequest,
    service: SubmissionService = Depends(get_service)
):
    """Report a servicer outcome.

    Learning runs in the background unless wait is set.
    """
    submission, outcome = req.to_records()

    if not req.wait:
        service.record_outcome(submission, outcome)
        return {"status": "accepted", "submission_id": submission.id}

    insights = await service.learn(submission, outcome)
    if insights is None:
        raise HTTPException(503, f"Learning from submission {submission.id} failed")
    return {"status": "learned", "submission_id": submission.id, **insights.to_dict()}


@router.get("/servicers/{servicer_id}/recommendations", response_model=RecommendationsResponse)
async def get_recommendations(
    servicer_id: str = PathParam(..., description="Servicer identifier"),
    service: SubmissionService = Depends(get_service)
):
    recommendations = await service.recommendations(servicer_id)
    return {"servicer_id": servicer_id, "recommendations": recommendations}


@router.get("/servicers/{servicer_id}/intelligence")
async def get_intelligence(
    servicer_id: str = PathParam(..., description="Servicer identifier"),
    service: SubmissionService = Depends(get_service)
):
    intelligence = await service.intelligence(servicer_id)
    return intelligence.to_dict()
