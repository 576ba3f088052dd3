"""
Quotation API routes: listing, upload, review and approval.

Business rules live in ``QuotationService``; the routes resolve the actor,
unpack the request and shape the response.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from quotereview.api.deps import get_quotation_service
from quotereview.api.schemas import (
    AnnotateRequest, HistoryEntryResponse, HtmlContentResponse, QuotationResponse,
    StatisticsResponse, VersionResponse,
)
from quotereview.core.config import settings
from quotereview.core.errors import ValidationError
from quotereview.core.logging import get_logger
from quotereview.core.rbac import Actor, get_current_actor, require_buyer, require_seller
from quotereview.services.quotation_service import QuotationService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/quotations", tags=["Quotations"])

PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}


# ============= READS =============

@router.get("", response_model=List[QuotationResponse])
@router.get("/", response_model=List[QuotationResponse], include_in_schema=False)
async def list_quotations(
    status_filter: Optional[str] = Query(None, alias="status"),
    supplier_id: Optional[int] = Query(None, alias="supplierId"),
    search: Optional[str] = None,
    actor: Actor = Depends(get_current_actor),
    service: QuotationService = Depends(get_quotation_service),
):
    """Quotations visible to the caller, most recently updated first."""
    quotations = service.list_quotations(actor, status=status_filter, supplier_id=supplier_id, search=search)
    return [QuotationResponse.from_model(q) for q in quotations]


@router.get("/statistics", response_model=StatisticsResponse)
async def get_statistics(
    actor: Actor = Depends(require_buyer),
    service: QuotationService = Depends(get_quotation_service),
):
    return StatisticsResponse.model_validate(service.get_statistics(actor))


@router.get("/{quotation_id}", response_model=QuotationResponse)
async def get_quotation(
    quotation_id: int,
    actor: Actor = Depends(get_current_actor),
    service: QuotationService = Depends(get_quotation_service),
):
    return QuotationResponse.from_model(service.get_quotation(quotation_id, actor))


@router.get("/{quotation_id}/history", response_model=List[VersionResponse])
async def get_version_history(
    quotation_id: int,
    actor: Actor = Depends(get_current_actor),
    service: QuotationService = Depends(get_quotation_service),
):
    return [VersionResponse.from_model(v) for v in service.get_version_history(quotation_id, actor)]


@router.get("/{quotation_id}/activity-history", response_model=List[HistoryEntryResponse])
async def get_activity_history(
    quotation_id: int,
    actor: Actor = Depends(get_current_actor),
    service: QuotationService = Depends(get_quotation_service),
):
    """History entries newest first."""
    return [HistoryEntryResponse.from_model(e) for e in service.get_activity_history(quotation_id, actor)]


@router.get("/{quotation_id}/html-content", response_model=HtmlContentResponse)
async def get_html_content(
    quotation_id: int,
    actor: Actor = Depends(require_seller),
    service: QuotationService = Depends(get_quotation_service),
):
    return HtmlContentResponse.model_validate(service.get_html_content(quotation_id, actor))


# ============= MUTATIONS =============

@router.post("/upload", response_model=QuotationResponse, status_code=status.HTTP_201_CREATED)
async def upload_quotation(
    projectNumber: Optional[str] = Form(None),
    documentNumber: Optional[str] = Form(None),
    title: Optional[str] = Form(None),
    htmlContent: Optional[str] = Form(None),
    uploadMode: Optional[str] = Form(None),
    pdf: Optional[UploadFile] = File(None),
    actor: Actor = Depends(require_seller),
    service: QuotationService = Depends(get_quotation_service),
):
    """
    Upload a PDF (``pdf`` file part) or editor HTML (``htmlContent`` with
    ``uploadMode=create``). A known ``documentNumber`` gets a new revision.
    """
    pdf_bytes = None
    if pdf is not None and pdf.filename:
        if pdf.content_type and pdf.content_type not in PDF_CONTENT_TYPES:
            raise ValidationError("Only PDF files are allowed")
        pdf_bytes = await pdf.read(settings.MAX_UPLOAD_SIZE + 1)
        if len(pdf_bytes) > settings.MAX_UPLOAD_SIZE:
            raise ValidationError(
                f"File too large. Maximum size is {settings.MAX_UPLOAD_SIZE // (1024 * 1024)}MB"
            )

    quotation = service.upload_version(
        actor,
        document_number=documentNumber,
        project_number=projectNumber,
        title=title,
        pdf_bytes=pdf_bytes,
        html_content=htmlContent,
        upload_mode=uploadMode,
    )
    return QuotationResponse.from_model(quotation)


@router.post("/{quotation_id}/annotate", response_model=QuotationResponse)
async def annotate_quotation(
    quotation_id: int,
    body: AnnotateRequest,
    actor: Actor = Depends(require_buyer),
    service: QuotationService = Depends(get_quotation_service),
):
    """Add a comment and/or replace the annotation set of the latest version."""
    kwargs = {"comment": body.comment_text}
    if "annotations" in body.model_fields_set and body.annotations is not None:
        kwargs["annotations"] = body.annotations
    quotation = service.annotate(quotation_id, actor, **kwargs)
    return QuotationResponse.from_model(quotation)


@router.post("/{quotation_id}/request-changes", response_model=QuotationResponse)
async def request_changes(
    quotation_id: int,
    actor: Actor = Depends(require_buyer),
    service: QuotationService = Depends(get_quotation_service),
):
    return QuotationResponse.from_model(service.request_changes(quotation_id, actor))


@router.post("/{quotation_id}/approve", response_model=QuotationResponse)
async def approve_quotation(
    quotation_id: int,
    actor: Actor = Depends(require_buyer),
    service: QuotationService = Depends(get_quotation_service),
):
    return QuotationResponse.from_model(service.approve(quotation_id, actor))
