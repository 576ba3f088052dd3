"""
Response and request schemas shared by the API routers.

Field names follow the camelCase wire format (``projectNumber``,
``currentVersion``, ``pdfUrl`` ...). Models are built from ORM rows through
the ``from_model`` constructors and serialized by alias.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from quotereview.core.security import get_role_value
from quotereview.services.comment_normalizer import normalize_comments


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============= USERS =============

class UserSummary(CamelModel):
    id: int
    name: str
    email: str

    @classmethod
    def from_model(cls, user) -> Optional["UserSummary"]:
        if user is None:
            return None
        return cls(id=user.id, name=user.name, email=user.email)


class UserResponse(CamelModel):
    id: int
    name: str
    email: str
    role: str
    status: Optional[str] = None
    email_verified: bool = False
    onboarded_by: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, user) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=get_role_value(user.role),
            status=user.status,
            email_verified=bool(user.email_verified),
            onboarded_by=user.onboarded_by,
            created_at=user.created_at,
        )


class TokenResponse(CamelModel):
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class MessageResponse(CamelModel):
    message: str


# ============= QUOTATIONS =============

class VersionResponse(CamelModel):
    id: int
    version: str
    pdf_url: str
    annotated_pdf_url: Optional[str] = None
    comments: List[Dict[str, Any]] = Field(default_factory=list)
    annotations: List[Dict[str, Any]] = Field(default_factory=list)
    uploaded_by: Optional[UserSummary] = None
    reviewed_by: Optional[UserSummary] = None
    uploaded_at: Optional[datetime] = None
    html_content: Optional[str] = None

    @classmethod
    def from_model(cls, version) -> "VersionResponse":
        comments = normalize_comments(
            version.comments,
            fallback_author=version.reviewed_by or version.uploaded_by,
            fallback_time=version.uploaded_at,
        )
        annotations = version.annotations if isinstance(version.annotations, list) else []
        return cls(
            id=version.id,
            version=version.version,
            pdf_url=version.pdf_url,
            annotated_pdf_url=version.annotated_pdf_url,
            comments=comments,
            annotations=annotations,
            uploaded_by=UserSummary.from_model(version.uploader),
            reviewed_by=UserSummary.from_model(version.reviewer),
            uploaded_at=version.uploaded_at,
            html_content=version.html_content,
        )


class HistoryEntryResponse(CamelModel):
    id: int
    action: str
    description: str
    performed_by: Optional[UserSummary] = None
    old_value: Any = None
    new_value: Any = None
    version: Optional[str] = None
    metadata: Any = None
    timestamp: datetime

    @classmethod
    def from_model(cls, entry) -> "HistoryEntryResponse":
        return cls(
            id=entry.id,
            action=entry.action,
            description=entry.description,
            performed_by=UserSummary.from_model(entry.performer),
            old_value=entry.old_value,
            new_value=entry.new_value,
            version=entry.version,
            metadata=entry.meta_data,
            timestamp=entry.timestamp,
        )


class QuotationResponse(CamelModel):
    id: int
    project_number: str
    document_number: str
    title: str
    current_version: str
    status: str
    versions: List[VersionResponse]
    created_by: Optional[UserSummary] = None
    approved_by: Optional[UserSummary] = None
    approved_at: Optional[datetime] = None
    issued_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    history: List[HistoryEntryResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, quotation) -> "QuotationResponse":
        return cls(
            id=quotation.id,
            project_number=quotation.project_number,
            document_number=quotation.document_number,
            title=quotation.title,
            current_version=quotation.current_version,
            status=quotation.status,
            versions=[VersionResponse.from_model(v) for v in quotation.versions],
            created_by=UserSummary.from_model(quotation.creator),
            approved_by=UserSummary.from_model(quotation.approver),
            approved_at=quotation.approved_at,
            issued_date=quotation.issued_date,
            due_date=quotation.due_date,
            history=[HistoryEntryResponse.from_model(h) for h in quotation.history],
            created_at=quotation.created_at,
            updated_at=quotation.updated_at,
        )


class QuotationInfo(CamelModel):
    project_number: str
    document_number: str
    title: str


class HtmlContentResponse(CamelModel):
    html_content: str
    quotation: QuotationInfo


class StatusCount(CamelModel):
    submitted: int = Field(0, alias="Submitted")
    under_review: int = Field(0, alias="Under Review")
    changes_requested: int = Field(0, alias="Changes Requested")
    approved: int = Field(0, alias="Approved")


class SupplierStatistics(CamelModel):
    supplier_id: int
    supplier_name: str
    total: int
    approved: int
    pending: int


class RecentActivity(CamelModel):
    id: int
    title: str
    status: str
    supplier: str
    updated_at: Optional[datetime] = None


class StatisticsResponse(CamelModel):
    total_quotations: int
    by_status: StatusCount
    by_supplier: List[SupplierStatistics]
    recent_activity: List[RecentActivity]


class AnnotateRequest(BaseModel):
    """Body of ``POST /{id}/annotate``. ``comments`` is the legacy name of ``comment``."""
    comment: Optional[str] = None
    comments: Optional[Any] = None
    annotations: Optional[Any] = None

    @property
    def comment_text(self) -> Optional[str]:
        if isinstance(self.comment, str) and self.comment.strip():
            return self.comment
        if isinstance(self.comments, str):
            return self.comments
        return None


# ============= AUTH REQUESTS =============

class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., max_length=128)
    role: Optional[str] = None


class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    role: Optional[str] = None
    invitation_token: Optional[str] = None


class InviteSupplierRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr


class SupplierStatusRequest(BaseModel):
    status: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    password: str = Field(..., min_length=6, max_length=128)


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., max_length=128)
    new_password: str = Field(..., min_length=6, max_length=128)
