"""
SQLAlchemy ORM models for the quotation review service.

A Quotation is the aggregate root: it owns its ordered revisions
(QuotationVersion) and its append-only activity ledger (QuotationHistory).
"""
import re
from typing import Optional
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime,
    ForeignKey, Enum, JSON, Index
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum

from quotereview.db.session import Base


# ============= ENUMS =============

class UserRole(str, enum.Enum):
    BUYER = "buyer"
    SELLER = "seller"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INVITED = "invited"
    INACTIVE = "inactive"


class QuotationStatus(str, enum.Enum):
    SUBMITTED = "Submitted"
    UNDER_REVIEW = "Under Review"
    CHANGES_REQUESTED = "Changes Requested"
    APPROVED = "Approved"


class HistoryAction(str, enum.Enum):
    CREATED = "created"
    PDF_UPLOADED = "pdf_uploaded"
    VERSION_UPLOADED = "version_uploaded"
    STATUS_CHANGED = "status_changed"
    ANNOTATED = "annotated"
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    COMMENTED = "commented"
    ANNOTATIONS_SAVED = "annotations_saved"


# Stored as VARCHAR so the literal values double as the wire format
def enum_values(enum_cls):
    return [e.value for e in enum_cls]

UserRoleType = Enum(
    *enum_values(UserRole),
    name='userrole',
    native_enum=False,
    length=20,
)
UserStatusType = Enum(
    *enum_values(UserStatus),
    name='userstatus',
    native_enum=False,
    length=20,
)
QuotationStatusType = Enum(
    *enum_values(QuotationStatus),
    name='quotationstatus',
    native_enum=False,
    length=32,
)
HistoryActionType = Enum(
    *enum_values(HistoryAction),
    name='historyaction',
    native_enum=False,
    length=32,
)


FIRST_REVISION = "REV.A"
_REVISION_PATTERN = re.compile(r"REV\.([A-Z])")


def next_revision(last_revision: Optional[str], overflow_marker: str = "1") -> str:
    """
    Successor of a ``REV.<letter>`` identifier.

    ``REV.Z`` has no single-letter successor and becomes ``REV.Z<marker>``.
    Anything that is not exactly ``REV.<letter>`` (including that overflow
    value) restarts at ``REV.A``.
    """
    if not last_revision:
        return FIRST_REVISION

    match = _REVISION_PATTERN.fullmatch(last_revision)
    if not match:
        return FIRST_REVISION

    letter = match.group(1)
    if letter == "Z":
        return f"REV.{letter}{overflow_marker}"
    return f"REV.{chr(ord(letter) + 1)}"


# ============= USERS =============

class User(Base):
    """Buyer and seller accounts. Sellers point at the buyer that onboarded them."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(UserRoleType, nullable=False)
    onboarded_by = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(UserStatusType, default=UserStatus.ACTIVE.value, nullable=False)
    invitation_token = Column(String(128), index=True)
    invitation_expires = Column(DateTime(timezone=True))
    email_verified = Column(Boolean, default=False)
    email_verification_token = Column(String(128), index=True)
    email_verification_expires = Column(DateTime(timezone=True))
    password_reset_token = Column(String(128), index=True)
    password_reset_expires = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    onboarding_buyer = relationship("User", remote_side=[id], back_populates="suppliers")
    suppliers = relationship("User", back_populates="onboarding_buyer")
    quotations = relationship(
        "Quotation", back_populates="creator", foreign_keys="Quotation.created_by"
    )


# ============= QUOTATIONS =============

class Quotation(Base):
    """Quotation aggregate root, one per document number."""
    __tablename__ = "quotations"

    id = Column(Integer, primary_key=True, index=True)
    project_number = Column(String(255), nullable=False)
    document_number = Column(String(255), unique=True, nullable=False, index=True)
    title = Column(String(500), nullable=False)
    current_version = Column(String(32), nullable=False, default=FIRST_REVISION)
    status = Column(QuotationStatusType, nullable=False, default=QuotationStatus.SUBMITTED.value, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime(timezone=True))
    issued_date = Column(DateTime(timezone=True))  # extracted from the PDF text
    due_date = Column(DateTime(timezone=True))
    lock_version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    creator = relationship("User", foreign_keys=[created_by], back_populates="quotations")
    approver = relationship("User", foreign_keys=[approved_by])
    versions = relationship(
        "QuotationVersion",
        back_populates="quotation",
        order_by="QuotationVersion.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )
    history = relationship(
        "QuotationHistory",
        back_populates="quotation",
        order_by="QuotationHistory.sequence",
        collection_class=ordering_list("sequence"),
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": lock_version}

    @property
    def latest_version(self) -> Optional["QuotationVersion"]:
        return self.versions[-1] if self.versions else None

    @property
    def is_approved(self) -> bool:
        return self.status == QuotationStatus.APPROVED.value

    def get_next_version(self, overflow_marker: str = "1") -> str:
        """Revision identifier the next uploaded version will receive."""
        last = self.latest_version
        return next_revision(last.version if last else None, overflow_marker)


class QuotationVersion(Base):
    """One uploaded or editor-generated PDF revision and its review data."""
    __tablename__ = "quotation_versions"

    id = Column(Integer, primary_key=True, index=True)
    quotation_id = Column(Integer, ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    version = Column(String(32), nullable=False)  # REV.A, REV.B, ...
    pdf_url = Column(Text, nullable=False)
    annotated_pdf_url = Column(Text)
    comments = Column(JSON, default=list)  # legacy rows may hold a bare string
    annotations = Column(JSON, default=list)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now())
    html_content = Column(Text)  # editor source when the PDF was generated

    # Relationships
    quotation = relationship("Quotation", back_populates="versions")
    uploader = relationship("User", foreign_keys=[uploaded_by])
    reviewer = relationship("User", foreign_keys=[reviewed_by])

    __table_args__ = (
        Index('ix_quotation_versions_quotation_position', 'quotation_id', 'position', unique=True),
    )


class QuotationHistory(Base):
    """Append-only audit entry for a state-changing action on a quotation."""
    __tablename__ = "quotation_history"

    id = Column(Integer, primary_key=True, index=True)
    quotation_id = Column(Integer, ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False)
    sequence = Column(Integer, nullable=False)
    action = Column(HistoryActionType, nullable=False, index=True)
    description = Column(Text, nullable=False)
    performed_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    old_value = Column(JSON)
    new_value = Column(JSON)
    version = Column(String(32))
    meta_data = Column("metadata", JSON)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    # Relationships
    quotation = relationship("Quotation", back_populates="history")
    performer = relationship("User", foreign_keys=[performed_by])

    __table_args__ = (
        Index('ix_quotation_history_quotation_sequence', 'quotation_id', 'sequence', unique=True),
    )
