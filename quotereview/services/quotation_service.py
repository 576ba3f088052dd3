"""
Quotation workflow service.

Each mutating operation is one unit of work against a single quotation:
lock the row, repair legacy comments, apply the change together with its
history entries, commit. Any exception rolls the session back and removes the
PDF written during the call. Notifications go out only after the commit, are
handed to ``defer`` when one is given, and never fail the operation.
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from quotereview.core.config import settings
from quotereview.core.errors import (
    AccessDeniedError, ConflictError, NotFoundError, ValidationError
)
from quotereview.core.logging import get_logger
from quotereview.core.rbac import Actor, Role
from quotereview.db.models import (
    FIRST_REVISION, HistoryAction, Quotation, QuotationStatus, QuotationVersion, User, UserRole
)
from quotereview.services import access_control, email_templates, history_ledger
from quotereview.services.comment_normalizer import (
    make_comment, normalize_annotations, normalize_quotation
)
from quotereview.services.notifications import Notifier
from quotereview.services.pdf_dates import calculate_due_date, extract_issued_date
from quotereview.services.pdf_renderer import render_pdf_from_html
from quotereview.services.storage import PdfStorage, StoredFile, validate_pdf

logger = get_logger(__name__)

COMMENT_PREVIEW_LENGTH = 100
RECENT_ACTIVITY_LIMIT = 10
PENDING_STATUSES = (
    QuotationStatus.SUBMITTED.value,
    QuotationStatus.UNDER_REVIEW.value,
    QuotationStatus.CHANGES_REQUESTED.value,
)

CONCURRENT_MODIFICATION = "Quotation was modified by another request. Please retry."
DUPLICATE_DOCUMENT = "A quotation with this document number already exists"

_UNSET = object()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _comment_description(text: str) -> str:
    suffix = "..." if len(text) > COMMENT_PREVIEW_LENGTH else ""
    return f"Comment added: {text[:COMMENT_PREVIEW_LENGTH]}{suffix}"


class QuotationService:
    """Operations on quotations for an authenticated actor."""

    def __init__(
        self,
        db: Session,
        notifier: Optional[Notifier] = None,
        storage: Optional[PdfStorage] = None,
        renderer: Callable[[str], bytes] = render_pdf_from_html,
        date_extractor: Callable[[bytes], Optional[datetime]] = extract_issued_date,
        defer: Optional[Callable[..., Any]] = None,
    ):
        self.db = db
        self.notifier = notifier or Notifier()
        self.storage = storage or PdfStorage()
        self.renderer = renderer
        self.date_extractor = date_extractor
        # Runs a callable after the response is sent; None sends inline.
        self.defer = defer

    # ============= INTERNALS =============

    @contextmanager
    def _unit_of_work(
        self,
        written: Optional[List[StoredFile]] = None,
        integrity_message: str = CONCURRENT_MODIFICATION,
    ):
        written = written if written is not None else []
        try:
            yield written
            self.db.commit()
        except StaleDataError:
            self._abort(written)
            raise ConflictError(CONCURRENT_MODIFICATION)
        except IntegrityError:
            self._abort(written)
            raise ConflictError(integrity_message)
        except Exception:
            self._abort(written)
            raise

    def _abort(self, written: List[StoredFile]) -> None:
        self.db.rollback()
        for stored in written:
            self.storage.delete(stored)

    def _load_for_update(self, quotation_id: int) -> Quotation:
        quotation = (
            self.db.query(Quotation)
            .filter(Quotation.id == quotation_id)
            .with_for_update()
            .first()
        )
        if not quotation:
            raise NotFoundError("Quotation not found")
        return quotation

    def _get(self, quotation_id: int) -> Quotation:
        quotation = self.db.query(Quotation).filter(Quotation.id == quotation_id).first()
        if not quotation:
            raise NotFoundError("Quotation not found")
        return quotation

    def _latest(self, quotation: Quotation) -> QuotationVersion:
        latest = quotation.latest_version
        if latest is None:
            raise ValidationError("No versions found")
        return latest

    def _extract_dates(self, pdf_bytes: bytes):
        try:
            issued = self.date_extractor(pdf_bytes)
        except Exception as e:
            logger.warning(f"Issued date extraction failed: {e}")
            issued = None
        return issued, calculate_due_date(issued)

    def _notify(self, to: Optional[str], message: email_templates.EmailMessageSpec) -> None:
        if not to:
            return
        if self.defer is not None:
            self.defer(self._send, to, message)
        else:
            self._send(to, message)

    def _send(self, to: str, message: email_templates.EmailMessageSpec) -> None:
        try:
            result = self.notifier.send(to, message)
            if not result.get("success"):
                logger.warning(f"Notification to {to} not delivered: {result.get('error')}")
        except Exception as e:
            logger.error(f"Notification to {to} failed: {e}")

    def _notify_seller(self, quotation: Quotation, comments: Optional[str]) -> None:
        creator = quotation.creator
        if creator is None:
            return
        self._notify(
            creator.email,
            email_templates.quotation_status_change(
                quotation.title, quotation.status, comments, quotation.id
            ),
        )

    # ============= READS =============

    def list_quotations(
        self,
        actor: Actor,
        status: Optional[str] = None,
        supplier_id: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[Quotation]:
        query = access_control.visible_quotations(self.db, actor, status, supplier_id, search)
        if query is None:
            return []
        return query.order_by(Quotation.updated_at.desc(), Quotation.id.desc()).all()

    def get_quotation(self, quotation_id: int, actor: Actor) -> Quotation:
        quotation = self._get(quotation_id)
        access_control.ensure_can_view(self.db, actor, quotation)
        return quotation

    def get_html_content(self, quotation_id: int, actor: Actor) -> Dict[str, Any]:
        """Editor source of the latest version, for re-editing by its seller."""
        access_control.ensure_role(actor, Role.SELLER)
        quotation = self._get(quotation_id)
        if quotation.created_by != actor.id:
            raise AccessDeniedError("Access denied. You can only edit your own quotations.")
        latest = quotation.latest_version
        if latest is None:
            raise NotFoundError("No versions found")
        return {
            "htmlContent": latest.html_content or "",
            "quotation": {
                "projectNumber": quotation.project_number,
                "documentNumber": quotation.document_number,
                "title": quotation.title,
            },
        }

    def get_version_history(self, quotation_id: int, actor: Actor) -> List[QuotationVersion]:
        return list(self.get_quotation(quotation_id, actor).versions)

    def get_activity_history(self, quotation_id: int, actor: Actor):
        return history_ledger.list_descending(self.get_quotation(quotation_id, actor))

    def get_statistics(self, actor: Actor) -> Dict[str, Any]:
        access_control.ensure_role(actor, Role.BUYER)
        by_status = {s.value: 0 for s in QuotationStatus}

        suppliers = (
            self.db.query(User)
            .filter(User.onboarded_by == actor.id, User.role == UserRole.SELLER.value)
            .order_by(User.id)
            .all()
        )
        if not suppliers:
            return {
                "totalQuotations": 0,
                "byStatus": by_status,
                "bySupplier": [],
                "recentActivity": [],
            }

        supplier_ids = [s.id for s in suppliers]
        quotations = (
            self.db.query(Quotation)
            .filter(Quotation.created_by.in_(supplier_ids))
            .order_by(Quotation.updated_at.desc(), Quotation.id.desc())
            .all()
        )
        for q in quotations:
            by_status[q.status] = by_status.get(q.status, 0) + 1

        by_supplier = []
        for supplier in suppliers:
            own = [q for q in quotations if q.created_by == supplier.id]
            by_supplier.append({
                "supplierId": supplier.id,
                "supplierName": supplier.name or "Unknown",
                "total": len(own),
                "approved": sum(1 for q in own if q.status == QuotationStatus.APPROVED.value),
                "pending": sum(1 for q in own if q.status in PENDING_STATUSES),
            })

        recent = [
            {
                "id": q.id,
                "title": q.title,
                "status": q.status,
                "supplier": q.creator.name if q.creator else "Unknown",
                "updatedAt": q.updated_at,
            }
            for q in quotations[:RECENT_ACTIVITY_LIMIT]
        ]

        return {
            "totalQuotations": len(quotations),
            "byStatus": by_status,
            "bySupplier": by_supplier,
            "recentActivity": recent,
        }

    # ============= MUTATIONS =============

    def upload_version(
        self,
        actor: Actor,
        document_number: Optional[str],
        project_number: Optional[str],
        title: Optional[str],
        pdf_bytes: Optional[bytes] = None,
        html_content: Optional[str] = None,
        upload_mode: Optional[str] = None,
    ) -> Quotation:
        """
        Create a quotation, or append the next revision to the quotation
        already registered under ``document_number``.
        """
        access_control.ensure_role(actor, Role.SELLER)

        document_number = (document_number or "").strip()
        project_number = (project_number or "").strip()
        title = (title or "").strip()
        if not project_number or not document_number or not title:
            raise ValidationError("Please provide projectNumber, documentNumber, and title")

        from_editor = bool(html_content) and upload_mode == "create"
        if not from_editor and not pdf_bytes:
            raise ValidationError("Please either upload a PDF file or create content using the editor")
        if not from_editor:
            validate_pdf(pdf_bytes)

        is_new = False
        with self._unit_of_work(integrity_message=DUPLICATE_DOCUMENT) as written:
            quotation = (
                self.db.query(Quotation)
                .filter(Quotation.document_number == document_number)
                .with_for_update()
                .first()
            )
            if quotation is not None:
                if quotation.created_by != actor.id:
                    raise AccessDeniedError(
                        "Access denied. This document number belongs to another supplier."
                    )
                if quotation.is_approved:
                    raise ConflictError("Cannot upload a new version to an approved quotation")

            if from_editor:
                pdf_bytes = self.renderer(html_content)
            stored = self.storage.save(pdf_bytes, prefix="quotation-" if from_editor else "")
            written.append(stored)

            issued, due = self._extract_dates(pdf_bytes)
            now = _now()
            metadata = {
                "pdfUrl": stored.url,
                "filename": stored.filename,
                "createdFromEditor": from_editor,
            }

            if quotation is None:
                is_new = True
                version = FIRST_REVISION
                quotation = Quotation(
                    project_number=project_number,
                    document_number=document_number,
                    title=title,
                    current_version=version,
                    status=QuotationStatus.SUBMITTED.value,
                    created_by=actor.id,
                    issued_date=issued,
                    due_date=due,
                )
                self.db.add(quotation)
                quotation.versions.append(QuotationVersion(
                    version=version,
                    pdf_url=stored.url,
                    comments=[],
                    annotations=[],
                    uploaded_by=actor.id,
                    uploaded_at=now,
                    html_content=html_content if from_editor else None,
                ))
                history_ledger.append(
                    quotation,
                    HistoryAction.CREATED,
                    f"Quotation created with version {version}",
                    actor.id,
                    new_value={
                        "projectNumber": project_number,
                        "documentNumber": document_number,
                        "title": title,
                        "version": version,
                    },
                    version=version,
                    metadata=metadata,
                )
            else:
                normalize_quotation(quotation, actor.id)
                version = quotation.get_next_version(settings.REVISION_OVERFLOW_MARKER)
                old_status = quotation.status

                quotation.versions.append(QuotationVersion(
                    version=version,
                    pdf_url=stored.url,
                    comments=[],
                    annotations=[],
                    uploaded_by=actor.id,
                    uploaded_at=now,
                    html_content=html_content if from_editor else None,
                ))
                quotation.current_version = version
                quotation.status = QuotationStatus.SUBMITTED.value
                if issued is not None:
                    quotation.issued_date = issued
                    quotation.due_date = due
                quotation.updated_at = now

                history_ledger.append(
                    quotation,
                    HistoryAction.VERSION_UPLOADED,
                    f"New version {version} uploaded",
                    actor.id,
                    new_value=version,
                    version=version,
                    metadata=metadata,
                )
                if old_status != QuotationStatus.SUBMITTED.value:
                    history_ledger.append(
                        quotation,
                        HistoryAction.STATUS_CHANGED,
                        f"Status changed from {old_status} to {QuotationStatus.SUBMITTED.value}",
                        actor.id,
                        old_value=old_status,
                        new_value=QuotationStatus.SUBMITTED.value,
                        version=version,
                    )

        self.db.refresh(quotation)
        logger.info(
            f"Quotation {quotation.document_number} {'created' if is_new else 'updated'} at {version}",
            extra={"user_id": actor.id, "entity_type": "quotation", "entity_id": quotation.id},
        )

        if not is_new:
            buyer = quotation.creator.onboarding_buyer if quotation.creator else None
            if buyer is not None:
                self._notify(
                    buyer.email,
                    email_templates.new_quotation_version(quotation.title, version, quotation.id),
                )
        return quotation

    def annotate(
        self,
        quotation_id: int,
        actor: Actor,
        comment: Optional[str] = None,
        annotations: Any = _UNSET,
    ) -> Quotation:
        """
        Add a review comment and/or replace the annotation set of the latest
        version. ``annotations=None`` (or omitted) leaves annotations untouched.
        """
        access_control.ensure_role(actor, Role.BUYER)

        with self._unit_of_work():
            quotation = self._load_for_update(quotation_id)
            access_control.ensure_can_view(self.db, actor, quotation)
            if quotation.is_approved:
                raise ConflictError("Cannot annotate approved quotation")

            normalize_quotation(quotation, actor.id)
            latest = self._latest(quotation)
            now = _now()

            text = comment.strip() if isinstance(comment, str) else ""
            if text:
                previous = list(latest.comments or [])
                latest.comments = previous + [make_comment(text, actor.id, now)]
                history_ledger.append(
                    quotation,
                    HistoryAction.COMMENTED,
                    _comment_description(text),
                    actor.id,
                    old_value=len(previous),
                    new_value=text,
                    version=latest.version,
                )

            if annotations is not _UNSET and annotations is not None:
                replacement = normalize_annotations(annotations)
                previous = latest.annotations if isinstance(latest.annotations, list) else []
                if replacement != previous:
                    history_ledger.append(
                        quotation,
                        HistoryAction.ANNOTATIONS_SAVED,
                        f"{len(replacement)} annotation(s) saved",
                        actor.id,
                        old_value=len(previous),
                        new_value=len(replacement),
                        version=latest.version,
                        metadata={"annotationCount": len(replacement)},
                    )
                latest.annotations = replacement

            if latest.reviewed_by is None or text:
                latest.reviewed_by = actor.id

            old_status = quotation.status
            if old_status == QuotationStatus.SUBMITTED.value:
                quotation.status = QuotationStatus.UNDER_REVIEW.value
                history_ledger.append(
                    quotation,
                    HistoryAction.STATUS_CHANGED,
                    f"Status changed from {old_status} to {quotation.status}",
                    actor.id,
                    old_value=old_status,
                    new_value=quotation.status,
                    version=latest.version,
                )
            quotation.updated_at = now

        self.db.refresh(quotation)
        if quotation.status != old_status:
            self._notify_seller(quotation, text or None)
        return quotation

    def request_changes(self, quotation_id: int, actor: Actor) -> Quotation:
        access_control.ensure_role(actor, Role.BUYER)

        with self._unit_of_work():
            quotation = self._load_for_update(quotation_id)
            access_control.ensure_can_view(self.db, actor, quotation)
            if quotation.is_approved:
                raise ConflictError("Cannot modify approved quotation")

            normalize_quotation(quotation, actor.id)
            old_status = quotation.status
            quotation.status = QuotationStatus.CHANGES_REQUESTED.value
            history_ledger.append(
                quotation,
                HistoryAction.CHANGES_REQUESTED,
                "Changes requested for quotation",
                actor.id,
                old_value=old_status,
                new_value=quotation.status,
                version=quotation.current_version,
            )
            quotation.updated_at = _now()

        self.db.refresh(quotation)
        latest = quotation.latest_version
        comments = "\n".join(c["text"] for c in (latest.comments or [])) if latest else ""
        self._notify_seller(quotation, comments)
        return quotation

    def approve(self, quotation_id: int, actor: Actor) -> Quotation:
        """
        Approve a quotation. Approving an already approved quotation records a
        fresh ``approved`` entry but keeps the original approver and time.
        """
        access_control.ensure_role(actor, Role.BUYER)

        with self._unit_of_work():
            quotation = self._load_for_update(quotation_id)
            access_control.ensure_can_view(self.db, actor, quotation)

            normalize_quotation(quotation, actor.id)
            old_status = quotation.status
            now = _now()
            metadata: Dict[str, Any]
            if quotation.is_approved and quotation.approved_at is not None:
                approved_at = quotation.approved_at
                if approved_at.tzinfo is None:
                    approved_at = approved_at.replace(tzinfo=timezone.utc)
                metadata = {"approvedAt": approved_at.isoformat(), "reapproval": True}
            else:
                quotation.status = QuotationStatus.APPROVED.value
                quotation.approved_by = actor.id
                quotation.approved_at = now
                metadata = {"approvedAt": now.isoformat()}

            history_ledger.append(
                quotation,
                HistoryAction.APPROVED,
                "Quotation approved",
                actor.id,
                old_value=old_status,
                new_value=QuotationStatus.APPROVED.value,
                version=quotation.current_version,
                metadata=metadata,
            )
            quotation.updated_at = now

        self.db.refresh(quotation)
        self._notify_seller(quotation, "Your quotation has been approved!")
        return quotation
