"""
Visibility rules between buyers, the sellers they onboard, and quotations.

Sellers see their own quotations. Buyers see quotations created by sellers
whose ``onboarded_by`` points at them.
"""
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, Query

from quotereview.core.errors import AccessDeniedError, ValidationError
from quotereview.core.rbac import Actor, Role
from quotereview.db.models import Quotation, QuotationStatus, User, UserRole

LIKE_ESCAPE = "\\"


def escape_like(term: str) -> str:
    """Make ``term`` match literally inside a LIKE pattern."""
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def onboarded_supplier_ids(db: Session, buyer_id: int) -> List[int]:
    rows = db.query(User.id).filter(
        User.onboarded_by == buyer_id,
        User.role == UserRole.SELLER.value,
    ).all()
    return [r[0] for r in rows]


def is_onboarded_by(db: Session, seller_id: int, buyer_id: int) -> bool:
    return db.query(User.id).filter(
        User.id == seller_id,
        User.onboarded_by == buyer_id,
        User.role == UserRole.SELLER.value,
    ).first() is not None


def parse_status_filter(status: Optional[str]) -> Optional[str]:
    if not status:
        return None
    try:
        return QuotationStatus(status).value
    except ValueError:
        allowed = ", ".join(s.value for s in QuotationStatus)
        raise ValidationError(f"Invalid status '{status}'. Must be one of: {allowed}")


def visible_quotations(
    db: Session,
    actor: Actor,
    status: Optional[str] = None,
    supplier_id: Optional[int] = None,
    search: Optional[str] = None,
) -> Optional[Query]:
    """
    Query over the quotations ``actor`` may list, or None when the answer is
    known to be empty (a buyer without onboarded suppliers).
    """
    status_value = parse_status_filter(status)
    query = db.query(Quotation)

    if actor.is_seller:
        query = query.filter(Quotation.created_by == actor.id)
    else:
        supplier_ids = onboarded_supplier_ids(db, actor.id)
        if not supplier_ids:
            return None
        if supplier_id is not None:
            if supplier_id not in supplier_ids:
                raise AccessDeniedError("Access denied to this supplier")
            query = query.filter(Quotation.created_by == supplier_id)
        else:
            query = query.filter(Quotation.created_by.in_(supplier_ids))

    if status_value:
        query = query.filter(Quotation.status == status_value)

    if search:
        pattern = f"%{escape_like(search)}%"
        query = query.filter(
            or_(
                Quotation.title.ilike(pattern, escape=LIKE_ESCAPE),
                Quotation.project_number.ilike(pattern, escape=LIKE_ESCAPE),
                Quotation.document_number.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )

    return query


def can_view(db: Session, actor: Actor, quotation: Quotation) -> bool:
    if actor.is_seller:
        return quotation.created_by == actor.id
    return is_onboarded_by(db, quotation.created_by, actor.id)


def ensure_can_view(db: Session, actor: Actor, quotation: Quotation) -> None:
    if can_view(db, actor, quotation):
        return
    if actor.is_seller:
        raise AccessDeniedError("Access denied")
    raise AccessDeniedError("Access denied. This quotation is not from your onboarded supplier.")


def ensure_role(actor: Actor, role: Role) -> None:
    if actor.role != role:
        raise AccessDeniedError(f"Access denied. Required role: {role.value}")
