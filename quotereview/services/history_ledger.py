"""
Append-only activity ledger for quotations.
"""
from datetime import datetime, timezone
from typing import Any, List, Optional, Union

from quotereview.db.models import HistoryAction, Quotation, QuotationHistory
from quotereview.core.logging import audit_logger


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything written here is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def append(
    quotation: Quotation,
    action: Union[HistoryAction, str],
    description: str,
    performed_by: int,
    old_value: Any = None,
    new_value: Any = None,
    version: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> QuotationHistory:
    """Add one entry at the end of the ledger with a server-assigned timestamp."""
    action = HistoryAction(action)
    entry = QuotationHistory(
        action=action.value,
        description=description,
        performed_by=performed_by,
        old_value=old_value,
        new_value=new_value,
        version=version,
        meta_data=metadata,
        timestamp=datetime.now(timezone.utc),
    )
    quotation.history.append(entry)

    audit_logger.log(
        action=action.value,
        user_id=performed_by,
        entity_type="quotation",
        entity_id=quotation.id,
        document_number=quotation.document_number,
        version=version,
        details={"description": description, "metadata": metadata} if metadata else {"description": description},
    )
    return entry


def list_descending(quotation: Quotation) -> List[QuotationHistory]:
    """Entries newest first; equal timestamps fall back to insertion order."""
    return sorted(
        quotation.history,
        key=lambda e: (_as_utc(e.timestamp), e.sequence),
        reverse=True,
    )
