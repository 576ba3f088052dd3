"""
Shared FastAPI dependencies for the routers.
"""
from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from quotereview.db.session import get_db
from quotereview.services.notifications import Notifier
from quotereview.services.quotation_service import QuotationService
from quotereview.services.storage import PdfStorage


def get_notifier() -> Notifier:
    return Notifier()


def get_storage() -> PdfStorage:
    return PdfStorage()


def get_quotation_service(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    storage: PdfStorage = Depends(get_storage),
) -> QuotationService:
    return QuotationService(
        db, notifier=notifier, storage=storage, defer=background_tasks.add_task
    )
