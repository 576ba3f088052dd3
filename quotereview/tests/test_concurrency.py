"""
Concurrent writers against a file-backed SQLite database.

Each test opens two independent sessions on the same database file so that
one request can commit between another request's read and its commit.
"""
import os
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from quotereview.core.errors import ConflictError
from quotereview.core.rbac import actor_from_user
from quotereview.db.models import Quotation, QuotationStatus, UserRole
from quotereview.db.session import Base
from quotereview.services.quotation_service import QuotationService
from quotereview.services.storage import PdfStorage

from conftest import SAMPLE_PDF, create_user


@pytest.fixture
def race_sessions(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    first, second = factory(), factory()
    try:
        yield first, second
    finally:
        first.close()
        second.close()
        engine.dispose()


@pytest.fixture
def race_users(race_sessions):
    _, session = race_sessions
    buyer = create_user(session, "Race Buyer", "race-buyer@test.com", UserRole.BUYER.value)
    seller = create_user(
        session, "Race Seller", "race-seller@test.com", UserRole.SELLER.value, onboarded_by=buyer.id
    )
    return actor_from_user(buyer), actor_from_user(seller)


@pytest.fixture
def race_storage(tmp_path):
    return PdfStorage(base_dir=str(tmp_path / "quotations"))


def _service(session, storage, date_extractor=None):
    notifier = MagicMock()
    notifier.send.return_value = {"success": True}
    return QuotationService(
        session,
        notifier=notifier,
        storage=storage,
        renderer=MagicMock(return_value=SAMPLE_PDF),
        date_extractor=date_extractor or MagicMock(return_value=None),
    )


def _stored_files(storage):
    if not os.path.isdir(storage.base_dir):
        return []
    return os.listdir(storage.base_dir)


class TestConcurrentAnnotate:

    def test_stale_write_is_rejected_and_retry_keeps_both_comments(
        self, race_sessions, race_users, race_storage
    ):
        session_a, session_b = race_sessions
        buyer, seller = race_users
        service_a = _service(session_a, race_storage)
        service_b = _service(session_b, race_storage)

        quotation_id = service_a.upload_version(
            seller, document_number="D1", project_number="P-100", title="Steel beams",
            pdf_bytes=SAMPLE_PDF,
        ).id

        # request A has read the quotation before request B commits
        stale = session_a.get(Quotation, quotation_id)
        assert stale.status == QuotationStatus.SUBMITTED.value
        assert len(stale.history) == 1
        assert stale.versions[-1].comments == []

        service_b.annotate(quotation_id, buyer, comment="from B")

        with pytest.raises(ConflictError, match="modified by another request"):
            service_a.annotate(quotation_id, buyer, comment="from A")

        fresh = session_b.get(Quotation, quotation_id)
        assert [c["text"] for c in fresh.versions[-1].comments] == ["from B"]

        retried = service_a.annotate(quotation_id, buyer, comment="from A")
        assert [c["text"] for c in retried.versions[-1].comments] == ["from B", "from A"]
        assert [h.action for h in retried.history] == [
            "created", "commented", "status_changed", "commented",
        ]
        assert len({h.sequence for h in retried.history}) == 4


class TestConcurrentCreate:

    def test_document_number_taken_between_lookup_and_commit(
        self, race_sessions, race_users, race_storage
    ):
        session_a, session_b = race_sessions
        _, seller = race_users

        def competing_upload(pdf_bytes):
            session_b.add(Quotation(
                project_number="P-999",
                document_number="D1",
                title="Competing upload",
                created_by=seller.id,
            ))
            session_b.commit()
            return None

        service_a = _service(session_a, race_storage, date_extractor=competing_upload)

        with pytest.raises(ConflictError) as exc_info:
            service_a.upload_version(
                seller, document_number="D1", project_number="P-100", title="Steel beams",
                pdf_bytes=SAMPLE_PDF,
            )

        assert exc_info.value.message == "A quotation with this document number already exists"
        assert _stored_files(race_storage) == []
        session_b.expire_all()
        rows = session_b.query(Quotation).filter_by(document_number="D1").all()
        assert [q.title for q in rows] == ["Competing upload"]
