"""
Shared fixtures: an in-memory SQLite database per test, buyer/seller users,
a QuotationService with mocked collaborators, and an API client.
"""
import os
import tempfile

# Settings are read at import time, so the environment is fixed before any
# quotereview module is imported.
os.environ["DEBUG"] = "true"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-quotation-review-suite-0123456789"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="quotereview-uploads-")
os.environ["NOTIFICATIONS_ASYNC"] = "false"
os.environ["SEED_DEMO"] = "false"
os.environ.pop("EMAIL_HOST", None)

import pytest
from unittest.mock import MagicMock

from quotereview.core.rbac import actor_from_user
from quotereview.core.security import create_access_token, get_password_hash
from quotereview.db import models  # noqa - register tables
from quotereview.db.models import User, UserRole, UserStatus
from quotereview.db.session import Base, SessionLocal, engine
from quotereview.services.quotation_service import QuotationService
from quotereview.services.storage import PdfStorage


SAMPLE_PDF = (
    b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n"
    b"2 0 obj\n<< /Type /Pages /Kids [] /Count 0 >>\nendobj\n"
    b"trailer\n<< /Root 1 0 R >>\n%%EOF\n"
)
TEST_PASSWORD = "password123"


# ============= DATABASE =============

@pytest.fixture
def db():
    """Fresh schema for every test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


def create_user(db, name, email, role, onboarded_by=None, status=UserStatus.ACTIVE.value):
    user = User(
        name=name,
        email=email,
        hashed_password=get_password_hash(TEST_PASSWORD),
        role=role,
        onboarded_by=onboarded_by,
        status=status,
        email_verified=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_user(db):
    def factory(name, email, role, onboarded_by=None, status=UserStatus.ACTIVE.value):
        return create_user(db, name, email, role, onboarded_by, status)
    return factory


@pytest.fixture
def buyer(make_user):
    return make_user("Test Buyer", "buyer@test.com", UserRole.BUYER.value)


@pytest.fixture
def seller(make_user, buyer):
    return make_user("Test Seller", "seller@test.com", UserRole.SELLER.value, onboarded_by=buyer.id)


@pytest.fixture
def other_buyer(make_user):
    return make_user("Other Buyer", "other-buyer@test.com", UserRole.BUYER.value)


@pytest.fixture
def other_seller(make_user, other_buyer):
    return make_user(
        "Other Seller", "other-seller@test.com", UserRole.SELLER.value, onboarded_by=other_buyer.id
    )


@pytest.fixture
def buyer_actor(buyer):
    return actor_from_user(buyer)


@pytest.fixture
def seller_actor(seller):
    return actor_from_user(seller)


# ============= COLLABORATORS =============

@pytest.fixture
def notifier():
    mock = MagicMock()
    mock.send.return_value = {"success": True, "messageId": "test"}
    return mock


@pytest.fixture
def storage(tmp_path):
    return PdfStorage(base_dir=str(tmp_path / "quotations"))


@pytest.fixture
def renderer():
    return MagicMock(return_value=SAMPLE_PDF)


@pytest.fixture
def date_extractor():
    return MagicMock(return_value=None)


@pytest.fixture
def service(db, notifier, storage, renderer, date_extractor):
    return QuotationService(
        db,
        notifier=notifier,
        storage=storage,
        renderer=renderer,
        date_extractor=date_extractor,
    )


@pytest.fixture
def upload(service, seller_actor):
    """Upload SAMPLE_PDF as the default seller."""
    def _upload(document_number="D1", actor=None, **kwargs):
        params = {"project_number": "P-100", "title": "Steel beams", "pdf_bytes": SAMPLE_PDF}
        params.update(kwargs)
        return service.upload_version(actor or seller_actor, document_number=document_number, **params)
    return _upload


# ============= API =============

@pytest.fixture
def client(db, notifier, storage):
    from fastapi.testclient import TestClient
    from quotereview.api.deps import get_notifier, get_storage
    from quotereview.db.session import get_db
    from quotereview.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_storage] = lambda: storage
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(user) -> dict:
    token = create_access_token({"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def buyer_headers(buyer):
    return auth_headers(buyer)


@pytest.fixture
def seller_headers(seller):
    return auth_headers(seller)
