"""
Demo data: one buyer with one onboarded seller.

Only runs when SEED_DEMO=true (which itself requires DEBUG). Idempotent: users
that already exist are left alone apart from re-linking the seller.
"""
from quotereview.core.logging import get_logger
from quotereview.core.security import get_password_hash
from quotereview.db.models import User, UserRole, UserStatus
from quotereview.db.session import get_db_context

logger = get_logger(__name__)

DEMO_BUYER = {"name": "Test Buyer", "email": "buyer@test.com", "password": "buyer123"}
DEMO_SELLER = {"name": "Test Seller", "email": "seller@test.com", "password": "seller123"}


def seed_demo_data(db=None):
    """Create (or re-link) the demo buyer and seller."""
    if db is None:
        with get_db_context() as session:
            return seed_demo_data(session)

    buyer = db.query(User).filter(User.email == DEMO_BUYER["email"]).first()
    if not buyer:
        buyer = User(
            name=DEMO_BUYER["name"],
            email=DEMO_BUYER["email"],
            hashed_password=get_password_hash(DEMO_BUYER["password"]),
            role=UserRole.BUYER.value,
            status=UserStatus.ACTIVE.value,
            email_verified=True,
        )
        db.add(buyer)
        db.flush()
        logger.info(f"Demo buyer created: {DEMO_BUYER['email']}")

    seller = db.query(User).filter(User.email == DEMO_SELLER["email"]).first()
    if not seller:
        seller = User(
            name=DEMO_SELLER["name"],
            email=DEMO_SELLER["email"],
            hashed_password=get_password_hash(DEMO_SELLER["password"]),
            role=UserRole.SELLER.value,
            onboarded_by=buyer.id,
            status=UserStatus.ACTIVE.value,
            email_verified=True,
        )
        db.add(seller)
        logger.info(f"Demo seller created: {DEMO_SELLER['email']}")
    elif seller.onboarded_by != buyer.id:
        seller.onboarded_by = buyer.id
        seller.status = UserStatus.ACTIVE.value
        logger.info("Existing demo seller linked to demo buyer")

    db.flush()
    return buyer, seller


if __name__ == "__main__":
    from quotereview.db.session import init_db
    init_db()
    seed_demo_data()
