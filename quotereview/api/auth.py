"""
Authentication, account and supplier onboarding API routes.

Buyers self-register. Sellers exist only after a buyer invites them and they
accept the invitation, which binds them to that buyer through ``onboarded_by``.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from quotereview.api.deps import get_notifier
from quotereview.api.schemas import (
    ChangePasswordRequest, ForgotPasswordRequest, InviteSupplierRequest, LoginRequest,
    MessageResponse, ProfileUpdateRequest, RegisterRequest, ResetPasswordRequest,
    SupplierStatusRequest, TokenResponse, UserResponse,
)
from quotereview.core.config import settings
from quotereview.core.errors import AccessDeniedError, NotFoundError, ValidationError
from quotereview.core.logging import audit_logger, get_logger
from quotereview.core.rbac import Actor, get_current_actor, require_buyer
from quotereview.core.security import (
    create_access_token, generate_account_token, get_password_hash, get_role_value,
    get_token_payload, verify_password,
)
from quotereview.db.models import User, UserRole, UserStatus
from quotereview.db.session import get_db
from quotereview.services import email_templates
from quotereview.services.notifications import Notifier

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

FORGOT_PASSWORD_MESSAGE = "If the email exists, a password reset link has been sent."


# ============= HELPERS =============

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_expired(expires: Optional[datetime]) -> bool:
    if expires is None:
        return True
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires <= _now()


def _find_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.lower()).first()


def _load_user(db: Session, actor: Actor) -> User:
    user = db.query(User).filter(User.id == actor.id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def _own_supplier(db: Session, buyer: Actor, supplier_id: int) -> User:
    supplier = db.query(User).filter(
        User.id == supplier_id,
        User.onboarded_by == buyer.id,
        User.role == UserRole.SELLER.value,
    ).first()
    if not supplier:
        raise NotFoundError("Supplier not found")
    return supplier


def _token_response(user: User) -> TokenResponse:
    token = create_access_token({"sub": str(user.id), "role": get_role_value(user.role)})
    return TokenResponse(
        token=token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.from_model(user),
    )


def _start_email_verification(user: User) -> None:
    user.email_verification_token = generate_account_token()
    user.email_verification_expires = _now() + timedelta(
        hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS
    )


def _send_verification(user: User, notifier: Notifier, background_tasks: BackgroundTasks) -> None:
    link = f"{settings.FRONTEND_URL}/verify-email?token={user.email_verification_token}"
    background_tasks.add_task(notifier.send, user.email, email_templates.email_verification(link))


# ============= AUTH =============

@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Register a buyer, or activate an invited seller via ``invitationToken``."""
    if data.invitation_token:
        user = db.query(User).filter(
            User.invitation_token == data.invitation_token,
            User.status == UserStatus.INVITED.value,
            User.role == UserRole.SELLER.value,
        ).first()
        if not user:
            raise ValidationError("Invalid or expired invitation token")
        if _is_expired(user.invitation_expires):
            raise ValidationError("Invitation token has expired")

        user.name = data.name
        user.hashed_password = get_password_hash(data.password)
        user.status = UserStatus.ACTIVE.value
        user.invitation_token = None
        user.invitation_expires = None
    else:
        if _find_by_email(db, data.email):
            raise ValidationError("User already exists")
        if data.role and data.role != UserRole.BUYER.value:
            raise AccessDeniedError(
                "Only buyers can self-register. Suppliers must be onboarded by a buyer."
            )
        user = User(
            name=data.name,
            email=data.email.lower(),
            hashed_password=get_password_hash(data.password),
            role=UserRole.BUYER.value,
            status=UserStatus.ACTIVE.value,
            email_verified=False,
        )
        db.add(user)

    _start_email_verification(user)
    db.commit()
    db.refresh(user)

    audit_logger.log(action="register", user_id=user.id, entity_type="user", entity_id=user.id)
    _send_verification(user, notifier, background_tasks)
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(data: LoginRequest, db: Session = Depends(get_db)):
    """Authenticate user and return JWT token."""
    user = _find_by_email(db, data.email)
    if not user or not verify_password(data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    role = get_role_value(user.role)
    if data.role and data.role != role:
        label = "Supplier" if role == UserRole.SELLER.value else "Buyer/Admin"
        raise AccessDeniedError(
            f"This account is registered as a {label}. Please select the correct user type."
        )

    if user.status == UserStatus.INACTIVE.value:
        raise AccessDeniedError("Your account has been deactivated. Please contact support.")

    audit_logger.log(action="login", user_id=user.id, entity_type="user", entity_id=user.id)
    return _token_response(user)


@router.get("/me", response_model=UserResponse)
async def me(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Get current authenticated user."""
    return UserResponse.from_model(_load_user(db, actor))


@router.post("/logout", response_model=MessageResponse)
async def logout(token_payload: dict = Depends(get_token_payload)):
    """Log out user (for audit purposes)."""
    user_id = int(token_payload.get("sub"))
    audit_logger.log(action="logout", user_id=user_id, entity_type="user", entity_id=user_id)
    return MessageResponse(message="Logged out successfully")


# ============= SUPPLIER ONBOARDING =============

@router.post("/suppliers/invite", status_code=status.HTTP_201_CREATED)
async def invite_supplier(
    data: InviteSupplierRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(require_buyer),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Create an invited seller bound to the calling buyer and email the invitation."""
    existing = _find_by_email(db, data.email)
    if existing:
        if existing.role == UserRole.SELLER.value and existing.onboarded_by == actor.id:
            raise ValidationError("This supplier is already onboarded by you")
        raise ValidationError("User with this email already exists")

    invitation_token = generate_account_token()
    supplier = User(
        name=data.name,
        email=data.email.lower(),
        # placeholder until the invitation is accepted
        hashed_password=get_password_hash(generate_account_token()),
        role=UserRole.SELLER.value,
        onboarded_by=actor.id,
        status=UserStatus.INVITED.value,
        invitation_token=invitation_token,
        invitation_expires=_now() + timedelta(days=settings.INVITATION_EXPIRE_DAYS),
    )
    db.add(supplier)
    db.commit()
    db.refresh(supplier)

    audit_logger.log(
        action="invite_supplier",
        user_id=actor.id,
        entity_type="user",
        entity_id=supplier.id,
        details={"email": supplier.email},
    )

    invitation_link = f"{settings.FRONTEND_URL}/register?token={invitation_token}"
    background_tasks.add_task(
        notifier.send,
        supplier.email,
        email_templates.supplier_invitation(actor.name or "A buyer", invitation_link),
    )

    return {
        "message": "Supplier invited successfully. Invitation email sent.",
        "supplier": UserResponse.from_model(supplier).model_dump(by_alias=True),
        "invitationLink": invitation_link,
    }


@router.get("/suppliers", response_model=List[UserResponse])
async def list_suppliers(actor: Actor = Depends(require_buyer), db: Session = Depends(get_db)):
    suppliers = db.query(User).filter(
        User.onboarded_by == actor.id,
        User.role == UserRole.SELLER.value,
    ).order_by(User.id).all()
    return [UserResponse.from_model(s) for s in suppliers]


@router.get("/suppliers/{supplier_id}", response_model=UserResponse)
async def get_supplier(
    supplier_id: int,
    actor: Actor = Depends(require_buyer),
    db: Session = Depends(get_db),
):
    return UserResponse.from_model(_own_supplier(db, actor, supplier_id))


@router.patch("/suppliers/{supplier_id}/status")
async def update_supplier_status(
    supplier_id: int,
    data: SupplierStatusRequest,
    actor: Actor = Depends(require_buyer),
    db: Session = Depends(get_db),
):
    if data.status not in (UserStatus.ACTIVE.value, UserStatus.INACTIVE.value):
        raise ValidationError("Invalid status. Must be active or inactive")

    supplier = _own_supplier(db, actor, supplier_id)
    supplier.status = data.status
    db.commit()
    db.refresh(supplier)

    audit_logger.log(
        action="update_supplier_status",
        user_id=actor.id,
        entity_type="user",
        entity_id=supplier.id,
        details={"status": data.status},
    )
    return {
        "message": "Supplier status updated",
        "supplier": UserResponse.from_model(supplier).model_dump(by_alias=True),
    }


@router.delete("/suppliers/{supplier_id}", response_model=MessageResponse)
async def remove_supplier(
    supplier_id: int,
    actor: Actor = Depends(require_buyer),
    db: Session = Depends(get_db),
):
    """Soft delete: the supplier is deactivated, its quotations stay visible."""
    supplier = _own_supplier(db, actor, supplier_id)
    supplier.status = UserStatus.INACTIVE.value
    db.commit()

    audit_logger.log(action="remove_supplier", user_id=actor.id, entity_type="user", entity_id=supplier.id)
    return MessageResponse(message="Supplier removed successfully")


# ============= PASSWORD & EMAIL =============

@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    data: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Same response whether or not the account exists."""
    user = _find_by_email(db, data.email)
    if user:
        user.password_reset_token = generate_account_token()
        user.password_reset_expires = _now() + timedelta(hours=settings.PASSWORD_RESET_EXPIRE_HOURS)
        db.commit()

        reset_link = f"{settings.FRONTEND_URL}/reset-password?token={user.password_reset_token}"
        background_tasks.add_task(
            notifier.send, user.email, email_templates.password_reset(reset_link)
        )

    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(data: ResetPasswordRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.password_reset_token == data.token).first()
    if not user or _is_expired(user.password_reset_expires):
        raise ValidationError("Invalid or expired reset token")

    user.hashed_password = get_password_hash(data.password)
    user.password_reset_token = None
    user.password_reset_expires = None
    db.commit()

    audit_logger.log(action="reset_password", user_id=user.id, entity_type="user", entity_id=user.id)
    return MessageResponse(message="Password reset successfully")


@router.get("/verify-email", response_model=MessageResponse)
async def verify_email(token: str = Query(...), db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email_verification_token == token).first()
    if not user or _is_expired(user.email_verification_expires):
        raise ValidationError("Invalid or expired verification token")

    user.email_verified = True
    user.email_verification_token = None
    user.email_verification_expires = None
    db.commit()
    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    user = _load_user(db, actor)
    if user.email_verified:
        raise ValidationError("Email is already verified")

    _start_email_verification(user)
    db.commit()
    _send_verification(user, notifier, background_tasks)
    return MessageResponse(message="Verification email sent")


@router.put("/profile")
async def update_profile(
    data: ProfileUpdateRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Update name and/or email. A new email must be verified again."""
    user = _load_user(db, actor)
    if data.name:
        user.name = data.name

    email_changed = False
    if data.email and data.email.lower() != user.email.lower():
        existing = _find_by_email(db, data.email)
        if existing and existing.id != user.id:
            raise ValidationError("Email already in use")
        user.email = data.email.lower()
        user.email_verified = False
        _start_email_verification(user)
        email_changed = True

    db.commit()
    db.refresh(user)
    if email_changed:
        _send_verification(user, notifier, background_tasks)

    return {
        "message": "Profile updated successfully",
        "user": UserResponse.from_model(user).model_dump(by_alias=True),
    }


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    data: ChangePasswordRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Change current user's password."""
    user = _load_user(db, actor)
    if not verify_password(data.current_password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Current password is incorrect",
        )

    user.hashed_password = get_password_hash(data.new_password)
    db.commit()

    audit_logger.log(action="change_password", user_id=user.id, entity_type="user", entity_id=user.id)
    return MessageResponse(message="Password changed successfully")
