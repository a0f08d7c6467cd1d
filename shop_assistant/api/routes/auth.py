import logging
import re
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shop_assistant.api.deps import USER_COOKIE, get_current_account
from shop_assistant.core.config import settings
from shop_assistant.core.security import (
    create_access_token,
    generate_invite_code,
    generate_token_secret,
    hash_password,
    hash_token,
    verify_password,
)
from shop_assistant.db.database import get_db
from shop_assistant.models.account import AccountStatus, PasswordResetToken, SubAccount, User
from shop_assistant.models.membership import Invitation, MembershipPackage, UserPackage
from shop_assistant.schemas.auth import (
    EMAIL_PATTERN,
    PHONE_PATTERN,
    USERNAME_PATTERN,
    AuthSessionOut,
    AvailabilityOut,
    AvailabilityRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ParentUserOut,
    RegisterRequest,
    ResetPasswordRequest,
    ResetTokenRequest,
    SubAccountIdentityOut,
    UserOut,
)
from shop_assistant.schemas.common import ApiResponse, ok
from shop_assistant.services.email_service import EmailDeliveryError, build_password_reset_message, send_email
from shop_assistant.services.mall_scope import Account
from shop_assistant.services.operation_log import log_operation
from shop_assistant.services.quota import package_expire_time

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

INVALID_CREDENTIALS = "Incorrect username or password"
TRIAL_PACKAGE_TYPE = "try"


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=USER_COOKIE,
        value=token,
        max_age=settings.access_token_expire_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        phone=user.phone,
        email=user.email,
        invite_code=user.invite_code,
        status=user.status.value,
        created_time=user.created_time,
    )


def _sub_account_out(sub_account: SubAccount, parent: User) -> SubAccountIdentityOut:
    return SubAccountIdentityOut(
        id=sub_account.id,
        username=sub_account.username,
        parent_user_id=sub_account.parent_user_id,
        real_name=sub_account.real_name,
        role=sub_account.role.value,
        status=sub_account.status.value,
        responsible_malls=sub_account.responsible_malls or [],
        permissions=sub_account.permissions or [],
        parent_user=ParentUserOut(id=parent.id, username=parent.username),
        created_time=sub_account.created_time,
    )


def username_taken(db: Session, username: str) -> bool:
    if db.scalar(select(User.id).where(User.username == username)):
        return True
    return db.scalar(select(SubAccount.id).where(SubAccount.username == username)) is not None


def _unique_invite_code(db: Session) -> str:
    while True:
        code = generate_invite_code()
        if not db.scalar(select(User.id).where(User.invite_code == code)):
            return code


def _grant_trial_package(db: Session, user: User) -> None:
    trial = db.scalar(
        select(MembershipPackage)
        .where(
            MembershipPackage.package_type == TRIAL_PACKAGE_TYPE,
            MembershipPackage.is_active.is_(True),
        )
        .limit(1)
    )
    if not trial:
        logger.warning("No active trial package configured, %s registered without one", user.username)
        return
    now = datetime.now()
    expire_time = package_expire_time(now, trial.duration_months or 6)
    db.add(UserPackage(user_id=user.id, package_id=trial.id, order_time=now, expire_time=expire_time, is_active=True))


@router.post("/register", response_model=ApiResponse[AuthSessionOut])
def register(payload: RegisterRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    if username_taken(db, payload.username):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists")
    if db.scalar(select(User.id).where(User.phone == payload.phone)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Phone number is already registered")
    if db.scalar(select(User.id).where(User.email == payload.email)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is already registered")

    inviter = None
    if payload.invitation_code:
        inviter = db.scalar(select(User).where(User.invite_code == payload.invitation_code))
        if not inviter:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid invitation code")

    user = User(
        username=payload.username,
        password_hash=hash_password(payload.password),
        phone=payload.phone,
        email=payload.email,
        invite_code=_unique_invite_code(db),
        status=AccountStatus.ACTIVE,
    )
    db.add(user)
    try:
        db.flush()
        if inviter:
            db.add(Invitation(inviter_id=inviter.id, invitee_id=user.id))
        _grant_trial_package(db, user)
        log_operation(
            db,
            user.id,
            "register",
            "User registered via invitation" if inviter else "User registered",
            request,
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username, phone or email already exists") from exc
    db.refresh(user)

    token = create_access_token(user.id, user.username, "user")
    _set_session_cookie(response, token)
    logger.info("Registered user %s", user.username)
    return ok(AuthSessionOut(user=_user_out(user), token=token), "Registration successful")


def _reject_login(db: Session, request: Request, user_id: int, operation_type: str, desc: str) -> HTTPException:
    log_operation(db, user_id, operation_type, desc, request, status="failed")
    db.commit()
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)


@router.post("/login", response_model=ApiResponse[AuthSessionOut])
def login(payload: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    now = datetime.now()
    if payload.account_type == "user":
        user = db.scalar(select(User).where(User.username == payload.username))
        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)
        if user.status != AccountStatus.ACTIVE:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is disabled")
        if not verify_password(payload.password, user.password_hash):
            raise _reject_login(db, request, user.id, "login", "Login failed: wrong password")

        user.last_login_time = now
        log_operation(db, user.id, "login", "Login succeeded", request)
        db.commit()
        db.refresh(user)
        token = create_access_token(user.id, user.username, "user")
        identity = _user_out(user)
    else:
        sub_account = db.scalar(select(SubAccount).where(SubAccount.username == payload.username))
        if not sub_account:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)
        if sub_account.status != AccountStatus.ACTIVE:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sub-account is disabled")
        parent = sub_account.parent
        if not parent or parent.status != AccountStatus.ACTIVE:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Parent account is disabled")
        if not verify_password(payload.password, sub_account.password_hash):
            raise _reject_login(
                db,
                request,
                parent.id,
                "sub_account_login",
                f"Sub-account login failed: wrong password ({sub_account.username})",
            )

        sub_account.last_login_time = now
        log_operation(
            db,
            parent.id,
            "sub_account_login",
            f"Sub-account login succeeded ({sub_account.username})",
            request,
        )
        db.commit()
        db.refresh(sub_account)
        token = create_access_token(
            sub_account.id,
            sub_account.username,
            "sub_account",
            parent_user_id=parent.id,
            role=sub_account.role.value,
        )
        identity = _sub_account_out(sub_account, parent)

    _set_session_cookie(response, token)
    return ok(AuthSessionOut(user=identity, token=token), "Login successful")


@router.post("/logout", response_model=ApiResponse[None])
def logout(response: Response):
    response.delete_cookie(USER_COOKIE, httponly=True, secure=settings.cookie_secure, samesite="strict")
    return ok(None, "Logged out")


@router.get("/me", response_model=ApiResponse[UserOut | SubAccountIdentityOut])
def get_me(account: Account = Depends(get_current_account), db: Session = Depends(get_db)):
    if account.is_main_account:
        return ok(_user_out(db.get(User, account.id)))
    sub_account = db.get(SubAccount, account.id)
    return ok(_sub_account_out(sub_account, db.get(User, account.owner_user_id)))


@router.post("/check-availability", response_model=ApiResponse[AvailabilityOut])
def check_availability(payload: AvailabilityRequest, db: Session = Depends(get_db)):
    value = payload.value.strip()
    if payload.type == "username":
        if not 3 <= len(value) <= 20 or not re.fullmatch(USERNAME_PATTERN, value):
            return ok(AvailabilityOut(available=False, message="Username must be 3-20 letters, digits or underscores"))
        if username_taken(db, value):
            return ok(AvailabilityOut(available=False, message="Username already exists"))
        return ok(AvailabilityOut(available=True, message="Username is available"))

    pattern, column, label = {
        "phone": (PHONE_PATTERN, User.phone, "Phone number"),
        "email": (EMAIL_PATTERN, User.email, "Email"),
    }[payload.type]
    if not re.fullmatch(pattern, value):
        return ok(AvailabilityOut(available=False, message=f"{label} format is invalid"))
    if db.scalar(select(User.id).where(column == value)):
        return ok(AvailabilityOut(available=False, message=f"{label} is already registered"))
    return ok(AvailabilityOut(available=True, message=f"{label} is available"))


def _find_reset_token(db: Session, raw_token: str) -> PasswordResetToken:
    reset_token = db.scalar(
        select(PasswordResetToken).where(
            PasswordResetToken.token_hash == hash_token(raw_token),
            PasswordResetToken.used.is_(False),
        )
    )
    if not reset_token:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reset token is invalid")
    if reset_token.expires_time < datetime.now():
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Reset token has expired")
    return reset_token


@router.post("/forgot-password", response_model=ApiResponse[None])
def forgot_password(payload: ForgotPasswordRequest, db: Session = Depends(get_db)):
    user = db.scalar(select(User).where(User.email == payload.email))
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email is not registered")
    if user.status != AccountStatus.ACTIVE:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is disabled")

    db.execute(
        delete(PasswordResetToken).where(
            PasswordResetToken.user_id == user.id,
            PasswordResetToken.used.is_(False),
        )
    )
    raw_token = generate_token_secret()
    db.add(
        PasswordResetToken(
            user_id=user.id,
            token_hash=hash_token(raw_token),
            email=payload.email,
            expires_time=datetime.now() + timedelta(minutes=settings.password_reset_token_expire_minutes),
        )
    )
    try:
        subject, text_body, html_body = build_password_reset_message(raw_token)
        send_email(payload.email, subject, text_body, html_body)
    except EmailDeliveryError as exc:
        db.rollback()
        logger.error("Password reset email to %s failed: %s", payload.email, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send the reset email, please try again later",
        ) from exc
    db.commit()
    return ok(None, "Password reset email sent, please check your inbox")


@router.post("/validate-reset-token", response_model=ApiResponse[None])
def validate_reset_token(payload: ResetTokenRequest, db: Session = Depends(get_db)):
    _find_reset_token(db, payload.token)
    return ok(None, "Reset token is valid")


@router.post("/reset-password", response_model=ApiResponse[None])
def reset_password(payload: ResetPasswordRequest, request: Request, db: Session = Depends(get_db)):
    reset_token = _find_reset_token(db, payload.token)
    user = db.get(User, reset_token.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.status != AccountStatus.ACTIVE:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is disabled")

    user.password_hash = hash_password(payload.password)
    reset_token.used = True
    db.execute(
        delete(PasswordResetToken).where(
            PasswordResetToken.user_id == user.id,
            PasswordResetToken.used.is_(False),
            PasswordResetToken.id != reset_token.id,
        )
    )
    log_operation(db, user.id, "password_reset", "Password reset via email", request)
    db.commit()
    return ok(None, "Password reset, please sign in with the new password")
