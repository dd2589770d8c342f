from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from fastapi.security import OAuth2PasswordBearer
from app.api.deps import get_recovery_service
from app.api.v1.schemas import CamelModel
from app.config import settings
from app.core.exceptions import UnauthorizedError, ValidationError
from app.core.limiter import limiter
from app.core.security import (
    SESSION_TOKEN_TYPE,
    constant_time_equals,
    create_session_token,
    decode_token,
)
from app.services.recovery import OtpRecoveryService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_PREFIX}/auth/login", auto_error=False)

class LoginRequest(CamelModel):
    username: str = ""
    password: str = ""
    remember_me: bool = False

class OtpSendRequest(CamelModel):
    folder_id: str = ""

class OtpVerifyRequest(CamelModel):
    folder_id: str = ""
    otp: str = ""

def verify_credentials(username: str, password: str) -> bool:
    """Compare against the single shared admin credential"""
    if not settings.APP_USERNAME or not settings.APP_PASSWORD:
        logger.error("APP_USERNAME or APP_PASSWORD not set in environment")
        return False
    return (
        constant_time_equals(username, settings.APP_USERNAME)
        & constant_time_equals(password, settings.APP_PASSWORD)
    )

@router.post("/login")
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(request: Request, body: LoginRequest, response: Response):
    """Login with the shared admin credential; sets the session cookie"""
    if not body.username or not body.password:
        raise ValidationError("Username and password are required")

    if not verify_credentials(body.username, body.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_session_token(body.username, remember_me=body.remember_me)
    hours = settings.SESSION_EXPIRE_HOURS if body.remember_me else settings.SESSION_SHORT_EXPIRE_HOURS
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        httponly=True,
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
        max_age=hours * 3600,
        path="/",
    )
    return {"success": True, "message": "Login successful"}

@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return {"success": True}

async def get_current_user(
    bearer: str | None = Depends(oauth2_scheme),
    auth_token: str | None = Cookie(None, alias=settings.SESSION_COOKIE_NAME),
) -> str:
    """Username of the authenticated session; recovery tokens are never accepted here"""
    token = auth_token or bearer
    if not token:
        raise UnauthorizedError()

    payload = decode_token(token, SESSION_TOKEN_TYPE)
    if payload is None or not payload.get("sub"):
        raise UnauthorizedError()

    return payload["sub"]

@router.get("/me")
async def me(username: str = Depends(get_current_user)):
    return {"username": username}

@router.post("/otp/send")
@limiter.limit(settings.OTP_SEND_RATE_LIMIT)
async def send_otp(
    request: Request,
    body: OtpSendRequest,
    current_user: str = Depends(get_current_user),
    recovery: OtpRecoveryService = Depends(get_recovery_service),
):
    """Issue a recovery code for a protected folder and mail it to the admin"""
    if not body.folder_id:
        raise ValidationError("Folder ID required")

    await recovery.issue(body.folder_id)
    return {"success": True, "message": "OTP sent"}

@router.post("/otp/verify")
async def verify_otp(
    body: OtpVerifyRequest,
    current_user: str = Depends(get_current_user),
    recovery: OtpRecoveryService = Depends(get_recovery_service),
):
    """Exchange a valid code for a short-lived recovery token"""
    if not body.folder_id or not body.otp:
        raise ValidationError("Missing fields")

    recovery_token = await recovery.verify(body.folder_id, body.otp)
    return {"success": True, "recoveryToken": recovery_token}
