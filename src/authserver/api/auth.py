"""Authentication endpoints."""

from fastapi import APIRouter, Request, status
from pydantic import BaseModel, EmailStr, Field

from authserver.api.deps import ApiRateLimit, CurrentAccount, SessionDep
from authserver.api.utils import get_client_ip, raise_if_rejected
from authserver.models import AccountRead
from authserver.schemas.common import SuccessResponse
from authserver.services.login import LoginOrchestrator
from authserver.services.otp import OtpFlow
from authserver.services.password_recovery import PasswordRecoveryFlow
from authserver.services.registration import RegistrationFlow

router = APIRouter()


class EmailRegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class PhoneRegisterRequest(BaseModel):
    phone: str = Field(min_length=1, max_length=32)
    password: str = Field(min_length=1, max_length=128)


class LoginRequest(BaseModel):
    """Request body for login.

    ``identifier`` is an email address or a phone number.
    """

    identifier: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)
    two_factor_code: str | None = None


class TokenResponse(BaseModel):
    """Response containing the bearer token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenRequest(BaseModel):
    token: str


class EmailRequest(BaseModel):
    email: EmailStr


class SendOtpRequest(BaseModel):
    phone: str = Field(min_length=1, max_length=32)


class VerifyOtpRequest(BaseModel):
    phone: str = Field(min_length=1, max_length=32)
    code: str = Field(min_length=1, max_length=16)


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(min_length=1, max_length=128)


@router.post("/register", response_model=SuccessResponse, status_code=status.HTTP_201_CREATED)
async def register(request: EmailRegisterRequest, session: SessionDep):
    """Register with an email address; a verification link is emailed."""
    registered = raise_if_rejected(
        await RegistrationFlow(session).register_email(request.email, request.password)
    )
    return SuccessResponse(
        message="Registration successful. Please check your email to verify your account.",
        delivery_warning=registered.delivery_warning,
    )


@router.post("/register/phone", response_model=SuccessResponse, status_code=status.HTTP_201_CREATED)
async def register_phone(request: PhoneRegisterRequest, session: SessionDep):
    """Register with a phone number; verify it with send-otp / verify-otp."""
    raise_if_rejected(
        await RegistrationFlow(session).register_phone(request.phone, request.password)
    )
    return SuccessResponse(message="Registration successful. Please verify your phone number.")


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, http_request: Request, session: SessionDep):
    """Exchange credentials (and a TOTP code when enabled) for tokens."""
    pair = raise_if_rejected(
        await LoginOrchestrator(session).login(
            request.identifier,
            request.password,
            client_ip=get_client_ip(http_request),
            two_factor_code=request.two_factor_code,
        )
    )
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(request: RefreshRequest, session: SessionDep):
    """Exchange a refresh token for a new token pair."""
    pair = raise_if_rejected(await LoginOrchestrator(session).refresh(request.refresh_token))
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
    )


@router.post("/verify-email", response_model=SuccessResponse)
async def verify_email(request: TokenRequest, session: SessionDep):
    raise_if_rejected(await RegistrationFlow(session).verify_email(request.token))
    return SuccessResponse(message="Email verified successfully")


@router.get("/verify-email", response_model=SuccessResponse)
async def verify_email_link(token: str, session: SessionDep):
    """Target of the emailed verification link."""
    raise_if_rejected(await RegistrationFlow(session).verify_email(token))
    return SuccessResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=SuccessResponse)
async def resend_verification(request: EmailRequest, session: SessionDep):
    sent = raise_if_rejected(await RegistrationFlow(session).resend_verification(request.email))
    return SuccessResponse(message="Verification email sent", delivery_warning=sent.delivery_warning)


@router.post("/send-otp", response_model=SuccessResponse)
async def send_otp(request: SendOtpRequest, http_request: Request, session: SessionDep):
    sent = raise_if_rejected(
        await OtpFlow(session).send_otp(request.phone, client_ip=get_client_ip(http_request))
    )
    return SuccessResponse(message="OTP sent successfully", delivery_warning=sent.delivery_warning)


@router.post("/verify-otp", response_model=SuccessResponse)
async def verify_otp(request: VerifyOtpRequest, session: SessionDep):
    raise_if_rejected(await OtpFlow(session).verify_otp(request.phone, request.code))
    return SuccessResponse(message="Phone number verified successfully")


@router.post("/forgot-password", response_model=SuccessResponse)
async def forgot_password(request: EmailRequest, session: SessionDep):
    sent = raise_if_rejected(await PasswordRecoveryFlow(session).forgot_password(request.email))
    return SuccessResponse(
        message="Password reset link sent to your email",
        delivery_warning=sent.delivery_warning,
    )


@router.post("/reset-password", response_model=SuccessResponse)
async def reset_password(request: ResetPasswordRequest, session: SessionDep):
    """Set a new password from a reset token; also clears any lockout."""
    raise_if_rejected(
        await PasswordRecoveryFlow(session).reset_password(request.token, request.new_password)
    )
    return SuccessResponse(message="Password reset successful")


@router.get("/me", response_model=AccountRead)
async def get_current_account_info(_rate_limit: ApiRateLimit, account: CurrentAccount):
    """Get current authenticated account info."""
    return AccountRead.model_validate(account)
