"""Two-factor (TOTP) management endpoints for the signed-in account."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from authserver.api.deps import ApiRateLimit, CurrentAccount, SessionDep
from authserver.api.utils import raise_if_rejected
from authserver.schemas.common import SuccessResponse
from authserver.services.second_factor import SecondFactor

# Endpoints put ApiRateLimit first so unauthenticated requests are counted too
router = APIRouter()


class TwoFactorSetupResponse(BaseModel):
    """Secret and otpauth:// URI to enroll in an authenticator app."""

    secret: str
    provisioning_uri: str
    manual_entry_key: str


class TwoFactorCodeRequest(BaseModel):
    code: str = Field(min_length=1, max_length=16)


@router.post("/enable", response_model=TwoFactorSetupResponse)
async def enable(_rate_limit: ApiRateLimit, account: CurrentAccount, session: SessionDep):
    """Start setup. The secret is inactive until confirmed with /verify."""
    setup = raise_if_rejected(await SecondFactor(session).begin_setup(account))
    return TwoFactorSetupResponse(
        secret=setup.secret,
        provisioning_uri=setup.provisioning_uri,
        manual_entry_key=setup.manual_entry_key,
    )


@router.post("/verify", response_model=SuccessResponse)
async def verify(
    _rate_limit: ApiRateLimit,
    request: TwoFactorCodeRequest,
    account: CurrentAccount,
    session: SessionDep,
):
    raise_if_rejected(await SecondFactor(session).activate(account, request.code))
    return SuccessResponse(message="Two-factor authentication enabled successfully")


@router.post("/disable", response_model=SuccessResponse)
async def disable(
    _rate_limit: ApiRateLimit,
    request: TwoFactorCodeRequest,
    account: CurrentAccount,
    session: SessionDep,
):
    raise_if_rejected(await SecondFactor(session).deactivate(account, request.code))
    return SuccessResponse(message="Two-factor authentication disabled successfully")
