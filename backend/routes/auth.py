"""Authentication API routes: register, login, logout, profile, store connection."""

import logging

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, Field

from backend.auth import (
    SessionStore,
    bearer_scheme,
    get_sessions,
    hash_password,
    require_auth,
    verify_password,
)
from backend.deps import get_services
from descgen.accounts.models import Account
from descgen.errors import AuthenticationError, ValidationError
from descgen.services import Services

logger = logging.getLogger(__name__)
router = APIRouter()

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
_SHOP_PATTERN = r"^[a-zA-Z0-9][a-zA-Z0-9\-]*\.myshopify\.com$"


class RegisterRequest(BaseModel):
    email: str = Field(pattern=_EMAIL_PATTERN, max_length=254)
    password: str = Field(min_length=8, max_length=128)
    name: str | None = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    token: str
    account: dict


class LogoutResponse(BaseModel):
    status: str


class ConnectStoreRequest(BaseModel):
    shop_domain: str = Field(pattern=_SHOP_PATTERN)
    access_token: str = Field(min_length=1)


@router.post("/auth/register", response_model=LoginResponse)
async def register(
    request: RegisterRequest,
    services: Services = Depends(get_services),
    sessions: SessionStore = Depends(get_sessions),
):
    """Create an account and log it in."""
    account = services.accounts.create(
        Account(
            email=request.email,
            password_hash=hash_password(request.password),
            name=request.name,
        )
    )
    session = sessions.issue(account.id)
    logger.info("Registered account %s", account.id)
    return LoginResponse(token=session["token"], account=account.public_dict())


@router.post("/auth/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    services: Services = Depends(get_services),
    sessions: SessionStore = Depends(get_sessions),
):
    """Authenticate with email/password and receive a bearer token."""
    account = services.accounts.get_by_email(request.email)
    if account is None or not verify_password(request.password, account.password_hash):
        raise AuthenticationError("Invalid email or password")
    session = sessions.issue(account.id)
    logger.info("Account %s authenticated", account.id)
    return LoginResponse(token=session["token"], account=account.public_dict())


@router.post("/auth/logout", response_model=LogoutResponse)
async def logout(
    _account: Account = Depends(require_auth),
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    sessions: SessionStore = Depends(get_sessions),
):
    """Revoke the current session token."""
    sessions.revoke(credentials.credentials)
    return LogoutResponse(status="logged_out")


@router.get("/auth/me")
async def me(account: Account = Depends(require_auth)):
    """Return the current authenticated account."""
    return account.public_dict()


@router.post("/auth/shopify/connect")
async def connect_store(
    request: ConnectStoreRequest,
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Store Shopify Admin API credentials after checking they work."""
    owner = services.accounts.get_by_shop_domain(request.shop_domain)
    if owner is not None and owner.id != account.id:
        raise ValidationError("Store is already connected to another account")

    account.shop_domain = request.shop_domain
    account.shop_access_token = request.access_token
    shop = await services.require_shopify(account).get_shop()
    services.accounts.update(account)
    logger.info("Account %s connected store %s", account.id, request.shop_domain)
    return {"connected": True, "shop": shop}
