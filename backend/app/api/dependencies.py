"""
API Dependencies

FastAPI dependency injection for authentication, job guards and services.

Security: JWT tokens are verified cryptographically using Supabase JWKS (ES256)
with HS256 fallback via the JWT secret. Never decode without verification.

Services are built once per process through @lru_cache providers; tests
replace them with app.dependency_overrides.
"""

import hmac
import logging
from functools import lru_cache
from typing import Optional

import jwt
from jwt import PyJWKClient
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config.settings import get_settings
from app.domain.lifecycle import BillingPolicy
from app.infrastructure.notifications.email_service import ReminderEmailService
from app.infrastructure.services.expiry_sweep_service import ExpirySweepService
from app.infrastructure.services.reconciliation_service import ReconciliationService
from app.infrastructure.services.reminder_sweep_service import ReminderSweepService
from app.infrastructure.services.subscription_lifecycle_service import (
    SubscriptionLifecycleService,
)
from app.infrastructure.services.user_directory_service import UserDirectoryService


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# JWKS client shared by all requests; keys are cached and refreshed by PyJWKClient.
_jwks_client: Optional[PyJWKClient] = None


def _get_jwks_client() -> PyJWKClient:
    """Return a singleton PyJWKClient for the Supabase JWKS endpoint."""
    global _jwks_client
    if _jwks_client is None:
        settings = get_settings()
        jwks_url = f"{settings.supabase_url}/auth/v1/.well-known/jwks.json"
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


def _decode_with_jwks(token: str, issuer: str) -> dict:
    """Verify JWT using Supabase JWKS endpoint (ES256 asymmetric keys)."""
    client = _get_jwks_client()
    signing_key = client.get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["ES256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


def _decode_with_secret(token: str, secret: str, issuer: str) -> dict:
    """Verify JWT using HS256 symmetric secret (legacy Supabase signing)."""
    return jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Extract and verify user ID from a Supabase JWT.

    Verification strategy (in order):
      1. JWKS (ES256), supports key rotation.
      2. HS256 with ``SUPABASE_JWT_SECRET`` for legacy signing.

    Returns:
        Authenticated user ID (``sub`` claim).

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials
    settings = get_settings()
    issuer = f"{settings.supabase_url}/auth/v1"

    payload: Optional[dict] = None

    # --- Strategy 1: JWKS (ES256) ---
    try:
        payload = _decode_with_jwks(token, issuer)
    except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as jwks_err:
        logger.debug("JWKS verification failed, trying HS256 fallback: %s", jwks_err)

    # --- Strategy 2: HS256 fallback ---
    if payload is None and settings.supabase_jwt_secret:
        try:
            payload = _decode_with_secret(
                token, settings.supabase_jwt_secret, issuer
            )
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
            )
        except jwt.InvalidTokenError as e:
            logger.warning("HS256 JWT verification also failed: %s", e)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or unverifiable token",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID",
        )

    return user_id


async def verify_cron_secret(
    x_cron_secret: Optional[str] = Header(default=None),
) -> None:
    """
    Guard for scheduled job routes.

    Open when CRON_SECRET is not configured; otherwise the
    ``x-cron-secret`` header must match it.
    """
    expected = get_settings().cron_secret
    if not expected:
        return

    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, expected):
        logger.warning("Rejected job invocation with missing or invalid cron secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )


# =============================================================================
# Service providers
# =============================================================================

@lru_cache
def get_billing_policy() -> BillingPolicy:
    return BillingPolicy.from_settings(get_settings())


@lru_cache
def get_user_directory() -> UserDirectoryService:
    settings = get_settings()
    return UserDirectoryService(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        timeout_seconds=settings.request_timeout_seconds,
    )


@lru_cache
def get_email_service() -> ReminderEmailService:
    settings = get_settings()
    return ReminderEmailService(
        api_key=settings.resend_api_key,
        from_address=settings.email_from_address,
        app_url=settings.app_url,
        timeout_seconds=settings.request_timeout_seconds,
    )


@lru_cache
def get_reconciliation_service() -> ReconciliationService:
    return ReconciliationService(policy=get_billing_policy())


@lru_cache
def get_expiry_sweep_service() -> ExpirySweepService:
    return ExpirySweepService()


@lru_cache
def get_reminder_sweep_service() -> ReminderSweepService:
    return ReminderSweepService(
        policy=get_billing_policy(),
        directory=get_user_directory(),
        notifier=get_email_service(),
    )


@lru_cache
def get_lifecycle_service() -> SubscriptionLifecycleService:
    return SubscriptionLifecycleService()
