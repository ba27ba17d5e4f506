"""
Subscription API Routes

Self-service endpoints for the caller's platform subscription.
Authenticated with the Supabase JWT; a tenant can only see and change
its own subscription.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.dependencies import get_current_user_id, get_lifecycle_service
from app.domain.subscription import SubscriptionResponse, SubscriptionStatusResponse
from app.infrastructure.services.subscription_lifecycle_service import (
    SubscriptionLifecycleService,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/subscriptions/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    user_id: str = Depends(get_current_user_id),
    service: SubscriptionLifecycleService = Depends(get_lifecycle_service),
):
    """Get the current user's platform subscription and whether it grants access."""
    return await service.get_status(user_id)


@router.post("/subscriptions/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    subscription_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: SubscriptionLifecycleService = Depends(get_lifecycle_service),
):
    """
    Cancel the subscription.

    Access continues until the end of the paid period; the expiry sweep
    closes it afterwards.
    """
    subscription = await service.cancel(user_id, str(subscription_id))
    return SubscriptionResponse(
        message="Subscription cancelled. Access remains until the end of the paid period.",
        subscription=subscription,
    )


@router.post("/subscriptions/{subscription_id}/reactivate", response_model=SubscriptionResponse)
async def reactivate_subscription(
    subscription_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: SubscriptionLifecycleService = Depends(get_lifecycle_service),
):
    """Reactivate a cancelled subscription whose paid period has not ended."""
    subscription = await service.reactivate(user_id, str(subscription_id))
    return SubscriptionResponse(
        message="Subscription reactivated",
        subscription=subscription,
    )
