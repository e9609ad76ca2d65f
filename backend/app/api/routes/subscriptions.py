"""
Subscription API Routes

REST API endpoints for the subscription lifecycle. All state changes go
through the SubscriptionLifecycleController; errors surface through the
application's uniform error responder.
"""

import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import get_current_user_id, get_lifecycle_controller
from app.domain.subscription import (
    CancelResponse,
    ConfirmRequest,
    ConfirmResponse,
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionStatusResponse,
)
from app.domain.subscription_lifecycle import SubscriptionLifecycleController


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/subscribe", response_model=SubscribeResponse)
async def subscribe(
    request: SubscribeRequest,
    user_id: str = Depends(get_current_user_id),
    controller: SubscriptionLifecycleController = Depends(get_lifecycle_controller),
):
    """
    Start a paid subscription.

    Returns either an immediate success payload or, when the provider needs
    the payer's approval, ``requiresApproval`` with an ``approvalUrl``.
    """
    logger.info(f"Subscribe request from user {user_id} via {request.payment_processor.value}")
    return await controller.subscribe(user_id, request)


@router.post("/confirm", response_model=ConfirmResponse)
async def confirm(
    request: ConfirmRequest,
    user_id: str = Depends(get_current_user_id),
    controller: SubscriptionLifecycleController = Depends(get_lifecycle_controller),
):
    """Confirm a subscription the payer approved on the provider's site."""
    return await controller.confirm(user_id, request)


@router.post("/cancel", response_model=CancelResponse)
async def cancel(
    user_id: str = Depends(get_current_user_id),
    controller: SubscriptionLifecycleController = Depends(get_lifecycle_controller),
):
    return await controller.cancel(user_id)


@router.get("/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    user_id: str = Depends(get_current_user_id),
    controller: SubscriptionLifecycleController = Depends(get_lifecycle_controller),
):
    """Current subscription state, reconciled against elapsed time and the provider."""
    record = await controller.refresh(user_id)
    return SubscriptionStatusResponse.from_record(record)
