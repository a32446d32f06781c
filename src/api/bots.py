# coding: utf-8
"""
Bots API Endpoints
Bot catalog, launch/stop and the user's running bots
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from config.config import DEFAULT_CURRENCY
from src.api.auth import get_current_user
from src.api.dependencies import get_services
from src.database.models import BotInstance, BotTemplate, User
from src.services.container import ServiceContainer

# Create router
router = APIRouter(prefix="/bots", tags=["bots"])


# ===========================
# REQUEST / RESPONSE MODELS
# ===========================


class BotTemplateResponse(BaseModel):
    """Bot catalog entry"""

    id: int
    name: str
    strategy: str
    description: str
    risk_level: str
    min_profit_pct: Decimal
    max_profit_pct: Decimal
    min_investment: Decimal
    max_investment: Decimal


class BotInstanceResponse(BaseModel):
    """User's bot instance"""

    id: int
    template_id: int
    currency: str
    investment: Decimal
    current_value: Decimal
    profit: Decimal
    profit_percentage: Decimal
    status: str
    tick_count: int
    started_at: datetime
    stopped_at: Optional[datetime]


class LaunchBotRequest(BaseModel):
    template_id: int
    amount: Decimal = Field(..., gt=0, description="Investment amount")
    currency: str = Field(default=DEFAULT_CURRENCY, description="Wallet currency")


def template_response(template: BotTemplate) -> BotTemplateResponse:
    return BotTemplateResponse(
        id=template.id,
        name=template.name,
        strategy=template.strategy,
        description=template.description,
        risk_level=template.risk_level,
        min_profit_pct=template.min_profit_pct,
        max_profit_pct=template.max_profit_pct,
        min_investment=template.min_investment,
        max_investment=template.max_investment,
    )


def instance_response(instance: BotInstance) -> BotInstanceResponse:
    return BotInstanceResponse(
        id=instance.id,
        template_id=instance.template_id,
        currency=instance.currency,
        investment=instance.investment,
        current_value=instance.current_value,
        profit=instance.profit,
        profit_percentage=instance.profit_percentage,
        status=instance.status,
        tick_count=instance.tick_count,
        started_at=instance.started_at,
        stopped_at=instance.stopped_at,
    )


# ===========================
# ENDPOINTS
# ===========================


@router.get("", response_model=List[BotTemplateResponse])
async def list_available_bots(
    services: ServiceContainer = Depends(get_services),
):
    """Bot templates open for investment"""
    templates = await services.bots.list_available()
    return [template_response(t) for t in templates]


@router.get("/active", response_model=List[BotInstanceResponse])
async def list_active_bots(
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """Caller's running bots"""
    instances = await services.bots.list_active(user.id)
    return [instance_response(i) for i in instances]


@router.get("/history", response_model=List[BotInstanceResponse])
async def list_bot_history(
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """All of the caller's bots, newest first"""
    instances = await services.bots.list_instances(user.id)
    return [instance_response(i) for i in instances]


@router.post("/launch", response_model=BotInstanceResponse)
async def launch_bot(
    request: LaunchBotRequest,
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """
    Invest into a bot template

    Errors:
        400 invalid_amount / insufficient_balance
        403 kyc_limit_exceeded / trading_disabled
        404 not_found
        503 busy
    """
    instance = await services.bots.launch(
        user.id, request.template_id, request.amount, currency=request.currency
    )
    return instance_response(instance)


@router.get("/{instance_id}", response_model=BotInstanceResponse)
async def get_bot(
    instance_id: int,
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    instance = await services.bots.get_instance(instance_id, user.id)
    return instance_response(instance)


@router.post("/{instance_id}/stop", response_model=BotInstanceResponse)
async def stop_bot(
    instance_id: int,
    user: User = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """
    Stop a bot and return its value to the wallet

    Stopping an already stopped bot returns its final state.
    """
    instance = await services.bots.stop(instance_id, user.id)
    return instance_response(instance)
