from fastapi import APIRouter, Depends
from typing import Annotated

from querybridge import HealthResult, QueryBridge
from querybridge.api.dependencies import get_bridge

router = APIRouter()

Bridge = Annotated[QueryBridge, Depends(get_bridge)]


@router.get("/health", response_model=HealthResult)
async def health_check(bridge: Bridge):
    return bridge.check_health()
