from fastapi import APIRouter, Depends, HTTPException
from typing import Annotated, List

from querybridge import BatchRequest, BatchResponse, QueryBridge
from querybridge.api.dependencies import get_bridge
from querybridge.common.errors import QueryBridgeError

router = APIRouter()

Bridge = Annotated[QueryBridge, Depends(get_bridge)]


@router.post("/query", response_model=BatchResponse)
def execute_query(payload: BatchRequest, bridge: Bridge):
    # Full errors are logged by the service; callers get the redacted form.
    return bridge.query_data(payload).redacted()


@router.get("/datasources", response_model=List[str])
async def list_datasources(bridge: Bridge):
    return [ds.id for ds in bridge.list_datasources()]


@router.delete("/datasources/{datasource_id}", status_code=204)
async def remove_datasource(datasource_id: str, bridge: Bridge):
    try:
        bridge.remove_datasource(datasource_id)
    except QueryBridgeError as e:
        raise HTTPException(status_code=404, detail=e.message)
