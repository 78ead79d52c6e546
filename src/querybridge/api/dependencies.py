from fastapi import Request

from querybridge import QueryBridge


def get_bridge(request: Request) -> QueryBridge:
    return request.app.state.bridge
