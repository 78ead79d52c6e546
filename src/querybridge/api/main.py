from contextlib import asynccontextmanager

from fastapi import FastAPI

from querybridge import QueryBridge
from querybridge.api.routes import health, query
from querybridge.common.metrics import configure_metrics
from querybridge.common.settings import settings
from querybridge.common.tracing import configure_tracing


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_metrics(settings.observability_exporter, settings.otlp_endpoint)
    configure_tracing(settings.observability_exporter, settings.otlp_endpoint)
    bridge = getattr(app.state, "bridge", None) or QueryBridge.from_settings()
    app.state.bridge = bridge
    try:
        yield
    finally:
        bridge.dispose()


def create_app(bridge: QueryBridge = None) -> FastAPI:
    app = FastAPI(
        title="QueryBridge API",
        version="0.1.0",
        lifespan=lifespan,
    )
    if bridge is not None:
        app.state.bridge = bridge

    app.include_router(query.router, prefix="/api/v1")
    app.include_router(health.router, prefix="/api/v1")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
