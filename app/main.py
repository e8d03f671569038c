from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from app.api.scorecards import router as scorecards_router
from app.logging import configure_logging
from app.telemetry import setup_otel

app = FastAPI(title="coaching_scorecards API")

configure_logging()
setup_otel(app)


def _include_api_router(router, dependencies=None):
    app.include_router(router, prefix="/api", dependencies=dependencies)
    app.include_router(router, prefix="/api/v1", dependencies=dependencies)


_include_api_router(scorecards_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.head("/health")
def head_health():
    return Response(status_code=200)


@app.get("/metrics")
def metrics():
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
