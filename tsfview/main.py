from fastapi import FastAPI

from .core.config import configure_logging
from .routers import panels

configure_logging()

app = FastAPI(title="TSF Forecast Panels", version="1.0.0")

app.include_router(panels.router, prefix="/panels", tags=["Panels"])


@app.get("/health")
def health():
    return {"status": "ok"}
