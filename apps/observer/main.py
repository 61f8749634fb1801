from __future__ import annotations

from fastapi import FastAPI

from .routers.api import prism as api_prism

app = FastAPI(title="PrismGuard Observer", version="0.1.0")

app.include_router(api_prism.router, prefix="/api", tags=["api"])


__all__ = ["app"]
