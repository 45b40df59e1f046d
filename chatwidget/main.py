import logging
from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as aioredis
from fastapi import FastAPI

from chatwidget.api.v1 import api_router
from chatwidget.core.redis import build_redis
from chatwidget.core.settings import Settings


def create_app(settings: Optional[Settings] = None, redis: Optional[aioredis.Redis] = None) -> FastAPI:
    settings = settings or Settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        for widget in list(app.state.previews.values()):
            await widget.shutdown()
        app.state.previews.clear()
        if owns_redis:
            await app.state.redis.aclose()

    owns_redis = redis is None
    app = FastAPI(title="Chat Widget Preview API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.redis = redis if redis is not None else build_redis(settings)
    app.state.previews = {}

    app.include_router(api_router, prefix="/v1")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
