from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from tortoise.contrib.fastapi import RegisterTortoise

from .ban_store import BanStore
from .broker import LobbyBroker
from .logging_config import get_logger, setup_logging
from .routers import rooms as rooms_router
from .routers import websockets as ws_router
from .settings import Settings

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_json)
        # Database (Tortoise ORM) only backs the ban list
        async with RegisterTortoise(
            app,
            db_url=settings.db_url,
            modules={"models": ["relay_lobby.models"]},
            generate_schemas=True,
            add_exception_handlers=True,
        ):
            broker = LobbyBroker(settings)
            store = BanStore()
            await store.load(broker.bans)
            store.attach(broker.bans)
            app.state.broker = broker
            app.state.ban_store = store
            logger.info("Lobby broker started")
            try:
                yield
            finally:
                await broker.shutdown()
                await store.drain()
                logger.info("Lobby broker stopped")

    # -----------------------------
    # FastAPI app instance
    # -----------------------------

    app = FastAPI(title="Relay Lobby", lifespan=lifespan)

    # Allow all origins by default – restrict with LOBBY_CORS_ORIGINS.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router.router)
    app.include_router(ws_router.router)
    return app


app = create_app()
