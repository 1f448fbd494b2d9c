"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings, GeoSettings
from errors import register_error_handlers
from infrastructure.cache.memory_cache import MemoryCache
from infrastructure.cache.protocol import CacheBackend
from infrastructure.cache.redis_cache import RedisCache
from infrastructure.cache.redis_client import create_redis_client
from infrastructure.geo.maxmind import MaxMindProvider
from infrastructure.geo.protocol import GeoProvider
from infrastructure.geo.providers import HTTP_PROVIDERS
from infrastructure.http_client import HttpClient
from repositories.click_repository import MongoClickRepository
from repositories.memory import InMemoryClickRepository
from routes.health_routes import router as health_router
from routes.stats_routes import router as stats_router
from routes.view_routes import router as view_router
from services.classifier import TrafficClassifier
from services.dedup import DEDUP_PREFIXES, ViewGate
from services.geolocation import GeoResolver
from services.stats import StatsService
from services.tracker import ClickTracker
from shared.logging import get_logger
from shared.logging_config import setup_logging

log = get_logger(__name__)


def build_geo_providers(settings: GeoSettings, http_client: HttpClient) -> list[GeoProvider]:
    """Local database first (when configured), then the HTTP chain in order."""
    providers: list[GeoProvider] = []
    if settings.geoip_city_db:
        providers.append(MaxMindProvider(settings.geoip_city_db))
    for name in settings.geo_providers:
        provider_cls = HTTP_PROVIDERS.get(name)
        if provider_cls is None:
            log.warning("geo_provider_unknown", provider=name)
            continue
        providers.append(provider_cls(http_client))
    return providers


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(settings.logging, env=settings.env)

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        app.state.settings = settings

        # MongoDB is optional; without it records live in this process
        mongo_client: Optional[AsyncMongoClient] = None
        if settings.db.mongodb_uri:
            mongo_client = AsyncMongoClient(settings.db.mongodb_uri, tz_aware=True)
            db = mongo_client[settings.db.db_name]
            repository = MongoClickRepository(
                db[settings.db.clicks_collection],
                max_retries=settings.tracking.upsert_max_retries,
            )
            await repository.ensure_indexes()
            app.state.db = db
        else:
            log.warning("mongodb_not_configured", storage="in_memory")
            repository = InMemoryClickRepository()
            app.state.db = None
        app.state.mongo_client = mongo_client

        # Redis is optional; self-hosters may not configure it
        redis_client = await create_redis_client(settings.redis.redis_uri)
        app.state.redis = redis_client
        cache: CacheBackend = (
            RedisCache(redis_client)
            if redis_client
            else MemoryCache(pinned_prefixes=DEDUP_PREFIXES)
        )

        http_client = HttpClient(timeout=settings.geo.geo_timeout_seconds)
        geo = GeoResolver(build_geo_providers(settings.geo, http_client), cache, settings.geo)

        app.state.tracker = ClickTracker(
            classifier=TrafficClassifier(cache, settings.tracking),
            gate=ViewGate(cache, settings.tracking),
            geo=geo,
            repository=repository,
            settings=settings.tracking,
        )
        app.state.stats = StatsService(repository)

        log.info(
            "app_started",
            storage="mongodb" if mongo_client else "in_memory",
            cache="redis" if redis_client else "memory",
            geo_providers=[provider.name for provider in geo.providers],
        )

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await geo.aclose()
        await http_client.aclose()
        if mongo_client is not None:
            await mongo_client.close()
        if redis_client is not None:
            await redis_client.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    # all origins allowed by default
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(view_router)
    app.include_router(stats_router)

    return app
