"""FastAPI application entry point."""
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import stripe
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from api.routers import billing, health, webhooks
from core.cache_store import RedisCacheStore
from core.config import get_settings
from core.redis import RedisClient, set_redis_client
from services.stripe_client import StripeClient, set_stripe_client
from services.subscription_sync_service import SubscriptionSyncService, set_sync_service


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    app_settings = get_settings()

    # Startup: Connect to Redis
    redis_client = RedisClient(
        url=app_settings.redis_url,
        enabled=app_settings.redis_enabled,
        pool_size=app_settings.redis_pool_size,
    )
    await redis_client.connect()
    set_redis_client(redis_client)

    # Startup: Stripe client and the sync service writing through Redis.
    # One attempt per Stripe call; webhook redelivery and page revisits retry.
    stripe.max_network_retries = 0
    stripe_client = StripeClient(
        api_key=app_settings.stripe_secret_key,
        timeout_seconds=app_settings.stripe_timeout_seconds,
    )
    set_stripe_client(stripe_client)
    set_sync_service(
        SubscriptionSyncService(
            cache_store=RedisCacheStore(redis_client),
            stripe_client=stripe_client,
            lock_ttl_seconds=app_settings.sync_lock_ttl_seconds,
            lock_wait_seconds=app_settings.sync_lock_wait_seconds,
            lock_poll_interval=app_settings.sync_lock_poll_interval,
        ),
    )

    yield

    # Shutdown: Clean up services and Redis
    set_sync_service(None)
    set_stripe_client(None)
    await redis_client.close()
    set_redis_client(None)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request and add security headers to response."""
        response = await call_next(request)
        # HSTS: enforce HTTPS for 1 year, including subdomains
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking - API shouldn't be framed
        response.headers["X-Frame-Options"] = "DENY"
        return response


app_settings = get_settings()

app = FastAPI(
    title="Subscription Sync API",
    description="Keeps a Redis cache of Stripe subscription state in sync with Stripe.",
    version="0.1.0",
    lifespan=lifespan,
)

# Security headers middleware (runs after CORS, adds headers to responses)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(webhooks.router)
app.include_router(billing.router)
