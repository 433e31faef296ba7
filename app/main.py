import asyncio
import logging
import time

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings
from app.middleware.rate_limit import RateLimitMiddleware
from app.routes.interactions import router as interactions_router
from app.services.hypersync import hypersync_client
from app.services.inflight import InFlightScans
from app.services.registry import contract_registry
from app.utils.errors import RegistryUnavailable

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s | %(name)-20s | %(levelname)-7s | %(message)s",
)
logger = logging.getLogger("app")


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{request.method} {request.url.path} → {response.status_code} "
            f"({duration_ms:.1f}ms)"
        )
        return response


app = FastAPI(
    title="dApp Interaction Scanner API",
    description=(
        "Detect which tracked dApps a wallet has interacted with on-chain, "
        "using HyperSync for transaction and log retrieval."
    ),
    version="0.1.0",
)

# One dedup map per application process
app.state.inflight_scans = InFlightScans()

# Middleware (order: last added = outermost = runs first)
app.add_middleware(RateLimitMiddleware, requests_per_minute=settings.rate_limit_per_minute)
app.add_middleware(RequestTimingMiddleware)

app.include_router(interactions_router)


def _registry_status() -> tuple[str, int]:
    try:
        return "ok", len(contract_registry.dapps())
    except RegistryUnavailable as e:
        logger.error(f"Registry unavailable: {e}")
        return "registry_unavailable", 0


@app.on_event("startup")
async def startup():
    status, count = await asyncio.to_thread(_registry_status)
    logger.info(f"Ready: registry {status}, {count} dApps tracked")


@app.on_event("shutdown")
async def shutdown():
    await hypersync_client.aclose()


@app.get("/health")
async def health():
    status, count = await asyncio.to_thread(_registry_status)
    return {
        "status": status,
        "dapps_tracked": count,
        "in_flight_scans": app.state.inflight_scans.size,
        "backend": hypersync_client.base_url,
    }
