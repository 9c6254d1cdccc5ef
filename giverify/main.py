"""FastAPI application exposing product verification."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import Body, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .config import settings
from .errors import ScrapeFailure
from .models import ErrorResponse, HealthResponse, VerifyRequest, VerifyResponse
from .rate_limit import RateLimitExceeded, SlidingWindowLimiter
from .service import VerificationService

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_LEVEL = logging.getLevelName(settings.log_level.upper())

# ``force=True`` replaces uvicorn's default handlers so queue and driver
# statements share one format.
logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, force=True)
for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    logging.getLogger(name).setLevel(LOG_LEVEL)

logger = logging.getLogger(__name__)

PRODUCT_ID_ERROR = "productId is required and must be a string"


def get_service(request: Request) -> VerificationService:
    return request.app.state.service


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def enforce_rate_limit(request: Request, response: Response) -> None:
    limiter: SlidingWindowLimiter = request.app.state.rate_limiter
    ip = _client_ip(request)
    status = limiter.hit(ip)
    if not status.allowed:
        logger.warning("Rate limit BLOCKED ip=%s: daily limit exceeded", ip)
        raise RateLimitExceeded(status)
    request.state.rate_limit = status
    response.headers.update(status.headers())
    logger.info("Rate limit ip=%s remaining=%s/%s reset=%ss", ip, status.remaining, status.limit, status.reset_seconds)


def _error(request: Request, status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(include={"error"}),
        headers=request.state.rate_limit.headers(),
    )


def create_app(
    service: Optional[VerificationService] = None,
    rate_limiter: Optional[SlidingWindowLimiter] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Verification service ready (secondary portal %s)",
            "enabled" if app.state.service.secondary_enabled else "disabled",
        )
        yield
        await app.state.service.aclose()

    app = FastAPI(title="GI Product Verification Service", lifespan=lifespan)
    app.state.service = service or VerificationService()
    app.state.rate_limiter = rate_limiter or SlidingWindowLimiter(
        settings.rate_limit_max, settings.rate_limit_window_seconds
    )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content=ErrorResponse(error=str(exc)).model_dump(),
            headers=exc.status.headers(),
        )

    @app.get("/health", response_model=HealthResponse)
    async def health(service: VerificationService = Depends(get_service)) -> HealthResponse:
        return HealthResponse(
            queue=service.queue_state.value,
            pending=service.pending,
            cached=service.cached,
            timeouts=service.timeout_count,
            secondary_portal=service.secondary_enabled,
        )

    @app.post(
        "/api/scraper/scrape",
        response_model=VerifyResponse,
        response_model_exclude_none=True,
        dependencies=[Depends(enforce_rate_limit)],
    )
    async def scrape(
        http_request: Request,
        payload: Any = Body(None),
        service: VerificationService = Depends(get_service),
    ) -> Any:
        try:
            request = VerifyRequest.model_validate(payload)
        except ValidationError:
            return _error(http_request, 400, PRODUCT_ID_ERROR)
        try:
            result = await service.verify(request.productId)
        except ScrapeFailure:
            logger.error("Verification failed for product_id=%s", request.productId)
            return _error(http_request, 500, "Internal server error")
        return VerifyResponse(data=result)

    return app


app = create_app()
