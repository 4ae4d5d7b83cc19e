"""FastAPI dependencies."""


import redis.asyncio as redis
from fastapi import Depends, HTTPException, Request, status

from core.config import settings
from core.db import get_db
from core.metrics import report_submit_rate_limited_total
from core.redis import get_redis, hit_rate_limit
from services.audit import AuditContext
from services.lifecycle import ReportLifecycle

__all__ = ["get_db", "get_redis_client", "get_lifecycle", "get_audit_context", "submit_rate_limit"]


async def get_redis_client() -> redis.Redis:
    """Get Redis client dependency."""
    return await get_redis()


def get_lifecycle(request: Request) -> ReportLifecycle:
    """Report lifecycle created in the application lifespan."""
    return request.app.state.lifecycle


def get_audit_context(request: Request) -> AuditContext:
    return AuditContext.from_request(request)


async def submit_rate_limit(request: Request, redis_client: redis.Redis = Depends(get_redis_client)) -> None:
    """Limit public submissions per client address."""
    client_ip = request.client.host if request.client else "unknown"
    limited = await hit_rate_limit(
        redis_client,
        f"rl:report:{client_ip}",
        settings.report_rate_limit,
        settings.report_rate_window_seconds,
    )
    if limited:
        report_submit_rate_limited_total.inc()
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many reports submitted. Please wait before submitting another report.",
        )
