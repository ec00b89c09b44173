import time
import uuid
from fastapi import Request
from dispatch_app.core.logger import get_logger

logger = get_logger("dispatch.http")

async def log_requests(request: Request, call_next):
    """Log every dispatch call with its duration and tag the response with a request id."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    started = time.perf_counter()
    logger.info(f"[{request_id}] -> {request.method} {request.url.path}")
    try:
        response = await call_next(request)
    except Exception:
        elapsed = time.perf_counter() - started
        logger.exception(f"[{request_id}] !! {request.method} {request.url.path} crashed after {elapsed:.3f}s")
        raise
    elapsed = time.perf_counter() - started
    logger.info(
        f"[{request_id}] <- {request.method} {request.url.path} "
        f"status={response.status_code} elapsed={elapsed:.3f}s"
    )
    response.headers["X-Request-ID"] = request_id
    return response
