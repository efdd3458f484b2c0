import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from clinic_scheduler.core.logger import logger

class LogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = time.perf_counter() - start_time

        # Booking conflicts and storage failures stand out in the access log
        log = logger.warning if response.status_code in (409, 503) else logger.info
        log(
            f"Method: {request.method} | "
            f"Path: {request.url.path} | "
            f"Status: {response.status_code} | "
            f"Duration: {process_time:.4f}s"
        )
        return response
