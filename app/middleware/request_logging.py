"""
Request Logging Middleware: one access log line per request.

Logs method, path, status, content length, user agent and client IP.
Failed and slow requests are logged at a higher level. Does NOT block requests.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import logging
import time
import json
from typing import Dict

logger = logging.getLogger("http")

# Maximum request duration before logging as slow
SLOW_REQUEST_THRESHOLD = 10.0  # seconds


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()
        context = self._build_context(request)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            self._log_error_request(context, str(e), duration)
            raise

        duration = time.time() - start_time
        context["status_code"] = response.status_code
        context["content_length"] = response.headers.get("content-length")
        context["duration_ms"] = round(duration * 1000, 1)

        if duration > SLOW_REQUEST_THRESHOLD:
            logger.warning(f"SLOW REQUEST ({duration:.2f}s): {json.dumps(context)}")

        line = (
            f"{context['method']} {context['path']} {response.status_code} "
            f"{context['content_length'] or '-'} - {context['user_agent']} {context['client_ip']}"
        )
        if response.status_code >= 500:
            logger.error(line)
        elif response.status_code >= 400:
            logger.warning(line)
        else:
            logger.info(line)

        return response

    def _build_context(self, request: Request) -> Dict:
        return {
            "method": request.method,
            "path": request.url.path,
            "query": str(request.url.query) if request.url.query else None,
            "client_ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", "unknown")[:200],
        }

    def _log_error_request(self, context: Dict, error: str, duration: float):
        """Log request that caused an exception."""
        log_entry = {
            "event_type": "error_request",
            "error": error[:500],
            "duration_seconds": round(duration, 2),
            **context,
        }
        logger.error(f"REQUEST ERROR: {json.dumps(log_entry)}")
