"""
ASGI middleware for logging API requests and responses.

Pure ASGI (not BaseHTTPMiddleware) so the group change-feed stream
(text/event-stream) passes through untouched; event-stream bodies are
never buffered for logging.
"""

import json
import logging
import time
from typing import Optional
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.logging_config import filter_sensitive_data, truncate_large_data

logger = logging.getLogger(__name__)

MAX_LOGGED_BODY = 5000


def _sanitize_body(data: bytes) -> str:
    """Decode a payload, mask sensitive JSON keys and truncate it."""
    text = data.decode("utf-8", errors="ignore")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return truncate_large_data(text, max_length=MAX_LOGGED_BODY)
    filtered = filter_sensitive_data(payload)
    return truncate_large_data(json.dumps(filtered, ensure_ascii=False), max_length=MAX_LOGGED_BODY)


def _extract_error_reason(response_text: str) -> Optional[str]:
    """Extract a concise error reason from a JSON error body."""
    try:
        payload = json.loads(response_text)
    except json.JSONDecodeError:
        return truncate_large_data(response_text, max_length=500) if response_text else None
    if isinstance(payload, dict):
        for key in ("detail", "message", "error", "reason"):
            value = payload.get(key)
            if value:
                return str(value)
    return truncate_large_data(json.dumps(payload, ensure_ascii=False), max_length=500)


class RequestLoggingMiddleware:
    """Pure ASGI middleware to log all API requests and responses."""

    def __init__(self, app: ASGIApp, exclude_paths: Optional[list] = None):
        """
        Args:
            app: The ASGI application
            exclude_paths: Paths to exclude from logging (e.g., ["/health"])
        """
        self.app = app
        self.exclude_paths = exclude_paths or ["/health", "/"]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path", "") in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        request_id = id(scope)
        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "")
        client = scope.get("client")
        client_host = client[0] if client else None

        body_chunks = []
        response_chunks = []
        status_code = 0
        streaming = False

        async def logging_receive() -> Message:
            message = await receive()
            if message["type"] == "http.request":
                body_chunks.append(message.get("body", b""))
            return message

        async def logging_send(message: Message) -> None:
            nonlocal status_code, streaming
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
                for key, value in message.get("headers", []):
                    if key.lower() == b"content-type" and value.startswith(b"text/event-stream"):
                        streaming = True
            elif message["type"] == "http.response.body" and not streaming:
                response_chunks.append(message.get("body", b""))
            await send(message)

        logger.info(
            f"Request started: {method} {path}",
            extra={"extra_fields": {
                "request_id": request_id,
                "method": method,
                "path": path,
                "client": client_host,
            }}
        )

        try:
            await self.app(scope, logging_receive, logging_send)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {method} {path} - {e}",
                exc_info=True,
                extra={"extra_fields": {
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "duration_ms": duration_ms,
                    "error": str(e),
                }}
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        request_body = b"".join(body_chunks)
        request_body_text = _sanitize_body(request_body) if request_body else None
        if request_body_text and logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Request body: {request_body_text}")

        response_body = b"".join(response_chunks)
        response_body_text = _sanitize_body(response_body) if response_body else None
        error_reason = _extract_error_reason(response_body_text or "") if status_code >= 400 else None

        if status_code < 400:
            log_level = logging.INFO
        elif status_code < 500:
            log_level = logging.WARNING
        else:
            log_level = logging.ERROR

        completion_message = f"Request completed: {method} {path} - {status_code} ({duration_ms:.2f}ms)"
        if error_reason:
            completion_message += f" | error_reason={error_reason}"

        logger.log(
            log_level,
            completion_message,
            extra={"extra_fields": {
                "request_id": request_id,
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "streaming": streaming,
                "request_body": request_body_text,
                "response_body": response_body_text,
                "error_reason": error_reason,
            }}
        )
