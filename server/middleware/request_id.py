"""
Per-request log context for the HTTP API.

Every request gets an ID (taken from X-Request-ID when the caller sends
one) that is echoed back on the response and attached to each log line
written while the request is handled. Requests under /api/games/{code}
also tag their log lines with the game code.
"""

import logging
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from logging_config import game_code_var, request_id_var

logger = logging.getLogger(__name__)

GAMES_PREFIX = "/api/games/"


def game_code_from_path(path: str):
    """Game code addressed by an /api/games/... path, upper-cased, or None."""
    if not path.startswith(GAMES_PREFIX):
        return None
    code = path[len(GAMES_PREFIX):].split("/", 1)[0]
    return code.upper() or None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request and its log lines with a request ID."""

    def __init__(self, app, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(self.header_name) or uuid.uuid4().hex
        request.state.request_id = request_id

        request_token = request_id_var.set(request_id)
        code_token = game_code_var.set(game_code_from_path(request.url.path))
        try:
            response = await call_next(request)
        finally:
            game_code_var.reset(code_token)
            request_id_var.reset(request_token)

        response.headers[self.header_name] = request_id
        return response
