"""HTTP middleware for the Take 6 server."""

from .request_id import RequestIDMiddleware

__all__ = ["RequestIDMiddleware"]
