from __future__ import annotations

# Minimal entrypoint module for ASGI servers
# Exposes the FastAPI app constructed in chatroom.api.routes
from chatroom.api.routes import app

__all__ = ["app"]
