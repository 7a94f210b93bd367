from __future__ import annotations

"""Shared application state.

Exports a singleton ChatRoom instance that can be imported by API routers
without circular imports.
"""

from chatroom.core.room import ChatRoom

# Global chat room instance
chat_room = ChatRoom()

__all__ = ["chat_room"]
