"""
Locust load testing for the chat room server.

Simulates many concurrent participants that:
- Register a unique name (which posts a join notice)
- Ping /status to stay present
- Post public and private messages and poll the message list

Some simulated participants deliberately stop pinging so the inactivity
sweeper has evictions to process under load.

Usage examples:
  # Start your API server first (in another terminal):
  #   uvicorn chatroom.main:app --host 0.0.0.0 --port 8000
  # Then run Locust pointing to the host:
  #   locust -f scripts/load/locustfile.py --host http://127.0.0.1:8000

Environment variables (optional):
- USER_PREFIX: name prefix used for generated participants (default: "load")
- WAIT_MIN: minimum wait time between tasks in seconds (default: 0.1)
- WAIT_MAX: maximum wait time between tasks in seconds (default: 0.5)
- IDLE_RATIO: fraction of participants that never ping (default: 0.1)
- MESSAGE_LIMIT: limit used when listing messages (default: 50)

Install Locust separately (pip install .[load]).
"""
from __future__ import annotations

import os
import random
import uuid
from typing import Optional

from locust import FastHttpUser, task, between


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


EVERYONE = os.getenv("ROOM_EVERYONE", "Todos")


class ChatParticipant(FastHttpUser):
    """Simulated participant that registers, pings and chats."""

    wait_time = between(_env_float("WAIT_MIN", 0.1), _env_float("WAIT_MAX", 0.5))

    def on_start(self) -> None:
        self.name: Optional[str] = None
        self.idle: bool = random.random() < _env_float("IDLE_RATIO", 0.1)
        self._register()

    def _register(self) -> None:
        name = f"{os.getenv('USER_PREFIX', 'load')}_{uuid.uuid4().hex[:12]}"
        with self.client.post("/participants", json={"name": name}, name="/participants", catch_response=True) as resp:
            if resp.status_code == 201:
                self.name = name
                self.client.headers.update({"User": name})
            else:
                resp.success()  # avoid polluting stats with setup failures

    # ------------ Task definitions ------------
    @task(4)
    def ping(self) -> None:
        if self.name is None or self.idle:
            return
        with self.client.post("/status", name="/status", catch_response=True) as resp:
            if resp.status_code == 404:
                # Evicted by the sweeper; join again under a new name
                resp.success()
                self._register()

    @task(3)
    def read_messages(self) -> None:
        limit = int(_env_float("MESSAGE_LIMIT", 50))
        self.client.get(f"/messages?limit={limit}", name="/messages")

    @task(2)
    def post_message(self) -> None:
        if self.name is None:
            return
        private = random.random() < 0.2
        payload = {
            "to": EVERYONE if not private else f"{os.getenv('USER_PREFIX', 'load')}_peer",
            "text": f"hello {uuid.uuid4().hex[:6]}",
            "type": "private_message" if private else "message",
        }
        with self.client.post("/messages", json=payload, name="/messages", catch_response=True) as resp:
            if resp.status_code == 422:
                resp.success()

    @task(1)
    def list_participants(self) -> None:
        self.client.get("/participants", name="/participants")
