import logging
import threading
from typing import Callable, List, Optional

import uvicorn
from fastapi import FastAPI, Query
from pydantic import BaseModel

from .models import EngineEvent

EventCallback = Callable[[str, BaseModel], None]


class MonitoringService:
    """Outbound event hub plus the local HTTP surface for the presentation layer.

    Pipeline components call :meth:`emit`; subscribers (UI bridges, the CLI,
    tests) receive every event in order, and the last ``history_size``
    events stay queryable over ``GET /events``.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 8765, history_size: int = 1000):
        self.host = host
        self.port = port
        self.history_size = history_size
        self.logger = logging.getLogger(__name__)
        self.app = FastAPI(title="Stellar Antivirus Control")
        self.events: List[EngineEvent] = []
        self.is_running = False
        self._subscribers: List[EventCallback] = []
        self._lock = threading.Lock()
        self._server: Optional[uvicorn.Server] = None

        self._setup_routes()

    def _setup_routes(self):
        """Setup FastAPI routes"""

        @self.app.get("/health")
        async def health_check():
            return {"status": "healthy", "running": self.is_running}

        @self.app.get("/events")
        async def get_events(
            limit: int = Query(100, ge=1, le=1000),
            name: Optional[str] = Query(None),
        ):
            return [event.model_dump(mode="json") for event in self.get_events(limit, name)]

    def register_control_routes(self, agent):
        """Expose the agent's inbound commands over HTTP"""
        from .security.control_api import create_control_router

        self.app.include_router(create_control_router(agent))

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Register *callback* for every emitted event; returns an unsubscribe function"""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, name: str, payload: BaseModel):
        """Record an outbound event and deliver it to subscribers"""
        event = EngineEvent(name=name, payload=payload.model_dump(mode="json"))
        with self._lock:
            self.events.append(event)
            # Keep only the most recent events
            if len(self.events) > self.history_size:
                self.events = self.events[-self.history_size:]
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(name, payload)
            except Exception as e:
                self.logger.error(f"Event subscriber failed on {name}: {e}")

    def get_events(self, limit: int = 100, name: Optional[str] = None) -> List[EngineEvent]:
        with self._lock:
            events = list(self.events)
        if name:
            events = [e for e in events if e.name == name]
        return events[-limit:]

    def start_monitoring(self):
        """Serve the control API until stop_monitoring is called"""
        self.is_running = True
        self.logger.info(f"Starting control API on {self.host}:{self.port}")

        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="info")
        self._server = uvicorn.Server(config)
        self._server.run()
        self.is_running = False

    def stop_monitoring(self):
        """Stop the control API"""
        self.is_running = False
        if self._server is not None:
            self._server.should_exit = True
        self.logger.info("Stopping control API")
