"""
Status Server - HTTP surface of a running operator.

Serves liveness and readiness probes, Prometheus metrics of the operator's
registry and a Server-Sent Events stream of recorded object events.
"""

import asyncio
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Header, HTTPException, Query, Response
from fastapi.responses import StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from reconkit.events import EventBus, EventFilter, EventType
from reconkit.metrics import OperatorMetrics

logger = logging.getLogger(__name__)


class StatusServer:
    """
    FastAPI application served by uvicorn.

    Args:
        metrics: Metrics whose registry is exposed on /metrics.
        event_bus: Bus streamed on /api/v1/events. Optional.
        host: Bind address.
        port: Bind port.
        name: Operator name reported on /.
    """

    def __init__(
        self,
        metrics: OperatorMetrics,
        event_bus: Optional[EventBus] = None,
        host: str = "0.0.0.0",
        port: int = 8000,
        name: str = "reconkit",
        log_level: str = "info",
    ):
        self.metrics = metrics
        self.event_bus = event_bus
        self.host = host
        self.port = port
        self.name = name
        self.log_level = log_level.lower()
        self.ready = False
        self.server: Optional[uvicorn.Server] = None

        self.app = FastAPI(
            title="reconkit operator",
            description="Status, metrics and events of a reconkit operator",
            version="1.0.0",
        )
        self._setup_routes()

    def _setup_routes(self) -> None:
        """
        Set up the FastAPI routes.

        - Service info: GET /
        - Probes: GET /healthz, GET /readyz
        - Prometheus exposition: GET /metrics
        - Event stream: GET /api/v1/events
        """

        @self.app.get("/")
        async def service_info():
            """Service info endpoint."""
            return {"status": "ok", "service": self.name}

        @self.app.get("/healthz")
        async def healthz():
            """Liveness probe."""
            return {"status": "ok"}

        @self.app.get("/readyz")
        async def readyz():
            """Readiness probe. Ready once the informer delivers events."""
            if not self.ready:
                raise HTTPException(status_code=503, detail="Operator not ready")
            return {"status": "ready"}

        @self.app.get("/metrics")
        async def metrics():
            """Prometheus metrics of the operator."""
            return Response(
                content=generate_latest(self.metrics.registry),
                media_type=CONTENT_TYPE_LATEST,
            )

        @self.app.get("/api/v1/events")
        async def stream_events(
            namespace: Optional[str] = None,
            name: Optional[str] = None,
            event_type: Optional[str] = Query(None, alias="type"),
            reason: Optional[str] = None,
            last_event_id: Optional[str] = Header(None),
        ):
            """
            SSE stream of object events.

            Query parameters narrow the stream to one namespace, object name,
            event type or reason. A reconnecting client sending Last-Event-ID
            first receives the kept events it missed.
            """
            if not self.event_bus:
                raise HTTPException(
                    status_code=503,
                    detail="Event streaming not available",
                )

            try:
                selected_type = EventType(event_type) if event_type else None
            except ValueError:
                raise HTTPException(
                    status_code=400,
                    detail=f"Unknown event type '{event_type}', expected Normal or Warning",
                )
            after = int(last_event_id) if last_event_id and last_event_id.isdigit() else None

            subscription = self.event_bus.subscribe(
                EventFilter(
                    namespace=namespace,
                    name=name,
                    event_type=selected_type,
                    reason=reason,
                ),
                after=after,
            )

            async def event_generator():
                try:
                    async for event in subscription:
                        yield event.to_sse()
                except asyncio.CancelledError:
                    pass
                finally:
                    self.event_bus.unsubscribe(subscription)

            return StreamingResponse(
                event_generator(),
                media_type="text/event-stream",
                headers={
                    "Cache-Control": "no-cache",
                    "X-Accel-Buffering": "no",
                },
            )

    async def start(self) -> None:
        """Serve until :meth:`stop` is called."""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level=self.log_level,
        )
        self.server = uvicorn.Server(config)

        logger.info(f"Starting status server on {self.host}:{self.port}")
        await self.server.serve()

    async def stop(self) -> None:
        """Stop the HTTP server gracefully."""
        logger.info("Stopping status server")
        if self.server:
            self.server.should_exit = True
