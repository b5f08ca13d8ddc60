import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Dict, Any

from .client import SessionClient
from .config import POLL_INTERVAL_SECONDS, FIXTURES_SERVICE_URL
from .models import ServiceHealth

logger = logging.getLogger(__name__)

DEFAULT_SERVICES = [
    "API Gateway",
    "Auth Service",
    "Fixtures Service",
    "Odds Service",
    "Wallet Service",
    "Bet Service",
]


class PeriodicRefresher:
    """
    Calls `callback` now and then every `interval` seconds until stopped.

    Use as an async context manager to tie the timer to a view's lifetime.
    """

    def __init__(self, callback: Callable[[], Awaitable[Any]], interval: float = POLL_INTERVAL_SECONDS, name: str = "refresher"):
        self.callback = callback
        self.interval = interval
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self):
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"{self.name} stopped")

    async def _loop(self):
        while True:
            try:
                await self.callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{self.name} tick failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval)

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()


class HealthMonitor:
    """Gateway and per-service health, as shown on the service status view."""

    def __init__(self, client: SessionClient, services: Optional[List[str]] = None):
        self.client = client
        self.services = [ServiceHealth(name=name) for name in (services or DEFAULT_SERVICES)]
        self.last_checked: Optional[datetime] = None

    async def check(self) -> List[ServiceHealth]:
        gateway = await self.client.get_public(f"{self.client.gateway_url}/health")
        if gateway is None:
            for service in self.services:
                service.status = "unhealthy"
            self.last_checked = datetime.now()
            return self.services

        self.services[0].status = "healthy"
        # Per-service results from an earlier check no longer apply
        for service in self.services[1:]:
            service.status = "unknown"
            service.response = None
            service.error = None

        details = await self.client.get_public(f"{self.client.gateway_url}/health/services")
        if details is None:
            logger.info("Services health check failed")
        else:
            for reported in details.get("services") or []:
                name = str(reported.get("name", "")).lower()
                if not name:
                    continue
                # First entry is the gateway itself
                for service in self.services[1:]:
                    if name in service.name.lower():
                        service.status = "healthy" if reported.get("status") == "healthy" else "unhealthy"
                        service.response = reported.get("response")
                        service.error = reported.get("error")
                        break

        self.last_checked = datetime.now()
        return self.services


class FixtureFeed:
    """Live and today's fixtures, refreshed by a PeriodicRefresher on the live view."""

    def __init__(self, client: SessionClient, base_url: str = FIXTURES_SERVICE_URL):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.live: List[Dict[str, Any]] = []
        self.today: List[Dict[str, Any]] = []
        self.grouped: Dict[str, Any] = {}
        self.error: Optional[str] = None
        self.last_updated: Optional[datetime] = None

    async def refresh(self):
        live = await self.client.get_public(f"{self.base_url}/fixtures/live-now")
        if not live or not live.get("success") or live.get("fixtures") is None:
            self.error = "Failed to load matches: No live matches data received"
            logger.error(self.error)
            self.live, self.today, self.grouped = [], [], {}
            return

        self.live = live["fixtures"]
        self.grouped = live.get("groupedByCompetition") or {}
        self.last_updated = datetime.now()
        self.error = None

        today = await self.client.get_public(f"{self.base_url}/fixtures/today")
        if today and today.get("success") and today.get("fixtures") is not None:
            self.today = today["fixtures"]
        logger.info(f"Loaded {len(self.live)} live and {len(self.today)} today's matches")
