"""
Read-only status surface for operational probes.
"""

import asyncio
from typing import Any, Dict

from ..cache.engine import CacheEngine
from ..models import CacheStatsSnapshot, HealthStatus, StatusReport


class CacheStatusReporter:
    """Combines the engine's health check and stats; holds no state of its own."""

    def __init__(self, engine: CacheEngine, service_name: str = "cache"):
        self.engine = engine
        self.service_name = service_name

    async def health_check(self) -> HealthStatus:
        return await self.engine.health_check()

    async def get_stats(self) -> CacheStatsSnapshot:
        return await self.engine.get_stats()

    async def report(self) -> StatusReport:
        health, stats = await asyncio.gather(self.health_check(), self.get_stats())
        return StatusReport(service=self.service_name, health=health, stats=stats)

    async def snapshot(self) -> Dict[str, Any]:
        """JSON-ready status document for a probe endpoint."""
        report = await self.report()
        return report.model_dump(mode="json", exclude_none=True)
