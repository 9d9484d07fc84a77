"""
Wiring for the cache layer.

Builds one store adapter and shares it between the cache engine, the
distributed lock and the status reporter. The hit/miss counters are
owned by the engine instance created here, not by module state.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from shared.config import CacheSettings, get_settings
from shared.errors import ConfigurationError
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from shared.retry import RetryConfig
from .cache.counters import CacheCounters
from .cache.engine import CacheEngine
from .health.reporter import CacheStatusReporter
from .locking.distributed_lock import DistributedLock
from .locking.single_flight import get_or_set_exclusive
from .store.base import StoreAdapter
from .store.redis_store import RedisStore


STORE_URL_SCHEMES = {"redis", "rediss", "unix"}


@dataclass
class CacheLayer:
    """The assembled cache layer."""
    settings: CacheSettings
    store: StoreAdapter
    engine: CacheEngine
    lock: DistributedLock
    reporter: CacheStatusReporter
    metrics: MetricsCollector

    async def start(self) -> bool:
        """Connect eagerly. Returns False (and keeps degrading gracefully) if the store is down."""
        logger = get_logger("cache.factory")
        try:
            await self.store.start()
            return True
        except Exception as e:
            logger.warning("Store unreachable at startup; cache will degrade to misses", error=str(e))
            return False

    async def close(self) -> None:
        await self.engine.close()

    def single_flight_wait(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.settings.single_flight_wait_attempts,
            base_delay=self.settings.single_flight_base_delay,
            max_delay=1.0,
        )

    async def get_or_set_exclusive(
        self,
        key: str,
        fetcher: Callable[[], Any],
        ttl: Optional[int] = None,
        tags: Sequence[str] = (),
    ) -> Any:
        """Single-flight cache-aside using the configured lease and wait budget."""
        return await get_or_set_exclusive(
            self.engine,
            self.lock,
            key,
            fetcher,
            ttl,
            tags,
            lease_seconds=self.settings.lock_lease_seconds,
            wait=self.single_flight_wait(),
        )


def build_store(settings: CacheSettings) -> RedisStore:
    scheme, separator, _ = settings.redis_url.partition("://")
    if not separator or scheme not in STORE_URL_SCHEMES:
        raise ConfigurationError(
            "Unsupported store URL",
            {"url": settings.redis_url, "schemes": sorted(STORE_URL_SCHEMES)},
        )

    return RedisStore(
        settings.redis_url,
        socket_timeout=settings.socket_timeout,
        socket_connect_timeout=settings.socket_connect_timeout,
        health_check_interval=settings.health_check_interval,
        max_connections=settings.max_connections,
    )


def create_cache_layer(
    settings: Optional[CacheSettings] = None,
    *,
    store: Optional[StoreAdapter] = None,
    metrics: Optional[MetricsCollector] = None,
    configure_logs: bool = False,
) -> CacheLayer:
    """Assemble store, engine, lock and reporter from settings."""
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(settings.service_name, settings.log_level)

    store = store or build_store(settings)
    metrics = metrics or get_metrics_collector(settings.service_name)

    engine = CacheEngine(
        store,
        counters=CacheCounters(),
        metrics=metrics,
        default_ttl=settings.default_ttl,
        warm_concurrency=settings.cache_warm_concurrency,
    )
    lock = DistributedLock(store, default_lease=settings.lock_lease_seconds, metrics=metrics)
    reporter = CacheStatusReporter(engine, service_name=settings.service_name)

    get_logger("cache.factory").info(
        "Cache layer assembled",
        store=type(store).__name__,
        default_ttl=settings.default_ttl,
    )
    return CacheLayer(
        settings=settings,
        store=store,
        engine=engine,
        lock=lock,
        reporter=reporter,
        metrics=metrics,
    )
