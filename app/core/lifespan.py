import contextlib
from contextlib import asynccontextmanager
import asyncio
import logging

from app.ai.config import load_ai_config
from app.ai.factory import get_ai_client
from app.core.config import settings
from app.core.session_store import CacheBackend, MemoryCache, SqliteCache
from app.services.search_service import SearchService
from app.store import SqliteProfileStore

logger = logging.getLogger(__name__)


def build_cache() -> CacheBackend:
    if settings.session_backend == "sqlite":
        return SqliteCache(settings.session_db_path)
    return MemoryCache()


def build_search_service(cache: CacheBackend) -> SearchService:
    ai_config = load_ai_config()
    return SearchService.from_settings(
        settings,
        store=SqliteProfileStore(settings.profiles_db_path),
        cache=cache,
        ai_client=get_ai_client(ai_config),
        llm_timeout_s=ai_config.timeout_s,
    )


@asynccontextmanager
async def lifespan(app):
    cache = build_cache()
    if getattr(app.state, "search_service", None) is None:
        app.state.search_service = build_search_service(cache)
    app.state.cache = cache

    stop_event = asyncio.Event()

    async def periodic_sweep() -> None:
        while not stop_event.is_set():
            try:
                evicted = cache.sweep()
                if evicted:
                    logger.info("session_cache_sweep evicted=%s", evicted)
            except Exception as exc:  # pragma: no cover - sweep must not stop the app
                logger.warning("session_cache_sweep_failed: %s", exc)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=settings.cache_sweep_interval_s)
            except asyncio.TimeoutError:
                continue

    sweep_task = asyncio.create_task(periodic_sweep())
    yield
    stop_event.set()
    if not sweep_task.done():
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task
