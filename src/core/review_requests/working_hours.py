import logging

from src.core.common.ttl_cache import ReadThroughCache
from src.core.review_requests.business_hours import DEFAULT_WORKING_HOURS, WorkingHoursConfig
from src.core.review_requests.repository import WorkingHoursConfigProvider

logger = logging.getLogger(__name__)

_CACHE_KEY = "working_hours"


class StaticWorkingHoursConfigProvider:
    def __init__(self, config: WorkingHoursConfig = DEFAULT_WORKING_HOURS) -> None:
        self._config = config

    async def get_working_hours_config(self) -> WorkingHoursConfig:
        return self._config


class CachedWorkingHoursConfigProvider:
    """Serves working hours through an injected read-through cache.

    A failing source never blocks an action: the defaults are returned and the next
    call retries the source.
    """

    def __init__(
        self,
        *,
        source: WorkingHoursConfigProvider,
        cache: ReadThroughCache[WorkingHoursConfig],
        fallback: WorkingHoursConfig = DEFAULT_WORKING_HOURS,
    ) -> None:
        self._source = source
        self._cache = cache
        self._fallback = fallback

    async def get_working_hours_config(self) -> WorkingHoursConfig:
        try:
            return await self._cache.get(_CACHE_KEY, self._source.get_working_hours_config)
        except Exception as exc:
            logger.warning(
                "review_request.working_hours.fallback",
                extra={"extra_fields": {"error": type(exc).__name__, "detail": str(exc)}},
            )
            return self._fallback
