from django.core.cache import BaseCache, caches
from django.core.cache.backends.locmem import LocMemCache

from django_script_tags.app_settings import app_settings

glob_cache: LocMemCache | None = None


def get_glob_cache() -> BaseCache:
    """
    Cache shared by all `{% script %}` tags for storing the URLs resolved from glob patterns.

    Uses the cache named in `SCRIPT_TAGS["cache"]`, or a private in-memory cache
    if no cache is set.
    """
    if app_settings.CACHE is not None:
        return caches[app_settings.CACHE]

    # If no cache is set, use a local memory cache.
    global glob_cache
    if glob_cache is None:
        glob_cache = LocMemCache(
            "django-script-tags-globs",
            {
                "TIMEOUT": None,  # No timeout
                # One entry per distinct (path base, include, exclude). Culled entries are rescanned.
                "MAX_ENTRIES": 10_000,
                "CULL_FREQUENCY": 3,
            },
        )

    return glob_cache
