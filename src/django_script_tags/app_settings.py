from pathlib import Path
from typing import Any, NamedTuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


class ScriptTagsSettings(NamedTuple):
    """
    Settings available for django-script-tags.

    Set them in your Django settings under `SCRIPT_TAGS`:

    ```python
    SCRIPT_TAGS = {
        "webroot": BASE_DIR / "static",
        "cache": "default",
    }
    ```
    """

    webroot: str | Path | None = None
    """
    Directory against which the `asp-src-include`, `asp-src-exclude`, `asp-fallback-src-include`
    and `asp-fallback-src-exclude` glob patterns are resolved.

    Defaults to `STATIC_ROOT`, or `BASE_DIR / "static"` if `STATIC_ROOT` is not set.
    """

    base_url: str | None = None
    """
    URL prefix of the files found by globbing, e.g. `"/static"`.

    If `None`, the path base of the current request (`SCRIPT_NAME`) is used, so a file
    `js/site.js` becomes `/js/site.js`, or `/myapp/js/site.js` when the site is mounted
    under `/myapp`.
    """

    cache: str | None = None
    """
    Name of the Django cache (from `CACHES`) in which the glob results are stored.

    If `None`, a private in-memory cache is used.
    """

    cache_timeout: int | None = None
    """
    How many seconds the glob results stay in the cache. `None` means forever.
    """


defaults = ScriptTagsSettings()


class InternalSettings:
    # NOTE: Settings are read on every access, so that `override_settings()` works in tests.
    @property
    def _settings(self) -> dict[str, Any]:
        data = getattr(settings, "SCRIPT_TAGS", None) or {}
        if isinstance(data, ScriptTagsSettings):
            data = data._asdict()
        if not isinstance(data, dict):
            raise ImproperlyConfigured(
                f"Setting SCRIPT_TAGS must be a dict or ScriptTagsSettings, got {type(data).__name__}"
            )
        unknown = set(data) - set(ScriptTagsSettings._fields)
        if unknown:
            raise ImproperlyConfigured(f"Unknown keys in SCRIPT_TAGS setting: {', '.join(sorted(unknown))}")
        return data

    @property
    def WEBROOT(self) -> Path:
        webroot = self._settings.get("webroot", defaults.webroot)
        if webroot is None:
            webroot = getattr(settings, "STATIC_ROOT", None)
        if webroot is None:
            base_dir = getattr(settings, "BASE_DIR", None)
            if base_dir is None:
                raise ImproperlyConfigured(
                    "Cannot resolve glob patterns of the {% script %} tag. "
                    "Set SCRIPT_TAGS['webroot'], STATIC_ROOT or BASE_DIR."
                )
            webroot = Path(base_dir) / "static"
        return Path(webroot)

    @property
    def BASE_URL(self) -> str | None:
        return self._settings.get("base_url", defaults.base_url)

    @property
    def CACHE(self) -> str | None:
        return self._settings.get("cache", defaults.cache)

    @property
    def CACHE_TIMEOUT(self) -> int | None:
        return self._settings.get("cache_timeout", defaults.cache_timeout)


app_settings = InternalSettings()
