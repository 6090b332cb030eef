import pytest

from django_script_tags.cache import get_glob_cache

from .testutils import setup_test_config

setup_test_config()


@pytest.fixture(autouse=True)
def clear_glob_cache():
    """Glob results are cached process-wide, so reset them between tests."""
    get_glob_cache().clear()
    yield
    get_glob_cache().clear()
