"""
Unit test configuration.

pydantic-settings would otherwise read a developer's local .env (MONGODB_URI,
REDIS_URI, GEO_PROVIDERS...) and change the defaults under test. Tests set
configuration through monkeypatch.setenv() or explicit constructor kwargs.
"""

import pytest


@pytest.fixture(autouse=True)
def ignore_dotenv(monkeypatch):
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})
