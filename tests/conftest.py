from __future__ import annotations

import pytest

from helpers import make_settings
from sessionsight.config import Settings
from sessionsight.services.store import InMemoryExtractionStore


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> InMemoryExtractionStore:
    return InMemoryExtractionStore()
