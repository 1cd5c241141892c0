"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from aventura.ai.orchestration.ledger import PendingChangeLedger
from aventura.models import Chapter, LorebookEntry
from tests.helpers import sample_chapters, sample_entries


@pytest.fixture
def entries() -> list[LorebookEntry]:
    return sample_entries()


@pytest.fixture
def chapters() -> list[Chapter]:
    return sample_chapters()


@pytest.fixture
def ledger() -> PendingChangeLedger:
    return PendingChangeLedger()
