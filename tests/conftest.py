from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from idxmaint.config import MaintenanceConfig
from idxmaint.remediator import FragmentationRemediator

from _fakes import FakeDatabase


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def make_remediator(fake_db: FakeDatabase) -> Callable[..., FragmentationRemediator]:
    """
    Factory fixture wiring a FragmentationRemediator to the fake database.

    Usage:
        remediator = make_remediator(threshold=40, use_app_lock=False)
    """
    def _make(**config_kwargs: Any) -> FragmentationRemediator:
        config_kwargs.setdefault("stats_retry_backoff_s", 0.0)
        return FragmentationRemediator(
            None,
            MaintenanceConfig(**config_kwargs),
            session_factory=fake_db.session_factory,
        )

    return _make


