from __future__ import annotations

import logging
import time

import pytest

from pensieve_index.adapters.observability import LatencyBudget


def test_latency_budget_met_without_warning(caplog: pytest.LogCaptureFixture) -> None:
    budget = LatencyBudget(operation="pathway.validate", budget_ms=60_000.0)
    with caplog.at_level(logging.WARNING):
        elapsed, met = budget.finish(fandom_id="hp-1")
    assert met is True
    assert elapsed >= 0
    assert caplog.records == []


def test_latency_budget_warns_when_exceeded(caplog: pytest.LogCaptureFixture) -> None:
    budget = LatencyBudget(
        operation="search.stories", budget_ms=10.0, started=time.perf_counter() - 1.0
    )
    with caplog.at_level(logging.WARNING):
        elapsed, met = budget.finish(items=3, fandom_id="hp-1")
    assert met is False
    assert elapsed >= 1000.0
    assert "latency.budget_exceeded operation=search.stories" in caplog.text
    assert "fandom_id=hp-1 items=3" in caplog.text
