from __future__ import annotations

import pytest

from fakes import FakeRenderer, FakeRepairer
from yadam.pipeline import BatchOrchestrator, ResultStore


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def repairer() -> FakeRepairer:
    return FakeRepairer()


@pytest.fixture
def store() -> ResultStore:
    return ResultStore()


@pytest.fixture
def build_orchestrator(renderer, repairer, store, sleeps):
    def factory(analyzer, **overrides) -> BatchOrchestrator:
        options = dict(
            analyzer=analyzer,
            renderer=renderer,
            repairer=repairer,
            store=store,
            sleep=sleeps.append,
            batch_id_factory=lambda: "batch",
        )
        options.update(overrides)
        return BatchOrchestrator(**options)

    return factory
