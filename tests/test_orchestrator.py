from __future__ import annotations

import pytest

from fakes import FakeAnalyzer, make_scenes
from yadam.ai_generation import AspectRatio
from yadam.common import AnalysisError, RenderError, RepairError
from yadam.pipeline import (
    INTER_REQUEST_DELAY_SECONDS,
    BatchOrchestrator,
    Phase,
    ResultStatus,
    ResultStore,
)
from yadam.scene_analysis import FALLBACK_SCENE_SUMMARY


def test_all_scenes_rendered_in_order(build_orchestrator, renderer, store, sleeps):
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(4)))
    updates = []

    results = orchestrator.start_generation(
        "a long story", AspectRatio.PORTRAIT, progress_callback=updates.append
    )

    assert [result.scene_index for result in results] == [1, 2, 3, 4]
    assert [result.id for result in results] == ["batch_1", "batch_2", "batch_3", "batch_4"]
    assert all(result.status is ResultStatus.SUCCESS for result in results)
    assert renderer.calls == [(f"prompt {n}", AspectRatio.PORTRAIT) for n in range(1, 5)]
    assert [result.id for result in store] == [result.id for result in results]
    assert orchestrator.current_batch == results
    assert sleeps == [INTER_REQUEST_DELAY_SECONDS] * 3

    phases = [(update.phase, update.current_index) for update in updates]
    assert phases == [
        (Phase.ANALYZING, None),
        (Phase.GENERATING, 0),
        (Phase.GENERATING, 1),
        (Phase.GENERATING, 2),
        (Phase.GENERATING, 3),
        (Phase.GENERATING, 4),
        (Phase.SUCCESS, 4),
    ]
    assert updates[1].total_count == 4
    assert orchestrator.progress.phase is Phase.SUCCESS


def test_results_carry_scene_metadata(build_orchestrator):
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(1)))

    (result,) = orchestrator.start_generation("옛날 옛적에", "1:1")

    assert result.batch_id == "batch"
    assert result.original_input == "옛날 옛적에"
    assert result.refined_prompt == "prompt 1"
    assert result.scene_summary == "장면 1"
    assert result.aspect_ratio is AspectRatio.SQUARE
    assert result.image_data.startswith("data:image/png;base64,")
    assert result.suggested_prompt is None


def test_failed_scene_is_isolated_and_not_persisted(build_orchestrator, renderer, repairer, store):
    renderer.failing = {"prompt 2"}
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(4)))

    results = orchestrator.start_generation("story")

    assert [result.status for result in orchestrator.current_batch] == [
        ResultStatus.SUCCESS,
        ResultStatus.FAILED,
        ResultStatus.SUCCESS,
        ResultStatus.SUCCESS,
    ]
    failed = results[1]
    assert failed.image_data is None
    assert failed.suggested_prompt == "safe prompt 2"
    assert repairer.calls == ["prompt 2"]
    assert len(store) == 3
    assert "batch_2" not in store
    assert orchestrator.progress.phase is Phase.SUCCESS


def test_analysis_failure_falls_back_to_single_scene(build_orchestrator, renderer, sleeps):
    script = "호랑이가 담배 피던 시절 이야기"
    orchestrator = build_orchestrator(FakeAnalyzer(error=AnalysisError("provider down")))

    results = orchestrator.start_generation(script)

    assert len(results) == 1
    assert results[0].refined_prompt == script
    assert results[0].scene_summary == FALLBACK_SCENE_SUMMARY
    assert renderer.calls == [(script, AspectRatio.WIDESCREEN)]
    assert sleeps == []
    assert orchestrator.progress.phase is Phase.SUCCESS


def test_empty_analysis_falls_back_to_single_scene(build_orchestrator):
    orchestrator = build_orchestrator(FakeAnalyzer([]))

    results = orchestrator.start_generation("short tale")

    assert [result.refined_prompt for result in results] == ["short tale"]


@pytest.mark.parametrize("script", ["", "   ", "\n\t"])
def test_blank_script_is_ignored(build_orchestrator, renderer, script):
    analyzer = FakeAnalyzer(make_scenes(2))
    orchestrator = build_orchestrator(analyzer)
    updates = []

    assert orchestrator.start_generation(script, progress_callback=updates.append) == []
    assert analyzer.calls == []
    assert renderer.calls == []
    assert updates == []
    assert orchestrator.progress.phase is Phase.IDLE


def test_noop_repair_yields_no_suggestion(build_orchestrator, renderer, repairer):
    renderer.failing = {"prompt 1"}
    repairer.rewrite = lambda prompt: prompt
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(1)))

    (result,) = orchestrator.start_generation("story")

    assert result.status is ResultStatus.FAILED
    assert result.suggested_prompt is None


def test_repair_error_is_absorbed(build_orchestrator, renderer, repairer):
    renderer.failing = {"prompt 1", "prompt 2"}

    def broken(prompt: str) -> str:
        raise RepairError("no rewrite")

    repairer.rewrite = broken
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(3)))

    results = orchestrator.start_generation("story")

    assert [result.status for result in results] == [
        ResultStatus.FAILED,
        ResultStatus.FAILED,
        ResultStatus.SUCCESS,
    ]
    assert all(result.suggested_prompt is None for result in results)
    assert orchestrator.progress.phase is Phase.SUCCESS


def test_unexpected_error_halts_batch_and_keeps_results(build_orchestrator, store):
    scenes = make_scenes(1) + [None]
    orchestrator = build_orchestrator(FakeAnalyzer(scenes))

    results = orchestrator.start_generation("story")

    assert [result.id for result in results] == ["batch_1"]
    assert orchestrator.progress.phase is Phase.ERROR
    assert orchestrator.progress.message
    assert "batch_1" in store


def test_cancel_stops_before_next_scene(build_orchestrator, renderer):
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(3)), sleep=lambda _: orchestrator.cancel())

    results = orchestrator.start_generation("story")

    assert len(results) == 1
    assert len(renderer.calls) == 1
    assert orchestrator.progress.phase is Phase.CANCELLED
    assert orchestrator.progress.current_index == 1


def test_cancel_when_idle_returns_false(build_orchestrator):
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(1)))

    assert orchestrator.cancel() is False


def test_abandoned_stream_releases_the_batch(build_orchestrator):
    analyzer = FakeAnalyzer(make_scenes(3))
    orchestrator = build_orchestrator(analyzer)

    stream = orchestrator.iter_generation("story")
    first = next(stream)
    stream.close()

    assert first.scene_index == 1
    assert orchestrator.progress.phase is Phase.CANCELLED
    assert len(orchestrator.start_generation("another story")) == 3


def test_start_while_running_is_ignored(build_orchestrator, renderer):
    analyzer = FakeAnalyzer(make_scenes(2))
    orchestrator = build_orchestrator(analyzer)
    nested = []
    renderer.hook = lambda prompt: nested.append(orchestrator.start_generation("other story"))

    results = orchestrator.start_generation("story")

    assert len(results) == 2
    assert nested == [[], []]
    assert analyzer.calls == ["story"]


def test_retry_with_suggestion_succeeds_and_persists(build_orchestrator, renderer, store):
    renderer.failing = {"prompt 2"}
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(3)))
    orchestrator.start_generation("story")
    failed = orchestrator.current_batch[1]
    before = failed.created_at

    updated = orchestrator.retry("batch_2", use_suggested_prompt=True)

    assert updated is failed
    assert updated.status is ResultStatus.SUCCESS
    assert updated.refined_prompt == "safe prompt 2"
    assert updated.suggested_prompt is None
    assert updated.image_data
    assert updated.created_at >= before
    assert renderer.calls[-1] == ("safe prompt 2", AspectRatio.WIDESCREEN)
    assert store.get("batch_2") is updated
    assert [result.status for result in orchestrator.current_batch] == [ResultStatus.SUCCESS] * 3
    assert not orchestrator.is_retrying("batch_2")


def test_retry_without_suggestion_uses_original_prompt(build_orchestrator, renderer, repairer):
    renderer.failing = {"prompt 1"}
    repairer.rewrite = lambda prompt: prompt
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(1)))
    orchestrator.start_generation("story")
    renderer.failing = set()
    calls_before = len(renderer.calls)

    updated = orchestrator.retry("batch_1", use_suggested_prompt=True)

    assert len(renderer.calls) == calls_before + 1
    assert renderer.calls[-1][0] == "prompt 1"
    assert updated.refined_prompt == "prompt 1"


def test_failed_retry_leaves_record_unchanged(build_orchestrator, renderer, store):
    renderer.failing = {"prompt 1", "safe prompt 1"}
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(1)))
    orchestrator.start_generation("story")
    snapshot = orchestrator.current_batch[0].to_dict()

    with pytest.raises(RenderError):
        orchestrator.retry("batch_1", use_suggested_prompt=True)

    assert orchestrator.current_batch[0].to_dict() == snapshot
    assert "batch_1" not in store
    assert not orchestrator.is_retrying("batch_1")


def test_concurrent_retry_for_same_id_is_a_noop(build_orchestrator, renderer):
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(1)))
    orchestrator.start_generation("story")
    nested = []
    renderer.hook = lambda prompt: nested.append(orchestrator.retry("batch_1"))
    calls_before = len(renderer.calls)

    updated = orchestrator.retry("batch_1")

    assert updated is not None
    assert nested == [None]
    assert len(renderer.calls) == calls_before + 1


def test_delete_during_retry_of_failed_scene_is_not_undone(build_orchestrator, renderer, store):
    renderer.failing = {"prompt 1"}
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(1)))
    orchestrator.start_generation("story")
    renderer.failing = set()
    renderer.hook = lambda prompt: orchestrator.delete("batch_1")

    assert orchestrator.retry("batch_1") is None

    assert "batch_1" not in store
    assert orchestrator.current_batch == []
    assert not orchestrator.is_retrying("batch_1")


def test_delete_during_retry_of_stored_result_is_not_undone(tmp_path, build_orchestrator, renderer):
    store = ResultStore(tmp_path / "history.yaml")
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(2)), store=store)
    orchestrator.start_generation("story")
    renderer.hook = lambda prompt: orchestrator.delete("batch_2")

    assert orchestrator.retry("batch_2") is None

    assert [result.id for result in store] == ["batch_1"]
    assert [result.id for result in ResultStore(tmp_path / "history.yaml")] == ["batch_1"]
    assert [result.id for result in orchestrator.current_batch] == ["batch_1"]


def test_retry_after_delete_during_retry_starts_clean(build_orchestrator, renderer):
    renderer.failing = {"prompt 1"}
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(1)))
    orchestrator.start_generation("story")
    renderer.failing = set()
    renderer.hook = lambda prompt: orchestrator.delete("batch_1")
    orchestrator.retry("batch_1")
    renderer.hook = None

    with pytest.raises(KeyError):
        orchestrator.retry("batch_1")


def test_retry_unknown_id_raises(build_orchestrator):
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(1)))

    with pytest.raises(KeyError):
        orchestrator.retry("missing")


def test_delete_removes_everywhere_and_is_idempotent(build_orchestrator, store):
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(2)))
    orchestrator.start_generation("story")

    orchestrator.delete("batch_1")
    orchestrator.delete("batch_1")
    orchestrator.delete("never-existed")

    assert [result.id for result in orchestrator.current_batch] == ["batch_2"]
    assert [result.id for result in store] == ["batch_2"]


def test_select_batch_rebuilds_scene_order(build_orchestrator, store):
    batch_ids = iter(["first", "second"])
    orchestrator = build_orchestrator(
        FakeAnalyzer(make_scenes(11)), batch_id_factory=lambda: next(batch_ids)
    )
    orchestrator.start_generation("story one")
    orchestrator.start_generation("story two")

    selected = orchestrator.select_batch("first_10")

    assert [result.scene_index for result in selected] == list(range(1, 12))
    assert {result.batch_id for result in selected} == {"first"}
    assert orchestrator.current_batch == selected
    assert orchestrator.select_batch("unknown") == []
    assert orchestrator.current_batch == selected


def test_subscribers_receive_updates_until_unsubscribed(build_orchestrator):
    orchestrator = build_orchestrator(FakeAnalyzer(make_scenes(1)))
    received = []
    unsubscribe = orchestrator.subscribe(received.append)

    orchestrator.start_generation("story")
    count = len(received)
    unsubscribe()
    orchestrator.start_generation("story again")

    assert count > 0
    assert received[-1].phase is Phase.SUCCESS
    assert len(received) == count


def test_history_commands_need_no_credentials(monkeypatch, build_orchestrator, store):
    build_orchestrator(FakeAnalyzer(make_scenes(2))).start_generation("story")
    for name in ("REPLICATE_API_TOKEN", "GEMINI_API_KEY", "YADAM_LLM_API_KEY", "LITELLM_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    history = BatchOrchestrator(store=store)

    assert [result.id for result in history.select_batch("batch_2")] == ["batch_1", "batch_2"]
    assert history.delete("batch_1") is True
    assert history.delete("batch_1") is False
    assert [result.id for result in store] == ["batch_2"]
