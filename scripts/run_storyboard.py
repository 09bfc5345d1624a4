"""
CLI to turn a yadam script into an illustrated storyboard.

Usage:
    python scripts/run_storyboard.py \
        --script story.txt \
        --aspect-ratio 16:9 \
        --export-dir storyboard/

Environment variables (a .env file in the working directory is loaded first):
    GEMINI_API_KEY       - LLM credential for scene analysis and prompt repair
    REPLICATE_API_TOKEN  - image generation credential
    REPLICATE_MODEL      - optional image model override
    YADAM_DATA_DIR       - optional history directory (default: ~/.yadam)
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from yadam import (  # noqa: E402
    BatchOrchestrator,
    BatchProgress,
    GenerationResult,
    Phase,
    PromptRepairer,
    ReplicateImageRenderer,
    ResultStore,
    SceneAnalyzer,
)
from yadam.ai_generation import ASPECT_RATIOS, DEFAULT_ASPECT_RATIO  # noqa: E402
from yadam.common import (  # noqa: E402
    ConfigurationError,
    RenderError,
    Settings,
    check_configuration,
    mask_secret,
)
from yadam.pipeline import download  # noqa: E402


class ProgressTracker:
    """
    Provides command-line progress updates for a storyboard batch.
    """

    def __init__(self) -> None:
        self._scene_bar: tqdm | None = None

    def __call__(self, progress: BatchProgress) -> None:
        match progress.phase:
            case Phase.ANALYZING:
                self._write(f"[1/3] {progress.message}")
            case Phase.GENERATING if progress.current_index == 0:
                self._write(f"[2/3] {progress.message}")
                self._scene_bar = tqdm(total=progress.total_count, desc="Scenes", unit="scene")
            case Phase.GENERATING:
                if self._scene_bar is not None:
                    self._scene_bar.set_description(f"Scene {progress.current_index}/{progress.total_count}")
            case Phase.SUCCESS:
                self.close()
                self._write(f"[3/3] {progress.message}")
            case Phase.CANCELLED | Phase.ERROR:
                self.close()
                self._write(f"Batch ended early ({progress.phase.value}): {progress.message}")

    def record(self, result: GenerationResult) -> None:
        if self._scene_bar is not None:
            self._scene_bar.update(1)
        marker = "ok" if result.succeeded else "FAILED"
        summary = result.scene_summary or ""
        self._write(f"  scene {result.scene_index} [{marker}] {summary}")
        if result.suggested_prompt:
            self._write(f"    suggested prompt: {result.suggested_prompt}")

    def close(self) -> None:
        if self._scene_bar is not None:
            self._scene_bar.close()
            self._scene_bar = None

    @staticmethod
    def _write(message: str) -> None:
        tqdm.write(message)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate an illustrated storyboard from a script.")
    parser.add_argument(
        "--script",
        required=True,
        help="Path to the script text file, or '-' to read it from standard input.",
    )
    parser.add_argument(
        "--aspect-ratio",
        choices=[ratio.value for ratio in ASPECT_RATIOS],
        default=DEFAULT_ASPECT_RATIO.value,
        help="Image aspect ratio (default: 16:9). "
        + "; ".join(f"{ratio.value} = {label}" for ratio, label in ASPECT_RATIOS.items()),
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding the generation history (overrides YADAM_DATA_DIR).",
    )
    parser.add_argument(
        "--export-dir",
        default=None,
        help="Optional directory where successful scene images are written.",
    )
    parser.add_argument(
        "--retry-failed",
        action="store_true",
        help="Retry failed scenes once the batch completes, using suggested prompts when available.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args()


def read_script(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    path = Path(source)
    if not path.is_file():
        raise SystemExit(f"Script file not found: {path}")
    return path.read_text(encoding="utf-8")


def main() -> int:
    args = parse_args()
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    settings = Settings.from_env()
    try:
        check_configuration(settings)
        renderer = ReplicateImageRenderer(
            api_token=settings.replicate_api_token,
            model_identifier=settings.replicate_model,
        )
    except ConfigurationError as exc:
        print(f"Setup required: {exc}", file=sys.stderr)
        return 2

    script_text = read_script(args.script)
    if not script_text.strip():
        print("The script is empty; nothing to generate.", file=sys.stderr)
        return 1

    data_dir = Path(args.data_dir).expanduser() if args.data_dir else settings.data_dir
    store = ResultStore.in_directory(data_dir)
    orchestrator = BatchOrchestrator(
        analyzer=SceneAnalyzer(api_key=settings.llm_api_key, model=settings.analysis_model),
        renderer=renderer,
        repairer=PromptRepairer(api_key=settings.llm_api_key, model=settings.repair_model),
        store=store,
    )

    _print_settings_summary(settings, store)

    tracker = ProgressTracker()
    try:
        for result in orchestrator.iter_generation(
            script_text, args.aspect_ratio, progress_callback=tracker
        ):
            tracker.record(result)
    finally:
        tracker.close()

    if args.retry_failed:
        _retry_failed(orchestrator)

    batch = orchestrator.current_batch
    failed = [result for result in batch if not result.succeeded]
    tqdm.write(
        f"Storyboard: {len(batch) - len(failed)} succeeded, {len(failed)} failed. "
        f"History saved to {store.path}"
    )

    if args.export_dir:
        export_dir = Path(args.export_dir)
        export_dir.mkdir(parents=True, exist_ok=True)
        for result in batch:
            if result.succeeded:
                tqdm.write(f"  saved {download(result, export_dir)}")

    return 0 if orchestrator.progress.phase is Phase.SUCCESS else 1


def _retry_failed(orchestrator: BatchOrchestrator) -> None:
    for result in orchestrator.current_batch:
        if result.succeeded:
            continue
        tqdm.write(f"Retrying scene {result.scene_index}...")
        try:
            orchestrator.retry(result.id, use_suggested_prompt=True)
        except RenderError as exc:
            tqdm.write(f"  retry failed: {exc}")
        else:
            tqdm.write("  retry succeeded.")


def _print_settings_summary(settings: Settings, store: ResultStore) -> None:
    tqdm.write("Configuration summary:")
    tqdm.write(f"  Analysis model : {settings.analysis_model}")
    tqdm.write(f"  Image model    : {settings.replicate_model}")
    if settings.llm_api_key:
        tqdm.write(f"  LLM API key    : {mask_secret(settings.llm_api_key)}")
    tqdm.write(f"  History        : {len(store)} stored result(s)")


if __name__ == "__main__":
    raise SystemExit(main())
