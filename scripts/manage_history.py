"""
Browse and maintain the storyboard generation history.

Usage:
    python scripts/manage_history.py list --limit 10
    python scripts/manage_history.py batch <result-id>
    python scripts/manage_history.py retry <result-id>
    python scripts/manage_history.py delete <result-id>
    python scripts/manage_history.py download <result-id> --output images/
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure project root is on the Python path.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from yadam import (  # noqa: E402
    BatchOrchestrator,
    GenerationResult,
    PromptRepairer,
    ReplicateImageRenderer,
    ResultStore,
    SceneAnalyzer,
)
from yadam.common import (  # noqa: E402
    ConfigurationError,
    RenderError,
    Settings,
    check_configuration,
)
from yadam.pipeline import download  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Manage the Yadam storyboard history.")
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding the generation history (overrides YADAM_DATA_DIR).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="Show the most recent results.")
    list_parser.add_argument("--limit", type=int, default=20, help="Number of results to show.")

    batch_parser = subparsers.add_parser("batch", help="Show every scene of a result's batch.")
    batch_parser.add_argument("result_id")

    retry_parser = subparsers.add_parser("retry", help="Render a stored result again.")
    retry_parser.add_argument("result_id")
    retry_parser.add_argument(
        "--use-suggested",
        action="store_true",
        help="Use the pending suggested prompt when the result has one.",
    )

    delete_parser = subparsers.add_parser("delete", help="Remove a result from the history.")
    delete_parser.add_argument("result_id")

    download_parser = subparsers.add_parser("download", help="Write a result's image to disk.")
    download_parser.add_argument("result_id")
    download_parser.add_argument(
        "--output",
        default=".",
        help="Destination directory or file path (default: current directory).",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    load_dotenv()
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    settings = Settings.from_env()
    data_dir = Path(args.data_dir).expanduser() if args.data_dir else settings.data_dir
    store = ResultStore.in_directory(data_dir)

    match args.command:
        case "list":
            results = store.recent(args.limit)
            if not results:
                print("History is empty.")
            for result in results:
                _print_result(result)
        case "batch":
            siblings = BatchOrchestrator(store=store).select_batch(args.result_id)
            if not siblings:
                raise SystemExit(f"No stored result with id {args.result_id}.")
            for sibling in siblings:
                _print_result(sibling)
        case "retry":
            _require(store, args.result_id)
            try:
                check_configuration(settings)
                orchestrator = BatchOrchestrator(
                    analyzer=SceneAnalyzer(api_key=settings.llm_api_key, model=settings.analysis_model),
                    renderer=ReplicateImageRenderer(
                        api_token=settings.replicate_api_token,
                        model_identifier=settings.replicate_model,
                    ),
                    repairer=PromptRepairer(api_key=settings.llm_api_key, model=settings.repair_model),
                    store=store,
                )
            except ConfigurationError as exc:
                print(f"Setup required: {exc}", file=sys.stderr)
                return 2
            try:
                updated = orchestrator.retry(args.result_id, use_suggested_prompt=args.use_suggested)
            except RenderError as exc:
                print(f"Retry failed, please try again later: {exc}", file=sys.stderr)
                return 1
            if updated is not None:
                _print_result(updated)
        case "delete":
            if BatchOrchestrator(store=store).delete(args.result_id):
                print(f"Deleted {args.result_id}.")
            else:
                print(f"{args.result_id} was not in the history.")
        case "download":
            result = _require(store, args.result_id)
            print(f"Saved {download(result, args.output)}")
    return 0


def _require(store: ResultStore, result_id: str) -> GenerationResult:
    result = store.get(result_id)
    if result is None:
        raise SystemExit(f"No stored result with id {result_id}.")
    return result


def _print_result(result: GenerationResult) -> None:
    timestamp = result.created_at.astimezone().strftime("%Y-%m-%d %H:%M")
    summary = result.scene_summary or result.refined_prompt[:60]
    print(f"{result.id}  {timestamp}  {result.aspect_ratio.value:>5}  {result.status.value:<7}  {summary}")


if __name__ == "__main__":
    raise SystemExit(main())
