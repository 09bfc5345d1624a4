"""
Drives analyzed scenes through image generation one at a time.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Iterator

from yadam.ai_generation import (
    DEFAULT_ASPECT_RATIO,
    AspectRatio,
    PromptRepairer,
    ReplicateImageRenderer,
)
from yadam.common import AnalysisError, RenderError, RepairError
from yadam.scene_analysis import SceneAnalyzer, SceneDescriptor, fallback_scenes

from .history import ResultStore
from .models import (
    BatchProgress,
    GenerationResult,
    Phase,
    ResultStatus,
    make_result_id,
)

logger = logging.getLogger(__name__)

# Pause between two render requests of the same batch to stay under the provider rate limit.
INTER_REQUEST_DELAY_SECONDS = 3.0

ProgressCallback = Callable[[BatchProgress], None]


def default_batch_id() -> str:
    return datetime.now().strftime("%Y%m%d%H%M%S%f")


class BatchOrchestrator:
    """
    Turns a script into a storyboard: analysis, then strictly sequential rendering.

    The orchestrator owns the batch state machine (``idle -> analyzing -> generating ->
    success | error | cancelled``), the live view of the batch being displayed, and all
    writes to the :class:`ResultStore`. Front ends drive it through
    :meth:`iter_generation` / :meth:`start_generation`, :meth:`retry`, :meth:`delete`,
    :meth:`select_batch` and :meth:`cancel`, and observe it through progress callbacks.
    """

    def __init__(
        self,
        *,
        analyzer: SceneAnalyzer | None = None,
        renderer: ReplicateImageRenderer | None = None,
        repairer: PromptRepairer | None = None,
        store: ResultStore | None = None,
        inter_request_delay: float = INTER_REQUEST_DELAY_SECONDS,
        sleep: Callable[[float], None] | None = None,
        batch_id_factory: Callable[[], str] = default_batch_id,
    ) -> None:
        # Missing collaborators are built on first use so history commands need no credentials.
        self._analyzer = analyzer
        self._renderer = renderer
        self._repairer = repairer
        self._store = store if store is not None else ResultStore()
        self._inter_request_delay = inter_request_delay
        self._sleep = sleep
        self._batch_id_factory = batch_id_factory

        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._progress = BatchProgress()
        self._listeners: list[ProgressCallback] = []
        self._current_batch: list[GenerationResult] = []
        self._live_batch_id: str | None = None
        self._retrying: set[str] = set()
        # Ids deleted while their retry was rendering; the retry must not write them back.
        self._deleted_while_retrying: set[str] = set()

    @property
    def progress(self) -> BatchProgress:
        return self._progress

    @property
    def store(self) -> ResultStore:
        return self._store

    @property
    def analyzer(self) -> SceneAnalyzer:
        with self._lock:
            if self._analyzer is None:
                self._analyzer = SceneAnalyzer()
            return self._analyzer

    @property
    def renderer(self) -> ReplicateImageRenderer:
        with self._lock:
            if self._renderer is None:
                self._renderer = ReplicateImageRenderer()
            return self._renderer

    @property
    def repairer(self) -> PromptRepairer:
        with self._lock:
            if self._repairer is None:
                self._repairer = PromptRepairer()
            return self._repairer

    @property
    def current_batch(self) -> list[GenerationResult]:
        """The live batch view, in scene order."""
        with self._lock:
            return list(self._current_batch)

    def is_retrying(self, result_id: str) -> bool:
        with self._lock:
            return result_id in self._retrying

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """
        Register a listener for every progress update. Returns a function that unsubscribes it.
        """
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def start_generation(
        self,
        script_text: str,
        aspect_ratio: AspectRatio | str = DEFAULT_ASPECT_RATIO,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> list[GenerationResult]:
        """Run a whole batch and return its results in scene order."""
        return list(
            self.iter_generation(script_text, aspect_ratio, progress_callback=progress_callback)
        )

    def iter_generation(
        self,
        script_text: str,
        aspect_ratio: AspectRatio | str = DEFAULT_ASPECT_RATIO,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> Iterator[GenerationResult]:
        """
        Analyze ``script_text`` and yield one result per scene as soon as it is rendered.

        Blank scripts are ignored, as is a start request while another batch is running.
        Render failures become failed results (with a repair suggestion when one is
        available) and never stop the batch. Successful results are added to the store.
        """
        if not script_text or not script_text.strip():
            logger.debug("Ignoring generation request for an empty script.")
            return

        ratio = AspectRatio(aspect_ratio)
        with self._lock:
            if self._progress.phase.is_running:
                logger.warning("A batch is already in progress; ignoring the new request.")
                return
            self._cancel_event.clear()
            self._progress = BatchProgress(phase=Phase.ANALYZING)

        batch_id = self._batch_id_factory()
        logger.info("Starting batch %s (%s).", batch_id, ratio.value)
        self._publish(
            BatchProgress(
                phase=Phase.ANALYZING,
                message="Analyzing the script and splitting it into scenes...",
            ),
            progress_callback,
        )

        try:
            scenes = self._analyze(script_text)
            total = len(scenes)

            with self._lock:
                self._current_batch = []
                self._live_batch_id = batch_id
            self._publish(
                BatchProgress(
                    phase=Phase.GENERATING,
                    current_index=0,
                    total_count=total,
                    message=f"Ready to generate {total} scene(s).",
                ),
                progress_callback,
            )

            for position, scene in enumerate(scenes):
                if position > 0:
                    self._wait(self._inter_request_delay)
                if self._cancel_event.is_set():
                    logger.info("Batch %s cancelled after %d of %d scene(s).", batch_id, position, total)
                    self._publish(
                        BatchProgress(
                            phase=Phase.CANCELLED,
                            current_index=position,
                            total_count=total,
                            message=f"Cancelled after {position} of {total} scene(s).",
                        ),
                        progress_callback,
                    )
                    return

                self._publish(
                    BatchProgress(
                        phase=Phase.GENERATING,
                        current_index=position + 1,
                        total_count=total,
                        message=f"Drawing scene {position + 1} / {total}... ({scene.summary})",
                    ),
                    progress_callback,
                )

                result = self._generate_scene(
                    batch_id=batch_id,
                    script_text=script_text,
                    scene=scene,
                    aspect_ratio=ratio,
                )
                with self._lock:
                    if self._live_batch_id == batch_id:
                        self._current_batch.append(result)
                if result.succeeded:
                    self._store.add(result)
                yield result
        except GeneratorExit:
            # The consumer stopped iterating; the batch must not stay "running".
            self._publish(
                BatchProgress(phase=Phase.CANCELLED, message="Generation stopped by the caller."),
                progress_callback,
            )
            raise
        except Exception as exc:
            logger.exception("Batch %s aborted.", batch_id)
            self._publish(
                BatchProgress(phase=Phase.ERROR, message=str(exc) or "An unknown error occurred."),
                progress_callback,
            )
            return

        logger.info("Batch %s finished: %d scene(s) attempted.", batch_id, total)
        self._publish(
            BatchProgress(
                phase=Phase.SUCCESS,
                current_index=total,
                total_count=total,
                message=f"Generated {total} scene(s).",
            ),
            progress_callback,
        )

    def cancel(self) -> bool:
        """
        Ask the running batch to stop before its next scene. Returns ``False`` when idle.
        """
        with self._lock:
            running = self._progress.phase.is_running
        if running:
            self._cancel_event.set()
        return running

    def retry(self, result_id: str, *, use_suggested_prompt: bool = False) -> GenerationResult | None:
        """
        Render a result again and update it in place.

        Uses the pending suggestion when ``use_suggested_prompt`` is set and one exists,
        otherwise the prompt of the last attempt. Returns the updated result, or ``None``
        when a retry for the same id is already running or the record was deleted while
        rendering.

        Raises
        ------
        KeyError
            The id is neither in the live batch view nor in the store.
        RenderError
            The render failed; the record is left unchanged and may be retried again.
        """
        with self._lock:
            if result_id in self._retrying:
                logger.info("Retry for %s already in flight; ignoring.", result_id)
                return None
            result = self._find(result_id)
            if result is None:
                raise KeyError(result_id)
            self._retrying.add(result_id)

        try:
            prompt = (
                result.suggested_prompt
                if use_suggested_prompt and result.suggested_prompt
                else result.refined_prompt
            )
            try:
                image = self.renderer.render(prompt, result.aspect_ratio)
            except RenderError:
                logger.warning("Retry of %s failed.", result_id, exc_info=True)
                raise

            with self._lock:
                if result_id in self._deleted_while_retrying:
                    logger.info("%s was deleted during its retry; discarding the new image.", result_id)
                    return None
                result.mark_success(prompt=prompt, image_data=image.to_data_uri())
                self._current_batch = [
                    result if item.id == result_id else item for item in self._current_batch
                ]
                self._store.add(result)
            logger.info("Retry of %s succeeded.", result_id)
            return result
        finally:
            with self._lock:
                self._retrying.discard(result_id)
                self._deleted_while_retrying.discard(result_id)

    def delete(self, result_id: str) -> bool:
        """
        Remove a result from the live view and the store. Unknown ids are ignored.

        Returns whether anything was removed. A retry still rendering for the id is
        discarded when it completes.
        """
        with self._lock:
            remaining = [item for item in self._current_batch if item.id != result_id]
            removed = len(remaining) != len(self._current_batch)
            self._current_batch = remaining
            if result_id in self._retrying:
                self._deleted_while_retrying.add(result_id)
            removed = self._store.remove(result_id) or removed
        return removed

    def select_batch(self, result_id: str) -> list[GenerationResult]:
        """
        Show the stored batch that ``result_id`` belongs to, in scene order.
        """
        selected = self._store.get(result_id)
        if selected is None:
            logger.info("No stored result %s to select.", result_id)
            return []

        siblings = self._store.batch(selected.batch_id)
        with self._lock:
            self._current_batch = list(siblings)
            self._live_batch_id = selected.batch_id
        return list(siblings)

    def _analyze(self, script_text: str) -> list[SceneDescriptor]:
        try:
            scenes = list(self.analyzer.analyze(script_text))
        except AnalysisError:
            logger.warning("Scene analysis failed; treating the whole script as one scene.", exc_info=True)
            return fallback_scenes(script_text)

        if not scenes:
            logger.warning("Scene analysis returned no scenes; treating the whole script as one scene.")
            return fallback_scenes(script_text)
        return scenes

    def _generate_scene(
        self,
        *,
        batch_id: str,
        script_text: str,
        scene: SceneDescriptor,
        aspect_ratio: AspectRatio,
    ) -> GenerationResult:
        result_id = make_result_id(batch_id, scene.index)
        try:
            image = self.renderer.render(scene.image_prompt, aspect_ratio)
        except RenderError as exc:
            logger.warning("Scene %d of batch %s failed to render: %s", scene.index, batch_id, exc)
            return GenerationResult(
                id=result_id,
                batch_id=batch_id,
                original_input=script_text,
                refined_prompt=scene.image_prompt,
                suggested_prompt=self._suggest_fix(scene.image_prompt),
                scene_summary=scene.summary or None,
                aspect_ratio=aspect_ratio,
                status=ResultStatus.FAILED,
            )

        return GenerationResult(
            id=result_id,
            batch_id=batch_id,
            original_input=script_text,
            refined_prompt=scene.image_prompt,
            scene_summary=scene.summary or None,
            image_data=image.to_data_uri(),
            aspect_ratio=aspect_ratio,
            status=ResultStatus.SUCCESS,
        )

    def _suggest_fix(self, prompt: str) -> str | None:
        try:
            suggestion = self.repairer.repair(prompt)
        except RepairError:
            logger.exception("Could not generate a prompt fix.")
            return None
        if not suggestion or suggestion == prompt:
            return None
        return suggestion

    def _find(self, result_id: str) -> GenerationResult | None:
        for item in self._current_batch:
            if item.id == result_id:
                return item
        return self._store.get(result_id)

    def _wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        if self._sleep is not None:
            self._sleep(seconds)
        else:
            self._cancel_event.wait(seconds)

    def _publish(self, progress: BatchProgress, callback: ProgressCallback | None) -> None:
        with self._lock:
            self._progress = progress
            listeners = list(self._listeners)
        if callback is not None:
            listeners.append(callback)
        for listener in listeners:
            listener(progress)
