"""
Processing coordinator: the single entry point external collaborators call.

Owns the per-element state table and settings generations, checks source
readability up front, and runs analyzer -> renderer for fresh elements.
process() never raises; every failure is turned into a fallback result.

State per element (keyed by element id, stored out of band):
    unprocessed -> processing -> processed | error
A new settings value starts a new generation and invalidates every
processed element.
"""

import dataclasses
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from maxvue.analysis.content_analyzer import ContentAnalyzer
from maxvue.config import Config
from maxvue.correction.correction_model import intensity
from maxvue.processing.filters import FilterDescriptor
from maxvue.processing.sources import BufferSource, OriginPolicy, VisualElement, VisualSource
from maxvue.rendering.gpu_renderer import GPURenderer, RendererState
from maxvue.types import (
    CorrectionSettings,
    ElementProcessingState,
    ErrorKind,
    PerformanceMetrics,
    ProcessingResult,
)
from maxvue.utils.exceptions import InvalidSettingsError, InvalidSourceError, SourceUnreadableError
from maxvue.utils.monitoring import ProcessingLog, ProcessingMonitor

logger = logging.getLogger(__name__)


@dataclass
class ElementRecord:
    state: ElementProcessingState
    generation: int


def _elapsed_metrics(start: float, fallback: bool) -> PerformanceMetrics:
    elapsed = (time.perf_counter() - start) * 1000
    return PerformanceMetrics(
        fps=1000.0 / elapsed if elapsed > 0 else 0.0,
        processing_time_ms=elapsed,
        fallback_triggered=fallback,
    )


class ProcessingCoordinator:
    """
    Caller-owned coordinator wiring ContentAnalyzer and GPURenderer together.

    Collaborators may be injected; otherwise they are built from config.
    Call dispose() when finished.

    Arguments:
        config: Full pipeline configuration
        analyzer: ContentAnalyzer instance to use
        renderer: GPURenderer instance to use
        origin_policy: Readability policy for sources
        monitor: ProcessingMonitor receiving every pipeline result
    """

    def __init__(self,
                 config: Optional[Config] = None,
                 analyzer: Optional[ContentAnalyzer] = None,
                 renderer: Optional[GPURenderer] = None,
                 origin_policy: Optional[OriginPolicy] = None,
                 monitor: Optional[ProcessingMonitor] = None):
        self.config = config or Config()
        self.analyzer = analyzer or ContentAnalyzer(self.config.analyzer)
        self.renderer = renderer or GPURenderer(config=self.config.renderer)
        self.origin_policy = origin_policy or OriginPolicy(self.config.origin_policy)
        self.monitor = monitor or ProcessingMonitor(
            window_size=self.config.monitoring.window_size,
            latency_threshold_ms=self.config.monitoring.latency_threshold_ms,
            fallback_rate_threshold=self.config.monitoring.fallback_rate_threshold,
        )

        self._records: Dict[str, ElementRecord] = {}
        self._settings: Optional[CorrectionSettings] = None
        self._generation = 0
        self._lock = threading.Lock()
        self._init_lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def initialize(self) -> bool:
        """Initialize the renderer if it has not been yet. Returns True when the GPU path is ready."""
        with self._init_lock:
            if self.renderer.state == RendererState.UNINITIALIZED:
                self.renderer.initialize()
            return self.renderer.state == RendererState.GPU_READY

    def process(self, element: VisualElement, settings: CorrectionSettings) -> ProcessingResult:
        """
        Enhance one element at most once per settings generation.

        Arguments:
            element: Target with a stable id and a visual source
            settings: Correction settings for this pass

        Returns:
            ProcessingResult. skipped=True when the element was already
            processing or processed for these settings.
        """
        start = time.perf_counter()
        if not isinstance(element, VisualElement) or not isinstance(element.element_id, str):
            logger.warning(f"Rejecting invalid element: {element!r}")
            result = ProcessingResult(success=False, error=ErrorKind.INVALID_SOURCE,
                                      metrics=_elapsed_metrics(start, fallback=False))
            self._record(None, result)
            return result

        try:
            settings.validate()
        except (InvalidSettingsError, AttributeError, TypeError) as e:
            logger.warning(f"Rejecting malformed settings for {getattr(element, 'element_id', None)}: {e}")
            result = ProcessingResult(success=False, error=ErrorKind.INVALID_SETTINGS,
                                      metrics=_elapsed_metrics(start, fallback=False))
            self._record(getattr(element, 'element_id', None), result)
            return result

        if not settings.enabled:
            return self._pass_through(element.source, start)

        element_id = element.element_id
        with self._lock:
            generation = self._apply_settings_locked(settings)
            record = self._records.get(element_id)
            if record is not None and record.generation == generation and record.state in (
                    ElementProcessingState.PROCESSING, ElementProcessingState.PROCESSED):
                logger.debug(f"Skipping {element_id}: already {record.state.value} in generation {generation}")
                return ProcessingResult(success=True, skipped=True, metrics=_elapsed_metrics(start, fallback=False))
            self._records[element_id] = ElementRecord(ElementProcessingState.PROCESSING, generation)

        final_state = ElementProcessingState.ERROR
        try:
            result = self._run_pipeline(element.source, settings, start)
            if result.success and result.error != ErrorKind.INVALID_SOURCE:
                final_state = ElementProcessingState.PROCESSED
        except Exception as e:
            logger.error(f"Pipeline failed for {element_id}, using filter-only fallback: {e}")
            result = self._filter_only(settings, start, error=None)
        finally:
            with self._lock:
                current = self._records.get(element_id)
                if current is not None and current.generation == generation:
                    current.state = final_state

        self._record(element_id, result)
        return result

    def _run_pipeline(self, source: VisualSource, settings: CorrectionSettings,
                      start: float) -> ProcessingResult:
        if source is None or source.is_empty:
            logger.warning(f"Invalid source ({getattr(source, 'width', 0)}x{getattr(source, 'height', 0)}); skipping")
            return ProcessingResult(success=True, error=ErrorKind.INVALID_SOURCE,
                                    metrics=_elapsed_metrics(start, fallback=False))

        if not self.origin_policy.can_read_pixels(source):
            logger.info(f"{source.describe()} is not readable; applying filter-only enhancement")
            return self._filter_only(settings, start)

        try:
            pixels = source.read_pixels()
        except SourceUnreadableError as e:
            logger.warning(f"Pixel read refused: {e}; applying filter-only enhancement")
            return self._filter_only(settings, start)
        except InvalidSourceError as e:
            logger.warning(f"Invalid source: {e}; skipping")
            return ProcessingResult(success=True, error=ErrorKind.INVALID_SOURCE,
                                    metrics=_elapsed_metrics(start, fallback=False))

        if settings.use_gpu:
            self.initialize()

        analysis = self.analyzer.analyze(pixels, correction_intensity=intensity(settings))
        if analysis.is_fallback:
            logger.info("Content analysis fell back to the conservative strategy")

        strategy = analysis.processing_strategy
        if not settings.use_gpu:
            strategy = dataclasses.replace(strategy, use_gpu=False)

        result = self.renderer.process_image(BufferSource(buffer=pixels), strategy, settings)
        result.analysis = analysis
        if result.error is None:
            if analysis.timed_out:
                result.error = ErrorKind.ANALYSIS_TIMEOUT
            elif settings.use_gpu and self.renderer.state == RendererState.FALLBACK:
                result.error = ErrorKind.GPU_INIT_FAILURE
        return result

    def _filter_only(self, settings: CorrectionSettings, start: float,
                     error: Optional[ErrorKind] = ErrorKind.SOURCE_UNREADABLE) -> ProcessingResult:
        descriptor = FilterDescriptor.from_settings(settings)
        logger.debug(f"Filter-only enhancement: {descriptor.to_css()}")
        return ProcessingResult(
            success=True,
            used_fallback=True,
            metrics=_elapsed_metrics(start, fallback=True),
            error=error,
            filter_descriptor=descriptor,
        )

    def _pass_through(self, source: VisualSource, start: float) -> ProcessingResult:
        """Disabled settings: hand back the source pixels untouched when readable."""
        output = None
        try:
            if source is not None and not source.is_empty and self.origin_policy.can_read_pixels(source):
                output = source.read_pixels()
        except (SourceUnreadableError, InvalidSourceError) as e:
            logger.debug(f"Pass-through without pixels: {e}")
        return ProcessingResult(success=True, output_buffer=output, metrics=_elapsed_metrics(start, fallback=False))

    def _apply_settings_locked(self, settings: CorrectionSettings) -> int:
        if settings != self._settings:
            self._settings = settings
            self._generation += 1
            invalidated = 0
            for record in self._records.values():
                if record.state != ElementProcessingState.PROCESSING:
                    record.state = ElementProcessingState.UNPROCESSED
                    invalidated += 1
            logger.info(f"Settings generation {self._generation}: invalidated {invalidated} element(s)")
        return self._generation

    def _record(self, element_id: Optional[str], result: ProcessingResult) -> None:
        self.monitor.log_processing(ProcessingLog(
            timestamp=datetime.now(),
            element_id=element_id,
            processing_time_ms=result.metrics.processing_time_ms,
            fps=result.metrics.fps,
            used_fallback=result.used_fallback,
            success=result.success,
            error=result.error.value if result.error else None,
        ))

    def update_settings(self, settings: CorrectionSettings) -> bool:
        """
        Adopt new settings ahead of the next process() call.

        Returns False (and keeps the current generation) if settings are malformed.
        """
        try:
            settings.validate()
        except InvalidSettingsError as e:
            logger.warning(f"Ignoring malformed settings: {e}")
            return False
        with self._lock:
            self._apply_settings_locked(settings)
        return True

    def get_state(self, element_id: str) -> ElementProcessingState:
        with self._lock:
            record = self._records.get(element_id)
            if record is None:
                return ElementProcessingState.UNPROCESSED
            if record.generation != self._generation and record.state != ElementProcessingState.PROCESSING:
                return ElementProcessingState.UNPROCESSED
            return record.state

    def clear_processing_state(self, element_ids: Optional[Iterable[str]] = None) -> int:
        """
        Forget element state so the next call reprocesses.

        Elements currently processing are left alone. Returns the number cleared.
        """
        with self._lock:
            targets = list(self._records) if element_ids is None else list(element_ids)
            cleared = 0
            for element_id in targets:
                record = self._records.get(element_id)
                if record is not None and record.state != ElementProcessingState.PROCESSING:
                    del self._records[element_id]
                    cleared += 1
        logger.debug(f"Cleared processing state for {cleared} element(s)")
        return cleared

    def process_many(self, elements: List[VisualElement],
                     settings: CorrectionSettings) -> List[ProcessingResult]:
        """Process independent elements in parallel. Results follow input order."""
        if not elements:
            return []
        workers = min(len(elements), self.config.analyzer.performance.max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='maxvue-process') as executor:
            return list(executor.map(lambda el: self.process(el, settings), elements))

    def get_metrics_summary(self) -> Dict[str, Any]:
        with self._lock:
            counts: Dict[str, int] = {s.value: 0 for s in ElementProcessingState}
            for record in self._records.values():
                state = record.state
                if record.generation != self._generation and state != ElementProcessingState.PROCESSING:
                    state = ElementProcessingState.UNPROCESSED
                counts[state.value] += 1
            generation = self._generation

        return {
            'generation': generation,
            'elements': counts,
            'renderer_state': self.renderer.state.value,
            'renderer_metrics': self.renderer.get_performance_metrics().to_dict(),
            'analyzer': self.analyzer.get_summary(),
            'processing': self.monitor.get_summary(),
        }

    def dispose(self) -> None:
        """Release renderer resources and the analyzer pool, and drop all element state."""
        self.renderer.dispose()
        self.analyzer.shutdown()
        with self._lock:
            self._records.clear()
        logger.info("ProcessingCoordinator disposed")
