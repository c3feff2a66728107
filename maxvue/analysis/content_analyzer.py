"""
Content analyzer for adaptive enhancement.

Runs edge/region detection, contrast analysis and content classification over
a pixel buffer and combines them into a ContentAnalysisResult carrying the
processing strategy for the renderer. The three stages are independent given
the same buffer and run on a small thread pool, raced against the configured
time budget.

analyze() never raises: on timeout or any internal failure it returns a
conservative full-frame `mixed` result so callers always have a strategy.
"""

import copy
import dataclasses
import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Dict, List, Optional

import numpy as np

from maxvue.analysis.classification import classify_content
from maxvue.analysis.contrast import analyze_contrast
from maxvue.analysis.edges import detect_edges as _detect_edges, detect_text_regions
from maxvue.config import AnalyzerConfig
from maxvue.types import (
    BackgroundType,
    CacheStats,
    ContentAnalysisResult,
    ContentCharacteristics,
    ContentClassification,
    ContentType,
    ContrastMap,
    EnhancementMap,
    PixelBuffer,
    ProcessingPriority,
    ProcessingStrategy,
    Rect,
    RegionAdjustment,
    TextRegion,
    TextRegionType,
)
from maxvue.utils.error_handling import with_fallback
from maxvue.utils.exceptions import AnalysisTimeoutError, InvalidSourceError

logger = logging.getLogger(__name__)

# Number of pixel bytes sampled for the cache key.
CACHE_KEY_SAMPLES = 100


def generate_cache_key(pixels: PixelBuffer) -> str:
    """Cheap content key: dimensions plus a rolling hash over ~100 sampled bytes."""
    flat = pixels.data.reshape(-1)
    step = max(1, flat.size // CACHE_KEY_SAMPLES)
    hash_value = 0
    for byte in flat[::step].tolist():
        hash_value = ((hash_value << 5) - hash_value + byte) & 0xffffffff
    return f"{pixels.width}x{pixels.height}_{hash_value}"


def create_fallback_result(pixels: Any, processing_time_ms: float = 0.0,
                           pixel_density: float = 1.0, timed_out: bool = False) -> ContentAnalysisResult:
    """
    Conservative result used when analysis cannot complete.

    One full-frame body-text region, mid-range contrast and a `mixed`
    classification with a balanced strategy.
    """
    width = int(getattr(pixels, 'width', 0) or 0)
    height = int(getattr(pixels, 'height', 0) or 0)

    region = TextRegion(
        bounds=Rect(0, 0, width, height),
        confidence=0.5,
        text_density=0.3,
        estimated_font_size=14.0,
        edge_intensity=0.2,
        region_type=TextRegionType.BODY_TEXT,
    )
    contrast_map = ContrastMap(
        contrast_grid=np.array([[0.5]]),
        grid_width=1,
        grid_height=1,
        cell_size=max(width, height),
        mean_contrast=0.5,
        min_contrast=0.5,
        max_contrast=0.5,
        enhancement_map=EnhancementMap(
            strength_grid=np.array([[0.5]]),
            diopter_adjustment_grid=np.array([[0.25]]),
            priority_regions=[],
        ),
    )
    characteristics = ContentCharacteristics(
        text_density=0.3,
        line_spacing=16.0,
        column_count=1,
        background_type=BackgroundType.LIGHT,
        color_variance=0.1,
        has_headers=False,
        has_sidebars=False,
        has_buttons=False,
        font_size_variance=0.1,
        average_font_size=14.0,
    )
    classification = ContentClassification(
        primary_type=ContentType.MIXED,
        confidence=0.5,
        characteristics=characteristics,
        processing_strategy=ProcessingStrategy(
            contrast_boost=1.1,
            edge_enhancement=1.1,
            region_adjustments=[],
            processing_priority=ProcessingPriority.BALANCED,
            use_gpu=True,
        ),
    )
    return ContentAnalysisResult(
        text_regions=[region],
        contrast_map=contrast_map,
        content_classification=classification,
        processing_time_ms=processing_time_ms,
        canvas_size=(width, height),
        pixel_density=pixel_density,
        timestamp=time.time(),
        is_fallback=True,
        timed_out=timed_out,
    )


def build_region_adjustments(enhancement_map: EnhancementMap, cell_size: int,
                             correction_intensity: Optional[float] = None,
                             threshold: float = 0.7) -> List[RegionAdjustment]:
    """
    One adjustment per priority cell of the enhancement map.

    The contrast multiplier grows with cell strength, scaled by the correction
    intensity (capped at 1.0) when one is supplied.
    """
    scale = 1.0 if correction_intensity is None else min(1.0, max(0.0, correction_intensity))
    strength = enhancement_map.strength_grid
    diopters = enhancement_map.diopter_adjustment_grid

    adjustments = []
    for gy, gx in zip(*np.nonzero(strength > threshold)):
        cell_strength = float(strength[gy, gx])
        adjustments.append(RegionAdjustment(
            region=Rect(int(gx) * cell_size, int(gy) * cell_size, cell_size, cell_size),
            diopter_adjustment=float(diopters[gy, gx]),
            contrast_multiplier=1.0 + cell_strength * scale,
            priority=cell_strength,
        ))
    return adjustments


def _analysis_fallback(analyzer: 'ContentAnalyzer', pixels: Any,
                       correction_intensity: Optional[float] = None) -> ContentAnalysisResult:
    return create_fallback_result(pixels, pixel_density=analyzer.pixel_density)


class ContentAnalyzer:
    """
    Caller-owned content analyzer.

    Holds a bounded result cache keyed by content and a lazily created
    worker pool; call shutdown() when done.

    Arguments:
        config: Analyzer configuration (defaults if None)
        pixel_density: Device pixel ratio recorded on results
    """

    def __init__(self, config: Optional[AnalyzerConfig] = None, pixel_density: float = 1.0):
        self.config = config or AnalyzerConfig()
        self.pixel_density = pixel_density
        self._cache: 'OrderedDict[str, ContentAnalysisResult]' = OrderedDict()
        self._cache_stats = CacheStats()
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    @with_fallback(fallback_func=_analysis_fallback)
    def analyze(self, pixels: PixelBuffer,
                correction_intensity: Optional[float] = None) -> ContentAnalysisResult:
        """
        Analyze a frame.

        Arguments:
            pixels: RGBA frame
            correction_intensity: Optional CorrectionModel intensity used to
                scale region adjustments

        Returns:
            ContentAnalysisResult (fallback result on timeout or failure)
        """
        self._validate(pixels)
        start = time.perf_counter()

        key = None
        result = None
        if self.config.performance.enable_caching:
            key = generate_cache_key(pixels)
            result = self._get_from_cache(key)

        if result is None:
            try:
                result = self._perform_analysis(pixels, start)
            except AnalysisTimeoutError as e:
                logger.warning(f"{e}, using fallback")
                elapsed_ms = (time.perf_counter() - start) * 1000
                return create_fallback_result(pixels, elapsed_ms, self.pixel_density, timed_out=True)
            if key is not None:
                self._set_in_cache(key, result)
        else:
            logger.debug(f"Analysis cache hit for {key}")

        # Callers own what they get back; the cached entry stays untouched.
        return self._with_region_adjustments(copy.deepcopy(result), correction_intensity)

    def _perform_analysis(self, pixels: PixelBuffer, start: float) -> ContentAnalysisResult:
        perf = self.config.performance
        budget_s = perf.max_processing_time_ms / 1000.0

        stages = [
            (detect_text_regions, self.config.text_detection),
            (analyze_contrast, self.config.contrast_analysis),
            (classify_content, self.config.content_classification),
        ]

        if perf.use_parallel:
            executor = self._get_executor()
            futures = [executor.submit(func, pixels, cfg) for func, cfg in stages]
            done, not_done = wait(futures, timeout=budget_s)
            if not_done:
                # Running stages cannot be interrupted; retire the pool so the
                # next frame does not queue behind them.
                self._discard_executor(executor)
                raise AnalysisTimeoutError(
                    f"Analysis exceeded {perf.max_processing_time_ms:.0f}ms budget"
                )
            text_regions, contrast_map, classification = [f.result() for f in futures]
        else:
            outputs = []
            for func, cfg in stages:
                outputs.append(func(pixels, cfg))
                if time.perf_counter() - start > budget_s:
                    raise AnalysisTimeoutError(
                        f"Analysis exceeded {perf.max_processing_time_ms:.0f}ms budget"
                    )
            text_regions, contrast_map, classification = outputs

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"Analyzed {pixels.width}x{pixels.height} in {elapsed_ms:.1f}ms: "
            f"{len(text_regions)} regions, {classification.primary_type.value}"
        )
        return ContentAnalysisResult(
            text_regions=text_regions,
            contrast_map=contrast_map,
            content_classification=classification,
            processing_time_ms=elapsed_ms,
            canvas_size=(pixels.width, pixels.height),
            pixel_density=self.pixel_density,
            timestamp=time.time(),
        )

    def _with_region_adjustments(self, result: ContentAnalysisResult,
                                 correction_intensity: Optional[float]) -> ContentAnalysisResult:
        contrast = self.config.contrast_analysis
        adjustments = build_region_adjustments(
            result.contrast_map.enhancement_map,
            result.contrast_map.cell_size,
            correction_intensity,
            contrast.priority_threshold,
        )
        strategy = dataclasses.replace(result.processing_strategy, region_adjustments=adjustments)
        classification = dataclasses.replace(result.content_classification, processing_strategy=strategy)
        return dataclasses.replace(result, content_classification=classification)

    def _validate(self, pixels: PixelBuffer) -> None:
        if not isinstance(pixels, PixelBuffer):
            raise InvalidSourceError(f"Expected PixelBuffer, got {type(pixels).__name__}")
        if pixels.is_empty:
            raise InvalidSourceError(f"Invalid image data: {pixels.width}x{pixels.height}")

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.performance.max_workers,
                    thread_name_prefix='maxvue-analysis'
                )
            return self._executor

    def _discard_executor(self, executor: ThreadPoolExecutor) -> None:
        with self._lock:
            if self._executor is executor:
                self._executor = None
        executor.shutdown(wait=False, cancel_futures=True)
        logger.debug("Analysis pool retired after timeout")

    def _get_from_cache(self, key: str) -> Optional[ContentAnalysisResult]:
        with self._lock:
            stats = self._cache_stats
            stats.total_requests += 1
            n = stats.total_requests
            if key in self._cache:
                stats.hit_rate = (stats.hit_rate * (n - 1) + 1) / n
                stats.miss_rate = (stats.miss_rate * (n - 1)) / n
                return self._cache[key]
            stats.miss_rate = (stats.miss_rate * (n - 1) + 1) / n
            stats.hit_rate = (stats.hit_rate * (n - 1)) / n
            return None

    def _set_in_cache(self, key: str, result: ContentAnalysisResult) -> None:
        with self._lock:
            if key not in self._cache and len(self._cache) >= self.config.performance.max_cache_size:
                self._cache.popitem(last=False)
            self._cache[key] = result
            self._cache_stats.cache_size = len(self._cache)

    def detect_edges(self, pixels: PixelBuffer) -> np.ndarray:
        """Sobel edge field in [0, 1] for a frame."""
        self._validate(pixels)
        return _detect_edges(pixels)

    def get_cache_stats(self) -> CacheStats:
        with self._lock:
            return dataclasses.replace(self._cache_stats)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
            self._cache_stats = CacheStats()

    def get_config(self) -> AnalyzerConfig:
        return copy.deepcopy(self.config)

    def update_config(self, **sections: Any) -> None:
        """
        Update configuration sections.

        Each keyword names a section of AnalyzerConfig and takes either a
        replacement config object or a dict of field overrides. Cached results
        are dropped since they depend on the configuration.
        """
        valid = {f.name for f in dataclasses.fields(AnalyzerConfig)}
        updated = copy.deepcopy(self.config)
        for name, value in sections.items():
            if name not in valid:
                raise ValueError(f"Unknown analyzer config section: {name}")
            if isinstance(value, dict):
                value = dataclasses.replace(getattr(updated, name), **value)
            setattr(updated, name, value)

        resize_pool = updated.performance.max_workers != self.config.performance.max_workers
        self.config = updated
        self.clear_cache()
        if resize_pool:
            self.shutdown()
        logger.info(f"Analyzer config updated: {', '.join(sorted(sections))}")

    def shutdown(self) -> None:
        """Release the worker pool. The analyzer stays usable and recreates it on demand."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)

    def get_summary(self) -> Dict[str, Any]:
        stats = self.get_cache_stats()
        return {
            'cache_size': stats.cache_size,
            'hit_rate': stats.hit_rate,
            'miss_rate': stats.miss_rate,
            'total_requests': stats.total_requests,
            'max_processing_time_ms': self.config.performance.max_processing_time_ms,
        }
