"""Shared data model for the MaxVue enhancement pipeline: settings, analysis results, strategies, metrics and processing results."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import numpy as np
from PIL import Image

from maxvue.utils.exceptions import InvalidSettingsError, InvalidSourceError

if TYPE_CHECKING:
    from maxvue.processing.filters import FilterDescriptor

# Diopter range accepted for reading vision and calibration.
MIN_DIOPTERS = 0.0
MAX_DIOPTERS = 3.5


class TextRegionType(Enum):
    """Kind of text block found by region analysis."""
    HEADING = "heading"
    BODY_TEXT = "body-text"
    SMALL_TEXT = "small-text"
    LABEL = "label"
    UI_ELEMENT = "ui-element"


class ContentType(Enum):
    """Primary content classification of a frame."""
    ARTICLE = "article"
    EMAIL = "email"
    UI_INTERFACE = "ui-interface"
    DOCUMENT = "document"
    MIXED = "mixed"


class BackgroundType(Enum):
    LIGHT = "light"
    DARK = "dark"
    MIXED = "mixed"


class ProcessingPriority(Enum):
    SPEED = "speed"
    QUALITY = "quality"
    BALANCED = "balanced"


class ErrorKind(Enum):
    """Error taxonomy carried by ProcessingResult.error."""
    ANALYSIS_TIMEOUT = "analysis_timeout"
    GPU_INIT_FAILURE = "gpu_init_failure"
    GPU_RENDER_FAILURE = "gpu_render_failure"
    SOURCE_UNREADABLE = "source_unreadable"
    INVALID_SOURCE = "invalid_source"
    INVALID_SETTINGS = "invalid_settings"


class ElementProcessingState(Enum):
    """Per-element processing marker owned by the coordinator."""
    UNPROCESSED = "unprocessed"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


@dataclass(frozen=True)
class CorrectionSettings:
    """
    User correction settings for one processing pass.

    Frozen so a value can be compared against the previous one to detect a
    new settings generation.

    Arguments:
        reading_vision: Requested reading correction in diopters (0.0-3.5)
        calibration: User's calibrated diopter value (0.0-3.5)
        contrast_boost: Contrast boost percentage (0-100)
        edge_enhancement: Edge enhancement percentage (0-100)
        enabled: Whether correction is applied at all
        use_gpu: Whether the GPU shader path may be used
    """
    reading_vision: float = 0.0
    calibration: float = 0.0
    contrast_boost: int = 0
    edge_enhancement: int = 0
    enabled: bool = True
    use_gpu: bool = True

    def validate(self) -> None:
        """Raise InvalidSettingsError if any field is NaN or out of range."""
        for name in ('reading_vision', 'calibration'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or math.isnan(value):
                raise InvalidSettingsError(f"{name} must be a number, got {value!r}")
            if not (MIN_DIOPTERS <= value <= MAX_DIOPTERS):
                raise InvalidSettingsError(
                    f"{name} must be in [{MIN_DIOPTERS}, {MAX_DIOPTERS}], got {value}"
                )
        for name in ('contrast_boost', 'edge_enhancement'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or math.isnan(value):
                raise InvalidSettingsError(f"{name} must be a number, got {value!r}")
            if not (0 <= value <= 100):
                raise InvalidSettingsError(f"{name} must be in [0, 100], got {value}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'reading_vision': self.reading_vision,
            'calibration': self.calibration,
            'contrast_boost': self.contrast_boost,
            'edge_enhancement': self.edge_enhancement,
            'enabled': self.enabled,
            'use_gpu': self.use_gpu,
        }


@dataclass
class PixelBuffer:
    """
    RGBA pixel buffer, the unit of data passed between sources, analyzer and renderer.

    data is a uint8 array shaped [H, W, 4].
    """
    data: np.ndarray

    def __post_init__(self):
        if not isinstance(self.data, np.ndarray):
            raise InvalidSourceError(f"Pixel data must be a numpy array, got {type(self.data).__name__}")
        if self.data.ndim != 3 or self.data.shape[2] != 4:
            raise InvalidSourceError(f"Expected [H, W, 4] RGBA data, got shape {self.data.shape}")
        if self.data.dtype != np.uint8:
            self.data = np.clip(self.data, 0, 255).astype(np.uint8)

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'PixelBuffer':
        """
        Build a buffer from a grayscale [H, W], RGB [H, W, 3] or RGBA [H, W, 4] array.

        Float arrays are assumed to be in [0, 1].
        """
        array = np.asarray(array)
        if np.issubdtype(array.dtype, np.floating):
            array = np.clip(np.rint(array * 255.0), 0, 255).astype(np.uint8)
        elif array.dtype != np.uint8:
            array = np.clip(array, 0, 255).astype(np.uint8)

        if array.ndim == 2:
            array = np.stack([array, array, array], axis=-1)
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise InvalidSourceError(f"Unsupported pixel array shape {array.shape}")
        if array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
            array = np.concatenate([array, alpha], axis=-1)
        return cls(np.ascontiguousarray(array))

    @classmethod
    def from_image(cls, image: Image.Image) -> 'PixelBuffer':
        """Build a buffer from a PIL image (converted to RGBA)."""
        return cls(np.array(image.convert('RGBA'), dtype=np.uint8))

    @classmethod
    def blank(cls, width: int, height: int, value: int = 255) -> 'PixelBuffer':
        data = np.full((height, width, 4), value, dtype=np.uint8)
        data[..., 3] = 255
        return cls(data)

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.data, mode='RGBA')

    def luminance(self) -> np.ndarray:
        """Per-pixel mean of R, G, B as float32 in [0, 255]."""
        return self.data[..., :3].astype(np.float32).mean(axis=-1)

    def copy(self) -> 'PixelBuffer':
        return PixelBuffer(self.data.copy())


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in pixel coordinates."""
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height > 0 else 0.0


@dataclass(frozen=True)
class TextRegion:
    """Text block produced by one analysis pass. Read-only once produced."""
    bounds: Rect
    confidence: float
    text_density: float
    estimated_font_size: float
    edge_intensity: float
    region_type: TextRegionType = TextRegionType.BODY_TEXT


@dataclass
class EnhancementMap:
    """Per-cell enhancement recommendations derived from the contrast grid."""
    strength_grid: np.ndarray
    diopter_adjustment_grid: np.ndarray
    priority_regions: List[Rect] = field(default_factory=list)


@dataclass
class ContrastMap:
    """Grid of local contrast values (0-1 normalized for RMS) with grid-wide statistics."""
    contrast_grid: np.ndarray
    grid_width: int
    grid_height: int
    cell_size: int
    mean_contrast: float
    min_contrast: float
    max_contrast: float
    enhancement_map: EnhancementMap


@dataclass
class ContentCharacteristics:
    """Measured layout and color properties used for classification."""
    text_density: float
    line_spacing: float
    column_count: int
    background_type: BackgroundType
    color_variance: float
    has_headers: bool
    has_sidebars: bool
    has_buttons: bool
    font_size_variance: float
    average_font_size: float


@dataclass(frozen=True)
class RegionAdjustment:
    """Localized tuning for a priority (low-contrast) area of the frame."""
    region: Rect
    diopter_adjustment: float
    contrast_multiplier: float
    priority: float


@dataclass
class ProcessingStrategy:
    """
    Content-derived tuning passed from the analyzer to the renderer.

    contrast_boost and edge_enhancement are multipliers applied to the user's
    percentage settings.
    """
    contrast_boost: float = 1.0
    edge_enhancement: float = 1.0
    region_adjustments: List[RegionAdjustment] = field(default_factory=list)
    processing_priority: ProcessingPriority = ProcessingPriority.BALANCED
    use_gpu: bool = True


@dataclass
class ContentClassification:
    primary_type: ContentType
    confidence: float
    characteristics: ContentCharacteristics
    processing_strategy: ProcessingStrategy


@dataclass
class ContentAnalysisResult:
    """Combined output of one ContentAnalyzer pass."""
    text_regions: List[TextRegion]
    contrast_map: ContrastMap
    content_classification: ContentClassification
    processing_time_ms: float
    canvas_size: Tuple[int, int]
    pixel_density: float = 1.0
    timestamp: float = 0.0
    is_fallback: bool = False
    timed_out: bool = False

    @property
    def processing_strategy(self) -> ProcessingStrategy:
        return self.content_classification.processing_strategy


@dataclass
class CacheStats:
    hit_rate: float = 0.0
    miss_rate: float = 0.0
    total_requests: int = 0
    cache_size: int = 0


@dataclass
class PerformanceMetrics:
    """Per-call render metrics. Recomputed on every processing call."""
    fps: float = 0.0
    processing_time_ms: float = 0.0
    memory_usage_mb: float = 0.0
    battery_impact_pct: float = 0.0
    fallback_triggered: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fps': self.fps,
            'processing_time_ms': self.processing_time_ms,
            'memory_usage_mb': self.memory_usage_mb,
            'battery_impact_pct': self.battery_impact_pct,
            'fallback_triggered': self.fallback_triggered,
        }


@dataclass
class ProcessingResult:
    """
    Outcome of a render or coordinator call. The pipeline keeps no reference after returning it.

    Exactly one of output_buffer / filter_descriptor is set on a successful
    enhancement; both are None for no-op results.
    """
    success: bool
    output_buffer: Optional[PixelBuffer] = None
    used_fallback: bool = False
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    error: Optional[ErrorKind] = None
    filter_descriptor: Optional['FilterDescriptor'] = None
    analysis: Optional[ContentAnalysisResult] = None
    skipped: bool = False
