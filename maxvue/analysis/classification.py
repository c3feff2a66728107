"""Content characteristics, content type classification and processing strategy."""

import logging
from typing import List, Tuple

import numpy as np
from scipy import ndimage  # type: ignore

from maxvue.config import ContentClassificationConfig
from maxvue.types import (
    BackgroundType,
    ContentCharacteristics,
    ContentClassification,
    ContentType,
    PixelBuffer,
    ProcessingPriority,
    ProcessingStrategy,
)
from maxvue.utils.performance import timed

logger = logging.getLogger(__name__)

# Luminance below this counts as a text pixel.
DARK_PIXEL_THRESHOLD = 128
LINE_PEAK_THRESHOLD = 0.1
DEFAULT_LINE_SPACING = 20.0
DEFAULT_FONT_SIZE = 14.0
DEFAULT_FONT_VARIANCE = 0.1

# Per-type (contrast multiplier, edge multiplier, priority).
STRATEGY_TABLE = {
    ContentType.ARTICLE: (1.3, 1.2, ProcessingPriority.QUALITY),
    ContentType.DOCUMENT: (1.3, 1.2, ProcessingPriority.QUALITY),
    ContentType.EMAIL: (1.2, 1.1, ProcessingPriority.BALANCED),
    ContentType.UI_INTERFACE: (1.1, 1.3, ProcessingPriority.SPEED),
    ContentType.MIXED: (1.1, 1.1, ProcessingPriority.BALANCED),
}
DARK_BACKGROUND_CONTRAST = 1.2


def horizontal_density(dark: np.ndarray) -> np.ndarray:
    """Fraction of dark pixels in each row."""
    return dark.mean(axis=1)


def estimate_line_spacing(density: np.ndarray) -> float:
    """Mean gap between text-line peaks in the row density profile."""
    if density.size < 3:
        return DEFAULT_LINE_SPACING
    inner = density[1:-1]
    is_peak = (inner > density[:-2]) & (inner > density[2:]) & (inner > LINE_PEAK_THRESHOLD)
    peaks = np.nonzero(is_peak)[0] + 1
    if len(peaks) < 2:
        return DEFAULT_LINE_SPACING
    return float(np.mean(np.diff(peaks)))


def _runs(active: np.ndarray) -> List[Tuple[int, int]]:
    """(start, stop) index pairs of consecutive True values."""
    padded = np.concatenate([[False], active, [False]]).astype(np.int8)
    changes = np.diff(padded)
    starts = np.nonzero(changes == 1)[0]
    stops = np.nonzero(changes == -1)[0]
    return list(zip(starts.tolist(), stops.tolist()))


def count_columns(dark: np.ndarray) -> int:
    """
    Count text columns from the vertical projection of dark pixels.

    Columns are runs of inked pixel columns separated by gutters at least
    5% of the frame width.
    """
    height, width = dark.shape
    active = dark.mean(axis=0) > 0.01
    runs = _runs(active)
    if not runs:
        return 1

    min_gutter = max(8, width // 20)
    columns = 1
    for (_, prev_stop), (start, _) in zip(runs, runs[1:]):
        if start - prev_stop >= min_gutter:
            columns += 1
    return columns


def detect_vertical_structures(dark: np.ndarray) -> bool:
    """True when dark-pixel density differs strongly between the left, center and right thirds."""
    width = dark.shape[1]
    left_third = width // 3
    right_third = (width * 2) // 3
    counts = [
        int(dark[:, :left_third].sum()),
        int(dark[:, left_third:right_third].sum()),
        int(dark[:, right_third:].sum()),
    ]
    max_density = max(counts)
    if max_density == 0:
        return False
    return (max_density - min(counts)) / max_density > 0.3


def detect_button_like_structures(luminance: np.ndarray) -> bool:
    """
    Look for solid filled rectangles that stand out from the background.

    A button candidate is a 4-connected blob differing from the median
    luminance by more than 40, filling at least 85% of its bounding box,
    12-80 px tall and 1.5-8 times wider than tall.
    """
    background = float(np.median(luminance))
    filled = np.abs(luminance - background) > 40
    labels, count = ndimage.label(filled)
    if count == 0:
        return False

    sizes = np.bincount(labels.ravel(), minlength=count + 1)
    for label, slices in enumerate(ndimage.find_objects(labels), start=1):
        if slices is None:
            continue
        rows, cols = slices
        h = rows.stop - rows.start
        w = cols.stop - cols.start
        if not (12 <= h <= 80):
            continue
        aspect = w / h
        if 1.5 <= aspect <= 8 and sizes[label] / (w * h) >= 0.85:
            return True
    return False


def estimate_line_fonts(density: np.ndarray) -> Tuple[float, float]:
    """
    Average font size and its coefficient of variation from text-line runs.

    Each run of inked rows is one text line; its height is taken as the font size.
    """
    heights = [stop - start for start, stop in _runs(density > 0.01)]
    if not heights:
        return DEFAULT_FONT_SIZE, DEFAULT_FONT_VARIANCE
    mean = float(np.mean(heights))
    return mean, float(np.std(heights) / mean)


def analyze_characteristics(pixels: PixelBuffer,
                            config: ContentClassificationConfig) -> ContentCharacteristics:
    luminance = pixels.luminance()
    height, width = luminance.shape
    dark = luminance < DARK_PIXEL_THRESHOLD
    text_density = float(dark.mean())

    if config.enable_color_analysis:
        mean = float(luminance.mean())
        variance = float(luminance.var()) / (255 * 255)
        if mean > 200:
            background = BackgroundType.LIGHT
        elif mean < 100:
            background = BackgroundType.DARK
        else:
            background = BackgroundType.MIXED
    else:
        background = BackgroundType.MIXED
        variance = 0.0

    if config.enable_layout_analysis:
        density = horizontal_density(dark)
        average_font, font_variance = estimate_line_fonts(density)
        return ContentCharacteristics(
            text_density=text_density,
            line_spacing=estimate_line_spacing(density),
            column_count=count_columns(dark),
            background_type=background,
            color_variance=variance,
            has_headers=bool(density[0] > density[len(density) // 2]),
            has_sidebars=width > height and detect_vertical_structures(dark),
            has_buttons=detect_button_like_structures(luminance),
            font_size_variance=font_variance,
            average_font_size=average_font,
        )

    return ContentCharacteristics(
        text_density=text_density,
        line_spacing=DEFAULT_LINE_SPACING,
        column_count=1,
        background_type=background,
        color_variance=variance,
        has_headers=False,
        has_sidebars=False,
        has_buttons=False,
        font_size_variance=DEFAULT_FONT_VARIANCE,
        average_font_size=DEFAULT_FONT_SIZE,
    )


def determine_content_type(characteristics: ContentCharacteristics,
                           config: ContentClassificationConfig) -> ContentType:
    density = characteristics.text_density
    if density > config.article_threshold and characteristics.line_spacing > 15 and not characteristics.has_buttons:
        return ContentType.ARTICLE
    if density > config.email_threshold and characteristics.has_headers:
        return ContentType.EMAIL
    if characteristics.has_buttons or characteristics.has_sidebars or density < config.ui_threshold:
        return ContentType.UI_INTERFACE
    if density > config.document_threshold:
        return ContentType.DOCUMENT
    return ContentType.MIXED


def classification_confidence(characteristics: ContentCharacteristics, content_type: ContentType) -> float:
    confidence = 0.5
    if content_type == ContentType.ARTICLE:
        if characteristics.text_density > 0.5:
            confidence += 0.3
        if characteristics.line_spacing > 15:
            confidence += 0.2
    elif content_type == ContentType.EMAIL:
        if characteristics.has_headers:
            confidence += 0.3
        if characteristics.text_density > 0.3:
            confidence += 0.2
    elif content_type == ContentType.UI_INTERFACE:
        if characteristics.has_buttons:
            confidence += 0.3
        if characteristics.text_density < 0.3:
            confidence += 0.2
    return min(1.0, confidence)


def generate_processing_strategy(content_type: ContentType,
                                 characteristics: ContentCharacteristics) -> ProcessingStrategy:
    """Type-specific contrast/edge multipliers, boosted on dark backgrounds."""
    contrast, edge, priority = STRATEGY_TABLE[content_type]
    if characteristics.background_type == BackgroundType.DARK:
        contrast *= DARK_BACKGROUND_CONTRAST
    return ProcessingStrategy(
        contrast_boost=contrast,
        edge_enhancement=edge,
        region_adjustments=[],
        processing_priority=priority,
        use_gpu=True,
    )


@timed(threshold=0.2)
def classify_content(pixels: PixelBuffer, config: ContentClassificationConfig) -> ContentClassification:
    """Classify a frame and derive its processing strategy."""
    characteristics = analyze_characteristics(pixels, config)
    content_type = determine_content_type(characteristics, config)
    classification = ContentClassification(
        primary_type=content_type,
        confidence=classification_confidence(characteristics, content_type),
        characteristics=characteristics,
        processing_strategy=generate_processing_strategy(content_type, characteristics),
    )
    logger.debug(
        f"Content classified as {content_type.value} "
        f"(confidence={classification.confidence:.2f}, density={characteristics.text_density:.3f})"
    )
    return classification
