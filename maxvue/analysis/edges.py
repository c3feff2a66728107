"""
Sobel edge detection and text region finding.

Edges are computed with torch on the CPU device; connected components are
labeled with scipy.ndimage using 4-connectivity.
"""

import logging
import math
from typing import List, Optional

import numpy as np
import torch
import torch.nn.functional as F
from scipy import ndimage  # type: ignore

from maxvue.config import TextDetectionConfig
from maxvue.types import PixelBuffer, Rect, TextRegion, TextRegionType
from maxvue.utils.performance import timed

logger = logging.getLogger(__name__)

SOBEL_X = torch.tensor([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=torch.float32)
SOBEL_Y = torch.tensor([[-1, -2, -1], [0, 0, 0], [1, 2, 1]], dtype=torch.float32)

# 4-connected neighborhood.
_CONNECTIVITY = ndimage.generate_binary_structure(2, 1)

DEFAULT_FONT_SIZE = 12.0
MIN_FONT_SIZE = 8.0
MAX_FONT_SIZE = 72.0


def sobel_magnitude(luminance: np.ndarray) -> np.ndarray:
    """
    Edge magnitude of a luminance field.

    Arguments:
        luminance: Float array [H, W] in [0, 255]

    Returns:
        Float32 array [H, W] in [0, 1]; border pixels are 0
    """
    height, width = luminance.shape
    edges = np.zeros((height, width), dtype=np.float32)
    if height < 3 or width < 3:
        return edges

    gray = torch.from_numpy(np.ascontiguousarray(luminance, dtype=np.float32))
    gray_batch = gray.unsqueeze(0).unsqueeze(0)  # [1, 1, H, W]
    with torch.no_grad():
        gx = F.conv2d(gray_batch, SOBEL_X.view(1, 1, 3, 3))
        gy = F.conv2d(gray_batch, SOBEL_Y.view(1, 1, 3, 3))
        magnitude = torch.sqrt(gx ** 2 + gy ** 2).squeeze(0).squeeze(0) / 255.0

    edges[1:-1, 1:-1] = magnitude.clamp(0.0, 1.0).numpy()
    return edges


@timed(threshold=0.2)
def detect_edges(pixels: PixelBuffer) -> np.ndarray:
    """Sobel edge field of a pixel buffer using (r+g+b)/3 luminance."""
    return sobel_magnitude(pixels.luminance())


def find_connected_components(edges: np.ndarray, threshold: float,
                              min_region_size: int) -> List[TextRegion]:
    """
    Group edge pixels above threshold into regions.

    Components with fewer than min_region_size pixels are dropped. Regions are
    returned in raster order of their first pixel.
    """
    mask = edges > threshold
    labels, count = ndimage.label(mask, structure=_CONNECTIVITY)
    if count == 0:
        return []

    flat_labels = labels.ravel()
    pixel_counts = np.bincount(flat_labels, minlength=count + 1)
    edge_sums = np.bincount(flat_labels, weights=edges.ravel().astype(np.float64), minlength=count + 1)

    regions = []
    for label, slices in enumerate(ndimage.find_objects(labels), start=1):
        if slices is None:
            continue
        points = int(pixel_counts[label])
        if points < min_region_size:
            continue

        row_slice, col_slice = slices
        bounds = Rect(
            x=int(col_slice.start),
            y=int(row_slice.start),
            width=int(col_slice.stop - col_slice.start),
            height=int(row_slice.stop - row_slice.start),
        )
        edge_density = points / bounds.area
        average_edge_strength = float(edge_sums[label]) / points
        regions.append(TextRegion(
            bounds=bounds,
            confidence=min(edge_density * average_edge_strength * 2, 1.0),
            text_density=edge_density,
            estimated_font_size=0.0,
            edge_intensity=average_edge_strength,
        ))
    return regions


def filter_regions(regions: List[TextRegion], config: TextDetectionConfig) -> List[TextRegion]:
    """Keep regions whose bounds fit the size limits and whose confidence is high enough."""
    return [
        r for r in regions
        if config.min_region_size <= r.bounds.width <= config.max_region_size
        and config.min_region_size <= r.bounds.height <= config.max_region_size
        and r.confidence >= config.min_confidence
    ]


def region_distance(a: Rect, b: Rect) -> float:
    """Distance between bounding-box centers."""
    (ax, ay), (bx, by) = a.center, b.center
    return math.hypot(bx - ax, by - ay)


def merge_region_group(group: List[TextRegion]) -> TextRegion:
    """Union bounding box with averaged confidence, density and edge intensity."""
    min_x = min(r.bounds.x for r in group)
    min_y = min(r.bounds.y for r in group)
    max_x = max(r.bounds.x + r.bounds.width for r in group)
    max_y = max(r.bounds.y + r.bounds.height for r in group)
    n = len(group)
    return TextRegion(
        bounds=Rect(min_x, min_y, max_x - min_x, max_y - min_y),
        confidence=sum(r.confidence for r in group) / n,
        text_density=sum(r.text_density for r in group) / n,
        estimated_font_size=0.0,
        edge_intensity=sum(r.edge_intensity for r in group) / n,
    )


def merge_nearby_regions(regions: List[TextRegion], merge_distance: float) -> List[TextRegion]:
    """
    Greedily merge regions whose centers are within merge_distance.

    Each unmerged region collects every later unmerged region near it, so
    grouping is not transitive.
    """
    merged = []
    used = [False] * len(regions)

    for i, region in enumerate(regions):
        if used[i]:
            continue
        used[i] = True
        group = [region]

        for j in range(i + 1, len(regions)):
            if used[j]:
                continue
            if region_distance(region.bounds, regions[j].bounds) <= merge_distance:
                group.append(regions[j])
                used[j] = True

        merged.append(group[0] if len(group) == 1 else merge_region_group(group))

    return merged


def estimate_font_size(bounds: Rect, luminance: np.ndarray, config: TextDetectionConfig) -> float:
    """
    Estimate font size from vertical intensity transitions through the region's center column.

    Two transitions make one text line; font size is 0.75 of the line height,
    clamped to [8, 72].
    """
    if not config.enable_font_size_estimation:
        return DEFAULT_FONT_SIZE

    height, width = luminance.shape
    center_x = int(math.floor(bounds.x + bounds.width / 2))
    if center_x >= width:
        column = np.empty(0, dtype=np.float32)
    else:
        column = luminance[bounds.y:min(bounds.y + bounds.height, height), center_x]

    transitions = int(np.count_nonzero(np.abs(np.diff(column)) > config.transition_threshold))
    line_count = max(1, transitions // 2)
    line_height = bounds.height / line_count
    return max(MIN_FONT_SIZE, min(MAX_FONT_SIZE, line_height * 0.75))


def classify_text_region(bounds: Rect, font_size: float, confidence: float) -> TextRegionType:
    area = bounds.area
    if font_size > 24:
        return TextRegionType.HEADING
    if font_size < 10:
        return TextRegionType.SMALL_TEXT
    if area < 500 and bounds.aspect_ratio > 3:
        return TextRegionType.LABEL
    if area < 1000 and confidence > 0.8:
        return TextRegionType.UI_ELEMENT
    return TextRegionType.BODY_TEXT


@timed(threshold=0.3)
def detect_text_regions(pixels: PixelBuffer, config: TextDetectionConfig,
                        edges: Optional[np.ndarray] = None) -> List[TextRegion]:
    """
    Find text regions in a frame.

    Arguments:
        pixels: Source frame
        config: Detection thresholds
        edges: Precomputed edge field (computed from pixels if None)

    Returns:
        Merged regions with font size and region type filled in
    """
    luminance = pixels.luminance()
    if edges is None:
        edges = sobel_magnitude(luminance)

    components = find_connected_components(edges, config.sobel_threshold, config.min_region_size)
    valid = filter_regions(components, config)
    merged = merge_nearby_regions(valid, config.merge_distance)

    regions = []
    for region in merged:
        font_size = estimate_font_size(region.bounds, luminance, config)
        regions.append(TextRegion(
            bounds=region.bounds,
            confidence=region.confidence,
            text_density=region.text_density,
            estimated_font_size=font_size,
            edge_intensity=region.edge_intensity,
            region_type=classify_text_region(region.bounds, font_size, region.confidence),
        ))

    logger.debug(
        f"Text regions: {len(components)} components, {len(valid)} valid, {len(regions)} after merge"
    )
    return regions
