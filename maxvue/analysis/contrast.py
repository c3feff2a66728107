"""Local contrast grid and the enhancement map derived from it."""

import logging
import math
from typing import Callable, Dict

import numpy as np

from maxvue.config import ContrastAnalysisConfig
from maxvue.types import ContrastMap, EnhancementMap, PixelBuffer, Rect
from maxvue.utils.performance import timed

logger = logging.getLogger(__name__)

# Diopters added per unit of enhancement strength.
DIOPTERS_PER_STRENGTH = 0.5


def rms_contrast(values: np.ndarray) -> float:
    """Population standard deviation normalized to [0, 1]."""
    return float(np.std(values)) / 255.0


def michelson_contrast(values: np.ndarray) -> float:
    high = float(values.max())
    low = float(values.min())
    return (high - low) / (high + low + 1)


def weber_contrast(values: np.ndarray) -> float:
    high = float(values.max())
    mean = float(values.mean())
    return (high - mean) / (mean + 1)


CONTRAST_ESTIMATORS: Dict[str, Callable[[np.ndarray], float]] = {
    'rms': rms_contrast,
    'michelson': michelson_contrast,
    'weber': weber_contrast,
}


def contrast_grid(luminance: np.ndarray, cell_size: int, method: str = 'rms') -> np.ndarray:
    """
    Per-cell contrast of a luminance field.

    Edge cells are partial when the frame size is not a multiple of cell_size.
    """
    estimator = CONTRAST_ESTIMATORS.get(method, rms_contrast)
    height, width = luminance.shape
    grid_height = math.ceil(height / cell_size)
    grid_width = math.ceil(width / cell_size)

    grid = np.zeros((grid_height, grid_width), dtype=np.float64)
    for gy in range(grid_height):
        for gx in range(grid_width):
            cell = luminance[gy * cell_size:(gy + 1) * cell_size, gx * cell_size:(gx + 1) * cell_size]
            grid[gy, gx] = estimator(cell) if cell.size else 0.0
    return grid


def generate_enhancement_map(grid: np.ndarray, mean_contrast: float,
                             config: ContrastAnalysisConfig) -> EnhancementMap:
    """
    Enhancement strength per cell, higher where contrast is below the frame mean.

    Cells stronger than priority_threshold become priority regions.
    """
    if mean_contrast > 0:
        factor = (mean_contrast - grid) / mean_contrast
        strength = np.clip(factor * config.enhancement_sensitivity, 0.0, config.max_enhancement)
    else:
        strength = np.zeros_like(grid)

    cell = config.grid_cell_size
    priority = [
        Rect(int(gx) * cell, int(gy) * cell, cell, cell)
        for gy, gx in zip(*np.nonzero(strength > config.priority_threshold))
    ]
    return EnhancementMap(
        strength_grid=strength,
        diopter_adjustment_grid=strength * DIOPTERS_PER_STRENGTH,
        priority_regions=priority,
    )


@timed(threshold=0.2)
def analyze_contrast(pixels: PixelBuffer, config: ContrastAnalysisConfig) -> ContrastMap:
    """Build the contrast map and enhancement map for a frame."""
    grid = contrast_grid(pixels.luminance(), config.grid_cell_size, config.contrast_method)
    if grid.size == 0:
        mean = low = high = 0.0
    else:
        mean = float(grid.mean())
        low = min(1.0, float(grid.min()))
        high = max(0.0, float(grid.max()))

    enhancement = generate_enhancement_map(grid, mean, config)
    logger.debug(
        f"Contrast grid {grid.shape[1]}x{grid.shape[0]} ({config.contrast_method}): "
        f"mean={mean:.3f}, priority cells={len(enhancement.priority_regions)}"
    )
    return ContrastMap(
        contrast_grid=grid,
        grid_width=int(grid.shape[1]),
        grid_height=int(grid.shape[0]),
        cell_size=config.grid_cell_size,
        mean_contrast=mean,
        min_contrast=low,
        max_contrast=high,
        enhancement_map=enhancement,
    )
