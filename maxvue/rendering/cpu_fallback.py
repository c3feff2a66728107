"""
CPU fallback rendering.

Applies only the global contrast/brightness step of the shader pass, in
numpy. Used when the GPU path is disabled, failed to initialize, or raised
during a call.
"""

import logging

import numpy as np

from maxvue.types import PixelBuffer

logger = logging.getLogger(__name__)


def contrast_factor(contrast_boost: float) -> float:
    """Contrast multiplier for a 0-100 boost, clamped to [0.5, 2.0]."""
    return float(min(2.0, max(0.5, 1.0 + contrast_boost / 100.0)))


def brightness_factor(contrast_boost: float) -> float:
    return 1.0 + contrast_boost / 200.0


def apply_global_adjustment(rgb: np.ndarray, contrast: float, brightness: float) -> np.ndarray:
    """
    (color - 0.5) * contrast + 0.5, then scaled by brightness and clamped to [0, 1].

    Arguments:
        rgb: Float array in [0, 1], any shape
        contrast: Contrast factor
        brightness: Brightness factor

    Returns:
        Adjusted float32 array, same shape
    """
    adjusted = (rgb.astype(np.float32) - 0.5) * np.float32(contrast) + 0.5
    adjusted = adjusted * np.float32(brightness)
    return np.clip(adjusted, 0.0, 1.0)


def render_cpu_fallback(pixels: PixelBuffer, contrast_boost: float) -> PixelBuffer:
    """Global contrast/brightness over RGB; alpha is preserved."""
    rgb = pixels.data[..., :3].astype(np.float32) / 255.0
    adjusted = apply_global_adjustment(rgb, contrast_factor(contrast_boost), brightness_factor(contrast_boost))

    out = pixels.data.copy()
    out[..., :3] = np.clip(np.rint(adjusted * 255.0), 0, 255).astype(np.uint8)
    logger.debug(f"CPU fallback rendered {pixels.width}x{pixels.height} (contrast_boost={contrast_boost:.1f})")
    return PixelBuffer(out)
