"""Declarative filter enhancement for sources whose pixels cannot be read."""

from dataclasses import dataclass
from typing import Dict

import numpy as np

from maxvue.correction.correction_model import intensity
from maxvue.rendering.cpu_fallback import apply_global_adjustment, contrast_factor, brightness_factor
from maxvue.types import CorrectionSettings, PixelBuffer


@dataclass(frozen=True)
class FilterDescriptor:
    """
    CSS-equivalent filter applied by the consumer instead of replacing pixels.

    Arguments:
        blur_px: Blur radius in pixels (the correction intensity)
        contrast: Contrast factor, matching the global contrast step
        brightness: Brightness factor, matching the global brightness step
    """
    blur_px: float
    contrast: float
    brightness: float

    @classmethod
    def from_settings(cls, settings: CorrectionSettings) -> 'FilterDescriptor':
        return cls(
            blur_px=intensity(settings),
            contrast=contrast_factor(settings.contrast_boost),
            brightness=brightness_factor(settings.contrast_boost),
        )

    def to_css(self) -> str:
        return f"blur({self.blur_px:.2f}px) contrast({self.contrast:.2f}) brightness({self.brightness:.2f})"

    def as_dict(self) -> Dict[str, float]:
        return {
            'blur_px': self.blur_px,
            'contrast': self.contrast,
            'brightness': self.brightness,
        }

    def apply(self, pixels: PixelBuffer) -> PixelBuffer:
        """Preview the contrast/brightness component on a readable buffer. Blur is left to the consumer."""
        rgb = pixels.data[..., :3].astype(np.float32) / 255.0
        adjusted = apply_global_adjustment(rgb, contrast=self.contrast, brightness=self.brightness)
        out = pixels.data.copy()
        out[..., :3] = np.clip(np.rint(adjusted * 255.0), 0, 255).astype(np.uint8)
        return PixelBuffer(out)
