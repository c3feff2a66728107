"""
Presbyopia correction model.

Maps a user's calibrated diopter value and a requested reading correction to
a scalar enhancement intensity. The same intensity drives the shader
uniforms, the CPU fallback and the filter-only descriptor, so every path
converges on the same perceptual strength for the same settings.
"""

from typing import Union

from maxvue.types import CorrectionSettings, MIN_DIOPTERS, MAX_DIOPTERS

# Intensity used when reading vision equals calibration.
MINIMUM_INTENSITY = 0.05
INTENSITY_PER_DIOPTER = 0.6


def clamp_diopters(value: Union[int, float]) -> float:
    """Clamp a diopter value to the range accepted by the correction model."""
    return float(max(MIN_DIOPTERS, min(MAX_DIOPTERS, value)))


def enhancement_intensity(reading_vision: float, calibration: float) -> float:
    """
    Compute enhancement intensity from raw diopter values.

    Symmetric around calibration and non-decreasing with distance from it.

    Arguments:
        reading_vision: Requested reading correction in diopters
        calibration: User's calibrated diopter value

    Returns:
        Intensity scalar (MINIMUM_INTENSITY at zero distance)
    """
    distance = abs(reading_vision - calibration)
    if distance == 0:
        return MINIMUM_INTENSITY
    return distance * INTENSITY_PER_DIOPTER


def intensity(settings: CorrectionSettings) -> float:
    """Enhancement intensity for a settings value."""
    return enhancement_intensity(settings.reading_vision, settings.calibration)
