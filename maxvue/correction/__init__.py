# MaxVue correction - diopter intensity model and calibration scale mapping.

from maxvue.correction.correction_model import (
    MINIMUM_INTENSITY,
    INTENSITY_PER_DIOPTER,
    clamp_diopters,
    enhancement_intensity,
    intensity,
)
from maxvue.correction.calibration import (
    CalibrationValues,
    calculate_calibration_values,
    get_user_scale_description,
    round_to_diopter,
    user_to_internal_scale,
    internal_to_user_scale,
)

__all__ = [
    'MINIMUM_INTENSITY',
    'INTENSITY_PER_DIOPTER',
    'clamp_diopters',
    'enhancement_intensity',
    'intensity',
    'CalibrationValues',
    'calculate_calibration_values',
    'get_user_scale_description',
    'round_to_diopter',
    'user_to_internal_scale',
    'internal_to_user_scale',
]
