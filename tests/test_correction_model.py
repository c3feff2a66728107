"""Tests for the correction intensity model and calibration scale mapping"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import math
import pytest

from maxvue.correction.correction_model import (
    MINIMUM_INTENSITY,
    clamp_diopters,
    enhancement_intensity,
    intensity,
)
from maxvue.correction.calibration import (
    apply_mobile_adjustment,
    calculate_calibration_values,
    get_user_scale_description,
    internal_to_user_scale,
    is_valid_internal_scale,
    is_valid_user_scale,
    round_to_diopter,
    user_to_internal_scale,
)
from maxvue.types import CorrectionSettings
from maxvue.utils.exceptions import InvalidSettingsError


def test_minimum_floor():
    """Zero distance from calibration yields exactly the floor intensity."""
    print("\nCorrection Test 1: Minimum floor")
    for c in [0.0, 0.75, 2.0, 3.5]:
        assert enhancement_intensity(c, c) == MINIMUM_INTENSITY, f"Floor not hit at calibration {c}"
    assert MINIMUM_INTENSITY == 0.05
    print("  Minimum floor: PASSED")


def test_symmetry():
    """Intensity is symmetric around calibration."""
    print("\nCorrection Test 2: Symmetry")
    for c in [1.0, 1.75, 2.0]:
        for d in [0.0, 0.25, 0.5, 1.0]:
            below = enhancement_intensity(c - d, c)
            above = enhancement_intensity(c + d, c)
            assert math.isclose(below, above), f"Asymmetric at c={c}, d={d}: {below} vs {above}"
    print("  Symmetry: PASSED")


def test_monotonicity():
    """Intensity never decreases as distance from calibration grows."""
    print("\nCorrection Test 3: Monotonicity")
    c = 1.5
    distances = [0.0, 0.1, 0.25, 0.5, 1.0, 1.5, 2.0]
    values = [enhancement_intensity(c + d, c) for d in distances]
    for smaller, larger in zip(values, values[1:]):
        assert smaller <= larger, f"Intensity decreased: {values}"
    print("  Monotonicity: PASSED")


def test_scenarios():
    """Reference scenarios at calibration 2.0."""
    print("\nCorrection Test 4: Reference scenarios")
    assert intensity(CorrectionSettings(reading_vision=2.0, calibration=2.0)) == 0.05, "Scenario A failed"
    assert math.isclose(intensity(CorrectionSettings(reading_vision=0.0, calibration=2.0)), 1.2), \
        "Scenario B failed"
    above = intensity(CorrectionSettings(reading_vision=2.5, calibration=2.0))
    below = intensity(CorrectionSettings(reading_vision=1.5, calibration=2.0))
    assert math.isclose(above, 0.3) and math.isclose(below, 0.3), f"Scenario C failed: {above}, {below}"
    print("  Scenarios A-C: PASSED")


def test_clamp_diopters():
    assert clamp_diopters(-1) == 0.0
    assert clamp_diopters(5.0) == 3.5
    assert clamp_diopters(1.25) == 1.25


def test_settings_validation():
    """Out-of-range and NaN settings are rejected."""
    CorrectionSettings(reading_vision=3.5, calibration=0.0, contrast_boost=100, edge_enhancement=0).validate()

    bad_settings = [
        CorrectionSettings(reading_vision=4.0),
        CorrectionSettings(calibration=-0.5),
        CorrectionSettings(reading_vision=float('nan')),
        CorrectionSettings(contrast_boost=120),
        CorrectionSettings(edge_enhancement=-1),
    ]
    for settings in bad_settings:
        with pytest.raises(InvalidSettingsError):
            settings.validate()


def test_scale_mapping():
    """User scale and internal scale are offset by 4.00D."""
    print("\nCalibration Test 1: Scale mapping")
    assert user_to_internal_scale(0.0) == -4.0
    assert user_to_internal_scale(4.0) == 0.0
    assert internal_to_user_scale(3.5) == 7.5
    assert apply_mobile_adjustment(0.0) == 2.0
    for value in [0.0, 1.25, 4.0, 7.5]:
        assert internal_to_user_scale(user_to_internal_scale(value)) == value
    print("  Scale mapping: PASSED")


def test_scale_validity():
    assert is_valid_user_scale(0.0) and is_valid_user_scale(7.5)
    assert not is_valid_user_scale(7.75)
    assert is_valid_internal_scale(-4.0) and is_valid_internal_scale(3.5)
    assert not is_valid_internal_scale(-4.25)


def test_round_to_diopter():
    assert round_to_diopter(1.1) == 1.0
    assert round_to_diopter(1.13) == 1.25
    assert round_to_diopter(1.125) == 1.25, "Halves should round up"
    assert round_to_diopter(-0.3) == -0.25


def test_scale_descriptions():
    assert get_user_scale_description(0.0) == "No reading glasses needed"
    assert get_user_scale_description(1.0) == "Very mild presbyopia"
    assert get_user_scale_description(2.5) == "Mild presbyopia"
    assert get_user_scale_description(3.0) == "Moderate presbyopia"
    assert get_user_scale_description(4.5) == "Strong presbyopia"
    assert get_user_scale_description(6.0) == "Very strong presbyopia"


def test_calculate_calibration_values():
    """Full calibration workflow from a user desktop value."""
    print("\nCalibration Test 2: Calibration workflow")
    values = calculate_calibration_values(3.0)
    assert values.user_desktop == 3.0
    assert values.internal_desktop == -1.0
    assert values.internal_mobile == 1.0
    assert values.user_mobile == 5.0
    assert values.desktop_description == "Moderate presbyopia"
    assert values.mobile_description == "Strong presbyopia"
    assert values.to_dict()['mobile_adjustment'] == 2.0

    with pytest.raises(InvalidSettingsError):
        calculate_calibration_values(8.0)
    print("  Calibration workflow: PASSED")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
