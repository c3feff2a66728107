"""
Calibration scale mapping.

The calibration workflow shows users a familiar reading-glasses scale
(0.00D to +7.50D) while calculations use an internal scale (-4.00D to
+3.50D). User 0.00D is internal -4.00D, user +4.00D is the internal desktop
baseline 0.00D. Mobile viewing distance adds +2.00D on top of the desktop
value.
"""

import math
import logging
from dataclasses import dataclass
from typing import Dict, Any

from maxvue.utils.exceptions import InvalidSettingsError

logger = logging.getLogger(__name__)

INTERNAL_MIN = -4.0
INTERNAL_MAX = 3.5
USER_MIN = 0.0
USER_MAX = 7.5
MOBILE_ADJUSTMENT = 2.0
SCALE_OFFSET = 4.0

# (upper bound inclusive, description) in ascending order.
_DESCRIPTIONS = [
    (0.5, "No reading glasses needed"),
    (1.5, "Very mild presbyopia"),
    (2.5, "Mild presbyopia"),
    (3.5, "Moderate presbyopia"),
    (5.0, "Strong presbyopia"),
]


def user_to_internal_scale(user_value: float) -> float:
    return user_value - SCALE_OFFSET


def internal_to_user_scale(internal_value: float) -> float:
    return internal_value + SCALE_OFFSET


def apply_mobile_adjustment(internal_desktop_value: float) -> float:
    """Mobile value on the internal scale (desktop + 2.00D)."""
    return internal_desktop_value + MOBILE_ADJUSTMENT


def get_user_scale_description(user_value: float) -> str:
    """Human-readable description for a user scale value."""
    for upper, description in _DESCRIPTIONS:
        if user_value <= upper:
            return description
    return "Very strong presbyopia"


def is_valid_user_scale(user_value: float) -> bool:
    return USER_MIN <= user_value <= USER_MAX


def is_valid_internal_scale(internal_value: float) -> bool:
    return INTERNAL_MIN <= internal_value <= INTERNAL_MAX


def round_to_diopter(value: float) -> float:
    """Round to the nearest 0.25D step, halves rounding up."""
    return math.floor(value * 4 + 0.5) / 4


@dataclass
class CalibrationValues:
    """All values derived from a user's desktop calibration."""
    user_desktop: float
    user_mobile: float
    internal_desktop: float
    internal_mobile: float
    desktop_description: str
    mobile_description: str
    mobile_adjustment: float = MOBILE_ADJUSTMENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_desktop': self.user_desktop,
            'user_mobile': self.user_mobile,
            'internal_desktop': self.internal_desktop,
            'internal_mobile': self.internal_mobile,
            'desktop_description': self.desktop_description,
            'mobile_description': self.mobile_description,
            'mobile_adjustment': self.mobile_adjustment,
        }


def calculate_calibration_values(user_desktop_value: float) -> CalibrationValues:
    """
    Complete calibration workflow: user desktop value to mobile internal value.

    Arguments:
        user_desktop_value: User's desktop setting (0.00D to +7.50D)

    Returns:
        CalibrationValues with rounded user/internal values and descriptions

    Raises:
        InvalidSettingsError: If the value is outside the user scale
    """
    if not is_valid_user_scale(user_desktop_value):
        raise InvalidSettingsError(
            f"Invalid user scale value: {user_desktop_value}. Must be between {USER_MIN} and {USER_MAX}"
        )

    internal_desktop = user_to_internal_scale(user_desktop_value)
    internal_mobile = apply_mobile_adjustment(internal_desktop)
    user_mobile = internal_to_user_scale(internal_mobile)

    values = CalibrationValues(
        user_desktop=round_to_diopter(user_desktop_value),
        user_mobile=round_to_diopter(user_mobile),
        internal_desktop=round_to_diopter(internal_desktop),
        internal_mobile=round_to_diopter(internal_mobile),
        desktop_description=get_user_scale_description(user_desktop_value),
        mobile_description=get_user_scale_description(user_mobile),
    )
    logger.debug(f"Calibration {user_desktop_value:.2f}D -> internal mobile {values.internal_mobile:+.2f}D")
    return values
