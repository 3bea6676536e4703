"""Shortwave penetration and heat conduction through the snow and ice column."""

import math

from numba import njit

from .constants import (
    EXTINCTION_ICE_NEAR_INFRARED_PER_M,
    EXTINCTION_ICE_VISIBLE_PER_M,
    EXTINCTION_SNOW_NEAR_INFRARED_PER_M,
    EXTINCTION_SNOW_VISIBLE_PER_M,
    FRACTION_SHORTWAVE_NEAR_INFRARED,
    FRACTION_SHORTWAVE_VISIBLE,
    LAMBDA_ICE,
    LAMBDA_SNOW,
    MINIMUM_COLUMN_THICKNESS_M,
)


@njit(cache=True)
def calculate_column_conductance(
    ice_thickness_m: float,
    snow_depth_m: float,
) -> float:
    """Calculate the thermal conductance of the snow and ice layers in series [W/(m2·K)].

    The thermal resistance of the column is floored at that of a thin ice sheet so
    that an (almost) bare column does not produce an infinite conductance.

    Args:
        ice_thickness_m: Lake ice thickness (m).
        snow_depth_m: Snow depth on top of the ice (m).

    Returns:
        Conductance of the column (W/m2/K).
    """
    resistance_m2_K_per_W = (
        max(snow_depth_m, 0.0) / LAMBDA_SNOW + max(ice_thickness_m, 0.0) / LAMBDA_ICE
    )
    resistance_m2_K_per_W = max(
        resistance_m2_K_per_W, MINIMUM_COLUMN_THICKNESS_M / LAMBDA_ICE
    )
    return 1.0 / resistance_m2_K_per_W


@njit(cache=True)
def calculate_ice_radiation(
    shortwave_radiation_W_per_m2: float,
    ice_thickness_m: float,
    snow_depth_m: float,
) -> tuple[float, float, float]:
    """Partition net shortwave radiation over the snow and ice column.

    The shortwave is split in a visible and a near-infrared band, each attenuated
    with Beer's law first through the snow and then through the ice. Radiation
    absorbed in the snow is available at the surface. Radiation absorbed inside the
    ice warms the ice and is reported as a (negative) change in cold content.
    The remainder is transmitted to the lake water below.

    Args:
        shortwave_radiation_W_per_m2: Net shortwave radiation (W/m2).
        ice_thickness_m: Lake ice thickness (m).
        snow_depth_m: Snow depth on top of the ice (m).

    Returns:
        Tuple of:
            - Conductance of the snow and ice column (W/m2/K).
            - Shortwave absorbed in the snow and conducted to the surface (W/m2).
            - Change in cold content of the ice due to absorbed shortwave (W/m2).
    """
    snow_depth_m = max(snow_depth_m, 0.0)
    ice_thickness_m = max(ice_thickness_m, 0.0)

    visible_W_per_m2 = FRACTION_SHORTWAVE_VISIBLE * shortwave_radiation_W_per_m2
    near_infrared_W_per_m2 = (
        FRACTION_SHORTWAVE_NEAR_INFRARED * shortwave_radiation_W_per_m2
    )

    # transmission through the snow layer
    visible_below_snow = math.exp(-EXTINCTION_SNOW_VISIBLE_PER_M * snow_depth_m)
    near_infrared_below_snow = math.exp(
        -EXTINCTION_SNOW_NEAR_INFRARED_PER_M * snow_depth_m
    )

    absorbed_in_snow_W_per_m2 = visible_W_per_m2 * (
        1.0 - visible_below_snow
    ) + near_infrared_W_per_m2 * (1.0 - near_infrared_below_snow)

    absorbed_in_ice_W_per_m2 = visible_W_per_m2 * visible_below_snow * (
        1.0 - math.exp(-EXTINCTION_ICE_VISIBLE_PER_M * ice_thickness_m)
    ) + near_infrared_W_per_m2 * near_infrared_below_snow * (
        1.0 - math.exp(-EXTINCTION_ICE_NEAR_INFRARED_PER_M * ice_thickness_m)
    )

    conductance_W_per_m2_K = calculate_column_conductance(
        ice_thickness_m, snow_depth_m
    )

    return (
        conductance_W_per_m2_K,
        absorbed_in_snow_W_per_m2,
        -absorbed_in_ice_W_per_m2,
    )
