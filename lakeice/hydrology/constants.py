"""Shared physical constants for the lake snow/ice energy and mass balance.

All constants are stored as Python floats (float64). The mass balance of the
snow/ice layer is closed to ~1e-9 m, which float32 cannot resolve for deep packs.

Notes:
    - Temperatures are expressed in degrees Celsius (°C). Where absolute
      temperatures are needed (radiation), `KELVIN_OFFSET` is added explicitly.
"""

from __future__ import annotations

# Densities
RHO_WATER_KG_PER_M3: float = 1000.0  # kg/m3
RHO_ICE_KG_PER_M3: float = 917.0  # kg/m3, density of lake ice

# Specific heat capacities
SPECIFIC_HEAT_CAPACITY_WATER_J_PER_KG_K: float = 4186.0
SPECIFIC_HEAT_CAPACITY_AIR_J_PER_KG_K: float = 1013.0  # at constant pressure

# Volumetric heat capacities
VOLUMETRIC_HEAT_CAPACITY_WATER_J_PER_M3_K: float = (
    RHO_WATER_KG_PER_M3 * SPECIFIC_HEAT_CAPACITY_WATER_J_PER_KG_K
)

# Latent heats
L_FUSION_J_PER_KG: float = 3.337e5

# Radiation
STEFAN_BOLTZMANN_W_PER_M2_K4: float = 5.6696e-8
KELVIN_OFFSET: float = 273.15

# Moist air
RATIO_MOLECULAR_WEIGHT_WATER_DRY_AIR: float = 0.62196351
GRAVITY_M_PER_S2: float = 9.81

# Thermal conductivities [W/(m K)]
LAMBDA_ICE: float = 2.3
LAMBDA_SNOW: float = 0.31

# Shortwave partition and bulk extinction coefficients [1/m]
# Visible (A1) and near-infrared (A2) fractions of the incoming shortwave.
FRACTION_SHORTWAVE_VISIBLE: float = 0.7
FRACTION_SHORTWAVE_NEAR_INFRARED: float = 0.3
EXTINCTION_ICE_VISIBLE_PER_M: float = 1.5
EXTINCTION_ICE_NEAR_INFRARED_PER_M: float = 20.0
EXTINCTION_SNOW_VISIBLE_PER_M: float = 6.0
EXTINCTION_SNOW_NEAR_INFRARED_PER_M: float = 20.0

# Minimum thickness of the snow+ice column used for conduction (m).
MINIMUM_COLUMN_THICKNESS_M: float = 0.01

SECONDS_PER_HOUR: float = 3600.0
