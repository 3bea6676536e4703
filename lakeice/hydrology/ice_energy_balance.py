"""Surface energy balance of the snow and ice pack on a lake."""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import NamedTuple

from numba import njit

from .constants import (
    GRAVITY_M_PER_S2,
    KELVIN_OFFSET,
    L_FUSION_J_PER_KG,
    RATIO_MOLECULAR_WEIGHT_WATER_DRY_AIR,
    RHO_WATER_KG_PER_M3,
    SECONDS_PER_HOUR,
    SPECIFIC_HEAT_CAPACITY_AIR_J_PER_KG_K,
    STEFAN_BOLTZMANN_W_PER_M2_K4,
    VOLUMETRIC_HEAT_CAPACITY_WATER_J_PER_M3_K,
)

# Resistance used when there is no wind or the surface layer is fully stable (s/m).
HUGE_RESISTANCE_S_PER_M: float = 1.0e20
CRITICAL_RICHARDSON_NUMBER: float = 0.2


@njit(cache=True)
def calculate_stability_correction(
    reference_height_m: float,
    displacement_height_m: float,
    surface_temperature_C: float,
    air_temperature_C: float,
    wind_speed_m_per_s: float,
    roughness_length_m: float,
) -> float:
    """Calculate the atmospheric stability correction for the aerodynamic resistance.

    Uses a bulk Richardson number approach. The corrected resistance is the neutral
    resistance divided by the returned factor.

    Args:
        reference_height_m: Measurement height of wind and temperature (m).
        displacement_height_m: Zero-plane displacement height (m).
        surface_temperature_C: Surface temperature (°C).
        air_temperature_C: Air temperature (°C).
        wind_speed_m_per_s: Wind speed (m/s).
        roughness_length_m: Surface roughness length (m).

    Returns:
        Correction factor (-). 1 for neutral conditions.
    """
    if surface_temperature_C == air_temperature_C:
        return 1.0

    air_temperature_K = air_temperature_C + KELVIN_OFFSET
    mean_temperature_K = (air_temperature_K + surface_temperature_C + KELVIN_OFFSET) / 2.0

    richardson_number = (
        GRAVITY_M_PER_S2
        * (air_temperature_C - surface_temperature_C)
        * (reference_height_m - displacement_height_m)
        / (mean_temperature_K * wind_speed_m_per_s * wind_speed_m_per_s)
    )
    richardson_number_limit = air_temperature_K / (
        mean_temperature_K
        * (
            math.log(
                (reference_height_m - displacement_height_m) / roughness_length_m
            )
            + 5.0
        )
    )
    if richardson_number > richardson_number_limit:
        richardson_number = richardson_number_limit

    if richardson_number > 0.0:
        return (1.0 - richardson_number / CRITICAL_RICHARDSON_NUMBER) ** 2

    if richardson_number < -0.5:
        richardson_number = -0.5
    return math.sqrt(1.0 - 16.0 * richardson_number)


@njit(cache=True)
def saturation_vapor_pressure_kPa(temperature_C: float) -> float:
    """Saturation vapor pressure over water, or over ice below 0°C (kPa).

    Args:
        temperature_C: Temperature (°C).

    Returns:
        Saturation vapor pressure (kPa).
    """
    svp_kPa = 0.61078 * math.exp((17.269 * temperature_C) / (237.3 + temperature_C))
    if temperature_C < 0.0:
        svp_kPa *= 1.0 + 0.00972 * temperature_C + 0.000042 * temperature_C**2
    return svp_kPa


@njit(cache=True)
def latent_heat_of_sublimation_J_per_kg(temperature_C: float) -> float:
    """Latent heat of sublimation as a function of temperature (J/kg)."""
    # (677 - 0.07 T) cal/g
    return (677.0 - 0.07 * temperature_C) * 4.1868 * 1000.0


@dataclass(frozen=True)
class IceEnergyBalanceInputs:
    """Fixed inputs of the ice pack energy balance within one timestep.

    This bundle is passed unchanged to the energy balance, to the root finder
    (through a closure over the surface temperature) and to the non-convergence
    reporter, so that all three always see the same arguments.

    Args:
        timestep_hours: Model timestep (hours).
        aerodynamic_resistance_s_per_m: Aerodynamic resistance, uncorrected for stability (s/m).
        reference_height_m: Reference height (m).
        displacement_height_m: Displacement height (m).
        roughness_length_m: Surface roughness length (m).
        wind_speed_m_per_s: Wind speed (m/s).
        shortwave_radiation_W_per_m2: Net shortwave radiation (W/m2).
        longwave_radiation_W_per_m2: Incoming longwave radiation (W/m2).
        air_density_kg_per_m3: Density of air (kg/m3).
        latent_heat_vaporization_J_per_kg: Latent heat of vaporization (J/kg).
        air_temperature_C: Air temperature (°C).
        air_pressure_Pa: Air pressure (Pa).
        vapor_pressure_deficit_Pa: Vapor pressure deficit (Pa).
        vapor_pressure_Pa: Actual vapor pressure of the air (Pa).
        rainfall_m: Rainfall during the timestep (m).
        water_equivalent_m: Water equivalent of snow plus lake ice (m).
        surface_liquid_water_m: Liquid water in the surface layer (m).
        old_surface_temperature_C: Surface temperature of the previous timestep (°C).
        blowing_flux_m: Vapor flux from blowing snow (m/timestep).
        delta_cold_content_W_per_m2: Change in cold content of the ice (W/m2).
        freezing_temperature_C: Temperature at the base of the ice (°C).
        conductance_W_per_m2_K: Thermal conductance of the snow and ice column (W/m2/K).
        shortwave_conducted_W_per_m2: Shortwave absorbed in the snow and conducted to the surface (W/m2).
        snow_depth_m: Snow depth (m).
        snow_density_kg_per_m3: Snow density (kg/m3).
        surface_attenuation: Fraction of net shortwave penetrating into the column (-).
    """

    timestep_hours: float
    aerodynamic_resistance_s_per_m: float
    reference_height_m: float
    displacement_height_m: float
    roughness_length_m: float
    wind_speed_m_per_s: float
    shortwave_radiation_W_per_m2: float
    longwave_radiation_W_per_m2: float
    air_density_kg_per_m3: float
    latent_heat_vaporization_J_per_kg: float
    air_temperature_C: float
    air_pressure_Pa: float
    vapor_pressure_deficit_Pa: float
    vapor_pressure_Pa: float
    rainfall_m: float
    water_equivalent_m: float
    surface_liquid_water_m: float
    old_surface_temperature_C: float
    blowing_flux_m: float
    delta_cold_content_W_per_m2: float
    freezing_temperature_C: float
    conductance_W_per_m2_K: float
    shortwave_conducted_W_per_m2: float
    snow_depth_m: float
    snow_density_kg_per_m3: float
    surface_attenuation: float

    def items(self) -> list[tuple[str, float]]:
        """Return all inputs as (name, value) pairs in declaration order.

        Returns:
            List of (field name, value) pairs.
        """
        return [(field.name, getattr(self, field.name)) for field in fields(self)]


class IceEnergyBalanceResult(NamedTuple):
    """Net energy exchange at the ice pack surface and its components.

    All energy terms are positive towards the surface (W/m2). Mass fluxes are in
    m/timestep and negative for a loss to the atmosphere.
    """

    net_energy_W_per_m2: float
    refreeze_energy_W_per_m2: float
    vapor_flux_m: float
    blowing_flux_m: float
    surface_flux_m: float
    advected_energy_W_per_m2: float
    ground_flux_W_per_m2: float
    latent_heat_W_per_m2: float
    sensible_heat_W_per_m2: float
    net_longwave_W_per_m2: float


def ice_energy_balance(
    surface_temperature_C: float, inputs: IceEnergyBalanceInputs
) -> IceEnergyBalanceResult:
    """Calculate the net energy exchange at the surface of the snow and ice pack.

    At a surface temperature of exactly 0°C the surface can be in equilibrium:
    any energy surplus melts ice and any deficit is compensated by refreezing
    surface liquid water, as long as there is enough liquid water. In that case
    the net energy is 0 and the refreeze energy carries the residual (positive
    when water refreezes, negative when ice melts). Otherwise all surface liquid
    water refreezes and the net energy is the remaining imbalance, which is
    negative for a surface that must cool below 0°C.

    This function has no side effects and can be evaluated at any temperature.

    Args:
        surface_temperature_C: Candidate surface temperature (°C).
        inputs: Fixed inputs for this timestep.

    Returns:
        The net energy exchange and its components.
    """
    timestep_s = inputs.timestep_hours * SECONDS_PER_HOUR

    if inputs.wind_speed_m_per_s > 0.0:
        stability_correction = calculate_stability_correction(
            inputs.reference_height_m,
            inputs.displacement_height_m,
            surface_temperature_C,
            inputs.air_temperature_C,
            inputs.wind_speed_m_per_s,
            inputs.roughness_length_m,
        )
        if stability_correction > 0.0:
            aerodynamic_resistance_s_per_m = (
                inputs.aerodynamic_resistance_s_per_m / stability_correction
            )
        else:
            aerodynamic_resistance_s_per_m = HUGE_RESISTANCE_S_PER_M
    else:
        aerodynamic_resistance_s_per_m = HUGE_RESISTANCE_S_PER_M

    # Radiation
    surface_temperature_K = surface_temperature_C + KELVIN_OFFSET
    net_longwave_W_per_m2 = (
        inputs.longwave_radiation_W_per_m2
        - STEFAN_BOLTZMANN_W_PER_M2_K4 * surface_temperature_K**4
    )
    # Part of the shortwave is absorbed at the surface, the attenuated part
    # penetrates and is partitioned by the radiation helper.
    shortwave_W_per_m2 = (
        1.0 - inputs.surface_attenuation
    ) * inputs.shortwave_radiation_W_per_m2 + inputs.surface_attenuation * (
        inputs.shortwave_conducted_W_per_m2 - inputs.delta_cold_content_W_per_m2
    )

    sensible_heat_W_per_m2 = (
        inputs.air_density_kg_per_m3
        * SPECIFIC_HEAT_CAPACITY_AIR_J_PER_KG_K
        * (inputs.air_temperature_C - surface_temperature_C)
        / aerodynamic_resistance_s_per_m
    )

    # Vapor exchange with the surface (kg/m2/s), negative for sublimation/evaporation
    saturation_vapor_pressure_surface_Pa = (
        saturation_vapor_pressure_kPa(surface_temperature_C) * 1000.0
    )
    vapor_mass_flux_kg_per_m2_s = (
        inputs.air_density_kg_per_m3
        * (RATIO_MOLECULAR_WEIGHT_WATER_DRY_AIR / inputs.air_pressure_Pa)
        * (inputs.vapor_pressure_Pa - saturation_vapor_pressure_surface_Pa)
        / aerodynamic_resistance_s_per_m
    )
    if inputs.vapor_pressure_deficit_Pa == 0.0 and vapor_mass_flux_kg_per_m2_s < 0.0:
        vapor_mass_flux_kg_per_m2_s = 0.0

    if surface_temperature_C >= 0.0:
        latent_heat_J_per_kg = inputs.latent_heat_vaporization_J_per_kg
    else:
        latent_heat_J_per_kg = latent_heat_of_sublimation_J_per_kg(
            surface_temperature_C
        )
    latent_heat_W_per_m2 = latent_heat_J_per_kg * vapor_mass_flux_kg_per_m2_s

    surface_flux_m = vapor_mass_flux_kg_per_m2_s / RHO_WATER_KG_PER_M3 * timestep_s
    blowing_flux_m = inputs.blowing_flux_m
    vapor_flux_m = surface_flux_m + blowing_flux_m

    advected_energy_W_per_m2 = (
        VOLUMETRIC_HEAT_CAPACITY_WATER_J_PER_M3_K
        * inputs.air_temperature_C
        * inputs.rainfall_m
        / timestep_s
    )

    # Conduction from the ice base (at the freezing temperature) to the surface
    ground_flux_W_per_m2 = inputs.conductance_W_per_m2_K * (
        inputs.freezing_temperature_C - surface_temperature_C
    )

    rest_term_W_per_m2 = (
        shortwave_W_per_m2
        + net_longwave_W_per_m2
        + sensible_heat_W_per_m2
        + latent_heat_W_per_m2
        + advected_energy_W_per_m2
        + ground_flux_W_per_m2
    )

    # Energy released when all surface liquid water refreezes
    refreeze_energy_W_per_m2 = (
        inputs.surface_liquid_water_m
        * L_FUSION_J_PER_KG
        * RHO_WATER_KG_PER_M3
        / timestep_s
    )

    if surface_temperature_C == 0.0 and rest_term_W_per_m2 >= -refreeze_energy_W_per_m2:
        refreeze_energy_W_per_m2 = -rest_term_W_per_m2
        net_energy_W_per_m2 = 0.0
    else:
        net_energy_W_per_m2 = rest_term_W_per_m2 + refreeze_energy_W_per_m2

    return IceEnergyBalanceResult(
        net_energy_W_per_m2=net_energy_W_per_m2,
        refreeze_energy_W_per_m2=refreeze_energy_W_per_m2,
        vapor_flux_m=vapor_flux_m,
        blowing_flux_m=blowing_flux_m,
        surface_flux_m=surface_flux_m,
        advected_energy_W_per_m2=advected_energy_W_per_m2,
        ground_flux_W_per_m2=ground_flux_W_per_m2,
        latent_heat_W_per_m2=latent_heat_W_per_m2,
        sensible_heat_W_per_m2=sensible_heat_W_per_m2,
        net_longwave_W_per_m2=net_longwave_W_per_m2,
    )
