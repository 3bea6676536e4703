"""Snow accumulation and melt on lake ice for one timestep of one cell.

The snow and ice on a lake is treated as a single layer with three water
reservoirs: ice in the snow pack, liquid water in the surface layer and lake
ice. Each call solves the surface energy balance, moves water between the
reservoirs and reports the mass balance residual of the step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable

from lakeice.config import IceMeltConfig
from lakeice.workflows.algebra import ROOT_BRENT_FAILURE_THRESHOLD, root_brent

from .constants import (
    L_FUSION_J_PER_KG,
    RHO_ICE_KG_PER_M3,
    RHO_WATER_KG_PER_M3,
    SECONDS_PER_HOUR,
)
from .ice_energy_balance import (
    IceEnergyBalanceInputs,
    IceEnergyBalanceResult,
    ice_energy_balance,
)
from .ice_radiation import calculate_ice_radiation

logger = logging.getLogger("lakeice")

EnergyBalanceFunction = Callable[
    [float, IceEnergyBalanceInputs], IceEnergyBalanceResult
]
RootFinder = Callable[[Callable[[float], float], float, float], tuple[float, str]]


class IceMeltNonConvergenceError(RuntimeError):
    """The surface temperature of the ice pack could not be solved.

    Args:
        dump: Field-by-field diagnostic dump of the failed energy balance.
        surface_temperature_C: Value returned by the root finder.
    """

    def __init__(self, dump: str, surface_temperature_C: float) -> None:
        super().__init__(dump)
        self.dump = dump
        self.surface_temperature_C = surface_temperature_C


@dataclass
class SnowIceState:
    """State of the snow on the lake ice, persisted by the caller between timesteps.

    Mass fluxes are negative for a loss to the atmosphere while a step is
    computed. After `ice_melt` returns, `vapor_flux_m` is positive for a loss.
    """

    water_equivalent_m: float = 0.0
    surface_liquid_water_m: float = 0.0
    surface_temperature_C: float = 0.0
    vapor_flux_m: float = 0.0
    blowing_flux_m: float = 0.0
    surface_flux_m: float = 0.0
    melt_energy_W_per_m2: float = 0.0
    mass_balance_error_m: float = 0.0


@dataclass
class LakeState:
    """Ice and water of the lake, persisted by the caller between timesteps."""

    ice_thickness_m: float = 0.0
    ice_fraction: float = 0.0
    volume_m3: float = 0.0
    surface_area_m2: float = 0.0


@dataclass(frozen=True)
class Forcing:
    """Atmospheric forcing of one cell for one timestep.

    Pressure terms are in kPa and converted to Pa for the energy balance.
    """

    reference_height_m: float
    displacement_height_m: float
    roughness_length_m: float
    aerodynamic_resistance_s_per_m: float
    wind_speed_m_per_s: float
    shortwave_radiation_W_per_m2: float
    longwave_radiation_W_per_m2: float
    air_density_kg_per_m3: float
    latent_heat_vaporization_J_per_kg: float
    air_temperature_C: float
    air_pressure_kPa: float
    vapor_pressure_deficit_kPa: float
    vapor_pressure_kPa: float
    freezing_temperature_C: float
    surface_attenuation: float
    timestep_hours: float
    ice_cover_fraction: float


@dataclass(frozen=True)
class Precipitation:
    """Precipitation of one cell for one timestep (mm)."""

    rainfall_mm: float = 0.0
    snowfall_mm: float = 0.0


@dataclass
class StepOutputs:
    """Outputs of one timestep.

    Args:
        melt_mm: Water released from the surface layer as runoff (mm).
        ice_melt_m: Lake ice melted to lake water, as water equivalent (m).
        net_energy_W_per_m2: Net energy exchange at the surface.
        net_longwave_W_per_m2: Net longwave radiation.
        advected_energy_W_per_m2: Energy advected by rain.
        delta_cold_content_W_per_m2: Change in cold content of the ice.
        ground_flux_W_per_m2: Conductive flux from the ice base to the surface.
        latent_heat_W_per_m2: Latent heat flux.
        sensible_heat_W_per_m2: Sensible heat flux.
        refreeze_energy_W_per_m2: Energy released by refreezing (negative when melting).
        refrozen_water_m: Surface liquid water frozen into the snow pack (m).
        vapor_flux_m: Vapor flux applied to the reservoirs, positive for a loss (m).
        lake_water_vapor_flux_m: Vapor exchanged directly with the lake water when
            there is no snow pack on the ice, negative for a loss (m).
    """

    melt_mm: float = 0.0
    ice_melt_m: float = 0.0
    net_energy_W_per_m2: float = 0.0
    net_longwave_W_per_m2: float = 0.0
    advected_energy_W_per_m2: float = 0.0
    delta_cold_content_W_per_m2: float = 0.0
    ground_flux_W_per_m2: float = 0.0
    latent_heat_W_per_m2: float = 0.0
    sensible_heat_W_per_m2: float = 0.0
    refreeze_energy_W_per_m2: float = 0.0
    refrozen_water_m: float = 0.0
    vapor_flux_m: float = 0.0
    lake_water_vapor_flux_m: float = 0.0


def report_non_convergence(
    surface_temperature_C: float,
    inputs: IceEnergyBalanceInputs,
    error_message: str,
    context: str = "",
    energy_balance: EnergyBalanceFunction = ice_energy_balance,
) -> str:
    """Dump all inputs and outputs of a failed ice pack energy balance.

    The energy balance is evaluated once more at the temperature returned by the
    root finder, so that the intermediate terms can be inspected. The dump is
    logged at CRITICAL level and returned.

    Args:
        surface_temperature_C: Temperature returned by the root finder (°C).
        inputs: The inputs the root finder was given.
        error_message: Message of the root finder.
        context: Identifies the failing cell and timestep.
        energy_balance: The energy balance function that failed.

    Returns:
        The diagnostic dump.
    """
    result = energy_balance(surface_temperature_C, inputs)

    lines = []
    if context:
        lines.append(context)
    if error_message:
        lines.append(error_message.rstrip("\n"))
    lines.append(
        "ERROR: ice_melt failed to converge to a solution in root_brent. "
        "Variable values will be dumped, check for invalid values."
    )
    lines.append(f"surface_temperature_C = {surface_temperature_C:f}")
    for name, value in inputs.items():
        lines.append(f"{name} = {value:f}")
    for name, value in result._asdict().items():
        lines.append(f"{name} = {value:f}")
    lines.append("Finished dumping ice pack energy balance variables.")
    lines.append("Try increasing snow_dt_C to get model to complete cell.")
    lines.append("Then check output for instabilities.")

    dump = "\n".join(lines)
    logger.critical(dump)
    return dump


def reconcile_state(
    snow_ice_m: float, lake_ice_m: float, snow: SnowIceState, lake: LakeState
) -> None:
    """Write the snow ice and lake ice reservoirs back to the persistent state.

    Calling this twice with the same reservoirs leaves the state unchanged.

    Args:
        snow_ice_m: Ice in the snow pack (m water equivalent).
        lake_ice_m: Lake ice (m water equivalent).
        snow: Snow state, updated in place.
        lake: Lake state, updated in place.
    """
    snow.water_equivalent_m = snow_ice_m + snow.surface_liquid_water_m
    lake.ice_thickness_m = lake_ice_m * RHO_WATER_KG_PER_M3 / RHO_ICE_KG_PER_M3
    if lake.ice_thickness_m <= 0.0:
        lake.ice_thickness_m = 0.0
        lake.ice_fraction = 0.0


def ice_melt(
    forcing: Forcing,
    precipitation: Precipitation,
    snow: SnowIceState,
    lake: LakeState,
    config: IceMeltConfig | None = None,
    energy_balance: EnergyBalanceFunction = ice_energy_balance,
    root_finder: RootFinder | None = None,
    context: str = "",
) -> StepOutputs:
    """Calculate snow accumulation and melt on lake ice for one timestep.

    First the energy balance is evaluated at a surface temperature of 0°C. If
    the surface can be in equilibrium at 0°C, the surface temperature is 0°C
    and the surface either refreezes liquid water or melts snow and ice. Otherwise
    the surface is below freezing: the surface temperature is solved for with a
    root finder and all liquid water in the surface layer refreezes.

    Sublimation is taken from the snow pack and surface water first and then from
    the lake ice. When it exceeds all stored water, the flux is reduced to the
    stored water. Melt is taken from the snow pack first and then from the lake
    ice. Lake ice melts to lake water and is reported as ice melt, while liquid
    water above the holding capacity of the snow pack is released as melt.

    The snow and lake states are updated in place.

    Args:
        forcing: Atmospheric forcing.
        precipitation: Rain and snow falling on the ice.
        snow: Snow state.
        lake: Lake state.
        config: Solver parameters. Defaults are used when None.
        energy_balance: Surface energy balance function.
        root_finder: Root finder called as `root_finder(function, lower, upper)`,
            returning a root and an error message. Defaults to Brent's method
            configured from `config`.
        context: Identifies the cell and timestep in the diagnostic dump.

    Returns:
        The outputs of this timestep.

    Raises:
        IceMeltNonConvergenceError: If the surface temperature cannot be found.
    """
    if config is None:
        config = IceMeltConfig()
    if root_finder is None:
        root_finder = partial(
            root_brent,
            max_bracket_tries=config.root_max_bracket_tries,
            bracket_step=config.root_bracket_step_C,
            max_iterations=config.root_max_iterations,
            tolerance=config.root_tolerance_C,
        )

    timestep_s = forcing.timestep_hours * SECONDS_PER_HOUR
    snow_density_kg_per_m3 = config.snow_density_kg_per_m3

    snowfall_m = precipitation.snowfall_mm / 1000.0
    rainfall_m = precipitation.rainfall_mm / 1000.0
    ice_melt_m = 0.0
    refrozen_water_m = 0.0
    lake_water_vapor_flux_m = 0.0
    melt_energy_W_per_m2 = 0.0

    initial_water_equivalent_m = snow.water_equivalent_m
    old_surface_temperature_C = snow.surface_temperature_C

    snow_ice_m = snow.water_equivalent_m - snow.surface_liquid_water_m
    lake_ice_m = lake.ice_thickness_m * RHO_ICE_KG_PER_M3 / RHO_WATER_KG_PER_M3
    initial_lake_ice_m = lake_ice_m

    snow_ice_m += snowfall_m
    snow.surface_liquid_water_m += rainfall_m

    (
        conductance_W_per_m2_K,
        shortwave_conducted_W_per_m2,
        delta_cold_content_W_per_m2,
    ) = calculate_ice_radiation(
        float(forcing.shortwave_radiation_W_per_m2),
        float(lake.ice_thickness_m),
        float(snow_ice_m * RHO_WATER_KG_PER_M3 / snow_density_kg_per_m3),
    )

    # blowing snow is not simulated on lakes
    snow.blowing_flux_m = 0.0

    inputs = IceEnergyBalanceInputs(
        timestep_hours=float(forcing.timestep_hours),
        aerodynamic_resistance_s_per_m=float(forcing.aerodynamic_resistance_s_per_m),
        reference_height_m=float(forcing.reference_height_m),
        displacement_height_m=float(forcing.displacement_height_m),
        roughness_length_m=float(forcing.roughness_length_m),
        wind_speed_m_per_s=float(forcing.wind_speed_m_per_s),
        shortwave_radiation_W_per_m2=float(forcing.shortwave_radiation_W_per_m2),
        longwave_radiation_W_per_m2=float(forcing.longwave_radiation_W_per_m2),
        air_density_kg_per_m3=float(forcing.air_density_kg_per_m3),
        latent_heat_vaporization_J_per_kg=float(
            forcing.latent_heat_vaporization_J_per_kg
        ),
        air_temperature_C=float(forcing.air_temperature_C),
        air_pressure_Pa=float(forcing.air_pressure_kPa) * 1000.0,
        vapor_pressure_deficit_Pa=float(forcing.vapor_pressure_deficit_kPa) * 1000.0,
        vapor_pressure_Pa=float(forcing.vapor_pressure_kPa) * 1000.0,
        rainfall_m=rainfall_m,
        water_equivalent_m=float(snow.water_equivalent_m + lake_ice_m),
        surface_liquid_water_m=float(snow.surface_liquid_water_m),
        old_surface_temperature_C=float(old_surface_temperature_C),
        blowing_flux_m=float(snow.blowing_flux_m),
        delta_cold_content_W_per_m2=float(delta_cold_content_W_per_m2),
        freezing_temperature_C=float(forcing.freezing_temperature_C),
        conductance_W_per_m2_K=float(conductance_W_per_m2_K),
        shortwave_conducted_W_per_m2=float(shortwave_conducted_W_per_m2),
        snow_depth_m=float(
            snow.water_equivalent_m * RHO_WATER_KG_PER_M3 / snow_density_kg_per_m3
        ),
        snow_density_kg_per_m3=float(snow_density_kg_per_m3),
        surface_attenuation=float(forcing.surface_attenuation),
    )

    # volume of lake water per m of water equivalent on the ice covered part
    lake_water_per_m = forcing.ice_cover_fraction * lake.surface_area_m2

    result = energy_balance(0.0, inputs)
    snow.vapor_flux_m = result.vapor_flux_m
    snow.surface_flux_m = result.surface_flux_m
    refreeze_energy_W_per_m2 = result.refreeze_energy_W_per_m2

    if result.net_energy_W_per_m2 == 0.0:
        branch = "melting"
        snow.surface_temperature_C = 0.0
        if refreeze_energy_W_per_m2 >= 0.0:
            # surface water is freezing
            refrozen_water_m = (
                refreeze_energy_W_per_m2
                / (L_FUSION_J_PER_KG * RHO_WATER_KG_PER_M3)
                * timestep_s
            )
            if refrozen_water_m > snow.surface_liquid_water_m:
                refrozen_water_m = snow.surface_liquid_water_m
                refreeze_energy_W_per_m2 = (
                    refrozen_water_m
                    * L_FUSION_J_PER_KG
                    * RHO_WATER_KG_PER_M3
                    / timestep_s
                )
            melt_energy_W_per_m2 += refreeze_energy_W_per_m2
            snow_ice_m += refrozen_water_m
            snow.surface_liquid_water_m -= refrozen_water_m
            assert snow.surface_liquid_water_m >= 0.0
            snow_melt_m = 0.0
        else:
            snow_melt_m = (
                abs(refreeze_energy_W_per_m2)
                / (L_FUSION_J_PER_KG * RHO_WATER_KG_PER_M3)
                * timestep_s
            )
            melt_energy_W_per_m2 += refreeze_energy_W_per_m2

        # sublimation from snow and surface water first, then from lake ice
        stored_water_m = snow_ice_m + snow.surface_liquid_water_m + lake_ice_m
        if stored_water_m < -snow.vapor_flux_m:
            snow.blowing_flux_m *= -stored_water_m / snow.vapor_flux_m
            snow.vapor_flux_m = -stored_water_m
            snow.surface_flux_m = -stored_water_m - snow.blowing_flux_m
            lake.volume_m3 -= lake_ice_m * lake_water_per_m
            lake_ice_m = 0.0
            snow_ice_m = 0.0
            snow.surface_liquid_water_m = 0.0
        elif (
            snow_ice_m + snow.surface_liquid_water_m < -snow.vapor_flux_m
            and stored_water_m >= -snow.vapor_flux_m
        ):
            # snow ice and surface water are used up, the rest comes from lake ice
            lake_ice_shortfall_m = (
                snow.vapor_flux_m + snow_ice_m + snow.surface_liquid_water_m
            )
            lake_ice_m += lake_ice_shortfall_m
            lake.volume_m3 += lake_water_per_m * lake_ice_shortfall_m
            snow_ice_m = 0.0
            snow.surface_liquid_water_m = 0.0
        elif -snow.vapor_flux_m > snow.surface_liquid_water_m:
            snow_ice_m += snow.vapor_flux_m + snow.surface_liquid_water_m
            snow.surface_liquid_water_m = 0.0
        else:
            snow.surface_liquid_water_m += snow.vapor_flux_m

        # melt the snow pack first, then the lake ice
        if snow_melt_m < snow_ice_m:
            snow.surface_liquid_water_m += snow_melt_m
            snow_ice_m -= snow_melt_m
        elif snow_melt_m < snow_ice_m + lake_ice_m:
            snow.surface_liquid_water_m += snow_ice_m
            ice_melt_m = snow_melt_m - snow_ice_m
            lake_ice_m -= ice_melt_m
            snow_ice_m = 0.0
        else:
            snow.surface_liquid_water_m += snow_ice_m
            ice_melt_m = lake_ice_m
            snow_ice_m = 0.0
            lake_ice_m = 0.0

    else:
        branch = "freezing"

        def net_energy(surface_temperature_C: float) -> float:
            return energy_balance(surface_temperature_C, inputs).net_energy_W_per_m2

        surface_temperature_C, error_message = root_finder(
            net_energy,
            snow.surface_temperature_C - config.snow_dt_C,
            0.0,
        )
        if surface_temperature_C <= ROOT_BRENT_FAILURE_THRESHOLD:
            dump = report_non_convergence(
                surface_temperature_C,
                inputs,
                error_message,
                context=context,
                energy_balance=energy_balance,
            )
            raise IceMeltNonConvergenceError(dump, surface_temperature_C)
        snow.surface_temperature_C = surface_temperature_C

        result = energy_balance(surface_temperature_C, inputs)
        snow.vapor_flux_m = result.vapor_flux_m
        snow.surface_flux_m = result.surface_flux_m
        refreeze_energy_W_per_m2 = result.refreeze_energy_W_per_m2

        # the surface is below freezing, so all surface water freezes
        snow_melt_m = 0.0
        snow_ice_m += snow.surface_liquid_water_m
        melt_energy_W_per_m2 += (
            snow.surface_liquid_water_m
            * L_FUSION_J_PER_KG
            * RHO_WATER_KG_PER_M3
            / timestep_s
        )
        refrozen_water_m = snow.surface_liquid_water_m
        snow.surface_liquid_water_m = 0.0

        stored_water_m = snow_ice_m + lake_ice_m
        if stored_water_m < -snow.vapor_flux_m:
            snow.blowing_flux_m *= -stored_water_m / snow.vapor_flux_m
            snow.vapor_flux_m = -stored_water_m
            snow.surface_flux_m = -stored_water_m - snow.blowing_flux_m
            lake.volume_m3 -= lake_water_per_m * lake_ice_m
            lake_ice_m = 0.0
            snow_ice_m = 0.0
        elif snow_ice_m < -snow.vapor_flux_m and stored_water_m >= -snow.vapor_flux_m:
            lake_ice_m += snow.vapor_flux_m + snow_ice_m
            lake.volume_m3 += lake_water_per_m * (snow.vapor_flux_m + snow_ice_m)
            snow_ice_m = 0.0
        elif snow_ice_m > 0.0:
            snow_ice_m += snow.vapor_flux_m
        else:
            # no snow pack, vapor exchange is with the lake water
            lake.volume_m3 += lake_water_per_m * snow.vapor_flux_m
            lake_water_vapor_flux_m = snow.vapor_flux_m

    assert snow.surface_liquid_water_m >= 0.0

    # liquid water above the holding capacity of the snow pack is released
    max_liquid_water_m = config.liquid_water_capacity * snow_ice_m
    if snow.surface_liquid_water_m > max_liquid_water_m:
        melt_m = snow.surface_liquid_water_m - max_liquid_water_m
        snow.surface_liquid_water_m = max_liquid_water_m
    else:
        melt_m = 0.0

    reconcile_state(snow_ice_m, lake_ice_m, snow, lake)

    snow.mass_balance_error_m = (
        (initial_water_equivalent_m - snow.water_equivalent_m)
        + (initial_lake_ice_m - lake_ice_m)
        + (rainfall_m + snowfall_m)
        - ice_melt_m
        - melt_m
        + snow.vapor_flux_m
        - lake_water_vapor_flux_m
    )
    snow.melt_energy_W_per_m2 = melt_energy_W_per_m2
    snow.vapor_flux_m *= -1.0

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            f"{context} ice_melt {branch}: surface temperature "
            f"{snow.surface_temperature_C:.4f} °C, melt {melt_m:.6e} m, "
            f"ice melt {ice_melt_m:.6e} m, mass balance error "
            f"{snow.mass_balance_error_m:.3e} m"
        )

    return StepOutputs(
        melt_mm=melt_m * 1000.0,
        ice_melt_m=ice_melt_m,
        net_energy_W_per_m2=result.net_energy_W_per_m2,
        net_longwave_W_per_m2=result.net_longwave_W_per_m2,
        advected_energy_W_per_m2=result.advected_energy_W_per_m2,
        delta_cold_content_W_per_m2=float(delta_cold_content_W_per_m2),
        ground_flux_W_per_m2=result.ground_flux_W_per_m2,
        latent_heat_W_per_m2=result.latent_heat_W_per_m2,
        sensible_heat_W_per_m2=result.sensible_heat_W_per_m2,
        refreeze_energy_W_per_m2=refreeze_energy_W_per_m2,
        refrozen_water_m=refrozen_water_m,
        vapor_flux_m=snow.vapor_flux_m,
        lake_water_vapor_flux_m=lake_water_vapor_flux_m,
    )
