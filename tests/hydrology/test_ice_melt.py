"""Tests for the lake snow and ice melt solver."""

import logging
import math
from dataclasses import fields, replace

import matplotlib.pyplot as plt
import numpy as np
import pytest

import lakeice.hydrology.ice_melt as ice_melt_module
from lakeice.config import IceMeltConfig
from lakeice.hydrology.constants import (
    L_FUSION_J_PER_KG,
    RHO_ICE_KG_PER_M3,
    RHO_WATER_KG_PER_M3,
)
from lakeice.hydrology.ice_energy_balance import (
    IceEnergyBalanceInputs,
    IceEnergyBalanceResult,
    saturation_vapor_pressure_kPa,
)
from lakeice.hydrology.ice_melt import (
    Forcing,
    IceMeltNonConvergenceError,
    LakeState,
    Precipitation,
    SnowIceState,
    ice_melt,
    reconcile_state,
)

from ..testconfig import output_folder

output_folder_ice_melt = output_folder / "ice_melt"
output_folder_ice_melt.mkdir(exist_ok=True)

BASE_FORCING = Forcing(
    reference_height_m=2.0,
    displacement_height_m=0.0,
    roughness_length_m=0.001,
    aerodynamic_resistance_s_per_m=100.0,
    wind_speed_m_per_s=3.0,
    shortwave_radiation_W_per_m2=100.0,
    longwave_radiation_W_per_m2=250.0,
    air_density_kg_per_m3=1.29,
    latent_heat_vaporization_J_per_kg=2.5e6,
    air_temperature_C=-5.0,
    air_pressure_kPa=100.0,
    vapor_pressure_deficit_kPa=0.05,
    vapor_pressure_kPa=0.35,
    freezing_temperature_C=0.0,
    surface_attenuation=0.3,
    timestep_hours=1.0,
    ice_cover_fraction=1.0,
)

COLD_FORCING = replace(
    BASE_FORCING,
    air_temperature_C=-20.0,
    shortwave_radiation_W_per_m2=0.0,
    longwave_radiation_W_per_m2=180.0,
    vapor_pressure_kPa=0.09,
    vapor_pressure_deficit_kPa=0.013,
)


def constant_energy_balance(
    net_energy_W_per_m2: float = 0.0,
    refreeze_energy_W_per_m2: float = 0.0,
    vapor_flux_m: float = 0.0,
):
    """Energy balance that returns the same result at every surface temperature."""

    def energy_balance(
        surface_temperature_C: float, inputs: IceEnergyBalanceInputs
    ) -> IceEnergyBalanceResult:
        return IceEnergyBalanceResult(
            net_energy_W_per_m2=net_energy_W_per_m2,
            refreeze_energy_W_per_m2=refreeze_energy_W_per_m2,
            vapor_flux_m=vapor_flux_m,
            blowing_flux_m=0.0,
            surface_flux_m=vapor_flux_m,
            advected_energy_W_per_m2=0.0,
            ground_flux_W_per_m2=0.0,
            latent_heat_W_per_m2=0.0,
            sensible_heat_W_per_m2=0.0,
            net_longwave_W_per_m2=0.0,
        )

    return energy_balance


def failing_root_finder(function, lower_bound: float, upper_bound: float):
    """Root finder that always fails to bracket the root."""
    return -9999.0, "ERROR: First error in root_brent -- unable to bracket.\n"


def lake_ice_water_equivalent(ice_thickness_m: float) -> float:
    return ice_thickness_m * RHO_ICE_KG_PER_M3 / RHO_WATER_KG_PER_M3


def test_refreeze_surface_water() -> None:
    """Test refreezing of surface water at 0°C with positive refreeze energy."""
    snow = SnowIceState(water_equivalent_m=0.1, surface_liquid_water_m=0.003)
    lake = LakeState(
        ice_thickness_m=0.2, ice_fraction=1.0, volume_m3=1e6, surface_area_m2=1e5
    )

    outputs = ice_melt(
        BASE_FORCING,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(refreeze_energy_W_per_m2=5.0),
    )

    expected_refrozen_m = 5.0 / (L_FUSION_J_PER_KG * RHO_WATER_KG_PER_M3) * 3600.0
    assert expected_refrozen_m > 0.0
    assert math.isclose(outputs.refrozen_water_m, expected_refrozen_m, rel_tol=1e-12)
    assert math.isclose(
        snow.surface_liquid_water_m, 0.003 - expected_refrozen_m, rel_tol=1e-12
    )
    assert math.isclose(snow.melt_energy_W_per_m2, 5.0)
    assert outputs.refreeze_energy_W_per_m2 == 5.0
    assert outputs.melt_mm == 0.0
    assert outputs.ice_melt_m == 0.0
    assert snow.surface_temperature_C == 0.0
    # total water equivalent does not change when water refreezes
    assert math.isclose(snow.water_equivalent_m, 0.1, rel_tol=1e-12)
    assert math.isclose(lake.ice_thickness_m, 0.2, rel_tol=1e-12)
    assert abs(snow.mass_balance_error_m) < 1e-12


def test_refreeze_limited_by_surface_water() -> None:
    """Test that refreezing cannot exceed the available surface water."""
    snow = SnowIceState(water_equivalent_m=0.1, surface_liquid_water_m=1e-5)
    lake = LakeState()

    outputs = ice_melt(
        BASE_FORCING,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(refreeze_energy_W_per_m2=500.0),
    )

    assert outputs.refrozen_water_m == 1e-5
    assert snow.surface_liquid_water_m == 0.0
    expected_energy = 1e-5 * L_FUSION_J_PER_KG * RHO_WATER_KG_PER_M3 / 3600.0
    assert math.isclose(outputs.refreeze_energy_W_per_m2, expected_energy)
    assert math.isclose(snow.melt_energy_W_per_m2, expected_energy)


def test_zero_refreeze_energy() -> None:
    """Test that equilibrium at 0°C without refreeze energy neither melts nor freezes."""
    snow = SnowIceState(water_equivalent_m=0.05, surface_liquid_water_m=0.001)
    lake = LakeState(ice_thickness_m=0.1, ice_fraction=0.5)

    outputs = ice_melt(
        BASE_FORCING,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(),
    )

    assert outputs.melt_mm == 0.0
    assert outputs.refrozen_water_m == 0.0
    assert outputs.ice_melt_m == 0.0
    assert snow.melt_energy_W_per_m2 == 0.0
    assert snow.surface_liquid_water_m == 0.001
    assert math.isclose(snow.water_equivalent_m, 0.05)
    assert math.isclose(lake.ice_thickness_m, 0.1)
    assert lake.ice_fraction == 0.5


def test_melt_snow_then_lake_ice() -> None:
    """Test that melt is taken from the snow first and then from the lake ice."""
    snow = SnowIceState(water_equivalent_m=0.01, surface_liquid_water_m=0.0)
    lake = LakeState(ice_thickness_m=0.5, ice_fraction=1.0)
    lake_ice_m = lake_ice_water_equivalent(0.5)

    refreeze_energy_W_per_m2 = -0.03 * L_FUSION_J_PER_KG * RHO_WATER_KG_PER_M3 / 3600.0
    outputs = ice_melt(
        BASE_FORCING,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(
            refreeze_energy_W_per_m2=refreeze_energy_W_per_m2
        ),
    )

    # 0.01 m of snow melts to surface water, 0.02 m of lake ice melts to lake water
    assert math.isclose(outputs.ice_melt_m, 0.02, rel_tol=1e-9)
    assert math.isclose(
        lake_ice_water_equivalent(lake.ice_thickness_m),
        lake_ice_m - 0.02,
        rel_tol=1e-9,
    )
    # no snow ice left to hold liquid water
    assert math.isclose(outputs.melt_mm, 10.0, rel_tol=1e-9)
    assert snow.water_equivalent_m == 0.0
    assert math.isclose(snow.melt_energy_W_per_m2, refreeze_energy_W_per_m2)
    assert abs(snow.mass_balance_error_m) < 1e-12


def test_melt_exceeding_all_ice() -> None:
    """Test that melt larger than all snow and lake ice is capped at the total ice."""
    snow = SnowIceState(water_equivalent_m=0.05, surface_liquid_water_m=0.0)
    lake = LakeState(
        ice_thickness_m=0.1, ice_fraction=0.8, volume_m3=1e6, surface_area_m2=1e5
    )
    prior_lake_ice_m = lake_ice_water_equivalent(0.1)

    outputs = ice_melt(
        BASE_FORCING,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(refreeze_energy_W_per_m2=-1e6),
    )

    assert math.isclose(outputs.ice_melt_m, prior_lake_ice_m, rel_tol=1e-12)
    assert lake.ice_thickness_m == 0.0
    assert lake.ice_fraction == 0.0
    assert snow.water_equivalent_m == 0.0
    assert snow.surface_liquid_water_m == 0.0
    assert math.isclose(outputs.melt_mm, 50.0, rel_tol=1e-12)
    # lake volume is not changed by melt
    assert lake.volume_m3 == 1e6
    assert abs(snow.mass_balance_error_m) < 1e-12


def test_vapor_flux_exceeding_all_storage() -> None:
    """Test that sublimation larger than all stored water is limited to the stored water."""
    snow = SnowIceState(water_equivalent_m=0.02, surface_liquid_water_m=0.001)
    lake = LakeState(
        ice_thickness_m=0.05, ice_fraction=0.8, volume_m3=1e7, surface_area_m2=1e6
    )
    forcing = replace(BASE_FORCING, ice_cover_fraction=0.8)
    prior_lake_ice_m = lake_ice_water_equivalent(0.05)
    combined_m = 0.02 + prior_lake_ice_m

    outputs = ice_melt(
        forcing,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(vapor_flux_m=-1.0),
    )

    assert math.isclose(snow.vapor_flux_m, combined_m, rel_tol=1e-12)
    assert math.isclose(outputs.vapor_flux_m, combined_m, rel_tol=1e-12)
    assert math.isclose(snow.surface_flux_m, -combined_m, rel_tol=1e-12)
    assert snow.blowing_flux_m == 0.0
    assert math.isclose(
        lake.volume_m3, 1e7 - prior_lake_ice_m * 0.8 * 1e6, rel_tol=1e-12
    )
    assert snow.water_equivalent_m == 0.0
    assert snow.surface_liquid_water_m == 0.0
    assert lake.ice_thickness_m == 0.0
    assert lake.ice_fraction == 0.0
    assert outputs.melt_mm == 0.0
    assert abs(snow.mass_balance_error_m) < 1e-12


def test_vapor_flux_taken_from_lake_ice() -> None:
    """Test that sublimation beyond the snow pack is taken from the lake ice."""
    snow = SnowIceState(water_equivalent_m=0.02, surface_liquid_water_m=0.001)
    lake = LakeState(
        ice_thickness_m=0.05, ice_fraction=1.0, volume_m3=1e7, surface_area_m2=1e6
    )
    prior_lake_ice_m = lake_ice_water_equivalent(0.05)

    outputs = ice_melt(
        BASE_FORCING,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(vapor_flux_m=-0.03),
    )

    # 0.019 m of snow ice, 0.001 m of surface water and 0.01 m of lake ice sublimate
    assert math.isclose(
        lake_ice_water_equivalent(lake.ice_thickness_m),
        prior_lake_ice_m - 0.01,
        rel_tol=1e-9,
    )
    assert math.isclose(lake.volume_m3, 1e7 - 0.01 * 1e6, rel_tol=1e-12)
    assert outputs.melt_mm == 0.0
    assert outputs.ice_melt_m == 0.0
    assert snow.water_equivalent_m == 0.0
    assert snow.surface_liquid_water_m == 0.0
    assert math.isclose(outputs.vapor_flux_m, 0.03)
    assert abs(snow.mass_balance_error_m) < 1e-12


def test_vapor_flux_with_more_surface_water_than_snow_ice() -> None:
    """Test that lake ice stays non-negative when surface water exceeds snow ice."""
    lake_ice_m = 0.001
    snow = SnowIceState(water_equivalent_m=0.003, surface_liquid_water_m=0.002)
    lake = LakeState(
        ice_thickness_m=lake_ice_m * RHO_WATER_KG_PER_M3 / RHO_ICE_KG_PER_M3,
        ice_fraction=1.0,
        volume_m3=1e6,
        surface_area_m2=1e5,
    )

    outputs = ice_melt(
        BASE_FORCING,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(vapor_flux_m=-0.0035),
    )

    assert outputs.ice_melt_m >= 0.0
    assert lake.ice_thickness_m >= 0.0
    # 0.001 m of snow ice, 0.002 m of surface water and 0.0005 m of lake ice
    assert math.isclose(
        lake_ice_water_equivalent(lake.ice_thickness_m), 0.0005, rel_tol=1e-9
    )
    assert math.isclose(lake.volume_m3, 1e6 - 0.0005 * 1e5, rel_tol=1e-12)
    assert outputs.melt_mm == 0.0
    assert snow.water_equivalent_m == 0.0
    assert math.isclose(outputs.vapor_flux_m, 0.0035)
    assert abs(snow.mass_balance_error_m) < 1e-12


def test_vapor_flux_exceeding_all_storage_below_zero() -> None:
    """Test that sublimation below freezing is limited to the snow and lake ice."""
    snow = SnowIceState(water_equivalent_m=0.01, surface_temperature_C=-2.0)
    lake = LakeState(
        ice_thickness_m=0.01, ice_fraction=1.0, volume_m3=1e6, surface_area_m2=1e5
    )
    prior_lake_ice_m = lake_ice_water_equivalent(0.01)

    outputs = ice_melt(
        BASE_FORCING,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(
            net_energy_W_per_m2=-10.0, vapor_flux_m=-0.05
        ),
        root_finder=lambda function, lower_bound, upper_bound: (-3.0, ""),
    )

    assert snow.surface_temperature_C == -3.0
    assert math.isclose(outputs.vapor_flux_m, 0.01 + prior_lake_ice_m, rel_tol=1e-12)
    assert math.isclose(lake.volume_m3, 1e6 - prior_lake_ice_m * 1.0 * 1e5)
    assert snow.water_equivalent_m == 0.0
    assert lake.ice_thickness_m == 0.0
    assert lake.ice_fraction == 0.0
    assert outputs.ice_melt_m == 0.0
    assert abs(snow.mass_balance_error_m) < 1e-12


def test_vapor_flux_taken_from_lake_ice_below_zero() -> None:
    """Test that sublimation beyond the snow pack below freezing uses the lake ice."""
    snow = SnowIceState(
        water_equivalent_m=0.01,
        surface_liquid_water_m=0.002,
        surface_temperature_C=-2.0,
    )
    lake = LakeState(
        ice_thickness_m=0.1, ice_fraction=0.5, volume_m3=1e6, surface_area_m2=1e5
    )
    forcing = replace(BASE_FORCING, ice_cover_fraction=0.5)
    prior_lake_ice_m = lake_ice_water_equivalent(0.1)

    outputs = ice_melt(
        forcing,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(
            net_energy_W_per_m2=-10.0, vapor_flux_m=-0.03
        ),
        root_finder=lambda function, lower_bound, upper_bound: (-3.0, ""),
    )

    # the surface water freezes, so 0.01 m of snow ice and 0.02 m of lake ice sublimate
    assert math.isclose(outputs.refrozen_water_m, 0.002)
    assert math.isclose(
        lake_ice_water_equivalent(lake.ice_thickness_m),
        prior_lake_ice_m - 0.02,
        rel_tol=1e-9,
    )
    assert math.isclose(lake.volume_m3, 1e6 - 0.02 * 0.5 * 1e5, rel_tol=1e-12)
    assert snow.water_equivalent_m == 0.0
    assert lake.ice_fraction == 0.5
    assert math.isclose(outputs.vapor_flux_m, 0.03)
    assert outputs.lake_water_vapor_flux_m == 0.0
    assert abs(snow.mass_balance_error_m) < 1e-12


def test_vapor_flux_from_surface_water_and_snow() -> None:
    """Test that sublimation is taken from surface water before the snow ice."""
    snow = SnowIceState(water_equivalent_m=0.1, surface_liquid_water_m=0.001)
    lake = LakeState(ice_thickness_m=0.2, ice_fraction=1.0)

    ice_melt(
        BASE_FORCING,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(vapor_flux_m=-0.0005),
    )
    assert math.isclose(snow.surface_liquid_water_m, 0.0005)
    assert math.isclose(snow.water_equivalent_m, 0.0995)

    snow = SnowIceState(water_equivalent_m=0.1, surface_liquid_water_m=0.001)
    ice_melt(
        BASE_FORCING,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(vapor_flux_m=-0.003),
    )
    assert snow.surface_liquid_water_m == 0.0
    assert math.isclose(snow.water_equivalent_m, 0.097)
    assert math.isclose(lake.ice_thickness_m, 0.2)
    assert abs(snow.mass_balance_error_m) < 1e-12


def test_surface_water_freezes_below_zero() -> None:
    """Test that all surface water freezes when the surface is below freezing."""
    snow = SnowIceState(
        water_equivalent_m=0.05,
        surface_liquid_water_m=0.001,
        surface_temperature_C=-5.0,
    )
    lake = LakeState(
        ice_thickness_m=0.3, ice_fraction=1.0, volume_m3=1e6, surface_area_m2=1e5
    )

    outputs = ice_melt(
        COLD_FORCING, Precipitation(rainfall_mm=1.0), snow, lake
    )

    assert snow.surface_temperature_C < 0.0
    assert snow.surface_liquid_water_m == 0.0
    assert math.isclose(outputs.refrozen_water_m, 0.002)
    assert math.isclose(
        snow.melt_energy_W_per_m2,
        0.002 * L_FUSION_J_PER_KG * RHO_WATER_KG_PER_M3 / 3600.0,
    )
    assert outputs.melt_mm == 0.0
    assert outputs.ice_melt_m == 0.0
    assert abs(outputs.net_energy_W_per_m2) < 1e-3
    assert abs(snow.mass_balance_error_m) < 1e-9


def test_deposition_on_bare_lake_ice() -> None:
    """Test that without snow, deposition below freezing goes to the lake water."""
    snow = SnowIceState(surface_temperature_C=-2.0)
    lake = LakeState(
        ice_thickness_m=0.3, ice_fraction=0.5, volume_m3=1e6, surface_area_m2=1e5
    )
    forcing = replace(BASE_FORCING, ice_cover_fraction=0.5)

    outputs = ice_melt(
        forcing,
        Precipitation(),
        snow,
        lake,
        energy_balance=constant_energy_balance(
            net_energy_W_per_m2=-10.0, vapor_flux_m=0.001
        ),
        root_finder=lambda function, lower_bound, upper_bound: (-3.0, ""),
    )

    assert snow.surface_temperature_C == -3.0
    assert math.isclose(lake.volume_m3, 1e6 + 0.001 * 0.5 * 1e5)
    assert outputs.lake_water_vapor_flux_m == 0.001
    assert snow.water_equivalent_m == 0.0
    assert math.isclose(lake.ice_thickness_m, 0.3)
    assert abs(snow.mass_balance_error_m) < 1e-12


def test_non_convergence(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    """Test that a failing root finder dumps all variables once and raises."""
    calls = []
    report_non_convergence = ice_melt_module.report_non_convergence

    def counting_report_non_convergence(*args, **kwargs) -> str:
        calls.append(args)
        return report_non_convergence(*args, **kwargs)

    monkeypatch.setattr(
        ice_melt_module, "report_non_convergence", counting_report_non_convergence
    )

    snow = SnowIceState(water_equivalent_m=0.05, surface_temperature_C=-10.0)
    lake = LakeState(ice_thickness_m=0.3, ice_fraction=1.0)

    with caplog.at_level(logging.CRITICAL, logger="lakeice"):
        with pytest.raises(IceMeltNonConvergenceError) as excinfo:
            ice_melt(
                COLD_FORCING,
                Precipitation(),
                snow,
                lake,
                root_finder=failing_root_finder,
                context="Lake 7, timestep 3",
            )

    assert len(calls) == 1
    critical_records = [
        record for record in caplog.records if record.levelno == logging.CRITICAL
    ]
    assert len(critical_records) == 1

    dump = excinfo.value.dump
    assert critical_records[0].getMessage() == dump
    assert excinfo.value.surface_temperature_C == -9999.0

    lines = dump.splitlines()
    assert lines[0] == "Lake 7, timestep 3"
    assert lines[1].startswith("ERROR: First error in root_brent")
    assert "Try increasing snow_dt_C to get model to complete cell." in dump
    assert "surface_temperature_C = -9999.000000" in lines

    names = [line.split(" = ")[0] for line in lines if " = " in line]
    for field in fields(IceEnergyBalanceInputs):
        assert field.name in names
    for name in IceEnergyBalanceResult._fields:
        assert name in names


def test_non_convergence_with_default_root_finder() -> None:
    """Test that an impossible bracket is reported as non-convergence."""
    snow = SnowIceState(water_equivalent_m=0.05, surface_temperature_C=-1.0)
    lake = LakeState(ice_thickness_m=0.3, ice_fraction=1.0)

    config = IceMeltConfig(root_max_bracket_tries=0)
    # the energy balance is negative everywhere, so there is no root to bracket
    with pytest.raises(IceMeltNonConvergenceError):
        ice_melt(
            COLD_FORCING,
            Precipitation(),
            snow,
            lake,
            config=config,
            energy_balance=constant_energy_balance(net_energy_W_per_m2=-10.0),
        )


def test_reconcile_state_is_idempotent() -> None:
    """Test that reconciling the same reservoirs twice does not change the state."""
    snow = SnowIceState(water_equivalent_m=1.0, surface_liquid_water_m=0.002)
    lake = LakeState(ice_thickness_m=1.0, ice_fraction=0.7)

    reconcile_state(0.04, 0.2, snow, lake)
    first = (replace(snow), replace(lake))
    reconcile_state(0.04, 0.2, snow, lake)

    assert (snow, lake) == first
    assert math.isclose(snow.water_equivalent_m, 0.042)
    assert math.isclose(lake.ice_thickness_m, 0.2 * 1000.0 / 917.0)
    assert lake.ice_fraction == 0.7

    reconcile_state(0.04, 0.0, snow, lake)
    first = (replace(snow), replace(lake))
    reconcile_state(0.04, 0.0, snow, lake)
    assert (snow, lake) == first
    assert lake.ice_thickness_m == 0.0
    assert lake.ice_fraction == 0.0


def random_forcing(rng: np.random.Generator) -> Forcing:
    air_temperature_C = float(rng.uniform(-30.0, 5.0))
    saturation_vapor_pressure = saturation_vapor_pressure_kPa(air_temperature_C)
    relative_humidity = float(rng.uniform(0.3, 1.0))
    vapor_pressure_kPa = saturation_vapor_pressure * relative_humidity
    return Forcing(
        reference_height_m=2.0,
        displacement_height_m=0.0,
        roughness_length_m=float(rng.uniform(0.0005, 0.005)),
        aerodynamic_resistance_s_per_m=float(rng.uniform(50.0, 300.0)),
        wind_speed_m_per_s=float(rng.uniform(0.0, 10.0)),
        shortwave_radiation_W_per_m2=float(rng.uniform(0.0, 300.0)),
        longwave_radiation_W_per_m2=float(rng.uniform(150.0, 350.0)),
        air_density_kg_per_m3=float(rng.uniform(1.2, 1.4)),
        latent_heat_vaporization_J_per_kg=2.5e6,
        air_temperature_C=air_temperature_C,
        air_pressure_kPa=float(rng.uniform(90.0, 102.0)),
        vapor_pressure_deficit_kPa=saturation_vapor_pressure - vapor_pressure_kPa,
        vapor_pressure_kPa=vapor_pressure_kPa,
        freezing_temperature_C=0.0,
        surface_attenuation=float(rng.uniform(0.0, 0.5)),
        timestep_hours=float(rng.choice([1.0, 3.0])),
        ice_cover_fraction=float(rng.uniform(0.1, 1.0)),
    )


def test_random_forcing_conserves_mass() -> None:
    """Test the invariants and the mass balance for randomized forcing and states."""
    rng = np.random.default_rng(42)
    config = IceMeltConfig()

    for _ in range(300):
        forcing = random_forcing(rng)

        snow_ice_m = float(rng.uniform(0.001, 0.3))
        surface_liquid_water_m = float(
            rng.uniform(0.0, config.liquid_water_capacity * snow_ice_m)
        )
        ice_thickness_m = float(rng.choice([0.0, rng.uniform(0.01, 1.0)]))
        snow = SnowIceState(
            water_equivalent_m=snow_ice_m + surface_liquid_water_m,
            surface_liquid_water_m=surface_liquid_water_m,
            surface_temperature_C=float(rng.uniform(-20.0, 0.0)),
        )
        lake = LakeState(
            ice_thickness_m=ice_thickness_m,
            ice_fraction=forcing.ice_cover_fraction if ice_thickness_m > 0 else 0.0,
            volume_m3=1e7,
            surface_area_m2=1e6,
        )
        precipitation = Precipitation(
            rainfall_mm=float(rng.uniform(0.0, 5.0)),
            snowfall_mm=float(rng.uniform(0.0, 5.0)),
        )

        ice_melt(forcing, precipitation, snow, lake, config=config)

        assert abs(snow.mass_balance_error_m) < 1e-9
        assert snow.surface_temperature_C <= 0.0
        assert snow.surface_liquid_water_m >= 0.0
        assert snow.water_equivalent_m >= 0.0
        assert snow.surface_liquid_water_m <= (
            config.liquid_water_capacity
            * (snow.water_equivalent_m - snow.surface_liquid_water_m)
            + 1e-12
        )
        assert lake.ice_thickness_m >= 0.0
        if lake.ice_thickness_m == 0.0:
            assert lake.ice_fraction == 0.0


def test_ice_melt_season() -> None:
    """Test a cold period with snowfall followed by a warm period with rain."""
    snow = SnowIceState(surface_temperature_C=-1.0)
    lake = LakeState(
        ice_thickness_m=0.4, ice_fraction=1.0, volume_m3=1e7, surface_area_m2=1e6
    )

    n_cold = 72
    n_warm = 96
    surface_temperature_C = []
    water_equivalent_m = []
    ice_thickness_m = []
    melt_mm = []

    for hour in range(n_cold + n_warm):
        if hour < n_cold:
            forcing = replace(
                COLD_FORCING,
                air_temperature_C=-10.0,
                vapor_pressure_kPa=0.9 * saturation_vapor_pressure_kPa(-10.0),
                vapor_pressure_deficit_kPa=0.1 * saturation_vapor_pressure_kPa(-10.0),
            )
            precipitation = Precipitation(snowfall_mm=1.0)
        else:
            forcing = replace(
                BASE_FORCING,
                air_temperature_C=8.0,
                shortwave_radiation_W_per_m2=300.0,
                longwave_radiation_W_per_m2=320.0,
                vapor_pressure_kPa=0.9 * saturation_vapor_pressure_kPa(8.0),
                vapor_pressure_deficit_kPa=0.1 * saturation_vapor_pressure_kPa(8.0),
            )
            precipitation = Precipitation(rainfall_mm=1.0)

        outputs = ice_melt(forcing, precipitation, snow, lake)

        assert abs(snow.mass_balance_error_m) < 1e-9
        surface_temperature_C.append(snow.surface_temperature_C)
        water_equivalent_m.append(snow.water_equivalent_m)
        ice_thickness_m.append(lake.ice_thickness_m)
        melt_mm.append(outputs.melt_mm)

    assert water_equivalent_m[n_cold - 1] > 0.02
    assert max(surface_temperature_C[:n_cold]) < 0.0
    assert surface_temperature_C[-1] == 0.0
    assert sum(melt_mm[n_cold:]) > 0.0

    fig, axes = plt.subplots(4, 1, figsize=(8, 10), sharex=True)
    axes[0].plot(surface_temperature_C)
    axes[0].set_ylabel("Surface temperature (°C)")
    axes[1].plot(water_equivalent_m)
    axes[1].set_ylabel("Snow water equivalent (m)")
    axes[2].plot(ice_thickness_m)
    axes[2].set_ylabel("Ice thickness (m)")
    axes[3].plot(melt_mm)
    axes[3].set_ylabel("Melt (mm)")
    axes[3].set_xlabel("Hour")
    plt.tight_layout()
    plt.savefig(output_folder_ice_melt / "ice_melt_season.png")
    plt.close()
