"""Lake ice module: steps the snow and ice on all lakes of the model."""

from __future__ import annotations

import logging
import sys
import threading
from dataclasses import asdict, fields, replace
from typing import Sequence

import numpy as np

from lakeice.config import ModelConfig
from lakeice.module import Module
from lakeice.types import ArrayFloat, ArrayFloat64
from lakeice.workflows import TimingModule, balance_check

from .constants import RHO_ICE_KG_PER_M3, RHO_WATER_KG_PER_M3
from .ice_melt import (
    Forcing,
    IceMeltNonConvergenceError,
    LakeState,
    Precipitation,
    SnowIceState,
    StepOutputs,
    RootFinder,
    ice_melt,
)

logger = logging.getLogger("lakeice")

# Serializes termination of the run when several cells fail at the same time.
_termination_lock = threading.Lock()


def terminate_run(error: IceMeltNonConvergenceError) -> None:
    """Terminate the run after a cell failed to converge.

    Args:
        error: The error of the failing cell. Its dump has already been logged.

    Raises:
        SystemExit: Always, with exit code 1.
    """
    with _termination_lock:
        logger.critical(
            f"Terminating run: surface temperature could not be solved "
            f"(root finder returned {error.surface_temperature_C})."
        )
        sys.exit(1)


class LakeIce(Module):
    """Snow and ice on lakes.

    Each lake is an independent cell with its own snow and lake state. Every
    timestep, the ice melt solver is called for each cell. The states are
    updated in place and the outputs are collected in arrays.

    What happens when the surface temperature of a cell cannot be solved is set
    by `config.on_non_convergence`:
        - "exit": the run is terminated.
        - "raise": the error is raised to the caller.
        - "skip": the state of the cell is restored to the start of the timestep,
          the cell is recorded in `failed_cells` and the run continues.

    Args:
        config: The model configuration.
        surface_area_m2: Surface area of each lake (m2).
        volume_m3: Initial water volume of each lake (m3).
        timing: Whether to log the time spent in each step.
        root_finder: Root finder passed to the ice melt solver. Defaults to
            Brent's method configured from `config.ice_melt`.
    """

    def __init__(
        self,
        config: ModelConfig,
        surface_area_m2: ArrayFloat,
        volume_m3: ArrayFloat,
        timing: bool = False,
        root_finder: RootFinder | None = None,
    ) -> None:
        super().__init__(config)
        assert surface_area_m2.shape == volume_m3.shape
        self.surface_area_m2 = np.asarray(surface_area_m2, dtype=np.float64)
        self.initial_volume_m3 = np.asarray(volume_m3, dtype=np.float64)
        self.timing = timing
        self.root_finder = root_finder

        self.snow: list[SnowIceState] = []
        self.lake: list[LakeState] = []
        self.failed_cells: list[tuple[int, int]] = []
        self.current_timestep: int = 0

        self.spinup()

    @property
    def name(self) -> str:
        """Name of the module.

        Returns:
            The name of the module.
        """
        return "hydrology.lake_ice"

    @property
    def n_cells(self) -> int:
        return self.surface_area_m2.size

    def spinup(self) -> None:
        """Start all lakes without snow or ice."""
        self.snow = [SnowIceState() for _ in range(self.n_cells)]
        self.lake = [
            LakeState(
                volume_m3=float(volume_m3),
                surface_area_m2=float(surface_area_m2),
            )
            for volume_m3, surface_area_m2 in zip(
                self.initial_volume_m3, self.surface_area_m2
            )
        ]
        self.failed_cells = []
        self.current_timestep = 0

    @property
    def water_equivalent_m(self) -> ArrayFloat64:
        return np.array([snow.water_equivalent_m for snow in self.snow])

    @property
    def surface_temperature_C(self) -> ArrayFloat64:
        return np.array([snow.surface_temperature_C for snow in self.snow])

    @property
    def ice_thickness_m(self) -> ArrayFloat64:
        return np.array([lake.ice_thickness_m for lake in self.lake])

    @property
    def ice_fraction(self) -> ArrayFloat64:
        return np.array([lake.ice_fraction for lake in self.lake])

    @property
    def volume_m3(self) -> ArrayFloat64:
        return np.array([lake.volume_m3 for lake in self.lake])

    @property
    def mass_balance_error_m(self) -> ArrayFloat64:
        return np.array([snow.mass_balance_error_m for snow in self.snow])

    @property
    def lake_ice_water_equivalent_m(self) -> ArrayFloat64:
        return self.ice_thickness_m * RHO_ICE_KG_PER_M3 / RHO_WATER_KG_PER_M3

    def step(
        self,
        forcing: Sequence[Forcing],
        precipitation: Sequence[Precipitation],
    ) -> dict[str, ArrayFloat64]:
        """Perform one timestep for all lakes.

        Args:
            forcing: Forcing for each lake.
            precipitation: Precipitation for each lake.

        Returns:
            Outputs of the timestep, one array per field of `StepOutputs`.

        Raises:
            IceMeltNonConvergenceError: If a cell fails and the policy is "raise".
            SystemExit: If a cell fails and the policy is "exit".
        """
        assert len(forcing) == self.n_cells
        assert len(precipitation) == self.n_cells
        assert all(
            cell_forcing.timestep_hours == self.config.options.snow_step_hours
            for cell_forcing in forcing
        ), "Forcing timestep must match the snow model timestep."

        timer: TimingModule = TimingModule("Lake ice")
        check_balance = self.config.debug.prt_balance or self.config.debug.debug

        if check_balance:
            prestorage_m = self.water_equivalent_m + self.lake_ice_water_equivalent_m

        outputs: dict[str, ArrayFloat64] = {
            field.name: np.zeros(self.n_cells, dtype=np.float64)
            for field in fields(StepOutputs)
        }
        succeeded = np.ones(self.n_cells, dtype=bool)

        for cell in range(self.n_cells):
            snow_before = replace(self.snow[cell])
            lake_before = replace(self.lake[cell])
            try:
                cell_outputs = ice_melt(
                    forcing[cell],
                    precipitation[cell],
                    self.snow[cell],
                    self.lake[cell],
                    config=self.config.ice_melt,
                    root_finder=self.root_finder,
                    context=f"Lake {cell}, timestep {self.current_timestep}",
                )
            except IceMeltNonConvergenceError as error:
                if self.config.on_non_convergence == "raise":
                    raise
                elif self.config.on_non_convergence == "exit":
                    terminate_run(error)
                self.snow[cell] = snow_before
                self.lake[cell] = lake_before
                self.failed_cells.append((self.current_timestep, cell))
                succeeded[cell] = False
                if self.config.debug.debug:
                    debug_dir = self.config.debug.debug_dir
                    debug_dir.mkdir(parents=True, exist_ok=True)
                    with open(debug_dir / "lake_ice_failures.txt", "a") as f:
                        f.write(error.dump + "\n\n")
                logger.error(
                    f"Lake {cell} skipped in timestep {self.current_timestep}, "
                    "surface temperature could not be solved."
                )
                continue

            for name, value in asdict(cell_outputs).items():
                outputs[name][cell] = value

            if self.config.debug.prt_lake:
                logger.debug(f"Lake {cell}: {self.snow[cell]}, {self.lake[cell]}")

        timer.finish_split("Ice melt")

        if check_balance:
            rainfall_m = np.array([p.rainfall_mm for p in precipitation]) / 1000.0
            snowfall_m = np.array([p.snowfall_mm for p in precipitation]) / 1000.0
            poststorage_m = self.water_equivalent_m + self.lake_ice_water_equivalent_m
            balance_check(
                name="lake ice",
                influxes=[
                    np.where(succeeded, rainfall_m, 0.0),
                    np.where(succeeded, snowfall_m, 0.0),
                ],
                outfluxes=[
                    outputs["melt_mm"] / 1000.0,
                    outputs["ice_melt_m"],
                    outputs["vapor_flux_m"],
                    outputs["lake_water_vapor_flux_m"],
                ],
                prestorages=[prestorage_m],
                poststorages=[poststorage_m],
                tolerance=self.config.debug.mass_balance_tolerance_m,
                error_identifiers={"lake": np.arange(self.n_cells)},
            )
            timer.finish_split("Balance check")

        if self.timing:
            logger.info(str(timer))

        self.current_timestep += 1
        return outputs
