"""Workflow helpers used in LakeIce."""

import logging
from time import time

import numpy as np

from lakeice.types import ArrayFloat

logger = logging.getLogger("lakeice")


class TimingModule:
    """A timing module to measure the time taken for different parts of a workflow."""

    def __init__(self, name: str) -> None:
        """Initializes the TimingModule with a name and starts the timer.

        Args:
            name: The name of the timing module. Will be used when printing the timing results.
        """
        self.name = name
        self.times = [time()]
        self.split_names = []

    def finish_split(self, name: str) -> None:
        """Finish split with with name given.

        Args:
            name: The name of the split. This is the name of the previous split.
        """
        self.times.append(time())
        self.split_names.append(name)

    def __str__(self) -> str:
        """Converts the timing information into a readable string format for logging.

        Returns:
            A formatted string summarizing the time taken for each split and the total time.
        """
        messages = []
        for i in range(1, len(self.times)):
            time_difference = self.times[i] - self.times[i - 1]
            messages.append(
                "{}: {:.4f}s".format(self.split_names[i - 1], time_difference)
            )

        total_time = self.times[-1] - self.times[0]
        messages.append("Total: {:.4f}s".format(total_time))

        return "{} - {}".format(self.name, ", ".join(messages))


def balance_check(
    name: str,
    influxes: list[ArrayFloat | np.floating] | tuple[ArrayFloat | np.floating] = [],
    outfluxes: list[ArrayFloat | np.floating] | tuple[ArrayFloat | np.floating] = [],
    prestorages: list[ArrayFloat | np.floating]
    | tuple[ArrayFloat | np.floating] = [],
    poststorages: list[ArrayFloat | np.floating]
    | tuple[ArrayFloat | np.floating] = [],
    tolerance: float = 1e-10,
    error_identifiers: dict = {},
    raise_on_error: bool = False,
) -> bool:
    """Check the water balance of each cell.

    Essentially checks that influxes + prestorages = outfluxes + poststorages
    in every cell, within a given tolerance.

    Args:
        name: Name of the balance check, used for logging.
        influxes: List of influx arrays.
        outfluxes: List of outflux arrays.
        prestorages: List of pre-storage arrays.
        poststorages: List of post-storage arrays.
        tolerance: tolerance for the balance check.
        error_identifiers: Dictionary of identifiers to help locate errors, e.g. {'lake': lake_ids}.
            When an error is found, the values of these identifiers at the location of the maximum error will be logged.
        raise_on_error: Whether to raise an error if the balance check fails.

    Returns:
        True if the balance check passes, False otherwise.

    Raises:
        ValueError: If NaN values are found in the balance calculation.
        AssertionError: If the balance check fails and raise_on_error is True.
    """
    inflow = np.add.reduce(influxes) if len(influxes) else 0.0
    outflow = np.add.reduce(outfluxes) if len(outfluxes) else 0.0
    prestorage = np.add.reduce(prestorages) if len(prestorages) else 0.0
    poststorage = np.add.reduce(poststorages) if len(poststorages) else 0.0

    balance = np.asarray(inflow - outflow + prestorage - poststorage)

    if np.isnan(balance).any():
        raise ValueError("Balance check failed, NaN values found.")

    if balance.size == 0:
        return True
    elif np.abs(balance).max() > tolerance:
        index = np.abs(balance).argmax()
        text = f"{balance.flat[index]} > tolerance {tolerance}, max imbalance at index {index}."

        if error_identifiers:
            text += " Error identifiers: " + ", ".join(
                f"{key}={value[index]}" for key, value in error_identifiers.items()
            )
        logger.warning(f"{name} {text}" if name else text)
        if raise_on_error:
            raise AssertionError(text)
        return False
    else:
        return True
