"""This module contains algebraic solvers and utilities for the LakeIce model."""

from typing import Callable

from scipy.optimize import brentq

# Values returned by `root_brent` when no root could be found. Anything at or
# below `ROOT_BRENT_FAILURE_THRESHOLD` must be treated as a failure by the caller.
ROOT_BRENT_NOT_BRACKETED: float = -9999.0
ROOT_BRENT_NOT_CONVERGED: float = -9998.0
ROOT_BRENT_FAILURE_THRESHOLD: float = -9998.0


def root_brent(
    function: Callable[[float], float],
    lower_bound: float,
    upper_bound: float,
    max_bracket_tries: int = 150,
    bracket_step: float = 10.0,
    max_iterations: int = 1000,
    tolerance: float = 1e-6,
) -> tuple[float, str]:
    """Find a root of a scalar function with Brent's method.

    If the function has the same sign at both bounds, the lower bound is moved down
    by `bracket_step` until the root is bracketed or `max_bracket_tries` is reached.

    Notes:
        This function never raises when no root can be found. It returns a sentinel
        value instead, so that the caller can decide how to report the failure.

    Args:
        function: Continuous scalar function of one variable.
        lower_bound: Initial lower bound of the bracket.
        upper_bound: Upper bound of the bracket.
        max_bracket_tries: Maximum number of times the lower bound is moved down.
        bracket_step: Distance the lower bound is moved down per try.
        max_iterations: Maximum number of Brent iterations.
        tolerance: Absolute tolerance on the root.

    Returns:
        Tuple of:
            - The root, or `ROOT_BRENT_NOT_BRACKETED` / `ROOT_BRENT_NOT_CONVERGED`.
            - An error message, empty on success.
    """
    function_lower = function(lower_bound)
    function_upper = function(upper_bound)

    if function_upper == 0.0:
        return upper_bound, ""

    tries = 0
    while function_lower * function_upper > 0.0 and tries < max_bracket_tries:
        lower_bound -= bracket_step
        function_lower = function(lower_bound)
        tries += 1

    if function_lower == 0.0:
        return lower_bound, ""

    if function_lower * function_upper > 0.0:
        return ROOT_BRENT_NOT_BRACKETED, (
            "ERROR: First error in root_brent -- unable to bracket the root. "
            f"Lower bound {lower_bound} gives {function_lower}, "
            f"upper bound {upper_bound} gives {function_upper}.\n"
        )

    root, result = brentq(
        function,
        lower_bound,
        upper_bound,
        xtol=tolerance,
        maxiter=max_iterations,
        full_output=True,
        disp=False,
    )
    if not result.converged:
        return ROOT_BRENT_NOT_CONVERGED, (
            "ERROR: Second error in root_brent -- too many iterations "
            f"({result.iterations}), last estimate {root}.\n"
        )
    return float(root), ""
