"""
Mathieu stability diagram helpers and the stable-region search.

The exact edges of the first stability region come from the Mathieu
characteristic values: an axis is stable for a0(q) < a < b1(q). In a linear
quadrupole the y axis sees (-a, -q), so the region shared by both axes is
the overlap of that band with its mirror image.
"""

import logging
from typing import Optional, Tuple

import numpy as np
from scipy.special import mathieu_a, mathieu_b

from ion_trap_sim import (
    DEFAULT_DT,
    DEFAULT_T_MAX,
    InitialLike,
    IonTrapSimulator,
    ParamsLike,
    TrapParameters,
    run_simulation,
)
from presets import U_RANGE, V_RANGE

logger = logging.getLogger(__name__)


def stability_boundaries(q) -> Tuple[np.ndarray, np.ndarray]:
    """
    Lower and upper edges of the first stability band for one axis.

    Parameters
    ----------
    q : float or ndarray
        Mathieu q parameter. Only |q| matters for stability.

    Returns
    -------
    tuple of ndarray
        (a0(|q|), b1(|q|)).
    """
    q = np.abs(np.asarray(q, dtype=float))
    # Characteristic values are m**2 without modulation
    lower = np.where(q == 0, 0.0, mathieu_a(0, q))[()]
    upper = np.where(q == 0, 1.0, mathieu_b(1, q))[()]
    return lower, upper


def in_first_region(a: float, q: float) -> bool:
    """Exact test: both axes inside the first stability band, edges included."""
    lower, upper = stability_boundaries(q)
    x_stable = lower <= a <= upper
    y_stable = lower <= -a <= upper
    return bool(x_stable and y_stable)


def operating_point(params: ParamsLike) -> Tuple[float, float]:
    """(|q_x|, a_x) of the given trap settings, i.e. where they sit on the diagram."""
    a_x, q_x, _, _ = IonTrapSimulator(params).mathieu_parameters
    return abs(q_x), a_x


def _grid(value_range) -> np.ndarray:
    lo, hi, step = value_range
    n = int(round((hi - lo) / step)) + 1
    return np.round(np.linspace(lo, hi, n), 6)


def find_stable_region(
    params: ParamsLike,
    u_range=U_RANGE,
    v_range=V_RANGE,
    initial_conditions: InitialLike = None,
    t_max: float = DEFAULT_T_MAX,
    dt: float = DEFAULT_DT,
) -> Optional[TrapParameters]:
    """
    Find the stable (U, V) setting closest to ``params`` at the same RF frequency.

    Candidates are taken from the slider grids and tried nearest first. The
    cheap analytic test filters the grid; only survivors are simulated. Settings
    without RF drive (V == 0) are skipped, since switching the trap off is not a
    trapping setting.
    Returns None when nothing on the grid traps the ion.
    """
    if not isinstance(params, TrapParameters):
        params = TrapParameters.from_mapping(params)

    u_values = _grid(u_range)
    v_values = _grid(v_range)
    U, V = np.meshgrid(u_values, v_values, indexing="ij")
    U, V = U.ravel(), V.ravel()

    # Distance in units of each slider's span
    u_span = max(u_range[1] - u_range[0], 1e-12)
    v_span = max(v_range[1] - v_range[0], 1e-12)
    distance = ((U - params.U) / u_span) ** 2 + ((V - params.V) / v_span) ** 2
    order = np.argsort(distance, kind="stable")

    n_simulated = 0
    for idx in order:
        if V[idx] == 0:
            continue
        candidate = TrapParameters(U=float(U[idx]), V=float(V[idx]), omega=params.omega)
        if not IonTrapSimulator(candidate).is_theoretically_stable():
            continue
        n_simulated += 1
        _, stable = run_simulation(candidate, initial_conditions, t_max, dt)
        if stable:
            logger.info(
                "Stable region found at U=%.2f V, V=%.2f V after %d simulations",
                candidate.U, candidate.V, n_simulated,
            )
            return candidate

    logger.warning(
        "No stable setting on the grid for omega=%.3e rad/s (%d simulations)",
        params.omega, n_simulated,
    )
    return None
