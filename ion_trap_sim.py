"""
Single-ion trajectories in a linear quadrupole (Paul) trap.

The ion is pushed through the time-varying quadrupole field with a
fixed-step explicit Euler loop. The trap is judged stable when the Mathieu
parameters sit inside the first stability region and the simulated run did
not leave the trap close to the electrodes.

Units: SI inside the loop, microseconds and millimetres in the trace.
"""

import logging
from dataclasses import dataclass, replace
from typing import Iterator, List, Mapping, NamedTuple, Optional, Tuple, Union

import numpy as np
from scipy.constants import e as ELEMENTARY_CHARGE
from scipy.constants import m_p as ION_MASS

logger = logging.getLogger(__name__)

# --- TRAP CONSTANTS ---
R0 = 1e-2  # Characteristic trap radius (meters) -> 10mm, also the escape boundary

# First stability region of the Mathieu equation, approximated by a box
Q_LIMIT = 0.908
A_LIMIT = 0.237

# Escape counts as "near the wall" once the last point inside is beyond this fraction of r0
ESCAPE_TOLERANCE = 0.8

DEFAULT_U = 0.0
DEFAULT_V = 0.0
DEFAULT_OMEGA = 1e6

# Standard integration window: 2000 steps of 10 ns
DEFAULT_T_MAX = 2e-5
DEFAULT_DT = 1e-8

S_TO_US = 1e6
M_TO_MM = 1e3


@dataclass(frozen=True)
class TrapParameters:
    """DC offset U [V], RF amplitude V [V] and RF angular frequency omega [rad/s]."""
    U: float = DEFAULT_U
    V: float = DEFAULT_V
    omega: float = DEFAULT_OMEGA

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Optional[float]]]) -> "TrapParameters":
        # Defaults only fill keys that are missing or None; an explicit 0 is kept
        values = values or {}
        U = values.get("U")
        V = values.get("V")
        omega = values.get("omega")
        return cls(
            U=DEFAULT_U if U is None else float(U),
            V=DEFAULT_V if V is None else float(V),
            omega=DEFAULT_OMEGA if omega is None else float(omega),
        )


@dataclass(frozen=True)
class InitialConditions:
    """Starting position [m] and velocity [m/s] of the ion."""
    x: float = 1e-3
    y: float = 1e-3
    vx: float = 0.0
    vy: float = 0.0

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Optional[float]]]) -> "InitialConditions":
        values = values or {}
        defaults = cls()
        fields = {}
        for name in ("x", "y", "vx", "vy"):
            value = values.get(name)
            fields[name] = getattr(defaults, name) if value is None else float(value)
        return cls(**fields)


class TrajectoryPoint(NamedTuple):
    t: float  # microseconds
    x: float  # millimetres
    y: float  # millimetres
    stable: bool


class Position(NamedTuple):
    x: float  # millimetres
    y: float  # millimetres


@dataclass
class SimulationResult:
    """
    Output of one simulated run.

    Behaves as the ordered sequence of trajectory points. ``last_stable_position``
    is the point recorded just before the ion crossed r0, or None when the ion
    never escaped.
    """
    points: List[TrajectoryPoint]
    last_stable_position: Optional[Position] = None

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[TrajectoryPoint]:
        return iter(self.points)

    def __getitem__(self, index):
        return self.points[index]

    @property
    def escaped(self) -> bool:
        return bool(self.points) and not self.points[-1].stable

    # Column views used by the plots
    @property
    def t(self) -> np.ndarray:
        return np.array([p.t for p in self.points], dtype=float)

    @property
    def x(self) -> np.ndarray:
        return np.array([p.x for p in self.points], dtype=float)

    @property
    def y(self) -> np.ndarray:
        return np.array([p.y for p in self.points], dtype=float)

    @property
    def stable(self) -> np.ndarray:
        return np.array([p.stable for p in self.points], dtype=bool)


ParamsLike = Union[TrapParameters, Mapping[str, Optional[float]], None]
InitialLike = Union[InitialConditions, Mapping[str, Optional[float]], None]


def _step_count(t_max: float, dt: float) -> int:
    # Ratio rounded first so 2e-5 / 1e-8 gives 2000 steps, not 2001
    return int(np.ceil(np.round(t_max / dt, 6)))


def is_practically_stable(result: SimulationResult) -> bool:
    """True if the ion never escaped, or was still well inside the trap one step before it did."""
    pos = result.last_stable_position
    if pos is None:
        return True
    limit = R0 * ESCAPE_TOLERANCE
    return abs(pos.x / M_TO_MM) < limit and abs(pos.y / M_TO_MM) < limit


class IonTrapSimulator:
    """
    Integrates one ion in the quadrupole potential for a fixed set of trap voltages.

    Parameters
    ----------
    params : TrapParameters, mapping or None
        Trap voltages and RF frequency. A mapping may leave out any of
        ``U``, ``V``, ``omega``; missing values fall back to 0 V, 0 V and 1e6 rad/s.
    """

    def __init__(self, params: ParamsLike = None):
        if not isinstance(params, TrapParameters):
            params = TrapParameters.from_mapping(params)
        if params.omega == 0:
            logger.warning("omega=0 would divide by zero, using %.1e rad/s", DEFAULT_OMEGA)
            params = replace(params, omega=DEFAULT_OMEGA)

        self.params = params
        self.U = params.U
        self.V = params.V
        self.omega = params.omega

        # Mathieu stability parameters; y mirrors x in a linear quadrupole
        self.ax = self._calculate_ax()
        self.qx = self._calculate_qx()
        self.ay = -self.ax
        self.qy = -self.qx

        self._last_result: Optional[SimulationResult] = None

        logger.debug(
            "Trap U=%.3f V, V=%.3f V, omega=%.3e rad/s -> a_x=%.4f, q_x=%.4f",
            self.U, self.V, self.omega, self.ax, self.qx,
        )

    def _calculate_ax(self) -> float:
        # a = 8 e U / (m r0^2 omega^2)
        return (8 * ELEMENTARY_CHARGE * self.U) / (ION_MASS * R0**2 * self.omega**2)

    def _calculate_qx(self) -> float:
        # q = -4 e V / (m r0^2 omega^2)
        return (-4 * ELEMENTARY_CHARGE * self.V) / (ION_MASS * R0**2 * self.omega**2)

    @property
    def mathieu_parameters(self) -> Tuple[float, float, float, float]:
        return self.ax, self.qx, self.ay, self.qy

    def _field_strength(self, t: float) -> float:
        # Applied potential U + V cos(omega t) scaled by the quadrupole geometry
        return (2 * ELEMENTARY_CHARGE / R0**2) * (self.U + self.V * np.cos(self.omega * t))

    def simulate(
        self,
        initial_conditions: InitialLike = None,
        t_max: float = DEFAULT_T_MAX,
        dt: float = DEFAULT_DT,
    ) -> SimulationResult:
        """
        Run the fixed-step Euler loop until ``t_max`` or until the ion leaves |x|, |y| <= r0.

        Returns the trace in microseconds and millimetres. On escape the final
        point is flagged unstable and the point before it (or the only point)
        becomes ``last_stable_position``.
        """
        if dt <= 0:
            raise ValueError(f"Time step dt must be positive, got {dt}")
        if t_max < 0:
            raise ValueError(f"Duration t_max must not be negative, got {t_max}")
        if not isinstance(initial_conditions, InitialConditions):
            initial_conditions = InitialConditions.from_mapping(initial_conditions)

        self._last_result = None

        x, y = initial_conditions.x, initial_conditions.y
        vx, vy = initial_conditions.vx, initial_conditions.vy

        points: List[TrajectoryPoint] = []
        last_stable_position = None

        for step in range(_step_count(t_max, dt)):
            t = step * dt
            k = self._field_strength(t)

            fx = -k * x
            fy = k * y

            vx += (fx / ION_MASS) * dt
            vy += (fy / ION_MASS) * dt

            x += vx * dt
            y += vy * dt

            points.append(TrajectoryPoint(t * S_TO_US, float(x) * M_TO_MM, float(y) * M_TO_MM, True))

            if abs(x) > R0 or abs(y) > R0:
                points[-1] = points[-1]._replace(stable=False)
                ref = points[max(0, len(points) - 2)]
                last_stable_position = Position(ref.x, ref.y)
                logger.info(
                    "Ion escaped at t=%.3f us (x=%.2f mm, y=%.2f mm)",
                    points[-1].t, points[-1].x, points[-1].y,
                )
                break

        result = SimulationResult(points, last_stable_position)
        self._last_result = result
        return result

    def is_theoretically_stable(self) -> bool:
        stable_x = abs(self.qx) < Q_LIMIT and abs(self.ax) < A_LIMIT
        stable_y = abs(self.qy) < Q_LIMIT and abs(self.ay) < A_LIMIT
        return stable_x and stable_y

    def is_stable(self, result: Optional[SimulationResult] = None) -> bool:
        """
        Combined verdict: Mathieu parameters inside the stability box and a run
        that stayed clear of the electrodes.

        Without ``result`` the most recent run of this simulator is used; before
        any run only the analytic test applies.
        """
        if result is None:
            result = self._last_result
        practically_stable = result is None or is_practically_stable(result)
        return self.is_theoretically_stable() and practically_stable


def run_simulation(
    params: ParamsLike = None,
    initial_conditions: InitialLike = None,
    t_max: float = DEFAULT_T_MAX,
    dt: float = DEFAULT_DT,
) -> Tuple[SimulationResult, bool]:
    """Build a fresh simulator, run it once and return the trace with its stability verdict."""
    simulator = IonTrapSimulator(params)
    result = simulator.simulate(initial_conditions, t_max, dt)
    return result, simulator.is_stable(result)
