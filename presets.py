"""Preset trap settings, slider ranges and the integration window used by the app."""

from dataclasses import dataclass
from typing import Dict

from ion_trap_sim import InitialConditions, TrapParameters


@dataclass(frozen=True)
class Preset:
    mode: str
    U: float
    V: float
    omega: float

    @property
    def params(self) -> TrapParameters:
        return TrapParameters(U=self.U, V=self.V, omega=self.omega)


# Named operating points, all inside the analytic Mathieu box. "High Frequency" sits just
# below the exact y band (a_y < a0(q)), so its ion reaches the electrodes within the 20 us window.
PRESETS: Dict[str, Preset] = {
    "Optimal Trapping": Preset(mode="optimal", U=0.4, V=13.0, omega=15e6),
    "Pure RF": Preset(mode="pure_rf", U=0.0, V=15.0, omega=15e6),
    "High Frequency": Preset(mode="high_frequency", U=0.2, V=8.0, omega=20e6),
    "Edge of Stability": Preset(mode="edge", U=0.5, V=15.0, omega=15e6),
}

DEFAULT_PRESET = "Optimal Trapping"

# --- SLIDER RANGES (min, max, step) ---
U_RANGE = (0.0, 2.0, 0.1)          # DC voltage [V]
V_RANGE = (0.0, 20.0, 0.5)         # RF amplitude [V]
FREQ_MHZ_RANGE = (1.0, 25.0, 0.5)  # RF angular frequency [1e6 rad/s], wide enough for every preset

# --- INTEGRATION WINDOW ---
INITIAL_CONDITIONS = InitialConditions(x=1e-3, y=1e-3, vx=0.0, vy=0.0)
T_MAX = 2e-5
DT = 1e-8

# Plot window in millimetres
PLOT_RANGE_MM = (-2.0, 2.0)


def get_preset(name: str) -> Preset:
    try:
        return PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown preset: {name!r}. Choose from {list(PRESETS)}") from None
