import streamlit as st

from ion_trap_sim import TrapParameters, run_simulation
from plots import build_stability_figure, build_trajectory_figure
from presets import (
    DEFAULT_PRESET,
    DT,
    FREQ_MHZ_RANGE,
    INITIAL_CONDITIONS,
    PRESETS,
    T_MAX,
    U_RANGE,
    V_RANGE,
    get_preset,
)
from stability_map import find_stable_region, operating_point

# --- PAGE CONFIGURATION ---
st.set_page_config(page_title="Ion Trap Simulator", layout="wide")

st.title("🔬 Ion Trap Simulator")
st.markdown("""
Trajectory of a single ion in a **quadrupole (Paul) trap**.
Pick a preset or move the sliders; the ion is re-simulated for 20 µs on every change
and the trap is classified as stable or unstable.
""")


# --- STATE ---
def _apply_params(params: TrapParameters):
    st.session_state["U"] = float(params.U)
    st.session_state["V"] = float(params.V)
    st.session_state["f_mhz"] = float(params.omega / 1e6)


def _select_preset(name: str):
    _apply_params(get_preset(name).params)
    st.session_state["preset"] = name
    st.session_state["search_message"] = None


def _clear_preset():
    st.session_state["preset"] = ""
    st.session_state["search_message"] = None


def _current_params() -> TrapParameters:
    return TrapParameters(
        U=st.session_state["U"],
        V=st.session_state["V"],
        omega=st.session_state["f_mhz"] * 1e6,
    )


def _search_stable_region():
    found = find_stable_region(_current_params(), initial_conditions=INITIAL_CONDITIONS, t_max=T_MAX, dt=DT)
    st.session_state["preset"] = ""
    if found is None:
        st.session_state["search_message"] = "No stable setting found at this RF frequency."
    else:
        _apply_params(found)
        st.session_state["search_message"] = None


if "preset" not in st.session_state:
    _select_preset(DEFAULT_PRESET)


# --- SIDEBAR CONTROLS ---
st.sidebar.header("1. Presets")
for name, preset in PRESETS.items():
    st.sidebar.button(
        name,
        key=f"preset_{preset.mode}",
        type="primary" if st.session_state["preset"] == name else "secondary",
        on_click=_select_preset,
        args=(name,),
    )
st.sidebar.button(
    "🔍 Find Stable Region",
    key="find_stable",
    help="Search the slider grid for the closest stable (U, V) at the current RF frequency",
    on_click=_search_stable_region,
)

st.sidebar.header("2. Trap Parameters")
st.sidebar.slider(
    "DC Voltage (U) [V]",
    min_value=U_RANGE[0], max_value=U_RANGE[1], step=U_RANGE[2],
    format="%.3f", key="U", on_change=_clear_preset,
)
st.sidebar.slider(
    "RF Voltage (V) [V]",
    min_value=V_RANGE[0], max_value=V_RANGE[1], step=V_RANGE[2],
    format="%.1f", key="V", on_change=_clear_preset,
)
st.sidebar.slider(
    "RF Frequency (Ω) [MHz]",
    min_value=FREQ_MHZ_RANGE[0], max_value=FREQ_MHZ_RANGE[1], step=FREQ_MHZ_RANGE[2],
    format="%.1f", key="f_mhz", on_change=_clear_preset,
)

# --- SIMULATION ---
params = _current_params()
result, is_stable = run_simulation(params, INITIAL_CONDITIONS, T_MAX, DT)

# --- RENDER ---
if st.session_state.get("search_message"):
    st.warning(st.session_state["search_message"])

if is_stable:
    st.success("Trap is stable")
else:
    st.error("Trap is unstable")

col1, col2 = st.columns([3, 2])
with col1:
    st.plotly_chart(build_trajectory_figure(result))
with col2:
    st.plotly_chart(build_stability_figure(params, stable=is_stable))

    st.markdown("### Run Summary")
    q_op, a_op = operating_point(params)
    st.write(f"**a_x** = {a_op:.4f}, **|q_x|** = {q_op:.4f}, **steps** = {len(result)}")
    if result.escaped:
        st.write(f"❌ Ion escaped at t = {result[-1].t:.3f} µs")
    else:
        st.write(f"✅ Ion confined for {T_MAX * 1e6:.0f} µs")
