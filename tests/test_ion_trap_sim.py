"""
Test Suite: Ion Trap Simulator
==============================

Covers the Euler integrator, escape detection and the two-part stability
verdict (Mathieu box + empirical escape check).
"""

import logging

import numpy as np
import pytest

from ion_trap_sim import (
    A_LIMIT,
    DEFAULT_OMEGA,
    Q_LIMIT,
    R0,
    InitialConditions,
    IonTrapSimulator,
    Position,
    SimulationResult,
    TrajectoryPoint,
    TrapParameters,
    is_practically_stable,
    run_simulation,
)

T_MAX = 2e-5
DT = 1e-8
START = {"x": 1e-3, "y": 1e-3, "vx": 0, "vy": 0}

OPTIMAL = {"U": 0.4, "V": 13.0, "omega": 15e6}
PURE_RF = {"U": 0, "V": 15.0, "omega": 15e6}
# Pure DC: y is pushed outwards exponentially and leaves within ~150 steps
DC_ONLY = {"U": 2.0, "V": 0.0, "omega": 15e6}


# =============================================================================
# Construction and defaults
# =============================================================================

def test_defaults_when_nothing_given():
    sim = IonTrapSimulator()
    assert sim.U == 0.0
    assert sim.V == 0.0
    assert sim.omega == DEFAULT_OMEGA


def test_missing_and_none_keys_fall_back_to_defaults():
    sim = IonTrapSimulator({"V": 5.0, "omega": None})
    assert sim.U == 0.0
    assert sim.V == 5.0
    assert sim.omega == DEFAULT_OMEGA


def test_explicit_zero_is_not_overridden():
    sim = IonTrapSimulator({"U": 0, "V": 0.0, "omega": 15e6})
    assert sim.U == 0.0
    assert sim.ax == 0.0
    assert sim.qx == 0.0


def test_accepts_trap_parameters():
    sim = IonTrapSimulator(TrapParameters(U=0.4, V=13.0, omega=15e6))
    assert sim.params == TrapParameters(0.4, 13.0, 15e6)


def test_zero_frequency_falls_back_to_default(caplog):
    with caplog.at_level(logging.WARNING, logger="ion_trap_sim"):
        sim = IonTrapSimulator({"U": 0.4, "V": 13.0, "omega": 0})
    assert sim.omega == DEFAULT_OMEGA
    assert sim.params == TrapParameters(0.4, 13.0, DEFAULT_OMEGA)
    assert np.isfinite(sim.ax) and np.isfinite(sim.qx)
    assert "omega=0" in caplog.text


def test_mathieu_parameters_mirror_between_axes():
    ax, qx, ay, qy = IonTrapSimulator(OPTIMAL).mathieu_parameters
    assert ay == -ax
    assert qy == -qx
    assert ax == pytest.approx(0.01362, rel=1e-3)
    assert qx == pytest.approx(-0.2214, rel=1e-3)


def test_initial_condition_zero_is_honoured():
    result = IonTrapSimulator(OPTIMAL).simulate({"x": 0.0}, t_max=1e-6, dt=DT)
    # Force is proportional to x, so an ion starting on the axis at rest stays there
    assert np.all(result.x == 0.0)
    assert np.all(result.y != 0.0)


def test_initial_conditions_defaults():
    assert InitialConditions.from_mapping(None) == InitialConditions(1e-3, 1e-3, 0.0, 0.0)


@pytest.mark.parametrize("dt", [0.0, -1e-8])
def test_non_positive_step_rejected(dt):
    with pytest.raises(ValueError):
        IonTrapSimulator(OPTIMAL).simulate(START, T_MAX, dt)


def test_negative_duration_rejected():
    with pytest.raises(ValueError):
        IonTrapSimulator(OPTIMAL).simulate(START, -1.0, DT)


def test_zero_duration_gives_empty_trace():
    result = IonTrapSimulator(OPTIMAL).simulate(START, 0.0, DT)
    assert len(result) == 0
    assert not result.escaped


# =============================================================================
# Trace properties
# =============================================================================

def test_determinism():
    first = IonTrapSimulator(OPTIMAL).simulate(START, T_MAX, DT)
    second = IonTrapSimulator(OPTIMAL).simulate(START, T_MAX, DT)
    assert first.points == second.points


def test_time_axis_is_step_index_times_dt():
    result = IonTrapSimulator(OPTIMAL).simulate(START, T_MAX, DT)
    assert len(result) == 2000
    np.testing.assert_allclose(result.t, np.arange(len(result)) * DT * 1e6)
    assert np.all(np.diff(result.t) > 0)


def test_points_in_mm_and_microseconds():
    result = IonTrapSimulator({}).simulate({"x": 1e-3, "y": -2e-3, "vx": 1.0}, t_max=3 * DT, dt=DT)
    # No field: straight line at 1 m/s
    assert isinstance(result[0], TrajectoryPoint)
    assert result[0].x == pytest.approx(1.0 + 1e-5)
    assert result[0].y == pytest.approx(-2.0)
    assert result[-1].t == pytest.approx(0.02)


def test_optimal_trapping_is_stable():
    sim = IonTrapSimulator(OPTIMAL)
    result = sim.simulate(START, T_MAX, DT)
    assert len(result) == 2000
    assert not result.escaped
    assert result.last_stable_position is None
    assert all(p.stable for p in result)
    assert np.max(np.abs(result.x)) < R0 * 1e3
    assert sim.is_stable(result)


def test_pure_rf_is_stable():
    sim = IonTrapSimulator(PURE_RF)
    assert sim.ax == 0.0
    result = sim.simulate(START, T_MAX, DT)
    assert not result.escaped
    assert sim.is_stable(result)


# =============================================================================
# Escape detection
# =============================================================================

def test_escape_marks_only_last_point():
    sim = IonTrapSimulator(DC_ONLY)
    result = sim.simulate(START, T_MAX, DT)

    assert result.escaped
    assert len(result) < 2000
    assert not result[-1].stable
    assert all(p.stable for p in result.points[:-1])
    assert abs(result[-1].y) > R0 * 1e3
    assert result.last_stable_position == Position(result[-2].x, result[-2].y)


def test_escape_next_to_wall_is_unstable_even_inside_mathieu_box():
    sim = IonTrapSimulator(DC_ONLY)
    result = sim.simulate(START, T_MAX, DT)
    assert sim.is_theoretically_stable()
    assert not is_practically_stable(result)
    assert not sim.is_stable(result)


def test_jump_escape_from_deep_inside_counts_as_stable():
    # No field, fast ion: 7 mm after one step, 13 mm after the next
    sim = IonTrapSimulator({})
    result = sim.simulate({"vx": 6e5}, T_MAX, DT)
    assert len(result) == 2
    assert result.escaped
    assert result.last_stable_position.x == pytest.approx(7.0)
    assert is_practically_stable(result)
    assert sim.is_stable(result)


def test_escape_on_first_step_references_index_zero():
    sim = IonTrapSimulator({})
    result = sim.simulate({"vx": 1e6}, T_MAX, DT)
    assert len(result) == 1
    assert not result[0].stable
    assert result.last_stable_position == Position(result[0].x, result[0].y)
    assert not sim.is_stable(result)


# =============================================================================
# Stability verdict
# =============================================================================

def test_large_q_forces_unstable():
    # omega small relative to V pushes |q_x| far beyond 0.908
    sim = IonTrapSimulator({"U": 0.0, "V": 20.0, "omega": 1e6})
    assert abs(sim.qx) >= Q_LIMIT
    result = sim.simulate(START, t_max=5 * DT, dt=DT)
    assert not result.escaped
    assert is_practically_stable(result)
    assert not sim.is_stable(result)


def test_large_a_forces_unstable():
    sim = IonTrapSimulator({"U": 2.0, "V": 0.0, "omega": 1e6})
    assert abs(sim.ax) >= A_LIMIT
    assert not sim.is_theoretically_stable()


def test_is_stable_without_argument_uses_latest_run():
    sim = IonTrapSimulator(DC_ONLY)
    assert sim.is_stable()  # analytic test only before any run
    sim.simulate(START, T_MAX, DT)
    assert not sim.is_stable()
    sim.simulate(START, t_max=10 * DT, dt=DT)
    assert sim.is_stable()


def test_practical_stability_of_hand_built_results():
    inside = SimulationResult([TrajectoryPoint(0.0, 1.0, 1.0, True)], None)
    near_wall = SimulationResult(
        [TrajectoryPoint(0.0, 8.5, 1.0, True), TrajectoryPoint(0.01, 10.5, 1.0, False)],
        Position(8.5, 1.0),
    )
    assert is_practically_stable(inside)
    assert not is_practically_stable(near_wall)


def test_run_simulation_returns_result_and_verdict():
    result, stable = run_simulation(OPTIMAL, START, T_MAX, DT)
    assert len(result) == 2000
    assert stable is True
