"""Plotly figures for the trajectory view and the Mathieu stability diagram."""

import numpy as np
import plotly.graph_objects as go

from ion_trap_sim import A_LIMIT, Q_LIMIT, ParamsLike, SimulationResult
from presets import PLOT_RANGE_MM
from stability_map import in_first_region, operating_point, stability_boundaries

STABLE_COLOR = "#8884d8"
UNSTABLE_COLOR = "#ff0000"
MARKER_COLOR = "#ffd700"


def build_trajectory_figure(result: SimulationResult, plot_range=PLOT_RANGE_MM) -> go.Figure:
    """X-Y scatter of the trace, split into stable and unstable points, with the escape marker."""
    stable = result.stable
    x, y, t = result.x, result.y, result.t

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=x[stable], y=y[stable], customdata=t[stable],
        mode="markers", marker=dict(size=3, color=STABLE_COLOR),
        name="Ion Position (Stable)",
        hovertemplate="x=%{x:.3f} mm<br>y=%{y:.3f} mm<br>t=%{customdata:.3f} µs<extra></extra>",
    ))
    fig.add_trace(go.Scatter(
        x=x[~stable], y=y[~stable], customdata=t[~stable],
        mode="markers", marker=dict(size=6, color=UNSTABLE_COLOR),
        name="Ion Position (Unstable)",
        hovertemplate="x=%{x:.3f} mm<br>y=%{y:.3f} mm<br>t=%{customdata:.3f} µs<extra></extra>",
    ))

    if result.last_stable_position is not None:
        pos = result.last_stable_position
        fig.add_trace(go.Scatter(
            x=[pos.x], y=[pos.y],
            mode="markers", marker=dict(size=12, color=MARKER_COLOR),
            name="Last Stable Position",
        ))

    fig.update_layout(
        title="Ion Trajectory (X-Y)",
        xaxis=dict(title="X Position (mm)", range=list(plot_range)),
        yaxis=dict(title="Y Position (mm)", range=list(plot_range)),
        height=500,
    )
    return fig


def build_stability_figure(params: ParamsLike, stable: bool = True, q_max: float = 1.0) -> go.Figure:
    """First stability region in (q, a) with the current operating point."""
    q = np.linspace(0.0, q_max, 200)
    lower, upper = stability_boundaries(q)

    fig = go.Figure()

    # Shared region: x band a0 < a < b1 overlapped with its mirror for y
    top = np.minimum(upper, -lower)
    bottom = np.maximum(lower, -upper)
    inside = top > bottom
    fig.add_trace(go.Scatter(
        x=np.concatenate([q[inside], q[inside][::-1]]),
        y=np.concatenate([top[inside], bottom[inside][::-1]]),
        fill="toself", fillcolor="rgba(0, 204, 150, 0.25)",
        line=dict(color="rgba(0, 0, 0, 0)"),
        name="Stable (x and y)", hoverinfo="skip",
    ))

    for a_curve, name in [(lower, "x: a0(q)"), (upper, "x: b1(q)")]:
        fig.add_trace(go.Scatter(x=q, y=a_curve, mode="lines", line=dict(color="blue"), name=name))
    for a_curve, name in [(-lower, "y: -a0(q)"), (-upper, "y: -b1(q)")]:
        fig.add_trace(go.Scatter(x=q, y=a_curve, mode="lines", line=dict(color="orange"), name=name))

    # Box used for the stability verdict
    fig.add_shape(
        type="rect", x0=0, x1=Q_LIMIT, y0=-A_LIMIT, y1=A_LIMIT,
        line=dict(color="black", dash="dash"),
    )

    # Colour follows the verdict, symbol follows the exact Mathieu region
    q_op, a_op = operating_point(params)
    inside_region = in_first_region(a_op, q_op)
    fig.add_trace(go.Scatter(
        x=[q_op], y=[a_op], mode="markers",
        marker=dict(
            size=12,
            color="green" if stable else "red",
            symbol="circle" if inside_region else "x",
        ),
        name=f"Operating point (q={q_op:.3f}, a={a_op:.3f}, {'inside' if inside_region else 'outside'} region)",
    ))

    fig.update_layout(
        title="Mathieu Stability Diagram",
        xaxis=dict(title="|q| (Mathieu parameter)", range=[0, q_max]),
        yaxis=dict(title="a (Mathieu parameter)", range=[-0.4, 0.4]),
        height=500,
    )
    return fig
