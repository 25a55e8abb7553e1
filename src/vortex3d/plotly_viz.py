
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

try:
    import plotly.graph_objects as go
    _PLOTLY = True
except Exception:  # pragma: no cover
    _PLOTLY = False

from .simulation import Simulation


@dataclass(slots=True)
class PlotlySnapshotConfig:
    show_particles: bool = True
    show_tracers: bool = True
    show_panels: bool = True
    colorscale: str = "Viridis"
    panel_opacity: float = 0.4
    marker_size: float = 3.0


def _traces(sim: Simulation, cfg: PlotlySnapshotConfig) -> list[Any]:
    data: list[Any] = []
    if cfg.show_panels:
        for k, b in enumerate(sim.bdry):
            x = b.get_pos()
            tri = b.get_idx()
            data.append(go.Mesh3d(x=x[:, 0], y=x[:, 1], z=x[:, 2],
                                  i=tri[:, 0], j=tri[:, 1], k=tri[:, 2],
                                  color="lightgray", opacity=cfg.panel_opacity,
                                  flatshading=True, name=f"boundary {k}"))
    if cfg.show_particles:
        for v in sim.vort:
            x = v.get_pos()
            s = v.get_str()
            mag = np.linalg.norm(s, axis=1) if s is not None else np.zeros(v.get_n())
            data.append(go.Scatter3d(x=x[:, 0], y=x[:, 1], z=x[:, 2], mode="markers",
                                     marker=dict(size=cfg.marker_size, color=mag,
                                                 colorscale=cfg.colorscale,
                                                 colorbar=dict(title="|strength|")),
                                     name="particles"))
    if cfg.show_tracers:
        for f in sim.fldpt:
            x = f.get_pos()
            data.append(go.Scatter3d(x=x[:, 0], y=x[:, 1], z=x[:, 2], mode="markers",
                                     marker=dict(size=1.5, color="black"), name="tracers"))
    return data


def plot_snapshot_interactive(
    sim: Simulation,
    *,
    config: PlotlySnapshotConfig | None = None,
    save_html: str | None = None,
) -> Any:
    """Interactive 3D snapshot with Plotly (rotate/zoom, hover). Returns the Figure."""
    if not _PLOTLY:
        raise RuntimeError("plotly is not installed. `pip install plotly`")

    cfg = config or PlotlySnapshotConfig()
    fig = go.Figure(data=_traces(sim, cfg))
    fig.update_layout(
        title=f"t = {sim.get_time():.3f}, n = {sim.get_nparts()}",
        scene=dict(aspectmode="data", xaxis_title="x", yaxis_title="y", zaxis_title="z"),
        template="plotly_white",
        legend=dict(x=0.01, y=0.99),
    )
    if save_html:
        fig.write_html(save_html, include_plotlyjs="cdn")
    return fig


def run_animation_interactive(
    sim: Simulation,
    *,
    steps: int,
    config: PlotlySnapshotConfig | None = None,
    save_html: str | None = None,
) -> Any:
    """Step the simulation and collect one Plotly frame per step. Returns the Figure."""
    if not _PLOTLY:
        raise RuntimeError("plotly is not installed. `pip install plotly`")

    cfg = config or PlotlySnapshotConfig()
    base_fig = plot_snapshot_interactive(sim, config=cfg)
    base_fig.update_layout(
        updatemenus=[
            dict(
                type="buttons",
                buttons=[
                    dict(label="Play", method="animate", args=[None, {"fromcurrent": True}]),
                    dict(label="Pause", method="animate", args=[[None], {"mode": "immediate"}]),
                ],
                x=0.02, y=1.07, xanchor="left", yanchor="top",
            )
        ],
    )

    frames = []
    slider_steps = []
    for k in range(steps):
        sim.step()
        frames.append(go.Frame(data=_traces(sim, cfg), name=f"{k}"))
        slider_steps.append(dict(method="animate", label=f"{sim.get_time():.3f}",
                                 args=[[f"{k}"], {"mode": "immediate"}]))

    base_fig.frames = frames
    base_fig.update_layout(sliders=[dict(active=0, steps=slider_steps, x=0.1, xanchor="left", len=0.8)])

    if save_html:
        base_fig.write_html(save_html, include_plotlyjs="cdn")
    return base_fig
