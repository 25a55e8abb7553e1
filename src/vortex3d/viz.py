
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import matplotlib.pyplot as plt
import numpy as np

from .simulation import Simulation


@dataclass(slots=True)
class SnapshotConfig:
    figsize: tuple[float, float] = (8.0, 7.0)
    show_particles: bool = True
    show_tracers: bool = True
    show_panels: bool = True
    panel_alpha: float = 0.35
    cmap: str = "viridis"


def _set_equal_3d(ax: Any, pts: np.ndarray) -> None:
    if pts.shape[0] == 0:
        return
    lo = pts.min(axis=0)
    hi = pts.max(axis=0)
    mid = 0.5 * (lo + hi)
    half = 0.5 * float((hi - lo).max()) or 1.0
    ax.set_xlim(mid[0] - half, mid[0] + half)
    ax.set_ylim(mid[1] - half, mid[1] + half)
    ax.set_zlim(mid[2] - half, mid[2] + half)


def plot_snapshot(
    sim: Simulation,
    *,
    config: SnapshotConfig | None = None,
    show: bool = True,
) -> Any:
    """3D scatter of particles and tracers over the boundary panels. Returns the Figure."""
    cfg = config or SnapshotConfig()
    fig = plt.figure(figsize=cfg.figsize)
    ax = fig.add_subplot(projection="3d")
    allpts = [np.zeros((0, 3))]

    if cfg.show_panels:
        for b in sim.bdry:
            x = b.get_pos()
            tri = b.get_idx()
            if tri.shape[0] == 0:
                continue
            ax.plot_trisurf(x[:, 0], x[:, 1], x[:, 2], triangles=tri,
                            color="lightgray", edgecolor="k", linewidth=0.2, alpha=cfg.panel_alpha)
            allpts.append(x)

    if cfg.show_particles:
        for v in sim.vort:
            x = v.get_pos()
            mag = np.linalg.norm(v.get_str(), axis=1) if v.get_str() is not None else np.zeros(v.get_n())
            sc = ax.scatter(x[:, 0], x[:, 1], x[:, 2], c=mag, cmap=cfg.cmap, s=8.0, depthshade=False)
            fig.colorbar(sc, ax=ax, fraction=0.03, pad=0.08).set_label("|strength|")
            allpts.append(x)

    if cfg.show_tracers:
        for f in sim.fldpt:
            x = f.get_pos()
            ax.scatter(x[:, 0], x[:, 1], x[:, 2], s=3.0, c="black", marker=".")
            allpts.append(x)

    _set_equal_3d(ax, np.vstack(allpts))
    ax.set_title(f"t = {sim.get_time():.3f}, n = {sim.get_nparts()}")
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    ax.set_zlabel("z")
    if show:
        plt.show()
    return fig
