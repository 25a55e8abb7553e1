from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Mapping

import numpy as np

from .bem import Solver
from .elements import ElementPacket, check_kinds
from .influence import NumericsConfig
from .points import Points
from .simulation import DiffusionParams, Simulation

log = logging.getLogger(__name__)


# ----------------------
# Configuration objects
# ----------------------

@dataclass(slots=True)
class SimulationConfig:
    """High-level run controls and I/O options."""
    re: float = 100.0
    dt: float = 0.01
    fs: tuple[float, float, float] = (0.0, 0.0, 0.0)
    steps: int = 100
    save_every: int = 0  # 0 -> don't save intermediate checkpoints
    outdir: str | None = None

    def __post_init__(self) -> None:
        if self.dt <= 0.0:
            raise ValueError("dt must be positive.")
        if self.re <= 0.0:
            raise ValueError("re must be positive.")
        if self.steps < 0:
            raise ValueError("steps must be non-negative.")
        if self.save_every < 0:
            raise ValueError("save_every must be non-negative.")
        if len(self.fs) != 3:
            raise ValueError("fs must have 3 components.")


def build_simulation(
    cfg: SimulationConfig,
    numerics: NumericsConfig | None = None,
    diffusion: DiffusionParams | None = None,
    solver: Solver | None = None,
) -> Simulation:
    return Simulation(re=cfg.re, dt=cfg.dt, fs=cfg.fs,
                      diffusion=diffusion, numerics=numerics, solver=solver)


def run(sim: Simulation, cfg: SimulationConfig) -> list[dict[str, Any]]:
    """Step cfg.steps times, saving checkpoints every cfg.save_every steps."""
    outdir = Path(cfg.outdir) if cfg.outdir else None
    if outdir is not None:
        outdir.mkdir(parents=True, exist_ok=True)
    sim.set_initialized()
    history = [sim.diagnostics()]
    for k in range(1, cfg.steps + 1):
        sim.step()
        history.append(sim.diagnostics())
        if outdir is not None and cfg.save_every and k % cfg.save_every == 0:
            path = outdir / f"step_{k:06d}.npz"
            save_npz(sim, str(path), metadata={"step": k})
            log.info("wrote checkpoint %s", path)
    return history


# ----------------------
# Checkpoint I/O (.npz)
# ----------------------

_SCHEMA_VERSION = 1


def _pack_points(colls: list[Points], prefix: str, data: dict[str, Any]) -> None:
    data[f"{prefix}_sizes"] = np.array([c.get_n() for c in colls], dtype=np.int64)
    data[f"{prefix}_kinds"] = np.array([(c.E, c.M) for c in colls], dtype=object)
    data[f"{prefix}_x"] = np.vstack([c.get_pos() for c in colls]) if colls else np.zeros((0, 3))
    active = [c for c in colls if not c.is_inert]
    data[f"{prefix}_s"] = np.vstack([c.s for c in active]) if active else np.zeros((0, 3))
    data[f"{prefix}_r"] = np.concatenate([c.r for c in active]) if active else np.zeros(0)


def _unpack_points(npz: Any, prefix: str) -> list[Points]:
    if f"{prefix}_sizes" not in npz:
        return []
    sizes = np.asarray(npz[f"{prefix}_sizes"], dtype=np.int64)
    kinds = list(npz[f"{prefix}_kinds"])
    x = np.asarray(npz[f"{prefix}_x"], dtype=np.float64)
    s = np.asarray(npz[f"{prefix}_s"], dtype=np.float64)
    r = np.asarray(npz[f"{prefix}_r"], dtype=np.float64)
    out: list[Points] = []
    ix = 0
    iv = 0
    for n, (elem, move) in zip(sizes, kinds):
        check_kinds(str(elem), str(move))
        xs = x[ix:ix + n]
        if elem == "inert":
            packet = ElementPacket(x=xs)
        else:
            packet = ElementPacket(x=xs, val=np.hstack([s[iv:iv + n], r[iv:iv + n, None]]))
            iv += n
        ix += n
        out.append(Points(packet, str(elem), str(move)))  # type: ignore[arg-type]
    return out


def save_npz(sim: Simulation, path: str, metadata: Mapping[str, Any] | None = None) -> None:
    """Save state to .npz with schema versioning and basic metadata.

    Arrays stored, per collection list (vort, fldpt):
      - <list>_x:     float64 [N,3] positions of all collections, concatenated
      - <list>_s:     float64 [M,3] strengths of the non-inert ones
      - <list>_r:     float64 [M]   core radii of the non-inert ones
      - <list>_sizes, <list>_kinds
    Scalars:
      - time, re, dt, fs, diffusion scalars
      - schema_version
    Boundaries are not stored; rebuild them from their features.
    """
    data: dict[str, Any] = {
        "time": float(sim.get_time()),
        "re": float(sim.re),
        "dt": float(sim.dt),
        "fs": np.asarray(sim.fs, dtype=np.float64),
        "diffusion": np.array(
            {"nom_sep_scaled": sim.diff.nom_sep_scaled, "particle_overlap": sim.diff.particle_overlap},
            dtype=object,
        ),
        "schema_version": int(_SCHEMA_VERSION),
    }
    _pack_points(sim.vort, "vort", data)
    _pack_points(sim.fldpt, "fldpt", data)
    if metadata:
        data["metadata"] = np.array(dict(metadata), dtype=object)

    np.savez(path, **data)


def load_npz(
    path: str,
    numerics: NumericsConfig | None = None,
    solver: Solver | None = None,
) -> Simulation:
    """Load state from .npz and rebuild a Simulation without boundaries.

    Unknown/extra fields are ignored. Requires a compatible schema_version.
    """
    with np.load(path, allow_pickle=True) as npz:
        schema = int(npz.get("schema_version", np.array(0)))
        if schema != _SCHEMA_VERSION:
            raise ValueError(f"Incompatible schema_version {schema}; expected {_SCHEMA_VERSION}.")

        diffusion = None
        if "diffusion" in npz:
            d = dict(npz["diffusion"].item())
            diffusion = DiffusionParams(nom_sep_scaled=float(d["nom_sep_scaled"]),
                                        particle_overlap=float(d["particle_overlap"]))

        sim = Simulation(
            re=float(npz["re"]), dt=float(npz["dt"]),
            fs=tuple(np.asarray(npz["fs"], dtype=np.float64)),
            diffusion=diffusion, numerics=numerics, solver=solver,
        )
        sim.vort.extend(_unpack_points(npz, "vort"))
        sim.fldpt.extend(_unpack_points(npz, "fldpt"))
        sim.time = float(npz.get("time", 0.0))
        return sim


# ----------------------
# Seeder utilities
# ----------------------

def seed_vortex_ring(
    center: tuple[float, float, float],
    radius: float,
    circulation: float,
    n: int = 64,
    axis: Literal["x", "y", "z"] = "z",
) -> np.ndarray:
    """Thin ring of n particles about `axis`, returned as flat 7-tuples.

    Each particle carries circulation times its arc length along the tangent.
    The core radius slot is left at zero for Simulation.add_particles to fill.
    """
    if n < 3 or radius <= 0.0:
        raise ValueError("Need at least 3 particles and a positive radius.")
    th = 2.0 * math.pi * np.arange(n) / n
    ring = np.stack([np.cos(th), np.sin(th), np.zeros(n)], axis=1)
    tang = np.stack([-np.sin(th), np.cos(th), np.zeros(n)], axis=1)
    # cyclic permutation carries the z-axis ring onto the requested axis
    perm = {"z": [0, 1, 2], "x": [2, 0, 1], "y": [1, 2, 0]}[axis]
    ring = ring[:, perm]
    tang = tang[:, perm]
    ds = 2.0 * math.pi * radius / n
    out = np.zeros((n, 7))
    out[:, 0:3] = np.asarray(center, dtype=np.float64) + radius * ring
    out[:, 3:6] = circulation * ds * tang
    return out.ravel()


def seed_gaussian_blob(
    center: tuple[float, float, float],
    sigma: float,
    n: int,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """Isotropic Gaussian cloud with random strengths of zero net circulation."""
    rng = np.random.default_rng() if rng is None else rng
    out = np.zeros((n, 7))
    out[:, 0:3] = rng.normal(loc=np.asarray(center, dtype=float), scale=sigma, size=(n, 3))
    s = rng.normal(0.0, 1.0, size=(n, 3))
    out[:, 3:6] = s - s.mean(axis=0)
    return out.ravel()
