
from __future__ import annotations

import logging
import math
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any
from collections.abc import Iterable, Sequence

import numpy as np

from .bem import BEM, Solver
from .elements import Body, ElemKind, ElementBase, ElementPacket, FloatArray
from .features import BoundaryFeature
from .influence import NumericsConfig, accumulate
from .points import Points
from .rhs import vels_to_rhs
from .surfaces import Surfaces

log = logging.getLogger(__name__)


@dataclass(slots=True)
class DiffusionParams:
    """Scalars supplied by the diffusion model.

    nom_sep_scaled: nominal particle separation in units of h_nu
    particle_overlap: core radius in units of the nominal separation
    """
    nom_sep_scaled: float = math.sqrt(8.0)
    particle_overlap: float = 1.5

    def __post_init__(self) -> None:
        if self.nom_sep_scaled <= 0.0 or self.particle_overlap <= 0.0:
            raise ValueError("Diffusion scalars must be positive.")


class Simulation:
    """Vortex particles, boundary panels and field points, advanced with explicit Euler.

    Three ordered collection lists are kept: free vorticity (vort), boundaries
    (bdry) and field points or tracers (fldpt). A step may run on a single
    background worker; the caller polls with test_for_new_results().
    """

    def __init__(
        self,
        re: float = 100.0,
        dt: float = 0.01,
        fs: Sequence[float] = (0.0, 0.0, 0.0),
        *,
        diffusion: DiffusionParams | None = None,
        numerics: NumericsConfig | None = None,
        solver: Solver | None = None,
    ) -> None:
        if re <= 0.0:
            raise ValueError("re must be positive.")
        if dt <= 0.0:
            raise ValueError("dt must be positive.")
        fsa = np.asarray(fs, dtype=np.float64).ravel()
        if fsa.size != 3:
            raise ValueError("fs must have 3 components.")
        self.re = float(re)
        self.dt = float(dt)
        self.fs: FloatArray = fsa
        self.diff = diffusion or DiffusionParams()
        self.numerics = numerics or NumericsConfig()
        self.bem = BEM(solver, self.numerics.chunking.query_batch)

        self.vort: list[Points] = []
        self.bdry: list[Surfaces] = []
        self.fldpt: list[Points] = []

        self.time = 0.0
        self.sim_is_initialized = False
        self.step_has_started = False
        self.step_is_finished = False
        self._executor: ThreadPoolExecutor | None = None
        self._future: Future[None] | None = None

    # -------- derived scalars --------
    def get_hnu(self) -> float: return math.sqrt(self.dt / self.re)

    def get_ips(self) -> float: return self.diff.nom_sep_scaled * self.get_hnu()

    def get_vdelta(self) -> float: return self.diff.particle_overlap * self.get_ips()

    def get_time(self) -> float: return self.time

    def get_re(self) -> float: return self.re

    def get_dt(self) -> float: return self.dt

    def set_re_for_ips(self, ips: float) -> None:
        """Pick the Reynolds number that yields this nominal separation."""
        if ips <= 0.0:
            raise ValueError("ips must be positive.")
        self.re = self.diff.nom_sep_scaled ** 2 * self.dt / (ips * ips)

    @staticmethod
    def get_n(colls: Iterable[ElementBase]) -> int:
        return sum(c.get_n() for c in colls)

    def get_nparts(self) -> int: return self.get_n(self.vort)

    def is_initialized(self) -> bool: return self.sim_is_initialized

    def set_initialized(self) -> None: self.sim_is_initialized = True

    # -------- populating --------
    def add_particles(self, flat: np.ndarray | Sequence[float]) -> None:
        """Add vortex particles given as 7-tuples; the radius slot is replaced by vdelta."""
        arr = np.asarray(flat, dtype=np.float64).ravel()
        if arr.size % 7 != 0:
            raise ValueError("Particle vector is not an even multiple of 7.")
        if arr.size == 0:
            return
        p = arr.reshape(-1, 7).copy()
        p[:, 6] = self.get_vdelta()
        packet = ElementPacket(x=p[:, 0:3], val=p[:, 3:7])
        if not self.vort:
            self.vort.append(Points(packet, "active", "lagrangian"))
        else:
            self.vort[-1].add_new(packet)

    def add_boundary(self, packet: ElementPacket, body: Body | None = None,
                     elem: ElemKind = "reactive") -> Surfaces:
        move = "bodybound" if body is not None else "fixed"
        for coll in self.bdry:
            if coll.get_body() is body and coll.E == elem and coll.M == move:
                coll.add_new(packet)
                coll.transform(self.time)
                return coll
        coll = Surfaces(packet, elem, move, body)
        coll.transform(self.time)
        self.bdry.append(coll)
        return coll

    def add_feature(self, feature: BoundaryFeature, elem: ElemKind = "reactive") -> Surfaces:
        """Mesh a boundary feature at the current particle spacing and add it."""
        return self.add_boundary(feature.init_elements(self.get_ips()), feature.body, elem)

    def add_fldpts(self, flat_xyz: np.ndarray | Sequence[float], moves: bool = True) -> None:
        arr = np.asarray(flat_xyz, dtype=np.float64).ravel()
        if arr.size % 3 != 0:
            raise ValueError("Field point vector is not an even multiple of 3.")
        if arr.size == 0:
            return
        move = "lagrangian" if moves else "fixed"
        packet = ElementPacket(x=arr)
        for coll in self.fldpt:
            if coll.M == move:
                coll.add_new(packet)
                return
        self.fldpt.append(Points(packet, "inert", move))

    # -------- async execution --------
    def reset(self) -> None:
        """Wait for any running step, then clear time, flags and all collections."""
        fut = self._future
        try:
            if fut is not None:
                fut.result()
        finally:
            self._future = None
            self.time = 0.0
            self.sim_is_initialized = False
            self.step_has_started = False
            self.step_is_finished = False
            self.vort.clear()
            self.bdry.clear()
            self.fldpt.clear()
            self.bem.reset()

    def async_step(self) -> None:
        """Launch one step in the background. Poll before calling again."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vortex3d-step")
        self.step_has_started = True
        self._future = self._executor.submit(self.step)

    def test_for_new_results(self) -> bool:
        if not self.step_has_started:
            return True
        fut = self._future
        if fut is not None and fut.done():
            self._future = None
            self.step_has_started = False
            self.step_is_finished = True
            # surfaces any exception raised inside step()
            fut.result()
            return True
        return False

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> Simulation:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # -------- the vortex method --------
    def _accumulate_all(self, targ: ElementBase, sources: Iterable[ElementBase]) -> None:
        for src in sources:
            accumulate(src, targ, self.numerics)

    def step(self) -> None:
        """One explicit Euler convection step."""
        log.info("taking step at t=%g with n=%d", self.time, self.get_nparts())
        fs = self.fs

        if self.bdry:
            log.debug("solving for BEM RHS")
            self.bem.set_rows(self.bdry)
        for targ in self.bdry:
            targ.zero_vels()
            self._accumulate_all(targ, self.vort)
            targ.finalize_vels(fs)
            targ.add_body_motion(-1.0, self.time)
            if targ.E == "reactive":
                self.bem.set_rhs(targ, vels_to_rhs(targ))

        if self.bdry and self.bem.solver is not None:
            if self.bem.needs_assembly(self.bdry):
                log.debug("solving for BEM matrix")
                for targ in self.bdry:
                    for src in self.bdry:
                        self.bem.assemble(src, targ)
                self.bem.mark_assembled()
            self.bem.solve(self.bdry)

        for targ in [*self.vort, *self.fldpt]:
            targ.zero_vels()
            self._accumulate_all(targ, [*self.vort, *self.bdry])
            targ.finalize_vels(fs)

        for coll in [*self.vort, *self.bdry, *self.fldpt]:
            coll.move(self.time, self.dt)

        self.time += self.dt

    # -------- queries --------
    def velocities(self, xq: np.ndarray | Sequence[Sequence[float]]) -> FloatArray:
        """Velocity at arbitrary query points from all vorticity and boundaries."""
        pts = np.asarray(xq, dtype=np.float64).reshape(-1, 3)
        probe = Points(ElementPacket(x=pts), "inert", "fixed")
        self._accumulate_all(probe, [*self.vort, *self.bdry])
        probe.finalize_vels(self.fs)
        return probe.get_vel().copy()

    def suggest_dt(self, cfl: float = 0.3, floor: float = 1e-4) -> float:
        """Heuristic dt so max displacement is at most cfl * vdelta."""
        xs = [c.get_pos() for c in self.vort]
        umax = float(np.linalg.norm(self.fs))
        if xs:
            u = self.velocities(np.vstack(xs))
            umax = max(umax, float(np.linalg.norm(u, axis=1).max(initial=0.0)))
        if umax <= 0.0:
            return self.dt
        return max(cfl * self.get_vdelta() / umax, floor)

    def diagnostics(self) -> dict[str, Any]:
        colls: list[ElementBase] = [*self.vort, *self.bdry]
        circ = np.sum([c.get_total_circ(self.time) for c in colls], axis=0) if colls else np.zeros(3)
        imp = np.sum([c.get_total_impulse() for c in colls], axis=0) if colls else np.zeros(3)
        bcirc = np.sum([b.get_body_circ(self.time) for b in self.bdry], axis=0) if self.bdry else np.zeros(3)
        return {
            "time": self.time,
            "nparts": self.get_nparts(),
            "npanels": sum(b.get_npanels() for b in self.bdry),
            "total_circulation": np.asarray(circ, dtype=np.float64),
            "total_impulse": np.asarray(imp, dtype=np.float64),
            "body_circulation": np.asarray(bcirc, dtype=np.float64),
            "max_strength": max((c.get_max_str() for c in self.vort), default=0.0),
        }
