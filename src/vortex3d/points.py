
from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from .elements import (
    Body,
    ElemKind,
    ElementBase,
    ElementPacket,
    FloatArray,
    FOUR_PI,
    MoveKind,
)

log = logging.getLogger(__name__)

# values per non-inert point: strength (3) and core radius
_VALS_PER_POINT = 4


class Points(ElementBase):
    """Vortex particles, passive tracers and field points.

    Non-inert points carry a vector strength and a core radius. Lagrangian
    non-inert points also carry a velocity gradient (n,3,3) used for
    vortex stretching.
    """

    def __init__(
        self,
        packet: ElementPacket,
        elem: ElemKind,
        move: MoveKind,
        body: Body | None = None,
    ) -> None:
        if elem == "reactive":
            raise ValueError("Points cannot be reactive; only surfaces carry boundary conditions.")
        super().__init__(0, elem, move, body)
        self.r: FloatArray | None = None
        self.ug: FloatArray | None = None
        if not self.is_inert:
            self.s = np.zeros((0, 3))
            self.r = np.zeros(0)
            if self.M == "lagrangian":
                self.ug = np.zeros((0, 3, 3))
        if body is not None:
            self.ux = np.zeros((0, 3))
        self.add_new(packet)

    @classmethod
    def from_particles(cls, flat: np.ndarray | Sequence[float], elem: ElemKind = "active",
                       move: MoveKind = "lagrangian") -> Points:
        """Build from 7-tuples (x, y, z, sx, sy, sz, r)."""
        arr = np.asarray(flat, dtype=np.float64).ravel()
        if arr.size % 7 != 0:
            raise ValueError("Particle vector is not an even multiple of 7.")
        p = arr.reshape(-1, 7)
        return cls(ElementPacket(x=p[:, :3], val=p[:, 3:]), elem, move)

    # -------- properties --------
    def get_rad(self) -> FloatArray | None: return self.r

    def get_velgrad(self) -> FloatArray | None: return self.ug

    # -------- growth --------
    def add_new(self, packet: ElementPacket) -> None:
        nnew = packet.nnodes
        if nnew == 0:
            return
        if packet.npanels != 0:
            raise ValueError("Points packets must not carry connectivity.")
        if not self.is_inert and packet.val.size != _VALS_PER_POINT * nnew:
            raise ValueError(f"Value array must hold {_VALS_PER_POINT} entries per point.")

        log.info("adding %d new points to%s", nnew, self.to_string())
        pts = packet.nodes
        self.x = np.vstack([self.x, pts])
        if self.ux is not None:
            self.ux = np.vstack([self.ux, pts])
        self.u = np.vstack([self.u, np.zeros((nnew, 3))])
        if self.s is not None and self.r is not None:
            vals = packet.val.reshape(-1, _VALS_PER_POINT)
            self.s = np.vstack([self.s, vals[:, :3]])
            self.r = np.concatenate([self.r, vals[:, 3]])
        if self.ug is not None:
            self.ug = np.concatenate([self.ug, np.zeros((nnew, 3, 3))])
        self.n += nnew

    # -------- per-step lifecycle --------
    def zero_vels(self) -> None:
        super().zero_vels()
        if self.ug is not None:
            self.ug.fill(0.0)

    def finalize_vels(self, fs: Sequence[float]) -> None:
        super().finalize_vels(fs)
        if self.ug is not None:
            self.ug *= 1.0 / FOUR_PI

    def move(self, time: float, dt: float) -> None:
        # stretch with the gradients evaluated at the old positions
        if self.M == "lagrangian" and self.s is not None and self.ug is not None:
            self.s += dt * np.einsum("nab,nb->na", self.ug, self.s)
        super().move(time, dt)

    def as_particles(self) -> FloatArray:
        """Return (n,7) rows of (x, y, z, sx, sy, sz, r)."""
        if self.s is None or self.r is None:
            raise RuntimeError("Inert points carry no strengths.")
        return np.hstack([self.x, self.s, self.r[:, None]])

    def to_string(self) -> str:
        return super().to_string() + " Points"
