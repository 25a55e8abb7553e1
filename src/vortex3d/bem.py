
from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

import numpy as np

from .elements import FloatArray, FOUR_PI
from .kernels import panel_quadrature_points
from .rhs import bc_basis
from .surfaces import Surfaces

log = logging.getLogger(__name__)

Solver = Callable[[FloatArray, FloatArray], FloatArray]


def unknown_kinds(nbc: int) -> tuple[str, ...]:
    """Which sheet component each per-panel unknown drives."""
    return {1: ("src",), 2: ("x1", "x2"), 3: ("x1", "x2", "src")}[nbc]


def _self_limit(src: Surfaces, kind: str) -> FloatArray:
    # sheets take the limit on the body side, which leaves the interior at rest
    if kind == "x1":
        return 0.5 * src.get_x2()
    if kind == "x2":
        return -0.5 * src.get_x1()
    return 0.5 * src.get_norm()


def unit_influence(src: Surfaces, tx: FloatArray, kind: str, same: bool = False,
                   i0: int = 0) -> FloatArray:
    """Velocity (nt,ns,3) induced at tx by a unit sheet component on each source panel.

    Uses the same 4-point quadrature as kernel_2_0p/kernel_2s_0p, scaled by 1/(4 pi).
    When same is True, tx are the panel centroids of src starting at panel i0,
    and the diagonal is replaced by the one-sided sheet limit.
    """
    nt = tx.shape[0]
    area = src.get_area()
    q = panel_quadrature_points(src.get_corners())              # (ns,4,3)
    ns = q.shape[0]
    diag = None
    if same:
        ii = np.arange(nt)
        diag = np.zeros((nt, ns), dtype=bool)
        diag[ii, ii + i0] = True
    if kind != "src":
        sv = (src.get_x1() if kind == "x1" else src.get_x2()) * area[:, None]

    vel = np.zeros((nt, ns, 3))
    for k in range(q.shape[1]):
        d = tx[:, None, :] - q[None, :, k, :]                   # (nt,ns,3)
        r2 = np.sum(d * d, axis=2)
        if diag is not None:
            r2[diag] = 1.0
        r3 = 0.25 / (r2 * np.sqrt(r2))
        if diag is not None:
            r3[diag] = 0.0
        if kind == "src":
            vel += r3[:, :, None] * d * area[None, :, None]
        else:
            vel += r3[:, :, None] * np.cross(sv[None, :, :], d)
    vel /= FOUR_PI

    if same:
        vel[ii, ii + i0] = _self_limit(src, kind)[i0:i0 + nt]
    return vel


def _is_static(coll: Surfaces) -> bool:
    if coll.M == "fixed":
        return True
    return coll.M == "bodybound" and coll.B is not None and coll.B.is_ground


class BEM:
    """Dense boundary-element system over all reactive surface collections.

    Rows are boundary-condition projections at panel centroids, columns are
    per-panel unknown sheet components. The linear solve is delegated to an
    optional solver(A, b) -> x; without one, nothing is solved and the
    matrix is never allocated. The matrix is kept between steps while every
    reactive collection is fixed in space.
    """

    def __init__(self, solver: Solver | None = None, query_batch: int | None = 4096) -> None:
        if query_batch is not None and query_batch <= 0:
            raise ValueError("query_batch must be positive or None.")
        self.solver = solver
        self.query_batch = query_batch
        self.A: FloatArray = np.zeros((0, 0))
        self.b: FloatArray = np.zeros(0)
        self.nrows = 0
        self.assembled = False

    def set_rows(self, bdry: Sequence[Surfaces]) -> int:
        row = 0
        for coll in bdry:
            if coll.E != "reactive":
                continue
            coll.set_first_row(row)
            row = coll.get_next_row()
        if row != self.nrows:
            self.A = np.zeros((0, 0))
            self.b = np.zeros(row)
            self.nrows = row
            self.assembled = False
        return row

    def set_rhs(self, targ: Surfaces, rhs: FloatArray) -> None:
        nr = targ.get_num_rows()
        if rhs.size != nr:
            raise RuntimeError("RHS vector size does not match target rows.")
        i0 = targ.get_first_row()
        if i0 + nr > self.nrows:
            raise RuntimeError("Rows have not been assigned for this target.")
        self.b[i0:i0 + nr] = rhs

    def needs_assembly(self, bdry: Sequence[Surfaces]) -> bool:
        """True unless a matrix is already built and no reactive collection can move."""
        if not self.assembled:
            return True
        return any(c.E == "reactive" and not _is_static(c) for c in bdry)

    def assemble(self, src: Surfaces, targ: Surfaces) -> None:
        """Fill the influence block of src columns on targ rows."""
        if src.E != "reactive" or targ.E != "reactive":
            log.debug("skipping non-reactive pair%s ->%s", src.to_string(), targ.to_string())
            return
        if targ.get_next_row() > self.nrows or src.get_next_row() > self.nrows:
            raise RuntimeError("Rows have not been assigned for this pair.")
        if self.A.shape != (self.nrows, self.nrows):
            self.A = np.zeros((self.nrows, self.nrows))

        log.debug("assembling influence of%s on%s", src.to_string(), targ.to_string())
        tbasis = bc_basis(targ)                                   # (nt,kt,3)
        nt, kt = tbasis.shape[:2]
        ns = src.get_npanels()
        kinds = unknown_kinds(src.get_num_bcs())
        ks = len(kinds)
        tx = targ.get_panel_centers()
        r0 = targ.get_first_row()
        c0 = src.get_first_row()

        step = self.query_batch or max(nt, 1)
        for t0 in range(0, nt, step):
            t1 = min(t0 + step, nt)
            block = np.empty((t1 - t0, kt, ns, ks))
            for c, kind in enumerate(kinds):
                vel = unit_influence(src, tx[t0:t1], kind, same=src is targ, i0=t0)
                block[:, :, :, c] = np.einsum("tak,tsk->tas", tbasis[t0:t1], vel)
            self.A[r0 + t0 * kt:r0 + t1 * kt, c0:c0 + ns * ks] = block.reshape((t1 - t0) * kt, ns * ks)

    def mark_assembled(self) -> None:
        self.assembled = True

    def get_matrix(self) -> FloatArray: return self.A

    def get_rhs(self) -> FloatArray: return self.b

    def reset(self) -> None:
        self.A = np.zeros((0, 0))
        self.b = np.zeros(0)
        self.nrows = 0
        self.assembled = False

    def solve(self, bdry: Sequence[Surfaces]) -> bool:
        """Solve for reactive strengths and hand each collection its slice."""
        if self.solver is None:
            log.debug("BEM solve is disabled, strengths are left unchanged")
            return False
        if self.nrows == 0:
            return False
        if self.A.shape != (self.nrows, self.nrows):
            raise RuntimeError("Influence matrix has not been assembled.")

        x = np.asarray(self.solver(self.A, self.b), dtype=np.float64).ravel()
        if x.size != self.nrows:
            raise RuntimeError("Solver returned a vector of the wrong size.")

        for coll in bdry:
            if coll.E != "reactive":
                continue
            i0 = coll.get_first_row()
            npan = coll.get_npanels()
            kinds = unknown_kinds(coll.get_num_bcs())
            sol = x[i0:i0 + npan * len(kinds)].reshape(npan, len(kinds))
            if "x1" in kinds:
                coll.set_str(0, 2 * npan, sol[:, 0:2])
            if "src" in kinds:
                coll.set_src_str(sol[:, -1])
        return True
