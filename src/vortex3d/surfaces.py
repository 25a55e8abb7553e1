
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
    IntArray,
    MoveKind,
)

log = logging.getLogger(__name__)


class Surfaces(ElementBase):
    """Triangulated surfaces carrying vortex (and optional source) sheets.

    Node positions, untransformed positions and node velocities live in the
    base class. Everything here is per panel:

      idx    (np,3)    node indices of each triangle
      area   (np,)     panel areas
      b      (3,np,3)  basis vectors: b[0] tangent-1, b[1] tangent-2, b[2] normal
      pu     (np,3)    panel-center velocities
      vs     (np,2)    vortex sheet strengths along tangent-1 and tangent-2
      bc     (np,k)    boundary conditions (reactive only, k in 1..3)
      ss     (np,)     source sheet strengths, created on demand
      ps     (np,3)    absolute panel strengths, (vs1*x1 + vs2*x2)*area

    The normal points into the fluid: n = x1 x x2.
    """

    def __init__(
        self,
        packet: ElementPacket,
        elem: ElemKind,
        move: MoveKind,
        body: Body | None = None,
    ) -> None:
        super().__init__(0, elem, move, body)
        self.npan = 0
        self.idx: IntArray = np.zeros((0, 3), dtype=np.int64)
        self.area: FloatArray = np.zeros(0)
        self.b: FloatArray = np.zeros((3, 0, 3))
        self.pu: FloatArray = np.zeros((0, 3))
        self.vs: FloatArray = np.zeros((0, 2))
        self.bc: FloatArray | None = None
        self.ss: FloatArray | None = None
        self.ps: FloatArray = np.zeros((0, 3))

        self.istart = 0
        self.vol: float | None = None
        self.utc: FloatArray = np.zeros(3)
        self.tc: FloatArray = np.zeros(3)

        if body is not None:
            self.ux = self.x.copy()

        if packet.npanels == 0:
            return
        log.info("new collection with %d panels and %d nodes", packet.npanels, packet.nnodes)
        self.add_new(packet)

    # -------- properties --------
    def get_npanels(self) -> int: return self.npan

    def get_vol(self) -> float | None: return self.vol

    def get_geom_center(self) -> FloatArray: return self.tc.copy()

    def get_idx(self) -> IntArray: return self.idx

    def get_bcs(self) -> FloatArray | None: return self.bc

    # panel-center velocities and strengths replace the node-wise ones
    def get_vel(self) -> FloatArray: return self.pu

    def get_str(self) -> FloatArray: return self.ps

    def get_x1(self) -> FloatArray: return self.b[0]

    def get_x2(self) -> FloatArray: return self.b[1]

    def get_norm(self) -> FloatArray: return self.b[2]

    def get_area(self) -> FloatArray: return self.area

    def get_vort_str(self) -> FloatArray: return self.vs

    def have_src_str(self) -> bool: return self.ss is not None

    def get_src_str(self) -> FloatArray:
        if self.ss is None:
            raise RuntimeError("Source strengths have not been created.")
        return self.ss

    def get_corners(self) -> FloatArray:
        """Triangle corner coordinates, (np,3,3)."""
        return self.x[self.idx]

    def get_panel_centers(self) -> FloatArray:
        return np.asarray(self.x[self.idx].mean(axis=1), dtype=np.float64)

    # -------- BEM row bookkeeping --------
    def set_first_row(self, i: int) -> None:
        self.istart = int(i)

    def get_first_row(self) -> int: return self.istart

    def get_num_bcs(self) -> int:
        return 0 if self.bc is None else int(self.bc.shape[1])

    def get_num_rows(self) -> int:
        return self.get_num_bcs() * self.npan + (3 if self.is_augmented() else 0)

    def get_next_row(self) -> int:
        return self.istart + self.get_num_rows()

    def is_augmented(self) -> bool:
        augment = True
        if self.B is not None:
            # the ground body bounding an internal flow is never augmented
            if self.B.is_ground and (self.vol is None or self.vol < 0.0):
                augment = False
        else:
            augment = False
        if self.E != "reactive":
            augment = False

        # augmentation is switched off for all collections
        augment = False
        return augment

    def get_max_bc_value(self) -> float:
        if self.bc is None or self.bc.size == 0:
            return 0.0
        return float(np.abs(self.bc).max())

    # -------- strengths --------
    def set_str(self, ioffset: int, icnt: int, values: np.ndarray | Sequence[float]) -> None:
        """Assign solved BEM unknowns as vortex sheet strengths."""
        vals = np.asarray(values, dtype=np.float64).ravel()
        if ioffset != 0:
            raise RuntimeError("Offset is not zero.")
        if vals.size != 2 * self.npan or icnt != vals.size:
            raise RuntimeError("Set strength array size does not match.")
        self.vs = vals.reshape(self.npan, 2).copy()
        self.vortex_sheet_to_panel_strength(self.npan)

    def set_src_str(self, values: np.ndarray | Sequence[float]) -> None:
        vals = np.asarray(values, dtype=np.float64).ravel()
        if vals.size != self.npan:
            raise RuntimeError("Source strength array size does not match.")
        self.ss = vals.copy()

    def vortex_sheet_to_panel_strength(self, num: int) -> None:
        if self.vs.shape[0] != num or self.b.shape[1] != num or self.area.shape[0] != num:
            raise RuntimeError("Input array sizes do not match.")
        x1 = self.b[0]
        x2 = self.b[1]
        self.ps = (self.vs[:, 0:1] * x1 + self.vs[:, 1:2] * x2) * self.area[:, None]

    def zero_strengths(self) -> None:
        super().zero_strengths()
        self.vs.fill(0.0)
        if self.ss is not None:
            self.ss.fill(0.0)
        self.vortex_sheet_to_panel_strength(self.npan)

    def add_rot_strengths(self, constfac: float, rotfactor: float) -> None:
        """Add the sheet strengths that cancel solid-body rotation of this body."""
        if self.B is None or self.B.is_ground:
            return
        rotvel = self.B.get_rotvel_vec()
        if np.abs(rotvel).sum() <= np.finfo(np.float64).eps:
            return
        if self.vol is None or self.vol <= 0.0:
            raise RuntimeError("Have not calculated transformed center, or volume is negative.")
        if self.ux is None:
            raise RuntimeError("Untransformed positions have not been set.")

        if self.ss is None:
            self.ss = np.zeros(self.npan)
        elif self.ss.shape[0] != self.npan:
            self.ss = np.concatenate([self.ss, np.zeros(self.npan - self.ss.shape[0])])

        factor = constfac + rotfactor

        # work in the body frame: untransformed panels and bases
        corners = self.ux[self.idx]
        x1, x2, norm, _ = _panel_bases(corners)
        dc = corners.mean(axis=1) - self.utc
        u = np.cross(rotvel[None, :], dc)
        gam = np.cross(norm, u)
        self.vs[:, 0] += factor * np.sum(gam * x1, axis=1)
        self.vs[:, 1] += factor * np.sum(gam * x2, axis=1)
        self.ss += factor * np.sum(u * norm, axis=1)
        self.vortex_sheet_to_panel_strength(self.npan)

    # -------- growth --------
    def add_new(self, packet: ElementPacket) -> None:
        """Append nodes and panels; indices in packet are local to it."""
        nsurfs = packet.npanels
        if nsurfs == 0:
            return
        nnodes = packet.nnodes
        nnold = self.n
        neold = self.npan
        if packet.val.size % nsurfs != 0:
            raise ValueError("Value array is not an even multiple of panel count.")
        tris = packet.triangles
        if tris.max() >= nnodes:
            raise ValueError("Some indices are bad.")
        nper = packet.val.size // nsurfs
        if self.E == "active" and nper != 2:
            raise ValueError("Active panels need exactly 2 sheet strengths per panel.")
        if self.E == "reactive":
            if not 0 < nper < 4:
                raise ValueError("Number of boundary conditions is not 1..3.")
            if self.bc is not None and neold > 0 and self.bc.shape[1] != nper:
                raise ValueError("Boundary condition array is not the correct size.")
        if neold > 0:
            log.info("adding %d new surface panels and %d new points to collection", nsurfs, nnodes)

        new_x = packet.nodes
        self.x = np.vstack([self.x, new_x])
        if self.B is not None:
            base = self.ux if self.ux is not None else np.zeros((0, 3))
            self.ux = np.vstack([base, new_x])
        self.idx = np.vstack([self.idx, tris + nnold])
        self.n += nnodes
        self.npan += nsurfs

        self.compute_bases(self.npan)

        if self.E == "active":
            self.vs = np.vstack([self.vs, packet.val.reshape(nsurfs, 2)])
        elif self.E == "reactive":
            vals = packet.val.reshape(nsurfs, nper)
            if self.bc is None or neold == 0:
                self.bc = vals.copy()
            else:
                self.bc = np.vstack([self.bc, vals])
            self.vs = np.vstack([self.vs, np.zeros((nsurfs, 2))])
        else:
            # inert: value is ignored
            self.vs = np.vstack([self.vs, np.zeros((nsurfs, 2))])
        if self.ss is not None:
            self.ss = np.concatenate([self.ss, np.zeros(nsurfs)])
        self.vortex_sheet_to_panel_strength(self.npan)

        self.u = np.vstack([self.u, np.zeros((nnodes, 3))])
        self.pu = np.vstack([self.pu, np.zeros((nsurfs, 3))])

        if self.M == "bodybound":
            self.set_geom_center()

    # -------- geometry --------
    def compute_bases(self, nnew: int, start: int | None = None) -> None:
        """Recompute bases and areas of panels [start, nnew).

        By default only panels beyond those already known are touched.
        """
        if nnew != self.idx.shape[0]:
            raise RuntimeError("Array size mismatch.")
        norig = self.area.shape[0] if start is None else int(start)
        norig = min(norig, nnew)

        if self.b.shape[1] != nnew:
            b = np.zeros((3, nnew, 3))
            area = np.zeros(nnew)
            keep = min(self.b.shape[1], nnew)
            b[:, :keep] = self.b[:, :keep]
            area[:keep] = self.area[:keep]
            self.b = b
            self.area = area

        if norig == nnew:
            return
        x1, x2, norm, area = _panel_bases(self.x[self.idx[norig:nnew]])
        self.b[0, norig:nnew] = x1
        self.b[1, norig:nnew] = x2
        self.b[2, norig:nnew] = norm
        self.area[norig:nnew] = area

    def set_geom_center(self) -> None:
        """Volume and centroid from signed tetrahedra against the origin."""
        if self.B is None:
            raise RuntimeError("Body pointer has not been set.")
        if self.ux is None:
            raise RuntimeError("Untransformed positions have not been set.")

        log.info("computing geometric center of %d panels", self.npan)
        c = self.ux[self.idx]
        p0 = c[:, 0]
        p1 = c[:, 1]
        p2 = c[:, 2]
        tetvol = np.einsum("ij,ij->i", p0, np.cross(p1, p2)) / 6.0
        vsum = float(tetvol.sum())
        csum = 0.25 * (tetvol[:, None] * (p0 + p1 + p2)).sum(axis=0)
        self.vol = vsum
        if vsum != 0.0:
            self.utc = np.asarray(csum / vsum, dtype=np.float64)
        else:
            self.utc = np.zeros(3)
        self.tc = self.utc.copy()
        if vsum <= 0.0:
            log.warning("surface encloses non-positive volume %g; treating as internal flow", vsum)
        log.info("geom center is %s and vol is %g", self.utc, self.vol)

    def transform(self, time: float) -> None:
        super().transform(time)
        self.compute_bases(self.npan, start=0)
        self.vortex_sheet_to_panel_strength(self.npan)

        if self.B is not None and self.M == "bodybound":
            self.tc = self.B.transform_points(self.utc[None, :], time)[0]
        else:
            self.tc = self.utc.copy()

    def move(self, time: float, dt: float) -> None:
        super().move(time, dt)
        if self.M == "lagrangian":
            self.compute_bases(self.npan, start=0)
            self.vortex_sheet_to_panel_strength(self.npan)

    # -------- velocities --------
    def zero_vels(self) -> None:
        self.pu.fill(0.0)
        super().zero_vels()

    def finalize_vels(self, fs: Sequence[float]) -> None:
        self.pu *= 1.0 / FOUR_PI
        self.pu += np.asarray(fs, dtype=np.float64)[None, :]
        super().finalize_vels(fs)

    def add_body_motion(self, factor: float, time: float) -> None:
        """Add translation plus rotation about the geometric center to pu."""
        if self.B is None or self.B.is_ground:
            return
        if self.vol is None or self.vol <= 0.0:
            raise RuntimeError("Have not calculated transformed center, or volume is negative.")
        thisvel = self.B.get_vel(time)
        rotvel = self.B.get_rotvel_vec(time)
        dc = self.get_panel_centers() - self.tc
        self.pu += factor * (thisvel[None, :] + np.cross(rotvel[None, :], dc))

    # -------- equivalent particles and integrals --------
    def represent_as_particles(self, offset: float, vdelta: float) -> FloatArray:
        """One particle per panel: (x, y, z, sx, sy, sz, r) rows, (np,7)."""
        self.vortex_sheet_to_panel_strength(self.npan)
        dn = offset * vdelta
        px = np.empty((self.npan, 7))
        px[:, 0:3] = self.get_panel_centers() + dn * self.b[2]
        px[:, 3:6] = self.ps
        px[:, 6] = vdelta
        return px

    def get_max_str(self) -> float:
        if self.npan == 0:
            return 0.0
        return float(np.linalg.norm(self.ps, axis=1).max())

    def get_total_circ(self, time: float = 0.0) -> FloatArray:
        if self.is_inert:
            return np.zeros(3)
        pts = self.represent_as_particles(0.0, 1.0)
        return np.asarray(pts[:, 3:6].sum(axis=0), dtype=np.float64)

    def get_body_circ(self, time: float = 0.0) -> FloatArray:
        if self.B is None:
            return np.zeros(3)
        vol = 0.0 if self.vol is None else self.vol
        return 2.0 * vol * self.B.get_rotvel_vec(time)

    def get_total_impulse(self) -> FloatArray:
        if self.is_inert:
            return np.zeros(3)
        pts = self.represent_as_particles(0.0, 1.0)
        return np.asarray(np.cross(pts[:, 3:6], pts[:, 0:3]).sum(axis=0), dtype=np.float64)

    def to_string(self) -> str:
        return f" {self.npan}" + super().to_string() + " Panels"


def _panel_bases(corners: FloatArray) -> tuple[FloatArray, FloatArray, FloatArray, FloatArray]:
    """Tangents, normal and area of triangles given as (N,3,3) corners."""
    # x1 runs from node 0 to node 1
    x1 = corners[:, 1] - corners[:, 0]
    base = np.linalg.norm(x1, axis=1)
    x1 = x1 / base[:, None]
    # x2 is perpendicular to x1 and points toward node 2
    x2 = corners[:, 2] - corners[:, 0]
    x2 = x2 - np.sum(x2 * x1, axis=1)[:, None] * x1
    height = np.linalg.norm(x2, axis=1)
    x2 = x2 / height[:, None]
    norm = np.cross(x1, x2)
    area = 0.5 * base * height
    return x1, x2, norm, area
