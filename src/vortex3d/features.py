
from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np
from trimesh import creation, remesh

from .elements import Body, ElementPacket, FloatArray, IntArray
from .geometry_io import read_geometry_file
from .surfaces import _panel_bases

log = logging.getLogger(__name__)

Vec3 = tuple[float, float, float]


def _to_packet(verts: FloatArray, faces: IntArray, external: bool,
               val: FloatArray | None = None) -> ElementPacket:
    """Pack a mesh with 2 values per panel; internal flow reverses the winding."""
    tris = np.asarray(faces, dtype=np.int64)
    if not external:
        tris = tris[:, [0, 2, 1]]
    if val is None:
        val = np.zeros((tris.shape[0], 2))
    return ElementPacket(x=np.asarray(verts, dtype=np.float64).ravel(), idx=tris.ravel(),
                         val=np.asarray(val, dtype=np.float64).ravel())


@dataclass(slots=True)
class BoundaryFeature:
    """A solid boundary present at the start of a run.

    external: fluid is outside the surface (False for internal flow)
    center:   position of the feature in its body frame
    """
    body: Body | None = None
    external: bool = True
    center: Vec3 = (0.0, 0.0, 0.0)

    def init_elements(self, ips: float) -> ElementPacket:
        raise NotImplementedError

    def to_short_string(self) -> str:
        return "boundary"


@dataclass(slots=True)
class Ovoid(BoundaryFeature):
    """Sphere or ellipsoid with diameters (sx, sy, sz)."""
    sx: float = 1.0
    sy: float = 1.0
    sz: float = 1.0
    max_subdivisions: int = 6

    def init_elements(self, ips: float) -> ElementPacket:
        if ips <= 0.0:
            raise ValueError("ips must be positive.")
        scale = np.array([self.sx, self.sy, self.sz], dtype=np.float64)
        if (scale <= 0.0).any():
            raise ValueError("Ovoid diameters must be positive.")
        # refine a unit icosphere until the largest scaled edge is below ips
        level = 0
        mesh = creation.icosphere(subdivisions=0, radius=0.5)
        while level < self.max_subdivisions and mesh.edges_unique_length.max() * scale.max() > ips:
            level += 1
            mesh = creation.icosphere(subdivisions=level, radius=0.5)
        verts = np.asarray(mesh.vertices) * scale + np.asarray(self.center)
        log.info("ovoid with %d panels at level %d", len(mesh.faces), level)
        return _to_packet(verts, np.asarray(mesh.faces), self.external)

    def to_short_string(self) -> str:
        return "ovoid"


@dataclass(slots=True)
class SolidRect(BoundaryFeature):
    """Rectangular solid with side lengths (sx, sy, sz)."""
    sx: float = 1.0
    sy: float = 1.0
    sz: float = 1.0

    def init_elements(self, ips: float) -> ElementPacket:
        if ips <= 0.0:
            raise ValueError("ips must be positive.")
        box = creation.box(extents=(self.sx, self.sy, self.sz))
        verts, faces = remesh.subdivide_to_size(box.vertices, box.faces, max_edge=ips)
        verts = np.asarray(verts) + np.asarray(self.center)
        return _to_packet(verts, np.asarray(faces), self.external)

    def to_short_string(self) -> str:
        return "rectangular prism"


@dataclass(slots=True)
class BoundaryQuad(BoundaryFeature):
    """Flat quadrilateral p0-p1-p2-p3 with a prescribed boundary velocity bc.

    Each panel gets the tangential components of bc as its two values.
    The fluid is on the side of (p1 - p0) x (p3 - p0).
    """
    p1: Vec3 = (1.0, 0.0, 0.0)
    p2: Vec3 = (1.0, 1.0, 0.0)
    p3: Vec3 = (0.0, 1.0, 0.0)
    bc: Vec3 = (0.0, 0.0, 0.0)

    def init_elements(self, ips: float) -> ElementPacket:
        if ips <= 0.0:
            raise ValueError("ips must be positive.")
        c = np.array([self.center, self.p1, self.p2, self.p3], dtype=np.float64)
        nu = max(1, math.ceil(max(np.linalg.norm(c[1] - c[0]), np.linalg.norm(c[2] - c[3])) / ips))
        nv = max(1, math.ceil(max(np.linalg.norm(c[3] - c[0]), np.linalg.norm(c[2] - c[1])) / ips))

        # bilinear map of a (nu+1) x (nv+1) lattice
        s, t = np.meshgrid(np.linspace(0.0, 1.0, nu + 1), np.linspace(0.0, 1.0, nv + 1), indexing="ij")
        s = s.ravel()[:, None]
        t = t.ravel()[:, None]
        verts = (1 - s) * (1 - t) * c[0] + s * (1 - t) * c[1] + s * t * c[2] + (1 - s) * t * c[3]

        i, j = np.meshgrid(np.arange(nu), np.arange(nv), indexing="ij")
        n00 = (i * (nv + 1) + j).ravel()
        n10 = n00 + (nv + 1)
        n11 = n10 + 1
        n01 = n00 + 1
        faces = np.concatenate([np.stack([n00, n10, n11], axis=1),
                                np.stack([n00, n11, n01], axis=1)])
        if not self.external:
            faces = faces[:, [0, 2, 1]]

        x1, x2, _, _ = _panel_bases(verts[faces])
        bc = np.asarray(self.bc, dtype=np.float64)
        val = np.stack([x1 @ bc, x2 @ bc], axis=1)
        return ElementPacket(x=verts.ravel(), idx=faces.ravel(), val=val.ravel())

    def to_short_string(self) -> str:
        return "rectangular plane"


@dataclass(slots=True)
class ExteriorFromFile(BoundaryFeature):
    """Mesh from a file, scaled by (sx, sy, sz) then moved to center."""
    infile: str = "input.obj"
    sx: float = 1.0
    sy: float = 1.0
    sz: float = 1.0

    def init_elements(self, ips: float) -> ElementPacket:
        packet = read_geometry_file(self.infile)
        verts = packet.nodes * np.array([self.sx, self.sy, self.sz]) + np.asarray(self.center)
        return _to_packet(verts, packet.triangles, self.external)

    def to_short_string(self) -> str:
        return "file mesh"
