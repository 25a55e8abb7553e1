
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import trimesh

from .elements import ElementPacket

log = logging.getLogger(__name__)


def read_geometry_file(path: str | Path) -> ElementPacket:
    """Read a triangle mesh (obj, stl, ply, off, ...) into a packet.

    Faces are triangulated by trimesh; each panel gets one zero value.
    """
    log.info("reading %s", path)
    try:
        mesh = trimesh.load(str(path), force="mesh", process=False)
    except Exception as exc:
        raise ValueError(f"Geometry file {path} is unreadable, abandoning") from exc
    if not isinstance(mesh, trimesh.Trimesh) or len(mesh.faces) == 0:
        raise ValueError(f"Geometry file {path} contains no triangles")

    verts = np.asarray(mesh.vertices, dtype=np.float64)
    faces = np.asarray(mesh.faces, dtype=np.int64)
    log.info("read %d nodes and %d panels", verts.shape[0], faces.shape[0])
    return ElementPacket(x=verts.ravel(), idx=faces.ravel(), val=np.zeros(faces.shape[0]))
