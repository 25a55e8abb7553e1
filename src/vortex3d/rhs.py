
from __future__ import annotations

import logging
from functools import singledispatch

import numpy as np

from .elements import ElementBase, FloatArray
from .points import Points
from .surfaces import Surfaces

log = logging.getLogger(__name__)


def bc_basis(targ: Surfaces, nbc: int | None = None) -> FloatArray:
    """Per-panel projection vectors for the boundary conditions, (np,nbc,3).

    1 component: normal; 2: both tangents; 3: both tangents then normal.
    """
    k = targ.get_num_bcs() if nbc is None else nbc
    if k == 1:
        vecs = [targ.get_norm()]
    elif k == 2:
        vecs = [targ.get_x1(), targ.get_x2()]
    elif k == 3:
        vecs = [targ.get_x1(), targ.get_x2(), targ.get_norm()]
    else:
        raise RuntimeError(f"Unsupported number of boundary conditions: {k}")
    return np.stack(vecs, axis=1)


@singledispatch
def vels_to_rhs(targ: ElementBase) -> FloatArray:
    """Convert target velocities into the BEM right-hand side."""
    raise TypeError(f"No RHS conversion for {type(targ).__name__}")


@vels_to_rhs.register(Points)
def vels_to_rhs_points(targ: Points) -> FloatArray:
    log.debug("no RHS conversion for%s", targ.to_string())
    return np.zeros(targ.get_n())


@vels_to_rhs.register(Surfaces)
def vels_to_rhs_panels(targ: Surfaces) -> FloatArray:
    bc = targ.get_bcs()
    if bc is None or bc.size == 0:
        raise RuntimeError("No boundary condition data on target.")
    vel = targ.get_vel()
    npan = targ.get_npanels()
    if vel.shape[0] != npan or bc.shape[0] != npan or targ.get_norm().shape[0] != npan:
        raise RuntimeError("Velocity, basis and boundary condition sizes disagree.")

    log.debug("converting velocities to RHS on%s", targ.to_string())
    proj = np.einsum("nk,nck->nc", vel, bc_basis(targ, bc.shape[1]))
    return np.asarray((-proj - bc).ravel(), dtype=np.float64)
