
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Literal, get_args
from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray

FloatArray = NDArray[np.float64]
IntArray = NDArray[np.int64]

ElemKind = Literal["active", "reactive", "inert"]
MoveKind = Literal["lagrangian", "bodybound", "fixed"]

Dimensions = 3
FOUR_PI = 4.0 * math.pi


# ---------------------------
# Utility
# ---------------------------
def _as_float_array1(x: np.ndarray | Sequence[float], name: str) -> FloatArray:
    arr = np.asarray(x, dtype=np.float64).ravel()
    if not np.isfinite(arr).all():
        raise ValueError(f"{name} contains non-finite values.")
    return np.ascontiguousarray(arr)


def _as_float_array3(x: np.ndarray | Sequence[Sequence[float]], name: str) -> FloatArray:
    """Convert to contiguous float64 (N,3)."""
    arr = np.asarray(x, dtype=np.float64)
    if arr.ndim == 1:
        if arr.size % Dimensions != 0:
            raise ValueError(f"{name} is not an even multiple of {Dimensions}.")
        arr = arr.reshape(-1, Dimensions)
    if arr.ndim != 2 or arr.shape[1] != Dimensions:
        raise ValueError(f"{name} must have shape (N,3).")
    if not np.isfinite(arr).all():
        raise ValueError(f"{name} contains non-finite values.")
    return np.ascontiguousarray(arr)


def check_kinds(elem: str, move: str) -> None:
    if elem not in get_args(ElemKind):
        raise ValueError(f"Unknown element kind: {elem}")
    if move not in get_args(MoveKind):
        raise ValueError(f"Unknown movement kind: {move}")


# ---------------------------
# Transfer object
# ---------------------------
@dataclass(slots=True)
class ElementPacket:
    """Flat transfer object for geometry and strengths.

    x:   node coordinates, 3 per node
    idx: triangle connectivity, 3 node indices per panel (empty for points)
    val: per-element values (strengths or boundary conditions)
    """
    x: FloatArray = field(default_factory=lambda: np.zeros(0))
    idx: IntArray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    val: FloatArray = field(default_factory=lambda: np.zeros(0))

    def __post_init__(self) -> None:
        self.x = _as_float_array1(self.x, "x")
        self.idx = np.ascontiguousarray(np.asarray(self.idx, dtype=np.int64).ravel())
        self.val = _as_float_array1(self.val, "val")
        if self.x.size % Dimensions != 0:
            raise ValueError("Position array is not an even multiple of dimensions.")
        if self.idx.size % Dimensions != 0:
            raise ValueError("Index array is not an even multiple of dimensions.")
        if self.idx.size > 0 and self.idx.min() < 0:
            raise ValueError("Index array contains negative entries.")

    @property
    def nnodes(self) -> int: return self.x.size // Dimensions

    @property
    def npanels(self) -> int: return self.idx.size // Dimensions

    @property
    def nodes(self) -> FloatArray: return self.x.reshape(-1, Dimensions)

    @property
    def triangles(self) -> IntArray: return self.idx.reshape(-1, Dimensions)


# ---------------------------
# Rigid bodies
# ---------------------------
def rotation_matrix(axis_angle: FloatArray) -> FloatArray:
    """Rodrigues rotation for a rotation vector (axis times angle)."""
    theta = float(np.linalg.norm(axis_angle))
    if theta < np.finfo(np.float64).eps:
        return np.eye(3)
    k = np.asarray(axis_angle, dtype=np.float64) / theta
    K = np.array([[0.0, -k[2], k[1]],
                  [k[2], 0.0, -k[0]],
                  [-k[1], k[0], 0.0]])
    return np.eye(3) + math.sin(theta) * K + (1.0 - math.cos(theta)) * (K @ K)


@dataclass(slots=True)
class Body:
    """Rigid reference frame with constant translation and rotation rates.

    At time t the frame sits at pos + vel*t, rotated by |rotvel|*t about rotvel.
    """
    name: str = "body"
    pos: tuple[float, float, float] = (0.0, 0.0, 0.0)
    vel: tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotvel: tuple[float, float, float] = (0.0, 0.0, 0.0)

    @classmethod
    def ground(cls) -> Body:
        return cls(name="ground")

    @property
    def is_ground(self) -> bool: return self.name == "ground"

    def get_pos(self, time: float) -> FloatArray:
        return np.asarray(self.pos, dtype=np.float64) + time * np.asarray(self.vel, dtype=np.float64)

    def get_vel(self, time: float = 0.0) -> FloatArray:
        return np.asarray(self.vel, dtype=np.float64)

    def get_rotvel_vec(self, time: float = 0.0) -> FloatArray:
        return np.asarray(self.rotvel, dtype=np.float64)

    def get_transform_mat(self, time: float = 0.0) -> FloatArray:
        T = np.eye(4)
        T[:3, :3] = rotation_matrix(time * self.get_rotvel_vec(time))
        T[:3, 3] = self.get_pos(time)
        return T

    def transform_points(self, pts: FloatArray, time: float) -> FloatArray:
        T = self.get_transform_mat(time)
        return np.asarray(pts @ T[:3, :3].T + T[:3, 3], dtype=np.float64)


# ---------------------------
# Common collection state
# ---------------------------
class ElementBase:
    """Node-wise state shared by all element collections."""

    def __init__(self, n: int, elem: ElemKind, move: MoveKind, body: Body | None) -> None:
        check_kinds(elem, move)
        if move == "bodybound" and body is None:
            raise ValueError("Body-bound collections need a Body.")
        self.n = int(n)
        self.E: ElemKind = elem
        self.M: MoveKind = move
        self.B: Body | None = body
        self.x: FloatArray = np.zeros((self.n, 3))
        self.ux: FloatArray | None = None
        self.u: FloatArray = np.zeros((self.n, 3))
        self.s: FloatArray | None = None

    # -------- properties --------
    def get_n(self) -> int: return self.n

    def get_pos(self) -> FloatArray: return self.x

    def get_vel(self) -> FloatArray: return self.u

    def get_str(self) -> FloatArray | None: return self.s

    def get_body(self) -> Body | None: return self.B

    @property
    def is_inert(self) -> bool: return self.E == "inert"

    # -------- per-step lifecycle --------
    def zero_vels(self) -> None:
        self.u.fill(0.0)

    def finalize_vels(self, fs: Sequence[float]) -> None:
        self.u *= 1.0 / FOUR_PI
        self.u += np.asarray(fs, dtype=np.float64)[None, :]

    def zero_strengths(self) -> None:
        if self.s is not None:
            self.s.fill(0.0)

    def add_body_motion(self, factor: float, time: float) -> None:
        if self.B is None or self.B.is_ground:
            return
        self.u += factor * self.B.get_vel(time)[None, :]

    def transform(self, time: float) -> None:
        """Re-derive current node positions from the untransformed ones."""
        if self.B is not None and self.ux is not None and self.M == "bodybound":
            self.x = self.B.transform_points(self.ux, time)

    def move(self, time: float, dt: float) -> None:
        """First-order Euler advection for lagrangian elements."""
        if self.M == "lagrangian":
            self.x += dt * self.u
        elif self.M == "bodybound":
            self.transform(time + dt)

    # -------- diagnostics --------
    def get_max_str(self) -> float:
        if self.s is None or self.s.shape[0] == 0:
            return 0.0
        return float(np.linalg.norm(self.s, axis=1).max())

    def get_total_circ(self, time: float = 0.0) -> FloatArray:
        if self.s is None or self.is_inert:
            return np.zeros(3)
        return np.asarray(self.s.sum(axis=0), dtype=np.float64)

    def get_total_impulse(self) -> FloatArray:
        if self.s is None or self.is_inert:
            return np.zeros(3)
        return np.asarray(np.cross(self.s, self.x).sum(axis=0), dtype=np.float64)

    def to_string(self) -> str:
        return f" {self.E} {self.M}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(n={self.n},{self.to_string()})"
