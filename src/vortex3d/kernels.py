
from __future__ import annotations

import math

import numpy as np
from numpy.typing import NDArray


# ---------------------------
# Optional Numba (JIT) support
# ---------------------------
try:
    from numba import njit  # type: ignore
    _NUMBA = True
except Exception:  # pragma: no cover
    _NUMBA = False


def _maybe_njit(func):
    # Decorate with njit if available; else return original
    if _NUMBA:  # pragma: no cover
        return njit(cache=True, fastmath=True, nogil=True)(func)  # type: ignore[misc]
    return func


FloatArray = NDArray[np.float64]

#
# Velocity influence kernels
#
# naming: kernel_NS_MT
#   N is the dimension of the source element (0=point, 2=triangular panel)
#   S is the source type ('v'=vortex, 's'=source)
#   M is the dimension of the target element
#   T is 'p' for a singular point, 'b' for a thick-cored blob,
#     followed by 'g' when velocity gradients are accumulated
#
# All kernels add into tu (3,) and, for gradients, tug (3,3) with
# tug[a, b] = du_a/dx_b. None of them apply the 1/(4 pi) factor.
#


@_maybe_njit
def kernel_0v_0b(sx, sr, ss, tx, tr, tu):
    """Thick-cored vortex on thick-cored target, no gradients."""
    dx = tx[0] - sx[0]
    dy = tx[1] - sx[1]
    dz = tx[2] - sx[2]
    r2 = dx*dx + dy*dy + dz*dz + sr*sr + tr*tr
    r3 = 1.0 / (r2 * math.sqrt(r2))
    tu[0] += r3 * (dz*ss[1] - dy*ss[2])
    tu[1] += r3 * (dx*ss[2] - dz*ss[0])
    tu[2] += r3 * (dy*ss[0] - dx*ss[1])


@_maybe_njit
def kernel_0v_0p(sx, sr, ss, tx, tu):
    """Thick-cored vortex on singular target point, no gradients."""
    dx = tx[0] - sx[0]
    dy = tx[1] - sx[1]
    dz = tx[2] - sx[2]
    r2 = dx*dx + dy*dy + dz*dz + sr*sr
    r3 = 1.0 / (r2 * math.sqrt(r2))
    tu[0] += r3 * (dz*ss[1] - dy*ss[2])
    tu[1] += r3 * (dx*ss[2] - dz*ss[0])
    tu[2] += r3 * (dy*ss[0] - dx*ss[1])


@_maybe_njit
def kernel_0s_0p(sx, sr, ss, tx, tu):
    """Point source of scalar strength ss on singular target point."""
    dx = tx[0] - sx[0]
    dy = tx[1] - sx[1]
    dz = tx[2] - sx[2]
    r2 = dx*dx + dy*dy + dz*dz + sr*sr
    r3 = ss / (r2 * math.sqrt(r2))
    tu[0] += r3 * dx
    tu[1] += r3 * dy
    tu[2] += r3 * dz


@_maybe_njit
def _vortex_grad_core(dx, dy, dz, r2, ss, tu, tug):
    r3 = 1.0 / (r2 * math.sqrt(r2))
    dxxw = dz*ss[1] - dy*ss[2]
    dyxw = dx*ss[2] - dz*ss[0]
    dzxw = dy*ss[0] - dx*ss[1]
    tu[0] += r3 * dxxw
    tu[1] += r3 * dyxw
    tu[2] += r3 * dzxw

    # chain rule on r^-3 gives -3 r^-5
    bbb = -3.0 * r3 / r2
    dxxw *= bbb
    dyxw *= bbb
    dzxw *= bbb
    tug[0, 0] += dx*dxxw
    tug[1, 0] += dx*dyxw + ss[2]*r3
    tug[2, 0] += dx*dzxw - ss[1]*r3
    tug[0, 1] += dy*dxxw - ss[2]*r3
    tug[1, 1] += dy*dyxw
    tug[2, 1] += dy*dzxw + ss[0]*r3
    tug[0, 2] += dz*dxxw + ss[1]*r3
    tug[1, 2] += dz*dyxw - ss[0]*r3
    tug[2, 2] += dz*dzxw


@_maybe_njit
def kernel_0v_0bg(sx, sr, ss, tx, tr, tu, tug):
    """Thick-cored vortex on thick-cored target, with gradients."""
    dx = tx[0] - sx[0]
    dy = tx[1] - sx[1]
    dz = tx[2] - sx[2]
    r2 = dx*dx + dy*dy + dz*dz + sr*sr + tr*tr
    _vortex_grad_core(dx, dy, dz, r2, ss, tu, tug)


@_maybe_njit
def kernel_0v_0pg(sx, sr, ss, tx, tu, tug):
    """Thick-cored vortex on singular target point, with gradients."""
    dx = tx[0] - sx[0]
    dy = tx[1] - sx[1]
    dz = tx[2] - sx[2]
    r2 = dx*dx + dy*dy + dz*dz + sr*sr
    _vortex_grad_core(dx, dy, dz, r2, ss, tu, tug)


# ---------------------------
# Triangular panels
# ---------------------------
# Four singular points per panel: the centroid and, for each corner a,
# the point (4a + b + c)/6. Each carries a quarter of the panel strength.
_QUAD_WEIGHTS = np.array([
    [1.0/3.0, 1.0/3.0, 1.0/3.0],
    [4.0/6.0, 1.0/6.0, 1.0/6.0],
    [1.0/6.0, 4.0/6.0, 1.0/6.0],
    [1.0/6.0, 1.0/6.0, 4.0/6.0],
])


def panel_quadrature_points(corners: FloatArray) -> FloatArray:
    """Return the 4 quadrature points of one (3,3) or many (N,3,3) triangles."""
    c = np.asarray(corners, dtype=np.float64)
    return np.asarray(np.einsum("qk,...kd->...qd", _QUAD_WEIGHTS, c), dtype=np.float64)


@_maybe_njit
def _quad_point(x0, x1, x2, q, out):
    w0 = _QUAD_WEIGHTS[q, 0]
    w1 = _QUAD_WEIGHTS[q, 1]
    w2 = _QUAD_WEIGHTS[q, 2]
    for d in range(3):
        out[d] = w0*x0[d] + w1*x1[d] + w2*x2[d]


@_maybe_njit
def kernel_2_0p(x0, x1, x2, ss, tx, tu):
    """Constant-strength vortex panel (absolute strength ss) on singular point."""
    strq = 0.25 * ss
    sq = np.empty(3)
    for q in range(4):
        _quad_point(x0, x1, x2, q, sq)
        kernel_0v_0p(sq, 0.0, strq, tx, tu)


@_maybe_njit
def kernel_2s_0p(x0, x1, x2, ss, tx, tu):
    """Constant-strength source panel (absolute scalar strength) on singular point."""
    strq = 0.25 * ss
    sq = np.empty(3)
    for q in range(4):
        _quad_point(x0, x1, x2, q, sq)
        kernel_0s_0p(sq, 0.0, strq, tx, tu)


@_maybe_njit
def kernel_2_0b(x0, x1, x2, ss, tx, tr, tu):
    strq = 0.25 * ss
    sq = np.empty(3)
    for q in range(4):
        _quad_point(x0, x1, x2, q, sq)
        kernel_0v_0b(sq, 0.0, strq, tx, tr, tu)


@_maybe_njit
def kernel_2_0pg(x0, x1, x2, ss, tx, tu, tug):
    strq = 0.25 * ss
    sq = np.empty(3)
    for q in range(4):
        _quad_point(x0, x1, x2, q, sq)
        kernel_0v_0pg(sq, 0.0, strq, tx, tu, tug)


@_maybe_njit
def kernel_2_0bg(x0, x1, x2, ss, tx, tr, tu, tug):
    strq = 0.25 * ss
    sq = np.empty(3)
    for q in range(4):
        _quad_point(x0, x1, x2, q, sq)
        kernel_0v_0bg(sq, 0.0, strq, tx, tr, tu, tug)


# ---------------------------
# JIT loop drivers (one target at a time, all sources)
# ---------------------------
@_maybe_njit
def _vortons_jit(sx, sr, ss, tx, tr, blob, tu, tug, grads):
    M = tx.shape[0]
    N = sx.shape[0]
    for i in range(M):
        for j in range(N):
            if blob:
                if grads:
                    kernel_0v_0bg(sx[j], sr[j], ss[j], tx[i], tr[i], tu[i], tug[i])
                else:
                    kernel_0v_0b(sx[j], sr[j], ss[j], tx[i], tr[i], tu[i])
            else:
                if grads:
                    kernel_0v_0pg(sx[j], sr[j], ss[j], tx[i], tu[i], tug[i])
                else:
                    kernel_0v_0p(sx[j], sr[j], ss[j], tx[i], tu[i])


@_maybe_njit
def _vortex_panels_jit(corners, ps, tx, tr, blob, tu, tug, grads, skip_self, i0):
    M = tx.shape[0]
    N = corners.shape[0]
    for i in range(M):
        for j in range(N):
            if skip_self and i + i0 == j:
                continue
            c = corners[j]
            if blob:
                if grads:
                    kernel_2_0bg(c[0], c[1], c[2], ps[j], tx[i], tr[i], tu[i], tug[i])
                else:
                    kernel_2_0b(c[0], c[1], c[2], ps[j], tx[i], tr[i], tu[i])
            else:
                if grads:
                    kernel_2_0pg(c[0], c[1], c[2], ps[j], tx[i], tu[i], tug[i])
                else:
                    kernel_2_0p(c[0], c[1], c[2], ps[j], tx[i], tu[i])


@_maybe_njit
def _source_panels_jit(corners, ss, tx, tu, skip_self, i0):
    M = tx.shape[0]
    N = corners.shape[0]
    for i in range(M):
        for j in range(N):
            if skip_self and i + i0 == j:
                continue
            c = corners[j]
            kernel_2s_0p(c[0], c[1], c[2], ss[j], tx[i], tu[i])


# ---------------------------
# Vectorized NumPy forms
# ---------------------------
def _cross_strength_jacobian(ss: FloatArray) -> FloatArray:
    """d(s x d)/dd for every strength in ss (N,3) -> (N,3,3)."""
    E = np.zeros(ss.shape[:-1] + (3, 3), dtype=np.float64)
    E[..., 0, 1] = -ss[..., 2]
    E[..., 0, 2] = ss[..., 1]
    E[..., 1, 0] = ss[..., 2]
    E[..., 1, 2] = -ss[..., 0]
    E[..., 2, 0] = -ss[..., 1]
    E[..., 2, 1] = ss[..., 0]
    return E


def vortons_numpy(
    sx: FloatArray,
    sr: FloatArray,
    ss: FloatArray,
    tx: FloatArray,
    tr: FloatArray | None,
    tu: FloatArray,
    tug: FloatArray | None = None,
    exclude: NDArray[np.bool_] | None = None,
) -> None:
    """Accumulate vortex-particle influence of all sources on all targets.

    tr=None selects the singular-point kernels, otherwise blob kernels.
    exclude (M,N) masks source/target pairs that must not interact.
    """
    d = tx[:, None, :] - sx[None, :, :]                     # (M,N,3)
    r2 = np.sum(d * d, axis=2) + (sr * sr)[None, :]         # (M,N)
    if tr is not None:
        r2 = r2 + (tr * tr)[:, None]
    if exclude is not None:
        r2 = np.where(exclude, 1.0, r2)
    r3 = 1.0 / (r2 * np.sqrt(r2))
    if exclude is not None:
        r3 = np.where(exclude, 0.0, r3)
    sxd = np.cross(np.broadcast_to(ss[None, :, :], d.shape), d)   # (M,N,3)
    tu += np.einsum("mn,mnk->mk", r3, sxd)
    if tug is not None:
        bbb = -3.0 * r3 / r2
        tug += np.einsum("mn,mna,mnb->mab", bbb, sxd, d)
        tug += np.einsum("mn,nab->mab", r3, _cross_strength_jacobian(ss))


def sources_numpy(
    sx: FloatArray,
    sr: FloatArray,
    ss: FloatArray,
    tx: FloatArray,
    tu: FloatArray,
    exclude: NDArray[np.bool_] | None = None,
) -> None:
    """Accumulate point-source influence (scalar strengths) on singular targets."""
    d = tx[:, None, :] - sx[None, :, :]
    r2 = np.sum(d * d, axis=2) + (sr * sr)[None, :]
    if exclude is not None:
        r2 = np.where(exclude, 1.0, r2)
    r3 = ss[None, :] / (r2 * np.sqrt(r2))
    if exclude is not None:
        r3 = np.where(exclude, 0.0, r3)
    tu += np.einsum("mn,mnk->mk", r3, d)


def panels_as_quadrature(corners: FloatArray, strengths: FloatArray) -> tuple[FloatArray, FloatArray]:
    """Expand N panels into 4N singular points carrying strength/4 each."""
    qx = panel_quadrature_points(corners).reshape(-1, 3)
    qs = np.repeat(0.25 * np.asarray(strengths, dtype=np.float64), 4, axis=0)
    return qx, qs
