
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import numpy as np

from .elements import ElementBase, FloatArray
from .kernels import (
    _NUMBA,
    _source_panels_jit,
    _vortex_panels_jit,
    _vortons_jit,
    panels_as_quadrature,
    sources_numpy,
    vortons_numpy,
)
from .points import Points
from .surfaces import Surfaces

log = logging.getLogger(__name__)


@dataclass(slots=True)
class NumbaConfig:
    """Toggle Numba JIT for the influence loops.
    If enabled and numba is available, use compiled kernels for pairwise influence.
    """
    enabled: bool = False


@dataclass(slots=True)
class ChunkConfig:
    """Chunking to reduce peak memory in the NumPy path.

    query_batch: number of targets per chunk (None -> no chunking).
    """
    query_batch: int | None = 4096


@dataclass(slots=True)
class NumericsConfig:
    """Numerical options for influence evaluation."""
    numba: NumbaConfig = field(default_factory=NumbaConfig)
    chunking: ChunkConfig = field(default_factory=ChunkConfig)

    def __post_init__(self) -> None:
        qb = self.chunking.query_batch
        if qb is not None and qb <= 0:
            raise ValueError("query_batch must be positive or None.")

    @property
    def use_jit(self) -> bool:
        return bool(self.numba.enabled and _NUMBA)


def _chunks(M: int, qb: int | None) -> list[slice]:
    step = qb or max(M, 1)
    return [slice(i, min(i + step, M)) for i in range(0, M, step)]


# ---------------------------
# Source-kind drivers
# ---------------------------
def _accumulate_vortons(
    sx: FloatArray, sr: FloatArray, ss: FloatArray,
    tx: FloatArray, tr: FloatArray | None,
    tu: FloatArray, tug: FloatArray | None,
    numerics: NumericsConfig,
) -> None:
    if sx.shape[0] == 0 or tx.shape[0] == 0:
        return
    for ks in _chunks(tx.shape[0], numerics.chunking.query_batch):
        if numerics.use_jit:
            trk = tr[ks] if tr is not None else np.zeros(1)
            tugk = tug[ks] if tug is not None else np.zeros((1, 3, 3))
            _vortons_jit(sx, sr, ss, tx[ks], trk, tr is not None, tu[ks], tugk, tug is not None)
        else:
            vortons_numpy(sx, sr, ss, tx[ks],
                          None if tr is None else tr[ks],
                          tu[ks],
                          None if tug is None else tug[ks])


def _self_mask(ks: slice, nsrc: int, per: int) -> np.ndarray:
    """Mask pairs where target i meets any of the `per` points of source panel i."""
    rows = np.arange(ks.start, ks.stop)[:, None]
    cols = np.arange(nsrc * per)[None, :] // per
    return np.asarray(rows == cols)


def _accumulate_panels(
    src: Surfaces,
    tx: FloatArray, tr: FloatArray | None,
    tu: FloatArray, tug: FloatArray | None,
    numerics: NumericsConfig,
    skip_self: bool = False,
) -> None:
    nsrc = src.get_npanels()
    if nsrc == 0 or tx.shape[0] == 0:
        return
    corners = np.ascontiguousarray(src.get_corners())
    ps = src.get_str()
    ssrc = src.get_src_str() * src.get_area() if src.have_src_str() else None

    if not numerics.use_jit:
        qx, qs = panels_as_quadrature(corners, ps)
        qr = np.zeros(qx.shape[0])
        if ssrc is not None:
            _, qss = panels_as_quadrature(corners, ssrc)

    for ks in _chunks(tx.shape[0], numerics.chunking.query_batch):
        if numerics.use_jit:
            trk = tr[ks] if tr is not None else np.zeros(1)
            tugk = tug[ks] if tug is not None else np.zeros((1, 3, 3))
            _vortex_panels_jit(corners, ps, tx[ks], trk, tr is not None, tu[ks], tugk,
                               tug is not None, skip_self, ks.start)
            if ssrc is not None:
                _source_panels_jit(corners, ssrc, tx[ks], tu[ks], skip_self, ks.start)
        else:
            mask = _self_mask(ks, nsrc, 4) if skip_self else None
            vortons_numpy(qx, qr, qs, tx[ks],
                          None if tr is None else tr[ks],
                          tu[ks],
                          None if tug is None else tug[ks],
                          exclude=mask)
            if ssrc is not None:
                sources_numpy(qx, qr, qss, tx[ks], tu[ks], exclude=mask)


# ---------------------------
# Pairwise dispatch
# ---------------------------
def points_on_points(src: Points, targ: Points, numerics: NumericsConfig) -> None:
    assert src.s is not None and src.r is not None
    # blobs see blobs, field points are singular
    tr = None if targ.is_inert else targ.r
    _accumulate_vortons(src.x, src.r, src.s, targ.x, tr, targ.u, targ.ug, numerics)


def panels_on_points(src: Surfaces, targ: Points, numerics: NumericsConfig) -> None:
    tr = None if targ.is_inert else targ.r
    _accumulate_panels(src, targ.x, tr, targ.u, targ.ug, numerics)


def points_on_panels(src: Points, targ: Surfaces, numerics: NumericsConfig) -> None:
    assert src.s is not None and src.r is not None
    _accumulate_vortons(src.x, src.r, src.s, targ.get_panel_centers(), None, targ.pu, None, numerics)


def panels_on_panels(src: Surfaces, targ: Surfaces, numerics: NumericsConfig) -> None:
    # a panel never acts on its own centroid
    _accumulate_panels(src, targ.get_panel_centers(), None, targ.pu, None, numerics,
                       skip_self=src is targ)


InfluenceFn = Callable[[ElementBase, ElementBase, NumericsConfig], None]

KERNEL_TABLE: dict[tuple[type, type], InfluenceFn] = {
    (Points, Points): points_on_points,      # type: ignore[dict-item]
    (Surfaces, Points): panels_on_points,    # type: ignore[dict-item]
    (Points, Surfaces): points_on_panels,    # type: ignore[dict-item]
    (Surfaces, Surfaces): panels_on_panels,  # type: ignore[dict-item]
}


def accumulate(src: ElementBase, targ: ElementBase, numerics: NumericsConfig | None = None) -> None:
    """Add the raw (un-normalized) influence of src onto the velocities of targ."""
    try:
        fn = KERNEL_TABLE[(type(src), type(targ))]
    except KeyError as exc:
        raise TypeError(f"No influence kernel for {type(src).__name__} on {type(targ).__name__}") from exc
    if src.is_inert:
        return
    log.debug("computing influence of%s on%s", src.to_string(), targ.to_string())
    fn(src, targ, numerics or NumericsConfig())
