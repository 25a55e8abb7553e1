from __future__ import annotations

import itertools

import numpy as np
import pytest

from vortex3d import (
    ChunkConfig,
    ElementPacket,
    KERNEL_TABLE,
    NumbaConfig,
    NumericsConfig,
    Points,
    Surfaces,
    accumulate,
)
from vortex3d.elements import FOUR_PI
from vortex3d.kernels import kernel_0v_0p


def make_blobs(n: int, seed: int = 0, elem: str = "active", move: str = "lagrangian") -> Points:
    rng = np.random.default_rng(seed)
    p = np.zeros((n, 7))
    p[:, 0:3] = rng.uniform(-1.0, 1.0, size=(n, 3))
    p[:, 3:6] = rng.normal(size=(n, 3))
    p[:, 6] = 0.1
    return Points.from_particles(p, elem, move)


def make_sheet(n: int, seed: int = 0, elem: str = "active") -> Surfaces:
    rng = np.random.default_rng(seed)
    base = rng.uniform(-1.0, 1.0, size=(n, 1, 3))
    x = (base + rng.uniform(-0.2, 0.2, size=(n, 3, 3))).reshape(-1, 3)
    val = rng.normal(size=2 * n) if elem == "active" else np.zeros(2 * n)
    return Surfaces(ElementPacket(x=x, idx=np.arange(3 * n), val=val), elem, "fixed")


def test_kernel_table_is_exhaustive() -> None:
    kinds = (Points, Surfaces)
    assert set(KERNEL_TABLE) == set(itertools.product(kinds, kinds))
    assert all(callable(fn) for fn in KERNEL_TABLE.values())


def test_unknown_pair_raises() -> None:
    class Other(Points):
        pass

    src = make_blobs(2)
    targ = Other(ElementPacket(x=np.zeros(3)), "inert", "fixed")
    with pytest.raises(TypeError):
        accumulate(src, targ)


def test_points_cannot_be_reactive() -> None:
    with pytest.raises(ValueError):
        Points(ElementPacket(x=np.zeros(3)), "reactive", "fixed")
    with pytest.raises(ValueError):
        make_blobs(2, elem="reactive")


def test_inert_source_adds_nothing() -> None:
    src = Points(ElementPacket(x=np.ones(6)), "inert", "fixed")
    targ = make_blobs(4)
    targ.zero_vels()
    accumulate(src, targ)
    np.testing.assert_array_equal(targ.get_vel(), 0.0)


def test_points_on_fieldpoints_matches_kernel() -> None:
    src = make_blobs(3, seed=1)
    probe = np.array([[0.3, 0.2, -0.5]])
    targ = Points(ElementPacket(x=probe.ravel()), "inert", "fixed")
    accumulate(src, targ)
    expected = np.zeros(3)
    for j in range(3):
        kernel_0v_0p(src.x[j], src.r[j], src.s[j], probe[0], expected)
    np.testing.assert_allclose(targ.get_vel()[0], expected, rtol=1e-12)
    # field points carry no gradients
    assert targ.get_velgrad() is None


def test_single_blob_does_not_move_itself() -> None:
    p = make_blobs(1, seed=2)
    p.zero_vels()
    accumulate(p, p)
    p.finalize_vels((0.0, 0.0, 0.0))
    np.testing.assert_array_equal(p.get_vel(), 0.0)


@pytest.mark.parametrize("targ_kind", ["blobs", "panels"])
@pytest.mark.parametrize("src_kind", ["blobs", "panels"])
def test_chunking_and_jit_paths_agree(src_kind: str, targ_kind: str) -> None:
    def build():
        src = make_blobs(7, seed=3) if src_kind == "blobs" else make_sheet(5, seed=3)
        targ = make_blobs(11, seed=4) if targ_kind == "blobs" else make_sheet(9, seed=4)
        return src, targ

    results = []
    for numerics in (
        NumericsConfig(chunking=ChunkConfig(query_batch=None)),
        NumericsConfig(chunking=ChunkConfig(query_batch=3)),
        NumericsConfig(numba=NumbaConfig(enabled=True), chunking=ChunkConfig(query_batch=4)),
    ):
        src, targ = build()
        targ.zero_vels()
        accumulate(src, targ, numerics)
        grads = getattr(targ, "ug", None)
        results.append((targ.get_vel().copy(), None if grads is None else grads.copy()))

    u0, g0 = results[0]
    for u, g in results[1:]:
        np.testing.assert_allclose(u, u0, rtol=1e-10, atol=1e-12)
        if g0 is not None:
            np.testing.assert_allclose(g, g0, rtol=1e-10, atol=1e-12)


@pytest.mark.parametrize("use_numba", [False, True])
def test_panel_never_acts_on_own_centroid(use_numba: bool) -> None:
    s = make_sheet(1, seed=5)
    s.zero_vels()
    accumulate(s, s, NumericsConfig(numba=NumbaConfig(enabled=use_numba)))
    np.testing.assert_array_equal(s.get_vel(), 0.0)


def test_panels_on_points_uses_source_strength() -> None:
    s = make_sheet(3, seed=6)
    s.set_src_str(np.ones(3))
    probe = Points(ElementPacket(x=np.array([5.0, 0.0, 0.0])), "inert", "fixed")
    accumulate(s, probe)
    probe.finalize_vels((0.0, 0.0, 0.0))
    # far away each panel looks like a point source and vortex at its centroid
    tx = np.array([5.0, 0.0, 0.0])
    d = tx - s.get_panel_centers()
    u_src = np.sum(s.get_area()[:, None] * d / np.linalg.norm(d, axis=1)[:, None] ** 3, axis=0)
    u_vort = np.zeros(3)
    for c, ps in zip(s.get_panel_centers(), s.get_str()):
        kernel_0v_0p(c, 0.0, ps, tx, u_vort)
    expected = (u_src + u_vort) / FOUR_PI
    assert np.linalg.norm(probe.get_vel()[0] - expected) < 1e-2 * np.linalg.norm(expected)


def test_finalize_applies_freestream_and_normalization() -> None:
    p = make_blobs(2, seed=7)
    p.zero_vels()
    p.u[:] = FOUR_PI
    p.ug[:] = FOUR_PI
    p.finalize_vels((1.0, 2.0, 3.0))
    np.testing.assert_allclose(p.get_vel(), [[2.0, 3.0, 4.0]] * 2)
    np.testing.assert_allclose(p.get_velgrad(), 1.0)
