from __future__ import annotations

import numpy as np
import pytest
from trimesh import creation

from vortex3d import Body, ElementPacket, Surfaces


def single_panel(vals: tuple[float, ...] = (1.0, 0.0), elem: str = "active") -> Surfaces:
    # right triangle with unit area
    x = [0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 2.0, 0.0]
    return Surfaces(ElementPacket(x=x, idx=[0, 1, 2], val=list(vals)), elem, "fixed")


def random_panels(n: int, seed: int = 0, elem: str = "active") -> Surfaces:
    rng = np.random.default_rng(seed)
    x = rng.uniform(-1.0, 1.0, size=(3 * n, 3))
    idx = np.arange(3 * n)
    val = rng.normal(size=2 * n) if elem == "active" else np.zeros(2 * n)
    return Surfaces(ElementPacket(x=x, idx=idx, val=val), elem, "fixed")


def unit_cube_packet() -> ElementPacket:
    box = creation.box(extents=(1.0, 1.0, 1.0))
    verts = np.asarray(box.vertices) + 0.5
    faces = np.asarray(box.faces)
    return ElementPacket(x=verts.ravel(), idx=faces.ravel(), val=np.zeros(2 * len(faces)))


def test_scenario_single_panel_strength_is_tangent() -> None:
    s = single_panel((1.0, 0.0))
    assert s.get_area()[0] == pytest.approx(1.0)
    np.testing.assert_allclose(s.get_str()[0], s.get_x1()[0])
    np.testing.assert_allclose(s.get_x1()[0], [1.0, 0.0, 0.0])
    np.testing.assert_allclose(s.get_norm()[0], [0.0, 0.0, 1.0])


def test_bases_are_orthonormal() -> None:
    s = random_panels(50, seed=1)
    x1, x2, n = s.get_x1(), s.get_x2(), s.get_norm()
    for a, b in ((x1, x2), (x1, n), (x2, n)):
        np.testing.assert_allclose(np.sum(a * b, axis=1), 0.0, atol=1e-12)
    for v in (x1, x2, n):
        np.testing.assert_allclose(np.linalg.norm(v, axis=1), 1.0, rtol=1e-12)
    np.testing.assert_allclose(np.cross(x1, x2), n, atol=1e-12)


def test_sheet_to_panel_is_linear_and_idempotent() -> None:
    s = random_panels(20, seed=2)
    n = s.get_npanels()
    s.vortex_sheet_to_panel_strength(n)
    ps1 = s.get_str().copy()
    s.vortex_sheet_to_panel_strength(n)
    np.testing.assert_array_equal(s.get_str(), ps1)

    s.vs *= 3.0
    s.vortex_sheet_to_panel_strength(n)
    np.testing.assert_allclose(s.get_str(), 3.0 * ps1, rtol=1e-12)


def test_set_str_round_trip() -> None:
    s = random_panels(10, seed=3, elem="reactive")
    vals = np.random.default_rng(4).normal(size=20)
    s.set_str(0, 20, vals)
    np.testing.assert_array_equal(s.get_vort_str().ravel(), vals)
    expected = s.get_str().copy()
    s.vortex_sheet_to_panel_strength(10)
    np.testing.assert_array_equal(s.get_str(), expected)


def test_set_str_rejects_bad_input() -> None:
    s = random_panels(4, seed=5, elem="reactive")
    with pytest.raises(RuntimeError):
        s.set_str(1, 8, np.zeros(8))
    with pytest.raises(RuntimeError):
        s.set_str(0, 6, np.zeros(6))


def test_bad_indices_are_rejected() -> None:
    x = np.zeros(9)
    with pytest.raises(ValueError):
        Surfaces(ElementPacket(x=x, idx=[0, 1, 3], val=[0.0, 0.0]), "active", "fixed")
    with pytest.raises(ValueError):
        Surfaces(ElementPacket(x=np.arange(9.0), idx=[0, 1, 2], val=[0.0, 0.0, 0.0]), "active", "fixed")
    with pytest.raises(ValueError):
        Surfaces(ElementPacket(x=np.arange(9.0), idx=[0, 1, 2], val=[0.0] * 4), "reactive", "fixed")


def test_reactive_rows_follow_bc_count() -> None:
    s = random_panels(5, seed=6, elem="reactive")
    assert s.get_num_bcs() == 2
    s.set_first_row(7)
    assert s.get_num_rows() == 10
    assert s.get_next_row() == 17
    assert not s.is_augmented()


def test_incremental_bases_on_append() -> None:
    s = random_panels(3, seed=7)
    before = s.b.copy()
    extra = random_panels(2, seed=8)
    s.add_new(ElementPacket(x=extra.get_pos().ravel(), idx=extra.get_idx().ravel(),
                            val=extra.get_vort_str().ravel()))
    assert s.get_npanels() == 5
    np.testing.assert_array_equal(s.b[:, :3], before)
    np.testing.assert_allclose(s.b[:, 3:], extra.b)


def test_unit_cube_volume_and_center() -> None:
    s = Surfaces(unit_cube_packet(), "reactive", "bodybound", Body())
    assert s.get_vol() == pytest.approx(1.0)
    np.testing.assert_allclose(s.get_geom_center(), [0.5, 0.5, 0.5], atol=1e-12)
    # normals point out of the cube, into the fluid
    outward = s.get_panel_centers() - 0.5
    assert (np.sum(outward * s.get_norm(), axis=1) > 0.0).all()


def test_add_body_motion_is_solid_body_rotation() -> None:
    body = Body(name="spinner", vel=(0.5, 0.0, 0.0), rotvel=(0.0, 0.0, 2.0))
    s = Surfaces(unit_cube_packet(), "reactive", "bodybound", body)
    s.transform(0.0)
    s.zero_vels()
    s.add_body_motion(1.0, 0.0)
    dc = s.get_panel_centers() - s.get_geom_center()
    expected = np.array([0.5, 0.0, 0.0]) + np.cross([0.0, 0.0, 2.0], dc)
    np.testing.assert_allclose(s.get_vel(), expected, atol=1e-12)


def test_add_body_motion_ignores_ground() -> None:
    s = Surfaces(unit_cube_packet(), "reactive", "bodybound", Body.ground())
    s.zero_vels()
    s.add_body_motion(1.0, 0.0)
    np.testing.assert_array_equal(s.get_vel(), 0.0)


def test_transform_follows_body() -> None:
    body = Body(name="mover", vel=(1.0, 0.0, 0.0), rotvel=(0.0, 0.0, np.pi))
    s = Surfaces(unit_cube_packet(), "reactive", "bodybound", body)
    s.transform(1.0)
    # half a turn about z through the origin, then shifted by +1 in x
    np.testing.assert_allclose(s.get_geom_center(), [0.5, -0.5, 0.5], atol=1e-12)
    assert s.get_vol() == pytest.approx(1.0)
    np.testing.assert_allclose(np.cross(s.get_x1(), s.get_x2()), s.get_norm(), atol=1e-12)


def test_represent_as_particles_offsets_along_normal() -> None:
    s = single_panel((0.0, 2.0))
    p = s.represent_as_particles(0.5, 0.2)
    assert p.shape == (1, 7)
    center = s.get_panel_centers()[0]
    np.testing.assert_allclose(p[0, 0:3], center + 0.1 * s.get_norm()[0])
    np.testing.assert_allclose(p[0, 3:6], s.get_str()[0])
    assert p[0, 6] == pytest.approx(0.2)


def test_body_circulation() -> None:
    body = Body(name="spinner", rotvel=(0.0, 0.0, 3.0))
    s = Surfaces(unit_cube_packet(), "reactive", "bodybound", body)
    np.testing.assert_allclose(s.get_body_circ(), [0.0, 0.0, 6.0])


def test_add_rot_strengths_requires_volume() -> None:
    body = Body(name="spinner", rotvel=(0.0, 0.0, 1.0))
    pk = unit_cube_packet()
    inside_out = ElementPacket(x=pk.x, idx=pk.triangles[:, [0, 2, 1]].ravel(), val=pk.val)
    s = Surfaces(inside_out, "reactive", "bodybound", body)
    assert s.get_vol() == pytest.approx(-1.0)
    with pytest.raises(RuntimeError):
        s.add_rot_strengths(1.0, 0.0)


def test_add_rot_strengths_sets_source_and_sheet() -> None:
    body = Body(name="spinner", rotvel=(0.0, 0.0, 1.0))
    s = Surfaces(unit_cube_packet(), "reactive", "bodybound", body)
    s.add_rot_strengths(1.0, 0.0)
    assert s.have_src_str()
    # rigid rotation carries no net flux through the closed surface
    assert float(np.sum(s.get_src_str() * s.get_area())) == pytest.approx(0.0, abs=1e-12)
    assert np.abs(s.get_src_str()).max() > 0.0
    assert np.abs(s.get_vort_str()).max() > 0.0
