from __future__ import annotations

import math
import time

import numpy as np
import pytest
from trimesh import creation

from vortex3d import (
    Body,
    DiffusionParams,
    ElementPacket,
    Ovoid,
    Simulation,
    seed_vortex_ring,
)


def test_derived_scalars() -> None:
    sim = Simulation(re=100.0, dt=0.01)
    assert sim.get_hnu() == pytest.approx(0.01)
    assert sim.get_ips() == pytest.approx(math.sqrt(8.0) * 0.01)
    assert sim.get_vdelta() == pytest.approx(1.5 * math.sqrt(8.0) * 0.01)

    sim.set_re_for_ips(0.05)
    assert sim.get_ips() == pytest.approx(0.05)


@pytest.mark.parametrize("kwargs", [{"re": 0.0}, {"dt": -1.0}, {"fs": (1.0, 0.0)}])
def test_bad_parameters_raise(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        Simulation(**kwargs)


def test_add_particles_overwrites_radius() -> None:
    sim = Simulation(diffusion=DiffusionParams(nom_sep_scaled=2.0, particle_overlap=1.25))
    sim.add_particles([0.1, 0.2, 0.3, 1.0, 0.0, 0.0, 99.0])
    assert sim.get_nparts() == 1
    assert sim.vort[0].get_rad()[0] == pytest.approx(sim.get_vdelta())
    np.testing.assert_array_equal(sim.vort[0].get_str()[0], [1.0, 0.0, 0.0])

    sim.add_particles(np.zeros(14))
    assert len(sim.vort) == 1
    assert sim.get_nparts() == 3

    sim.add_particles([])
    assert sim.get_nparts() == 3
    with pytest.raises(ValueError):
        sim.add_particles(np.zeros(8))


def test_single_particle_step() -> None:
    sim = Simulation(dt=0.02)
    sim.add_particles([0.5, -0.25, 1.0, 0.3, -0.7, 0.2, 0.0])
    s0 = sim.vort[0].get_str().copy()
    sim.step()
    np.testing.assert_array_equal(sim.vort[0].get_vel(), 0.0)
    np.testing.assert_array_equal(sim.vort[0].get_pos(), [[0.5, -0.25, 1.0]])
    np.testing.assert_allclose(sim.vort[0].get_str(), s0, atol=1e-15)
    assert sim.get_time() == pytest.approx(0.02)


def test_freestream_advects_tracers() -> None:
    sim = Simulation(dt=0.1, fs=(1.0, 0.0, 0.0))
    sim.add_fldpts([0.0, 0.0, 0.0, 1.0, 1.0, 1.0], moves=True)
    sim.add_fldpts([2.0, 0.0, 0.0], moves=False)
    assert len(sim.fldpt) == 2
    sim.step()
    np.testing.assert_allclose(sim.fldpt[0].get_pos(), [[0.1, 0.0, 0.0], [1.1, 1.0, 1.0]])
    np.testing.assert_allclose(sim.fldpt[1].get_pos(), [[2.0, 0.0, 0.0]])
    np.testing.assert_allclose(sim.fldpt[1].get_vel(), [[1.0, 0.0, 0.0]])


def test_vortex_ring_moves_along_axis() -> None:
    sim = Simulation(re=1000.0, dt=0.01)
    sim.add_particles(seed_vortex_ring((0.0, 0.0, 0.0), radius=0.5, circulation=1.0, n=48))
    z0 = sim.vort[0].get_pos()[:, 2].mean()
    for _ in range(3):
        sim.step()
    dz = sim.vort[0].get_pos()[:, 2].mean() - z0
    assert abs(dz) > 0.0
    # ring keeps its shape: all particles share the axial speed
    uz = sim.vort[0].get_vel()[:, 2]
    assert np.ptp(uz) < 1e-6 * abs(uz.mean())
    circ = sim.diagnostics()["total_circulation"]
    np.testing.assert_allclose(circ, 0.0, atol=1e-12)


def test_add_boundary_groups_by_body_and_kind() -> None:
    sim = Simulation()
    body = Body(name="ball")
    x = [0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0, 0.0]
    pk = ElementPacket(x=x, idx=[0, 1, 2], val=[0.0, 0.0])
    a = sim.add_boundary(pk)
    b = sim.add_boundary(pk)
    c = sim.add_boundary(pk, body=body)
    d = sim.add_boundary(pk, elem="active")
    assert a is b
    assert a.get_npanels() == 2
    assert c is not a and c.M == "bodybound"
    assert d is not a and d.E == "active"
    assert len(sim.bdry) == 3


def test_step_with_sphere_in_freestream() -> None:
    sim = Simulation(re=100.0, dt=0.01, fs=(1.0, 0.0, 0.0))
    sphere = sim.add_feature(Ovoid(body=Body.ground(), sx=1.0, sy=1.0, sz=1.0, max_subdivisions=2))
    sim.add_fldpts([2.0, 0.0, 0.0])
    sim.step()
    # solve is disabled: panels stay at zero strength and only the freestream acts
    np.testing.assert_array_equal(sphere.get_vort_str(), 0.0)
    np.testing.assert_allclose(sim.fldpt[0].get_vel(), [[1.0, 0.0, 0.0]])
    # without a solver the dense matrix is never built
    assert sim.bem.get_matrix().shape == (0, 0)
    assert sim.bem.get_rhs().shape == (2 * sphere.get_npanels(),)
    # the RHS carries minus the freestream projected on the panel tangents
    rhs = sim.bem.get_rhs().reshape(-1, 2)
    np.testing.assert_allclose(rhs[:, 0], -sphere.get_x1()[:, 0], atol=1e-12)


def lstsq_solver(A: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.linalg.lstsq(A, b, rcond=None)[0]


def test_step_with_injected_solver_changes_field() -> None:
    sim = Simulation(re=100.0, dt=0.01, fs=(1.0, 0.0, 0.0), solver=lstsq_solver)
    sphere = sim.add_feature(Ovoid(body=Body.ground(), max_subdivisions=1))
    sim.step()
    assert np.abs(sphere.get_vort_str()).max() > 0.0
    u = sim.velocities([[3.0, 0.0, 0.0]])
    assert u.shape == (1, 3)
    assert np.isfinite(u).all()


@pytest.mark.parametrize("nbc", [1, 2])
def test_solved_sphere_matches_potential_flow(nbc: int) -> None:
    # sphere of diameter 1 in a unit freestream along x
    sim = Simulation(re=100.0, dt=0.01, fs=(1.0, 0.0, 0.0), solver=lstsq_solver)
    mesh = creation.icosphere(subdivisions=3, radius=0.5)
    npan = len(mesh.faces)
    packet = ElementPacket(x=np.asarray(mesh.vertices).ravel(), idx=np.asarray(mesh.faces).ravel(),
                           val=np.zeros(nbc * npan))
    sim.add_boundary(packet, Body.ground())
    sim.step()

    u = sim.velocities([[-0.75, 0.0, 0.0], [0.0, 0.75, 0.0], [0.0, 0.0, 0.0]])
    a3 = 0.5 ** 3 / 0.75 ** 3
    assert u[0, 0] == pytest.approx(1.0 - a3, rel=0.05)
    assert u[1, 0] == pytest.approx(1.0 + 0.5 * a3, rel=0.05)
    np.testing.assert_allclose(u[0:2, 1:3], 0.0, atol=0.05)
    if nbc == 2:
        # a vortex sheet that cancels slip leaves the interior at rest
        assert np.linalg.norm(u[2]) < 0.05


def test_static_boundary_matrix_is_reused() -> None:
    sim = Simulation(re=100.0, dt=0.01, fs=(1.0, 0.0, 0.0), solver=lstsq_solver)
    sim.add_feature(Ovoid(body=Body.ground(), max_subdivisions=1))
    sim.step()
    A = sim.bem.get_matrix()
    sim.step()
    assert sim.bem.get_matrix() is A
    sim.add_feature(Ovoid(body=Body.ground(), sx=0.5, sy=0.5, sz=0.5, center=(3.0, 0.0, 0.0),
                          max_subdivisions=1))
    sim.step()
    assert sim.bem.get_matrix() is not A


def test_poll_before_launch_returns_true() -> None:
    sim = Simulation()
    assert sim.test_for_new_results()


def test_async_step_completes() -> None:
    with Simulation(dt=0.05) as sim:
        sim.add_particles([0.0, 0.0, 0.0, 0.0, 0.0, 1.0, 0.0])
        sim.async_step()
        deadline = time.monotonic() + 30.0
        while not sim.test_for_new_results():
            assert time.monotonic() < deadline
            time.sleep(0.01)
        assert sim.get_time() == pytest.approx(0.05)
        assert sim.test_for_new_results()


def test_reset_waits_for_step_in_flight() -> None:
    sim = Simulation(dt=0.05)
    sim.add_particles([0.0, 0.0, 0.0, 0.0, 0.0, 1.0, 0.0])
    sim.set_initialized()
    real_step = sim.step

    def slow_step() -> None:
        time.sleep(0.2)
        real_step()

    sim.step = slow_step  # type: ignore[method-assign]
    sim.async_step()
    assert not sim.test_for_new_results()
    sim.reset()
    assert sim.get_time() == 0.0
    assert not sim.is_initialized()
    assert sim.get_nparts() == 0
    assert sim.test_for_new_results()
    sim.close()


def test_fault_in_background_step_is_raised_on_poll() -> None:
    sim = Simulation()

    def bad_step() -> None:
        raise RuntimeError("boom")

    sim.step = bad_step  # type: ignore[method-assign]
    sim.async_step()
    assert sim._future is not None
    sim._future.exception(timeout=30.0)
    with pytest.raises(RuntimeError, match="boom"):
        sim.test_for_new_results()
    sim.close()


def test_fault_is_raised_by_reset_and_state_cleared() -> None:
    sim = Simulation()
    sim.time = 1.0

    def bad_step() -> None:
        raise RuntimeError("boom")

    sim.step = bad_step  # type: ignore[method-assign]
    sim.async_step()
    with pytest.raises(RuntimeError):
        sim.reset()
    assert sim.get_time() == 0.0
    sim.close()


def test_diagnostics_and_suggest_dt() -> None:
    sim = Simulation(fs=(2.0, 0.0, 0.0))
    sim.add_particles(seed_vortex_ring((0.0, 0.0, 0.0), 0.5, 1.0, n=16))
    d = sim.diagnostics()
    assert d["nparts"] == 16
    assert set(d) >= {"time", "total_circulation", "total_impulse", "body_circulation"}
    # a ring about z has impulse along z
    imp = d["total_impulse"]
    assert abs(imp[2]) > 0.0
    np.testing.assert_allclose(imp[:2], 0.0, atol=1e-12)
    dt = sim.suggest_dt(cfl=0.3)
    assert 0.0 < dt <= 0.3 * sim.get_vdelta() / 2.0 + 1e-15
