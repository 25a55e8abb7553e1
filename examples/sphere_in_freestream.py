from __future__ import annotations

import logging
import time

import numpy as np

from vortex3d import Body, NumbaConfig, NumericsConfig, Ovoid, Simulation
from vortex3d.plotly_viz import _PLOTLY, plot_snapshot_interactive


def lstsq_solver(A: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.linalg.lstsq(A, b, rcond=None)[0]


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    sim = Simulation(re=200.0, dt=0.02, fs=(1.0, 0.0, 0.0),
                     numerics=NumericsConfig(numba=NumbaConfig(enabled=True)),
                     solver=lstsq_solver)
    sim.add_feature(Ovoid(body=Body.ground(), max_subdivisions=3))

    # a rake of tracers upstream of the sphere
    zs = np.linspace(-0.6, 0.6, 13)
    sim.add_fldpts(np.stack([np.full(zs.size, -1.5), np.zeros(zs.size), zs], axis=1))
    sim.set_initialized()

    # the same poll loop an interactive front end would run
    with sim:
        for _ in range(50):
            sim.async_step()
            while not sim.test_for_new_results():
                time.sleep(0.01)
        print(sim.diagnostics())

    if _PLOTLY:
        plot_snapshot_interactive(sim, save_html="sphere_in_freestream.html")

if __name__ == "__main__":
    main()
