from __future__ import annotations

import logging

import numpy as np

from vortex3d import Simulation, plot_snapshot, seed_vortex_ring


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    sim = Simulation(re=500.0, dt=0.01)
    sim.add_particles(seed_vortex_ring((0.0, 0.0, 0.0), radius=0.5, circulation=1.0, n=128))

    # a sheet of tracers through the ring
    g = np.linspace(-0.8, 0.8, 17)
    X, Y = np.meshgrid(g, g, indexing="xy")
    sim.add_fldpts(np.stack([X.ravel(), Y.ravel(), np.full(X.size, -0.2)], axis=1))

    for _ in range(100):
        sim.step()
    print(sim.diagnostics())

    plot_snapshot(sim)

if __name__ == "__main__":
    main()
