from __future__ import annotations

import argparse
import tracemalloc
import numpy as np
from vortex3d import Simulation, NumericsConfig, NumbaConfig, ChunkConfig, seed_gaussian_blob


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--N", type=int, default=5000)
    ap.add_argument("--numba", action="store_true")
    ap.add_argument("--query-batch", type=int, default=4096)
    args = ap.parse_args()

    numerics = NumericsConfig(numba=NumbaConfig(enabled=bool(args.numba)),
                              chunking=ChunkConfig(query_batch=(args.query_batch or None)))
    sim = Simulation(numerics=numerics)
    sim.add_particles(seed_gaussian_blob((0.0, 0.0, 0.0), 0.3, args.N, rng=np.random.default_rng(0)))
    x = sim.vort[0].get_pos().copy()

    tracemalloc.start()
    _ = sim.velocities(x)
    current, peak = tracemalloc.get_traced_memory()
    tracemalloc.stop()
    print(f"velocities(N={args.N}, numba={args.numba}, query_batch={args.query_batch}) peak={peak/1e6:.1f} MB")

if __name__ == "__main__":
    main()
