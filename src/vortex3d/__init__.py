from .elements import (
    Body,
    ElementBase,
    ElementPacket,
    ElemKind,
    MoveKind,
)
from .points import Points
from .surfaces import Surfaces
from .influence import (
    ChunkConfig,
    KERNEL_TABLE,
    NumbaConfig,
    NumericsConfig,
    accumulate,
)
from .rhs import vels_to_rhs
from .bem import BEM
from .simulation import DiffusionParams, Simulation
from .api import (
    SimulationConfig,
    build_simulation,
    load_npz,
    run,
    save_npz,
    seed_gaussian_blob,
    seed_vortex_ring,
)
from .geometry_io import read_geometry_file
from .features import (
    BoundaryFeature,
    BoundaryQuad,
    ExteriorFromFile,
    Ovoid,
    SolidRect,
)
from .viz import SnapshotConfig, plot_snapshot
from .plotly_viz import (
    PlotlySnapshotConfig,
    plot_snapshot_interactive,
    run_animation_interactive,
)

__all__ = [
    "Body", "ElementBase", "ElementPacket", "ElemKind", "MoveKind",
    "Points", "Surfaces",
    "ChunkConfig", "KERNEL_TABLE", "NumbaConfig", "NumericsConfig", "accumulate",
    "vels_to_rhs", "BEM",
    "DiffusionParams", "Simulation",
    "SimulationConfig", "build_simulation", "load_npz", "run", "save_npz",
    "seed_gaussian_blob", "seed_vortex_ring",
    "read_geometry_file",
    "BoundaryFeature", "BoundaryQuad", "ExteriorFromFile", "Ovoid", "SolidRect",
    "SnapshotConfig", "plot_snapshot",
    "PlotlySnapshotConfig", "plot_snapshot_interactive", "run_animation_interactive",
]
