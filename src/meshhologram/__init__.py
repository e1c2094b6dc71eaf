"""
Computer-generated holograms of triangular meshes.

Each facet's angular spectrum is evaluated in closed form, all facets are
accumulated into one spectrum per wavelength and the spectrum is propagated to
the hologram plane by an inverse Fourier transform.
"""
from meshhologram.config import SceneConfig, ShadingMode
from meshhologram.errors import GenerationAbortedError, HologramError, InvalidConfigError, InvalidMeshError
from meshhologram.pre.mesh import TriMesh
from meshhologram.solvers.solver import GenerationStats, HologramResult, HologramSolver, generate_hologram

__all__ = [
    "GenerationAbortedError",
    "GenerationStats",
    "HologramError",
    "HologramResult",
    "HologramSolver",
    "InvalidConfigError",
    "InvalidMeshError",
    "SceneConfig",
    "ShadingMode",
    "TriMesh",
    "generate_hologram",
]
