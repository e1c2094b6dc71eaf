from meshhologram.solvers.solver import HologramSolver, generate_hologram, propagate

__all__ = ["HologramSolver", "generate_hologram", "propagate"]
