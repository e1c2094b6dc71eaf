"""
Exceptions raised by the hologram generation pipeline.

Only global preconditions are raised. Per-facet anomalies (back-facing
facets, degenerate local frames) are counted in
:class:`meshhologram.solvers.solver.GenerationStats` and never abort a pass.
"""


class HologramError(Exception):
    """Base class for all errors raised by meshhologram."""


class InvalidMeshError(HologramError, ValueError):
    """The mesh is empty, malformed or has zero bounding-box extent."""


class InvalidConfigError(HologramError, ValueError):
    """The scene configuration violates a precondition of the generation pass."""


class GenerationAbortedError(HologramError):
    """The generation pass was cancelled between two facets."""

    def __init__(self, processed: int, total: int) -> None:
        super().__init__(f"Hologram generation aborted after {processed} of {total} facets.")
        self.processed = processed
        self.total = total
