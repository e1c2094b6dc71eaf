from meshhologram.analysis.frequency import FrequencyGrid, LocalFrequencyTerms, local_frequency_terms
from meshhologram.analysis.geometry import FacetGeometry, FacetStatus, solve_facet_geometry
from meshhologram.analysis.spectrum import facet_spectrum, flat_transform, moment_transforms

__all__ = [
    "FacetGeometry",
    "FacetStatus",
    "FrequencyGrid",
    "LocalFrequencyTerms",
    "facet_spectrum",
    "flat_transform",
    "local_frequency_terms",
    "moment_transforms",
    "solve_facet_geometry",
]
