# tests/conftest.py

import logging

import pytest

from meshhologram.__main__ import pyramid_mesh
from meshhologram.config import SceneConfig
from meshhologram.logging_config import PACKAGE_LOGGER, WARNINGS_LOGGER
from meshhologram.pre.mesh import TriMesh


@pytest.fixture
def front_triangle():
    """Triangle in the z = 0 plane facing the hologram: (V1 - V2) x (V3 - V2) = (0, 0, 4)."""
    return TriMesh([[[1.0, -1.0, 0.0], [-1.0, -1.0, 0.0], [0.0, 1.0, 0.0]]])


@pytest.fixture
def pyramid():
    return pyramid_mesh()


@pytest.fixture
def small_config():
    """32 x 32 px, all grid points propagating."""
    return SceneConfig(
        pixel_number=(32, 32),
        pixel_pitch=(10e-6, 10e-6),
        wavelengths=(500e-9,),
        object_scale=(160e-6, 160e-6, 160e-6),
    )


@pytest.fixture
def restore_logging():
    """Undo setup_logging(): drop its handlers and stop capturing warnings."""
    yield
    for name in (PACKAGE_LOGGER, WARNINGS_LOGGER):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
    logging.captureWarnings(False)
