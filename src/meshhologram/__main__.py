"""Command-line interface: hologram of a built-in pyramid scene."""
from __future__ import annotations

import argparse
import logging
from typing import Sequence

import numpy as np

from meshhologram.config import SceneConfig, ShadingMode
from meshhologram.logging_config import setup_logging
from meshhologram.pre.mesh import TriMesh
from meshhologram.solvers.solver import generate_hologram

logger = logging.getLogger("meshhologram.cli")


def pyramid_mesh() -> TriMesh:
    """Square pyramid pointing towards the hologram plane (+z), four sides and no base."""
    apex = [0.0, 0.0, 1.0]
    corners = [[-1.0, -1.0, 0.0], [1.0, -1.0, 0.0], [1.0, 1.0, 0.0], [-1.0, 1.0, 0.0]]
    facets = []
    for i in range(4):
        a, b = corners[i], corners[(i + 1) % 4]
        # (V1 - V2) x (V3 - V2) points outwards and towards +z for this ordering
        facets.append([b, a, apex])
    return TriMesh(facets)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="meshhologram", description=__doc__)
    parser.add_argument("--pixels", type=int, nargs=2, default=(256, 256), metavar=("NX", "NY"))
    parser.add_argument("--pitch", type=float, nargs=2, default=(8e-6, 8e-6), metavar=("PX", "PY"))
    parser.add_argument("--wavelength", type=float, nargs="+", default=[532e-9])
    parser.add_argument("--scale", type=float, nargs=3, default=(5e-4, 5e-4, 5e-4))
    parser.add_argument("--shift", type=float, nargs=3, default=(0.0, 0.0, 0.0))
    parser.add_argument("--illumination", type=float, nargs=3, default=(0.0, 0.0, 1.0))
    parser.add_argument("--shading", choices=[mode.value for mode in ShadingMode], default=ShadingMode.FLAT.value)
    parser.add_argument("--workers", type=int, default=1)
    parser.add_argument("--random-phase", action="store_true")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--plot", action="store_true", help="Show the intensity of the first channel (matplotlib).")
    parser.add_argument("--log-file", default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def plot_intensity(field: np.ndarray, title: str) -> None:
    import matplotlib.pyplot as plt

    plt.rcParams["figure.constrained_layout.use"] = True
    plt.figure(figsize=(6, 6))
    plt.imshow(np.abs(field) ** 2, cmap="gray")
    plt.title(title)
    plt.axis("off")
    plt.show()


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO, log_file=args.log_file)

    config = SceneConfig(
        pixel_number=tuple(args.pixels),
        pixel_pitch=tuple(args.pitch),
        wavelengths=tuple(args.wavelength),
        object_scale=tuple(args.scale),
        object_shift=tuple(args.shift),
        illumination=tuple(args.illumination),
        random_phase=args.random_phase,
        seed=args.seed,
        workers=args.workers,
    )
    result = generate_hologram(pyramid_mesh(), config, ShadingMode(args.shading))
    logger.info(
        f"Hologram ready: {result.field.shape[0]} channel(s), "
        f"{result.stats.accepted}/{result.stats.total} facets, {result.elapsed:.3f} s"
    )

    if args.plot:
        plot_intensity(result.field[0], f"Pyramid, λ = {result.wavelengths[0] * 1e9:.0f} nm")


if __name__ == "__main__":
    main()
