"""
Driscoll-Healy Grid Synthesis
=============================

This script evaluates a set of complex spherical harmonic coefficients on an
equiangular Driscoll-Healy latitude-longitude grid with `dhgridx`, and saves
the result as a NetCDF file.

Coefficients:
-------------
- Either loaded from a `.npy` file of shape (2, L+1, L+1), where [0] holds
  the positive orders and [1] the negative orders,
- or drawn at random with a power-law spectrum, S(l) ~ (l + 1)^(-2), and the
  conjugate symmetry cilm[1, l, m] = (-1)^m * conj(cilm[0, l, m]) so that the
  synthesized field is real.

Grid:
-----
n = 2 * (lmax + 1) latitudes from 90N, and n (or 2n) longitudes from 0E.
`--extend` adds the 90S row and the 360E column.

Usage:
------
The script is run from the command line, with parameters controlled by `cyclopts`.

Example:
  python scripts/make_grid.py --lmax 63 --sampling 2 --extend --plot
"""

import pathlib
from typing import Annotated, Optional

import cyclopts
from loguru import logger
import matplotlib.pyplot as plt
import numpy as np
import xarray as xr

from dhgridx import DHGrid, FileIOError, make_grid_dhc

logger.enable("dhgridx")

# Initialize the cyclopts app
app = cyclopts.App()


# ============================================================================
# 1. Coefficients
# ============================================================================


def random_real_coefficients(
    lmax: int, seed: int = 0, slope: float = -2.0
) -> np.ndarray:
    """
    Random coefficients of a real field with power spectrum ~ (l + 1)^slope.
    """
    rng = np.random.default_rng(seed)
    l = np.arange(lmax + 1)[:, None]
    m = np.arange(lmax + 1)[None, :]
    amp = np.sqrt((l + 1.0) ** slope / (2 * l + 1.0))

    cilm = np.zeros((2, lmax + 1, lmax + 1), dtype=np.complex128)
    cilm[0] = amp * (rng.standard_normal(amp.shape) + 1j * rng.standard_normal(amp.shape))
    cilm[0, :, 0] = cilm[0, :, 0].real
    cilm[1] = (-1.0) ** m * np.conj(cilm[0])
    cilm[:, m > l] = 0.0
    return cilm


def load_coefficients(path: pathlib.Path) -> np.ndarray:
    """Load a (2, L+1, L+1) coefficient array from a .npy file."""
    try:
        return np.load(path)
    except (OSError, ValueError) as err:
        raise FileIOError(f"could not read coefficients from {path}: {err}") from err


# ============================================================================
# 2. Main Logic
# ============================================================================


@app.default
def run_make_grid(
    lmax: Annotated[
        int, cyclopts.Option("--lmax", help="Spherical harmonic bandwidth of the grid.")
    ] = 63,
    norm: Annotated[
        int,
        cyclopts.Option(
            "--norm",
            help="1 geodesy, 2 Schmidt, 3 unnormalized, 4 orthonormalized.",
        ),
    ] = 1,
    sampling: Annotated[
        int, cyclopts.Option("--sampling", help="1 for N x N, 2 for N x 2N.")
    ] = 1,
    csphase: Annotated[
        int,
        cyclopts.Option("--csphase", help="1 excludes, -1 includes the Condon-Shortley phase."),
    ] = 1,
    extend: Annotated[
        bool, cyclopts.Option("--extend", help="Add the 90S row and 360E column.")
    ] = False,
    coeffs: Annotated[
        Optional[pathlib.Path],
        cyclopts.Option("--coeffs", help="Coefficient file (.npy, shape (2, L+1, L+1))."),
    ] = None,
    seed: Annotated[
        int, cyclopts.Option("--seed", help="Seed for random coefficients.")
    ] = 0,
    output_dir: Annotated[
        Optional[pathlib.Path],
        cyclopts.Option("--output-dir", help="Directory to save the output NetCDF."),
    ] = None,
    plot: Annotated[
        bool, cyclopts.Option("--plot", help="Show a quick-look plot of the grid.")
    ] = False,
):
    logger.info("=" * 60)
    logger.info("Driscoll-Healy Grid Synthesis")
    logger.info("=" * 60)

    if coeffs is None:
        logger.info(f"Drawing random real-field coefficients (lmax={lmax}, seed={seed})")
        cilm = random_real_coefficients(lmax, seed=seed)
    else:
        logger.info(f"Loading coefficients from {coeffs}")
        cilm = load_coefficients(coeffs)
    logger.success(f"Coefficients: shape={cilm.shape}")

    grid = DHGrid.from_lmax(lmax, sampling=sampling, extend=extend)
    logger.info(f"Synthesizing grid of shape {grid.shape}...")
    values = np.asarray(
        make_grid_dhc(
            cilm,
            lmax,
            norm=norm,
            sampling=sampling,
            csphase=csphase,
            extend=extend,
        )
    )
    logger.success(
        f"Grid done: max |f| = {np.abs(values).max():.4e}, "
        f"max |Im f| = {np.abs(values.imag).max():.4e}"
    )

    ds = xr.Dataset(
        data_vars={
            "real": (("lat", "lon"), values.real),
            "imag": (("lat", "lon"), values.imag),
        },
        coords={
            "lat": np.asarray(grid.lats),
            "lon": np.asarray(grid.lons),
        },
        attrs={
            "description": "Driscoll-Healy grid of complex spherical harmonics",
            "lmax": lmax,
            "norm": norm,
            "sampling": sampling,
            "csphase": csphase,
            "extend": int(extend),
        },
    )

    if output_dir is None:
        output_dir = pathlib.Path("./output/make_grid")
    output_path = output_dir / f"dh_grid_l{lmax}.nc"
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        ds.to_netcdf(output_path)
    except OSError as err:
        raise FileIOError(f"could not write {output_path}: {err}") from err
    logger.success(f"Output saved to: {output_path}")

    if plot:
        logger.info("Generating plot...")
        plot_grid(ds)
        plt.show()


def plot_grid(ds: xr.Dataset):
    """
    Quick-look plot of the real part of the grid.
    """
    fig, ax = plt.subplots(figsize=(10, 5))
    ds["real"].plot(ax=ax, cmap="RdBu_r")
    ax.set_title(f"Re f(lat, lon), lmax={ds.attrs['lmax']}")
    ax.set_xlabel("Longitude [deg]")
    ax.set_ylabel("Latitude [deg]")
    plt.tight_layout()


if __name__ == "__main__":
    app()
