"""
Driscoll-Healy Grid Synthesis
=============================

Inverse spherical harmonic transform of complex coefficients onto an
equiangular Driscoll-Healy grid.

Key Concepts:
-------------
    • Row i sits at colatitude theta_i = pi * i / n, i = 0 .. n-1 (n with
      extend), so row 0 is the North Pole and row n/2 the equator.
    • Column k sits at longitude phi_k = 2 * pi * k / nlong, from 0 eastward.
    • n = 2 * (lmax + 1) is always even; the South Pole row (i = n) only
      exists on extended grids.
    • Each northern ring is synthesized together with its mirror ring
      n - i from one recursion pass; the equator is synthesized once.

The field is

    f(theta, phi) = sum_{l, m>=0} cilm[0, l, m] * P(l, m)(cos theta) * exp(i m phi)
                  + sum_{l, m>=1} cilm[1, l, m] * (-1)^m * P(l, m)(cos theta) * exp(-i m phi)

References:
-----------
[1] Driscoll, J. R. and D. M. Healy (1994). Computing Fourier transforms and
    convolutions on the 2-sphere. Adv. Appl. Math., 15, 202-250.
"""

from typing import Optional, Union

import equinox as eqx
import jax
import jax.numpy as jnp
from jaxtyping import Array, Complex, Float
from loguru import logger
import numpy as np

from .config import CSPHASE_DEFAULT, GridConfig, resolve_config
from .errors import AllocationError, DimensionError, OptionError
from .fourier import BACKWARD, get_plan
from .legendre import synthesize_rings
from .recursion import RecursionCache, thread_cache

RING_BLOCK = 64


def _ring_angles(n: int) -> tuple[np.ndarray, np.ndarray]:
    """cos and sin of the colatitudes of rows 0 .. n/2 (pole to equator)."""
    i = np.arange(n // 2 + 1)
    z = np.cos(np.pi * i / n)
    # The equator must be exactly z = 0 so that odd (l - m) terms vanish.
    z[-1] = 0.0
    u = np.sqrt((1.0 - z) * (1.0 + z))
    return z, u


def _synthesize(
    cilm: Complex[Array, "2 L1 L1"],
    config: GridConfig,
    cache: RecursionCache,
    ring_block: int,
) -> Complex[Array, "nlat nlong"]:
    tables = cache.get(config.lmax_comp, config.norm)

    if config.lmax_comp == 0:
        return jnp.full(config.shape, cilm[0, 0, 0] * tables.degree0())

    seeds = jnp.asarray(tables.sectorial_seeds(config.csphase))
    plan = get_plan(config.nlong, BACKWARD)
    n = config.n
    z, u = _ring_angles(n)
    nrings = z.shape[0]

    # Pad the last block so every call reuses the same compiled kernel.
    block = min(ring_block, nrings)
    npad = (-nrings) % block
    z = np.concatenate([z, np.zeros(npad)])
    u = np.concatenate([u, np.ones(npad)])

    north, south = [], []
    for start in range(0, nrings + npad, block):
        logger.debug(f"Synthesizing rings {start}..{start + block - 1} of {nrings}")
        fn, fs = synthesize_rings(
            cilm,
            jnp.asarray(z[start : start + block]),
            jnp.asarray(u[start : start + block]),
            tables,
            seeds,
            config.nlong,
        )
        north.append(fn)
        south.append(fs)
    north = jnp.concatenate(north)[:nrings]
    south = jnp.concatenate(south)[:nrings]

    # Rows 0 .. n/2 come from the northern rings, rows n/2+1 .. n-1 from the
    # mirrors of rings n/2-1 .. 1.  The South Pole mirror of ring 0 is only
    # transformed when the grid is extended.
    first = 0 if config.extend else 1
    rows_north = plan(north)
    rows_south = plan(south[first : n // 2][::-1])
    grid = jnp.concatenate([rows_north, rows_south], axis=0)

    if config.extend:
        grid = jnp.concatenate([grid, grid[:, :1]], axis=1)
    return grid


def make_grid_dhc(
    cilm,
    lmax: Optional[int] = None,
    *,
    norm: Union[int, str] = 1,
    sampling: int = 1,
    csphase: int = CSPHASE_DEFAULT,
    lmax_calc: Optional[int] = None,
    extend: Union[int, bool] = 0,
    out: Optional[np.ndarray] = None,
    cache: Optional[RecursionCache] = None,
    ring_block: int = RING_BLOCK,
):
    """
    Evaluate complex spherical harmonic coefficients on a Driscoll-Healy grid.

    Parameters:
    -----------
    cilm : array-like [2, L+1, L+1]
        Complex coefficients; cilm[0, l, m] multiplies Y(l, m) and
        cilm[1, l, m] multiplies Y(l, -m).  Entries with m > l are ignored.
    lmax : int, optional
        Bandwidth of the output grid, n = 2 * (lmax + 1).  Defaults to the
        degree held by cilm; larger values zero pad the coefficients.
    norm : int or str
        1 geodesy (default), 2 Schmidt, 3 unnormalized, 4 orthonormalized.
    sampling : int
        1 for an n x n grid (default), 2 for n x 2n.
    csphase : int
        1 excludes (default), -1 includes the Condon-Shortley phase.
    lmax_calc : int, optional
        Evaluate the coefficients only up to this degree (<= lmax).
    extend : int or bool
        If 1, append the 90S row and the 360E column.
    out : ndarray, optional
        Complex buffer of at least the output shape.  Only written once the
        whole grid has been synthesized.
    cache : RecursionCache, optional
        Recursion tables to use; defaults to the calling thread's cache.
    ring_block : int
        Number of rings synthesized per compiled kernel call.

    Returns:
    --------
    grid : Complex[Array, "nlat nlong"] or ndarray
        The synthesized grid, or ``out`` when given.

    Raises:
    -------
    DimensionError, OptionError, AllocationError
        See :mod:`dhgridx._src.errors` for the status code of each.
    """
    cilm_shape = np.shape(cilm)
    if lmax is None:
        lmax = cilm_shape[1] - 1 if len(cilm_shape) == 3 else 0

    config = resolve_config(
        cilm_shape,
        lmax,
        norm=norm,
        sampling=sampling,
        csphase=csphase,
        lmax_calc=lmax_calc,
        extend=extend,
        out_shape=None if out is None else np.shape(out),
    )
    if out is not None and not np.iscomplexobj(out):
        raise DimensionError(f"output grid must be complex, got {out.dtype}")
    if ring_block < 1:
        raise OptionError(f"ring_block must be >= 1, got {ring_block}")

    logger.debug(
        f"make_grid_dhc: shape={config.shape}, lmax={config.lmax}, "
        f"lmax_comp={config.lmax_comp}, norm={config.norm}"
    )

    L1 = config.lmax_comp + 1
    coeffs = jnp.asarray(np.asarray(cilm)[:2, :L1, :L1], dtype=jnp.complex128)
    cache = thread_cache() if cache is None else cache

    try:
        grid = _synthesize(coeffs, config, cache, ring_block).block_until_ready()
        values = grid if out is None else np.asarray(grid)
    except AllocationError:
        raise
    except MemoryError as err:
        raise AllocationError(
            f"could not allocate scratch arrays for a {config.shape} grid: {err}"
        ) from err
    except jax.errors.JaxRuntimeError as err:
        if "RESOURCE_EXHAUSTED" not in str(err):
            raise
        raise AllocationError(
            f"could not allocate scratch arrays for a {config.shape} grid: {err}"
        ) from err

    if out is None:
        return values
    out[: config.nlat_out, : config.nlong_out] = values
    return out


class DHGrid(eqx.Module):
    """
    Geometry of an equiangular Driscoll-Healy grid.

    Attributes:
    -----------
    lmax : int
        Spherical harmonic bandwidth.
    sampling : int
        1 for n x n, 2 for n x 2n.
    extend : int
        1 if the grid includes the 90S row and the 360E column.
    """

    lmax: int
    sampling: int = 1
    extend: int = 0

    def __check_init__(self):
        resolve_config(
            (2, 1, 1), self.lmax, sampling=self.sampling, extend=self.extend
        )

    @classmethod
    def from_lmax(
        cls, lmax: int, sampling: int = 1, extend: Union[int, bool] = 0
    ) -> "DHGrid":
        """Construct the grid that make_grid_dhc produces for this lmax."""
        return cls(lmax=lmax, sampling=sampling, extend=int(extend))

    @property
    def n(self) -> int:
        """Number of latitude samples before extension."""
        return 2 * self.lmax + 2

    @property
    def nlong(self) -> int:
        return self.sampling * self.n

    @property
    def shape(self) -> tuple[int, int]:
        return (self.n + self.extend, self.nlong + self.extend)

    @property
    def theta(self) -> Float[Array, "nlat"]:
        """Colatitude of each row [rad], from 0 southward."""
        return jnp.pi * jnp.arange(self.shape[0]) / self.n

    @property
    def phi(self) -> Float[Array, "nlon"]:
        """Longitude of each column [rad], from 0 eastward."""
        return 2 * jnp.pi * jnp.arange(self.shape[1]) / self.nlong

    @property
    def lats(self) -> Float[Array, "nlat"]:
        """Latitude of each row [deg], 90 to -90 + 180/n (or -90 if extended)."""
        return 90.0 - 180.0 * jnp.arange(self.shape[0]) / self.n

    @property
    def lons(self) -> Float[Array, "nlon"]:
        """Longitude of each column [deg]."""
        return 360.0 * jnp.arange(self.shape[1]) / self.nlong

    @property
    def X(self) -> tuple[Float[Array, "nlat nlon"], Float[Array, "nlat nlon"]]:
        """2D meshgrid (PHI, THETA) with shapes equal to the grid shape."""
        result = jnp.meshgrid(self.phi, self.theta, indexing="xy")
        return (result[0], result[1])

    def synthesize(
        self,
        cilm,
        norm: Union[int, str] = 1,
        csphase: int = CSPHASE_DEFAULT,
        lmax_calc: Optional[int] = None,
        cache: Optional[RecursionCache] = None,
    ) -> Complex[Array, "nlat nlon"]:
        """Evaluate cilm on this grid (see make_grid_dhc)."""
        return make_grid_dhc(
            cilm,
            self.lmax,
            norm=norm,
            sampling=self.sampling,
            csphase=csphase,
            lmax_calc=lmax_calc,
            extend=self.extend,
            cache=cache,
        )
