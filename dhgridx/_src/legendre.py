"""
Legendre / Fourier Ring Synthesis
=================================

Evaluates the associated Legendre functions with the scaled recursion of
Holmes and Featherstone (2002) and folds them, together with the spherical
harmonic coefficients, into one Fourier-domain vector per latitude ring.

Scaled recursion:
-----------------
For order m >= 1 the recursion is seeded with

    seed(m) = SCALEF * P(m, m) / sin(theta)^m,     SCALEF = 1e-280

and run upward in degree with

    P(l, m) = z * f1(l, m) * P(l-1, m) - f2(l, m) * P(l-2, m),   z = cos(theta).

The omitted factor sin(theta)^m / SCALEF is carried as a running rescale
alongside the recursion and applied only once every degree of the order has
been summed against the coefficients.  Intermediate values therefore stay
far from overflow; the rescale underflows gracefully near the poles where
the true values are negligible.  With this the geodesy, Schmidt and
orthonormalized functions are accurate to about degree 2800; unnormalized
functions only to about degree 15.

Symmetry split:
---------------
P(l, m)(-z) = (-1)^(l-m) P(l, m)(z), so summing the even and odd (l - m)
contributions separately gives both a ring and its mirror across the equator
from a single pass:

    north = even + odd,        south = even - odd.

Fourier layout:
---------------
Positive-order coefficients feed bin m; negative-order coefficients feed bin
nlong - m, weighted by (-1)^m from Y(l, -m)* = (-1)^m Y(l, m).
"""

from typing import Optional

import equinox as eqx
import jax
import jax.numpy as jnp
from jaxtyping import Array, Complex, Float
import numpy as np

from .config import CSPHASE_DEFAULT, resolve_config
from .errors import OptionError
from .recursion import SCALEF, RecursionCache, RecursionTables, thread_cache


def _advance(p1, p2, running, rescale, l, f1, f2, z, u, seeds, orders):
    """One degree step of the scaled recursion for a block of rings."""
    p = z[:, None] * f1 * p1 - f2 * p2
    p = jnp.where(orders == l, seeds, p)
    p = jnp.where(orders > l, 0.0, p)

    # running holds sin(theta)^l / SCALEF, the rescale of the new sectorial order
    running = jnp.where(l == 0, running, running * u)
    r_l = jnp.where(l == 0, jnp.ones_like(running), running)
    rescale = jnp.where(orders == l, r_l[:, None], rescale)
    return p, running, rescale


def _fourier_vector(
    acc: Complex[Array, "2 R L1"], nlong: int
) -> Complex[Array, "R nlong"]:
    """Place positive orders at bins m and negative orders at bins nlong - m."""
    nrings, L1 = acc.shape[1], acc.shape[2]
    neg_bins = nlong - jnp.arange(1, L1)
    vec = jnp.zeros((nrings, nlong), dtype=acc.dtype)
    vec = vec.at[:, :L1].add(acc[0])
    vec = vec.at[:, neg_bins].add(acc[1][:, 1:])
    return vec


def _initial_state(nrings: int, L1: int):
    p1 = jnp.zeros((nrings, L1))
    p2 = jnp.zeros((nrings, L1))
    running = jnp.full((nrings,), 1.0 / SCALEF)
    rescale = jnp.zeros((nrings, L1))
    return p1, p2, running, rescale


@eqx.filter_jit
def synthesize_rings(
    cilm: Complex[Array, "2 L1 L1"],
    z: Float[Array, "R"],
    u: Float[Array, "R"],
    tables: RecursionTables,
    seeds: Float[Array, "L1"],
    nlong: int,
) -> tuple[Complex[Array, "R nlong"], Complex[Array, "R nlong"]]:
    """
    Fourier-domain vectors for a block of rings and their mirror rings.

    Parameters:
    -----------
    cilm : Complex[Array, "2 L1 L1"]
        Coefficients truncated to the tables' degree; cilm[0] holds the
        positive orders and cilm[1] the negative orders.  Entries with
        m > l are ignored.
    z, u : Float[Array, "R"]
        cos(theta) and sin(theta) of the northern rings.
    tables : RecursionTables
        Recursion constants for (lmax, norm).
    seeds : Float[Array, "L1"]
        Scaled sectorial seeds from ``tables.sectorial_seeds(csphase)``.
    nlong : int
        DFT length (number of longitude samples).

    Returns:
    --------
    (north, south) : tuple of Complex[Array, "R nlong"]
        Fourier coefficients of the rings at colatitude theta and pi - theta.
    """
    L1 = tables.lmax + 1
    orders = jnp.arange(L1)
    cilm = jnp.asarray(cilm, dtype=jnp.complex128)
    cilm = jnp.where(tables.symsign[None] != 0, cilm, 0.0)

    p1, p2, running, rescale = _initial_state(z.shape[0], L1)
    even = jnp.zeros((2, z.shape[0], L1), dtype=cilm.dtype)
    odd = jnp.zeros_like(even)

    def step(carry, xs):
        p1, p2, running, rescale, even, odd = carry
        l, f1, f2, sign, c = xs
        p, running, rescale = _advance(
            p1, p2, running, rescale, l, f1, f2, z, u, seeds, orders
        )
        term = c[:, None, :] * p[None, :, :]
        even = even + jnp.where(sign > 0, term, 0.0)
        odd = odd + jnp.where(sign < 0, term, 0.0)
        return (p, p1, running, rescale, even, odd), None

    xs = (orders, tables.ff1, tables.ff2, tables.symsign, jnp.swapaxes(cilm, 0, 1))
    carry, _ = jax.lax.scan(step, (p1, p2, running, rescale, even, odd), xs)
    _, _, _, rescale, even, odd = carry

    msign = jnp.where(orders % 2 == 1, -1.0, 1.0)
    scale = jnp.stack([rescale, rescale * msign])
    north = (even + odd) * scale
    south = (even - odd) * scale
    return _fourier_vector(north, nlong), _fourier_vector(south, nlong)


@eqx.filter_jit
def _legendre_table(
    z: Float[Array, "R"],
    u: Float[Array, "R"],
    tables: RecursionTables,
    seeds: Float[Array, "L1"],
) -> Float[Array, "R L1 L1"]:
    L1 = tables.lmax + 1
    orders = jnp.arange(L1)

    def step(carry, xs):
        p1, p2, running, rescale = carry
        l, f1, f2 = xs
        p, running, rescale = _advance(
            p1, p2, running, rescale, l, f1, f2, z, u, seeds, orders
        )
        return (p, p1, running, rescale), p * rescale

    _, plm = jax.lax.scan(
        step, _initial_state(z.shape[0], L1), (orders, tables.ff1, tables.ff2)
    )
    return jnp.moveaxis(plm, 1, 0)


def evaluate_legendre(
    lmax: int,
    z,
    norm=1,
    csphase: int = CSPHASE_DEFAULT,
    cache: Optional[RecursionCache] = None,
) -> Float[Array, "... L1 L1"]:
    """
    Associated Legendre functions P(l, m)(z) for all 0 <= m <= l <= lmax.

    Uses the same scaled recursion and recursion tables as the grid
    synthesis, but without the equatorial symmetry split, so it doubles as
    an independent check of that path.

    Parameters:
    -----------
    lmax : int
        Maximum degree.
    z : float or array-like
        cos(theta) values in [-1, 1].
    norm : int or str
        Normalization (1 geodesy, 2 Schmidt, 3 unnormalized, 4 orthonormalized).
    csphase : int
        1 to exclude, -1 to include the Condon-Shortley phase.
    cache : RecursionCache, optional
        Cache to draw tables from; defaults to the calling thread's cache.

    Returns:
    --------
    plm : Float[Array, "... L1 L1"]
        plm[..., l, m]; entries with m > l are zero.
    """
    config = resolve_config(
        (2, lmax + 1, lmax + 1), lmax, norm=norm, csphase=csphase
    )
    z = np.asarray(z, dtype=np.float64)
    if np.any(np.abs(z) > 1.0):
        raise OptionError("z must lie in [-1, 1]")
    batch_shape = z.shape
    z = z.reshape(-1)
    u = np.sqrt((1.0 - z) * (1.0 + z))

    cache = thread_cache() if cache is None else cache
    tables = cache.get(config.lmax_comp, config.norm)
    seeds = jnp.asarray(tables.sectorial_seeds(config.csphase))

    plm = _legendre_table(jnp.asarray(z), jnp.asarray(u), tables, seeds)
    return plm.reshape(batch_shape + plm.shape[1:])
