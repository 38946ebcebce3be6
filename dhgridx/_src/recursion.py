"""
Recursion Coefficient Cache
===========================

Precomputed constants for the three-term recursion of the associated
Legendre functions,

    P(l, m) = z * f1(l, m) * P(l-1, m) - f2(l, m) * P(l-2, m),

together with the sectorial growth factors for P(m, m) and the equatorial
symmetry signs (-1)^(l-m).

The tables depend only on (lmax, norm).  They are rebuilt from scratch
whenever that key changes and reused otherwise, since a single grid needs
them for every latitude ring.  A cache instance must not be shared between
threads that synthesize with different keys; :func:`thread_cache` hands out
one instance per thread.

References:
-----------
[1] Holmes, S. A. and W. E. Featherstone (2002). A unified approach to the
    Clenshaw summation and the recursive computation of very high degree and
    order normalised associated Legendre functions. J. Geodesy, 76, 279-299.
"""

import math
import threading
from typing import Optional

import equinox as eqx
import jax.numpy as jnp
from jaxtyping import Array, Float, Int8
from loguru import logger
import numpy as np

from .config import (
    NORM_GEODESY,
    NORM_ORTHONORMALIZED,
    NORM_SCHMIDT,
    NORM_UNNORMALIZED,
)
from .errors import AllocationError

# Seed shrink factor for the sectorial recursion; compensated by 1/SCALEF.
SCALEF = 1.0e-280


def _factor_tables(lmax: int, norm: int, sqr: np.ndarray):
    """f1/f2 for every (l, m) with m < l; zero elsewhere."""
    L1 = lmax + 1
    ff1 = np.zeros((L1, L1), dtype=np.float64)
    ff2 = np.zeros((L1, L1), dtype=np.float64)
    if lmax == 0:
        return ff1, ff2

    l, m = np.meshgrid(np.arange(L1), np.arange(L1), indexing="ij")
    below = m < l
    # Indices into sqr stay in range off the mask; the mask zeroes them later.
    lm = np.where(below, l - m, 1)
    lp = np.where(below, l + m, 1)

    if norm in (NORM_GEODESY, NORM_ORTHONORMALIZED):
        a = sqr[2 * l + 1] * sqr[np.maximum(2 * l - 1, 0)] / (sqr[lp] * sqr[lm])
        b = (
            sqr[2 * l + 1]
            * sqr[np.maximum(lm - 1, 0)]
            * sqr[np.maximum(lp - 1, 0)]
            / (sqr[np.maximum(2 * l - 3, 1)] * sqr[lp] * sqr[lm])
        )
        # P(l-2, 0) does not exist for l = 1.
        b[1, 0] = 0.0
    elif norm == NORM_SCHMIDT:
        a = (2 * l - 1) / (sqr[lp] * sqr[lm])
        b = sqr[np.maximum(lm - 1, 0)] * sqr[np.maximum(lp - 1, 0)] / (sqr[lp] * sqr[lm])
    else:
        # Unnormalized: the order-0 column reduces to Bonnet's recursion.
        a = (2 * l - 1) / lm
        b = (l + m - 1) / lm

    ff1[below] = a[below]
    ff2[below] = b[below]
    return ff1, ff2


def _sectorial_factors(lmax: int, norm: int, sqr: np.ndarray) -> np.ndarray:
    """Ratio P(m, m) / P(m-1, m-1) without the sin(theta) factor and phase."""
    m = np.arange(lmax + 1)
    fac = np.ones(lmax + 1, dtype=np.float64)
    if lmax == 0:
        return fac
    if norm == NORM_UNNORMALIZED:
        fac[1:] = 2 * m[1:] - 1
    else:
        fac[1:] = sqr[2 * m[1:] + 1] / sqr[2 * m[1:]]
    return fac


class RecursionTables(eqx.Module):
    """
    Recursion constants for one (lmax, norm) pair.

    Attributes:
    -----------
    lmax : int
        Maximum degree covered by the tables.
    norm : int
        Normalization code (1..4).
    sqr : Float[Array, "2L+2"]
        sqr[k] = sqrt(k).
    ff1, ff2 : Float[Array, "L+1 L+1"]
        First and second multiplicative factors of the degree recursion,
        indexed [l, m].  Only m < l is populated.
    symsign : Int8[Array, "L+1 L+1"]
        (-1)^(l-m) on and below the diagonal, 0 above it.
    sectorial : Float[Array, "L+1"]
        Growth factor from P(m-1, m-1) to P(m, m), excluding sin(theta).
    """

    lmax: int
    norm: int
    sqr: Float[Array, "S"]
    ff1: Float[Array, "L1 L1"]
    ff2: Float[Array, "L1 L1"]
    symsign: Int8[Array, "L1 L1"]
    sectorial: Float[Array, "L1"]

    @property
    def key(self) -> tuple[int, int]:
        return (self.lmax, self.norm)

    def degree0(self) -> float:
        """P(0, 0) in this normalization."""
        if self.norm == NORM_ORTHONORMALIZED:
            return 1.0 / math.sqrt(4.0 * math.pi)
        return 1.0

    def sectorial_seeds(self, csphase: int) -> np.ndarray:
        """
        Scaled sectorial seeds, one per order.

        seeds[0] is the unscaled P(0, 0).  For m >= 1, seeds[m] is
        SCALEF * P(m, m) / sin(theta)^m including the phase csphase^m; the
        sin(theta)^m / SCALEF factor is applied by the caller as a running
        rescale once all degrees of the order have been summed.

        Parameters:
        -----------
        csphase : int
            1 to exclude, -1 to include the Condon-Shortley phase.

        Returns:
        --------
        seeds : ndarray [L+1]
        """
        sectorial = np.asarray(self.sectorial)
        seeds = np.empty(self.lmax + 1, dtype=np.float64)
        seeds[0] = self.degree0()
        if self.lmax == 0:
            return seeds

        start = SCALEF * self.degree0()
        with np.errstate(over="ignore", invalid="ignore"):
            pmm = start * np.cumprod(csphase * sectorial[1:])
            if self.norm == NORM_SCHMIDT:
                sqr = np.asarray(self.sqr)
                m = np.arange(1, self.lmax + 1)
                pmm = pmm / sqr[2 * m + 1]
        seeds[1:] = pmm

        if not np.all(np.isfinite(seeds)):
            first = int(np.argmin(np.isfinite(seeds)))
            logger.warning(
                f"Sectorial seeds overflow from order {first} "
                f"(lmax={self.lmax}, norm={self.norm})"
            )
        return seeds


def build_tables(lmax: int, norm: int) -> RecursionTables:
    """
    Compute the recursion constants for degree lmax in normalization norm.

    Raises:
    -------
    AllocationError
        If the host arrays cannot be allocated.
    """
    try:
        L1 = lmax + 1
        sqr = np.sqrt(np.arange(2 * lmax + 2, dtype=np.float64))
        ff1, ff2 = _factor_tables(lmax, norm, sqr)

        l, m = np.meshgrid(np.arange(L1), np.arange(L1), indexing="ij")
        symsign = np.where((l - m) % 2 == 0, 1, -1).astype(np.int8)
        symsign[m > l] = 0

        sectorial = _sectorial_factors(lmax, norm, sqr)
    except MemoryError as err:
        raise AllocationError(
            f"could not allocate recursion tables for lmax={lmax}: {err}"
        ) from err

    return RecursionTables(
        lmax=lmax,
        norm=norm,
        sqr=jnp.asarray(sqr),
        ff1=jnp.asarray(ff1),
        ff2=jnp.asarray(ff2),
        symsign=jnp.asarray(symsign),
        sectorial=jnp.asarray(sectorial),
    )


class RecursionCache:
    """
    Holds the recursion tables of the most recent (lmax, norm) key.

    ``get`` returns the cached tables when the key matches and rebuilds them
    otherwise.  Not safe for concurrent use with different keys; give each
    worker its own instance.
    """

    def __init__(self):
        self._tables: Optional[RecursionTables] = None
        self.rebuilds = 0

    @property
    def key(self) -> Optional[tuple[int, int]]:
        return None if self._tables is None else self._tables.key

    def get(self, lmax: int, norm: int) -> RecursionTables:
        if self._tables is None or self._tables.key != (lmax, norm):
            logger.debug(f"Rebuilding recursion tables for lmax={lmax}, norm={norm}")
            self._tables = build_tables(lmax, norm)
            self.rebuilds += 1
        return self._tables

    def clear(self) -> None:
        self._tables = None


_local = threading.local()


def thread_cache() -> RecursionCache:
    """The calling thread's default recursion cache."""
    cache = getattr(_local, "cache", None)
    if cache is None:
        cache = RecursionCache()
        _local.cache = cache
    return cache
