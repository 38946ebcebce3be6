import math

import jax
import numpy as np
import pytest
from scipy.special import lpmv


def pytest_sessionstart(session):
    """Enable JAX 64-bit mode at the start of the pytest session."""
    jax.config.update("jax_enable_x64", True)


def _norm_factor(l: int, m: int, norm: int) -> float:
    ratio = math.factorial(l - m) / math.factorial(l + m)
    if norm == 1:
        return math.sqrt((2 * l + 1) * ratio)
    if norm == 2:
        return math.sqrt(ratio)
    if norm == 3:
        return 1.0
    return math.sqrt((2 * l + 1) / (4 * math.pi) * ratio)


def _reference_plm(l: int, m: int, z, norm: int = 1, csphase: int = 1):
    """P(l, m)(z) from scipy, which always includes the Condon-Shortley phase."""
    p = lpmv(m, l, np.asarray(z, dtype=np.float64))
    if csphase == 1:
        p = p * (-1.0) ** m
    return _norm_factor(l, m, norm) * p


def _direct_grid(cilm, theta, phi, norm: int = 1, csphase: int = 1, lmax=None):
    """Unsplit synthesis by explicit summation over (l, m)."""
    cilm = np.asarray(cilm)
    lmax = cilm.shape[1] - 1 if lmax is None else lmax
    z = np.cos(theta)
    f = np.zeros((len(theta), len(phi)), dtype=np.complex128)
    for l in range(lmax + 1):
        for m in range(l + 1):
            p = _reference_plm(l, m, z, norm, csphase)[:, None]
            f += cilm[0, l, m] * p * np.exp(1j * m * phi)[None, :]
            if m > 0:
                f += cilm[1, l, m] * (-1.0) ** m * p * np.exp(-1j * m * phi)[None, :]
    return f


def _random_cilm(lmax: int, seed: int = 0):
    rng = np.random.default_rng(seed)
    shape = (2, lmax + 1, lmax + 1)
    cilm = rng.standard_normal(shape) + 1j * rng.standard_normal(shape)
    l = np.arange(lmax + 1)[:, None]
    m = np.arange(lmax + 1)[None, :]
    cilm[:, m > l] = 0.0
    cilm[1, :, 0] = 0.0
    return cilm


@pytest.fixture
def reference_plm():
    return _reference_plm


@pytest.fixture
def norm_factor():
    return _norm_factor


@pytest.fixture
def direct_grid():
    return _direct_grid


@pytest.fixture
def random_cilm():
    return _random_cilm
