"""
Tests for the recursion tables and their cache.
"""

import math
import threading

import numpy as np
import pytest

from dhgridx import (
    SCALEF,
    AllocationError,
    RecursionCache,
    build_tables,
    thread_cache,
)
import dhgridx._src.recursion as recursion


def test_geodesy_factors():
    t = build_tables(4, 1)
    ff1, ff2 = np.asarray(t.ff1), np.asarray(t.ff2)
    assert ff1[1, 0] == pytest.approx(math.sqrt(3.0))
    assert ff2[1, 0] == 0.0
    # P(2,0) = sqrt(5) * (3 z^2 - 1) / 2
    assert ff1[2, 0] == pytest.approx(math.sqrt(15.0) / 2.0)
    assert ff2[2, 0] == pytest.approx(math.sqrt(5.0) / 2.0)
    # m = l - 1 only needs the first factor
    for l in range(2, 5):
        assert ff1[l, l - 1] == pytest.approx(math.sqrt(2 * l + 1.0))
        assert ff2[l, l - 1] == 0.0
    l, m = 4, 1
    assert ff1[l, m] == pytest.approx(math.sqrt((2 * l + 1) * (2 * l - 1) / ((l + m) * (l - m))))
    assert ff2[l, m] == pytest.approx(
        math.sqrt((2 * l + 1) * (l - m - 1) * (l + m - 1) / ((2 * l - 3) * (l + m) * (l - m)))
    )


def test_orthonormalized_shares_geodesy_factors():
    t1, t4 = build_tables(6, 1), build_tables(6, 4)
    np.testing.assert_array_equal(np.asarray(t1.ff1), np.asarray(t4.ff1))
    np.testing.assert_array_equal(np.asarray(t1.ff2), np.asarray(t4.ff2))
    assert t4.degree0() == pytest.approx(1.0 / math.sqrt(4.0 * math.pi))
    assert t1.degree0() == 1.0


def test_schmidt_factors():
    t = build_tables(4, 2)
    ff1, ff2 = np.asarray(t.ff1), np.asarray(t.ff2)
    assert ff1[1, 0] == pytest.approx(1.0)
    assert ff2[1, 0] == 0.0
    assert ff1[3, 0] == pytest.approx(5.0 / 3.0)
    assert ff2[3, 0] == pytest.approx(2.0 / 3.0)
    assert ff1[3, 2] == pytest.approx(math.sqrt(5.0))
    assert ff2[3, 2] == 0.0


def test_unnormalized_factors():
    t = build_tables(4, 3)
    ff1, ff2 = np.asarray(t.ff1), np.asarray(t.ff2)
    for l in range(1, 5):
        assert ff1[l, 0] == pytest.approx((2 * l - 1) / l)
        assert ff2[l, 0] == pytest.approx((l - 1) / l)
        for m in range(1, l):
            assert ff1[l, m] == pytest.approx((2 * l - 1) / (l - m))
            assert ff2[l, m] == pytest.approx((l + m - 1) / (l - m))


@pytest.mark.parametrize("norm", [1, 2, 3, 4])
def test_factors_zero_on_and_above_diagonal(norm):
    t = build_tables(7, norm)
    upper = np.triu(np.ones((8, 8), dtype=bool))
    assert np.all(np.asarray(t.ff1)[upper] == 0.0)
    assert np.all(np.asarray(t.ff2)[upper] == 0.0)
    assert np.all(np.isfinite(np.asarray(t.ff1)))
    assert np.all(np.isfinite(np.asarray(t.ff2)))


def test_symmetry_signs():
    t = build_tables(5, 1)
    sign = np.asarray(t.symsign)
    for l in range(6):
        for m in range(6):
            expected = (-1) ** (l - m) if m <= l else 0
            assert sign[l, m] == expected


def test_degree_zero_tables():
    t = build_tables(0, 1)
    assert np.asarray(t.ff1).shape == (1, 1)
    assert np.asarray(t.sqr).shape == (2,)
    np.testing.assert_array_equal(t.sectorial_seeds(1), [1.0])


@pytest.mark.parametrize("csphase", [1, -1])
def test_sectorial_seeds_geodesy(csphase):
    t = build_tables(6, 1)
    seeds = t.sectorial_seeds(csphase)
    assert seeds[0] == 1.0
    for m in range(1, 7):
        expected = SCALEF * csphase**m * math.prod(
            math.sqrt((2 * k + 1) / (2 * k)) for k in range(1, m + 1)
        )
        assert seeds[m] == pytest.approx(expected, rel=1e-13)


def test_sectorial_seeds_schmidt_and_ortho():
    geo = build_tables(6, 1).sectorial_seeds(1)
    sch = build_tables(6, 2).sectorial_seeds(1)
    ortho = build_tables(6, 4).sectorial_seeds(1)
    m = np.arange(1, 7)
    np.testing.assert_allclose(sch[1:], geo[1:] / np.sqrt(2 * m + 1), rtol=1e-13)
    np.testing.assert_allclose(ortho, geo / math.sqrt(4 * math.pi), rtol=1e-13)


def test_sectorial_seeds_unnormalized():
    seeds = build_tables(5, 3).sectorial_seeds(-1)
    # P(m, m) = (-1)^m (2m - 1)!! sin^m
    for m, dfact in enumerate([1, 1, 3, 15, 105, 945]):
        scale = 1.0 if m == 0 else SCALEF
        assert seeds[m] == pytest.approx(scale * (-1) ** m * dfact, rel=1e-13)


def test_unnormalized_seeds_overflow_without_raising():
    seeds = build_tables(400, 3).sectorial_seeds(1)
    assert np.all(np.isfinite(seeds[:100]))
    assert not np.all(np.isfinite(seeds))


# ---------------------------------------------------------------------------
# Cache behaviour
# ---------------------------------------------------------------------------


def test_cache_reuses_tables():
    cache = RecursionCache()
    assert cache.key is None
    t1 = cache.get(8, 1)
    t2 = cache.get(8, 1)
    assert t1 is t2
    assert cache.rebuilds == 1
    assert cache.key == (8, 1)


def test_cache_rebuilds_when_key_changes():
    cache = RecursionCache()
    t1 = cache.get(8, 1)
    t2 = cache.get(8, 2)
    t3 = cache.get(9, 2)
    assert cache.rebuilds == 3
    assert t1.key == (8, 1) and t2.key == (8, 2) and t3.key == (9, 2)
    cache.get(8, 1)
    assert cache.rebuilds == 4


def test_cache_clear():
    cache = RecursionCache()
    cache.get(3, 1)
    cache.clear()
    assert cache.key is None
    cache.get(3, 1)
    assert cache.rebuilds == 2


def test_thread_cache_is_per_thread():
    main = thread_cache()
    assert thread_cache() is main

    seen = []
    worker = threading.Thread(target=lambda: seen.append(thread_cache()))
    worker.start()
    worker.join()

    assert len(seen) == 1
    assert seen[0] is not main


def test_allocation_failure(monkeypatch):
    def _fail(*args, **kwargs):
        raise MemoryError("out of memory")

    monkeypatch.setattr(recursion, "_factor_tables", _fail)
    with pytest.raises(AllocationError) as exc:
        build_tables(10, 1)
    assert exc.value.status == 3
    assert isinstance(exc.value, MemoryError)
