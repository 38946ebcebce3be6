"""
Configuration Resolver
======================

Validates the options of a grid synthesis call and reduces them to a
canonical, immutable :class:`GridConfig`.

Grid dimensions follow the Driscoll-Healy sampling theorem:

    n      = 2 * (lmax + 1)            latitude samples, always even
    nlong  = n        (sampling = 1)   N x N grid
           = 2 * n    (sampling = 2)   N x 2N grid

and both grow by one when ``extend`` requests the 90S row and 360E column.

Validation is fail-fast and ordered; the first violated constraint decides
which error is raised:

    lmax -> sampling -> extend -> coefficient shape -> output shape
         -> norm -> csphase -> lmax_calc
"""

import numbers
from typing import Optional, Sequence, Union

import equinox as eqx

from .errors import DimensionError, OptionError

# Exclude the Condon-Shortley phase unless asked for.
CSPHASE_DEFAULT = 1

NORM_GEODESY = 1
NORM_SCHMIDT = 2
NORM_UNNORMALIZED = 3
NORM_ORTHONORMALIZED = 4

NORM_NAMES = {
    "4pi": NORM_GEODESY,
    "geodesy": NORM_GEODESY,
    "schmidt": NORM_SCHMIDT,
    "unnorm": NORM_UNNORMALIZED,
    "unnormalized": NORM_UNNORMALIZED,
    "ortho": NORM_ORTHONORMALIZED,
    "orthonormalized": NORM_ORTHONORMALIZED,
}


class GridConfig(eqx.Module):
    """
    Resolved options for one synthesis call.

    Attributes:
    -----------
    lmax : int
        Spherical harmonic bandwidth; fixes the grid spacing.
    lmax_comp : int
        Degree the coefficients are actually evaluated to:
        min(lmax, lmax_calc, degree held by the coefficient array).
    norm : int
        1 = geodesy (4pi), 2 = Schmidt, 3 = unnormalized, 4 = orthonormalized.
    sampling : int
        1 = N x N, 2 = N x 2N.
    csphase : int
        1 excludes the Condon-Shortley phase, -1 includes it.
    extend : int
        1 appends the 90S row and the 360E column.
    """

    lmax: int
    lmax_comp: int
    norm: int
    sampling: int
    csphase: int
    extend: int

    @property
    def n(self) -> int:
        """Number of latitude samples before extension."""
        return 2 * self.lmax + 2

    @property
    def nlong(self) -> int:
        """Number of longitude samples before extension (the DFT length)."""
        return self.sampling * self.n

    @property
    def nlat_out(self) -> int:
        return self.n + self.extend

    @property
    def nlong_out(self) -> int:
        return self.nlong + self.extend

    @property
    def shape(self) -> tuple[int, int]:
        """Shape of the output grid."""
        return (self.nlat_out, self.nlong_out)


def _as_norm(norm: Union[int, str]) -> int:
    if isinstance(norm, bool):
        raise OptionError(f"norm must be an integer code or a name, got {norm!r}")
    if isinstance(norm, str):
        try:
            return NORM_NAMES[norm.lower()]
        except KeyError:
            raise OptionError(
                f"norm must be one of {sorted(NORM_NAMES)} or 1..4, got {norm!r}"
            ) from None
    if norm not in (1, 2, 3, 4):
        raise OptionError(
            "norm must be 1 (geodesy), 2 (Schmidt), 3 (unnormalized), "
            f"or 4 (orthonormalized), got {norm}"
        )
    return int(norm)


def resolve_config(
    cilm_shape: Sequence[int],
    lmax: int,
    *,
    norm: Union[int, str] = NORM_GEODESY,
    sampling: int = 1,
    csphase: int = CSPHASE_DEFAULT,
    lmax_calc: Optional[int] = None,
    extend: Union[int, bool] = 0,
    out_shape: Optional[Sequence[int]] = None,
) -> GridConfig:
    """
    Validate synthesis options and derive the grid configuration.

    Parameters:
    -----------
    cilm_shape : sequence of int
        Shape of the coefficient array, expected (2, L+1, L+1).
    lmax : int
        Spherical harmonic bandwidth of the output grid.
    norm : int or str
        Normalization of the Legendre functions (default geodesy).
    sampling : int
        1 for an N x N grid (default), 2 for N x 2N.
    csphase : int
        1 to exclude (default) or -1 to include the Condon-Shortley phase.
    lmax_calc : int, optional
        Maximum degree to evaluate, must not exceed lmax.
    extend : int or bool
        Append the 90S row and 360E column when 1/True.
    out_shape : sequence of int, optional
        Shape of a caller-supplied output buffer.

    Returns:
    --------
    GridConfig

    Raises:
    -------
    DimensionError
        Malformed coefficient array or an output buffer that is too small.
    OptionError
        An option value is out of range.
    """
    if isinstance(lmax, bool) or not isinstance(lmax, numbers.Integral):
        raise OptionError(f"lmax must be a non-negative integer, got {lmax!r}")
    if lmax < 0:
        raise OptionError(f"lmax must be a non-negative integer, got {lmax!r}")

    if isinstance(sampling, bool) or sampling not in (1, 2):
        raise OptionError(
            f"sampling must be 1 (N by N) or 2 (N by 2N), got {sampling}"
        )

    if extend not in (0, 1):
        raise OptionError(f"extend must be 0 or 1, got {extend}")
    extend = int(extend)

    cilm_shape = tuple(cilm_shape)
    if len(cilm_shape) != 3 or cilm_shape[0] < 2 or min(cilm_shape) < 1:
        raise DimensionError(
            f"cilm must be dimensioned as (2, *, *), got {cilm_shape}"
        )

    n = 2 * lmax + 2
    nlat_out = n + extend
    nlong_out = sampling * n + extend
    if out_shape is not None:
        out_shape = tuple(out_shape)
        if (
            len(out_shape) != 2
            or out_shape[0] < nlat_out
            or out_shape[1] < nlong_out
        ):
            raise DimensionError(
                f"output grid must be dimensioned as ({nlat_out}, {nlong_out}), "
                f"got {out_shape}"
            )

    lnorm = _as_norm(norm)

    if isinstance(csphase, bool) or csphase not in (1, -1):
        raise OptionError(
            f"csphase must be 1 (exclude) or -1 (include), got {csphase}"
        )

    lmax_comp = min(lmax, cilm_shape[1] - 1, cilm_shape[2] - 1)
    if lmax_calc is not None:
        if lmax_calc > lmax or lmax_calc < 0:
            raise OptionError(
                f"lmax_calc must be between 0 and lmax={lmax}, got {lmax_calc}"
            )
        lmax_comp = min(lmax_comp, lmax_calc)

    return GridConfig(
        lmax=int(lmax),
        lmax_comp=int(lmax_comp),
        norm=lnorm,
        sampling=int(sampling),
        csphase=int(csphase),
        extend=extend,
    )
