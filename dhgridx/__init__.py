# enable double precision; the scaled Legendre recursion needs the float64 range
from jax import config

config.update("jax_enable_x64", True)

from loguru import logger

from dhgridx._src.config import (
    CSPHASE_DEFAULT,
    NORM_GEODESY,
    NORM_ORTHONORMALIZED,
    NORM_SCHMIDT,
    NORM_UNNORMALIZED,
    GridConfig,
    resolve_config,
)
from dhgridx._src.errors import (
    AllocationError,
    DHGridError,
    DimensionError,
    FileIOError,
    OptionError,
)
from dhgridx._src.fourier import BACKWARD, FORWARD, FourierPlan, get_plan
from dhgridx._src.grid import DHGrid, make_grid_dhc
from dhgridx._src.legendre import evaluate_legendre, synthesize_rings
from dhgridx._src.recursion import (
    SCALEF,
    RecursionCache,
    RecursionTables,
    build_tables,
    thread_cache,
)

logger.disable("dhgridx")

__all__ = [
    # Synthesis
    "make_grid_dhc",
    "DHGrid",
    "evaluate_legendre",
    "synthesize_rings",
    # Configuration
    "GridConfig",
    "resolve_config",
    "CSPHASE_DEFAULT",
    "NORM_GEODESY",
    "NORM_SCHMIDT",
    "NORM_UNNORMALIZED",
    "NORM_ORTHONORMALIZED",
    # Recursion tables
    "RecursionTables",
    "RecursionCache",
    "build_tables",
    "thread_cache",
    "SCALEF",
    # Fourier
    "FourierPlan",
    "get_plan",
    "BACKWARD",
    "FORWARD",
    # Errors
    "DHGridError",
    "DimensionError",
    "OptionError",
    "AllocationError",
    "FileIOError",
]
