"""
Error Types
===========

Exceptions raised by the grid synthesis routines.  Each carries the numeric
status code used by the wider geodesy toolkit, so callers that expect a
status channel can read ``err.status`` instead of parsing messages:

    0 = success (never raised)
    1 = improper dimensions of input or output arrays
    2 = improper bounds for an option value
    3 = error allocating memory
    4 = file I/O error
"""


class DHGridError(Exception):
    """Base class for all grid synthesis errors."""

    status: int = -1

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DimensionError(DHGridError, ValueError):
    """Coefficient or output array has the wrong shape."""

    status = 1


class OptionError(DHGridError, ValueError):
    """An option value is outside its allowed range."""

    status = 2


class AllocationError(DHGridError, MemoryError):
    """Recursion tables or scratch arrays could not be allocated."""

    status = 3


class FileIOError(DHGridError, OSError):
    """Reading coefficients or writing a grid failed."""

    status = 4
