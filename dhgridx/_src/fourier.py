import functools

import equinox as eqx
import jax.numpy as jnp
from jaxtyping import Array, Complex

BACKWARD = 1
FORWARD = -1


class FourierPlan(eqx.Module):
    """Unnormalized 1D DFT of fixed length along the last axis.

    Backward (synthesis) direction:
        x_k = sum_j c_j * exp(+2*pi*i*j*k / length)

    Forward direction:
        c_j = sum_k x_k * exp(-2*pi*i*j*k / length)

    Attributes:
        length (int): the sequence length the plan accepts
        direction (int): BACKWARD (+1) or FORWARD (-1)
    """

    length: int
    direction: int = BACKWARD

    def __check_init__(self):
        if self.length < 1:
            raise ValueError(f"DFT length must be >= 1, got {self.length}")
        if self.direction not in (BACKWARD, FORWARD):
            raise ValueError(f"direction must be +1 or -1, got {self.direction}")

    def __call__(self, c: Complex[Array, "... L"]) -> Complex[Array, "... L"]:
        if c.shape[-1] != self.length:
            raise ValueError(
                f"plan expects length {self.length}, got {c.shape[-1]}"
            )
        # numpy "forward" norm leaves the backward transform unscaled
        if self.direction == BACKWARD:
            return jnp.fft.ifft(c, axis=-1, norm="forward")
        return jnp.fft.fft(c, axis=-1, norm="backward")


@functools.lru_cache(maxsize=32)
def get_plan(length: int, direction: int = BACKWARD) -> FourierPlan:
    """a plan per (length, direction), shared across calls

    Args:
        length (int): the number of samples of the transform
        direction (int, optional): BACKWARD or FORWARD. Defaults to BACKWARD.

    Returns:
        plan (FourierPlan): the reusable transform
    """
    return FourierPlan(length=length, direction=direction)
