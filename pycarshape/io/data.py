import numpy as np
from typing import Dict, NamedTuple, Tuple
from numpy.typing import NDArray

from ..types import ProblemVariant, get_field


class ProblemDimensions(NamedTuple):
    """The three leading integers that size every block of a problem file."""
    num_views: int
    num_pts: int
    num_obs: int


class ProblemData:
    __slots__ = ['variant', 'dims', 'buffers']

    variant: ProblemVariant
    dims: ProblemDimensions
    buffers: Dict[str, NDArray[np.float64]]  # Flat, contiguous, keyed by field name

    def __init__(self, variant: ProblemVariant, dims: ProblemDimensions):
        self.variant = variant
        self.dims = dims
        self.buffers = {}

    def shape_of(self, name: str) -> Tuple[int, ...]:
        """Structured shape of a field for these dimensions."""
        return get_field(self.variant, name).shape(*self.dims)

    def num_scalars(self) -> int:
        """Total number of tokens the problem occupies, dimensions included."""
        return 3 + sum(buf.size for buf in self.buffers.values())
