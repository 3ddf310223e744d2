from enum import Enum
from typing import Callable, Dict, List, Tuple

# Number of deformation basis vectors stored in every problem file
NUM_BASIS_VECTORS = 42

# Upper bound for any of the three leading counts, checked before allocation
MAX_DIMENSION = 1 << 20

# (num_views, num_pts, num_obs) -> shape of one block of a field
ShapeFn = Callable[[int, int, int], Tuple[int, ...]]


class ProblemVariant(Enum):
    """Enumeration of the problem file layouts."""
    SINGLE_VIEW_POSE = 0
    SINGLE_VIEW_SHAPE = 1
    MULTI_VIEW_SHAPE_AND_POSE = 2


class FieldSpec:
    """One typed, shaped block of a problem file."""

    name: str
    block_shape: ShapeFn
    per_view: bool
    mutable: bool

    def __init__(self, name: str, block_shape: ShapeFn, per_view: bool = False, mutable: bool = False):
        """Initialize a field description.

        Args:
            name: Attribute name of the buffer the field is read into.
            block_shape: Function of the problem dimensions returning the
                         shape of a single block.
            per_view: If True the block is repeated once per view.
            mutable: If True the optimizer updates the buffer in place.
        """
        self.name = name
        self.block_shape = block_shape
        self.per_view = per_view
        self.mutable = mutable

    def shape(self, num_views: int, num_pts: int, num_obs: int) -> Tuple[int, ...]:
        """Full (unflattened) shape of the field for the given dimensions."""
        block = self.block_shape(num_views, num_pts, num_obs)
        if self.per_view:
            return (num_views,) + block
        return block

    def size(self, num_views: int, num_pts: int, num_obs: int) -> int:
        """Number of scalars the field occupies in the file."""
        count = 1
        for extent in self.shape(num_views, num_pts, num_obs):
            count *= extent
        return count

    def __repr__(self) -> str:
        return f"FieldSpec(name='{self.name}', per_view={self.per_view}, mutable={self.mutable})"


def _vec3(nv, np_, no): return (3,)
def _mat3(nv, np_, no): return (9,)
def _obs(nv, np_, no): return (no, 2)
def _weights(nv, np_, no): return (no,)
def _mean_shape(nv, np_, no): return (no, 3)
def _basis(nv, np_, no): return (NUM_BASIS_VECTORS, np_, 3)
def _lambdas(nv, np_, no): return (NUM_BASIS_VECTORS,)


_SINGLE_VIEW_FIELDS = [
    FieldSpec("car_center", _vec3),
    FieldSpec("car_size", _vec3),
    FieldSpec("K", _mat3, per_view=True),
    FieldSpec("observations", _obs),
    FieldSpec("observation_weights", _weights),
    FieldSpec("X_bar", _mean_shape),
    FieldSpec("V", _basis),
    FieldSpec("lambdas", _lambdas, mutable=True),
]

_PNP_POSE_FIELDS = [
    FieldSpec("rotation", _mat3, mutable=True),
    FieldSpec("translation", _vec3, mutable=True),
]

# Car size and a single shared K come first, the car center moves into the
# per-view section
_MULTI_VIEW_FIELDS = [
    FieldSpec("car_size", _vec3),
    FieldSpec("K", _mat3),
    FieldSpec("car_center", _vec3, per_view=True),
    FieldSpec("observations", _obs, per_view=True),
    FieldSpec("observation_weights", _weights, per_view=True),
    FieldSpec("X_bar", _mean_shape, per_view=True),
    FieldSpec("V", _basis, per_view=True),
    FieldSpec("lambdas", _lambdas, mutable=True),
    FieldSpec("rotation", _mat3, per_view=True, mutable=True),
    FieldSpec("translation", _vec3, per_view=True, mutable=True),
]

# Ordered field tables, the order is the file grammar
PROBLEM_SCHEMAS: Dict[ProblemVariant, List[FieldSpec]] = {
    ProblemVariant.SINGLE_VIEW_POSE: _SINGLE_VIEW_FIELDS,
    ProblemVariant.SINGLE_VIEW_SHAPE: _SINGLE_VIEW_FIELDS + _PNP_POSE_FIELDS,
    ProblemVariant.MULTI_VIEW_SHAPE_AND_POSE: _MULTI_VIEW_FIELDS,
}

PROBLEM_VARIANT_NAMES = {variant.name: variant for variant in ProblemVariant}


def get_field(variant: ProblemVariant, name: str) -> FieldSpec:
    """Look up a field of a variant by name."""
    for field in PROBLEM_SCHEMAS[variant]:
        if field.name == name:
            return field
    raise KeyError(f"Field '{name}' is not part of the {variant.name} layout.")
