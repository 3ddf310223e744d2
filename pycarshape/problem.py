import logging
import numpy as np
from numpy.typing import NDArray
from typing import Dict, List, Optional

from .io import ProblemData, ProblemDimensions, read_problem_stream
from .types import ProblemVariant, PROBLEM_SCHEMAS, MAX_DIMENSION, get_field
from .utils import rotation_matrix, intrinsics_matrix, is_rotation_matrix

logger = logging.getLogger(__name__)


class ParameterBlock:
    """A contiguous region handed to an optimizer as a variable or a constant.

    `data` aliases the problem's own buffer. Variable blocks are updated in
    place by the optimizer; constant blocks are read-only views.
    """

    __slots__ = ['name', 'data', 'constant']

    name: str
    data: NDArray[np.float64]
    constant: bool

    def __init__(self, name: str, data: NDArray[np.float64], constant: bool):
        self.name = name
        self.data = data
        self.constant = constant

    @property
    def size(self) -> int:
        return int(self.data.size)

    def __repr__(self) -> str:
        kind = "constant" if self.constant else "variable"
        return f"ParameterBlock(name='{self.name}', size={self.size}, {kind})"


class AdjustmentProblem:
    """
    Base loader for car shape/pose adjustment problem files.

    A loader owns every buffer it reads. Buffers are flat, contiguous float64
    arrays laid out exactly as in the file; callers stride into them with the
    dimension getters (see `pycarshape.utils` for the offset formulas).

    Shape coefficients and pose buffers are returned as the loader's own
    arrays, so an optimizer writing into them updates the problem in place.
    Every other buffer is returned as a read-only view.

    Attributes:
        path (Optional[str]): File the problem was loaded from.
    """

    VARIANT: ProblemVariant

    path: Optional[str]
    max_dimension: int

    _data: Optional[ProblemData]
    _views: Dict[str, NDArray[np.float64]]

    def __init__(self, max_dimension: int = MAX_DIMENSION) -> None:
        """
        Creates an empty (unloaded) problem.

        Args:
            max_dimension: Largest count accepted for any of the three
                           leading dimensions of a file.
        """
        self.path = None
        self.max_dimension = max_dimension
        self._data = None
        self._views = {}

    # --- Loading ---

    def load(self, path: str) -> bool:
        """
        Reads a problem file.

        Args:
            path: Path to the problem file.

        Returns:
            True once the whole file parsed, False if it cannot be opened.
            Nothing is allocated when False is returned.

        Raises:
            ProblemFormatError: If the file is truncated or holds a malformed
                                token. The problem keeps its previous state.
        """
        try:
            fid = open(path, "r", encoding="ascii")
        except OSError as e:
            logger.warning("Could not open problem file '%s': %s", path, e)
            return False

        with fid:
            data = read_problem_stream(fid, self.VARIANT, source=path, max_dimension=self.max_dimension)

        self._set_data(data)
        self.path = path
        logger.info("Loaded %s from '%s': %d views, %d keypoints, %d observations",
                    type(self).__name__, path, *data.dims)
        return True

    load_file = load

    @classmethod
    def from_data(cls, data: ProblemData) -> 'AdjustmentProblem':
        """Wraps already parsed data, taking ownership of its buffers."""
        if data.variant != cls.VARIANT:
            raise ValueError(f"{cls.__name__} expects {cls.VARIANT.name} data, got {data.variant.name}")
        problem = cls()
        problem._set_data(data)
        return problem

    def _set_data(self, data: ProblemData) -> None:
        self._check_soft_invariants(data)
        views = {}
        for field in PROBLEM_SCHEMAS[self.VARIANT]:
            buf = data.buffers[field.name]
            if field.mutable:
                views[field.name] = buf
            else:
                ro = buf.view()
                ro.flags.writeable = False
                views[field.name] = ro
        self._data = data
        self._views = views

    def _check_soft_invariants(self, data: ProblemData) -> None:
        num_views, num_pts, num_obs = data.dims
        if num_obs > num_pts:
            logger.warning("Problem has more observations (%d) than keypoints (%d)", num_obs, num_pts)

    @property
    def is_loaded(self) -> bool:
        return self._data is not None

    def get_internal_data(self) -> ProblemData:
        """Returns the underlying ProblemData (for writing)."""
        return self._require_data()

    def _require_data(self) -> ProblemData:
        if self._data is None:
            raise RuntimeError(f"{type(self).__name__} has not been loaded.")
        return self._data

    def _buffer(self, name: str) -> NDArray[np.float64]:
        self._require_data()
        return self._views[name]

    # --- Dimensions ---

    @property
    def dims(self) -> ProblemDimensions:
        return self._require_data().dims

    def get_num_views(self) -> int:
        return self.dims.num_views

    def get_num_pts(self) -> int:
        return self.dims.num_pts

    def get_num_obs(self) -> int:
        return self.dims.num_obs

    # --- Flat buffers ---

    def get_car_center(self) -> NDArray[np.float64]:
        return self._buffer("car_center")

    def get_car_height(self) -> float:
        return float(self._buffer("car_size")[0])

    def get_car_width(self) -> float:
        return float(self._buffer("car_size")[1])

    def get_car_length(self) -> float:
        return float(self._buffer("car_size")[2])

    def get_K(self) -> NDArray[np.float64]:
        """Camera intrinsics, 9 values per 3x3 row-major block."""
        return self._buffer("K")

    def observations(self) -> NDArray[np.float64]:
        """Keypoint pixel coordinates, (x, y) pairs."""
        return self._buffer("observations")

    def observation_weights(self) -> NDArray[np.float64]:
        return self._buffer("observation_weights")

    def get_X_bar(self) -> NDArray[np.float64]:
        """Mean 3D location of every observed keypoint, xyz triples."""
        return self._buffer("X_bar")

    def get_V(self) -> NDArray[np.float64]:
        """Deformation basis; see `pycarshape.utils.basis_offset`."""
        return self._buffer("V")

    def get_lambdas(self) -> NDArray[np.float64]:
        """Shape coefficients. Mutable; the same array for the problem's lifetime."""
        return self._buffer("lambdas")

    # --- Structured views (no copies) ---

    def view(self, name: str) -> NDArray[np.float64]:
        """
        Returns a field reshaped to its structured shape.

        E.g. 'V' of a multi-view problem is (num_views, 42, num_pts, 3). The
        result shares memory with the flat buffer.
        """
        field = get_field(self.VARIANT, name)
        return self._buffer(name).reshape(field.shape(*self.dims))

    def view_block(self, name: str, view: int) -> NDArray[np.float64]:
        """
        Returns the part of a field belonging to one view.

        Fields shared by all views are returned whole.
        """
        num_views = self.get_num_views()
        if not 0 <= view < num_views:
            raise IndexError(f"View index {view} out of range for {num_views} views.")
        field = get_field(self.VARIANT, name)
        if field.per_view:
            return self.view(name)[view]
        return self.view(name)

    def intrinsics_matrix(self, view: int = 0) -> NDArray[np.float64]:
        """Read-only 3x3 intrinsics of a view."""
        return intrinsics_matrix(self.view_block("K", view))

    # --- Optimizer binding ---

    def parameter_blocks(self) -> List[ParameterBlock]:
        """
        Lists the problem's buffers as optimizer parameter blocks.

        Mutable per-view fields yield one block per view, each a view into
        the flat buffer. Constants yield a single read-only block each.
        """
        blocks = []
        num_views = self.get_num_views()
        for field in PROBLEM_SCHEMAS[self.VARIANT]:
            buf = self._buffer(field.name)
            if field.mutable and field.per_view:
                per_view = self.view(field.name)
                for v in range(num_views):
                    blocks.append(ParameterBlock(f"{field.name}[{v}]", per_view[v], constant=False))
            else:
                blocks.append(ParameterBlock(field.name, buf, constant=not field.mutable))
        return blocks

    def get_parameter_block(self, name: str) -> ParameterBlock:
        for block in self.parameter_blocks():
            if block.name == name:
                return block
        raise KeyError(f"No parameter block named '{name}'.")

    def get_statistics(self) -> Dict[str, float]:
        """Summary numbers of the loaded problem."""
        data = self._require_data()
        weights = self._buffer("observation_weights")
        return {
            "num_views": float(data.dims.num_views),
            "num_pts": float(data.dims.num_pts),
            "num_obs": float(data.dims.num_obs),
            "num_scalars": float(data.num_scalars()),
            "mean_observation_weight": float(weights.mean()) if weights.size else 0.0,
        }

    def __repr__(self) -> str:
        if self._data is None:
            return f"{type(self).__name__}(unloaded)"
        nv, npts, nobs = self._data.dims
        return f"{type(self).__name__}(path='{self.path}', views={nv}, pts={npts}, obs={nobs})"


class _SingleViewProblem(AdjustmentProblem):

    def _check_soft_invariants(self, data: ProblemData) -> None:
        super()._check_soft_invariants(data)
        if data.dims.num_views != 1:
            logger.warning("Single-view problem declares %d views; reading %d intrinsics blocks",
                           data.dims.num_views, data.dims.num_views)


class SingleViewPoseAdjustmentProblem(_SingleViewProblem):
    """Single-view problem without a pose prior; the pose is estimated from scratch."""

    VARIANT = ProblemVariant.SINGLE_VIEW_POSE


class SingleViewShapeAdjustmentProblem(_SingleViewProblem):
    """Single-view problem carrying an initial (e.g. PnP) rotation and translation."""

    VARIANT = ProblemVariant.SINGLE_VIEW_SHAPE

    def _check_soft_invariants(self, data: ProblemData) -> None:
        super()._check_soft_invariants(data)
        if not is_rotation_matrix(rotation_matrix(data.buffers["rotation"])):
            logger.warning("Initial rotation is not orthonormal")

    def get_rotation(self) -> NDArray[np.float64]:
        """Rotation estimate, 9 values column-major. Mutable."""
        return self._buffer("rotation")

    def get_translation(self) -> NDArray[np.float64]:
        """Translation estimate, 3 values. Mutable."""
        return self._buffer("translation")

    def rotation_matrix(self) -> NDArray[np.float64]:
        """3x3 view of the rotation estimate; writes go to the flat buffer."""
        return rotation_matrix(self.get_rotation())


class MultiViewShapeAndPoseProblem(AdjustmentProblem):
    """
    Problem observed from several views.

    One intrinsics matrix, one car size and one set of shape coefficients are
    shared by all views; car center, observations, weights, mean shape, basis
    and pose are stored per view.
    """

    VARIANT = ProblemVariant.MULTI_VIEW_SHAPE_AND_POSE

    def _check_soft_invariants(self, data: ProblemData) -> None:
        super()._check_soft_invariants(data)
        rotations = data.buffers["rotation"].reshape(data.dims.num_views, 9)
        for v, rot in enumerate(rotations):
            if not is_rotation_matrix(rotation_matrix(rot)):
                logger.warning("Initial rotation of view %d is not orthonormal", v)

    def get_rotations(self) -> NDArray[np.float64]:
        """Rotation estimates, 9 column-major values per view. Mutable."""
        return self._buffer("rotation")

    def get_translations(self) -> NDArray[np.float64]:
        """Translation estimates, 3 values per view. Mutable."""
        return self._buffer("translation")

    def rotation_matrix(self, view: int) -> NDArray[np.float64]:
        """3x3 view of one view's rotation estimate; writes go to the flat buffer."""
        return rotation_matrix(self.view_block("rotation", view))

    def translation(self, view: int) -> NDArray[np.float64]:
        return self.view_block("translation", view)
