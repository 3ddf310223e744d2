__version__ = "0.1.0"

__all__ = [
    # Problem loaders
    "AdjustmentProblem",
    "SingleViewPoseAdjustmentProblem",
    "SingleViewShapeAdjustmentProblem",
    "MultiViewShapeAndPoseProblem",
    "ParameterBlock",
    # Types & Constants
    "ProblemVariant",
    "FieldSpec",
    "PROBLEM_SCHEMAS",
    "NUM_BASIS_VECTORS",
    "MAX_DIMENSION",
    # IO
    "read_problem",
    "write_problem",
    "ProblemData",
    "ProblemDimensions",
    "ProblemFormatError",
    "TokenScanner",
    # Layout helpers
    "center_offset",
    "observation_offset",
    "weight_offset",
    "mean_shape_offset",
    "basis_offset",
    "intrinsics_offset",
    "rotation_offset",
    "translation_offset",
    "rotation_matrix",
    "intrinsics_matrix",
    # Logging
    "setup_logging",
]

from .problem import (
    AdjustmentProblem,
    SingleViewPoseAdjustmentProblem,
    SingleViewShapeAdjustmentProblem,
    MultiViewShapeAndPoseProblem,
    ParameterBlock,
)
from .types import (
    ProblemVariant,
    FieldSpec,
    PROBLEM_SCHEMAS,
    NUM_BASIS_VECTORS,
    MAX_DIMENSION,
)
from .io import (
    read_problem,
    write_problem,
    ProblemData,
    ProblemDimensions,
    ProblemFormatError,
    TokenScanner,
)
from .utils import (
    center_offset,
    observation_offset,
    weight_offset,
    mean_shape_offset,
    basis_offset,
    intrinsics_offset,
    rotation_offset,
    translation_offset,
    rotation_matrix,
    intrinsics_matrix,
)
from .logging_config import setup_logging
