import os
from typing import Union, TYPE_CHECKING

from .data import ProblemData, ProblemDimensions
from .scanner import TokenScanner, ProblemFormatError
from .text import read_problem_stream, read_problem_text, write_problem_text
from ..types import ProblemVariant, PROBLEM_VARIANT_NAMES, MAX_DIMENSION

# Avoid circular import for type hinting
if TYPE_CHECKING:
    from ..problem import AdjustmentProblem

__all__ = [
    "read_problem",
    "write_problem",
    "ProblemData",
    "ProblemDimensions",
    "ProblemFormatError",
    "TokenScanner",
]


def _resolve_variant(variant: Union[ProblemVariant, str]) -> ProblemVariant:
    if isinstance(variant, ProblemVariant):
        return variant
    if isinstance(variant, str) and variant.upper() in PROBLEM_VARIANT_NAMES:
        return PROBLEM_VARIANT_NAMES[variant.upper()]
    raise ValueError(f"Unknown problem variant '{variant}'. "
                     f"Use one of: {', '.join(PROBLEM_VARIANT_NAMES)}")


def read_problem(path: str, variant: Union[ProblemVariant, str],
                 max_dimension: int = MAX_DIMENSION) -> ProblemData:
    """
    Reads a problem file into internal NumPy-based data structures.

    The format has no header, so the layout must be given by the caller.

    Args:
        path: Path to the problem file.
        variant: ProblemVariant or its name (e.g. 'SINGLE_VIEW_SHAPE').
        max_dimension: Largest count accepted for any of the leading dimensions.

    Returns:
        ProblemData holding one flat float64 buffer per field.

    Raises:
        FileNotFoundError: If the path is not a file.
        ValueError: If the variant is unknown.
        ProblemFormatError: If the file is truncated or holds a malformed token.
    """
    resolved = _resolve_variant(variant)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Problem file not found: {path}")
    return read_problem_text(path, resolved, max_dimension=max_dimension)


def write_problem(data: Union[ProblemData, 'AdjustmentProblem'], output_path: str) -> None:
    """
    Writes a problem to a text file in its variant's layout.

    Args:
        data: Either a ProblemData object or a loaded adjustment problem.
        output_path: Destination file path.
    """
    # Need to import AdjustmentProblem locally to avoid circular dependency at module level
    from ..problem import AdjustmentProblem
    if isinstance(data, AdjustmentProblem):
        data = data.get_internal_data()
    elif not isinstance(data, ProblemData):
        raise TypeError("Input 'data' must be an AdjustmentProblem or a ProblemData object")

    directory = os.path.dirname(output_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    write_problem_text(data, output_path)
