import logging
import numpy as np
from typing import TextIO, Optional

from .data import ProblemData, ProblemDimensions
from .scanner import TokenScanner, ProblemFormatError
from ..types import ProblemVariant, PROBLEM_SCHEMAS, MAX_DIMENSION

logger = logging.getLogger(__name__)


def read_dimensions(scanner: TokenScanner, max_dimension: int = MAX_DIMENSION) -> ProblemDimensions:
    """Read and validate the leading (num_views, num_pts, num_obs) triple.

    Args:
        scanner: Scanner positioned at the start of the file.
        max_dimension: Largest count accepted for any dimension.

    Returns:
        ProblemDimensions of the file.

    Raises:
        ProblemFormatError: If a count is missing, not an integer, negative
                            or larger than `max_dimension`.
    """
    values = []
    for name in ProblemDimensions._fields:
        value = scanner.read_int(name)
        if value < 0 or value > max_dimension:
            raise ProblemFormatError(f"{name} must be in [0, {max_dimension}], got {value}",
                                     field=name, token_index=scanner.tokens_consumed - 1,
                                     line=scanner.line, token=str(value), source=scanner.source)
        values.append(value)
    return ProblemDimensions(*values)


def read_problem_stream(stream: TextIO, variant: ProblemVariant,
                        source: Optional[str] = None,
                        max_dimension: int = MAX_DIMENSION) -> ProblemData:
    """Parse one problem from an open text stream.

    Fields are read in the exact order of the variant's schema. Nothing is
    returned unless every field parsed.

    Args:
        stream: Text stream holding the problem.
        variant: Which file layout to expect.
        source: Name used in error messages, usually the file path.
        max_dimension: Largest count accepted for any dimension.

    Returns:
        ProblemData with one flat float64 buffer per field.

    Raises:
        ProblemFormatError: On a missing or malformed token.
    """
    scanner = TokenScanner(stream, source=source)
    dims = read_dimensions(scanner, max_dimension)
    logger.debug("Reading %s problem with dimensions %s", variant.name, dims)

    data = ProblemData(variant, dims)
    for field in PROBLEM_SCHEMAS[variant]:
        count = field.size(*dims)
        data.buffers[field.name] = scanner.read_floats(count, field.name)
        logger.debug("Read field '%s' (%d values)", field.name, count)

    if not scanner.at_end():
        logger.debug("Ignoring trailing tokens after token %d", scanner.tokens_consumed)

    return data


def read_problem_text(path: str, variant: ProblemVariant, max_dimension: int = MAX_DIMENSION) -> ProblemData:
    """Read a problem file.

    Raises:
        OSError: If the file cannot be opened.
        ProblemFormatError: On a missing or malformed token.
    """
    with open(path, "r", encoding="ascii") as fid:
        return read_problem_stream(fid, variant, source=path, max_dimension=max_dimension)


def write_problem_text(data: ProblemData, path: str) -> None:
    """Write a problem in the same layout it is read in.

    One field per line, doubles written with `repr` so they parse back exactly.

    Args:
        data: ProblemData object
        path: Output file path
    """
    with open(path, "w") as fid:
        fid.write(" ".join(str(int(d)) for d in data.dims) + "\n")

        for field in PROBLEM_SCHEMAS[data.variant]:
            values = np.asarray(data.buffers[field.name], dtype=np.float64).ravel()
            expected = field.size(*data.dims)
            if values.size != expected:
                raise ValueError(f"Field '{field.name}' holds {values.size} values, expected {expected}")
            fid.write(" ".join(repr(float(v)) for v in values) + "\n")
