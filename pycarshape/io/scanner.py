import re
import numpy as np
from typing import Iterator, Optional, TextIO, Tuple
from numpy.typing import NDArray

# ASCII literals accepted by scanf %d and %lf
_INT_TOKEN = re.compile(r"[+-]?[0-9]+", re.ASCII)
_FLOAT_TOKEN = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?|nan)",
    re.ASCII | re.IGNORECASE)


class ProblemFormatError(ValueError):
    """Raised when a problem file is truncated or holds a malformed token.

    Attributes:
        field: Name of the field being read when the error occurred.
        token_index: 0-based index of the offending token in the file.
        line: 1-based line number of the offending token (None at end of file).
        token: The raw token text (None at end of file).
        source: Path or description of the stream.
    """

    def __init__(self, reason: str, field: Optional[str] = None, token_index: Optional[int] = None,
                 line: Optional[int] = None, token: Optional[str] = None, source: Optional[str] = None):
        self.reason = reason
        self.field = field
        self.token_index = token_index
        self.line = line
        self.token = token
        self.source = source

        location = []
        if source is not None: location.append(f"'{source}'")
        if field is not None: location.append(f"field '{field}'")
        if token_index is not None: location.append(f"token {token_index}")
        if line is not None: location.append(f"line {line}")
        where = f" ({', '.join(location)})" if location else ""
        super().__init__(f"Invalid data file{where}: {reason}")


class TokenScanner:
    """Sequential reader of whitespace-delimited numeric tokens.

    Every read consumes exactly one token; there is no way to peek or go back.
    """

    def __init__(self, stream: TextIO, source: Optional[str] = None):
        self._tokens = self._iter_tokens(stream)
        self._pending: Optional[Tuple[str, int]] = None
        self.source = source
        self.tokens_consumed = 0
        self.line = 0

    @staticmethod
    def _iter_tokens(stream: TextIO) -> Iterator[Tuple[str, int]]:
        for line_no, line in enumerate(stream, start=1):
            for token in line.split():
                yield token, line_no

    def _next_token(self, field: Optional[str]) -> str:
        if self._pending is not None:
            token, line_no = self._pending
            self._pending = None
        else:
            try:
                token, line_no = next(self._tokens)
            except StopIteration:
                raise ProblemFormatError("unexpected end of file", field=field,
                                         token_index=self.tokens_consumed, source=self.source) from None
            except UnicodeDecodeError as e:
                self._fail_decode(field, e)
        self.line = line_no
        self.tokens_consumed += 1
        return token

    def _fail_decode(self, field: Optional[str], cause: UnicodeDecodeError) -> None:
        raise ProblemFormatError(f"non-ASCII byte 0x{cause.object[cause.start]:02x} in file", field=field,
                                 token_index=self.tokens_consumed, source=self.source) from cause

    def _fail(self, token: str, expected: str, field: Optional[str]) -> None:
        raise ProblemFormatError(f"expected {expected}, got '{token}'", field=field,
                                 token_index=self.tokens_consumed - 1, line=self.line,
                                 token=token, source=self.source)

    def read_int(self, field: Optional[str] = None) -> int:
        """Read the next token as an integer."""
        token = self._next_token(field)
        if _INT_TOKEN.fullmatch(token) is None:
            self._fail(token, "an integer", field)
        return int(token)

    def read_float(self, field: Optional[str] = None) -> float:
        """Read the next token as a double."""
        token = self._next_token(field)
        if _FLOAT_TOKEN.fullmatch(token) is None:
            self._fail(token, "a floating-point number", field)
        return float(token)

    def read_floats(self, count: int, field: Optional[str] = None) -> NDArray[np.float64]:
        """Read `count` consecutive doubles into a new contiguous array."""
        values = np.empty(count, dtype=np.float64)
        for i in range(count):
            values[i] = self.read_float(field)
        return values

    def at_end(self) -> bool:
        """Check whether the stream holds no further tokens."""
        if self._pending is not None:
            return False
        try:
            self._pending = next(self._tokens)
        except StopIteration:
            return True
        except UnicodeDecodeError as e:
            self._fail_decode(None, e)
        return False
