import numpy as np
from numpy.typing import NDArray

from .types import NUM_BASIS_VECTORS

# Flat offsets into the buffers of a problem. Single-view buffers use view 0.


def center_offset(view: int, coord: int) -> int:
    """Offset of coordinate `coord` of the car center seen in `view`."""
    return 3 * view + coord


def observation_offset(view: int, obs: int, coord: int, num_obs: int) -> int:
    """Offset of pixel coordinate `coord` (0=x, 1=y) of observation `obs`."""
    return view * num_obs * 2 + obs * 2 + coord


def weight_offset(view: int, obs: int, num_obs: int) -> int:
    """Offset of the confidence weight of observation `obs`."""
    return view * num_obs + obs


def mean_shape_offset(view: int, obs: int, coord: int, num_obs: int) -> int:
    """Offset of coordinate `coord` of the mean 3D location of observation `obs`."""
    return view * 3 * num_obs + obs * 3 + coord


def basis_offset(view: int, basis: int, keypoint: int, coord: int, num_pts: int) -> int:
    """Offset into V.

    All coordinates of all keypoints of one basis vector are contiguous,
    followed by the next basis vector; views are outermost.
    """
    return view * 3 * NUM_BASIS_VECTORS * num_pts + basis * 3 * num_pts + 3 * keypoint + coord


def intrinsics_offset(view: int, row: int, col: int) -> int:
    """Offset of K[row, col]; each 3x3 block is row-major."""
    return view * 9 + 3 * row + col


def rotation_offset(view: int, row: int, col: int) -> int:
    """Offset of R[row, col]; each 3x3 block is column-major."""
    return view * 9 + 3 * col + row


def translation_offset(view: int, coord: int) -> int:
    """Offset of coordinate `coord` of the translation estimate of `view`."""
    return view * 3 + coord


def rotation_matrix(rot: NDArray[np.float64]) -> NDArray[np.float64]:
    """3x3 view of a column-major rotation block.

    The result shares memory with `rot`, writes go through.

    Args:
        rot: Array of 9 values in column-major order.

    Returns:
        (3, 3) array with R[i, j] == rot[3 * j + i]
    """
    if rot.size != 9:
        raise ValueError("rotation block must hold 9 values")
    return rot.reshape(3, 3).T


def intrinsics_matrix(K: NDArray[np.float64]) -> NDArray[np.float64]:
    """3x3 view of a row-major intrinsics block, sharing memory with `K`."""
    if K.size != 9:
        raise ValueError("intrinsics block must hold 9 values")
    return K.reshape(3, 3)


def is_rotation_matrix(R: np.ndarray, atol: float = 1e-6) -> bool:
    """Check that R is orthonormal with determinant +1."""
    if R.shape != (3, 3):
        return False
    return bool(np.allclose(R @ R.T, np.eye(3), atol=atol) and np.isclose(np.linalg.det(R), 1.0, atol=atol))
