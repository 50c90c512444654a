"""Eigen and singular value decompositions of a Matrix.

Both run torch.linalg on a dense copy of the operand and hand back dense
Matrix objects, so the factors compose with the rest of the engine:

    values, vectors = spectral_decomposition(a)
    vectors * Matrix.diagonal(values) * vectors.H    # a, up to rounding

    u, s, vh = singular_value_decomposition(b)
    u * Matrix.diagonal(s) * vh                      # b, up to rounding
"""

from typing import Any

import torch

from matrices import Matrix, as_storage
from matrix_errors import InvalidStateError, OutOfRangeError, check_not_none
from matrix_logging import get_logger
from matrix_patterns import classify
from matrix_storage import Storage

logger = get_logger(__name__)


def _operand(matrix: Any) -> Storage:
    check_not_none(matrix, "matrix")
    storage = as_storage(matrix)
    if storage is None:
        raise OutOfRangeError("matrix", f"Cannot decompose a {type(matrix).__name__}")
    return storage


def _hermitian_tensor(matrix: Any) -> torch.Tensor:
    storage = _operand(matrix)
    pattern = classify(storage)
    if not pattern.is_square:
        raise OutOfRangeError("matrix", "Matrix must be square")
    if not pattern.is_hermitian:
        raise OutOfRangeError("matrix", "Matrix must be symmetric, or Hermitian if complex")
    return storage.as_tensor()


def _column(values: torch.Tensor) -> Matrix:
    return Matrix.dense_from_rows(values.unsqueeze(1))


def spectral_decomposition(matrix: Any) -> tuple[Matrix, Matrix]:
    """Eigenvalues and eigenvectors of a symmetric or Hermitian matrix.

    Returns a real column vector of eigenvalues in ascending order, and a
    matrix whose columns are the matching orthonormal eigenvectors.
    """
    tensor = _hermitian_tensor(matrix)
    logger.debug("Spectral decomposition of a %dx%d matrix", *tensor.shape)
    try:
        eigenvalues, eigenvectors = torch.linalg.eigh(tensor)
    except torch.linalg.LinAlgError as error:
        raise InvalidStateError("matrix", "Eigenvalue computation did not converge") from error
    return _column(eigenvalues), Matrix.dense_from_rows(eigenvectors)


def eigenvalues(matrix: Any) -> Matrix:
    "The eigenvalues of a symmetric or Hermitian matrix, ascending, as a column."
    tensor = _hermitian_tensor(matrix)
    try:
        return _column(torch.linalg.eigvalsh(tensor))
    except torch.linalg.LinAlgError as error:
        raise InvalidStateError("matrix", "Eigenvalue computation did not converge") from error


def singular_value_decomposition(matrix: Any) -> tuple[Matrix, Matrix, Matrix]:
    """Thin SVD: U, the singular values, and the conjugate transpose of V.

    For an m x n matrix with k = min(m, n), U is m x k, the singular values
    form a descending k x 1 column and V^H is k x n.
    """
    tensor = _operand(matrix).as_tensor()
    logger.debug("Singular value decomposition of a %dx%d matrix", *tensor.shape)
    try:
        u, s, vh = torch.linalg.svd(tensor, full_matrices=False)
    except torch.linalg.LinAlgError as error:
        raise InvalidStateError("matrix", "Singular value computation did not converge") from error
    return Matrix.dense_from_rows(u), _column(s), Matrix.dense_from_rows(vh)


def singular_values(matrix: Any) -> Matrix:
    "The singular values, descending, as a column."
    tensor = _operand(matrix).as_tensor()
    try:
        return _column(torch.linalg.svdvals(tensor))
    except torch.linalg.LinAlgError as error:
        raise InvalidStateError("matrix", "Singular value computation did not converge") from error
