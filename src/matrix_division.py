"""Matrix division: find X such that X * right = left.

The algorithm depends on the structure of `right`. `choose_strategy` walks
an ordered decision table over the StructuralPattern of `right` and returns
the first strategy whose predicate holds, so a diagonal matrix (which is
also triangular, Hessenberg and symmetric) is solved by scaling.

Specialized strategies that break down fall back to a more general one and
say so in the log:

    HESSENBERG breakdown         -> GENERAL_LU
    CHOLESKY not positive        -> SYMMETRIC_INDEFINITE
    LEAST_SQUARES small R pivot  -> SVD (after a rank check)

Numerical failures are never turned into approximate results. A pivot
within `rank_tolerance` of the largest one counts as zero: zero diagonals
raise SingularMatrixError and rank-deficient operands raise
RankDeficiencyError.
"""

import enum
from typing import Callable

import torch

from matrix_config import get_config
from matrix_errors import (
    DimensionMismatchError,
    RankDeficiencyError,
    SingularMatrixError,
    check_not_none,
)
from matrix_logging import get_logger
from matrix_operators import combine_scalar, dense_tensor
from matrix_patterns import StructuralPattern, classify
from matrix_storage import DenseStorage, Storage
from scalar_fields import field_of_dtype, promote

logger = get_logger(__name__)


class DivisionStrategy(enum.Enum):
    SCALAR = "scalar"
    DIAGONAL = "diagonal"
    UPPER_TRIANGULAR = "upper_triangular"
    LOWER_TRIANGULAR = "lower_triangular"
    UPPER_HESSENBERG = "upper_hessenberg"
    LOWER_HESSENBERG = "lower_hessenberg"
    CHOLESKY = "cholesky"
    SYMMETRIC_INDEFINITE = "symmetric_indefinite"
    GENERAL_LU = "general_lu"
    LEAST_SQUARES = "least_squares"


# SYMMETRIC_INDEFINITE is only reached as the fallback of CHOLESKY: positive
# definiteness is not a structural fact.
DECISION_TABLE: tuple[tuple[Callable[[StructuralPattern], bool], DivisionStrategy], ...] = (
    (lambda p: p.is_scalar, DivisionStrategy.SCALAR),
    (lambda p: p.is_diagonal, DivisionStrategy.DIAGONAL),
    (lambda p: p.is_upper_triangular, DivisionStrategy.UPPER_TRIANGULAR),
    (lambda p: p.is_lower_triangular, DivisionStrategy.LOWER_TRIANGULAR),
    (lambda p: p.is_upper_hessenberg, DivisionStrategy.UPPER_HESSENBERG),
    (lambda p: p.is_lower_hessenberg, DivisionStrategy.LOWER_HESSENBERG),
    (lambda p: p.is_hermitian, DivisionStrategy.CHOLESKY),
    (lambda p: p.is_square, DivisionStrategy.GENERAL_LU),
    (lambda p: True, DivisionStrategy.LEAST_SQUARES),
)


def choose_strategy(pattern: StructuralPattern) -> DivisionStrategy:
    for predicate, strategy in DECISION_TABLE:
        if predicate(pattern):
            return strategy
    raise AssertionError("The decision table ends with a catch-all entry")


def _negligible(pivots: torch.Tensor) -> bool:
    """True when the smallest pivot is lost in the rounding of the largest."""
    magnitudes = pivots.abs()
    largest = magnitudes.max()
    return bool(largest == 0 or magnitudes.min() <= get_config().rank_tolerance * largest)


def _check_diagonal(diagonal: torch.Tensor) -> None:
    zeros = (diagonal == 0).nonzero()
    if zeros.numel():
        raise SingularMatrixError(
            "right", f"Zero on the diagonal at position {int(zeros[0])}"
        )
    if _negligible(diagonal):
        position = int(diagonal.abs().argmin())
        raise SingularMatrixError(
            "right", f"Negligible entry on the diagonal at position {position}"
        )


def _solve_scalar(left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    _check_diagonal(right.reshape(1))
    return left * field_of_dtype(right.dtype).reciprocal(right[0, 0].item())


def _solve_diagonal(left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    diagonal = right.diagonal()
    _check_diagonal(diagonal)
    # Column j of X * D is column j of X scaled by D[j, j].
    return left / diagonal.unsqueeze(0)


def _solve_triangular(left: torch.Tensor, right: torch.Tensor, upper: bool) -> torch.Tensor:
    _check_diagonal(right.diagonal())
    return torch.linalg.solve_triangular(right, left, upper=upper, left=False)


def _solve_upper_hessenberg_system(h: torch.Tensor, b: torch.Tensor) -> torch.Tensor | None:
    """Solve H @ Y = B for an upper Hessenberg H, or None on breakdown.

    Gaussian elimination only has one entry to clear per column, so row k
    is pivoted against row k + 1 alone.
    """
    h = h.clone()
    b = b.clone()
    n = h.shape[0]
    for k in range(n - 1):
        if h[k + 1, k].abs() > h[k, k].abs():
            h[[k, k + 1], k:] = h[[k + 1, k], k:]
            b[[k, k + 1]] = b[[k + 1, k]]
        pivot = h[k, k]
        if pivot == 0:
            return None
        multiplier = h[k + 1, k] / pivot
        h[k + 1, k:] -= multiplier * h[k, k:]
        b[k + 1] -= multiplier * b[k]
    u = h.triu()
    if _negligible(u.diagonal()):
        return None
    return torch.linalg.solve_triangular(u, b, upper=True)


def _solve_hessenberg(left: torch.Tensor, right: torch.Tensor, upper: bool) -> torch.Tensor:
    # X R = L  <=>  R^T X^T = L^T. R^T is lower Hessenberg when R is upper
    # Hessenberg; reversing its rows and columns makes it upper Hessenberg.
    a = right.T
    b = left.T
    if upper:
        y = _solve_upper_hessenberg_system(a.flip(0, 1), b.flip(0))
        y = None if y is None else y.flip(0)
    else:
        y = _solve_upper_hessenberg_system(a, b)
    if y is None:
        logger.warning("Hessenberg elimination broke down, falling back to LU")
        return _solve_lu(left, right)
    return y.T


def _solve_cholesky(left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    # R is symmetric (Hermitian), so R^T = conj(R) is Hermitian too and
    # X R = L becomes conj(R) X^T = L^T.
    a = torch.conj_physical(right)
    factor, info = torch.linalg.cholesky_ex(a)
    if info.item() != 0:
        logger.warning(
            "Right operand is not positive definite, "
            "falling back to a symmetric indefinite factorization"
        )
        return _solve_symmetric_indefinite(left, right)
    # The pivots of R are the squares of the diagonal of its Cholesky factor.
    if _negligible(factor.diagonal().real.square()):
        raise RankDeficiencyError("right", "Right operand is singular to working precision")
    return torch.cholesky_solve(left.T, factor).T


def _solve_symmetric_indefinite(left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    a = torch.conj_physical(right)
    hermitian = a.is_complex()
    factors, pivots, info = torch.linalg.ldl_factor_ex(a, hermitian=hermitian)
    if info.item() != 0:
        raise SingularMatrixError(
            "right", "Symmetric indefinite factorization met a zero pivot"
        )
    # D has 2x2 blocks, so its diagonal does not show the pivots; the
    # eigenvalues of R do.
    if _negligible(torch.linalg.eigvalsh(a)):
        raise SingularMatrixError("right", "Right operand is singular to working precision")
    solution = torch.linalg.ldl_solve(factors, pivots, left.T, hermitian=hermitian)
    if not torch.isfinite(solution).all():
        raise SingularMatrixError("right", "Right operand is singular")
    return solution.T


def _solve_lu(left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    factors, pivots, info = torch.linalg.lu_factor_ex(right)
    if info.item() != 0:
        raise RankDeficiencyError("right", "Right operand is singular")
    if _negligible(factors.diagonal()):
        raise RankDeficiencyError("right", "Right operand is singular to working precision")
    return torch.linalg.lu_solve(factors, pivots, left, left=False)


def _solve_least_squares(left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    """Least-squares (more columns than rows) or minimum-norm solution.

    X R = L is solved as A Y = B with A = R^T and B = L^T.
    """
    tolerance = get_config().rank_tolerance
    a = right.T
    b = left.T
    rows, columns = a.shape
    tall = rows >= columns

    # QR of A when overdetermined, of A^H when underdetermined.
    q, r = torch.linalg.qr(a if tall else a.mH)
    pivots = r.diagonal().abs()
    if pivots.min() > tolerance * pivots.max():
        if tall:
            y = torch.linalg.solve_triangular(r, q.mH @ b, upper=True)
        else:
            z = torch.linalg.solve_triangular(r.mH, b, upper=False)
            y = q @ z
        return y.T

    singular_values = torch.linalg.svdvals(a)
    rank = int((singular_values > tolerance * singular_values[0]).sum())
    if rank < min(rows, columns):
        raise RankDeficiencyError(
            "right", f"Right operand has rank {rank} out of {min(rows, columns)}"
        )
    logger.warning("QR pivots of the right operand are small, solving with an SVD")
    u, s, vh = torch.linalg.svd(a, full_matrices=False)
    y = vh.mH @ ((u.mH @ b) / s.unsqueeze(1).to(b.dtype))
    return y.T


_SOLVERS = {
    DivisionStrategy.SCALAR: _solve_scalar,
    DivisionStrategy.DIAGONAL: _solve_diagonal,
    DivisionStrategy.UPPER_TRIANGULAR: lambda l, r: _solve_triangular(l, r, upper=True),
    DivisionStrategy.LOWER_TRIANGULAR: lambda l, r: _solve_triangular(l, r, upper=False),
    DivisionStrategy.UPPER_HESSENBERG: lambda l, r: _solve_hessenberg(l, r, upper=True),
    DivisionStrategy.LOWER_HESSENBERG: lambda l, r: _solve_hessenberg(l, r, upper=False),
    DivisionStrategy.CHOLESKY: _solve_cholesky,
    DivisionStrategy.SYMMETRIC_INDEFINITE: _solve_symmetric_indefinite,
    DivisionStrategy.GENERAL_LU: _solve_lu,
    DivisionStrategy.LEAST_SQUARES: _solve_least_squares,
}


def solve_with(strategy: DivisionStrategy, left: Storage, right: Storage) -> DenseStorage:
    """Divide with a given strategy, bypassing the decision table.

    The caller is responsible for `right` having the structure the strategy
    assumes.
    """
    field = promote(left.field, right.field)
    solution = _SOLVERS[strategy](dense_tensor(left, field), dense_tensor(right, field))
    return DenseStorage.from_tensor(solution)


def divide(left: Storage, right: Storage) -> DenseStorage:
    """Return X with X * right = left, as a dense storage."""
    check_not_none(left, "left")
    check_not_none(right, "right")

    if left.count == 1 and right.count != 1:
        # A scalar numerator divides every entry of the denominator.
        return combine_scalar(right, left.get(0), torch.div, reverse=True)

    if right.count != 1 and left.number_of_columns != right.number_of_columns:
        raise DimensionMismatchError(
            "right",
            "Left and right operands must have the same number of columns",
        )

    strategy = choose_strategy(classify(right))
    logger.debug(
        "Dividing %dx%d by %dx%d with strategy %s",
        left.number_of_rows,
        left.number_of_columns,
        right.number_of_rows,
        right.number_of_columns,
        strategy.name,
    )
    return solve_with(strategy, left, right)
