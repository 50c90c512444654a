"""
Simple example of structure-aware matrix division.

This script builds right operands of several shapes and structures, divides
the same left operand by each of them, and prints:
1. The strategy the solver picked for each right operand
2. The residual |X * right - left| of the result
"""

import argparse
import time

import torch

from matrices import Matrix
from matrix_config import set_config, setup_logging_from_config
from matrix_division import choose_strategy


def random_spd(n: int) -> torch.Tensor:
    a = torch.randn(n, n, dtype=torch.float64)
    return a @ a.T + n * torch.eye(n, dtype=torch.float64)


def build_right_operands(n: int) -> dict[str, Matrix]:
    """One right operand per structure the solver distinguishes."""
    general = torch.randn(n, n, dtype=torch.float64)
    operands = {
        "diagonal": Matrix.diagonal(torch.rand(n, dtype=torch.float64) + 1),
        "upper triangular": Matrix.dense_from_rows(general.triu() + n * torch.eye(n, dtype=torch.float64)),
        "lower triangular": Matrix.dense_from_rows(general.tril() + n * torch.eye(n, dtype=torch.float64)),
        "upper hessenberg": Matrix.dense_from_rows(general.triu(-1)),
        "symmetric positive definite": Matrix.dense_from_rows(random_spd(n)),
        "general": Matrix.dense_from_rows(general),
        "rectangular": Matrix.dense_from_rows(torch.randn(n, n + 3, dtype=torch.float64)),
    }
    hermitian = torch.randn(n, n, dtype=torch.complex128)
    operands["hermitian"] = Matrix.dense_from_rows(
        hermitian @ hermitian.mH + n * torch.eye(n, dtype=torch.complex128)
    )
    operands["sparse tridiagonal"] = Matrix.dense_from_rows(
        torch.diag(torch.full((n,), 4.0, dtype=torch.float64))
        + torch.diag(torch.ones(n - 1, dtype=torch.float64), 1)
        + torch.diag(torch.ones(n - 1, dtype=torch.float64), -1)
    ).to_sparse()
    return operands


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--size", type=int, default=6, help="order of the right operands")
    parser.add_argument("--log-level", default="WARNING")
    parser.add_argument("--seed", type=int, default=0)
    args = parser.parse_args()

    set_config(log_level=args.log_level)
    setup_logging_from_config()
    torch.manual_seed(args.seed)

    print("\n" + "=" * 60)
    print(f"Dividing 3-row left operands by right operands with {args.size} rows")
    print("=" * 60)

    for name, right in build_right_operands(args.size).items():
        left = Matrix.dense_from_rows(torch.randn(3, right.number_of_columns, dtype=torch.float64))
        start_time = time.time()
        x = left / right
        elapsed = time.time() - start_time
        residual = torch.linalg.norm((x * right - left).to_tensor()).item()
        strategy = choose_strategy(right.pattern)
        print(f"{name:<30} {strategy.name:<18} residual={residual:.2e}  ({elapsed * 1e3:.2f} ms)")

    print("\nA small named matrix:\n")
    m = Matrix.dense(2, 2, [1.0, 2.0, 3.0, 4.0])
    m.set_row_name(0, "first")
    m.set_column_name(1, "second")
    print(m)


if __name__ == "__main__":
    main()
