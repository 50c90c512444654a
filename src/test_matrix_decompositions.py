import logging

import pytest
import torch

from matrices import Matrix
from matrix_decompositions import (
    eigenvalues,
    singular_value_decomposition,
    singular_values,
    spectral_decomposition,
)
from matrix_errors import NullArgumentError, OutOfRangeError


@pytest.fixture
def symmetric():
    return Matrix.dense_from_rows([[4.0, 1.0, 2.0], [1.0, 3.0, 0.5], [2.0, 0.5, 5.0]])


@pytest.fixture
def hermitian():
    return Matrix.dense_from_rows(
        torch.tensor([[2, 1 - 1j, 0], [1 + 1j, 3, 2j], [0, -2j, 1]], dtype=torch.complex128)
    )


class TestSpectralDecomposition:
    def test_reconstructs_symmetric(self, symmetric):
        values, vectors = spectral_decomposition(symmetric)
        assert values.shape == (3, 1)
        assert vectors.shape == (3, 3)
        v = vectors.to_tensor()
        w = values.to_tensor().reshape(-1)
        torch.testing.assert_close(v @ torch.diag(w) @ v.T, symmetric.to_tensor())
        torch.testing.assert_close(v.T @ v, torch.eye(3, dtype=torch.float64))

    def test_eigenvalues_ascend(self, symmetric):
        values = spectral_decomposition(symmetric)[0].to_tensor().reshape(-1)
        assert values.tolist() == sorted(values.tolist())

    def test_hermitian_has_real_eigenvalues(self, hermitian):
        values, vectors = spectral_decomposition(hermitian)
        assert not values.is_complex
        assert vectors.is_complex
        product = vectors * Matrix.diagonal(values) * vectors.H
        torch.testing.assert_close(product.to_tensor(), hermitian.to_tensor())

    def test_eigenvalues_match(self, symmetric):
        values, _ = spectral_decomposition(symmetric)
        torch.testing.assert_close(eigenvalues(symmetric).to_tensor(), values.to_tensor())

    def test_sparse_and_read_only_operands(self, symmetric):
        expected = eigenvalues(symmetric).to_tensor()
        torch.testing.assert_close(eigenvalues(symmetric.to_sparse()).to_tensor(), expected)
        torch.testing.assert_close(eigenvalues(symmetric.as_read_only()).to_tensor(), expected)

    def test_rejects_non_symmetric(self):
        with pytest.raises(OutOfRangeError, match="matrix"):
            spectral_decomposition(Matrix.dense_from_rows([[1.0, 2.0], [3.0, 4.0]]))
        with pytest.raises(OutOfRangeError, match="square"):
            eigenvalues(Matrix.dense(2, 3))

    def test_rejects_none(self):
        with pytest.raises(NullArgumentError):
            spectral_decomposition(None)

    def test_logs(self, caplog, symmetric):
        caplog.set_level(logging.DEBUG, logger="matrix_decompositions")
        spectral_decomposition(symmetric)
        assert "Spectral decomposition of a 3x3 matrix" in caplog.text


class TestSingularValueDecomposition:
    def test_reconstructs_rectangular(self):
        b = Matrix.dense_from_rows([[3.0, 1.0, 1.0], [-1.0, 3.0, 1.0]])
        u, s, vh = singular_value_decomposition(b)
        assert (u.shape, s.shape, vh.shape) == ((2, 2), (2, 1), (2, 3))
        torch.testing.assert_close((u * Matrix.diagonal(s) * vh).to_tensor(), b.to_tensor())

    def test_singular_values_descend(self):
        b = Matrix.dense_from_rows([[3.0, 1.0, 1.0], [-1.0, 3.0, 1.0]])
        values = singular_values(b).to_tensor().reshape(-1)
        torch.testing.assert_close(
            values, torch.tensor([12.0, 10.0], dtype=torch.float64).sqrt()
        )

    def test_complex(self, hermitian):
        u, s, vh = singular_value_decomposition(hermitian)
        assert not s.is_complex
        reconstructed = u.to_tensor() @ torch.diag(s.to_tensor().reshape(-1)).to(torch.complex128)
        torch.testing.assert_close(reconstructed @ vh.to_tensor(), hermitian.to_tensor())

    def test_rejects_non_operand(self):
        with pytest.raises(OutOfRangeError, match="matrix"):
            singular_values("not a matrix")
