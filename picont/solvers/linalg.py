"""
Linear solvers for the augmented (bordered) Jacobian.

The continuation solves square systems whose first ``N - 1`` rows are the Jacobian of the equations and whose last row is a border row (a unit vector or the tangent). A linear solver offers a single capability: :py:meth:`factor` a matrix into a :py:class:`Factorization`, which can then solve one or several right-hand sides and knows the sign of the determinant.

* :py:class:`DenseSolver` uses an LU decomposition with partial pivoting.
* :py:class:`BandedSolver` exploits that the first ``N - 1`` columns of the Jacobian rows are banded, while the last column and the border row are full.

Numerically singular matrices raise :py:class:`~picont.errors.SingularJacobian`. An ill-conditioned but nonsingular matrix is factored normally.
"""

import warnings
import numpy as np
from scipy.linalg import lu_factor, lu_solve, LinAlgWarning
from scipy.linalg.lapack import get_lapack_funcs

from picont.errors import SingularJacobian


def _permutation_sign(piv: np.ndarray) -> int:
    """Sign of the row permutation encoded in LAPACK pivot indices (0-based)."""
    swaps = np.count_nonzero(piv != np.arange(piv.size))
    return -1 if swaps % 2 else 1


def _singularity_threshold(matrix: np.ndarray) -> float:
    return matrix.shape[0] * np.finfo(float).eps * np.max(np.abs(matrix), initial=0.0)


class Factorization:
    """Base class for factored matrices. Subclasses implement :py:meth:`_solve`."""

    def __init__(self, n: int, determinant_sign: int):
        self.n = n
        self.determinant_sign = determinant_sign

    def solve(self, rhs: np.ndarray) -> np.ndarray:
        """Solve for a right-hand side ``rhs`` of shape ``(n,)`` or ``(n, k)``."""
        rhs = np.asarray(rhs, dtype=float)
        if rhs.shape[0] != self.n:
            raise ValueError(
                f"Right-hand side has {rhs.shape[0]} rows, expected {self.n}"
            )
        return self._solve(rhs)

    def _solve(self, rhs):
        raise NotImplementedError


class DenseFactorization(Factorization):
    def __init__(self, lu, piv):
        sign = _permutation_sign(piv) * int(np.prod(np.sign(np.diag(lu))))
        super().__init__(lu.shape[0], sign)
        self.lu = lu
        self.piv = piv

    def _solve(self, rhs):
        return lu_solve((self.lu, self.piv), rhs, check_finite=False)


class DenseSolver:
    """Factors the full augmented matrix by an LU decomposition with partial pivoting (``scipy.linalg.lu_factor``)."""

    name = "dense"

    def factor(self, matrix: np.ndarray) -> DenseFactorization:
        matrix = np.asarray(matrix, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ValueError(f"Expected a square matrix, got shape {matrix.shape}")

        with warnings.catch_warnings():
            # exactly singular matrices are detected below
            warnings.simplefilter("ignore", LinAlgWarning)
            lu, piv = lu_factor(matrix, check_finite=False)

        if np.min(np.abs(np.diag(lu))) <= _singularity_threshold(matrix):
            raise SingularJacobian(
                f"Augmented Jacobian of size {matrix.shape[0]} is numerically singular"
            )
        return DenseFactorization(lu, piv)


class BorderedBandFactorization(Factorization):
    """Block elimination of::

        [ B    c ]
        [ d^T  e ]

    where ``B`` is banded and factored by LAPACK ``gbtrf``. The Schur complement ``e - d^T B^{-1} c`` is a scalar.
    """

    def __init__(self, ab, ipiv, lower, upper, gbtrs, c, d, e, sign_B):
        self.ab = ab
        self.ipiv = ipiv
        self.lower = lower
        self.upper = upper
        self._gbtrs = gbtrs
        self.d = d
        self.w = self._solve_band(c)
        self.schur = e - d @ self.w
        super().__init__(c.size + 1, sign_B * int(np.sign(self.schur)))

    def _solve_band(self, rhs):
        rhs_2d = rhs.reshape(rhs.shape[0], -1)
        x, info = self._gbtrs(self.ab, self.lower, self.upper, rhs_2d, self.ipiv)
        if info != 0:
            raise ValueError(f"LAPACK gbtrs failed with info={info}")
        return x.reshape(rhs.shape)

    def _solve(self, rhs):
        r, rho = rhs[:-1], rhs[-1]
        v = self._solve_band(r)
        eta = (rho - self.d @ v) / self.schur
        if rhs.ndim == 1:
            return np.append(v - self.w * eta, eta)
        return np.vstack((v - np.outer(self.w, eta), eta[np.newaxis, :]))


class BandedSolver:
    """Factors the augmented matrix exploiting a banded Jacobian.

    The first ``N - 1`` columns of the Jacobian rows must have at most ``lower`` sub- and ``upper`` superdiagonals; the last column (the column of the last unknown) and the border row may be full. Stack the unknowns such that the unknown coupling to all equations comes last.

    If the banded block alone is singular (which happens e.g. at limit points with respect to the last unknown), the full matrix is factored densely instead.
    """

    name = "banded"

    def __init__(self, lower: int, upper: int):
        if lower < 0 or upper < 0:
            raise ValueError("Bandwidths must be non-negative")
        self.lower = int(lower)
        self.upper = int(upper)
        self._dense = DenseSolver()

    def to_band_storage(self, block: np.ndarray) -> np.ndarray:
        """Copy a square banded matrix into the LAPACK ``gbtrf`` storage with ``lower`` extra rows of workspace."""
        n = block.shape[0]
        kl, ku = self.lower, self.upper
        i, j = np.indices(block.shape)
        outside = (j - i > ku) | (i - j > kl)
        if np.any(block[outside] != 0):
            raise ValueError(
                f"Jacobian has entries outside the band (lower={kl}, upper={ku})"
            )
        ab = np.zeros((2 * kl + ku + 1, n))
        inside = ~outside
        ab[kl + ku + i[inside] - j[inside], j[inside]] = block[inside]
        return ab

    def factor(self, matrix: np.ndarray) -> Factorization:
        matrix = np.asarray(matrix, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ValueError(f"Expected a square matrix, got shape {matrix.shape}")
        n = matrix.shape[0]
        if n < 2:
            return self._dense.factor(matrix)

        ab = self.to_band_storage(matrix[:-1, :-1])
        gbtrf, gbtrs = get_lapack_funcs(("gbtrf", "gbtrs"), (ab,))
        lu, ipiv, info = gbtrf(ab, self.lower, self.upper)
        if info < 0:
            raise ValueError(f"LAPACK gbtrf: illegal argument {-info}")

        diag_U = lu[self.lower + self.upper, :]
        threshold = _singularity_threshold(matrix)
        if info > 0 or np.min(np.abs(diag_U)) <= threshold:
            return self._dense.factor(matrix)

        sign_B = _permutation_sign(ipiv) * int(np.prod(np.sign(diag_U)))
        factorization = BorderedBandFactorization(
            lu,
            ipiv,
            self.lower,
            self.upper,
            gbtrs,
            c=matrix[:-1, -1],
            d=matrix[-1, :-1],
            e=matrix[-1, -1],
            sign_B=sign_B,
        )
        scale = abs(matrix[-1, -1]) + np.abs(factorization.d) @ np.abs(
            factorization.w
        )
        if abs(factorization.schur) <= n * np.finfo(float).eps * max(scale, threshold):
            raise SingularJacobian(
                f"Augmented Jacobian of size {n} is numerically singular"
            )
        return factorization
