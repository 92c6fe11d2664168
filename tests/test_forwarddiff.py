"""
Tests for forward-mode derivative synthesis
"""

import math

import casadi as ca
import numpy as np
import pytest
import scipy.sparse
from scipy.optimize import approx_fprime

from optbridge import (
    OptimizationFunction,
    AutoForwardDiff,
    InstantiatedFunction,
    default_chunk_size,
    instantiate_function,
)


A = np.array([
    [4.0, 1.0, 0.0],
    [1.0, 3.0, 0.5],
    [0.0, 0.5, 2.0],
])
B = np.array([1.0, -2.0, 0.5])


def quadratic(x, p):
    """0.5 x'Ax + b'x with p = (A, b)."""
    a, b = p
    n = len(b)
    quad = sum(float(a[i, j]) * x[i] * x[j] for i in range(n) for j in range(n))
    return 0.5 * quad + sum(float(b[i]) * x[i] for i in range(n))


def quadratic_matrix(x, p):
    """0.5 x'Ax + b'x written with CasADi matrix products."""
    a, b = p
    return 0.5 * ca.dot(x, ca.mtimes(ca.DM(a), x)) + ca.dot(ca.DM(b), x)


def quadratic_transpose(x, p):
    a, b = p
    return 0.5 * (x.T @ ca.DM(a) @ x) + x.T @ ca.DM(b)


def rosenbrock(x, p):
    return (p[0] - x[0])**2 + p[1] * (x[1] - x[0]**2)**2


def rosenbrock_hessian(x, p):
    return np.array([
        [2.0 - 4.0 * p[1] * (x[1] - 3.0 * x[0]**2), -4.0 * p[1] * x[0]],
        [-4.0 * p[1] * x[0], 2.0 * p[1]],
    ])


def chain(x, p):
    """Sum of neighbour couplings: tridiagonal Hessian."""
    n = x.shape[0]
    return sum((x[i + 1] - x[i]**2)**2 for i in range(n - 1)) + sum(x[i]**2 for i in range(n))


def sphere(x, p):
    return sum(x[i]**2 for i in range(x.shape[0]))


def constraints(x, p):
    return [x[0]**2 + x[1]**2, x[0] * x[1] * x[2] + p]


class TestObjectiveDerivatives:
    """Synthesized gradient, Hessian and Hessian-vector product."""

    def test_quadratic_gradient_closed_form(self):
        """Gradient of 0.5 x'Ax + b'x is Ax + b."""
        x0 = np.array([0.3, -1.2, 2.0])
        inst = instantiate_function(OptimizationFunction(quadratic), x0, AutoForwardDiff(), (A, B))
        for x in [x0, np.zeros(3), np.array([1.0, 2.0, -3.0])]:
            np.testing.assert_allclose(inst.grad(x), A @ x + B, rtol=1e-12, atol=1e-12)

    def test_quadratic_hessian_closed_form(self):
        """Hessian of a quadratic form is A everywhere."""
        x0 = np.array([0.3, -1.2, 2.0])
        inst = instantiate_function(OptimizationFunction(quadratic), x0, AutoForwardDiff(), (A, B))
        np.testing.assert_allclose(inst.hess(x0), A, atol=1e-12)
        np.testing.assert_allclose(inst.hess(np.ones(3)), A, atol=1e-12)

    @pytest.mark.parametrize("objective", [quadratic_matrix, quadratic_transpose])
    def test_matrix_product_objective(self, objective):
        """Objectives may use matrix products on the symbolic column x."""
        x0 = np.array([0.3, -1.2, 2.0])
        inst = instantiate_function(OptimizationFunction(objective), x0, AutoForwardDiff(), (A, B))
        np.testing.assert_allclose(inst.grad(x0), A @ x0 + B, rtol=1e-12, atol=1e-12)
        np.testing.assert_allclose(inst.hess(x0), A, atol=1e-12)

    def test_gradient_matches_finite_differences(self):
        """Forward gradient of Rosenbrock agrees with finite differences."""
        p = (1.0, 100.0)
        x = np.array([-1.2, 1.0])
        inst = instantiate_function(OptimizationFunction(rosenbrock), x, AutoForwardDiff(), p)

        fd = approx_fprime(x, lambda z: rosenbrock(z, p), 1e-7)
        np.testing.assert_allclose(inst.grad(x), fd, rtol=1e-4)

    def test_hessian_matches_finite_differences(self):
        """Forward-over-forward Hessian agrees with differenced gradients."""
        p = (1.0, 100.0)
        x = np.array([0.5, -0.3])
        inst = instantiate_function(OptimizationFunction(rosenbrock), x, AutoForwardDiff(), p)

        H = inst.hess(x)
        np.testing.assert_allclose(H, rosenbrock_hessian(x, p), rtol=1e-10)

        fd = approx_fprime(x, inst.grad, 1e-7)
        np.testing.assert_allclose(H, fd, rtol=1e-4, atol=1e-4)

    def test_hv_equals_hessian_times_vector(self):
        """Hessian-vector fallback equals hess(x) @ v."""
        p = (1.0, 100.0)
        x = np.array([0.7, 1.1])
        v = np.array([2.0, -0.5])
        inst = instantiate_function(OptimizationFunction(rosenbrock), x, AutoForwardDiff(), p)

        np.testing.assert_allclose(inst.hv(x, v), inst.hess(x) @ v, rtol=1e-12)
        np.testing.assert_allclose(inst.hv(x, v), rosenbrock_hessian(x, p) @ v, rtol=1e-10)

    def test_chunk_sizes_agree(self):
        """Gradient and Hessian do not depend on the chunk size."""
        x = np.linspace(-1.0, 1.0, 7)
        ref = instantiate_function(OptimizationFunction(chain), x, AutoForwardDiff())
        for chunksize in [1, 2, 3, 7, 20]:
            inst = instantiate_function(OptimizationFunction(chain), x, AutoForwardDiff(chunksize))
            np.testing.assert_allclose(inst.grad(x), ref.grad(x), rtol=1e-12)
            np.testing.assert_allclose(inst.hess(x), ref.hess(x), rtol=1e-12)

    def test_first_element_of_sequence_objective(self):
        """Only the first element of a sequence-valued objective is used."""
        def f(x, p):
            return [x[0]**2 + 3.0 * x[1], 99.0]

        inst = instantiate_function(OptimizationFunction(f), np.zeros(2), AutoForwardDiff())
        np.testing.assert_allclose(inst.grad(np.array([2.0, 0.0])), [4.0, 3.0])

    def test_objective_kept(self):
        """The objective itself is passed through."""
        inst = instantiate_function(OptimizationFunction(rosenbrock), np.zeros(2), AutoForwardDiff(), (1.0, 100.0))
        assert inst.f is rosenbrock
        assert isinstance(inst, InstantiatedFunction)
        assert inst.cons is None and inst.cons_j is None and inst.cons_h is None


class TestSparsityPrototypes:
    """Caller-supplied Hessian sparsity patterns."""

    def test_dense_prototype(self):
        x = np.linspace(-1.0, 1.0, 6)
        pattern = np.eye(6) + np.eye(6, k=1) + np.eye(6, k=-1)
        detected = instantiate_function(OptimizationFunction(chain), x, AutoForwardDiff())
        supplied = instantiate_function(
            OptimizationFunction(chain, hess_prototype=pattern), x, AutoForwardDiff()
        )
        np.testing.assert_allclose(supplied.hess(x), detected.hess(x), rtol=1e-12)

    def test_scipy_sparse_prototype(self):
        x = np.linspace(-1.0, 1.0, 6)
        pattern = scipy.sparse.diags([1.0, 1.0, 1.0], [-1, 0, 1], shape=(6, 6), format='csr')
        inst = instantiate_function(
            OptimizationFunction(chain, hess_prototype=pattern), x, AutoForwardDiff()
        )
        fd = approx_fprime(x, inst.grad, 1e-7)
        np.testing.assert_allclose(inst.hess(x), fd, rtol=1e-4, atol=1e-4)

    def test_prototype_kept_on_result(self):
        pattern = np.ones((2, 2))
        f = OptimizationFunction(rosenbrock, hess_prototype=pattern)
        inst = instantiate_function(f, np.zeros(2), AutoForwardDiff(), (1.0, 100.0))
        assert inst.hess_prototype is pattern

    def test_wrong_prototype_shape(self):
        f = OptimizationFunction(rosenbrock, hess_prototype=np.ones((3, 3)))
        with pytest.raises(ValueError):
            instantiate_function(f, np.zeros(2), AutoForwardDiff(), (1.0, 100.0))


class TestSuppliedCallbacks:
    """Callbacks present on the function are wrapped, not re-derived."""

    def test_supplied_gradient_unchanged(self):
        calls = []

        def grad(x, p):
            calls.append(p)
            return np.array([42.0, -1.0])

        f = OptimizationFunction(rosenbrock, grad=grad)
        inst = instantiate_function(f, np.zeros(2), AutoForwardDiff(), (1.0, 100.0))

        x = np.array([0.1, 0.2])
        np.testing.assert_array_equal(inst.grad(x), grad(x, (1.0, 100.0)))
        assert calls[0] == (1.0, 100.0)

    def test_supplied_gradient_with_synthesized_hessian(self):
        """The Hessian is still derived from f when only grad is given."""
        def grad(x, p):
            return np.zeros(2)

        f = OptimizationFunction(rosenbrock, grad=grad)
        inst = instantiate_function(f, np.zeros(2), AutoForwardDiff(), (1.0, 100.0))
        x = np.array([-0.7, 0.4])
        np.testing.assert_allclose(inst.hess(x), rosenbrock_hessian(x, (1.0, 100.0)), rtol=1e-10)
        np.testing.assert_allclose(inst.hv(x, np.ones(2)), rosenbrock_hessian(x, (1.0, 100.0)) @ np.ones(2), rtol=1e-10)

    def test_untraceable_objective_with_all_derivatives(self):
        """No tracing happens when gradient and Hessian are supplied."""
        def f(x, p):
            return math.exp(x[0]) + x[1]**2

        def grad(x, p):
            return np.array([math.exp(x[0]), 2.0 * x[1]])

        def hess(x, p):
            return np.array([[math.exp(x[0]), 0.0], [0.0, 2.0]])

        inst = instantiate_function(
            OptimizationFunction(f, grad=grad, hess=hess), np.zeros(2), AutoForwardDiff()
        )
        x = np.array([0.5, 1.5])
        np.testing.assert_array_equal(inst.grad(x), grad(x, None))
        np.testing.assert_array_equal(inst.hess(x), hess(x, None))
        np.testing.assert_allclose(inst.hv(x, np.array([1.0, 1.0])), hess(x, None) @ np.ones(2))

    def test_supplied_hv_receives_parameters(self):
        def hv(x, v, p):
            return p * np.asarray(v)

        f = OptimizationFunction(sphere, hv=hv)
        inst = instantiate_function(f, np.zeros(2), AutoForwardDiff(), 3.0)
        np.testing.assert_array_equal(inst.hv(np.zeros(2), [1.0, 2.0]), [3.0, 6.0])

    def test_supplied_constraint_callbacks(self):
        def cons_j(x, p):
            return np.array([[1.0, 2.0, 3.0]])

        def cons_h(x, p):
            return [np.zeros((3, 3))]

        f = OptimizationFunction(
            quadratic,
            cons=lambda x, p: [x[0] + 2.0 * x[1] + 3.0 * x[2]],
            cons_j=cons_j,
            cons_h=cons_h,
        )
        inst = instantiate_function(f, np.zeros(3), AutoForwardDiff(), (A, B), num_cons=1)
        x = np.array([1.0, 1.0, 1.0])
        np.testing.assert_array_equal(inst.cons(x), [6.0])
        np.testing.assert_array_equal(inst.cons_j(x), cons_j(x, None))
        np.testing.assert_array_equal(inst.cons_h(x)[0], np.zeros((3, 3)))
        assert inst.num_cons == 1


class TestConstraintDerivatives:
    """Synthesized constraint Jacobian and Hessians."""

    def test_constraint_values(self):
        f = OptimizationFunction(sphere, cons=constraints)
        inst = instantiate_function(f, np.zeros(3), AutoForwardDiff(), 0.5)
        np.testing.assert_allclose(inst.cons(np.array([1.0, 2.0, 3.0])), [5.0, 6.5])

    def test_jacobian_closed_form(self):
        f = OptimizationFunction(sphere, cons=constraints)
        inst = instantiate_function(f, np.zeros(3), AutoForwardDiff(), 0.5, num_cons=2)
        x = np.array([1.0, 2.0, 3.0])
        expected = np.array([
            [2.0 * x[0], 2.0 * x[1], 0.0],
            [x[1] * x[2], x[0] * x[2], x[0] * x[1]],
        ])
        np.testing.assert_allclose(inst.cons_j(x), expected, rtol=1e-12)

    def test_jacobian_with_colorvec(self):
        f = OptimizationFunction(sphere, cons=constraints, cons_jac_colorvec=[0, 1, 2])
        inst = instantiate_function(f, np.zeros(3), AutoForwardDiff(), 0.5)
        x = np.array([-1.0, 0.5, 2.0])
        fd = approx_fprime(x, inst.cons, 1e-7)
        np.testing.assert_allclose(inst.cons_j(x), fd, rtol=1e-5, atol=1e-6)

    def test_jacobian_with_prototype(self):
        pattern = np.array([[1, 1, 0], [1, 1, 1]])
        f = OptimizationFunction(sphere, cons=constraints, cons_jac_prototype=pattern)
        inst = instantiate_function(f, np.zeros(3), AutoForwardDiff(), 0.5)
        x = np.array([0.2, -0.4, 1.5])
        fd = approx_fprime(x, inst.cons, 1e-7)
        np.testing.assert_allclose(inst.cons_j(x), fd, rtol=1e-5, atol=1e-6)

    def test_constraint_hessians_closed_form(self):
        f = OptimizationFunction(sphere, cons=constraints)
        inst = instantiate_function(f, np.zeros(3), AutoForwardDiff(), 0.5)
        x = np.array([1.0, 2.0, 3.0])
        H1, H2 = inst.cons_h(x)
        np.testing.assert_allclose(H1, np.diag([2.0, 2.0, 0.0]), atol=1e-12)
        np.testing.assert_allclose(H2, np.array([
            [0.0, x[2], x[1]],
            [x[2], 0.0, x[0]],
            [x[1], x[0], 0.0],
        ]), atol=1e-12)

    def test_constraint_hessian_prototypes(self):
        prototypes = [np.diag([1.0, 1.0, 0.0]), np.ones((3, 3)) - np.eye(3)]
        f = OptimizationFunction(sphere, cons=constraints, cons_hess_prototype=prototypes)
        inst = instantiate_function(f, np.zeros(3), AutoForwardDiff(), 0.5)
        x = np.array([-0.5, 1.0, 2.5])
        fd = approx_fprime(x, lambda z: inst.cons_j(z)[1], 1e-7)
        np.testing.assert_allclose(inst.cons_h(x)[1], fd, rtol=1e-5, atol=1e-6)

    def test_num_cons_mismatch(self):
        f = OptimizationFunction(sphere, cons=constraints)
        with pytest.raises(ValueError):
            instantiate_function(f, np.zeros(3), AutoForwardDiff(), 0.5, num_cons=3)

    def test_colorvec_length_checked(self):
        f = OptimizationFunction(sphere, cons=constraints, cons_jac_colorvec=[0, 1])
        with pytest.raises(ValueError):
            instantiate_function(f, np.zeros(3), AutoForwardDiff(), 0.5)


class TestADType:
    """AD choice handling."""

    def test_default_chunk_size(self):
        assert default_chunk_size(1) == 1
        assert default_chunk_size(5) == 5
        assert default_chunk_size(11) == 11
        assert default_chunk_size(12) == 12
        assert default_chunk_size(100) == 12

    def test_invalid_chunksize(self):
        with pytest.raises(ValueError):
            AutoForwardDiff(0)

    def test_adtype_taken_from_function(self):
        f = OptimizationFunction(rosenbrock, adtype=AutoForwardDiff(1))
        inst = instantiate_function(f, np.zeros(2), p=(1.0, 100.0))
        assert inst.adtype == AutoForwardDiff(1)

    def test_unsupported_adtype(self):
        with pytest.raises(TypeError):
            instantiate_function(OptimizationFunction(rosenbrock), np.zeros(2), None, (1.0, 100.0))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
