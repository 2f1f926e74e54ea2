import numpy as np
import pytest

from lyaplib import ConfigurationError
from lyaplib.numpy import (
    ForwardDiffJacobian,
    NumericalJacobian,
    discrete_rule,
    lyapunov_spectra,
    lyapunov_spectrum,
    resolve_jacobian,
    systems,
)
from lyaplib.numpy.rules import JacobianRule


def test_numerical_jacobian_matches_lorenz():
    lz = systems.lorenz()
    jac = NumericalJacobian()(lz.rule)
    assert isinstance(jac, JacobianRule)

    x = np.array([1.5, -2.0, 20.0])
    J = jac(0.0, x, *lz.args)
    assert J.shape == (3, 3)
    assert np.allclose(J, lz.jacobian(0.0, x, *lz.args), atol=1e-6)


def test_numerical_jacobian_spectrum_matches_analytic():
    hn = systems.henon()
    LE_ref = lyapunov_spectrum(hn.rule, hn.jacobian, hn.x0, 2_000, *hn.args)
    LE = lyapunov_spectrum(hn.rule, NumericalJacobian(), hn.x0, 2_000, *hn.args)
    assert np.allclose(LE, LE_ref, atol=1e-4)


def test_explicit_jacobian_is_wrapped_with_rule_layout():
    lz = systems.lorenz(inplace=True)
    jac = resolve_jacobian(lz.rule, lz.jacobian.fn)
    assert jac.inplace
    assert np.allclose(jac(0.0, lz.x0, *lz.args), systems.lorenz().jacobian(0.0, lz.x0, *lz.args))


class TestForwardDiff:
    @pytest.fixture(autouse=True)
    def _torch(self):
        pytest.importorskip("torch")

    def test_henon_jacobian_is_exact(self):
        hn = systems.henon()
        jac = ForwardDiffJacobian()(hn.rule)
        x = np.array([0.3, -0.7])
        assert np.allclose(jac(0.0, x, *hn.args), hn.jacobian(0.0, x, *hn.args), rtol=1e-14, atol=1e-14)

    def test_missing_jacobian_defaults_to_forward_mode(self):
        hn = systems.henon()
        LE_ref = lyapunov_spectrum(hn.rule, hn.jacobian, hn.x0, 2_000, *hn.args)
        LE = lyapunov_spectrum(hn.rule, None, hn.x0, 2_000, *hn.args)
        assert np.allclose(LE, LE_ref, rtol=1e-10, atol=1e-12)

    def test_lorenz_flow(self):
        lz = systems.lorenz()
        LE_ref = lyapunov_spectrum(lz.rule, lz.jacobian, lz.x0, 50, *lz.args, Ttr=1.0)
        LE = lyapunov_spectrum(lz.rule, None, lz.x0, 50, *lz.args, Ttr=1.0)
        assert np.allclose(LE, LE_ref, rtol=1e-8, atol=1e-8)

    def test_inplace_rule(self):
        lz = systems.lorenz(inplace=True)
        jac = ForwardDiffJacobian()(lz.rule)
        x = np.array([1.0, 2.0, 3.0])
        assert np.allclose(jac(0.0, x, *lz.args), systems.lorenz().jacobian(0.0, x, *lz.args))

    def test_rule_building_numpy_arrays_is_rejected(self):
        rule = discrete_rule(lambda t, x: np.array([1.0 - 1.4 * x[0] ** 2 + x[1], 0.3 * x[0]]))
        with pytest.raises(ConfigurationError):
            lyapunov_spectrum(rule, None, np.zeros(2), 10)

    def test_non_differentiable_point(self):
        rule = discrete_rule(lambda t, x: x ** 0.5)
        with pytest.raises(ConfigurationError, match="not differentiable"):
            lyapunov_spectrum(rule, None, [0.0], 10, Ttr=0)

    def test_parallel_runs_share_forward_mode(self):
        lz = systems.lorenz()
        starts = [lz.x0 + 0.01 * i for i in range(4)]
        ref = lyapunov_spectra(lz.rule, lz.jacobian, starts, 50, *lz.args, max_workers=4, dt=0.1, Ttr=0.5)
        spectra = lyapunov_spectra(lz.rule, None, starts, 50, *lz.args, max_workers=4, dt=0.1, Ttr=0.5)
        assert np.allclose(spectra, ref, rtol=1e-8, atol=1e-8)

    def test_single_precision_state_keeps_dtype(self):
        hn = systems.henon()
        x = np.array([0.3, -0.7], dtype=np.float32)
        J = ForwardDiffJacobian().evaluate(hn.rule, 0.0, x, *hn.args)
        assert J.dtype == np.float32
        assert np.allclose(J, hn.jacobian(0.0, x.astype(float), *hn.args), rtol=1e-6)

    def test_extended_precision_state_keeps_dtype(self):
        hn = systems.henon()
        x = np.array([0.3, -0.7], dtype=np.longdouble)
        J = ForwardDiffJacobian().evaluate(hn.rule, 0.0, x, *hn.args)
        assert J.dtype == np.longdouble
        assert np.allclose(J.astype(float), hn.jacobian(0.0, x.astype(float), *hn.args), rtol=1e-14)
