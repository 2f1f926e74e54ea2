import numpy as np

from lyaplib.numpy import (
    TangentIntegrator,
    discrete_rule,
    lyapunov_benettin,
    lyapunov_spectrum,
    max_lyapunov_exponent,
    systems,
)
from lyaplib.numpy.rules import JacobianRule


def test_henon_spectrum():
    hn = systems.henon()
    LE = lyapunov_spectrum(hn.rule, hn.jacobian, hn.x0, 100_000, *hn.args)
    assert 0.41 < LE[0] < 0.43
    assert -1.63 < LE[1] < -1.61


def test_henon_sum_equals_log_jacobian_determinant():
    # |det J| = b at every point of the Hénon map
    hn = systems.henon(b=0.3)
    LE = lyapunov_spectrum(hn.rule, hn.jacobian, hn.x0, 5_000, *hn.args)
    assert np.isclose(LE.sum(), np.log(0.3), atol=1e-9)


def test_towel_map_is_hyperchaotic():
    tw = systems.towel()
    LE = lyapunov_spectrum(tw.rule, tw.jacobian, tw.x0, 50_000, *tw.args)
    assert LE[0] > 0.3
    assert LE[1] > 0.2
    assert LE[2] < 0.0


def test_logistic_shortcut_matches_qr_route():
    lg = systems.logistic(0.4, r=3.7)
    lam_short = max_lyapunov_exponent(lg.rule, lg.jacobian, lg.x0, 50_000, *lg.args)
    LE = lyapunov_spectrum(lg.rule, lg.jacobian, lg.x0, 50_000, *lg.args, k=1)
    assert lam_short > 0.0
    assert np.isclose(lam_short, LE[0], rtol=1e-10, atol=1e-12)


def test_logistic_fully_chaotic_exponent_is_log_two():
    lg = systems.logistic(0.1, r=4.0)
    lam = max_lyapunov_exponent(lg.rule, lg.jacobian, lg.x0, 200_000, *lg.args)
    assert np.isclose(lam, np.log(2), rtol=1e-2)


def test_standard_map_exponents_come_in_opposite_pairs():
    sm = systems.standard_map(k=1.2)
    LE = lyapunov_spectrum(sm.rule, sm.jacobian, sm.x0, 5_000, *sm.args)
    # area preserving: det J = 1
    assert np.isclose(LE[0], -LE[1], atol=1e-9)


def test_tangent_map_uses_pre_step_jacobian():
    rule = discrete_rule(lambda t, x: x ** 2)
    jac = JacobianRule(lambda t, x: np.array([[2 * x[0]]]))
    integrator = TangentIntegrator(rule, jac, [3.0])

    x, Y = integrator.advance()
    assert np.allclose(x, [9.0])
    assert np.allclose(Y, [[6.0]])
    assert integrator.t == 1


def test_transient_is_discarded():
    hn = systems.henon()
    integrator = TangentIntegrator(hn.rule, hn.jacobian, hn.x0, *hn.args)
    integrator.transient(10)
    assert integrator.t == 10
    assert integrator.cycles == 0
    assert np.allclose(integrator.basis, np.eye(2))
    assert np.all(integrator.exponents() == 0.0)


def test_benettin_henon():
    hn = systems.henon()
    lam = lyapunov_benettin(hn.rule, hn.x0, 100_000, *hn.args)
    assert 0.41 < lam < 0.43


def test_benettin_history():
    hn = systems.henon()
    lam, history, times = lyapunov_benettin(hn.rule, hn.x0, 20_000, *hn.args, return_history=True)
    assert history.shape == times.shape
    assert np.isclose(history[-1], lam)
    assert np.all(np.diff(times) > 0)


def test_inplace_map_matches_out_of_place():
    a, b = 1.4, 0.3

    def henon_inplace(du, t, x, a, b):
        du[0] = 1.0 - a * x[0] ** 2 + x[1]
        du[1] = b * x[0]

    def henon_jacobian_inplace(J, t, x, a, b):
        J[0, 0], J[0, 1] = -2 * a * x[0], 1.0
        J[1, 0], J[1, 1] = b, 0.0

    hn = systems.henon(a=a, b=b)
    LE_ref = lyapunov_spectrum(hn.rule, hn.jacobian, hn.x0, 2_000, *hn.args)
    LE = lyapunov_spectrum(
        discrete_rule(henon_inplace, inplace=True),
        JacobianRule(henon_jacobian_inplace, inplace=True),
        hn.x0,
        2_000,
        a,
        b,
    )
    assert np.allclose(LE, LE_ref, rtol=1e-12, atol=1e-12)
