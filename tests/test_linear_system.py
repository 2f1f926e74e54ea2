import numpy as np

from lyaplib.numpy import lyapunov_spectrum, max_lyapunov_exponent


def _make_linear_system(eigs):
    A = np.diag(np.array(eigs, dtype=float))

    def f(t, x, *args):  # noqa: ARG001
        return A @ x

    def Df(t, x, *args):  # noqa: ARG001
        return A

    return A, f, Df


def test_spectrum_linear_system_householder():
    eigs = [0.3, -0.2, 0.0]
    A, f, Df = _make_linear_system(eigs)
    x0 = np.zeros(len(eigs))  # fixed point at the origin

    LE = lyapunov_spectrum(f, Df, x0, 500, dt=0.1, Ttr=0.0, stepper="rk4")
    expected = np.sort(np.array(eigs))[::-1]
    assert np.allclose(LE, expected, atol=1e-8)


def test_spectrum_linear_system_gs_qr():
    eigs = [0.25, -0.1]
    A, f, Df = _make_linear_system(eigs)
    x0 = np.zeros(len(eigs))

    LE = lyapunov_spectrum(f, Df, x0, 400, dt=0.1, Ttr=0.0, qr_method="gs")
    expected = np.sort(np.array(eigs))[::-1]
    assert np.allclose(LE, expected, atol=1e-8)


def test_unsorted_spectrum_keeps_qr_order():
    eigs = [0.3, -0.2, 0.0]
    A, f, Df = _make_linear_system(eigs)

    LE = lyapunov_spectrum(f, Df, np.zeros(3), 100, dt=0.1, Ttr=0.0, sort=False)
    assert np.allclose(LE, eigs, atol=1e-8)


def test_history_shapes_and_convergence():
    eigs = [0.2, -0.05]
    A, f, Df = _make_linear_system(eigs)
    N = 250

    LE, LE_hist, times = lyapunov_spectrum(
        f, Df, np.zeros(2), N, dt=0.2, Ttr=0.0, return_history=True
    )
    assert LE.shape == (2,)
    assert LE_hist.shape == (N, 2)
    assert times.shape == (N,)
    assert np.isclose(times[-1], N * 0.2)
    assert np.allclose(LE_hist[-1], LE)
    # a linear flow has constant stretching: every partial estimate is exact
    assert np.allclose(LE_hist, np.array(eigs)[None, :], atol=1e-8)


def test_partial_spectrum_k_smaller_than_dimension():
    eigs = [0.4, 0.1, -0.2]
    A, f, Df = _make_linear_system(eigs)

    LE = lyapunov_spectrum(f, Df, np.zeros(3), 200, dt=0.1, Ttr=0.0, k=2)
    assert LE.shape == (2,)
    assert np.allclose(LE, [0.4, 0.1], atol=1e-8)


def test_adaptive_stepper_linear_system():
    eigs = [0.15, -0.05]
    A, f, Df = _make_linear_system(eigs)

    LE = lyapunov_spectrum(
        f,
        Df,
        np.zeros(2),
        100,
        dt=0.5,
        Ttr=0.0,
        stepper="rk45",
        solver_options={"rtol": 1e-10, "atol": 1e-12},
    )
    assert np.allclose(LE, [0.15, -0.05], atol=1e-6)


def test_max_exponent_linear_system():
    eigs = [0.3, -0.2, 0.0]
    A, f, Df = _make_linear_system(eigs)

    lam = max_lyapunov_exponent(f, Df, np.zeros(3), 2000, dt=0.1, Ttr=0.0)
    # the first deviation vector starts on the most expanding eigenvector
    assert np.isclose(lam, 0.3, atol=1e-8)


def test_longdouble_linear_system():
    eigs = [0.3, -0.2]
    A, f, Df = _make_linear_system(eigs)

    LE = lyapunov_spectrum(f, Df, np.zeros(2), 100, dt=0.1, Ttr=0.0, dtype=np.longdouble)
    assert LE.dtype == np.longdouble
    assert np.allclose(LE.astype(float), [0.3, -0.2], atol=1e-8)
