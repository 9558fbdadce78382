import numpy as np
import pytest

from atomdirac.errors import ConfigurationError
from atomdirac.grid import LogGrid, log_grid, log_grid_indexed


@pytest.mark.grid
@pytest.mark.quick
def test_log_grid_indexed_negative_indices():
    g = log_grid_indexed(rc=0.5, dx=0.01, i0=-300, i1=200)
    assert len(g) == 501
    assert g.r.shape == g.x.shape == (501,)
    # i = 0 对应 rc
    assert np.isclose(g.r[g.position(0)], 0.5, rtol=0, atol=1e-15)
    assert np.isclose(g.r[0], 0.5 * np.exp(-3.0), rtol=1e-13)
    assert np.all(np.diff(g.r) > 0)
    assert np.allclose(g.x, np.log(g.r), rtol=0, atol=1e-13)


@pytest.mark.grid
@pytest.mark.quick
def test_log_grid_from_endpoints():
    g = log_grid(1e-4, 10.0, 1001)
    assert len(g) == 1001
    assert g.i0 == 0 and g.i1 == 1000
    assert np.isclose(g.r[0], 1e-4, rtol=1e-14)
    assert np.isclose(g.r[-1], 10.0, rtol=1e-12)


@pytest.mark.grid
@pytest.mark.quick
def test_log_grid_is_read_only():
    g = LogGrid(1.0, 0.1, 0, 10)
    with pytest.raises(ValueError):
        g.r[0] = 2.0
    with pytest.raises(AttributeError):
        g.dx = 0.2


@pytest.mark.grid
@pytest.mark.quick
@pytest.mark.parametrize(
    "args",
    [(0.0, 0.1, 0, 10), (-1.0, 0.1, 0, 10), (1.0, 0.0, 0, 10), (1.0, 0.1, 5, 4)],
)
def test_log_grid_rejects_invalid_parameters(args):
    with pytest.raises(ConfigurationError):
        LogGrid(*args)


@pytest.mark.grid
@pytest.mark.quick
def test_position_bounds_independent_of_sign():
    g = LogGrid(1.0, 0.1, -5, -1)
    assert g.position(-5) == 0
    assert g.position(-1) == 4
    with pytest.raises(IndexError):
        g.position(0)
    with pytest.raises(IndexError):
        g.position(-6)


@pytest.mark.grid
@pytest.mark.quick
def test_index_roundtrip_off_grid():
    g = LogGrid(2.0, 0.05, 0, 10)
    # r_at 不要求下标在网格内
    r = g.r_at(-40)
    assert np.isclose(g.index_of(r), -40.0, rtol=0, atol=1e-10)


@pytest.mark.grid
@pytest.mark.quick
def test_weights_match_scipy_trapezoid():
    from scipy.integrate import trapezoid

    g = log_grid_indexed(0.1, 0.01, -200, 300)
    f = np.sin(g.r) * np.exp(-g.r)
    assert np.isclose(np.sum(g.weights * f), trapezoid(f * g.r, dx=g.dx), rtol=1e-12, atol=0)
    assert LogGrid(1.0, 0.1, 3, 3).integrate(np.ones(1)) == 0.0


@pytest.mark.grid
@pytest.mark.quick
def test_log_grid_integral_includes_jacobian():
    g = log_grid_indexed(1.0, 0.005, -3000, 800)
    f = np.exp(-g.r)
    # ∫_0^∞ e^{-r} dr = 1（下端截断误差 ~ r0）
    assert np.isclose(g.integrate(f), 1.0, rtol=0, atol=1e-5)
