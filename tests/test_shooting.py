import numpy as np
import pytest

from atomdirac.atom import AtomEngine
from atomdirac.constants import ALPHA, C
from atomdirac.errors import SmallGammaError, UnboundStateError
from atomdirac.grid import LogGrid
from atomdirac.potential import CoulombSpherePotential
from atomdirac.quantum import hydrogenic_dirac_energy
from atomdirac.shooting import ShootingIntegrator, boundary_dirac_coulomb, turning_point_index
from atomdirac.state import RadialState


def _state_on(grid, potential, E, k):
    return RadialState.empty(grid, potential.sample(grid), E, k)


@pytest.mark.shooting
@pytest.mark.quick
def test_turning_point_clipped():
    assert turning_point_index(-np.ones(20)) == 2
    assert turning_point_index(np.ones(20)) == 17
    b = np.r_[np.ones(8), -np.ones(12)]
    assert turning_point_index(b) == 7


@pytest.mark.shooting
@pytest.mark.quick
@pytest.mark.parametrize("k", [-1, 1, -2, 2])
def test_point_core_boundary_ratio(k):
    Z = 30.0
    grid = LogGrid(1e-6, 0.01, 0, 20)
    v = CoulombSpherePotential(Z)
    E = C**2 - 100.0
    inner, outer = boundary_dirac_coulomb(_state_on(grid, v, E, k), 1.0, Z)
    P0, Q0, P1, Q1 = inner
    za = Z * ALPHA
    gamma = np.sqrt(k * k - za * za)
    assert np.isclose(Q0 / P0, (k + gamma) / za, rtol=1e-12)
    assert np.isclose(P1 / P0, np.exp(gamma * grid.dx), rtol=1e-14)
    # 外边界：Q/P = -K/(mu c + E/c)，P 向内增长
    K = np.sqrt(C**2 - (E / C) ** 2)
    p0, q0, p1, q1 = outer
    assert np.isclose(q0 / p0, -K / (C + E / C), rtol=1e-10)
    assert p1 > p0


@pytest.mark.shooting
@pytest.mark.quick
@pytest.mark.parametrize("k", [-1, 1])
def test_finite_core_boundary_ratio(k):
    Z, R = 20.0, 1e-4
    grid = LogGrid(1e-7, 0.01, 0, 20)
    v = CoulombSpherePotential(Z, R)
    E = C**2 - 50.0
    state = _state_on(grid, v, E, k)
    (P0, Q0, P1, Q1), _ = boundary_dirac_coulomb(state, 1.0, Z, R)
    V0 = state.V[0]
    beta = (E - V0) / C - C
    alpha0 = (E - V0) / C + C
    r = grid.r
    if k < 0:
        assert np.isclose(Q1 / P1, -beta * r[1] / (1 - 2 * k), rtol=1e-12)
        assert np.isclose(P1 / P0, np.exp(-k * grid.dx), rtol=1e-14)
    else:
        assert np.isclose(P1 / Q1, alpha0 * r[1] / (2 * k + 1), rtol=1e-12)
        assert np.isclose(Q1 / Q0, np.exp(k * grid.dx), rtol=1e-14)


@pytest.mark.shooting
@pytest.mark.quick
def test_boundary_errors():
    grid = LogGrid(1e-4, 0.01, 0, 20)
    v = CoulombSpherePotential(1.0)
    with pytest.raises(UnboundStateError) as exc:
        boundary_dirac_coulomb(_state_on(grid, v, C**2 + 1.0, -1), 1.0, 1.0)
    assert exc.value.recoverable
    with pytest.raises(SmallGammaError):
        boundary_dirac_coulomb(_state_on(grid, v, C**2 - 1.0, -1), 1.0, 150.0)


@pytest.mark.shooting
@pytest.mark.quick
def test_mismatch_vanishes_at_hydrogenic_energy():
    atom = AtomEngine(Z=1)
    E = hydrogenic_dirac_energy(1.0, 1.0, 1, -1)
    state = atom.init_state(E, -1)
    tp = atom.integrator.integrate(state)
    state_off = _state_on(state.grid, atom.potential, E + 1e-2, -1)
    tp_off = atom.integrator.integrate(state_off)
    assert abs(tp.err) < 1e-3 * abs(tp_off.err)
    assert 2 <= tp.i <= len(state.grid) - 3
    # 拼接后 P 连续
    state.continuify(tp)
    assert np.isclose(state.P[tp.i], tp.Pi, rtol=1e-14)


@pytest.mark.shooting
@pytest.mark.parametrize("Z,n,k", [(1.0, 1, -1), (1.0, 2, 1), (5.0, 3, -2)])
def test_energy_derivative_matches_finite_difference(Z, n, k):
    """失配量的能量导数与固定网格上的中心差分一致。"""
    atom = AtomEngine(Z=Z)
    E_exact = hydrogenic_dirac_energy(Z, 1.0, n, k)
    E = E_exact - 0.01 * Z * Z / n**2
    grid = atom.init_state(E, k).grid
    integ = atom.integrator

    state = _state_on(grid, atom.potential, E, k)
    tp, dE = integ.integrate_with_derivative(state)
    h = 1e-6
    err_p = integ.integrate(_state_on(grid, atom.potential, E + h, k)).err
    err_m = integ.integrate(_state_on(grid, atom.potential, E - h, k)).err
    slope = (err_p - err_m) / (2 * h)
    assert np.isfinite(dE)
    assert np.isclose(dE, tp.err / slope, rtol=1e-4)
    # Newton 修正指向精确能级
    assert np.isclose(E - dE, E_exact, rtol=0, atol=0.5 * abs(E - E_exact))


@pytest.mark.shooting
@pytest.mark.quick
def test_energy_derivative_finite_core():
    Z, R = 30.0, 5e-4
    v = CoulombSpherePotential(Z, R)
    integ = ShootingIntegrator(1.0, Z, R)
    E = C**2 - 400.0
    grid = LogGrid(1e-6, 0.005, 0, 3000)
    tp, dE = integ.integrate_with_derivative(_state_on(grid, v, E, 1))
    h = 1e-5
    err_p = integ.integrate(_state_on(grid, v, E + h, 1)).err
    err_m = integ.integrate(_state_on(grid, v, E - h, 1)).err
    assert np.isclose(dE, tp.err / ((err_p - err_m) / (2 * h)), rtol=1e-4)
