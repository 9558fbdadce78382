import math
from functools import partial

import numpy as np
import pytest

from atomdirac.atom import AtomEngine
from atomdirac.errors import ConfigurationError, ConsistencyError, DivergenceError, ExhaustionError
from atomdirac.grid import LogGrid
from atomdirac.quantum import hydrogenic_dirac_energy
from atomdirac.search import SolverConfig, bracket_basin, converge_e, converge_nodes
from atomdirac.state import RadialState, TurningPoint

_GRID = LogGrid(1.0, 0.1, 0, 9)


def _with_nodes(nodes: int) -> np.ndarray:
    p = np.ones(len(_GRID))
    for j in range(nodes):
        p[j + 1:] *= -1.0
    return p


class FakeIntegrator:
    """按预设序列返回 ``dE`` 的积分器，用于驱动搜索逻辑。"""

    def __init__(self, dEs=()):
        self.dEs = list(dEs)
        self.calls = 0

    def integrate(self, state):
        return TurningPoint(5, 1.0, 1.0, 0.0, 0.0)

    def integrate_with_derivative(self, state):
        self.calls += 1
        return self.integrate(state), self.dEs.pop(0)


class Recorder:
    """``prepare(E)``：记录试探能量，节点数由 ``nodes_of(E)`` 给出。"""

    def __init__(self, nodes_of=lambda E: 0):
        self.energies = []
        self.nodes_of = nodes_of

    def __call__(self, E):
        self.energies.append(E)
        st = RadialState.empty(_GRID, np.zeros(len(_GRID)), E, -1)
        st.P = _with_nodes(self.nodes_of(E))
        return st


@pytest.mark.search
@pytest.mark.quick
@pytest.mark.parametrize(
    "kwargs",
    [{"Etol": 0.0}, {"Edamp": 0.0}, {"Edamp": 1.5}, {"Esearch": 1.0}, {"maxit": 0}, {"out_eps": 1.0}, {"in_eps": -0.1}],
)
def test_solver_config_validate(kwargs):
    with pytest.raises(ConfigurationError):
        SolverConfig(**kwargs).validate()


@pytest.mark.search
@pytest.mark.quick
def test_converge_nodes_finds_target_between_tertiles():
    # 节点数随能量阶梯上升：E 每增加 1 多一个节点
    prep = Recorder(lambda E: int(math.floor(E)))
    st, tp, lo, hi = converge_nodes(prep, FakeIntegrator(), 3, 0.0, 10.0, SolverConfig())
    assert st.nodes == 3
    assert 3.0 <= st.E < 4.0
    assert lo <= st.E <= hi


@pytest.mark.search
@pytest.mark.quick
def test_converge_nodes_inconsistent_bracket():
    prep = Recorder(lambda E: 5 if E < 5.0 else 0)
    with pytest.raises(ConsistencyError) as exc:
        converge_nodes(prep, FakeIntegrator(), 2, 0.0, 10.0, SolverConfig())
    assert not exc.value.recoverable
    assert exc.value.context["target"] == 2


@pytest.mark.search
@pytest.mark.quick
def test_converge_nodes_exhaustion():
    prep = Recorder(lambda E: 0)
    with pytest.raises(ExhaustionError):
        converge_nodes(prep, FakeIntegrator(), 3, 0.0, 10.0, SolverConfig(maxit=4))
    # 每轮只有一个新探测点需要积分
    assert len(prep.energies) == 5
    assert len(set(prep.energies)) == 5


@pytest.mark.search
@pytest.mark.quick
def test_converge_nodes_reuses_carried_energies():
    # 目标在 [4, 5) 内：先两点都偏高，再落入两点之间
    prep = Recorder(lambda E: 0 if E < 4.0 else (1 if E < 5.0 else 2))
    st, _, lo, hi = converge_nodes(prep, FakeIntegrator(), 1, 0.0, 18.0, SolverConfig())
    assert st.nodes == 1
    assert len(prep.energies) == len(set(prep.energies))
    assert lo <= st.E <= hi


@pytest.mark.search
@pytest.mark.quick
def test_converge_e_clamps_and_damps_step():
    prep = Recorder()
    integ = FakeIntegrator([-50.0, 0.0])
    cfg = SolverConfig(Edamp=0.5, max_dE_ratio=0.1)
    state, _ = converge_e(prep, integ, prep(100.0), cfg)
    # |dE/E| = 0.5 > 0.1：截断为 -10，阻尼后 E = 100 + 5
    assert prep.energies[:3] == [100.0, 100.0, 105.0]
    assert state.E == 105.0


@pytest.mark.search
@pytest.mark.quick
def test_converge_e_final_full_step():
    prep = Recorder()
    integ = FakeIntegrator([1e-8])
    state, _ = converge_e(prep, integ, prep(1.0), SolverConfig(Etol=1e-7))
    assert state.E == 1.0 - 1e-8


@pytest.mark.search
@pytest.mark.quick
def test_converge_e_respects_bracket():
    prep = Recorder()
    integ = FakeIntegrator([-100.0, 0.0])
    cfg = SolverConfig(Edamp=1.0, max_dE_ratio=10.0)
    state, _ = converge_e(prep, integ, prep(1.0), cfg, min_e=0.0, max_e=2.0)
    assert state.E == pytest.approx(1.5)


@pytest.mark.search
@pytest.mark.quick
@pytest.mark.parametrize("bad", [math.nan, math.inf])
def test_converge_e_divergence(bad):
    prep = Recorder()
    with pytest.raises(DivergenceError) as exc:
        converge_e(prep, FakeIntegrator([bad]), prep(1.0), SolverConfig())
    assert exc.value.context["iteration"] == 0


@pytest.mark.search
@pytest.mark.quick
def test_converge_e_exhaustion():
    prep = Recorder()
    integ = FakeIntegrator([1e-3] * 5)
    with pytest.raises(ExhaustionError):
        converge_e(prep, integ, prep(1.0), SolverConfig(maxit=5))
    assert integ.calls == 5


@pytest.mark.search
def test_hydrogen_2s_node_search_then_newton():
    atom = AtomEngine(Z=1)
    k = -1
    ground = atom.calc_state(1, 0)
    # 已缓存的 1s 抬高 2s 的能量下界
    min_e, max_e = atom.energy_limits(1, k)
    assert min_e == ground.E and max_e == atom.rest_energy
    prepare = partial(atom.init_state, k=k)
    state, _, lo, hi = converge_nodes(prepare, atom.integrator, 1, min_e, max_e, atom.config)
    assert state.nodes == 1
    final, tp = converge_e(prepare, atom.integrator, state, atom.config, lo, hi)
    exact = hydrogenic_dirac_energy(1.0, 1.0, 2, k)
    assert final.E == pytest.approx(exact, abs=1e-5)
    assert tp.i < len(final.grid) - 2


class NewtonIntegrator(FakeIntegrator):
    """``dE = E - root``：线性失配量，Newton 一步到位。"""

    def __init__(self, root):
        super().__init__()
        self.root = root

    def integrate_with_derivative(self, state):
        self.calls += 1
        return self.integrate(state), state.E - self.root


@pytest.mark.search
@pytest.mark.quick
def test_bracket_basin_narrows_wide_interval():
    # 起点远低于本征值 3.0；E >= 5 时节点过多
    prep = Recorder(lambda E: 0 if E < 5.0 else 1)
    cfg = SolverConfig()
    state, lo, hi = bracket_basin(prep, NewtonIntegrator(3.0), 0, prep(-90.0), -100.0, 100.0, cfg)
    assert lo < 3.0 < hi <= 5.0
    assert lo < state.E < hi
    assert abs(state.E - 3.0) <= cfg.max_dE_ratio * abs(state.E)
    assert state.nodes == 0


@pytest.mark.search
@pytest.mark.quick
def test_bracket_basin_raises_lower_bound_on_too_few_nodes():
    # 目标 1 个节点，本征值 6.0 位于 [4, 8) 盆地
    prep = Recorder(lambda E: 0 if E < 4.0 else (1 if E < 8.0 else 2))
    state, lo, hi = bracket_basin(prep, NewtonIntegrator(6.0), 1, prep(9.0), 0.0, 10.0, SolverConfig())
    assert 4.0 <= lo < 6.0 < hi <= 9.0
    assert state.nodes == 1


@pytest.mark.search
@pytest.mark.quick
def test_bracket_basin_divergence():
    prep = Recorder()
    with pytest.raises(DivergenceError):
        bracket_basin(prep, FakeIntegrator([math.nan]), 0, prep(1.0), 0.0, 2.0, SolverConfig())


@pytest.mark.search
def test_hydrogen_ground_state_from_full_rest_energy_interval():
    atom = AtomEngine(Z=1)
    k = -1
    restE = atom.rest_energy
    prepare = partial(atom.init_state, k=k)
    state, _, lo, hi = converge_nodes(prepare, atom.integrator, 0, -restE, restE, atom.config)
    state, lo, hi = bracket_basin(prepare, atom.integrator, 0, state, lo, hi, atom.config)
    exact = hydrogenic_dirac_energy(1.0, 1.0, 1, k)
    assert lo < exact < hi
    final, _ = converge_e(prepare, atom.integrator, state, atom.config, lo, hi)
    assert final.E == pytest.approx(exact, abs=1e-5)
