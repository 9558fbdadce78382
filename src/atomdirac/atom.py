r"""单粒子原子：网格选择、态收敛与缓存
====================================

:class:`AtomEngine` 描述一个核（电荷 :math:`Z`、质量数 :math:`A`、核半径模型）与一个绕核粒子
（质量 :math:`m`，以电子质量为单位）组成的体系，负责：

- 按试探能量与 :math:`k` 选择对数网格范围（:meth:`AtomEngine.grid_limits`）；
- 驱动节点二分与阻尼 Newton 收敛到本征态（:meth:`AtomEngine.converge_state`）；
- 按量子数 :math:`(n, l, s)` 计算并缓存态（:meth:`AtomEngine.calc_state`、:meth:`AtomEngine.get_state`），
  同 :math:`(l, s)` 的已收敛态按 :math:`n` 严格能量有序，用于收紧能量区间（:meth:`AtomEngine.energy_limits`）。

网格参考点 :math:`r_c = f_c/(Z\mu)`，步长 ``dx`` 固定；每个试探能量重新选取下标范围 :math:`[i_{in}, i_{out}]`：

.. math::
    K = \sqrt{(\mu c)^2 - (E/c)^2},\quad \gamma = \sqrt{k^2 - (Z\alpha)^2},\quad
    r_{tp} = \frac{Z}{|E - \mu c^2|},

.. math::
    r_{out} = r_{tp} - \frac{\ln \epsilon_{out}}{K},\qquad
    r_{in} = \epsilon_{in}^{1/\gamma}\,\frac{\gamma}{e K}.

缓存 :class:`StateTable` 由引擎独占，显式传给区间收紧函数 :func:`tighten_energy_limits`。
条目只增不删，``force=True`` 时覆盖。
"""

from __future__ import annotations

import logging
import math
from functools import partial
from typing import Dict, Iterator, List, Tuple

from .constants import ALPHA, AMU, C
from .errors import ConfigurationError, ConsistencyError, ExhaustionError, SmallGammaError, UnboundStateError
from .grid import LogGrid
from .potential import CoulombSpherePotential, Potential, SumPotential, UehlingSpherePotential
from .quantum import (
    hydrogenic_dirac_energy,
    qnum_dirac_to_schro,
    qnum_principal_to_nodes,
    qnum_schro_to_dirac,
)
from .search import SolverConfig, bracket_basin, check_eps, converge_e, converge_nodes
from .shooting import ShootingIntegrator
from .state import RadialState, TurningPoint
from .utils import effective_mass, sphere_nuclear_radius

__all__ = ["AtomEngine", "StateTable", "tighten_energy_limits"]

logger = logging.getLogger(__name__)

StateKey = Tuple[int, int, bool]

RADIUS_MODELS = ("point", "sphere")


def canonical_key(n: int, l: int, s: bool) -> StateKey:
    """``l = 0`` 只有 ``s = True``。"""
    return int(n), int(l), bool(s) or l == 0


class StateTable:
    """``(n, l, s) -> RadialState`` 缓存表。"""

    def __init__(self):
        self._states: Dict[StateKey, RadialState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, key) -> bool:
        return canonical_key(*key) in self._states

    def __iter__(self) -> Iterator[StateKey]:
        return iter(self._states)

    def __getitem__(self, key) -> RadialState:
        return self._states[canonical_key(*key)]

    def get(self, key, default=None):
        return self._states.get(canonical_key(*key), default)

    def store(self, state: RadialState, force: bool = True) -> bool:
        """以态自身的量子数为键写入；``force=False`` 时不覆盖已收敛条目。返回是否写入。"""
        key = canonical_key(state.n, state.l, state.s)
        old = self._states.get(key)
        if not force and old is not None and old.initialized:
            return False
        self._states[key] = state
        return True

    def items(self):
        return self._states.items()

    def by_class(self, l: int, s: bool) -> List[RadialState]:
        """同 ``(l, s)`` 的已收敛态，按 ``n`` 升序。"""
        s = bool(s) or l == 0
        found = [(key[0], st) for key, st in self._states.items() if key[1] == l and key[2] == s and st.initialized]
        return [st for _, st in sorted(found, key=lambda item: item[0])]


def tighten_energy_limits(table: StateTable, n: int, l: int, s: bool, min_e: float, max_e: float) -> Tuple[float, float]:
    r"""用同 :math:`(l, s)` 的已收敛态收紧能量区间：:math:`n' < n` 抬高下界，:math:`n' > n` 压低上界。"""
    for st in table.by_class(l, s):
        if st.n < n:
            min_e = max(min_e, st.E)
        elif st.n > n:
            max_e = min(max_e, st.E)
    return min_e, max_e


class AtomEngine:
    r"""单粒子 Dirac 原子。

    Parameters
    ----------
    Z : float
        核电荷，:math:`Z > 0`。
    m : float, optional
        绕核粒子质量（电子质量单位），默认 1（电子）。
    A : float, optional
        原子质量数；``None`` 表示无限重的点核（不做约化质量与有限核修正）。
    radius_model : {"point", "sphere"}, optional
        核半径模型；``"sphere"`` 时 :math:`R = 1.2\,\mathrm{fm}\cdot A^{1/3}`。
    fc : float, optional
        网格参考点系数，:math:`r_c = f_c/(Z\mu)`。
    dx : float, optional
        对数网格步长。
    config : SolverConfig, optional
        容差与迭代策略，默认 :class:`SolverConfig()`。
    uehling : bool, optional
        是否加入 Uehling 真空极化修正。
    uehling_steps : int, optional
        Uehling 积分点数。
    background : Potential, optional
        额外势能（如 :class:`~atomdirac.potential.BackgroundGridPotential` 电子屏蔽）。

    Examples
    --------
    >>> atom = AtomEngine(Z=1)
    >>> atom.get_state(1, 0).E - atom.rest_energy  # doctest: +SKIP
    -0.50000665...
    """

    def __init__(
        self,
        Z: float,
        m: float = 1.0,
        A: float | None = None,
        radius_model: str = "point",
        fc: float = 1.0,
        dx: float = 0.005,
        config: SolverConfig | None = None,
        uehling: bool = False,
        uehling_steps: int = 1000,
        background: Potential | None = None,
    ):
        if not Z > 0:
            raise ConfigurationError("核电荷必须为正", Z=Z)
        if not m > 0:
            raise ConfigurationError("粒子质量必须为正", m=m)
        if A is not None and not A > 0:
            raise ConfigurationError("质量数必须为正", A=A)
        if not fc > 0:
            raise ConfigurationError("fc 必须为正", fc=fc)
        if not dx > 0:
            raise ConfigurationError("dx 必须为正", dx=dx)
        if radius_model not in RADIUS_MODELS:
            raise ConfigurationError("未知的核半径模型", radius_model=radius_model)

        self._Z = float(Z)
        self._m = float(m)
        self._A = None if A is None else float(A)
        self.radius_model = radius_model
        self._mu = self._m if A is None else effective_mass(self._m, self._A * AMU)
        self._R = sphere_nuclear_radius(self._A) if (radius_model == "sphere" and A is not None) else None
        self._rc = fc / (self._Z * self._mu)
        self._dx = float(dx)
        self._config = (config or SolverConfig()).validate()

        terms: List[Potential] = [CoulombSpherePotential(self._Z, self._R)]
        if uehling:
            terms.append(UehlingSpherePotential(self._Z, self._R, usteps=uehling_steps))
        if background is not None:
            terms.append(background)
        self._potential = terms[0] if len(terms) == 1 else SumPotential(*terms)

        self.integrator = ShootingIntegrator(self._mu, self._Z, self._R)
        self._states = StateTable()
        logger.debug(
            "AtomEngine Z=%g m=%g A=%s mu=%.10g R=%s rc=%.4e dx=%g",
            self._Z, self._m, self._A, self._mu, self._R, self._rc, self._dx,
        )

    # --- 只读属性 ---

    @property
    def Z(self) -> float:
        return self._Z

    @property
    def A(self) -> float | None:
        return self._A

    @property
    def m(self) -> float:
        return self._m

    @property
    def mu(self) -> float:
        return self._mu

    @property
    def R(self) -> float | None:
        return self._R

    @property
    def rc(self) -> float:
        return self._rc

    @property
    def dx(self) -> float:
        return self._dx

    @property
    def rest_energy(self) -> float:
        return self._mu * C * C

    @property
    def potential(self) -> Potential:
        return self._potential

    @property
    def config(self) -> SolverConfig:
        return self._config

    @property
    def states(self) -> StateTable:
        return self._states

    def get_v(self, r: float) -> float:
        return self._potential.evaluate(r)

    # --- 网格与试探态 ---

    def grid_limits(self, E: float, k: int) -> Tuple[int, int]:
        r"""试探能量 ``E``、量子数 ``k`` 下的网格下标范围 ``(i_in, i_out)``。

        Raises
        ------
        ConfigurationError
            ``out_eps``/``in_eps`` 不在 :math:`(0, 1)` 内，或 :math:`r_{in} > r_{tp}`（需收紧 ``in_eps``）。
        UnboundStateError
            :math:`K` 为虚数。
        SmallGammaError
            :math:`\gamma` 为虚数。
        """
        cfg = self._config
        check_eps(cfg.out_eps, cfg.in_eps)
        mu = self._mu
        w = (E - self.rest_energy) / C
        K2 = -w * (2.0 * mu * C + w)
        if not K2 > 0:
            raise UnboundStateError("能量不在束缚区", E=E, k=k)
        K = math.sqrt(K2)
        za = self._Z * ALPHA
        g2 = k * k - za * za
        if not g2 > 0:
            raise SmallGammaError("k^2 < (Z alpha)^2", k=k, Z=self._Z)
        gamma = math.sqrt(g2)

        r_tp = self._Z / abs(E - self.rest_energy)
        r_out = r_tp - math.log(cfg.out_eps) / K
        r_in = cfg.in_eps ** (1.0 / gamma) * gamma / (math.e * K)
        if r_in > r_tp:
            raise ConfigurationError("r_in > r_tp，in_eps 过大", r_in=r_in, r_tp=r_tp, in_eps=cfg.in_eps, E=E, k=k)
        i_in = math.floor(math.log(r_in / self._rc) / self._dx)
        i_out = math.ceil(math.log(r_out / self._rc) / self._dx)
        return i_in, i_out

    def init_state(self, E: float, k: int) -> RadialState:
        """在 ``E`` 对应的网格上采样势能，返回零波函数的试探态。"""
        i0, i1 = self.grid_limits(E, k)
        grid = LogGrid(self._rc, self._dx, i0, i1)
        return RadialState.empty(grid, self._potential.sample(grid), E, k)

    def energy_limits(self, nodes: int, k: int) -> Tuple[float, float]:
        r"""节点数 ``nodes``、量子数 ``k`` 的态的能量区间。

        基础区间为 :math:`[\max(V(0) + \mu c^2, -\mu c^2),\ \mu c^2]`，再由缓存中同 :math:`(l, s)` 的态收紧。
        """
        l, s = qnum_dirac_to_schro(k)
        n = nodes + l + 1
        min_e = max(self.get_v(0.0) + self.rest_energy, -self.rest_energy)
        max_e = self.rest_energy
        return tighten_energy_limits(self._states, n, l, s, min_e, max_e)

    # --- 收敛 ---

    def _prepare(self, k: int):
        return partial(self.init_state, k=k)

    def converge_nodes(self, nodes: int, k: int, min_e: float, max_e: float):
        return converge_nodes(self._prepare(k), self.integrator, nodes, min_e, max_e, self._config)

    def converge_e(self, state: RadialState, min_e: float | None = None, max_e: float | None = None):
        return converge_e(self._prepare(state.k), self.integrator, state, self._config, min_e, max_e)

    def _finalize(self, state: RadialState, tp: TurningPoint) -> RadialState:
        state.continuify(tp)
        state.normalize()
        state.find_nodes()
        # Q 比 P 多一个节点当且仅当 k > 0，与核半径无关：点核 2p1/2 精确解即如此，
        # 有限核 1s（R > r0）仍为 0/0。
        expected = 1 if state.k > 0 else 0
        if state.nodes_q - state.nodes != expected:
            raise ConsistencyError(
                "节点定理不满足",
                E=state.E, k=state.k, nodes=state.nodes, nodes_q=state.nodes_q, expected=expected,
            )
        state.initialized = True
        return state

    def converge_state(self, state: RadialState, min_e: float | None = None, max_e: float | None = None) -> RadialState:
        """从试探态出发收敛、拼接、归一化并检查节点定理，返回新的已收敛态。"""
        state, tp = self.converge_e(state, min_e, max_e)
        return self._finalize(state, tp)

    def _recover(self, nodes: int, k: int) -> RadialState:
        min_e, max_e = self.energy_limits(nodes, k)
        logger.debug("试探能量离开束缚区，改用节点二分 k=%d nodes=%d [%.12g, %.12g]", k, nodes, min_e, max_e)
        state, _, min_e, max_e = self.converge_nodes(nodes, k, min_e, max_e)
        state, min_e, max_e = bracket_basin(self._prepare(k), self.integrator, nodes, state, min_e, max_e, self._config)
        return self.converge_state(state, min_e, max_e)

    def calc_state(self, n: int, l: int, s: bool = True, force: bool = False) -> RadialState:
        r"""计算 :math:`(n, l, s)` 态并写入缓存，已有有效缓存且 ``force=False`` 时直接返回缓存对象。

        初值取点核氢样 Dirac 能级；有限核时若束缚能低于 :math:`V(0)` 则抬高到 :math:`V(0) + 0.1`。
        收敛到的态主量子数不符时，该态按自身量子数缓存（不覆盖已收敛条目），
        束缚能乘（节点过多）或除（节点过少）以 ``Esearch`` 后重试，并保持在 :meth:`energy_limits` 内。

        Raises
        ------
        ExhaustionError
            ``maxit`` 次重试仍未得到目标态。
        """
        key = canonical_key(n, l, s)
        n, l, s = key
        cached = self._states.get(key)
        if cached is not None and cached.initialized and not force:
            return cached

        k = qnum_schro_to_dirac(l, s)
        nodes = qnum_principal_to_nodes(n, l)
        restE = self.rest_energy
        B0 = hydrogenic_dirac_energy(self._Z, self._mu, n, k, rest_energy=False)
        if self._R is not None:
            v0 = self.get_v(0.0)
            if B0 < v0:
                B0 = v0 + 0.1

        cfg = self._config
        for it in range(cfg.maxit):
            E0 = B0 + restE
            try:
                state = self.converge_state(self.init_state(E0, k))
            except UnboundStateError:
                state = self._recover(nodes, k)
            if state.n == n:
                self._states.store(state)
                logger.info("态 (n=%d, l=%d, s=%s) 收敛：E - mu c^2 = %.12g", n, l, s, state.E - restE)
                return state

            logger.warning(
                "收敛到 n=%d（目标 n=%d, l=%d, s=%s），E - mu c^2 = %.12g，调整初值重试",
                state.n, n, l, s, state.E - restE,
            )
            self._states.store(state, force=False)
            if state.n > n:
                B0 *= cfg.Esearch
            else:
                B0 /= cfg.Esearch
            min_e, max_e = self.energy_limits(nodes, k)
            if not min_e < B0 + restE < max_e:
                B0 = 0.5 * (min_e + max_e) - restE
        raise ExhaustionError("未能收敛到目标态", n=n, l=l, s=s, maxit=cfg.maxit)

    def calc_all_states(self, max_n: int, force: bool = False) -> List[RadialState]:
        r"""按 :math:`n` 递增顺序计算 :math:`n \le n_{\max}` 的全部态。"""
        out = []
        for n in range(1, max_n + 1):
            for l in range(n):
                for s in ((True,) if l == 0 else (True, False)):
                    out.append(self.calc_state(n, l, s, force=force))
        return out

    def get_state(self, n: int, l: int, s: bool = True) -> RadialState:
        """计算或取出 :math:`(n, l, s)` 态，返回副本。"""
        state = self.calc_state(n, l, s)
        if not state.initialized:
            raise ExhaustionError("态未收敛", n=n, l=l, s=s)
        return state.copy()

    def transition_energy(self, initial: StateKey, final: StateKey) -> float:
        """跃迁能量 :math:`E_{initial} - E_{final}`（发射为正）。"""
        return self.get_state(*initial).E - self.get_state(*final).E
