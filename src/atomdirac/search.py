r"""能量搜索：节点二分与阻尼 Newton
===============================

两阶段求本征能量：

1. :func:`converge_nodes`：在能量区间 :math:`[E_{\min}, E_{\max}]` 内用三等分点探测
   :math:`P` 的节点数，收缩区间直到找到节点数等于目标值的能量（Newton 只会收敛到最近的根，
   必须先落入正确的节点“盆地”）；
   区间过宽时再用 :func:`bracket_basin` 把区间收缩到该盆地内；
2. :func:`converge_e`：以失配量及其能量导数做阻尼 Newton 迭代，
   步长比 :math:`|\delta E/E|` 超过 ``max_dE_ratio`` 时按符号截断，再乘以阻尼 ``Edamp``。

各函数都通过 ``prepare(E) -> RadialState`` 在每个试探能量上重新选择网格并采样势能，
调用之间不保留任何态。
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable

from .errors import ConfigurationError, ConsistencyError, DivergenceError, ExhaustionError
from .shooting import ShootingIntegrator
from .state import RadialState, TurningPoint

__all__ = ["SolverConfig", "bracket_basin", "converge_nodes", "converge_e"]

logger = logging.getLogger(__name__)

Prepare = Callable[[float], RadialState]


@dataclass
class SolverConfig:
    r"""求解器容差与迭代策略。

    Attributes
    ----------
    Etol : float
        Newton 收敛阈值 :math:`|\delta E| < E_{tol}`（Hartree）。
    Edamp : float
        Newton 阻尼因子，:math:`(0, 1]`。
    max_dE_ratio : float
        单步相对变化上限 :math:`|\delta E/E|`。
    Esearch : float
        主量子数不符时束缚能的几何调整因子（> 1）。
    maxit : int
        各搜索阶段的最大迭代次数。
    out_eps, in_eps : float
        外、内边界截断容差，:math:`(0, 1)`。
    """

    Etol: float = 1e-7
    Edamp: float = 0.5
    max_dE_ratio: float = 0.1
    Esearch: float = 1.1
    maxit: int = 100
    out_eps: float = 1e-5
    in_eps: float = 1e-5

    def validate(self) -> "SolverConfig":
        if not self.Etol > 0:
            raise ConfigurationError("Etol 必须为正", Etol=self.Etol)
        if not 0 < self.Edamp <= 1:
            raise ConfigurationError("Edamp 必须在 (0, 1] 内", Edamp=self.Edamp)
        if not self.max_dE_ratio > 0:
            raise ConfigurationError("max_dE_ratio 必须为正", max_dE_ratio=self.max_dE_ratio)
        if not self.Esearch > 1:
            raise ConfigurationError("Esearch 必须大于 1", Esearch=self.Esearch)
        if self.maxit < 1:
            raise ConfigurationError("maxit 必须 >= 1", maxit=self.maxit)
        check_eps(self.out_eps, self.in_eps)
        return self


def check_eps(out_eps: float, in_eps: float) -> None:
    if not 0 < out_eps < 1:
        raise ConfigurationError("out_eps 必须在 (0, 1) 内", out_eps=out_eps)
    if not 0 < in_eps < 1:
        raise ConfigurationError("in_eps 必须在 (0, 1) 内", in_eps=in_eps)


def _shoot(prepare: Prepare, integrator: ShootingIntegrator, E: float) -> tuple[RadialState, TurningPoint]:
    state = prepare(E)
    tp = integrator.integrate(state)
    state.continuify(tp)
    state.find_nodes()
    return state, tp


def converge_nodes(
    prepare: Prepare,
    integrator: ShootingIntegrator,
    target_nodes: int,
    min_e: float,
    max_e: float,
    config: SolverConfig,
) -> tuple[RadialState, TurningPoint, float, float]:
    r"""三等分节点二分：寻找 :math:`P` 节点数等于 ``target_nodes`` 的能量。

    每轮在 :math:`E_l = E_{\min} + \Delta/3`、:math:`E_r = E_{\min} + 2\Delta/3` 处积分并计数
    （之后沿用上一轮收缩后的探测点），记 :math:`d = \text{nodes} - \text{target}`：

    - 任一探测点 :math:`d = 0`：立即返回；
    - :math:`d_l > 0, d_r > 0`：:math:`E_{\max} \leftarrow E_l`，:math:`E_r \leftarrow E_l`，
      :math:`E_l \leftarrow (E_{\min} + E_l)/2`；
    - :math:`d_l < 0, d_r < 0`：:math:`E_{\min} \leftarrow E_r`，:math:`E_l \leftarrow E_r`，
      :math:`E_r \leftarrow (E_{\max} + E_r)/2`；
    - :math:`d_l < 0 < d_r`：目标位于两点之间，:math:`[E_{\min}, E_{\max}] \leftarrow [E_l, E_r]`，
      :math:`E_l \leftarrow (E_l + E_r)/2`；
    - 其它次序（低能量节点更多）：区间物理上不自洽，抛出 :class:`ConsistencyError`。

    Returns
    -------
    state : RadialState
        节点数等于目标值的（未收敛）试探态。
    tp : TurningPoint
        对应的匹配点。
    min_e, max_e : float
        收缩后的能量区间，可直接交给 :func:`converge_e` 作为约束。

    Raises
    ------
    ConsistencyError
        节点数随能量反序。
    ExhaustionError
        ``config.maxit`` 轮内未找到目标节点数。
    """
    if not min_e < max_e:
        raise ConfigurationError("能量区间为空", min_e=min_e, max_e=max_e)
    width = max_e - min_e
    El = min_e + width / 3.0
    Er = min_e + 2.0 * width / 3.0
    # 收缩后沿用的探测点不重复积分
    seen: dict[float, tuple[RadialState, TurningPoint]] = {}

    def trial_at(E: float) -> tuple[RadialState, TurningPoint]:
        if E not in seen:
            seen[E] = _shoot(prepare, integrator, E)
        return seen[E]

    for it in range(config.maxit):
        sl, tpl = trial_at(El)
        dl = sl.nodes - target_nodes
        if dl == 0:
            logger.debug("节点二分第 %d 轮命中 E=%.12g", it, El)
            return sl, tpl, min_e, max_e
        sr, tpr = trial_at(Er)
        dr = sr.nodes - target_nodes
        if dr == 0:
            logger.debug("节点二分第 %d 轮命中 E=%.12g", it, Er)
            return sr, tpr, min_e, max_e
        logger.debug("节点二分 it=%d El=%.12g(%+d) Er=%.12g(%+d)", it, El, dl, Er, dr)
        if dl > 0 and dr > 0:
            max_e = El
            Er = El
            El = 0.5 * (min_e + El)
        elif dl < 0 and dr < 0:
            min_e = Er
            El = Er
            Er = 0.5 * (max_e + Er)
        elif dl < 0 < dr:
            min_e, max_e = El, Er
            El = 0.5 * (El + Er)
        else:
            raise ConsistencyError(
                "节点数随能量反序，能量区间不自洽",
                iteration=it, El=El, Er=Er, nodes_l=sl.nodes, nodes_r=sr.nodes, target=target_nodes,
            )
        for stale in set(seen) - {El, Er}:
            del seen[stale]
    raise ExhaustionError("节点二分超出迭代次数", maxit=config.maxit, min_e=min_e, max_e=max_e, target=target_nodes)


def bracket_basin(
    prepare: Prepare,
    integrator: ShootingIntegrator,
    target_nodes: int,
    state: RadialState,
    min_e: float,
    max_e: float,
    config: SolverConfig,
) -> tuple[RadialState, float, float]:
    r"""把能量区间收缩到目标节点数的“盆地”内，并给出可直接交给 Newton 的起点。

    :func:`converge_nodes` 只保证起点的节点数正确；区间很宽时（例如点核的
    :math:`[-\mu c^2, \mu c^2]`）起点可能远离本征值，截断后的 Newton 步会停滞或越过相邻本征值。
    这里在区间中点反复积分：节点数偏少则抬高下界，偏多则压低上界；节点数正确时按 Newton
    方向 :math:`-\delta E` 的符号二分（盆地内失配量随能量单调）。
    完整 Newton 步落在区间内且未被 ``max_dE_ratio`` 截断时改走该步，
    连续两次如此（第二个点的节点数仍正确）即停止。

    Returns
    -------
    state : RadialState
        节点数正确的起点。
    min_e, max_e : float
        只包含目标本征值的能量区间。

    Raises
    ------
    DivergenceError
        节点数正确但 ``dE`` 非有限，无法判断方向。
    ExhaustionError
        ``config.maxit`` 轮内未收缩到位。
    """
    E = state.E
    newton = False
    for it in range(config.maxit):
        trial = prepare(E)
        tp, dE = integrator.integrate_with_derivative(trial)
        trial.continuify(tp)
        trial.find_nodes()
        d = trial.nodes - target_nodes
        if d < 0:
            min_e = E
        elif d > 0:
            max_e = E
        else:
            if not math.isfinite(dE):
                raise DivergenceError("盆地内 Newton 修正量非有限", iteration=it, E=E, dE=dE, k=trial.k)
            if dE > 0:
                max_e = E
            elif dE < 0:
                min_e = E
            E_next = E - dE
            if min_e < E_next < max_e and abs(dE) <= config.max_dE_ratio * abs(E):
                if newton:
                    logger.debug("盆地收缩第 %d 轮完成 E=%.12g [%.12g, %.12g]", it, E, min_e, max_e)
                    return trial, min_e, max_e
                newton = True
                E = E_next
                continue
        newton = False
        logger.debug("盆地收缩 it=%d E=%.12g(%+d) dE=%.3e -> [%.12g, %.12g]", it, E, d, dE, min_e, max_e)
        E = 0.5 * (min_e + max_e)
    raise ExhaustionError("盆地收缩超出迭代次数", maxit=config.maxit, min_e=min_e, max_e=max_e, target=target_nodes)


def converge_e(
    prepare: Prepare,
    integrator: ShootingIntegrator,
    state: RadialState,
    config: SolverConfig,
    min_e: float | None = None,
    max_e: float | None = None,
) -> tuple[RadialState, TurningPoint]:
    r"""阻尼 Newton 迭代求失配量零点。

    每轮：

    .. math::
        \delta E \leftarrow \operatorname{sign}(\delta E)\,\min(|\delta E|,\ r_{\max}|E|),\qquad
        E \leftarrow E - E_{damp}\,\delta E.

    :math:`|\delta E| < E_{tol}` 时施加完整的最后一步并返回在该能量上积分好的态。
    给定区间时，越界的试探能量改为当前能量与越过的边界的中点。

    Parameters
    ----------
    prepare : callable
        ``prepare(E)`` 返回在能量 ``E`` 处准备好网格与势能的试探态。
    integrator : ShootingIntegrator
        打靶积分器。
    state : RadialState
        初始试探态，只使用其能量。
    config : SolverConfig
        容差与迭代策略。
    min_e, max_e : float, optional
        能量约束区间。

    Raises
    ------
    DivergenceError
        ``dE`` 或新能量非有限。
    ExhaustionError
        ``config.maxit`` 轮内未收敛。
    """
    E = state.E
    for it in range(config.maxit):
        trial = prepare(E)
        tp, dE = integrator.integrate_with_derivative(trial)
        if not math.isfinite(dE):
            raise DivergenceError("Newton 修正量非有限", iteration=it, E=E, dE=dE, k=trial.k)
        if abs(dE) < config.Etol:
            E_final = E - dE
            final = prepare(E_final)
            tp = integrator.integrate(final)
            logger.debug("Newton 收敛 it=%d E=%.12g dE=%.3e", it, E_final, dE)
            return final, tp
        step = dE
        if abs(dE) > config.max_dE_ratio * abs(E):
            step = math.copysign(config.max_dE_ratio * abs(E), dE)
        E_new = E - config.Edamp * step
        if not math.isfinite(E_new):
            raise DivergenceError("Newton 试探能量非有限", iteration=it, E=E, dE=dE)
        if min_e is not None and E_new <= min_e:
            E_new = 0.5 * (E + min_e)
        elif max_e is not None and E_new >= max_e:
            E_new = 0.5 * (E + max_e)
        logger.debug("Newton it=%d E=%.12g dE=%.3e -> %.12g", it, E, dE, E_new)
        E = E_new
    raise ExhaustionError("Newton 迭代超出次数", maxit=config.maxit, E=E, k=state.k)
