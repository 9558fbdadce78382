r"""径向态与匹配点
===============

:class:`RadialState` 保存一次能量试探（或收敛结果）在对数网格上的大分量 :math:`P`、
小分量 :math:`Q` 与势能采样 :math:`V`；:class:`TurningPoint` 记录两侧积分在匹配点处的取值。

约定
----
- ``Pi, Qi`` 来自从原点一侧出发的积分，``Pe, Qe`` 来自从外边界出发的积分；
- 积分完成后数组在匹配点（含）之后存放外侧积分的值，:meth:`RadialState.continuify`
  将该段乘以 :math:`P_i/P_e` 使 :math:`P` 连续；
- 归一化 :math:`\int (P^2 + Q^2)\,\mathrm{d}r = 1`。
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

from .errors import DivergenceError
from .grid import LogGrid
from .quantum import qnum_dirac_to_schro, qnum_nodes_to_principal
from .utils import count_nodes

__all__ = ["RadialState", "TurningPoint"]


@dataclass
class TurningPoint:
    """匹配点：数组位置 ``i`` 与两侧积分的 ``P, Q`` 值。"""

    i: int
    Pi: float
    Pe: float
    Qi: float
    Qe: float

    @property
    def err(self) -> float:
        r"""失配量 :math:`Q_i/P_i - Q_e/P_e`；分母为零时返回 ``nan``。"""
        if self.Pi == 0.0 or self.Pe == 0.0:
            return math.nan
        return self.Qi / self.Pi - self.Qe / self.Pe


@dataclass(eq=False)
class RadialState:
    r"""Dirac 径向态。

    Attributes
    ----------
    grid : LogGrid
        态所在的对数网格。
    P, Q : numpy.ndarray
        大、小分量，长度与网格一致。
    V : numpy.ndarray
        势能在网格上的采样。
    E : float
        总能量（含静能 :math:`\mu c^2`）。
    k : int
        Dirac 量子数（非零）。
    nodes, nodes_q : int
        :math:`P`、:math:`Q` 的节点数，由 :meth:`find_nodes` 更新。
    initialized : bool
        仅当态已收敛并通过节点定理检查时为 ``True``。
    """

    grid: LogGrid
    P: np.ndarray
    Q: np.ndarray
    V: np.ndarray
    E: float
    k: int
    nodes: int = 0
    nodes_q: int = 0
    initialized: bool = field(default=False)

    @classmethod
    def empty(cls, grid: LogGrid, V: np.ndarray, E: float, k: int) -> "RadialState":
        """在 ``grid`` 上构造零波函数的试探态。"""
        return cls(grid, np.zeros(len(grid)), np.zeros(len(grid)), np.asarray(V, dtype=float), float(E), int(k))

    @property
    def r(self) -> np.ndarray:
        return self.grid.r

    @property
    def x(self) -> np.ndarray:
        return self.grid.x

    loggrid = x

    @property
    def l(self) -> int:
        return qnum_dirac_to_schro(self.k)[0]

    @property
    def s(self) -> bool:
        return qnum_dirac_to_schro(self.k)[1]

    @property
    def n(self) -> int:
        """由 :math:`P` 的节点数推出的主量子数。"""
        return qnum_nodes_to_principal(self.nodes, self.l)

    def norm(self) -> float:
        r""":math:`\int (P^2 + Q^2)\,\mathrm{d}r`（对数网格梯形积分，含 Jacobian :math:`r`）。"""
        return self.grid.integrate(self.P ** 2 + self.Q ** 2)

    def continuify(self, tp: TurningPoint) -> None:
        """将匹配点（含）之后的外侧解乘以 ``Pi/Pe``，使 ``P`` 在匹配点连续。"""
        if tp.Pe == 0.0:
            raise DivergenceError("匹配点处外侧积分 P 为零，无法拼接", i=tp.i, E=self.E)
        scale = tp.Pi / tp.Pe
        self.P[tp.i:] *= scale
        self.Q[tp.i:] *= scale

    def find_nodes(self) -> tuple[int, int]:
        self.nodes = count_nodes(self.P)
        self.nodes_q = count_nodes(self.Q)
        return self.nodes, self.nodes_q

    def normalize(self) -> None:
        nrm = self.norm()
        if not (nrm > 0 and math.isfinite(nrm)):
            raise DivergenceError("波函数范数非正或非有限", norm=nrm, E=self.E, k=self.k)
        scale = 1.0 / math.sqrt(nrm)
        self.P *= scale
        self.Q *= scale

    def copy(self) -> "RadialState":
        return RadialState(
            self.grid,
            self.P.copy(),
            self.Q.copy(),
            self.V.copy(),
            self.E,
            self.k,
            self.nodes,
            self.nodes_q,
            self.initialized,
        )
