"""atomdirac 包
=================

单粒子（电子、μ 子等）绕核运动的相对论 Dirac 径向束缚态求解器。

本包提供：

- 对数径向网格与梯形积分
- 点核/均匀球核 Coulomb 势、Uehling 真空极化修正与网格背景电荷势
- 三点隐式 Adams–Moulton 打靶积分与失配量的能量导数
- 节点二分 + 阻尼 Newton 的能量搜索
- 按量子数 ``(n, l, s)`` 缓存已收敛态的 :class:`AtomEngine`

注：本项目所有文档与注释均使用中文，Docstring 采用 Sphinx + NumPy 风格，公式使用 ``:math:`` 标记。
"""

from atomdirac.atom import AtomEngine, StateTable
from atomdirac.errors import (
    ConfigurationError,
    ConsistencyError,
    DiracError,
    DivergenceError,
    ErrorKind,
    ExhaustionError,
    SmallGammaError,
    UnboundStateError,
)
from atomdirac.grid import LogGrid, log_grid, log_grid_indexed
from atomdirac.potential import (
    BackgroundGridPotential,
    CoulombSpherePotential,
    Potential,
    SumPotential,
    UehlingSpherePotential,
)
from atomdirac.search import SolverConfig, bracket_basin, converge_e, converge_nodes
from atomdirac.shooting import ShootingIntegrator
from atomdirac.state import RadialState, TurningPoint

__all__ = [
    "AtomEngine",
    "StateTable",
    "LogGrid",
    "log_grid",
    "log_grid_indexed",
    "Potential",
    "CoulombSpherePotential",
    "UehlingSpherePotential",
    "BackgroundGridPotential",
    "SumPotential",
    "RadialState",
    "TurningPoint",
    "ShootingIntegrator",
    "SolverConfig",
    "converge_nodes",
    "bracket_basin",
    "converge_e",
    "ErrorKind",
    "DiracError",
    "ConfigurationError",
    "UnboundStateError",
    "SmallGammaError",
    "DivergenceError",
    "ExhaustionError",
    "ConsistencyError",
]

__version__ = "0.1.0"
