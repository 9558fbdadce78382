r"""对数径向网格
=============

Dirac 径向方程在 :math:`x = \ln r` 上等距离散：

.. math::
    r_i = r_c\,e^{i\,\Delta x},\qquad x_i = \ln r_c + i\,\Delta x,\qquad i = i_0,\dots,i_1.

整数下标 :math:`i` 相对参考点 :math:`r_c` 计数，可以为负（网格向 :math:`r_c` 以内延伸）。
数组按 ``(offset=i0, length)`` 的“区块”方式存放：下标 :math:`i` 对应数组位置 ``i - i0``，
越界检查与下标正负无关。
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .errors import ConfigurationError

__all__ = [
    "LogGrid",
    "log_grid",
    "log_grid_indexed",
]


@dataclass(frozen=True)
class LogGrid:
    r"""对数等距径向网格（不可变）。

    Attributes
    ----------
    rc : float
        参考半径 :math:`r_c>0`（对应下标 :math:`i=0`）。
    dx : float
        对数步长 :math:`\Delta x>0`。
    i0, i1 : int
        首末整数下标，要求 :math:`i_0 \le i_1`，可以为负。

    Notes
    -----
    - ``r`` 与 ``x`` 为只读数组，构造后不可修改；
    - ``weights`` 为 :math:`\int f\,\mathrm{d}r` 的梯形权重，已包含 Jacobian :math:`\mathrm{d}r = r\,\mathrm{d}x`。
    """

    rc: float
    dx: float
    i0: int
    i1: int
    x: np.ndarray = field(init=False, repr=False, compare=False)
    r: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.rc > 0:
            raise ConfigurationError("对数网格要求 rc > 0", rc=self.rc)
        if not self.dx > 0:
            raise ConfigurationError("对数网格要求 dx > 0", dx=self.dx)
        if self.i0 > self.i1:
            raise ConfigurationError("要求 i0 <= i1", i0=self.i0, i1=self.i1)
        x = np.log(self.rc) + np.arange(self.i0, self.i1 + 1) * self.dx
        r = np.exp(x)
        x.flags.writeable = False
        r.flags.writeable = False
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "r", r)

    def __len__(self) -> int:
        return self.i1 - self.i0 + 1

    @property
    def indices(self) -> np.ndarray:
        """整数下标 ``i0..i1``。"""
        return np.arange(self.i0, self.i1 + 1)

    @property
    def loggrid(self) -> np.ndarray:
        return self.x

    @property
    def weights(self) -> np.ndarray:
        r"""等距 :math:`x` 上的梯形权重 :math:`w_i = \Delta x\,r_i`，两端点减半。"""
        w = self.dx * self.r
        if w.size == 1:
            w[0] = 0.0
            return w
        w[0] *= 0.5
        w[-1] *= 0.5
        return w

    def position(self, i: int) -> int:
        """整数下标 ``i`` 在数组中的位置 ``i - i0``；越界抛出 :class:`IndexError`。"""
        if i < self.i0 or i > self.i1:
            raise IndexError(f"下标 {i} 超出网格范围 [{self.i0}, {self.i1}]")
        return i - self.i0

    def r_at(self, i: int) -> float:
        r"""任意整数（或实数）下标处的半径 :math:`r_c e^{i\Delta x}`，不要求在网格内。"""
        return float(self.rc * np.exp(i * self.dx))

    def index_of(self, r: float) -> float:
        r"""半径 ``r`` 对应的（实数）下标 :math:`\ln(r/r_c)/\Delta x`。"""
        return float(np.log(r / self.rc) / self.dx)

    def integrate(self, f: np.ndarray) -> float:
        r"""梯形积分 :math:`\int_{r_{i_0}}^{r_{i_1}} f(r)\,\mathrm{d}r`。"""
        if f.shape != self.r.shape:
            raise ConfigurationError("被积函数与网格形状不一致", shape=f.shape, size=len(self))
        return float(np.sum(self.weights * f))


def log_grid_indexed(rc: float, dx: float, i0: int, i1: int) -> LogGrid:
    """由 ``(rc, dx, i0, i1)`` 构造对数网格。"""
    return LogGrid(float(rc), float(dx), int(i0), int(i1))


def log_grid(x0: float, x1: float, n: int) -> LogGrid:
    r"""由端点与点数构造对数网格。

    .. math::
        r_i = x_0\,\exp(i\,\Delta x),\quad \Delta x = \frac{\ln x_1 - \ln x_0}{N-1},\quad i = 0..N-1.

    Parameters
    ----------
    x0, x1 : float
        首末半径，要求 :math:`0 < x_0 < x_1`。
    n : int
        网格点数 :math:`N \ge 2`。

    Returns
    -------
    LogGrid
        ``rc = x0``、``i0 = 0``、``i1 = N-1`` 的网格。
    """
    if n < 2:
        raise ConfigurationError("n 必须 >= 2", n=n)
    if x0 <= 0:
        raise ConfigurationError("对数网格要求 x0 > 0", x0=x0)
    if x1 <= x0:
        raise ConfigurationError("要求 x1 > x0", x0=x0, x1=x1)
    dx = (np.log(x1) - np.log(x0)) / (n - 1)
    return LogGrid(float(x0), float(dx), 0, n - 1)
