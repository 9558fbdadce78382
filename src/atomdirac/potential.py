r"""势能模块
=========

求解器只要求势能提供标量求值 :math:`V(r)`（轨道粒子的势能，单位 Hartree，:math:`r \ge 0`），
其余接口都有基于标量求值的默认实现：

- :meth:`Potential.evaluate`：标量求值（唯一必须实现的方法）；
- :meth:`Potential.evaluate_array`：数组求值，默认逐点调用 ``evaluate``；
- :meth:`Potential.sample`：在 :class:`~atomdirac.grid.LogGrid` 上采样，默认为 ``evaluate_array(grid.r)``，
  背景电荷势在网格对齐时改用精确的格点值。

提供的实现
==========

- :class:`CoulombSpherePotential`：点核或均匀带电球核的 Coulomb 势；
- :class:`UehlingSpherePotential`：Uehling 真空极化修正（点核或均匀球核）；
- :class:`BackgroundGridPotential`：对数网格上给出的径向电荷密度产生的势（如电子屏蔽）；
- :class:`SumPotential`：若干势之和。

符号约定：轨道粒子带负电（电子、μ 子），正电荷产生吸引势 :math:`V<0`。

References
----------
.. [Uehling] E. A. Uehling, "Polarization effects in the positron theory",
   Phys. Rev. 48, 55 (1935)
.. [Fullerton] L. W. Fullerton & G. A. Rinker, "Accurate and efficient methods for the
   evaluation of vacuum polarization potentials of order Zα and Zα²",
   Phys. Rev. A 13, 1283 (1976)
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod

import numpy as np
from scipy.integrate import cumulative_trapezoid, trapezoid

from .constants import ALPHA, C
from .errors import ConfigurationError
from .grid import LogGrid

__all__ = [
    "Potential",
    "CoulombSpherePotential",
    "UehlingSpherePotential",
    "BackgroundGridPotential",
    "SumPotential",
]

logger = logging.getLogger(__name__)


class Potential(ABC):
    """势能抽象接口：唯一能力为 ``evaluate(r) -> float``。"""

    @abstractmethod
    def evaluate(self, r: float) -> float:
        """在半径 ``r >= 0`` 处求势能。"""

    def __call__(self, r: float) -> float:
        return self.evaluate(r)

    def evaluate_array(self, r: np.ndarray) -> np.ndarray:
        r = np.asarray(r, dtype=float)
        out = np.array([self.evaluate(float(ri)) for ri in r.ravel()], dtype=float)
        return out.reshape(r.shape)

    def sample(self, grid: LogGrid) -> np.ndarray:
        """在对数网格上采样势能，返回与 ``grid.r`` 等长的新数组。"""
        return self.evaluate_array(grid.r)


def _check_radius(r) -> None:
    if np.any(np.asarray(r) < 0):
        raise ConfigurationError("势能不接受负半径", r=r)


class CoulombSpherePotential(Potential):
    r"""点核或均匀带电球核的 Coulomb 势。

    .. math::
        V(r) = \begin{cases}
            \dfrac{Z r^2}{2R^3} - \dfrac{3Z}{2R}, & r < R \\[2mm]
            -\dfrac{Z}{r}, & r \ge R
        \end{cases}

    Parameters
    ----------
    Z : float
        核电荷（可以为分数）。
    R : float, optional
        核半径；``None`` 或非正值表示点核，此时 :math:`V(0) = -\infty`。
    """

    def __init__(self, Z: float, R: float | None = None):
        self.Z = float(Z)
        self.R = float(R) if R is not None and R > 0 else None
        self._R3 = self.R ** 3 if self.R else 0.0
        self._VR = -1.5 * self.Z / self.R if self.R else 0.0

    @property
    def is_point(self) -> bool:
        return self.R is None

    def evaluate(self, r: float) -> float:
        if r < 0:
            raise ConfigurationError("势能不接受负半径", r=r)
        if self.R is not None and r < self.R:
            return self.Z * r * r / (2.0 * self._R3) + self._VR
        if r == 0:
            return -math.inf
        return -self.Z / r

    def evaluate_array(self, r: np.ndarray) -> np.ndarray:
        r = np.asarray(r, dtype=float)
        _check_radius(r)
        with np.errstate(divide="ignore"):
            out = -self.Z / r
        if self.R is not None:
            inside = r < self.R
            out[inside] = self.Z * r[inside] ** 2 / (2.0 * self._R3) + self._VR
        return out


class UehlingSpherePotential(Potential):
    r"""Uehling 真空极化修正势（点核或均匀球核）。

    点核（原子单位，:math:`\lambda = 2c/u`）：

    .. math::
        V_U(r) = -\frac{2\alpha Z}{3\pi r}\int_0^1 \frac{K(u)}{u}\,e^{-\lambda r}\,\mathrm{d}u,
        \qquad K(u) = \sqrt{1-u^2}\left(1+\frac{u^2}{2}\right).

    均匀球核（半径 :math:`R`）对壳层做角向平均后得到闭式核函数 :math:`S(r,\lambda)`：

    .. math::
        V_U(r) = -\frac{\alpha^2 Z}{2\pi r R^3}\int_0^1 K(u)\,S(r,\lambda)\,\mathrm{d}u,

    .. math::
        S = \begin{cases}
            e^{-\lambda(r-R)}\left(\dfrac{R}{\lambda}-\dfrac{1}{\lambda^2}\right)
            + e^{-\lambda(r+R)}\left(\dfrac{R}{\lambda}+\dfrac{1}{\lambda^2}\right), & r \ge R\\[2mm]
            \dfrac{2r}{\lambda} - e^{-\lambda(R-r)}\left(1-e^{-2\lambda r}\right)
            \left(\dfrac{R}{\lambda}+\dfrac{1}{\lambda^2}\right), & r < R
        \end{cases}

    所有指数的幂次均非正，避免溢出。对 :math:`u` 的积分采用等距梯形规则。

    Parameters
    ----------
    Z : float
        核电荷。
    R : float, optional
        核半径；``None`` 或非正值表示点核。
    usteps : int, optional
        :math:`u\in[0,1]` 的积分点数，默认 1000。
    cutoff : float, optional
        当 :math:`2c\,(r-R) > \text{cutoff}` 时势能取 0，默认 30。

    Notes
    -----
    - 点核时 :math:`V_U(0) = -\infty`；球核时 :math:`r=0` 取解析极限。
    """

    _CHUNK = 256

    def __init__(self, Z: float, R: float | None = None, usteps: int = 1000, cutoff: float = 30.0):
        if usteps < 3:
            raise ConfigurationError("usteps 必须 >= 3", usteps=usteps)
        self.Z = float(Z)
        self.R = float(R) if R is not None and R > 0 else None
        self.usteps = int(usteps)
        self.cutoff = float(cutoff)
        self.du = 1.0 / (usteps - 1)
        # u=0 处被积函数为 0，只保留 u>0 的点
        u = np.linspace(0.0, 1.0, usteps)[1:]
        self._u = u
        self._ker = np.sqrt(1.0 - u * u) * (1.0 + 0.5 * u * u)
        self._inv_lam = 0.5 * u * ALPHA
        self._lam = 2.0 * C / u
        if self.R is None:
            self._pref = -2.0 * ALPHA * self.Z / (3.0 * math.pi)
        else:
            self._pref = -ALPHA ** 2 * self.Z / (2.0 * math.pi * self.R ** 3)
        self._r_cut = (self.R or 0.0) + 0.5 * self.cutoff * ALPHA

    def _integrate_u(self, f: np.ndarray) -> np.ndarray:
        # 补上 u=0 处的零值列
        f = np.concatenate([np.zeros(f.shape[:-1] + (1,)), f], axis=-1)
        return trapezoid(f, dx=self.du, axis=-1)

    def _kernel(self, r: np.ndarray) -> np.ndarray:
        """返回 ``r`` 每个元素对应的 :math:`V_U(r)`，要求 ``0 < r < r_cut``。"""
        rr = r[:, None]
        lam = self._lam[None, :]
        inv = self._inv_lam[None, :]
        if self.R is None:
            f = self._ker / self._u * np.exp(-lam * rr)
            return self._pref / r * self._integrate_u(f)
        R = self.R
        outside = np.exp(-lam * np.abs(rr - R)) * (R * inv - inv * inv) + np.exp(-lam * (rr + R)) * (R * inv + inv * inv)
        inside = 2.0 * rr * inv + np.exp(-lam * np.abs(R - rr)) * np.expm1(-2.0 * lam * rr) * (R * inv + inv * inv)
        S = np.where(rr >= R, outside, inside)
        return self._pref / r * self._integrate_u(self._ker * S)

    def _value_at_origin(self) -> float:
        if self.R is None:
            return -math.inf
        s0 = 2.0 * self._inv_lam - 2.0 * np.exp(-self._lam * self.R) * (self.R + self._inv_lam)
        return float(self._pref * self._integrate_u(self._ker * s0))

    def evaluate(self, r: float) -> float:
        return float(self.evaluate_array(np.array([r], dtype=float))[0])

    def evaluate_array(self, r: np.ndarray) -> np.ndarray:
        r = np.asarray(r, dtype=float)
        _check_radius(r)
        flat = r.ravel()
        out = np.zeros_like(flat)
        out[flat == 0] = self._value_at_origin()
        active = np.flatnonzero((flat > 0) & (flat < self._r_cut))
        for start in range(0, active.size, self._CHUNK):
            idx = active[start:start + self._CHUNK]
            out[idx] = self._kernel(flat[idx])
        return out.reshape(r.shape)


class BackgroundGridPotential(Potential):
    r"""对数网格上径向电荷密度产生的势能。

    ``rho`` 为径向电荷密度 :math:`\rho(r) = 4\pi r^2 n_q(r)`（单位电荷/单位半径，正电荷为吸引），
    带负电的轨道粒子感受到的势能为 :math:`V = -\phi`：

    .. math::
        V(r) = -\left[\frac{Q(r)}{r} + \int_r^{r_{i_1}} \frac{\rho(r')}{r'}\,\mathrm{d}r'\right],
        \qquad Q(r) = Q_0 + \int_{r_{i_0}}^{r}\rho(r')\,\mathrm{d}r'.

    :math:`r < r_{i_0}` 视为密度均匀的核心，:math:`Q_0 = \rho_0 r_{i_0}/3`，
    :math:`V(r) = V(r_{i_0}) + \rho_0 (r^2/r_{i_0}^2 - 1)/6`；:math:`r > r_{i_1}` 时 :math:`V = -Q/r`。
    网格内部在 :math:`r` 上线性插值。

    Parameters
    ----------
    rho : numpy.ndarray
        径向电荷密度，长度为 ``i1 - i0 + 1``。
    rc, dx, i0, i1
        对数网格参数，见 :class:`~atomdirac.grid.LogGrid`。

    Notes
    -----
    - 两段累积（向前电荷、向后 :math:`\rho/r`）均在 :math:`x=\ln r` 上用
      ``scipy.integrate.cumulative_trapezoid`` 完成；
    - 当求解网格与本网格的 ``rc``、``dx`` 一致时，:meth:`sample` 直接使用格点值 :meth:`v_grid`。
    """

    def __init__(self, rho: np.ndarray, rc: float, dx: float, i0: int, i1: int):
        self.grid = LogGrid(float(rc), float(dx), int(i0), int(i1))
        rho = np.asarray(rho, dtype=float)
        if rho.shape != self.grid.r.shape:
            raise ConfigurationError("rho 与网格长度不一致", size=rho.size, grid=len(self.grid))
        self.rho = rho
        self._init_potential()

    def _init_potential(self) -> None:
        r = self.grid.r
        dx = self.grid.dx
        self.rho0 = float(self.rho[0])
        q_core = self.rho0 * r[0] / 3.0
        # dr = r dx
        q_in = q_core + cumulative_trapezoid(self.rho * r, dx=dx, initial=0.0)
        tail = cumulative_trapezoid(self.rho, dx=dx, initial=0.0)
        outer = tail[-1] - tail
        self.Q = float(q_in[-1])
        self.vpot = -(q_in / r + outer)
        self.vpot.flags.writeable = False
        logger.debug("背景电荷势：网格 [%d, %d]，总电荷 Q = %.6e", self.grid.i0, self.grid.i1, self.Q)

    @property
    def rc(self) -> float:
        return self.grid.rc

    @property
    def dx(self) -> float:
        return self.grid.dx

    def _core(self, r):
        r0 = self.grid.r[0]
        return self.vpot[0] + self.rho0 * ((r / r0) ** 2 - 1.0) / 6.0

    def evaluate(self, r: float) -> float:
        if r < 0:
            raise ConfigurationError("势能不接受负半径", r=r)
        g = self.grid
        if r <= g.r[0]:
            return float(self._core(r))
        if r >= g.r[-1]:
            return -self.Q / r
        return float(np.interp(r, g.r, self.vpot))

    def evaluate_array(self, r: np.ndarray) -> np.ndarray:
        r = np.asarray(r, dtype=float)
        _check_radius(r)
        g = self.grid
        out = np.interp(r, g.r, self.vpot)
        inner = r <= g.r[0]
        outer = r >= g.r[-1]
        out[inner] = self._core(r[inner])
        out[outer] = -self.Q / r[outer]
        return out

    def v_grid(self, i) -> np.ndarray | float:
        """整数下标 ``i``（标量或数组）处的精确势能值，网格外按解析延拓。"""
        i_arr = np.atleast_1d(np.asarray(i, dtype=int))
        g = self.grid
        r = g.rc * np.exp(i_arr * g.dx)
        out = np.empty(i_arr.shape, dtype=float)
        inside = (i_arr >= g.i0) & (i_arr <= g.i1)
        out[inside] = self.vpot[i_arr[inside] - g.i0]
        below = i_arr < g.i0
        out[below] = self._core(r[below])
        above = i_arr > g.i1
        out[above] = -self.Q / r[above]
        if np.ndim(i) == 0:
            return float(out[0])
        return out

    def aligned_with(self, grid: LogGrid) -> bool:
        return math.isclose(grid.rc, self.rc, rel_tol=1e-12) and math.isclose(grid.dx, self.dx, rel_tol=1e-12)

    def sample(self, grid: LogGrid) -> np.ndarray:
        if self.aligned_with(grid):
            return self.v_grid(grid.indices)
        return self.evaluate_array(grid.r)


class SumPotential(Potential):
    """若干势能之和。"""

    def __init__(self, *terms: Potential):
        if not terms:
            raise ConfigurationError("SumPotential 至少需要一项")
        self.terms = tuple(terms)

    def evaluate(self, r: float) -> float:
        return float(sum(t.evaluate(r) for t in self.terms))

    def evaluate_array(self, r: np.ndarray) -> np.ndarray:
        return np.sum([t.evaluate_array(r) for t in self.terms], axis=0)

    def sample(self, grid: LogGrid) -> np.ndarray:
        return np.sum([t.sample(grid) for t in self.terms], axis=0)
