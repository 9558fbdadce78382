r"""Dirac 径向方程的打靶积分
=========================

在 :math:`x = \ln r` 的等距网格上求解一阶耦合方程组

.. math::
    \frac{\mathrm{d}P}{\mathrm{d}x} = -k P + a Q,\qquad
    \frac{\mathrm{d}Q}{\mathrm{d}x} = k Q - b P,

其中

.. math::
    a = r\left(\frac{E - V}{c} + \mu c\right),\qquad
    b = r\left(\frac{E - V}{c} - \mu c\right).

以束缚能 :math:`B = E - \mu c^2` 写作 :math:`b = r(B - V)/c`、:math:`a = b + 2\mu c\,r`，避免大数相消。

算法
----
1. 匹配点取最外侧的经典允许点（:math:`b > 0`），限制在数组位置 :math:`[2, N-3]`；
2. 从原点一侧按内边界渐近形式置两个初值，向外积分到匹配点；
   从外边界按指数衰减形式置两个初值，向内积分到匹配点；
3. 每步使用三点隐式 Adams–Moulton 公式（三阶），2×2 线性方程组精确求解：

   .. math::
       \left(I - \tfrac{5h}{12} M_i\right) y_i = y_{i-1} + \tfrac{h}{12}\left(8 f_{i-1} - f_{i-2}\right),
       \qquad M = \begin{pmatrix} -k & a \\ -b & k \end{pmatrix};

   向内积分取 :math:`h = -\Delta x`。隐式格式在指数增长/衰减区稳定。
4. 失配量 :math:`\mathrm{err} = Q_i/P_i - Q_e/P_e`。

能量导数
--------
:math:`(\dot P, \dot Q) = \partial(P, Q)/\partial E` 满足非齐次线性方程组

.. math::
    \dot P' = -k\dot P + a\dot Q + \frac{r}{c} Q,\qquad
    \dot Q' = k\dot Q - b\dot P - \frac{r}{c} P,

用同一格式、同一匹配点积分。:math:`\zeta = \partial(Q/P)/\partial E = (\dot Q P - Q\dot P)/P^2`，
Newton 修正量 :math:`\delta E = \mathrm{err}/(\zeta_i - \zeta_e)`。

References
----------
.. [Grant] I. P. Grant, "Relativistic Quantum Theory of Atoms and Molecules", Springer (2007), Ch. 8
.. [Johnson] W. R. Johnson, "Atomic Structure Theory", Springer (2007), Sec. 2.3
"""

from __future__ import annotations

import logging
import math

import numpy as np

from .constants import ALPHA, C
from .errors import ConfigurationError, DivergenceError, SmallGammaError, UnboundStateError
from .state import RadialState, TurningPoint

__all__ = ["ShootingIntegrator", "boundary_dirac_coulomb", "turning_point_index"]

logger = logging.getLogger(__name__)

_MIN_POINTS = 5


def _coefficients(state: RadialState, mu: float) -> tuple[np.ndarray, np.ndarray]:
    B = state.E - mu * C * C
    b = state.r * (B - state.V) / C
    a = b + 2.0 * mu * C * state.r
    return a, b


def turning_point_index(b: np.ndarray) -> int:
    """最外侧经典允许点（``b > 0``）的数组位置，限制在 ``[2, N-3]``。"""
    n = b.size
    allowed = np.flatnonzero(b > 0)
    i = int(allowed[-1]) if allowed.size else 0
    return min(max(i, 2), n - 3)


def _am3_sweep(k, a, b, h, P, Q, start, stop, step, sP=None, sQ=None):
    """三点隐式 Adams–Moulton 扫描。

    ``P[start], P[start+step]``（及 ``Q``）为已置初值，按 ``step`` 方向写入直到 ``stop``（含）。
    ``sP, sQ`` 为可选的非齐次源项。
    """
    c = 5.0 * h / 12.0
    h12 = h / 12.0
    ck = c * k
    src = sP is not None

    j2 = start
    j1 = start + step
    fP2 = -k * P[j2] + a[j2] * Q[j2]
    fQ2 = k * Q[j2] - b[j2] * P[j2]
    fP1 = -k * P[j1] + a[j1] * Q[j1]
    fQ1 = k * Q[j1] - b[j1] * P[j1]
    if src:
        fP2 += sP[j2]
        fQ2 += sQ[j2]
        fP1 += sP[j1]
        fQ1 += sQ[j1]

    for i in range(start + 2 * step, stop + step, step):
        rp = P[j1] + h12 * (8.0 * fP1 - fP2)
        rq = Q[j1] + h12 * (8.0 * fQ1 - fQ2)
        if src:
            rp += c * sP[i]
            rq += c * sQ[i]
        ai = a[i]
        bi = b[i]
        det = 1.0 - ck * ck + c * c * ai * bi
        if det == 0.0:
            raise DivergenceError("Adams–Moulton 步的线性方程组奇异", i=i, k=k)
        p = ((1.0 - ck) * rp + c * ai * rq) / det
        q = (-c * bi * rp + (1.0 + ck) * rq) / det
        P[i] = p
        Q[i] = q
        fP2, fQ2 = fP1, fQ1
        fP1 = -k * p + ai * q
        fQ1 = k * q - bi * p
        if src:
            fP1 += sP[i]
            fQ1 += sQ[i]
        j1 = i


def _zeta(P, Q, dP, dQ) -> float:
    if P == 0.0:
        return math.nan
    return (dQ * P - Q * dP) / (P * P)


def boundary_dirac_coulomb(state: RadialState, mu: float, Z: float, R: float | None = None):
    r"""内外边界各两个点的 :math:`(P, Q)` 初值。

    Parameters
    ----------
    state : RadialState
        试探态（需已设置网格、势能、能量与 ``k``）。
    mu : float
        约化质量。
    Z : float
        核电荷。
    R : float, optional
        核半径；``R`` 大于网格首点时采用有限核的内边界形式。

    Returns
    -------
    inner : tuple[float, float, float, float]
        位置 0、1 处的 ``(P0, Q0, P1, Q1)``。
    outer : tuple[float, float, float, float]
        位置 N-1、N-2 处的 ``(P0, Q0, P1, Q1)``。

    Notes
    -----
    - 点核：:math:`P = (r/r_0)^\gamma`，:math:`Q/P = (k+\gamma)/(Z\alpha)`
      （:math:`k<0` 时写作 :math:`Z\alpha/(k-\gamma)` 避免相消）；
    - 有限核（常数势 :math:`V_0`）：:math:`k<0` 时 :math:`P = (r/r_0)^{-k}`、
      :math:`Q = -\beta r P/(1-2k)`；:math:`k>0` 时 :math:`Q = (r/r_0)^{k}`、
      :math:`P = \alpha_0 r Q/(2k+1)`；
    - 外边界：:math:`P = e^{-K(r - r_N)}`，:math:`Q = -K P/(\mu c + E/c)`；
    - 幅度以边界点为参考，只有比值有意义。
    """
    r = state.r
    k = state.k
    w = (state.E - mu * C * C) / C
    K2 = -w * (2.0 * mu * C + w)
    if not K2 > 0:
        raise UnboundStateError("能量不在束缚区", E=state.E, k=k)
    K = math.sqrt(K2)

    if R is not None and R > r[0]:
        beta = (w * C - state.V[0]) / C
        alpha0 = beta + 2.0 * mu * C
        if k < 0:
            P0, P1 = 1.0, math.exp(-k * (state.x[1] - state.x[0]))
            Q0 = -beta * r[0] * P0 / (1.0 - 2.0 * k)
            Q1 = -beta * r[1] * P1 / (1.0 - 2.0 * k)
        else:
            Q0, Q1 = 1.0, math.exp(k * (state.x[1] - state.x[0]))
            P0 = alpha0 * r[0] * Q0 / (2.0 * k + 1.0)
            P1 = alpha0 * r[1] * Q1 / (2.0 * k + 1.0)
    else:
        za = Z * ALPHA
        g2 = k * k - za * za
        if not g2 > 0:
            raise SmallGammaError("k^2 < (Z alpha)^2，幂律近原点行为不存在", k=k, Z=Z)
        gamma = math.sqrt(g2)
        ratio = za / (k - gamma) if k < 0 else (k + gamma) / za
        P0, P1 = 1.0, math.exp(gamma * (state.x[1] - state.x[0]))
        Q0, Q1 = ratio * P0, ratio * P1

    y_out = -K / (mu * C + state.E / C)
    rN = r[-1]
    p0 = 1.0
    p1 = math.exp(-K * (r[-2] - rN))
    return (P0, Q0, P1, Q1), (p0, y_out * p0, p1, y_out * p1)


class ShootingIntegrator:
    r"""Dirac 径向方程打靶积分器。

    Parameters
    ----------
    mu : float
        约化质量。
    Z : float
        核电荷（用于点核内边界条件）。
    R : float, optional
        核半径；``None`` 表示点核。
    """

    def __init__(self, mu: float, Z: float, R: float | None = None):
        self.mu = float(mu)
        self.Z = float(Z)
        self.R = R

    def _check(self, state: RadialState) -> None:
        if len(state.grid) < _MIN_POINTS:
            raise ConfigurationError("网格点数过少，无法打靶", size=len(state.grid))

    def _sweeps(self, state: RadialState):
        self._check(state)
        n = len(state.grid)
        h = state.grid.dx
        a, b = _coefficients(state, self.mu)
        a = a.tolist()
        b_list = b.tolist()
        tp = turning_point_index(b)
        inner, outer = boundary_dirac_coulomb(state, self.mu, self.Z, self.R)

        Pf = [0.0] * n
        Qf = [0.0] * n
        Pf[0], Qf[0], Pf[1], Qf[1] = inner
        _am3_sweep(state.k, a, b_list, h, Pf, Qf, 0, tp, 1)

        Pb = [0.0] * n
        Qb = [0.0] * n
        Pb[n - 1], Qb[n - 1], Pb[n - 2], Qb[n - 2] = outer
        _am3_sweep(state.k, a, b_list, -h, Pb, Qb, n - 1, tp, -1)
        return tp, a, b_list, Pf, Qf, Pb, Qb

    @staticmethod
    def _store(state: RadialState, tp: int, Pf, Qf, Pb, Qb) -> TurningPoint:
        state.P = np.array(Pf[:tp] + Pb[tp:], dtype=float)
        state.Q = np.array(Qf[:tp] + Qb[tp:], dtype=float)
        return TurningPoint(tp, Pf[tp], Pb[tp], Qf[tp], Qb[tp])

    def integrate(self, state: RadialState) -> TurningPoint:
        """两侧积分并写入 ``state.P, state.Q``，返回匹配点。"""
        tp, _, _, Pf, Qf, Pb, Qb = self._sweeps(state)
        return self._store(state, tp, Pf, Qf, Pb, Qb)

    def integrate_with_derivative(self, state: RadialState) -> tuple[TurningPoint, float]:
        r"""积分并计算 Newton 修正量 :math:`\delta E = \mathrm{err}/(\zeta_i - \zeta_e)`。

        ``dE`` 可能为 ``nan`` 或 ``inf``（匹配点处 :math:`P` 为零或导数差为零），由调用者判定。
        """
        tp, a, b, Pf, Qf, Pb, Qb = self._sweeps(state)
        n = len(state.grid)
        r = state.r.tolist()
        E = state.E
        mu = self.mu
        k = state.k
        h = state.grid.dx
        inv_c = 1.0 / C

        # 源项只在各自积分段内使用
        sPf = [0.0] * n
        sQf = [0.0] * n
        for i in range(tp + 1):
            sPf[i] = r[i] * inv_c * Qf[i]
            sQf[i] = -r[i] * inv_c * Pf[i]
        sPb = [0.0] * n
        sQb = [0.0] * n
        for i in range(tp, n):
            sPb[i] = r[i] * inv_c * Qb[i]
            sQb[i] = -r[i] * inv_c * Pb[i]

        dPf = [0.0] * n
        dQf = [0.0] * n
        if self.R is not None and self.R > r[0]:
            for i in (0, 1):
                if k < 0:
                    dQf[i] = -inv_c * r[i] * Pf[i] / (1.0 - 2.0 * k)
                else:
                    dPf[i] = inv_c * r[i] * Qf[i] / (2.0 * k + 1.0)
        _am3_sweep(k, a, b, h, dPf, dQf, 0, tp, 1, sPf, sQf)

        w = (E - mu * C * C) / C
        K = math.sqrt(-w * (2.0 * mu * C + w))
        denom = mu * C + E / C
        y_out = -K / denom
        zeta_out = mu / (K * denom)
        rN = r[-1]
        dPb = [0.0] * n
        dQb = [0.0] * n
        for i in (n - 1, n - 2):
            dPb[i] = E / (C * C * K) * (r[i] - rN) * Pb[i]
            dQb[i] = zeta_out * Pb[i] + y_out * dPb[i]
        _am3_sweep(k, a, b, -h, dPb, dQb, n - 1, tp, -1, sPb, sQb)

        turning = self._store(state, tp, Pf, Qf, Pb, Qb)
        err = turning.err
        zi = _zeta(Pf[tp], Qf[tp], dPf[tp], dQf[tp])
        ze = _zeta(Pb[tp], Qb[tp], dPb[tp], dQb[tp])
        slope = zi - ze
        if slope == 0.0 or not math.isfinite(err):
            dE = math.nan
        else:
            dE = err / slope
        logger.debug("积分 E=%.12g k=%d tp=%d err=%.3e dE=%.3e", E, k, tp, err, dE)
        return turning, dE
