r"""量子数换算与氢样能级
=====================

Dirac 角量子数 :math:`k`（常记作 :math:`\kappa`）同时编码轨道量子数 :math:`l` 与总角动量
:math:`j = l \pm 1/2`：

.. math::
    k = -(l+1)\quad (j = l + 1/2,\ s=\text{True}),\qquad k = l\quad (j = l - 1/2,\ s=\text{False}).

:math:`l = 0` 只有 :math:`j = 1/2`，统一取 :math:`k=-1`、:math:`s=\text{True}`。

大分量 :math:`P` 的节点数与主量子数的关系为 :math:`n = \text{nodes} + l + 1`。
"""

from __future__ import annotations

import math

from .constants import ALPHA, C
from .errors import ConfigurationError

__all__ = [
    "qnum_schro_to_dirac",
    "qnum_dirac_to_schro",
    "qnum_nodes_to_principal",
    "qnum_principal_to_nodes",
    "hydrogenic_dirac_energy",
    "hydrogenic_schro_energy",
]


def qnum_schro_to_dirac(l: int, s: bool) -> int:
    """由 ``(l, s)`` 求 Dirac 量子数 ``k``。"""
    if l < 0:
        raise ConfigurationError("轨道量子数必须非负", l=l)
    if s or l == 0:
        return -l - 1
    return l


def qnum_dirac_to_schro(k: int) -> tuple[int, bool]:
    """由 Dirac 量子数 ``k`` 求 ``(l, s)``。"""
    if k == 0:
        raise ConfigurationError("Dirac 量子数 k 不能为 0")
    if k < 0:
        return -k - 1, True
    return k, False


def qnum_nodes_to_principal(nodes: int, l: int) -> int:
    return nodes + l + 1


def qnum_principal_to_nodes(n: int, l: int) -> int:
    if n <= l:
        raise ConfigurationError("要求 n > l", n=n, l=l)
    return n - l - 1


def hydrogenic_dirac_energy(Z: float, mu: float, n: int, k: int = -1, rest_energy: bool = True) -> float:
    r"""点核 Coulomb 势下 Dirac 方程的解析能级。

    .. math::
        E_{nk} = \frac{\mu c^2}{\sqrt{1 + \left(\dfrac{Z\alpha}{n - |k| + \gamma}\right)^2}},
        \qquad \gamma = \sqrt{k^2 - (Z\alpha)^2}.

    Parameters
    ----------
    Z : float
        核电荷。
    mu : float
        约化质量。
    n : int
        主量子数，要求 :math:`n \ge |k|`，且 :math:`k>0` 时 :math:`n > k`。
    k : int, optional
        Dirac 量子数，默认 :math:`-1`（s 态）。
    rest_energy : bool, optional
        为 ``True``（默认）时返回含静能的总能量，否则返回束缚能 :math:`E - \mu c^2`。

    Returns
    -------
    float
        能量（Hartree）。
    """
    if k == 0:
        raise ConfigurationError("Dirac 量子数 k 不能为 0")
    if n < abs(k) or (k > 0 and n == k):
        raise ConfigurationError("量子数组合非法", n=n, k=k)
    za = Z * ALPHA
    gamma2 = k * k - za * za
    if gamma2 < 0:
        raise ConfigurationError("Z*alpha > |k|，解析能级不存在", Z=Z, k=k)
    x2 = (za / (n - abs(k) + math.sqrt(gamma2))) ** 2
    root = math.sqrt(1.0 + x2)
    if rest_energy:
        return mu * C * C / root
    # 避免 E - mu c^2 的相消误差
    return -mu * C * C * x2 / (root * (1.0 + root))


def hydrogenic_schro_energy(Z: float, mu: float, n: int) -> float:
    r"""非相对论氢样能级 :math:`-\mu Z^2/(2n^2)`（束缚能）。"""
    if n < 1:
        raise ConfigurationError("主量子数必须 >= 1", n=n)
    return -mu * Z * Z / (2.0 * n * n)
