from __future__ import annotations

import numpy as np

from .constants import NUCLEAR_R0

__all__ = [
    "count_nodes",
    "effective_mass",
    "sphere_nuclear_radius",
]


def count_nodes(v: np.ndarray, tol: float = 0.0) -> int:
    r"""统计离散函数的节点数（相邻点异号的次数）。

    Parameters
    ----------
    v : numpy.ndarray
        函数离散值。
    tol : float, optional
        只有当相邻两点之差 :math:`|v_i - v_{i-1}|` 大于 ``tol`` 时才计为节点，
        用于忽略尾部数值噪声引起的伪节点。

    Returns
    -------
    int
        节点数。
    """
    v = np.asarray(v, dtype=float)
    if v.size < 2:
        return 0
    flips = (v[1:] * v[:-1] < 0) & (np.abs(v[1:] - v[:-1]) > tol)
    return int(np.count_nonzero(flips))


def effective_mass(m1: float, m2: float) -> float:
    r"""两体约化质量 :math:`\mu = m_1 m_2/(m_1 + m_2)`。"""
    return m1 * m2 / (m1 + m2)


def sphere_nuclear_radius(A: float) -> float:
    r"""均匀球核半径 :math:`R = 1.2\,\mathrm{fm}\cdot A^{1/3}`（原子单位）。"""
    return NUCLEAR_R0 * A ** (1.0 / 3.0)
