r"""物理常数集中维护
====================

原子单位制（:math:`\hbar = m_e = e = 1`），光速 :math:`c = 1/\alpha`。

数值取自 CODATA 2014，与 μ 子原子 X 射线谱文献中常用的取值保持一致。
单位换算常数表示“1 个该单位等于多少原子单位”，例如 ``1 * FM`` 即 1 fm 对应的 Bohr 数。
"""

from __future__ import annotations

# 精细结构常数与光速
ALPHA = 7.2973525664e-3
C = 137.035999139

# 粒子质量（以电子质量为单位）
M_E = 1.0
M_MU = 1.0 / 4.83633170e-3
M_P = 1.0 / 5.44617021352e-4

# 长度、能量与质量单位
METRE = 1.0 / 5.2917721067e-11
ANGSTROM = 1.0 / 5.2917721067e-1
FM = 1.0 / 5.2917721067e4
EV = 1.0 / 27.211385
AMU = 1822.888486192

# 均匀球核模型：R = R0 * A^(1/3)
NUCLEAR_R0 = 1.2 * FM
