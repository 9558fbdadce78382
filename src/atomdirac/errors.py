r"""求解器错误分类
=================

所有致命错误都归入封闭的 :class:`ErrorKind` 枚举，并通过异常向调用者传播：

- ``CONFIGURATION``：物理或网格参数非法（Z、质量、步长非正，容差不在 (0,1) 内等）；
- ``UNBOUND_STATE``：试探能量对给定 k 不是束缚态（:math:`K` 为虚数）；
- ``SMALL_GAMMA``：:math:`\gamma = \sqrt{k^2-(Z\alpha)^2}` 为虚数（强场区，不支持）；
- ``DIVERGENCE``：数值发散（能量修正或新能量不是有限数）；
- ``EXHAUSTION``：二分或 Newton 迭代次数用尽仍未收敛；
- ``CONSISTENCY``：物理一致性被破坏（节点定理不满足、能量与节点数反序）。

前两类属于“物理不可行”，上层搜索可以换一个试探能量后恢复，见 :attr:`DiracError.recoverable`。
"""

from __future__ import annotations

from enum import Enum

__all__ = [
    "ErrorKind",
    "DiracError",
    "ConfigurationError",
    "UnboundStateError",
    "SmallGammaError",
    "DivergenceError",
    "ExhaustionError",
    "ConsistencyError",
]


class ErrorKind(Enum):
    CONFIGURATION = "configuration"
    UNBOUND_STATE = "unbound-state"
    SMALL_GAMMA = "small-gamma"
    DIVERGENCE = "divergence"
    EXHAUSTION = "exhaustion"
    CONSISTENCY = "consistency"


class DiracError(Exception):
    """求解器异常基类。

    Parameters
    ----------
    message : str
        错误描述。
    **context
        诊断上下文（如 ``iteration``、``E``、``k``、节点数等），保存在 :attr:`context` 中。
    """

    kind: ErrorKind

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    @property
    def recoverable(self) -> bool:
        return self.kind in (ErrorKind.UNBOUND_STATE, ErrorKind.SMALL_GAMMA)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        ctx = ", ".join(f"{key}={value!r}" for key, value in self.context.items())
        return f"{self.message} ({ctx})"


class ConfigurationError(DiracError, ValueError):
    kind = ErrorKind.CONFIGURATION


class UnboundStateError(DiracError):
    kind = ErrorKind.UNBOUND_STATE


class SmallGammaError(DiracError):
    kind = ErrorKind.SMALL_GAMMA


class DivergenceError(DiracError, ArithmeticError):
    kind = ErrorKind.DIVERGENCE


class ExhaustionError(DiracError, RuntimeError):
    kind = ErrorKind.EXHAUSTION


class ConsistencyError(DiracError, RuntimeError):
    kind = ErrorKind.CONSISTENCY
