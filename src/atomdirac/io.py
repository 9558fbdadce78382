from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, List, Tuple

import numpy as np

from .grid import LogGrid
from .potential import Potential
from .state import RadialState

__all__ = [
    "export_state_csv",
    "export_potential_csv",
    "export_levels_csv",
    "export_transitions_json",
]


def export_state_csv(out_path: str | Path, state: RadialState) -> None:
    """导出单个径向态为 CSV：列为 `r,P(r),Q(r),V(r)`，表头注释中记录能量与量子数。"""
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    data = np.column_stack([state.r, state.P, state.Q, state.V])
    header = f"E={state.E:.15e} k={state.k} nodes={state.nodes} nodes_q={state.nodes_q}\nr,P(r),Q(r),V(r)"
    np.savetxt(p, data, delimiter=",", header=header)


def export_potential_csv(out_path: str | Path, potential: Potential, grid: LogGrid) -> None:
    """在网格上采样势能并导出 CSV：列为 `r,V(r)`。"""
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    data = np.column_stack([grid.r, potential.sample(grid)])
    np.savetxt(p, data, delimiter=",", header="r,V(r)")


def export_levels_csv(out_path: str | Path, states: Iterable[RadialState], rest_energy: float) -> None:
    """导出能级表为 CSV：列为 `n,l,s,k,E(Ha),E-mc2(Ha)`，按 `(l, s, n)` 排序。"""
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    rows = sorted(states, key=lambda st: (st.l, not st.s, st.n))
    with p.open("w", encoding="utf-8") as f:
        f.write("n,l,s,k,E(Ha),E-mc2(Ha)\n")
        for st in rows:
            f.write(f"{st.n},{st.l},{int(st.s)},{st.k},{st.E:.12f},{st.E - rest_energy:.12e}\n")


def export_transitions_json(
    out_path: str | Path,
    transitions: List[Tuple[RadialState, RadialState]],
    units: str = "Ha",
) -> None:
    """导出跃迁线为 JSON。

    ``transitions`` 为 ``(initial, final)`` 态对列表，能量差 :math:`E_i - E_f` 写入 ``dE``；
    ``units`` 仅作为元数据记录。
    """
    lines = []
    for initial, final in transitions:
        lines.append({
            "initial": {"n": initial.n, "l": initial.l, "s": initial.s, "k": initial.k},
            "final": {"n": final.n, "l": final.l, "s": final.s, "k": final.k},
            "dE": float(initial.E - final.E),
        })
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump({"units": units, "transitions": lines}, f, indent=2, ensure_ascii=False)
