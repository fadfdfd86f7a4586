"""ソルバー設定."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

SWEEP_MODES = ("gauss_seidel", "jacobi")


@dataclass
class SolverOptions:
    """ブロック Gauss-Seidel（NSGS）の設定.

    Attributes:
        tol: 外側反復の収束判定値（正規化誤差）
        max_iter: 外側スイープの最大回数
        relaxation: 緩和係数 ω ∈ (0, 1]（1.0 = 緩和なし）
        sweep_mode: "gauss_seidel"（直前に更新した反力を即時に使う）
            または "jacobi"（スイープ開始時のスナップショットのみを読む）
        contact_order: 接触の処理順序。None なら 0, 1, ..., n_c - 1。
        local_tol: 局所ソルバーの収束判定値
        local_max_iter: 局所ソルバーの最大反復回数
        show_progress: スイープごとの誤差を表示する
    """

    tol: float = 1e-8
    max_iter: int = 1000
    relaxation: float = 1.0
    sweep_mode: str = "gauss_seidel"
    contact_order: np.ndarray | None = None
    local_tol: float = 1e-12
    local_max_iter: int = 100
    show_progress: bool = False

    def __post_init__(self) -> None:
        if self.tol <= 0.0:
            raise ValueError(f"tol は正である必要があります: {self.tol}")
        if self.max_iter <= 0:
            raise ValueError(f"max_iter は正である必要があります: {self.max_iter}")
        if not 0.0 < self.relaxation <= 1.0:
            raise ValueError(f"relaxation は (0, 1] の範囲で指定してください: {self.relaxation}")
        if self.sweep_mode not in SWEEP_MODES:
            raise ValueError(
                f"sweep_mode は {SWEEP_MODES} のいずれかです: '{self.sweep_mode}'"
            )
        if self.contact_order is not None:
            self.contact_order = np.asarray(self.contact_order, dtype=int)

    def resolve_contact_order(self, n_contacts: int) -> np.ndarray:
        """接触の処理順序を返す."""
        if self.contact_order is None:
            return np.arange(n_contacts)
        order = self.contact_order
        if order.ndim != 1 or np.any(order < 0) or np.any(order >= n_contacts):
            raise ValueError(f"contact_order に範囲外のインデックスがあります（n_contacts={n_contacts}）")
        return order
