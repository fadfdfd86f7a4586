"""メソッド戻り値の型定義.

局所ソルバーの終了状態と、スイープ・QP の結果を定義する。
小さな不変結果は NamedTuple、反復履歴を持つ結果はデータクラス
（sweep.NSGSResult）で返す。
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple

import numpy as np


class LocalSolverStatus(Enum):
    """局所ソルバーの終了状態."""

    SUCCESS = 0
    NOT_CONVERGED = 1
    INVALID_INPUT = 2


class SweepResult(NamedTuple):
    """1回の Gauss-Seidel / Jacobi スイープの結果.

    Attributes:
        error: 正規化された変化量 sqrt(Σ light_error) / ||r||
        failed_contacts: SUCCESS 以外を返した接触インデックス
        statuses: (n_contacts,) 各接触の LocalSolverStatus（処理しなかった接触は None）
    """

    error: float
    failed_contacts: list[int]
    statuses: list[LocalSolverStatus | None]


class QPResult(NamedTuple):
    """凸二次計画問題の結果.

    Attributes:
        x: (n,) 解ベクトル
        success: 収束したかどうか
        n_iterations: 反復回数
        message: ソルバーのメッセージ
    """

    x: np.ndarray
    success: bool
    n_iterations: int
    message: str
