"""ブロック抽出: 大域問題から接触 c の局所問題を組み立てる.

ブロック Gauss-Seidel の局所問題（大域問題は w = M r - q の右辺規約）:

    w_c = M_cc r_c - q_c^loc,
    q_c^loc = q_c - Σ_{j≠c} M_cj r_j

他接触の最新の反力推定値 r_j を右辺に畳み込み、接触 c を単独で解く。
Gauss-Seidel では同一スイープ内で既に更新された r_j を参照する
（Jacobi ではスイープ開始時のスナップショットを渡す）。
"""

from __future__ import annotations

import numpy as np

from nsgs_kit.local_problem import LocalProblem
from nsgs_kit.matrix import StorageType, diagonal_block, extract_diagonal_block, row_prod_no_diag
from nsgs_kit.options import SolverOptions
from nsgs_kit.problem import ContactProblem


def _check_compatible(problem: ContactProblem, local: LocalProblem) -> None:
    local.ensure_alive()
    if local.dimension != problem.dimension:
        raise ValueError(
            f"局所問題の次元 {local.dimension} が大域問題の次元 {problem.dimension} と一致しません。"
        )


def fill_local_matrix(problem: ContactProblem, local: LocalProblem, contact: int) -> None:
    """局所行列に接触 contact の対角ブロックを設定する.

    - SPARSE_BLOCK: 大域 BSR ブロックのビューを参照（コピーしない）
    - DENSE / SPARSE: 局所の所有バッファに要素ごとにコピー

    大域問題は変更しない。
    """
    _check_compatible(problem, local)
    problem.contact_slice(contact)
    dim = problem.dimension
    if problem.storage is StorageType.SPARSE_BLOCK:
        local.borrow_matrix(diagonal_block(problem.M, contact, dim))
    else:
        extract_diagonal_block(problem.M, contact, dim, out=local.own_matrix())
    local.contact = contact


def compute_local_rhs(
    problem: ContactProblem,
    local: LocalProblem,
    reaction: np.ndarray,
    contact: int,
) -> None:
    """局所右辺 q_loc = q_c - Σ_{j≠c} M_cj r_j を計算する.

    Args:
        problem: 大域問題
        local: 局所問題（local.q を上書き）
        reaction: (n,) 大域反力（Gauss-Seidel: 最新値, Jacobi: スナップショット）
        contact: 接触インデックス c
    """
    _check_compatible(problem, local)
    sl = problem.contact_slice(contact)
    local.q[:] = problem.q[sl]
    local.q -= row_prod_no_diag(problem.M, contact, problem.dimension, reaction)


def copy_local_coefficient(problem: ContactProblem, local: LocalProblem, contact: int) -> None:
    """local.mu[0] = problem.mu[contact]（係数なしの問題では何もしない）."""
    local.ensure_alive()
    if problem.mu is None:
        return
    problem.contact_slice(contact)
    local.mu[0] = problem.mu[contact]


def update_local_problem(
    contact: int,
    problem: ContactProblem,
    local: LocalProblem,
    reaction: np.ndarray,
    options: SolverOptions | None = None,
) -> None:
    """局所問題の既定の更新（ツールキットの update_local_problem スロット既定値）."""
    fill_local_matrix(problem, local, contact)
    compute_local_rhs(problem, local, reaction, contact)
    copy_local_coefficient(problem, local, contact)
