"""LCP の QP 定式化ソルバーと、その局所ソルバーフレーバー.

右辺規約 w = M z - q の LCP

    0 <= z ⊥ w = M z - q >= 0

を次の凸 QP（M が半正定値のとき）として解く:

    min  0.5 z^T (M + M^T) z - q^T z
    s.t. M z - q >= 0,  z >= 0

最適値 z^T w = 0 が LCP の解。w は z から再計算する。

参考文献:
- Cottle, Pang, Stone (1992): "The Linear Complementarity Problem"
"""

from __future__ import annotations

import numpy as np

from nsgs_kit.core.results import LocalSolverStatus
from nsgs_kit.local_problem import LocalProblem
from nsgs_kit.matrix import StorageType, storage_type
from nsgs_kit.options import SolverOptions
from nsgs_kit.problem import ContactProblem, LinearComplementarityProblem
from nsgs_kit.qp import solve_convex_qp
from nsgs_kit.toolkit import LocalProblemFunctionToolkit, default_toolkit


def lcp_natural_residual(z: np.ndarray, w: np.ndarray) -> float:
    """自然写像残差 ||z - max(0, z - w)|| = ||min(z, w)||."""
    return float(np.linalg.norm(np.minimum(z, w)))


def lcp_nsqp(
    M: np.ndarray,
    q: np.ndarray,
    z: np.ndarray,
    w: np.ndarray,
    options: SolverOptions | None = None,
    *,
    accept_tol: float = 1e-8,
) -> LocalSolverStatus:
    """密行列 LCP を QP として解く.

    Args:
        M: (n, n) 密行列
        q: (n,) 右辺
        z: (n,) 解（in-place 上書き）
        w: (n,) w = M z - q（in-place 上書き）
        options: local_tol, local_max_iter を使用
        accept_tol: SLSQP が失敗を報告した場合でも、自然写像残差が
            accept_tol * (1 + ||q||) 以下なら SUCCESS とする

    Returns:
        LocalSolverStatus
    """
    if options is None:
        options = SolverOptions()
    M = np.asarray(M, dtype=float)
    q = np.asarray(q, dtype=float)
    n = len(q)
    if M.shape != (n, n) or z.shape != (n,) or w.shape != (n,):
        return LocalSolverStatus.INVALID_INPUT
    if not (np.all(np.isfinite(M)) and np.all(np.isfinite(q))):
        return LocalSolverStatus.INVALID_INPUT

    result = solve_convex_qp(
        M + M.T,
        -q,
        A=M,
        b=-q,
        lower=np.zeros(n),
        tol=options.local_tol,
        max_iter=options.local_max_iter,
    )
    # 非有限の解は z, w に書き込まない
    if not np.all(np.isfinite(result.x)):
        return LocalSolverStatus.NOT_CONVERGED
    z[:] = result.x
    w[:] = M @ z - q

    if result.success:
        return LocalSolverStatus.SUCCESS
    if lcp_natural_residual(z, w) <= accept_tol * (1.0 + float(np.linalg.norm(q))):
        return LocalSolverStatus.SUCCESS
    return LocalSolverStatus.NOT_CONVERGED


def solve_lcp_nsqp(
    problem: LinearComplementarityProblem,
    options: SolverOptions | None = None,
) -> tuple[np.ndarray, np.ndarray, LocalSolverStatus]:
    """大域 LCP 全体を1つの QP として解く（ブロック分割なし）.

    Returns:
        z: (n,) 解
        w: (n,) w = M z - q
        status: LocalSolverStatus
    """
    if storage_type(problem.M) is StorageType.DENSE:
        M = problem.M
    else:
        M = problem.M.toarray()
    z = np.zeros(problem.size)
    w = np.zeros(problem.size)
    status = lcp_nsqp(M, problem.q, z, w, options)
    return z, w, status


def lcp_nsqp_local_solver(
    local: LocalProblem,
    reaction: np.ndarray,
    options: SolverOptions,
) -> LocalSolverStatus:
    """局所 LCP を QP で解く（local_solver スロット）.

    w のスクラッチは local.solver_data["w"] に保持する。
    """
    local.ensure_alive()
    if local.M is None:
        return LocalSolverStatus.INVALID_INPUT
    w = local.solver_data.get("w")
    if w is None or w.shape != (local.dimension,):
        w = np.zeros(local.dimension)
        local.solver_data["w"] = w
    return lcp_nsqp(local.M, local.q, reaction, w, options)


def lcp_project_nonnegative(contact: int, reaction: np.ndarray) -> None:
    """SLSQP の丸め誤差による負成分を 0 に射影する（post_processed_local_result スロット）."""
    np.maximum(reaction, 0.0, out=reaction)


def lcp_nsqp_free(
    local: LocalProblem,
    problem: ContactProblem,
    options: SolverOptions | None,
) -> None:
    """local.solver_data["w"] を解放する（free_local_solver スロット）."""
    local.solver_data.pop("w", None)


def lcp_qp_toolkit(**overrides) -> LocalProblemFunctionToolkit:
    """LCP-QP フレーバーのツールキット."""
    slots = {
        "post_processed_local_result": lcp_project_nonnegative,
        "free_local_solver": lcp_nsqp_free,
    }
    slots.update(overrides)
    return default_toolkit(lcp_nsqp_local_solver, **slots)
