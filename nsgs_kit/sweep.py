"""非平滑ブロック Gauss-Seidel（NSGS）スイープ.

1スイープ = 全接触について

  1. update_local_problem   （局所行列・局所右辺・係数）
  2. 求解前の反力を退避       （copy_local_reaction）
  3. local_solver            （状態は記録のみ。非収束でも例外にしない）
  4. post_processed_local_result
  5. perform_relaxation      （ω）
  6. light_error_squared     （誤差の累積。未登録なら既定実装）

Gauss-Seidel モード:
  接触 c の局所右辺は、同一スイープ内で先に更新された接触の反力を含む
  最新の reaction から計算する（順序依存）。
Jacobi モード:
  スイープ開始時の reaction のコピー（スナップショット）のみから計算し、
  結果は reaction に書き込む（順序非依存）。

誤差:
  error = sqrt(Σ_c light_error_squared) / sqrt(squared_norm(reaction))
  （||reaction|| ≈ 0 のときは正規化しない）
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from nsgs_kit.core.results import LocalSolverStatus, SweepResult
from nsgs_kit.local_problem import LocalProblem, local_problem_scope
from nsgs_kit.options import SolverOptions
from nsgs_kit.problem import ContactProblem
from nsgs_kit.toolkit import LocalProblemFunctionToolkit, light_error_squared


@dataclass
class NSGSResult:
    """NSGS 解析の結果.

    Attributes:
        reaction: (n,) 最終反力
        velocity: (n,) w = M r - q
        converged: 収束したかどうか
        n_iterations: 実行したスイープ数
        error: 最終スイープの誤差
        error_history: 各スイープの誤差
        failed_contacts: 最終スイープで局所ソルバーが SUCCESS を返さなかった接触
    """

    reaction: np.ndarray
    velocity: np.ndarray
    converged: bool
    n_iterations: int
    error: float
    error_history: list[float] = field(default_factory=list)
    failed_contacts: list[int] = field(default_factory=list)


def _check_reaction(problem: ContactProblem, reaction: np.ndarray) -> None:
    if not isinstance(reaction, np.ndarray) or reaction.dtype != np.float64:
        raise ValueError("reaction は float64 の ndarray である必要があります（in-place 更新）。")
    if reaction.shape != (problem.size,):
        raise ValueError(f"reaction は ({problem.size},) が必要。実際: {reaction.shape}")


def nsgs_sweep(
    problem: ContactProblem,
    reaction: np.ndarray,
    local: LocalProblem,
    toolkit: LocalProblemFunctionToolkit,
    options: SolverOptions,
    *,
    snapshot: np.ndarray | None = None,
) -> SweepResult:
    """全接触を1回スイープし、reaction を in-place で更新する.

    Args:
        problem: 大域問題
        reaction: (n,) 大域反力（in-place 更新）
        local: 確保済みの局所問題（接触ごとに詰め替えて再利用）
        toolkit: ツールキット（local_solver, update_local_problem 必須）
        options: ソルバー設定
        snapshot: Jacobi モードで読む反力。None なら reaction のコピーを取る。
            Gauss-Seidel モードでは指定不可。

    Returns:
        SweepResult
    """
    _check_reaction(problem, reaction)
    local_solver = toolkit.require("local_solver")
    update = toolkit.require("update_local_problem")

    if options.sweep_mode == "jacobi":
        source = reaction.copy() if snapshot is None else np.asarray(snapshot, dtype=float)
        if source.shape != reaction.shape:
            raise ValueError(f"snapshot は {reaction.shape} が必要。実際: {source.shape}")
    else:
        if snapshot is not None:
            raise ValueError("snapshot は Jacobi モードでのみ指定できます。")
        source = reaction

    n_contacts = problem.number_of_contacts
    dim = problem.dimension
    statuses: list[LocalSolverStatus | None] = [None] * n_contacts
    failed: list[int] = []
    previous = np.empty(dim)
    light_error_sum = 0.0
    # 未登録でも誤差 0 とはみなさない
    error_squared = toolkit.light_error_squared or light_error_squared

    for c in options.resolve_contact_order(n_contacts):
        contact = int(c)
        update(contact, problem, local, source, options)

        r_c = reaction[contact * dim : (contact + 1) * dim]
        if toolkit.has("copy_local_reaction"):
            toolkit.copy_local_reaction(r_c, previous)
        else:
            np.copyto(previous, r_c)

        status = local_solver(local, r_c, options)
        statuses[contact] = status
        if status is not LocalSolverStatus.SUCCESS:
            failed.append(contact)

        if toolkit.has("post_processed_local_result"):
            toolkit.post_processed_local_result(contact, r_c)
        if toolkit.has("perform_relaxation"):
            toolkit.perform_relaxation(r_c, previous, options.relaxation)
        light_error_sum += error_squared(r_c, previous)

    error = float(np.sqrt(light_error_sum))
    if toolkit.has("squared_norm"):
        norm_r = float(np.sqrt(toolkit.squared_norm(reaction)))
        if norm_r > np.finfo(float).eps:
            error /= norm_r

    return SweepResult(error=error, failed_contacts=failed, statuses=statuses)


def nsgs_solve(
    problem: ContactProblem,
    reaction: np.ndarray,
    toolkit: LocalProblemFunctionToolkit,
    options: SolverOptions | None = None,
) -> NSGSResult:
    """error < tol となるまでスイープを繰り返す.

    局所問題はスコープ管理で確保・解放し、終了時（例外時を含む）に
    free_local_solver（登録時）を呼ぶ。

    Args:
        problem: 大域問題
        reaction: (n,) 初期反力（in-place 更新）
        toolkit: ツールキット
        options: ソルバー設定（None なら既定値）

    Returns:
        NSGSResult
    """
    if options is None:
        options = SolverOptions()
    _check_reaction(problem, reaction)
    toolkit.require("local_solver")
    toolkit.require("update_local_problem")

    error_history: list[float] = []
    converged = False
    sweep = SweepResult(error=np.inf, failed_contacts=[], statuses=[])
    it = 0

    with local_problem_scope(problem) as local:
        try:
            for it in range(1, options.max_iter + 1):
                sweep = nsgs_sweep(problem, reaction, local, toolkit, options)
                error_history.append(sweep.error)

                if sweep.error < options.tol:
                    converged = True
                    if options.show_progress:
                        print(
                            f"  NSGS iter {it}, error = {sweep.error:.3e} "
                            f"(converged, {len(sweep.failed_contacts)} local failures)"
                        )
                    break

                if options.show_progress and it % 10 == 0:
                    print(
                        f"  NSGS iter {it}, error = {sweep.error:.3e}, "
                        f"local failures = {len(sweep.failed_contacts)}"
                    )
        finally:
            if toolkit.has("free_local_solver"):
                toolkit.free_local_solver(local, problem, options)

    if not converged and options.show_progress:
        print(f"  WARNING: NSGS did not converge in {options.max_iter} iterations.")

    return NSGSResult(
        reaction=reaction,
        velocity=problem.velocity(reaction),
        converged=converged,
        n_iterations=it,
        error=sweep.error,
        error_history=error_history,
        failed_contacts=list(sweep.failed_contacts),
    )
