"""非平滑接触問題のブロック Gauss-Seidel 用局所問題ツールキット.

モジュール構成:
- matrix: 大域行列の格納形式（DENSE / SPARSE_BLOCK / SPARSE）とブロック演算
- problem: 大域問題（摩擦3D, Mohr-Coulomb 2D, LCP）
- local_problem: 局所問題と確保・解放（所有 / 借用の管理）
- extraction: 対角ブロック・局所右辺・係数の抽出
- toolkit: 局所ソルバーフレーバーのスロット束と汎用プリミティブ
- sweep: Gauss-Seidel / Jacobi スイープと反復ドライバ
- qp, lcp_nsqp: LCP の QP 定式化による局所ソルバー
"""

from nsgs_kit.core.results import LocalSolverStatus, QPResult, SweepResult
from nsgs_kit.errors import (
    AliasingViolationError,
    AllocationError,
    MissingCapabilityError,
    UnsupportedStorageFormatError,
)
from nsgs_kit.extraction import (
    compute_local_rhs,
    copy_local_coefficient,
    fill_local_matrix,
    update_local_problem,
)
from nsgs_kit.lcp_nsqp import lcp_nsqp, lcp_nsqp_local_solver, lcp_qp_toolkit, solve_lcp_nsqp
from nsgs_kit.local_problem import (
    BlockOwnership,
    LocalProblem,
    allocate_friction_local_problem,
    allocate_local_problem,
    allocate_mc2d_local_problem,
    local_problem_scope,
    release_local_problem,
)
from nsgs_kit.matrix import (
    StorageType,
    check_block_diagonal_stored,
    diagonal_block,
    extract_diagonal_block,
    row_prod_no_diag,
    storage_type,
    to_block_sparse,
)
from nsgs_kit.options import SolverOptions
from nsgs_kit.problem import (
    ContactProblem,
    FrictionContactProblem,
    LinearComplementarityProblem,
    MohrCoulomb2DProblem,
)
from nsgs_kit.qp import solve_convex_qp
from nsgs_kit.sweep import NSGSResult, nsgs_solve, nsgs_sweep
from nsgs_kit.toolkit import (
    LocalProblemFunctionToolkit,
    copy_local_reaction,
    default_toolkit,
    light_error_squared,
    perform_relaxation,
    squared_norm,
)

__all__ = [
    "AliasingViolationError",
    "AllocationError",
    "BlockOwnership",
    "ContactProblem",
    "FrictionContactProblem",
    "LinearComplementarityProblem",
    "LocalProblem",
    "LocalProblemFunctionToolkit",
    "LocalSolverStatus",
    "MissingCapabilityError",
    "MohrCoulomb2DProblem",
    "NSGSResult",
    "QPResult",
    "SolverOptions",
    "StorageType",
    "SweepResult",
    "UnsupportedStorageFormatError",
    "allocate_friction_local_problem",
    "allocate_local_problem",
    "allocate_mc2d_local_problem",
    "check_block_diagonal_stored",
    "compute_local_rhs",
    "copy_local_coefficient",
    "copy_local_reaction",
    "default_toolkit",
    "diagonal_block",
    "extract_diagonal_block",
    "fill_local_matrix",
    "lcp_nsqp",
    "lcp_nsqp_local_solver",
    "lcp_qp_toolkit",
    "light_error_squared",
    "local_problem_scope",
    "nsgs_solve",
    "nsgs_sweep",
    "perform_relaxation",
    "release_local_problem",
    "row_prod_no_diag",
    "solve_convex_qp",
    "solve_lcp_nsqp",
    "squared_norm",
    "storage_type",
    "to_block_sparse",
    "update_local_problem",
]
