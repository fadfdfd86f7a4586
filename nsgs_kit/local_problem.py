"""局所問題（1接触分）のデータ構造とライフサイクル管理.

局所行列 M の所有形態:
  OWNED     DENSE / SPARSE 大域行列 → (dim, dim) の独自バッファに対角ブロックをコピー
  BORROWED  SPARSE_BLOCK 大域行列 → BSR ブロック格納領域のビューを参照（確保しない）

BORROWED の局所行列は大域行列の一部そのものであり、
解放時は参照を外すだけで大域側のメモリには触れない。
局所問題は接触ごとの処理コンテキストで1回確保し、外側反復を通して
接触インデックスごとに中身を詰め替えて再利用する。
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from nsgs_kit.errors import AliasingViolationError, AllocationError
from nsgs_kit.matrix import StorageType
from nsgs_kit.problem import ContactProblem, FrictionContactProblem, MohrCoulomb2DProblem


class BlockOwnership(Enum):
    """局所行列の所有形態."""

    OWNED = 0
    BORROWED = 1


@dataclass
class LocalProblem:
    """1接触分の局所問題.

    Attributes:
        problem_class: 元の大域問題の型（FrictionContactProblem 等）
        dimension: 接触次元
        q: (dim,) 局所右辺（他接触の寄与を差し引いた値）
        mu: (1,) 局所係数（大域 mu のコピー）
        ownership: 局所行列の所有形態
        M: (dim, dim) 局所行列。BORROWED で未充填の間は None。
        contact: 現在充填されている接触インデックス（未充填は None）
        solver_data: 局所ソルバーフレーバー固有のスクラッチ領域
        released: 解放済みフラグ
    """

    problem_class: type[ContactProblem]
    dimension: int
    q: np.ndarray
    mu: np.ndarray
    ownership: BlockOwnership
    M: np.ndarray | None = None
    contact: int | None = None
    solver_data: dict[str, Any] = field(default_factory=dict)
    released: bool = False

    number_of_contacts: int = field(default=1, init=False)

    @property
    def is_borrowed(self) -> bool:
        return self.ownership is BlockOwnership.BORROWED

    def ensure_alive(self) -> None:
        """解放済みなら AliasingViolationError."""
        if self.released:
            raise AliasingViolationError("解放済みの局所問題にアクセスしました。")

    def borrow_matrix(self, block: np.ndarray) -> None:
        """大域ブロックのビューを局所行列として参照する（所有バッファは手放す）."""
        self.ensure_alive()
        if block.shape != (self.dimension, self.dimension):
            raise ValueError(f"ブロックは ({self.dimension}, {self.dimension}) が必要。実際: {block.shape}")
        self.M = block
        self.ownership = BlockOwnership.BORROWED

    def own_matrix(self) -> np.ndarray:
        """所有バッファを返す。借用中なら参照を外して新規確保する."""
        self.ensure_alive()
        if self.ownership is BlockOwnership.BORROWED or self.M is None:
            self.M = _allocate((self.dimension, self.dimension))
            self.ownership = BlockOwnership.OWNED
        return self.M


def _allocate(shape: tuple[int, ...]) -> np.ndarray:
    try:
        return np.zeros(shape)
    except MemoryError as exc:
        raise AllocationError(f"局所問題バッファの確保に失敗しました: shape={shape}") from exc


def allocate_local_problem(problem: ContactProblem) -> LocalProblem:
    """大域問題に対応する局所問題を確保する.

    SPARSE_BLOCK の場合は局所行列を確保せず（BORROWED, M=None）、
    fill_local_matrix で大域ブロックを参照する。
    q, mu は常に所有バッファ。

    Args:
        problem: 大域問題

    Returns:
        LocalProblem
    """
    dim = problem.dimension
    if problem.storage is StorageType.SPARSE_BLOCK:
        ownership = BlockOwnership.BORROWED
        M = None
    else:
        ownership = BlockOwnership.OWNED
        M = _allocate((dim, dim))
    return LocalProblem(
        problem_class=type(problem),
        dimension=dim,
        q=_allocate((dim,)),
        mu=_allocate((1,)),
        ownership=ownership,
        M=M,
    )


def release_local_problem(local: LocalProblem, problem: ContactProblem | None = None) -> None:
    """局所問題を解放する.

    BORROWED の局所行列は参照を外すのみで、大域行列のブロックは解放しない。
    1回の allocate に対して1回だけ呼ぶこと（2回目は AliasingViolationError）。

    Args:
        local: 局所問題
        problem: 確保元の大域問題。指定時は借用ビューが problem.M のブロック
            格納領域を指していることを検証する。
    """
    local.ensure_alive()
    if local.is_borrowed and problem is not None and local.M is not None:
        if problem.storage is not StorageType.SPARSE_BLOCK or not np.may_share_memory(
            local.M, problem.M.data
        ):
            raise AliasingViolationError("借用中の局所行列が大域行列のブロックを指していません。")
    # BORROWED は大域側のメモリなので参照を外すだけ
    local.M = None
    local.q = np.empty(0)
    local.mu = np.empty(0)
    local.solver_data.clear()
    local.contact = None
    local.released = True


@contextmanager
def local_problem_scope(problem: ContactProblem) -> Iterator[LocalProblem]:
    """局所問題を確保し、スコープ終了時（例外時を含む）に解放する.

    Example::

        with local_problem_scope(problem) as local:
            update_local_problem(0, problem, local, reaction)
    """
    local = allocate_local_problem(problem)
    try:
        yield local
    finally:
        if not local.released:
            release_local_problem(local, problem)


def _typed_allocator(problem_class: type[ContactProblem]):
    def allocate(problem: ContactProblem) -> LocalProblem:
        if not isinstance(problem, problem_class):
            raise TypeError(
                f"{problem_class.__name__} が必要です。実際: {type(problem).__name__}"
            )
        return allocate_local_problem(problem)

    allocate.__name__ = f"allocate_{problem_class.__name__}_local_problem"
    allocate.__doc__ = f"{problem_class.__name__} 用の局所問題を確保する."
    return allocate


allocate_friction_local_problem = _typed_allocator(FrictionContactProblem)
allocate_mc2d_local_problem = _typed_allocator(MohrCoulomb2DProblem)
