"""例外定義.

ブロック抽出・局所問題ライフサイクルで発生するエラー。
局所ソルバーの非収束は例外ではなく LocalSolverStatus で返す。
"""

from __future__ import annotations


class UnsupportedStorageFormatError(ValueError):
    """行列の格納形式が DENSE / SPARSE_BLOCK / SPARSE のいずれでもない."""


class AllocationError(MemoryError):
    """局所問題バッファの確保に失敗した."""


class AliasingViolationError(RuntimeError):
    """解放済み局所問題の再解放、または借用ブロックの不整合."""


class MissingCapabilityError(LookupError):
    """ツールキットの必須スロットが未登録."""
