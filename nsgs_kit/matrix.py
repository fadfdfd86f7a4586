"""大域行列の格納形式とブロック演算.

大域相互作用行列 M は次の3形式のいずれかで保持する:

  DENSE         numpy.ndarray (n, n)
  SPARSE_BLOCK  scipy.sparse BSR（blocksize = (dim, dim)）
  SPARSE        scipy.sparse CSR / CSC / COO

ブロック Gauss-Seidel で必要な演算:
  - 対角ブロック M[c, c] の取得（BSR はブロック格納領域のビュー、その他はコピー）
  - 対角ブロックを除いた行積 Σ_{j≠c} M[c, j] x_j

BSR の対角ブロックはビューとして局所問題に貸し出されるため、
局所問題が生きている間は M.data の再確保（sum_duplicates, eliminate_zeros,
構造変更）を行ってはならない。
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import numpy as np
import scipy.sparse as sp

from nsgs_kit.errors import UnsupportedStorageFormatError

_SPARSE_FORMATS = ("csr", "csc", "coo")


class StorageType(Enum):
    """大域行列の格納形式."""

    DENSE = 0
    SPARSE_BLOCK = 1
    SPARSE = 2


def storage_type(M: Any) -> StorageType:
    """行列の格納形式タグを返す.

    Args:
        M: 大域行列

    Returns:
        StorageType

    Raises:
        UnsupportedStorageFormatError: 3形式のいずれでもない場合
            （LIL / DOK / DIA 等は事前に CSR へ変換すること）
    """
    if isinstance(M, np.ndarray):
        if M.ndim != 2:
            raise UnsupportedStorageFormatError(f"密行列は2次元である必要があります: ndim={M.ndim}")
        return StorageType.DENSE
    if sp.issparse(M):
        if M.format == "bsr":
            return StorageType.SPARSE_BLOCK
        if M.format in _SPARSE_FORMATS:
            return StorageType.SPARSE
        raise UnsupportedStorageFormatError(
            f"未対応の疎行列形式です: '{M.format}'（csr / csc / coo / bsr のみ）"
        )
    raise UnsupportedStorageFormatError(f"未対応の行列型です: {type(M).__name__}")


def _check_block(M: Any, block: int, dim: int) -> tuple[int, int]:
    n = M.shape[0]
    if dim <= 0 or n % dim != 0:
        raise ValueError(f"行列サイズ {n} がブロック次元 {dim} で割り切れません。")
    n_blocks = n // dim
    if not 0 <= block < n_blocks:
        raise ValueError(f"ブロックインデックスが範囲外です: {block}（0 <= block < {n_blocks}）")
    r0 = block * dim
    return r0, r0 + dim


def _bsr_diagonal_index(M: sp.spmatrix, block: int, dim: int) -> int:
    """BSR 行列の block 行における対角ブロックの data インデックス."""
    if M.blocksize != (dim, dim):
        raise ValueError(f"BSR の blocksize {M.blocksize} が ({dim}, {dim}) と一致しません。")
    start, end = M.indptr[block], M.indptr[block + 1]
    hits = np.flatnonzero(M.indices[start:end] == block)
    if len(hits) > 1:
        raise ValueError("BSR 行列に重複ブロックがあります。sum_duplicates() を事前に適用してください。")
    if len(hits) == 0:
        raise ValueError(
            f"BSR 行列に対角ブロック ({block}, {block}) が格納されていません。"
            "to_block_sparse() で変換してください。"
        )
    return int(start + hits[0])


def check_block_diagonal_stored(M: sp.spmatrix, dim: int) -> None:
    """BSR 行列の blocksize と全対角ブロックの格納を検証する.

    Raises:
        ValueError: blocksize が (dim, dim) でない、または対角ブロックが欠けている場合
    """
    for c in range(M.shape[0] // dim):
        _bsr_diagonal_index(M, c, dim)


def _indexable(M: sp.spmatrix) -> sp.spmatrix:
    # COO はスライス不可
    if M.format == "coo":
        return M.tocsr()
    return M


def diagonal_block(M: Any, block: int, dim: int) -> np.ndarray:
    """対角ブロック M[block, block] を返す.

    SPARSE_BLOCK ではブロック格納領域のビュー（コピーしない）、
    DENSE / SPARSE では新規に確保したコピーを返す。

    Args:
        M: 大域行列
        block: ブロック行インデックス
        dim: ブロック次元

    Returns:
        (dim, dim) 対角ブロック
    """
    st = storage_type(M)
    _check_block(M, block, dim)
    if st is StorageType.SPARSE_BLOCK:
        return M.data[_bsr_diagonal_index(M, block, dim)]
    return extract_diagonal_block(M, block, dim, np.empty((dim, dim)))


def extract_diagonal_block(
    M: Any,
    block: int,
    dim: int,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """対角ブロックを out にコピーする.

    Args:
        M: 大域行列
        block: ブロック行インデックス
        dim: ブロック次元
        out: (dim, dim) 書き込み先。None の場合は新規確保。

    Returns:
        out
    """
    st = storage_type(M)
    r0, r1 = _check_block(M, block, dim)
    if out is None:
        out = np.empty((dim, dim))
    elif out.shape != (dim, dim):
        raise ValueError(f"out は ({dim}, {dim}) が必要。実際: {out.shape}")

    if st is StorageType.DENSE:
        out[:, :] = M[r0:r1, r0:r1]
    elif st is StorageType.SPARSE_BLOCK:
        out[:, :] = M.data[_bsr_diagonal_index(M, block, dim)]
    else:
        out[:, :] = _indexable(M)[r0:r1, r0:r1].toarray()
    return out


def row_prod_no_diag(
    M: Any,
    block_row: int,
    dim: int,
    x: np.ndarray,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """対角ブロックを除いたブロック行積を計算する.

    out = Σ_{j ≠ c} M[c, j] x_j   (c = block_row)

    Args:
        M: 大域行列
        block_row: ブロック行インデックス c
        dim: ブロック次元
        x: (n,) 大域ベクトル
        out: (dim,) 書き込み先。None の場合は新規確保。

    Returns:
        out: (dim,)
    """
    st = storage_type(M)
    r0, r1 = _check_block(M, block_row, dim)
    x = np.asarray(x, dtype=float)
    if x.shape != (M.shape[1],):
        raise ValueError(f"x は ({M.shape[1]},) が必要。実際: {x.shape}")
    if out is None:
        out = np.zeros(dim)
    else:
        out[:] = 0.0

    if st is StorageType.DENSE:
        out += M[r0:r1, :r0] @ x[:r0]
        out += M[r0:r1, r1:] @ x[r1:]
    elif st is StorageType.SPARSE_BLOCK:
        if M.blocksize != (dim, dim):
            raise ValueError(f"BSR の blocksize {M.blocksize} が ({dim}, {dim}) と一致しません。")
        for k in range(M.indptr[block_row], M.indptr[block_row + 1]):
            j = M.indices[k]
            if j == block_row:
                continue
            out += M.data[k] @ x[j * dim : (j + 1) * dim]
    else:
        rows = _indexable(M)[r0:r1, :].tocoo()
        mask = (rows.col < r0) | (rows.col >= r1)
        np.add.at(out, rows.row[mask], rows.data[mask] * x[rows.col[mask]])
    return out


def to_block_sparse(M: Any, dim: int) -> sp.bsr_matrix:
    """BSR 行列に変換する.

    ゼロの対角ブロックも明示的に格納する（対角ブロックの貸し出しに必要）。

    Args:
        M: 密行列または scipy.sparse 行列
        dim: ブロック次元

    Returns:
        blocksize = (dim, dim) の BSR 行列
    """
    n = M.shape[0]
    if M.shape != (n, n):
        raise ValueError(f"正方行列である必要があります: shape={M.shape}")
    if n % dim != 0:
        raise ValueError(f"行列サイズ {n} がブロック次元 {dim} で割り切れません。")
    B = sp.bsr_matrix(M, blocksize=(dim, dim))
    B.sum_duplicates()

    data_blocks: list[np.ndarray] = []
    indices: list[int] = []
    indptr = [0]
    for c in range(n // dim):
        start, end = B.indptr[c], B.indptr[c + 1]
        entries = [(int(j), B.data[k]) for j, k in zip(B.indices[start:end], range(start, end))]
        if all(j != c for j, _ in entries):
            entries.append((c, np.zeros((dim, dim))))
        entries.sort(key=lambda e: e[0])
        for j, blk in entries:
            indices.append(j)
            data_blocks.append(blk)
        indptr.append(len(indices))

    return sp.bsr_matrix(
        (
            np.asarray(data_blocks, dtype=float),
            np.asarray(indices, dtype=np.int32),
            np.asarray(indptr, dtype=np.int32),
        ),
        shape=(n, n),
    )


def matvec(M: Any, x: np.ndarray) -> np.ndarray:
    """y = M @ x を (n,) ベクトルで返す."""
    storage_type(M)
    return np.asarray(M @ x, dtype=float).ravel()
