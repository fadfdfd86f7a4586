"""大域問題のデータ構造.

全接触を結合した非平滑問題:

    w = M r - q,   (r_c, w_c) ∈ 接触 c の非平滑法則   (c = 0, ..., n_c - 1)

q は右辺（M r = q + w）として保持する。

接触ごとの次元 dim:
  - FrictionContactProblem   3（法線 + 接線2方向, Coulomb 摩擦円錐）
  - MohrCoulomb2DProblem     2（2D Mohr-Coulomb 塑性円錐）
  - LinearComplementarityProblem  既定 1（スカラー LCP、任意のブロック次元可）

問題の構築・破棄は呼び出し側の責務。nsgs_kit は読み取りのみ行う。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

import numpy as np

from nsgs_kit.matrix import StorageType, check_block_diagonal_stored, matvec, storage_type


@dataclass
class ContactProblem:
    """接触ごとにブロック分割された大域問題.

    Attributes:
        M: (n, n) 大域相互作用行列（ndarray / BSR / CSR / CSC / COO）
        q: (n,) 右辺ベクトル
        mu: (n_contacts,) 接触ごとの係数（摩擦係数等）。係数を持たない問題は None。
        dimension: 接触あたりの次元
        number_of_contacts: 接触数（n / dimension、自動計算）
    """

    M: Any
    q: np.ndarray
    mu: np.ndarray | None = None
    dimension: int = 1
    number_of_contacts: int = field(init=False)

    requires_coefficients: ClassVar[bool] = False
    fixed_dimension: ClassVar[int | None] = None

    def __post_init__(self) -> None:
        self.q = np.asarray(self.q, dtype=float)
        if self.q.ndim != 1:
            raise ValueError(f"q は1次元配列である必要があります: shape={self.q.shape}")
        if self.fixed_dimension is not None and self.dimension != self.fixed_dimension:
            raise ValueError(
                f"{type(self).__name__} の接触次元は {self.fixed_dimension} です: "
                f"dimension={self.dimension}"
            )
        if self.dimension <= 0:
            raise ValueError(f"dimension は正である必要があります: {self.dimension}")

        n = len(self.q)
        if n == 0 or n % self.dimension != 0:
            raise ValueError(f"len(q)={n} が接触次元 {self.dimension} の正の倍数ではありません。")
        self.number_of_contacts = n // self.dimension

        storage_type(self.M)
        if self.M.shape != (n, n):
            raise ValueError(f"M は ({n}, {n}) が必要。実際: {self.M.shape}")
        if self.storage is StorageType.SPARSE_BLOCK:
            check_block_diagonal_stored(self.M, self.dimension)

        if self.mu is None:
            if self.requires_coefficients:
                raise ValueError(f"{type(self).__name__} には接触ごとの係数 mu が必要です。")
        else:
            self.mu = np.asarray(self.mu, dtype=float)
            if self.mu.shape != (self.number_of_contacts,):
                raise ValueError(
                    f"mu は ({self.number_of_contacts},) が必要。実際: {self.mu.shape}"
                )

    @property
    def size(self) -> int:
        """大域自由度数 n."""
        return len(self.q)

    @property
    def storage(self) -> StorageType:
        """行列の格納形式."""
        return storage_type(self.M)

    def contact_slice(self, contact: int) -> slice:
        """接触 contact の大域インデックス範囲."""
        if not 0 <= contact < self.number_of_contacts:
            raise ValueError(
                f"接触インデックスが範囲外です: {contact}（0 <= contact < {self.number_of_contacts}）"
            )
        return slice(contact * self.dimension, (contact + 1) * self.dimension)

    def velocity(self, reaction: np.ndarray) -> np.ndarray:
        """w = M r - q."""
        reaction = np.asarray(reaction, dtype=float)
        if reaction.shape != self.q.shape:
            raise ValueError(f"reaction は {self.q.shape} が必要。実際: {reaction.shape}")
        return matvec(self.M, reaction) - self.q


@dataclass
class FrictionContactProblem(ContactProblem):
    """3D Coulomb 摩擦接触問題（接触あたり 3 成分: [r_n, r_t1, r_t2]）."""

    dimension: int = 3

    requires_coefficients: ClassVar[bool] = True
    fixed_dimension: ClassVar[int | None] = 3


@dataclass
class MohrCoulomb2DProblem(ContactProblem):
    """2D Mohr-Coulomb 塑性問題（接触あたり 2 成分）.

    mu は各点の内部摩擦係数。
    """

    dimension: int = 2

    requires_coefficients: ClassVar[bool] = True
    fixed_dimension: ClassVar[int | None] = 2


@dataclass
class LinearComplementarityProblem(ContactProblem):
    """線形相補性問題.

        w = M z - q,  0 <= z ⊥ w >= 0

    標準形 LCP(M, q_std)（w = M z + q_std）は q = -q_std で表す（from_standard）。

    dimension はブロック Gauss-Seidel の分割単位（既定 1 = 成分ごと）。
    """

    def __post_init__(self) -> None:
        if self.mu is not None:
            raise ValueError("LinearComplementarityProblem は係数 mu を持ちません。")
        super().__post_init__()

    @classmethod
    def from_standard(
        cls,
        M: Any,
        q_std: np.ndarray,
        dimension: int = 1,
    ) -> LinearComplementarityProblem:
        """標準形 w = M z + q_std から構築する."""
        return cls(M=M, q=-np.asarray(q_std, dtype=float), dimension=dimension)
