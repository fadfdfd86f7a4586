"""局所ソルバー・ツールキットスロットの抽象インタフェース定義.

LocalProblemFunctionToolkit の各スロットはこれらの Protocol を満たす
呼び出し可能オブジェクト（関数・functools.partial・__call__ 持ちクラス）。

Protocol 一覧:
  LocalSolverProtocol            — 1接触の局所問題を in-place で解く
  UpdateLocalProblemProtocol     — 局所行列・右辺・係数の更新
  PostProcessProtocol            — 局所解の後処理（射影・クランプ等）
  FreeLocalSolverProtocol        — フレーバー固有スクラッチの解放
  CopyLocalReactionProtocol      — 局所反力のコピー
  PerformRelaxationProtocol      — 緩和（damping）
  LightErrorSquaredProtocol      — 局所誤差の2乗
  SquaredNormProtocol            — 2乗ノルム
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

import numpy as np

from nsgs_kit.core.results import LocalSolverStatus

if TYPE_CHECKING:
    from nsgs_kit.local_problem import LocalProblem
    from nsgs_kit.options import SolverOptions
    from nsgs_kit.problem import ContactProblem


@runtime_checkable
class LocalSolverProtocol(Protocol):
    """局所ソルバー.

    局所問題を読み取り、局所反力 reaction を in-place で更新する。
    非収束は例外ではなく NOT_CONVERGED を返す。大域問題は変更しない。
    """

    def __call__(
        self,
        local: LocalProblem,
        reaction: np.ndarray,
        options: SolverOptions,
    ) -> LocalSolverStatus: ...


@runtime_checkable
class UpdateLocalProblemProtocol(Protocol):
    """接触 contact の局所問題を大域問題と現在の反力から更新する."""

    def __call__(
        self,
        contact: int,
        problem: ContactProblem,
        local: LocalProblem,
        reaction: np.ndarray,
        options: SolverOptions | None,
    ) -> None: ...


@runtime_checkable
class PostProcessProtocol(Protocol):
    """局所解を大域反力に戻す前の後処理."""

    def __call__(self, contact: int, reaction: np.ndarray) -> None: ...


@runtime_checkable
class FreeLocalSolverProtocol(Protocol):
    """局所ソルバーが local.solver_data に付けた状態を解放する."""

    def __call__(
        self,
        local: LocalProblem,
        problem: ContactProblem,
        options: SolverOptions | None,
    ) -> None: ...


@runtime_checkable
class CopyLocalReactionProtocol(Protocol):
    """src を dst にコピーする."""

    def __call__(self, src: np.ndarray, dst: np.ndarray) -> None: ...


@runtime_checkable
class PerformRelaxationProtocol(Protocol):
    """reaction = omega * reaction + (1 - omega) * previous."""

    def __call__(self, reaction: np.ndarray, previous: np.ndarray, omega: float) -> None: ...


@runtime_checkable
class LightErrorSquaredProtocol(Protocol):
    """非負の局所誤差（2乗）."""

    def __call__(self, reaction: np.ndarray, previous: np.ndarray) -> float: ...


@runtime_checkable
class SquaredNormProtocol(Protocol):
    """非負の2乗ユークリッドノルム."""

    def __call__(self, x: np.ndarray) -> float: ...
