"""局所問題ファンクションツールキット.

局所ソルバーの「フレーバー」（摩擦3D, Mohr-Coulomb 2D, LCP-QP 等）を
外側の Gauss-Seidel スイープに差し込むための、任意スロットの束。

スロット:
  local_solver                 局所問題を解く（LocalSolverStatus を返す）
  update_local_problem         局所行列・右辺・係数の更新
  post_processed_local_result  大域反力に戻す前の後処理
  free_local_solver            フレーバー固有スクラッチの解放
  copy_local_reaction          局所反力のコピー
  perform_relaxation           緩和
  light_error_squared          局所誤差の2乗
  squared_norm                 2乗ノルム

未登録（None）のスロットは「このフレーバーには不要」を意味する。
呼び出し側は必ず has() / require() で存在を確認してから呼ぶこと。
構築後は不変（frozen）。
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace

import numpy as np

from nsgs_kit.core.local_solver import (
    CopyLocalReactionProtocol,
    FreeLocalSolverProtocol,
    LightErrorSquaredProtocol,
    LocalSolverProtocol,
    PerformRelaxationProtocol,
    PostProcessProtocol,
    SquaredNormProtocol,
    UpdateLocalProblemProtocol,
)
from nsgs_kit.errors import MissingCapabilityError
from nsgs_kit.extraction import update_local_problem


def copy_local_reaction(src: np.ndarray, dst: np.ndarray) -> None:
    """dst[:] = src."""
    np.copyto(dst, src)


def perform_relaxation(reaction: np.ndarray, previous: np.ndarray, omega: float) -> None:
    """緩和: reaction = ω * reaction + (1 - ω) * previous（in-place）.

    ω = 1 では reaction をそのまま、ω = 0 では previous を厳密に返す。

    Args:
        reaction: 局所ソルバーの解（上書き）
        previous: 求解前の反力
        omega: 緩和係数 ω ∈ [0, 1]
    """
    if not 0.0 <= omega <= 1.0:
        raise ValueError(f"緩和係数は [0, 1] の範囲で指定してください: {omega}")
    if omega == 1.0:
        return
    if omega == 0.0:
        np.copyto(reaction, previous)
        return
    reaction *= omega
    reaction += (1.0 - omega) * previous


def light_error_squared(reaction: np.ndarray, previous: np.ndarray) -> float:
    """||reaction - previous||^2."""
    diff = np.asarray(reaction, dtype=float) - np.asarray(previous, dtype=float)
    return float(np.dot(diff, diff))


def squared_norm(x: np.ndarray) -> float:
    """||x||^2."""
    x = np.asarray(x, dtype=float)
    return float(np.dot(x, x))


@dataclass(frozen=True)
class LocalProblemFunctionToolkit:
    """局所ソルバーフレーバーのスロット束.

    Attributes:
        local_solver: LocalSolverProtocol
        update_local_problem: UpdateLocalProblemProtocol
        post_processed_local_result: PostProcessProtocol
        free_local_solver: FreeLocalSolverProtocol
        copy_local_reaction: CopyLocalReactionProtocol
        perform_relaxation: PerformRelaxationProtocol
        light_error_squared: LightErrorSquaredProtocol
        squared_norm: SquaredNormProtocol
    """

    local_solver: LocalSolverProtocol | None = None
    update_local_problem: UpdateLocalProblemProtocol | None = None
    post_processed_local_result: PostProcessProtocol | None = None
    free_local_solver: FreeLocalSolverProtocol | None = None
    copy_local_reaction: CopyLocalReactionProtocol | None = None
    perform_relaxation: PerformRelaxationProtocol | None = None
    light_error_squared: LightErrorSquaredProtocol | None = None
    squared_norm: SquaredNormProtocol | None = None

    def __post_init__(self) -> None:
        for f in fields(self):
            slot = getattr(self, f.name)
            if slot is not None and not callable(slot):
                raise TypeError(f"スロット '{f.name}' は呼び出し可能である必要があります: {slot!r}")

    @classmethod
    def slot_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def has(self, name: str) -> bool:
        """スロット name が登録済みか."""
        if name not in self.slot_names():
            raise KeyError(f"未知のスロット名です: '{name}'")
        return getattr(self, name) is not None

    def require(self, name: str):
        """登録済みスロットを返す。未登録なら MissingCapabilityError."""
        if not self.has(name):
            raise MissingCapabilityError(f"ツールキットにスロット '{name}' が登録されていません。")
        return getattr(self, name)

    def bound_slots(self) -> dict[str, bool]:
        """各スロットの登録状況."""
        return {name: getattr(self, name) is not None for name in self.slot_names()}

    def display(self, *, show: bool = True) -> str:
        """スロットの登録状況を表示する（デバッグ用）.

        Returns:
            表示した文字列
        """
        lines = []
        for name in self.slot_names():
            slot = getattr(self, name)
            if slot is None:
                lines.append(f"{name:<28s} None")
            else:
                label = getattr(slot, "__qualname__", None) or type(slot).__name__
                lines.append(f"{name:<28s} {label}")
        report = "\n".join(lines)
        if show:
            print(report)
        return report

    def with_slots(self, **slots) -> LocalProblemFunctionToolkit:
        """スロットを差し替えた新しいツールキットを返す."""
        return replace(self, **slots)


def default_toolkit(
    local_solver: LocalSolverProtocol | None,
    **overrides,
) -> LocalProblemFunctionToolkit:
    """汎用プリミティブを登録したツールキットを構築する.

    update_local_problem / copy_local_reaction / perform_relaxation /
    light_error_squared / squared_norm に既定実装を登録する。
    post_processed_local_result と free_local_solver は未登録。

    Args:
        local_solver: 局所ソルバー
        **overrides: 差し替えるスロット（None で未登録にできる）
    """
    slots = {
        "local_solver": local_solver,
        "update_local_problem": update_local_problem,
        "copy_local_reaction": copy_local_reaction,
        "perform_relaxation": perform_relaxation,
        "light_error_squared": light_error_squared,
        "squared_norm": squared_norm,
    }
    unknown = set(overrides) - set(LocalProblemFunctionToolkit.slot_names())
    if unknown:
        raise KeyError(f"未知のスロット名です: {sorted(unknown)}")
    slots.update(overrides)
    return LocalProblemFunctionToolkit(**slots)
