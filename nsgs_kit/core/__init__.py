"""nsgs_kit.core - ツールキットスロットの抽象インタフェース定義・戻り値型.

Protocol:
  LocalSolverProtocol, UpdateLocalProblemProtocol, PostProcessProtocol,
  FreeLocalSolverProtocol, CopyLocalReactionProtocol,
  PerformRelaxationProtocol, LightErrorSquaredProtocol, SquaredNormProtocol
"""

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
from nsgs_kit.core.results import LocalSolverStatus, QPResult, SweepResult

__all__ = [
    "LocalSolverProtocol",
    "UpdateLocalProblemProtocol",
    "PostProcessProtocol",
    "FreeLocalSolverProtocol",
    "CopyLocalReactionProtocol",
    "PerformRelaxationProtocol",
    "LightErrorSquaredProtocol",
    "SquaredNormProtocol",
    "LocalSolverStatus",
    "SweepResult",
    "QPResult",
]
