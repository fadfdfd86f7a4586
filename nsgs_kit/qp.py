"""密行列の凸二次計画問題（QP）.

    min  0.5 x^T Q x + p^T x
    s.t. A x + b >= 0
         lower <= x <= upper

scipy.optimize.minimize（SLSQP）で解く。LCP の QP 定式化
（lcp_nsqp）から局所ソルバーとして使用する。
"""

from __future__ import annotations

import numpy as np
from scipy.optimize import Bounds, minimize

from nsgs_kit.core.results import QPResult


def solve_convex_qp(
    Q: np.ndarray,
    p: np.ndarray,
    A: np.ndarray | None = None,
    b: np.ndarray | None = None,
    lower: np.ndarray | None = None,
    upper: np.ndarray | None = None,
    *,
    x0: np.ndarray | None = None,
    tol: float = 1e-12,
    max_iter: int = 100,
) -> QPResult:
    """凸 QP を解く.

    Args:
        Q: (n, n) 半正定値行列（非対称の場合は対称部分を使う）
        p: (n,) 線形項
        A: (m, n) 不等式制約行列。None で制約なし。
        b: (m,) 不等式制約の定数項
        lower: (n,) 下限。None で -inf。
        upper: (n,) 上限。None で +inf。
        x0: (n,) 初期値。None なら 0 を [lower, upper] に射影した点。
        tol: SLSQP の ftol
        max_iter: 最大反復回数

    Returns:
        QPResult
    """
    p = np.asarray(p, dtype=float)
    n = len(p)
    Q = np.asarray(Q, dtype=float)
    if Q.shape != (n, n):
        raise ValueError(f"Q は ({n}, {n}) が必要。実際: {Q.shape}")
    Q_sym = 0.5 * (Q + Q.T)

    lb = np.full(n, -np.inf) if lower is None else np.asarray(lower, dtype=float)
    ub = np.full(n, np.inf) if upper is None else np.asarray(upper, dtype=float)
    if x0 is None:
        x0 = np.clip(np.zeros(n), lb, ub)

    def objective(x: np.ndarray) -> float:
        return float(0.5 * x @ Q_sym @ x + p @ x)

    def gradient(x: np.ndarray) -> np.ndarray:
        return Q_sym @ x + p

    constraints = []
    if A is not None:
        A = np.asarray(A, dtype=float)
        b = np.zeros(A.shape[0]) if b is None else np.asarray(b, dtype=float)
        if A.shape[1] != n or b.shape != (A.shape[0],):
            raise ValueError(f"A, b の形状が不正です: A={A.shape}, b={b.shape}, n={n}")
        constraints.append(
            {
                "type": "ineq",
                "fun": lambda x: A @ x + b,
                "jac": lambda x: A,
            }
        )

    res = minimize(
        objective,
        np.asarray(x0, dtype=float),
        jac=gradient,
        method="SLSQP",
        bounds=Bounds(lb, ub),
        constraints=constraints,
        options={"ftol": tol, "maxiter": max_iter},
    )
    return QPResult(
        x=np.asarray(res.x, dtype=float),
        success=bool(res.success),
        n_iterations=int(res.nit),
        message=str(res.message),
    )
