"""NSGS スイープと反復ドライバのテスト.

テスト構成:
- TestSolverOptions: 設定値の検証
- TestSweep: Gauss-Seidel の即時反映 / Jacobi のスナップショット、状態の伝搬、緩和、処理順序
- TestSolve: 全格納形式で線形局所ソルバーが M^{-1} q に収束、free_local_solver の呼び出し
"""

import numpy as np
import pytest
import scipy.sparse as sp

from nsgs_kit.core.results import LocalSolverStatus
from nsgs_kit.errors import MissingCapabilityError
from nsgs_kit.local_problem import local_problem_scope
from nsgs_kit.matrix import to_block_sparse
from nsgs_kit.options import SolverOptions
from nsgs_kit.problem import FrictionContactProblem
from nsgs_kit.sweep import nsgs_solve, nsgs_sweep
from nsgs_kit.toolkit import LocalProblemFunctionToolkit, default_toolkit

B0 = np.array([[6.0, 1.0, 0.0], [1.0, 6.0, 1.0], [0.0, 1.0, 6.0]])
B1 = np.array([[7.0, 0.0, 1.0], [0.0, 8.0, 0.0], [1.0, 0.0, 9.0]])
C = np.array([[1.0, 2.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
Q0 = np.array([1.0, 2.0, 3.0])
Q1 = np.array([4.0, 5.0, 6.0])

FORMATS = {
    "dense": lambda M: M,
    "bsr": lambda M: to_block_sparse(M, 3),
    "csr": sp.csr_matrix,
    "csc": sp.csc_matrix,
    "coo": sp.coo_matrix,
}


def _dense() -> np.ndarray:
    return np.block([[B0, C], [C.T, B1]])


def _make_problem(fmt: str = "dense") -> FrictionContactProblem:
    return FrictionContactProblem(
        M=FORMATS[fmt](_dense()),
        q=np.concatenate([Q0, Q1]),
        mu=np.array([0.3, 0.5]),
    )


def linear_local_solver(local, reaction, options):
    """M_cc r_c = q_loc を直接解く（摩擦なしの線形局所問題）."""
    reaction[:] = np.linalg.solve(local.M, local.q)
    return LocalSolverStatus.SUCCESS


class RecordingSolver:
    """各接触で受け取った局所右辺を記録する線形局所ソルバー."""

    def __init__(self, statuses=None):
        self.rhs = {}
        self.statuses = statuses or {}

    def __call__(self, local, reaction, options):
        self.rhs[local.contact] = local.q.copy()
        reaction[:] = np.linalg.solve(local.M, local.q)
        return self.statuses.get(local.contact, LocalSolverStatus.SUCCESS)


class TestSolverOptions:
    def test_defaults(self):
        opts = SolverOptions()
        assert opts.sweep_mode == "gauss_seidel"
        assert opts.relaxation == 1.0
        np.testing.assert_array_equal(opts.resolve_contact_order(3), [0, 1, 2])

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"tol": 0.0},
            {"max_iter": 0},
            {"relaxation": 1.5},
            {"relaxation": 0.0},
            {"relaxation": -0.5},
            {"sweep_mode": "sor"},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            SolverOptions(**kwargs)

    def test_contact_order_out_of_range(self):
        opts = SolverOptions(contact_order=[0, 3])
        with pytest.raises(ValueError, match="contact_order"):
            opts.resolve_contact_order(2)


class TestSweep:
    """nsgs_sweep."""

    def test_gauss_seidel_sees_updated_reaction(self):
        """接触1の局所右辺は同一スイープで更新された接触0の反力を含む."""
        problem = _make_problem()
        reaction = np.zeros(6)
        solver = RecordingSolver()
        with local_problem_scope(problem) as local:
            nsgs_sweep(problem, reaction, local, default_toolkit(solver), SolverOptions())

        r0 = np.linalg.solve(B0, Q0)
        np.testing.assert_allclose(solver.rhs[0], Q0)
        np.testing.assert_allclose(solver.rhs[1], Q1 - C.T @ r0, rtol=1e-12)
        np.testing.assert_allclose(reaction[:3], r0, rtol=1e-12)

    def test_jacobi_reads_snapshot(self):
        """Jacobi では接触1もスイープ開始時の反力（0）のみを読む."""
        problem = _make_problem()
        reaction = np.zeros(6)
        solver = RecordingSolver()
        with local_problem_scope(problem) as local:
            nsgs_sweep(
                problem, reaction, local, default_toolkit(solver), SolverOptions(sweep_mode="jacobi")
            )

        np.testing.assert_allclose(solver.rhs[1], Q1)
        np.testing.assert_allclose(reaction[3:], np.linalg.solve(B1, Q1), rtol=1e-12)

    def test_jacobi_order_independent(self):
        problem = _make_problem()
        results = []
        for order in ([0, 1], [1, 0]):
            reaction = np.array([0.1, 0.2, 0.3, 0.4, 0.5, 0.6])
            opts = SolverOptions(sweep_mode="jacobi", contact_order=order)
            with local_problem_scope(problem) as local:
                nsgs_sweep(problem, reaction, local, default_toolkit(linear_local_solver), opts)
            results.append(reaction)
        np.testing.assert_array_equal(results[0], results[1])

    def test_snapshot_rejected_in_gauss_seidel(self):
        problem = _make_problem()
        with local_problem_scope(problem) as local:
            with pytest.raises(ValueError, match="Jacobi"):
                nsgs_sweep(
                    problem,
                    np.zeros(6),
                    local,
                    default_toolkit(linear_local_solver),
                    SolverOptions(),
                    snapshot=np.zeros(6),
                )

    def test_contact_order_reversed(self):
        """順序 [1, 0] では接触0が更新済みの接触1の反力を読む."""
        problem = _make_problem("bsr")
        reaction = np.zeros(6)
        solver = RecordingSolver()
        opts = SolverOptions(contact_order=[1, 0])
        with local_problem_scope(problem) as local:
            nsgs_sweep(problem, reaction, local, default_toolkit(solver), opts)

        r1 = np.linalg.solve(B1, Q1)
        np.testing.assert_allclose(solver.rhs[1], Q1)
        np.testing.assert_allclose(solver.rhs[0], Q0 - C @ r1, rtol=1e-12)

    def test_failure_status_is_transported(self):
        """非収束の局所ソルバーは例外にならず failed_contacts に記録される."""
        problem = _make_problem()
        solver = RecordingSolver(statuses={1: LocalSolverStatus.NOT_CONVERGED})
        with local_problem_scope(problem) as local:
            sweep = nsgs_sweep(problem, np.zeros(6), local, default_toolkit(solver), SolverOptions())
        assert sweep.failed_contacts == [1]
        assert sweep.statuses == [LocalSolverStatus.SUCCESS, LocalSolverStatus.NOT_CONVERGED]

    def test_first_sweep_error_from_zero(self):
        """初期反力 0 からの1スイープ目の正規化誤差は 1."""
        problem = _make_problem()
        with local_problem_scope(problem) as local:
            sweep = nsgs_sweep(
                problem, np.zeros(6), local, default_toolkit(linear_local_solver), SolverOptions()
            )
        assert sweep.error == pytest.approx(1.0)

    def test_relaxation_half_blends_with_previous(self):
        """Jacobi, ω = 0.5, 初期反力 0 では局所解の半分になる."""
        problem = _make_problem()
        reaction = np.zeros(6)
        opts = SolverOptions(sweep_mode="jacobi", relaxation=0.5)
        with local_problem_scope(problem) as local:
            nsgs_sweep(problem, reaction, local, default_toolkit(linear_local_solver), opts)
        expected = 0.5 * np.concatenate([np.linalg.solve(B0, Q0), np.linalg.solve(B1, Q1)])
        np.testing.assert_allclose(reaction, expected, rtol=1e-12)

    def test_skipped_contact_has_no_status(self):
        """contact_order に含まれない接触の状態は None."""
        problem = _make_problem()
        reaction = np.zeros(6)
        opts = SolverOptions(contact_order=[1])
        with local_problem_scope(problem) as local:
            sweep = nsgs_sweep(problem, reaction, local, default_toolkit(linear_local_solver), opts)
        assert sweep.statuses == [None, LocalSolverStatus.SUCCESS]
        assert sweep.failed_contacts == []
        np.testing.assert_array_equal(reaction[:3], np.zeros(3))

    def test_unbound_light_error_is_not_zero(self):
        """light_error_squared 未登録でも既定の誤差で評価する."""
        problem = _make_problem()
        tk = default_toolkit(linear_local_solver, light_error_squared=None)
        with local_problem_scope(problem) as local:
            sweep = nsgs_sweep(problem, np.zeros(6), local, tk, SolverOptions())
        assert sweep.error == pytest.approx(1.0)

    def test_post_process_called_per_contact(self):
        problem = _make_problem()
        seen = []

        def post(contact, reaction):
            seen.append(contact)
            reaction[:] = 0.0

        reaction = np.zeros(6)
        tk = default_toolkit(linear_local_solver, post_processed_local_result=post)
        with local_problem_scope(problem) as local:
            nsgs_sweep(problem, reaction, local, tk, SolverOptions())
        assert seen == [0, 1]
        np.testing.assert_array_equal(reaction, np.zeros(6))

    def test_missing_local_solver(self):
        problem = _make_problem()
        with local_problem_scope(problem) as local:
            with pytest.raises(MissingCapabilityError, match="local_solver"):
                nsgs_sweep(problem, np.zeros(6), local, default_toolkit(None), SolverOptions())

    @pytest.mark.parametrize(
        "reaction",
        [np.zeros(5), np.zeros(6, dtype=int), [0.0] * 6],
    )
    def test_invalid_reaction(self, reaction):
        problem = _make_problem()
        with local_problem_scope(problem) as local:
            with pytest.raises(ValueError, match="reaction"):
                nsgs_sweep(
                    problem, reaction, local, default_toolkit(linear_local_solver), SolverOptions()
                )


class TestSolve:
    """nsgs_solve."""

    @pytest.mark.parametrize("fmt", list(FORMATS))
    @pytest.mark.parametrize("mode", ["gauss_seidel", "jacobi"])
    def test_converges_to_linear_solution(self, fmt, mode):
        problem = _make_problem(fmt)
        reaction = np.zeros(6)
        opts = SolverOptions(tol=1e-12, max_iter=500, sweep_mode=mode)
        result = nsgs_solve(problem, reaction, default_toolkit(linear_local_solver), opts)

        expected = np.linalg.solve(_dense(), np.concatenate([Q0, Q1]))
        assert result.converged
        assert result.reaction is reaction
        np.testing.assert_allclose(reaction, expected, atol=1e-9)
        np.testing.assert_allclose(result.velocity, np.zeros(6), atol=1e-8)
        assert result.n_iterations == len(result.error_history)
        assert result.failed_contacts == []

    def test_global_matrix_unchanged(self):
        problem = _make_problem("bsr")
        before = problem.M.toarray().copy()
        nsgs_solve(problem, np.zeros(6), default_toolkit(linear_local_solver))
        np.testing.assert_array_equal(problem.M.toarray(), before)

    def test_not_converged(self, capsys):
        problem = _make_problem()
        opts = SolverOptions(tol=1e-14, max_iter=1, show_progress=True)
        result = nsgs_solve(problem, np.zeros(6), default_toolkit(linear_local_solver), opts)
        assert not result.converged
        assert result.n_iterations == 1
        assert "WARNING" in capsys.readouterr().out

    def test_show_progress(self, capsys):
        problem = _make_problem()
        opts = SolverOptions(tol=1e-10, show_progress=True)
        nsgs_solve(problem, np.zeros(6), default_toolkit(linear_local_solver), opts)
        assert "converged" in capsys.readouterr().out

    def test_free_local_solver_called(self):
        calls = []

        def free(local, problem, options):
            calls.append(local.released)

        problem = _make_problem()
        tk = default_toolkit(linear_local_solver, free_local_solver=free)
        nsgs_solve(problem, np.zeros(6), tk)
        assert calls == [False]

    def test_free_local_solver_called_on_exception(self):
        calls = []
        captured = []

        def failing(local, reaction, options):
            captured.append(local)
            raise RuntimeError("local failure")

        def free(local, problem, options):
            calls.append(local)

        tk = default_toolkit(failing, free_local_solver=free)
        with pytest.raises(RuntimeError, match="local failure"):
            nsgs_solve(_make_problem(), np.zeros(6), tk)
        assert len(calls) == 1
        assert calls[0] is captured[0]
        assert captured[0].released

    def test_unbound_light_error_converges_to_solution(self):
        problem = _make_problem()
        reaction = np.zeros(6)
        tk = default_toolkit(linear_local_solver, light_error_squared=None)
        result = nsgs_solve(problem, reaction, tk, SolverOptions(tol=1e-12, max_iter=500))
        assert result.converged
        assert result.n_iterations > 1
        np.testing.assert_allclose(result.velocity, np.zeros(6), atol=1e-8)

    def test_missing_update_local_problem(self):
        tk = LocalProblemFunctionToolkit(local_solver=linear_local_solver)
        with pytest.raises(MissingCapabilityError, match="update_local_problem"):
            nsgs_solve(_make_problem(), np.zeros(6), tk)
