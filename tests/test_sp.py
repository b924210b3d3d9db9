from pysddp.sp import Subproblem
from pysddp.utils.exception import SampleSizeError, InfeasibilityError
import pytest


class TestVariables(object):

    def setup_method(self):
        self.m = Subproblem(name='test')

    def test_state_variable(self):
        now, past = self.m.addStateVar(ub=200, name='volume', initial_value=10)
        assert self.m.n_states == 1
        assert now.varName == 'volume'
        assert past.varName == 'volume_local_copy'
        assert self.m.initial_values == [10]
        assert past.ub == 200

    def test_state_variables(self):
        now, past = self.m.addStateVars(2, ub=2.0, name='x',
            initial_value=[1, 1])
        assert self.m.n_states == 2
        assert len(now) == len(past) == 2
        assert self.m.initial_values == [1.0, 1.0]
        with pytest.raises(ValueError):
            self.m.addStateVars(2, name='y', initial_value=[1, 2, 3])

    def test_objective_uncertainty(self):
        x = self.m.addVar(uncertainty=[1, 2, 3])
        assert self.m.n_samples == 3
        self.m._update_uncertainty(2)
        self.m.update()
        assert x.obj == 3
        y = self.m.addVars(2, uncertainty=[[1, 2], [3, 4], [5, 6]])
        self.m._update_uncertainty(1)
        self.m.update()
        assert [y[0].obj, y[1].obj] == [3, 4]

    def test_sample_size(self):
        self.m.addVar(uncertainty=[1, 2, 3])
        with pytest.raises(SampleSizeError):
            self.m.addVar(uncertainty=[1, 2])

    def test_invalid_uncertainty(self):
        with pytest.raises(TypeError):
            self.m.addVar(uncertainty={'rhs': [1, 2]})
        with pytest.raises(ValueError):
            self.m.addVar(uncertainty=['a', 'b'])
        with pytest.raises(ValueError):
            self.m.addVars(2, uncertainty=[[1, 2, 3]])
        with pytest.raises(TypeError):
            self.m.addVar(uncertainty=1)

    def test_controls(self):
        self.m.addStateVar(name='x')
        y = self.m.addVar(name='y')
        self.m._set_up_CTG(discount=1.0, bound=0)
        assert [var.varName for var in self.m.controls] == [y.varName]
        assert len(self.m.states_and_controls) == 2


class TestConstraints(object):

    def setup_method(self):
        self.m = Subproblem(name='test')
        self.x = self.m.addVar(name='x')
        self.y = self.m.addVar(name='y')

    def test_rhs_and_coefficient(self):
        c = self.m.addConstr(
            self.x + self.y == 0,
            uncertainty={'rhs': [1, 2, 3], self.x: [4, 5, 6]},
        )
        assert self.m.n_samples == 3
        self.m._update_uncertainty(1)
        self.m.update()
        assert c.RHS == 2
        assert self.m.getCoeff(c, self.x) == 5

    def test_explicit_sense(self):
        c = self.m.addConstr(self.x + 2 * self.y, '>', 3, name='cover',
            uncertainty={'rhs': [3, 4]})
        bare = self.m.addConstr(self.x <= 10, name='cap')
        assert c.ConstrName == 'cover'
        assert c.Sense == '>'
        assert bare.Sense == '<' and bare.RHS == 10
        self.m._update_uncertainty(1)
        self.m.update()
        assert c.RHS == 4
        assert self.m.getCoeff(c, self.y) == 2

    def test_unequal_lengths(self):
        with pytest.raises(SampleSizeError):
            self.m.addConstr(
                self.x + self.y == 0,
                uncertainty={'rhs': [1, 2], self.x: [4, 5, 6]},
            )

    def test_callable(self):
        with pytest.raises(TypeError):
            self.m.addConstr(
                self.x + self.y == 0,
                uncertainty={'rhs': lambda random_state: random_state.normal()},
            )

    def test_wrong_key(self):
        with pytest.raises(ValueError):
            self.m.addConstr(self.x + self.y == 0, uncertainty={'lhs': [1, 2]})
        with pytest.raises(ValueError):
            self.m.addConstr(self.x + self.y == 0,
                uncertainty_dependent={'lhs': 0})

    def test_constraints_rhs(self):
        constrs = self.m.addConstrs(
            (self.x + i * self.y == 0 for i in range(2)),
            uncertainty=[[10, 20], [30, 40]],
        )
        self.m._update_uncertainty(1)
        self.m.update()
        assert [constrs[0].RHS, constrs[1].RHS] == [30, 40]
        with pytest.raises(ValueError):
            self.m.addConstrs(
                (self.x + i * self.y == 0 for i in range(2)),
                uncertainty=[[10, 20, 30], [30, 40, 50]],
            )

    def test_block_of_one(self):
        constrs = self.m.addConstrs(
            (self.x + self.y >= 0 for _ in range(1)),
            uncertainty=[5, 6],
            uncertainty_dependent=[1],
        )
        self.m._update_uncertainty(1)
        self.m.update()
        assert constrs[0].RHS == 6
        self.m._update_uncertainty_dependent([3, 7])
        self.m.update()
        assert constrs[0].RHS == 7
        with pytest.raises(TypeError):
            self.m.addConstr(self.x >= 0, uncertainty=[1, 2])

    def test_dependent(self):
        c = self.m.addConstr(self.x + self.y == 0,
            uncertainty_dependent={'rhs': 1, self.y: 0})
        assert sorted(self.m.Markovian_dim_index) == [0, 1]
        self.m._update_uncertainty_dependent([3, 7])
        self.m.update()
        assert c.RHS == 7
        assert self.m.getCoeff(c, self.y) == 3


class TestSolve(object):

    def setup_method(self):
        self.m = Subproblem(name='test')
        self.now, self.past = self.m.addStateVar(ub=10, name='x')
        self.demand = self.m.addConstr(self.now + self.past >= 4, name='demand',
            uncertainty={'rhs': [4, 8]})
        self.m.setObjective(self.now)
        self.m.update()

    def test_probability(self):
        with pytest.raises(ValueError):
            self.m.set_probability([0.5, 0.3])
        with pytest.raises(ValueError):
            self.m.set_probability([1.0])
        self.m.set_probability([0.25, 0.75])
        assert self.m.probability == [0.25, 0.75]

    def test_solveLP(self):
        self.m._set_up_link_constrs()
        self.m._update_link_constrs([1])
        values, duals = self.m._solveLP()
        assert list(values) == pytest.approx([3, 7])
        assert list(duals[:, 0]) == pytest.approx([-1, -1])
        obj, grad = self.m._average(values, duals, [0.5, 0.5])
        assert obj == pytest.approx(5)
        assert list(grad) == pytest.approx([-1])

    def test_stage_objective(self):
        self.m._set_up_CTG(discount=0.5, bound=1)
        self.m._set_up_link_constrs()
        self.m._update_link_constrs([0])
        self.m._update_uncertainty(0)
        self.m.optimize()
        assert self.m.objVal == pytest.approx(4.5)
        assert self.m.stage_objective == pytest.approx(4)

    def test_infeasible(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        self.m.addConstr(self.now <= -1, name='impossible')
        self.m.optimize()
        with pytest.raises(InfeasibilityError):
            self.m._check_status('infeasible')
        assert (tmp_path / 'infeasible.lp').exists()
