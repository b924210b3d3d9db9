from pysddp.sp import Subproblem
from pysddp.cuts import Cut
import pytest


def node(name='x', sense=1, bound=0):
    m = Subproblem(name='node')
    m.setAttr('modelsense', sense)
    m.update()
    now, _ = m.addStateVar(ub=10, name=name)
    m._set_up_CTG(discount=1.0, bound=bound)
    return m, now


def test_cut_evaluate():
    cut = Cut(1, [2, 3])
    assert cut.evaluate([1, 1]) == pytest.approx(6)


class TestValueFunction(object):

    def test_add(self):
        m, _ = node()
        vf = m.value_function
        assert len(vf) == 0
        assert vf.evaluate([3]) == 0
        cut = vf.add(1, [2], iteration=1)
        assert cut.iteration == 1
        assert vf.add(1, [2]) is None
        assert len(vf) == 1
        assert vf.evaluate([3]) == pytest.approx(7)
        with pytest.raises(ValueError):
            vf.add(1, [2, 3])

    def test_constraint(self):
        m, now = node()
        m._add_cut(1, [2])
        m._add_cut(10, [-1])
        now.lb = now.ub = 3
        m.optimize()
        assert m.alpha.X == pytest.approx(7)
        now.lb = now.ub = 1
        m.optimize()
        assert m.alpha.X == pytest.approx(9)

    def test_maximization(self):
        m, now = node(sense=-1, bound=100)
        m._add_cut(1, [2])
        m._add_cut(10, [-1])
        assert m.value_function.evaluate([1]) == pytest.approx(3)
        now.lb = now.ub = 5
        m.optimize()
        assert m.alpha.X == pytest.approx(5)

    def test_remove(self):
        m, _ = node()
        m._add_cut(1, [2])
        m._add_cut(10, [-1])
        n_constrs = m.NumConstrs
        m.value_function.remove(0)
        m.update()
        assert m.NumConstrs == n_constrs - 1
        assert m.value_function[0].rhs == 10
        m.value_function.clear()
        assert len(m.value_function) == 0

    def test_remove_dominated(self):
        m, _ = node()
        m._add_cut(1, [2])
        m._add_cut(10, [-1])
        m._add_cut(0, [0])
        assert m.value_function.remove_dominated([[0], [1]]) == 2
        assert m.value_function[0].rhs == 10
        m._add_cut(1, [2])
        assert m.value_function.remove_dominated([[0], [8]]) == 0

    def test_write_read(self, tmp_path):
        m, _ = node()
        m._add_cut(1, [2])
        m._add_cut(10, [-1])
        assert m.get_cut_coeffs_and_rhs() == {'x': [2, -1], 'rhs': [1, 10]}
        filename = str(tmp_path / 'cuts.csv')
        m.value_function.write(filename)
        n, _ = node()
        assert n.value_function.read(filename) == 2
        assert [cut.rhs for cut in n.value_function] == [1, 10]
        # identical cuts are skipped
        assert n.value_function.read(filename) == 0
        other, _ = node(name='y')
        with pytest.raises(ValueError):
            other.value_function.read(filename)
