from pysddp.graph import PolicyGraph
from pysddp.utils.exception import MarkovianDimensionError
from pysddp.utils.examples import (construct_hydro_thermal,
    construct_hydro_thermal_markov)
import pytest
import numpy
# MC uncertainty
Markov_states = [
    [[6000]],
    [[5000],[7000]],
    [[6000],[8000]],
]
transition_matrix = [
    [[1]],
    [[0.4,0.6]],
    [[0.2,0.8],[0.3,0.7]]
]
Invalid_Markov_states_1 = [
    [[6000],[8000]],
    [[5000],[7000]],
    [[6000],[8000]],
]
invalid_transition_matrix = [None]*3
invalid_transition_matrix[0] = [
    [[0.4,0.6]],
    [[0.4,0.6]],
    [[0.2,0.8],[0.3,0.7]]
]
invalid_transition_matrix[1] = [
    [[1]],
    [[0.3,0.6]],
    [[0.2,0.8],[0.3,0.7]]
]
invalid_transition_matrix[2] = [
    [[1]],
    [[0.3,0.6]],
    [[0.2,0.8],[0.3,0.7],[0.4,0.6]]
]
def sample_path_generator(random_state,size):
    a = numpy.zeros([size,3,1])
    a[:,0,:] = 0.2
    for t in range(1,3):
        a[:,t,:] = 0.5*a[:,t-1,:] + random_state.lognormal(0,1,size=[size,1])
    return a

def invalid_sample_path_generator_1(random_state,size):
    a = numpy.zeros([size,3])
    for t in range(1,3):
        a[:,t] = 0.5*a[:,t-1] + random_state.lognormal(0,1,size=size)
    return a

def invalid_sample_path_generator_2(size):
    a = numpy.zeros([size,3,1])
    for t in range(1,3):
        a[:,t,:] = 0.5*a[:,t-1,:] + numpy.random.lognormal(0,1,size=size)
    return a

def builder(m, t, k=0):
    now, past = m.addStateVar(ub=10, name='stock', initial_value=5)
    a = m.addVars(2, name='a')
    m.addConstr(a[0] + a[1] + now - past == 10, name='balance')


class TestConstruction(object):

    @pytest.mark.parametrize("kwargs", [
        dict(T=1),
        dict(T=3, discount=0),
        dict(T=3, discount=1.5),
        dict(T=3, sense=0),
        dict(T=3, outputFlag=2),
    ])
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            PolicyGraph(**kwargs)

    def test_default_bound(self):
        assert PolicyGraph(T=3).bound == -1000000000
        assert PolicyGraph(T=3, sense=-1).bound == 1000000000
        assert PolicyGraph(T=3, bound=0).bound == 0

    def test_build_linear(self):
        calls = []
        def record(m, t):
            calls.append(t)
            builder(m, t)
        graph = PolicyGraph(T=3).build(record)
        assert calls == [0, 1, 2]
        assert graph.n_nodes == 3
        assert [(t, k) for t, k, _ in graph.nodes] == [(0,0),(1,0),(2,0)]
        assert graph[1].n_states == 1

    def test_build_markov(self):
        calls = []
        def record(m, t, k):
            calls.append((t, k))
            builder(m, t, k)
        graph = PolicyGraph(T=3)
        graph.add_MC_uncertainty(Markov_states, transition_matrix)
        graph.build(record)
        assert calls == [(0,0),(1,0),(1,1),(2,0),(2,1)]
        assert graph.n_nodes == 5
        assert len(graph[1]) == 2

    def test_write(self, tmp_path):
        graph = PolicyGraph(T=3).build(builder)
        graph.write(str(tmp_path), ".lp")
        for t in range(3):
            assert (tmp_path / "stage_{}.lp".format(t)).exists()


class TestMarkovChain(object):

    def test_MC_uncertainty(self):
        graph = PolicyGraph(T=3)
        with pytest.raises(ValueError):
            graph.add_MC_uncertainty(
                Markov_states=Invalid_Markov_states_1,
                transition_matrix=transition_matrix,
            )
        for i in range(3):
            with pytest.raises(ValueError):
                graph.add_MC_uncertainty(
                    Markov_states=Markov_states,
                    transition_matrix=invalid_transition_matrix[i],
                )
        graph.add_MC_uncertainty(
            Markov_states=Markov_states,
            transition_matrix=transition_matrix,
        )
        assert graph.n_Markov_states == [1, 2, 2]
        assert graph.dim_Markov_states == [1, 1, 1]
        with pytest.raises(ValueError):
            graph.add_MC_uncertainty(Markov_states, transition_matrix)
        with pytest.raises(ValueError):
            graph.add_Markovian_uncertainty(sample_path_generator)

    def test_after_build(self):
        graph = PolicyGraph(T=3).build(builder)
        with pytest.raises(ValueError):
            graph.add_MC_uncertainty(Markov_states, transition_matrix)

    def test_dependent_uncertainty_applied(self):
        graph = PolicyGraph(T=3)
        graph.add_MC_uncertainty(Markov_states, transition_matrix)
        def dependent(m, t, k):
            now, past = m.addStateVar(ub=10000, name='stock', initial_value=0)
            m.addConstr(now - past == 0, name='balance',
                uncertainty_dependent={'rhs': 0})
        graph.build(dependent)
        graph._update()
        for t, k, m in graph.nodes:
            constr = m.getConstrByName('balance')
            assert constr.RHS == Markov_states[t][k][0]

    def test_dimension_index(self):
        graph = PolicyGraph(T=3)
        graph.add_MC_uncertainty(Markov_states, transition_matrix)
        graph.build(builder)
        graph[2][1].addVar(uncertainty_dependent=1)
        with pytest.raises(MarkovianDimensionError):
            graph._update()

    def test_dependent_without_chain(self):
        graph = PolicyGraph(T=3).build(builder)
        graph[1].addVar(uncertainty_dependent=0)
        with pytest.raises(MarkovianDimensionError):
            graph._update()


class TestMarkovian(object):

    def test_Markovian_uncertainty(self):
        graph = PolicyGraph(T=3)
        with pytest.raises(ValueError):
            graph.discretize(n_Markov_states=2, n_sample_paths=10)
        with pytest.raises(ValueError):
            graph.add_Markovian_uncertainty(invalid_sample_path_generator_1)
        with pytest.raises(TypeError):
            graph.add_Markovian_uncertainty(invalid_sample_path_generator_2)
        with pytest.raises(ValueError):
            graph.add_Markovian_uncertainty(1)
        graph.add_Markovian_uncertainty(sample_path_generator)
        with pytest.raises(ValueError):
            graph.discretize(n_Markov_states=2, n_sample_paths=10,
                method='kmeans')
        with pytest.raises(ValueError):
            graph.discretize(n_Markov_states=[2,2,2], n_sample_paths=10)

    def test_not_discretized(self):
        graph = PolicyGraph(T=3)
        graph.add_Markovian_uncertainty(sample_path_generator)
        graph.build(builder)
        with pytest.raises(ValueError):
            graph._update()

    @pytest.mark.parametrize("method", ["SA", "RSA", "SAA"])
    def test_discretize(self, method):
        graph = PolicyGraph(T=3)
        graph.add_Markovian_uncertainty(sample_path_generator)
        markovian = graph.discretize(n_Markov_states=3, n_sample_paths=100,
            method=method)
        assert graph.n_Markov_states[0] == 1
        assert graph.n_Markov_states == markovian.n_Markov_states
        for t in range(1, 3):
            numpy.testing.assert_allclose(
                graph.transition_matrix[t].sum(axis=1), 1)
        with pytest.raises(ValueError):
            graph.discretize(n_Markov_states=3, n_sample_paths=100)
        graph.build(builder)
        graph._update()
        assert graph.n_nodes == sum(graph.n_Markov_states)

    def test_discretize_input(self):
        graph = PolicyGraph(T=3)
        graph.add_Markovian_uncertainty(sample_path_generator)
        assert graph.discretize(
            method='input',
            Markov_states=[[[0.2]],[[1],[2]],[[1],[2]]],
            transition_matrix=transition_matrix,
        ) is None
        assert graph.n_Markov_states == [1, 2, 2]


class TestValidation(object):

    def test_first_stage_deterministic(self):
        def stochastic(m, t):
            builder(m, t)
            if t == 0:
                m.addVar(uncertainty=[1, 2])
        graph = PolicyGraph(T=3).build(stochastic)
        with pytest.raises(ValueError):
            graph._update()

    def test_state_variables(self):
        def no_state(m, t):
            m.addVar()
        graph = PolicyGraph(T=3).build(no_state)
        with pytest.raises(ValueError):
            graph._update()

    def test_number_of_states(self):
        def extra(m, t):
            builder(m, t)
            if t == 2:
                m.addStateVar(name='extra')
        graph = PolicyGraph(T=3).build(extra)
        with pytest.raises(ValueError):
            graph._update()

    def test_update(self):
        graph = PolicyGraph(T=3, bound=0).build(builder)
        graph._update()
        assert graph.n_states == [1, 1, 1]
        assert graph[0].alpha is not None
        assert graph[2].alpha is None
        assert graph[0].link_constrs == []
        assert len(graph[1].link_constrs) == 1
        local_copy = graph[0].local_copies[0]
        assert local_copy.lb == local_copy.ub == 5
        # calling again is harmless
        graph._update()
        assert len(graph[1].link_constrs) == 1


class TestRiskMeasure(object):

    def test_set_AVaR(self):
        graph = PolicyGraph(T=3).build(builder)
        for l, a in [(1.5, 0.5), (0.5, -0.1), ([0.5], 0.5), (0.5, 0)]:
            with pytest.raises(ValueError):
                graph.set_AVaR(l, a)
        with pytest.raises(TypeError):
            graph.set_AVaR('0.5', 0.5)
        graph.set_AVaR([0.2, 0.4], 0.5)
        assert graph.measure == 'risk averse'
        assert (graph[1].measure.a, graph[1].measure.l) == (0.5, 0.2)
        assert (graph[2].measure.a, graph[2].measure.l) == (0.5, 0.4)
        assert repr(graph[0].measure) == 'Expectation'


class TestSamplePaths(object):

    def test_stage_wise_independent(self):
        graph = construct_hydro_thermal()
        n_sample_paths, sample_paths = graph._enumerate_sample_paths(2)
        assert n_sample_paths == 9
        assert len(sample_paths) == 9
        weights = [graph._compute_weight_sample_path(s) for s in sample_paths]
        assert sum(weights) == pytest.approx(1)

    def test_markov_chain(self):
        graph = construct_hydro_thermal_markov()
        n_sample_paths, sample_paths = graph._enumerate_sample_paths(2)
        assert n_sample_paths == 4
        weights = {
            tuple(s[1]): graph._compute_weight_sample_path(s)
            for s in sample_paths
        }
        assert sum(weights.values()) == pytest.approx(1)
        assert weights[(0, 0, 0)] == pytest.approx(0.5 * 0.75)
        assert weights[(0, 0, 1)] == pytest.approx(0.5 * 0.25)

    def test_joint_probability(self):
        graph = PolicyGraph(T=2)
        graph.add_MC_uncertainty([[[0]], [[0], [1]]], [[[1]], [[0.4, 0.6]]])
        def noisy(m, t, k):
            builder(m, t, k)
            if t == 1:
                m.addVar(uncertainty=[1, 2])
                if k == 1:
                    m.set_probability([0.9, 0.1])
        graph.build(noisy)
        numpy.testing.assert_allclose(graph._joint_probability(1),
            [[0.2, 0.2, 0.54, 0.06]])
        numpy.testing.assert_allclose(graph._joint_probability(0), [[1]])
        weight = graph._compute_weight_sample_path(([0, 1], [0, 1]))
        assert weight == pytest.approx(0.06)
