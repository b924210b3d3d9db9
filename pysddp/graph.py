from pysddp.sp import Subproblem
import gurobipy
from itertools import product
import numpy
from pysddp.utils.statistics import check_Markovian_uncertainty
from pysddp.utils.statistics import check_Markov_states_and_transition_matrix
from pysddp.utils.exception import MarkovianDimensionError
from pysddp.utils.measure import Expectation_AVaR
from collections import abc
import numbers
import inspect


class PolicyGraph(object):
    """
    A policy graph of a multistage stochastic linear program. Nodes of the
    graph are (stage, Markov state) pairs. Each node holds a Subproblem.

    Parameters
    ----------
    T: integer (>1)
        The number of stages.

    bound: float, optional
        Valid bound of every cost-to-go function, a lower bound when
        minimizing. Defaults to -1e9 (minimization) or 1e9 (maximization).

    sense: 1 or -1, optional (default=1)
        1 minimizes, -1 maximizes.

    outputFlag: 0 or 1, optional (default=0)
        Whether gurobi logs the subproblem solves.

    discount: float in (0, 1], optional (default=1)
        Per stage discount factor of the cost-to-go.

    **kwargs: optional
        Gurobipy parameters to specify on individual subproblems (e.g.,
        presolve, method)

    Methods
    -------
    build:
        Populate every node by a model construction callback.

    add_MC_uncertainty:
        Make the graph a Markov chain graph from given Markov states and
        transition matrices.

    add_Markovian_uncertainty:
        Register a sample path generator of a continuous Markovian process,
        to be discretized later.

    discretize:
        Approximate the Markovian continuous process by a Markov chain.

    Examples
    --------
    >>> def builder(m, t):
    ...     volume, volume_in = m.addStateVar(ub=200, initial_value=200)
    ...     ...
    >>> graph = PolicyGraph(T=3, bound=0).build(builder)
    """
    def __init__(
            self,
            T,
            bound=None,
            sense=1,
            outputFlag=0,
            discount=1.0,
            **kwargs):
        if (T < 2
                or discount > 1
                or discount <= 0
                or sense not in [-1, 1]
                or outputFlag not in [0, 1]):
            raise ValueError('Arguments of policy graph construction are not valid!')

        self.T = T
        self.discount = discount
        self.bound = bound
        self.sense = sense
        self.outputFlag = outputFlag
        self.params = kwargs
        self.n_Markov_states = 1
        self.dim_Markov_states = {}
        self.measure = 'risk neutral'
        self._type = 'stage-wise independent'
        self._flag_discrete = 0
        self._flag_update = 0
        self.db = None
        self.env = gurobipy.Env(empty=True)
        self.env.setParam('OutputFlag', outputFlag)
        self.env.start()
        self._set_up_default_bound()
        self._set_up_model()

    def __repr__(self):
        sense = 'Minimization' if self.sense == 1 else 'Maximization'
        string = ("<PolicyGraph instance {} {} {} problem, {} stages, "
            + "{} nodes, {} discount, {} known bound>")
        return string.format(sense, self.measure, self._type, self.T,
            self.n_nodes, self.discount, self.bound)

    def __getitem__(self, t):
        return self.models[t]

    @property
    def n_nodes(self):
        if self.n_Markov_states == 1:
            return self.T
        return sum(self.n_Markov_states)

    @property
    def nodes(self):
        """Iterate (t, k, subproblem) over all nodes in stage order"""
        for t in range(self.T):
            for k, m in enumerate(self._stage_nodes(t)):
                yield t, k, m

    def _set_up_default_bound(self):
        if self.bound is None:
            self.bound = -1e9 * self.sense

    def _new_model(self, name):
        m = Subproblem(name=name, env=self.env)
        m.Params.outputFlag = self.outputFlag
        m.setAttr('modelsense', self.sense)
        for k,v in self.params.items():
            m.setParam(k,v)
        m.update()
        return m

    def _set_up_model(self):
        if self.n_Markov_states == 1:
            self.models = [self._new_model(str(t)) for t in range(self.T)]
        else:
            self.models = [
                [
                    self._new_model("{}_{}".format(t, k))
                    for k in range(self.n_Markov_states[t])
                ]
                for t in range(self.T)
            ]

    def _check_not_populated(self):
        for _, _, m in self.nodes:
            if m.getVars() != []:
                raise ValueError(
                    "Markov chain must be added before building the subproblems!"
                )

    def _check_no_chain(self):
        if self._type != 'stage-wise independent':
            raise ValueError("Markovian uncertainty has already added!")

    def add_MC_uncertainty(self, Markov_states, transition_matrix):
        """Add a Markov chain process. Must be called before build.

        Parameters
        ----------
        Markov_states: list of matrix-like
            Markov_states[t] is a (p_t, q) matrix whose rows are the p_t
            Markov states of stage t, each a vector of dimension q.

        transition_matrix: list of matrix-like
            transition_matrix[t] is the (p_{t-1}, p_t) matrix of transition
            probabilities into stage t, with p_{-1} = 1. Rows sum to one.

        Examples
        --------
        A wet/dry climate driving the inflow

        >>> add_MC_uncertainty(
        ...     Markov_states=[[[50]],[[100],[0]],[[100],[0]]],
        ...     transition_matrix=[
        ...         [[1]],
        ...         [[0.5,0.5]],
        ...         [[0.75,0.25],[0.25,0.75]]
        ...     ]
        ... )
        """
        self._check_no_chain()
        dim, n = check_Markov_states_and_transition_matrix(
            Markov_states, transition_matrix, self.T)
        self._check_not_populated()
        self._type = 'Markov chain'
        self._set_chain(Markov_states, transition_matrix, n)
        self.dim_Markov_states = dim

    def _set_chain(self, Markov_states, transition_matrix, n_Markov_states):
        self.Markov_states = [
            numpy.array(states, dtype='float64') for states in Markov_states]
        self.transition_matrix = [
            numpy.array(matrix, dtype='float64') for matrix in transition_matrix]
        self.n_Markov_states = list(n_Markov_states)
        self._set_up_model()

    def add_Markovian_uncertainty(self, Markovian_uncertainty):
        """Add a Markovian continuous process, given by a sample path
        generator f(random_state, size) returning an array of shape
        (size, T, dim). The process must be discretized before build.

        Example
        -------
        An autoregressive inflow

        >>> def f(random_state, size):
        ...     a = numpy.empty([size,3,1])
        ...     a[:,0,:] = 50
        ...     for t in range(1,3):
        ...         a[:,t,:] = (
        ...             0.5 * a[:,t-1,:]
        ...             + random_state.uniform(0, 100, size=[size,1])
        ...         )
        ...     return a
        >>> add_Markovian_uncertainty(f)
        """
        self._check_no_chain()
        self.dim_Markov_states = check_Markovian_uncertainty(
            Markovian_uncertainty, self.T)
        self.Markovian_uncertainty = Markovian_uncertainty
        self._type = 'Markovian'

    def _expand_n_Markov_states(self, n_Markov_states):
        if isinstance(n_Markov_states, (numbers.Integral, numpy.integer)):
            if n_Markov_states < 1:
                raise ValueError("n_Markov_states should be bigger than zero!")
            return [1] + [int(n_Markov_states)] * (self.T-1)
        if not isinstance(n_Markov_states, (abc.Sequence, numpy.ndarray)):
            raise ValueError("Invalid input of n_Markov_states!")
        if len(n_Markov_states) != self.T:
            raise ValueError("n_Markov_states must be an int or a list of "
                "length {}!".format(self.T))
        if n_Markov_states[0] != 1:
            raise ValueError("The first stage model should be deterministic!")
        return list(n_Markov_states)

    def discretize(
            self,
            n_Markov_states=None,
            n_sample_paths=None,
            method='SA',
            Markov_states=None,
            transition_matrix=None,
            int_flag=0):
        """Approximate the Markovian process by a Markov chain. Must be called
        before build.

        Parameters
        ----------
        n_Markov_states: int or list of length T, optional, default=None
            The number of Markov states of every stage. An int applies to
            stages 1..T-1; the first stage always has one Markov state.

        n_sample_paths: int, optional, default=None
            The number of sample paths drawn from the generator to train the
            chain.

        method: 'SA'/'RSA'/'SAA'/'input', optional, default='SA'
            'SA': stochastic approximation.
            'RSA': robust stochastic approximation.
            'SAA': k-means clustering of the sample paths.
            'input': use the given Markov_states and transition_matrix.

        Markov_states/transition_matrix: list of matrix-like, optional
            The chain to use with method='input'.

        int_flag: 0/1, optional, default=0
            Round the Markov states to integers.

        Returns
        -------
        The trained Markovian object, None for method='input'.
        """
        if self._type != 'Markovian':
            raise ValueError("Markovian uncertainty has not been added!")
        if self._flag_discrete == 1:
            raise ValueError("Markovian uncertainty has already been discretized!")
        self._check_not_populated()
        if method == 'input':
            dim, n = check_Markov_states_and_transition_matrix(
                Markov_states, transition_matrix, self.T)
            if dim != self.dim_Markov_states:
                raise ValueError("The given Markov chain and the sample path "
                    "generator are of different dimensions!")
            markovian = None
        elif method in ('SA', 'RSA', 'SAA'):
            if n_sample_paths is None:
                raise ValueError("n_sample_paths must be specified!")
            from pysddp.markov import Markovian
            markovian = Markovian(
                f=self.Markovian_uncertainty,
                n_Markov_states=self._expand_n_Markov_states(n_Markov_states),
                n_sample_paths=n_sample_paths,
                int_flag=int_flag,
            )
            Markov_states, transition_matrix = getattr(markovian, method)()
            n = markovian.n_Markov_states
        else:
            raise ValueError("Invalid discretization method {}!".format(method))
        self._set_chain(Markov_states, transition_matrix, n)
        self._flag_discrete = 1
        return markovian

    def build(self, builder):
        """Populate every node with a model construction callback.

        Parameters
        ----------
        builder: callable
            builder(m, t) for a graph without Markov chain and
            builder(m, t, k) for a graph with Markov chain, where m is the
            Subproblem of node (t, k). A builder of a Markovian graph may also
            take two arguments and rely on uncertainty_dependent.

        Returns
        -------
        The policy graph itself.
        """
        n_args = len(inspect.signature(builder).parameters)
        for t, k, m in self.nodes:
            if n_args >= 3:
                builder(m, t, k)
            else:
                builder(m, t)
        return self

    def set_AVaR(self, l, a):
        """Use (1-l) * expectation + l * AVaR_a as the nested risk measure of
        stages 1..T-1.

        Parameters
        ----------
        l: float or array-like of length T-1, in [0, 1]
            The weight of AVaR of every stage.

        a: float or array-like of length T-1, in (0, 1]
            The tail probability of AVaR of every stage.

        Bigger l or smaller a means more risk averse.
        """
        l = self._stage_parameter(l, 'l')
        a = self._stage_parameter(a, 'a')
        if 0 in a[1:]:
            raise ValueError("a must be bigger than 0!")
        for t, k, m in self.nodes:
            if t > 0:
                m.measure = Expectation_AVaR(a=a[t], l=l[t])
        self.measure = "risk averse"

    def _stage_parameter(self, value, name):
        """[None, value_1, ..., value_{T-1}] from a number or a list"""
        if isinstance(value, numbers.Number):
            values = [value] * (self.T-1)
        elif (isinstance(value, (abc.Sequence, numpy.ndarray))
                and not isinstance(value, str)):
            values = list(value)
            if len(values) != self.T-1:
                raise ValueError("Length of {} must be T-1!".format(name))
        else:
            raise TypeError("{} should be float/array-like instead of {}!"
                .format(name, type(value)))
        if not all(0 <= item <= 1 for item in values):
            raise ValueError("{} must be between 0 and 1!".format(name))
        return [None] + values

    def _check_Markovian_dim_index(self):
        """dim_index of Markovian uncertainties needs a Markov chain and must
        lie within the dimension of the stage's Markov states."""
        for t, k, m in self.nodes:
            if not m.Markovian_dim_index:
                continue
            if (self.n_Markov_states == 1
                    or max(m.Markovian_dim_index) >= self.dim_Markov_states[t]
                    or min(m.Markovian_dim_index) < 0):
                raise MarkovianDimensionError

    def _check_nodes(self):
        if self._type == "Markovian" and not self._flag_discrete:
            raise ValueError("A Markovian process must be discretized before "
                "the graph is solved!")
        if self._first_node(0).n_samples != 1:
            raise ValueError("First stage must be deterministic!")
        n_states = self._first_node(0).n_states
        if n_states == 0:
            raise ValueError("State variables must be set!")
        if any(m.n_states != n_states for _, _, m in self.nodes):
            raise ValueError("All nodes must have the same number of states!")
        self.n_states = [n_states] * self.T
        self.n_samples = [self._first_node(t).n_samples for t in range(self.T)]
        for t in range(self.T):
            if any(m.n_samples != self.n_samples[t]
                    for m in self._stage_nodes(t)):
                raise ValueError(
                    "Nodes of the same stage must have the same number "
                    "of scenarios!"
                )

    def _update(self):
        if self._flag_update:
            return
        self._check_nodes()
        self._check_Markovian_dim_index()
        for t, k, m in self.nodes:
            if t < self.T-1:
                m._set_up_CTG(discount=self.discount, bound=self.bound)
            if t > 0:
                m._set_up_link_constrs()
            else:
                m._fix_initial_values()
            if self.n_Markov_states != 1:
                m._update_uncertainty_dependent(self.Markov_states[t][k])
            m.update()
        self._flag_update = 1

    def _get_stage_cost(self, m, t):
        return pow(self.discount,t) * m.stage_objective

    def _stage_nodes(self, t):
        """The subproblems of stage t in Markov state order"""
        return [self.models[t]] if self.n_Markov_states == 1 else self.models[t]

    def _first_node(self, t):
        return self._stage_nodes(t)[0]

    def _joint_probability(self, t):
        """Conditional probability of the (Markov state, scenario) pairs of
        stage t, one row per Markov state of stage t-1. Columns run over the
        nodes of stage t, then over their scenarios. Without Markov chain
        there is a single row holding the scenario probabilities."""
        p = numpy.array([m.scenario_probability for m in self._stage_nodes(t)])
        if self.n_Markov_states == 1:
            return p
        joint = numpy.einsum('ij,jk->ijk', self.transition_matrix[t], p)
        return joint.reshape(len(joint), -1)

    def _enumerate_sample_paths(self, T):
        """All sample paths of stages 0..T. A sample path of a Markov chain
        graph is a pair (scenario indices, Markov state indices). Returns the
        number of paths and the paths."""
        scenario_paths = product(
            *[range(self._first_node(t).n_samples) for t in range(T+1)])
        if self.n_Markov_states == 1:
            sample_paths = list(scenario_paths)
        else:
            state_paths = product(
                *[range(n) for n in self.n_Markov_states[:T+1]])
            sample_paths = list(product(scenario_paths, state_paths))
        return len(sample_paths), sample_paths

    def _compute_weight_sample_path(self, sample_path):
        """Probability of a sample path"""
        if self.n_Markov_states == 1:
            scenarios, states = sample_path, [0] * len(sample_path)
        else:
            scenarios, states = sample_path
        weight = 1.0
        for t, (s, k) in enumerate(zip(scenarios, states)):
            weight *= self._stage_nodes(t)[k].scenario_probability[s]
            if t > 0 and self.n_Markov_states != 1:
                weight *= self.transition_matrix[t][states[t-1]][k]
        return weight

    def write(self, path, suffix):
        """Write all subproblems to path/stage_t<suffix>, or
        path/stage_t_k<suffix> with Markov chain, e.g.
        write("models", ".lp")."""
        for t, k, m in self.nodes:
            m.write(self._node_filename(path + "/stage_", t, k) + suffix)

    def _node_filename(self, prefix, t, k):
        if self.n_Markov_states == 1:
            return prefix + str(t)
        return "{}{}_{}".format(prefix, t, k)

    def write_cuts(self, path):
        """Write the cuts of every node but the last stage ones to one csv
        file per node. The header holds the state names and "rhs"; a row
        (a, b, c) under (x, y, rhs) is the cut alpha >= a*x + b*y + c, or <=
        when maximizing.

        Parameters
        ----------
        path: string
            The prefix of the csv files. Files are named path + 't.csv' or
            path + 't_k.csv'.
        """
        for t, k, m in self.nodes:
            if t == self.T-1 or m.value_function is None:
                continue
            m.value_function.write(self._node_filename(path, t, k) + ".csv")

    def read_cuts(self, path):
        """Read all cuts from csv files written by write_cuts.

        Parameters
        ----------
        path: string
            The prefix of the csv files.

        Returns
        -------
        The number of added cuts: int
        """
        self._update()
        count = 0
        for t, k, m in self.nodes:
            if t == self.T-1:
                continue
            count += m.value_function.read(self._node_filename(path, t, k) + ".csv")
        return count
