from pysddp.utils.logger import LoggerSDDP, LoggerEvaluation
from pysddp.utils.statistics import rand_int
from pysddp.utils.exception import NotTrainedError
from pysddp.stopping import (StoppingRule, IterationLimit, TimeLimit,
    BoundStalling, Statistical)
import time
import numpy
import numbers
from collections import abc
import pandas


class SDDP(object):
    """
    SDDP solver.

    Parameters
    ----------
    graph: PolicyGraph
        A policy graph whose nodes are populated.

    Attributes
    ----------
    db: list
        The deterministic bounds of every iteration.

    pv: list
        The policy values (discounted total cost) of the forward pass of
        every iteration.

    stop_reason: str
        Why the last training stopped.
    """

    def __init__(self, graph):
        self.graph = graph
        self.db = []
        self.pv = []
        self.iteration = 0
        self.total_time = 0
        self.percentile = 95
        self.stop_reason = None
        self.logger_evaluation = None
        # forward states, recorded only while cuts are cleaned
        self._visited_states = None

    def __repr__(self):
        return (
            "<SDDP solver instance, {} iterations, {} stages>"
            .format(self.iteration, self.graph.T)
        )

    def _first_stage_model(self):
        return self.graph._first_node(0)

    def _forward(
            self,
            random_state=None,
            sample_path_idx=None,
            query=None,
            query_dual=None,
            query_stage_cost=False,
            record=False):
        """Single forward step.

        Parameters
        ----------
        random_state: numpy.random.RandomState
            Used to sample Markov states and scenarios.

        sample_path_idx: tuple, optional
            A given sample path. Without Markov chain, the scenario index of
            every stage. With Markov chain, (scenario indices, Markov state
            indices).

        record: bool, optional
            Whether to return a dictionary for every stage.

        Returns
        -------
        dict with keys forward_solution, pv and, if asked for, solution,
        solution_dual, stage_cost and records.
        """
        graph = self.graph
        T = graph.T
        markov = graph.n_Markov_states != 1
        if sample_path_idx is None:
            scenarios = states = None
        elif markov:
            scenarios, states = sample_path_idx
        else:
            scenarios, states = sample_path_idx, None
        query = list(query or [])
        query_dual = list(query_dual or [])
        solution = {item: numpy.full(T, numpy.nan) for item in query}
        solution_dual = {item: numpy.full(T, numpy.nan) for item in query_dual}
        stage_cost = numpy.full(T, numpy.nan)
        forward_solution = []
        records = []
        pv = 0
        state = 0
        for t in range(T):
            if markov and t > 0:
                state = (
                    states[t] if states is not None
                    else random_state.choice(graph.n_Markov_states[t],
                        p=graph.transition_matrix[t][state])
                )
            m = graph._stage_nodes(t)[state]
            if t > 0:
                m._update_link_constrs(forward_solution[-1])
            # the first stage is deterministic
            if scenarios is not None:
                scen = scenarios[t]
            elif t == 0:
                scen = 0
            else:
                scen = rand_int(m.n_samples, random_state, m.probability)
            m._update_uncertainty(scen)
            m.optimize()
            m._check_status("forward_" + str(m.modelName))
            forward_solution.append(m._outgoing_state())
            for item in query:
                var = m.getVarByName(item)
                if var is not None:
                    solution[item][t] = var.X
            for item in query_dual:
                constr = m.getConstrByName(item)
                if constr is not None:
                    solution_dual[item][t] = constr.PI
            stage_cost[t] = m.stage_objective
            pv += graph._get_stage_cost(m, t)
            if record:
                stage = dict(
                    stage=t,
                    markov_state=state,
                    noise=int(scen),
                    stage_objective=m.stage_objective,
                    bellman_term=m.alpha.X if m.alpha is not None else 0.0,
                )
                stage.update((item, solution[item][t]) for item in query)
                stage.update((item, solution_dual[item][t]) for item in query_dual)
                records.append(stage)
        result = {'forward_solution': forward_solution, 'pv': pv}
        if query:
            result['solution'] = solution
        if query_dual:
            result['solution_dual'] = solution_dual
        if query_stage_cost:
            result['stage_cost'] = stage_cost
        if record:
            result['records'] = records
        return result

    def _backward(self, forward_solution):
        """Single backward step. For t = T-1..1, solve every scenario of every
        node of stage t from the forward state of stage t-1 and add one cut
        to every node of stage t-1. The cut of Markov state k' aggregates the
        scenario cuts under the joint probability
        transition_matrix[t][k'][k] * p_k(scenario)."""
        graph = self.graph
        for t in range(graph.T-1, 0, -1):
            incoming = numpy.array(forward_solution[t-1])
            children = graph._stage_nodes(t)
            values, duals = [], []
            for m in children:
                m._update_link_constrs(incoming)
                scenario_values, scenario_duals = m._solveLP()
                values.append(scenario_values)
                duals.append(scenario_duals)
            values = numpy.concatenate(values)
            duals = numpy.concatenate(duals)
            joint = graph._joint_probability(t)
            for parent, probability in zip(graph._stage_nodes(t-1), joint):
                # all nodes of a stage share the risk measure
                value, gradient = children[0]._average(values, duals,
                    probability)
                parent._add_cut(value - gradient.dot(incoming), gradient,
                    self.iteration)

    def _compute_bound(self):
        """Solve the first stage model. Its objective is the deterministic
        bound."""
        m = self._first_stage_model()
        m._update_uncertainty(0)
        m.optimize()
        m._check_status("backward_" + str(m.modelName))
        return m.objBound if m.IsMIP else m.objVal

    def _SDDP_single(self):
        """One forward and one backward pass. Returns the policy value of the
        forward pass."""
        forward = self._forward(numpy.random.RandomState(self.iteration))
        forward_solution = forward['forward_solution']
        if self._visited_states is not None:
            for t, state in enumerate(forward_solution):
                self._visited_states[t].append(state)
        self._backward(forward_solution)
        return forward['pv']

    def _remove_redundant_cuts(self, clean_stages):
        removed = 0
        for t in clean_stages:
            for m in self.graph._stage_nodes(t):
                removed += m.value_function.remove_dominated(
                    self._visited_states[t])
        return removed

    def _log_evaluation(self, evaluation, elapsed_time):
        if self.logger_evaluation is None:
            return
        # exact value, single value or confidence interval
        if evaluation.n_simulations == -1:
            summary = {'pv': evaluation.epv}
        elif evaluation.n_simulations == 1:
            summary = {'pv': evaluation.pv[0]}
        else:
            summary = {'CI': evaluation.CI}
        self.logger_evaluation.text(
            iteration=self.iteration,
            db=self.db[-1],
            gap=evaluation.gap,
            time=elapsed_time,
            **summary
        )

    def _check_freq_clean(self, freq_clean):
        T = self.graph.T
        if freq_clean is None:
            return None
        if isinstance(freq_clean, (numbers.Integral, numpy.integer)):
            freq_clean = [freq_clean] * (T-1)
        if (isinstance(freq_clean, (abc.Sequence, numpy.ndarray))
                and not isinstance(freq_clean, str)):
            if len(freq_clean) != T-1:
                raise ValueError("freq_clean list must be of length T-1!")
        else:
            raise TypeError("freq_clean must be int/list instead of {}!"
            .format(type(freq_clean)))
        return list(freq_clean)

    def train(
            self,
            max_iterations=10000,
            max_time=1000000.0,
            max_stable_iterations=10000,
            stopping_rules=None,
            freq_evaluations=None,
            n_simulations=3000,
            tol=0.001,
            percentile=95,
            freq_clean=None,
            random_state=None,
            logFile=1,
            logToConsole=1,
            directory='',
            cut_file=None):
        """Run SDDP iterations until a stopping rule fires. An iteration is a
        forward pass along one sampled path, a backward pass adding one cut
        to every node of stages 0..T-2, and a solve of the first stage model
        whose objective is the new deterministic bound.

        Parameters
        ----------
        max_iterations: int, optional (default=10000)
            Stop after this many iterations.

        max_time: float, optional (default=1e6)
            Stop once this many seconds were spent in iterations.

        max_stable_iterations: int, optional (default=10000)
            Stop once the deterministic bound did not move for this many
            iterations.

        stopping_rules: list of StoppingRule, optional (default=None)
            Additional stopping rules. Training stops at the first rule that
            is satisfied.

        freq_evaluations: int, optional (default=None)
            Every freq_evaluations iterations simulate the current policy and
            stop if the gap to the deterministic bound is at most tol. Risk
            averse graphs have no gap and never stop this way.

        n_simulations: int, optional (default=3000)
            Replications of such an evaluation; -1 enumerates every sample
            path.

        tol: float, optional (default=1e-3)
            Relative gap of the evaluation stop.

        percentile: float, optional (default=95)
            Confidence level of the evaluation CI, in percent.

        freq_clean: int/list, optional (default=None)
            Drop the cuts that are dominated at every visited forward state,
            every freq_clean iterations. A list gives one frequency per stage
            0..T-2 (the last stage has no cuts).

        random_state: int, RandomState instance or None, optional (default=None)
            Seeds the evaluations only; forward pass t of training is always
            sampled with seed t.

        logFile, logToConsole: 0/1, optional (default=1)
            Where the progress tables go.

        directory: str, optional (default='')
            The prefix of the log files.

        cut_file: str, optional (default=None)
            If given, cuts are written with this prefix when training stops.

        Examples
        --------
        >>> SDDP(graph).train(max_iterations=10)

        Stop once 1000 simulations every 10 iterations are within 1% of the
        bound:

        >>> SDDP(graph).train(freq_evaluations=10, n_simulations=1000, tol=1e-2)
        """
        graph = self.graph
        if max_iterations < 1:
            raise ValueError("max_iterations must be a positive integer!")
        freq_clean = self._check_freq_clean(freq_clean)
        graph._update()
        if freq_clean is not None and self._visited_states is None:
            self._visited_states = [[] for _ in range(graph.T)]
        self.percentile = percentile
        rules = [
            IterationLimit(max_iterations),
            TimeLimit(max_time),
            BoundStalling(max_stable_iterations, tol=0),
        ]
        if freq_evaluations is not None:
            rules.append(
                Statistical(
                    n_simulations=n_simulations,
                    frequency=freq_evaluations,
                    percentile=percentile,
                    tol=tol,
                    random_state=random_state,
                )
            )
        for rule in (stopping_rules or []):
            if not isinstance(rule, StoppingRule):
                raise TypeError("stopping rules must be StoppingRule instances!")
            rules.append(rule)

        logger_sddp = LoggerSDDP(
            n_stages=graph.T,
            n_nodes=graph.n_nodes,
            n_states=graph.n_states[0],
            logFile=logFile,
            logToConsole=logToConsole,
            directory=directory,
        )
        logger_sddp.header()
        if any(isinstance(rule, Statistical) for rule in rules):
            self.logger_evaluation = LoggerEvaluation(
                n_simulations=n_simulations,
                percentile=percentile,
                logFile=logFile,
                logToConsole=logToConsole,
                directory=directory,
            )
            self.logger_evaluation.header()
        self.stop_reason = None
        try:
            while self.stop_reason is None:
                start = time.time()
                pv = self._SDDP_single()
                db = self._compute_bound()
                self.db.append(db)
                graph.db = db
                self.pv.append(pv)
                self.iteration += 1
                elapsed_time = time.time() - start
                self.total_time += elapsed_time
                logger_sddp.text(
                    iteration=self.iteration,
                    db=db,
                    pv=pv,
                    time=elapsed_time,
                )
                if freq_clean is not None:
                    clean_stages = [
                        t
                        for t in range(1, graph.T-1)
                        if self.iteration % freq_clean[t] == 0
                    ]
                    if len(clean_stages) != 0:
                        self._remove_redundant_cuts(clean_stages)
                for rule in rules:
                    if rule.stop(self):
                        self.stop_reason = rule.reason
                        break
        except KeyboardInterrupt:
            self.stop_reason = "interruption by the user"
        logger_sddp.footer(reason=self.stop_reason)
        logger_sddp.close()
        if self.logger_evaluation is not None:
            self.logger_evaluation.footer()
            self.logger_evaluation.close()
            self.logger_evaluation = None
        if cut_file is not None:
            self.write_cuts(cut_file)
        return self

    @property
    def first_stage_solution(self):
        """Values of the first stage state variables, by name."""
        if self.iteration == 0:
            raise NotTrainedError("first stage solution")
        return {var.varName: var.X for var in self._first_stage_model().states}

    def plot_bounds(self, start=0, window=1, ax=None):
        """Plot db and pv of every iteration; see pysddp.utils.plot.plot_bounds
        for start and window."""
        if self.iteration == 0:
            raise NotTrainedError("bound")
        from pysddp.utils.plot import plot_bounds
        return plot_bounds(self.db, self.pv, sense=self.graph.sense,
            percentile=self.percentile, start=start, window=window, ax=ax)

    @property
    def bounds(self):
        """db and pv of every iteration as a dataframe indexed by iteration
        (from 1)."""
        if self.iteration == 0:
            raise NotTrainedError("bound")
        df = pandas.DataFrame({'db': self.db, 'pv': self.pv})
        df.index = range(1, len(df)+1)
        df.index.name = 'iteration'
        return df

    def write_cuts(self, path):
        """Write the cuts of every node to csv files prefixed by path"""
        self.graph.write_cuts(path)

    def read_cuts(self, path):
        """Read cuts written by write_cuts. Return the number of added cuts."""
        return self.graph.read_cuts(path)
