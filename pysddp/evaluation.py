"""
Out-of-sample evaluation of a trained policy graph.

Replications run in forked worker processes. The subproblems can not be
pickled, so every worker inherits the graph when forking and writes its
results into shared memory: one row per sample path.
"""
import multiprocessing

import numpy
import pandas

from pysddp.utils.statistics import (check_random_state, compute_CI,
    allocate_jobs)


def _shared(n_rows, n_columns):
    """Zero initialized n_rows x n_columns buffer in shared memory."""
    return multiprocessing.RawArray("d", n_rows * n_columns)


def _view(buffer, n_rows):
    return numpy.frombuffer(buffer).reshape(n_rows, -1)


class Evaluation(object):
    """Evaluate the trained policy on the policy graph.

    Parameters
    ----------
    graph: PolicyGraph
        A trained policy graph.

    Attributes
    ----------
    db: float
        The deterministic bound.

    pv: list
        Policy value of every replication.

    epv: float
        Probability weighted policy value over all sample paths. Only set by
        an exhaustive evaluation.

    CI: tuple
        Confidence interval of the mean policy value (more than one sampled
        replication).

    gap: float
        The gap between upper end of the CI and deterministic bound. -1 if
        not available.

    stage_cost: dataframe
        Stage objective of every replication (rows) and stage (columns).

    solution: dict of dataframes
        Values of the queried variables, laid out as stage_cost.

    solution_dual: dict of dataframes
        The dual values of queried constraints.

    n_sample_paths: int
        How many replications were run.

    sample_path_idx: list
        The enumerated sample paths of an exhaustive evaluation.
    """
    def __init__(self, graph):
        self.graph = graph
        self.db = graph.db
        self.pv = None
        self.CI = None
        self.epv = None
        self.gap = None
        self.stage_cost = None
        self.solution = None
        self.solution_dual = None
        self.n_simulations = None
        self.n_sample_paths = None
        self.sample_path_idx = None

    def __repr__(self):
        return "<Evaluation instance, {} sample paths>".format(
            self.n_sample_paths)

    def _compute_gap(self):
        graph = self.graph
        if graph.measure != 'risk neutral' or not self.db:
            self.gap = -1
            return
        if self.CI is not None:
            # the pessimistic end of the interval
            estimate = self.CI[1] if graph.sense == 1 else self.CI[0]
        elif self.epv is not None:
            estimate = self.epv
        else:
            estimate = self.pv[0]
        self.gap = abs(estimate - self.db) / abs(self.db)

    def _compute_sample_path_idx(self):
        if self.n_simulations == -1:
            self.n_sample_paths, self.sample_path_idx = (
                self.graph._enumerate_sample_paths(self.graph.T-1))
        else:
            self.n_sample_paths = self.n_simulations
            self.sample_path_idx = None

    def _solver(self):
        from pysddp.solver import SDDP
        self.graph._update()
        return SDDP(self.graph)

    def run(
            self,
            n_simulations,
            percentile=95,
            query=None,
            query_dual=None,
            query_stage_cost=False,
            random_state=None,
            n_processes=1):
        """Evaluate the policy by simulation or by enumeration.

        Parameters
        ----------
        n_simulations: int
            A positive number of sampled replications, or -1 to solve every
            sample path of the graph once.

        percentile: float, optional (default=95)
            Confidence level of CI, in percent.

        query: list, optional (default=None)
            Variable names to record.

        query_dual: list, optional (default=None)
            Constraint names whose duals to record.

        query_stage_cost: bool, optional (default=False)
            Whether to record the stage objectives.

        random_state: int, RandomState instance or None, optional (default=None)
            Used to sample the simulations. If None, a fixed seed is used so
            that the evaluation is reproducible.

        n_processes: int, optional (default=1)
            Replications are split evenly across this many forked processes.
        """
        if n_simulations == 0 or n_simulations < -1:
            raise ValueError("n_simulations must be positive or -1!")
        if n_processes < 1:
            raise ValueError("n_processes must be a positive integer!")
        graph = self.graph
        self.solver = self._solver()
        self.db = graph.db
        self.n_simulations = n_simulations
        self._compute_sample_path_idx()
        n = self.n_sample_paths
        seed = (
            2**32-1
            if random_state is None
            else check_random_state(random_state).randint(2**31)
        )
        query = list(query) if query is not None else None
        query_dual = list(query_dual) if query_dual is not None else None
        buffers = {'pv': _shared(n, 1)}
        if query_stage_cost:
            buffers['stage_cost'] = _shared(n, graph.T)
        for item in query or []:
            buffers['solution', item] = _shared(n, graph.T)
        for item in query_dual or []:
            buffers['solution_dual', item] = _shared(n, graph.T)
        jobs = allocate_jobs(n, n_processes)
        args = (buffers, seed, query, query_dual, query_stage_cost)
        if len(jobs) == 1:
            self.run_single(jobs[0], *args)
        else:
            context = multiprocessing.get_context("fork")
            workers = [
                context.Process(target=self.run_single, args=(job,) + args)
                for job in jobs
            ]
            for worker in workers:
                worker.start()
            for worker in workers:
                worker.join()
            failed = [w.exitcode for w in workers if w.exitcode != 0]
            if failed:
                raise RuntimeError(
                    "evaluation process exited with code {}".format(failed[0]))
        results = {key: _view(buffer, n) for key, buffer in buffers.items()}
        self.pv = results.pop('pv')[:, 0].tolist()
        if self.sample_path_idx is not None:
            weights = [graph._compute_weight_sample_path(sample_path)
                for sample_path in self.sample_path_idx]
            self.epv = numpy.dot(weights, self.pv)
        elif n > 1:
            self.CI = compute_CI(self.pv, percentile)
        self._compute_gap()
        if query_stage_cost:
            self.stage_cost = pandas.DataFrame(results.pop('stage_cost'))
        if query is not None:
            self.solution = {item: pandas.DataFrame(results['solution', item])
                for item in query}
        if query_dual is not None:
            self.solution_dual = {
                item: pandas.DataFrame(results['solution_dual', item])
                for item in query_dual
            }
        return self

    def run_single(self, jobs, buffers, seed, query=None, query_dual=None,
            query_stage_cost=False):
        """Run the replications in jobs and write row j of every buffer."""
        n = self.n_sample_paths
        rows = {key: _view(buffer, n) for key, buffer in buffers.items()}
        random_state = numpy.random.RandomState([seed, jobs[0]])
        for j in jobs:
            result = self.solver._forward(
                random_state=random_state,
                sample_path_idx=(None if self.sample_path_idx is None
                    else self.sample_path_idx[j]),
                query=query,
                query_dual=query_dual,
                query_stage_cost=query_stage_cost,
            )
            rows['pv'][j, 0] = result['pv']
            if query_stage_cost:
                rows['stage_cost'][j] = result['stage_cost']
            for item in query or []:
                rows['solution', item][j] = result['solution'][item]
            for item in query_dual or []:
                rows['solution_dual', item][j] = result['solution_dual'][item]

    def simulate(
            self,
            n_simulations,
            query=None,
            query_dual=None,
            random_state=None,
            sample_paths=None):
        """Simulate the policy and return what happened in every stage of
        every replication.

        Parameters
        ----------
        n_simulations: int
            The number of replications. Ignored if sample_paths is given.

        query: list, optional (default=None)
            The names of variables to record.

        query_dual: list, optional (default=None)
            The names of constraints whose dual values to record.

        random_state: int, RandomState instance or None, optional (default=None)
            Used to sample the simulations.

        sample_paths: list, optional (default=None)
            Explicit sample paths to follow instead of sampling. Without
            Markov chain, a sample path is the list of scenario indices of all
            stages. With Markov chain, it is a tuple (scenario indices, Markov
            state indices).

        Returns
        -------
        A list (replications) of lists (stages) of dictionaries. Every
        dictionary holds 'stage', 'markov_state', 'noise' (the scenario
        index), 'stage_objective', 'bellman_term' (the cost-to-go value) and
        the queried variable / constraint names.

        Examples
        --------
        >>> simulations = Evaluation(graph).simulate(100, query=['volume'])
        >>> [stage['volume'] for stage in simulations[0]]
        """
        solver = self._solver()
        random_state = check_random_state(random_state)
        if sample_paths is not None:
            sample_paths = [self._check_sample_path(item) for item in sample_paths]
        else:
            if n_simulations < 1:
                raise ValueError("n_simulations must be a positive integer!")
            sample_paths = [None] * n_simulations
        simulations = []
        for sample_path in sample_paths:
            result = solver._forward(
                random_state=random_state,
                sample_path_idx=sample_path,
                query=query,
                query_dual=query_dual,
                record=True,
            )
            simulations.append(result['records'])
        return simulations

    def _check_sample_path(self, sample_path):
        graph = self.graph
        if graph.n_Markov_states == 1:
            scenarios, Markov_states = sample_path, None
        else:
            if len(sample_path) != 2:
                raise ValueError("A sample path of a Markov chain graph must "
                    "be (scenario indices, Markov state indices)!")
            scenarios, Markov_states = sample_path
        if len(scenarios) != graph.T:
            raise ValueError("A sample path must be of length {}!"
                .format(graph.T))
        for t in range(graph.T):
            if scenarios[t] not in range(graph._first_node(t).n_samples):
                raise ValueError("Scenario index {} of stage {} is out of "
                    "range!".format(scenarios[t], t))
        if Markov_states is None:
            return list(scenarios)
        if len(Markov_states) != graph.T:
            raise ValueError("A Markov state path must be of length {}!"
                .format(graph.T))
        for t in range(graph.T):
            if Markov_states[t] not in range(graph.n_Markov_states[t]):
                raise ValueError("Markov state index {} of stage {} is out of "
                    "range!".format(Markov_states[t], t))
        return (list(scenarios), list(Markov_states))
