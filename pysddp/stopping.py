"""Stopping rules of SDDP training.

A stopping rule is asked after every iteration through stop(solver) whether
training should stop; solver is the SDDP instance being trained. The first
rule that returns True ends the training and its reason is recorded.
"""
import time
import numpy


class StoppingRule(object):
    """Stopping rule base class"""
    reason = ""

    def stop(self, solver):
        raise NotImplementedError


class IterationLimit(StoppingRule):
    """Stop after n iterations"""
    def __init__(self, n):
        if n < 1:
            raise ValueError("iteration limit must be a positive integer!")
        self.n = n
        self.reason = "iteration:{} has reached".format(n)

    def stop(self, solver):
        return solver.iteration >= self.n


class TimeLimit(StoppingRule):
    """Stop after the accumulated training time exceeds seconds"""
    def __init__(self, seconds):
        if seconds <= 0:
            raise ValueError("time limit must be positive!")
        self.seconds = seconds
        self.reason = "time:{} has reached".format(seconds)

    def stop(self, solver):
        return solver.total_time >= self.seconds


class BoundStalling(StoppingRule):
    """Stop when the deterministic bound has moved by at most tol in each of
    the last n_iterations iterations.

    Parameters
    ----------
    n_iterations: int
        The number of stable iterations.

    tol: float, optional (default=1e-4)
        The absolute change of the bound below which an iteration counts as
        stable. 0 means the bound must not change at all.
    """
    def __init__(self, n_iterations, tol=1e-4):
        if n_iterations < 1:
            raise ValueError("n_iterations must be a positive integer!")
        if tol < 0:
            raise ValueError("tol must be nonnegative!")
        self.n_iterations = n_iterations
        self.tol = tol
        self.reason = "stable iteration:{} has reached".format(n_iterations)

    def stop(self, solver):
        db = solver.db
        if len(db) <= self.n_iterations:
            return False
        recent = numpy.array(db[-self.n_iterations-1:])
        return bool(numpy.all(numpy.abs(numpy.diff(recent)) <= self.tol))


class Statistical(StoppingRule):
    """Evaluate the policy every frequency iterations by Monte Carlo
    simulation and stop when the relative gap between the confidence interval
    of the policy value and the deterministic bound is not larger than tol.

    Parameters
    ----------
    n_simulations: int
        The number of simulations. -1 means exhaustive evaluation.

    frequency: int
        Evaluate every frequency iterations.

    percentile: float, optional (default=95)
        The percentile used to construct the confidence interval.

    tol: float, optional (default=1e-3)
        The relative gap tolerance.

    random_state: int, RandomState instance or None, optional (default=None)
        Used to sample the simulations.

    n_processes: int, optional (default=1)
        The number of processes to run the simulations.
    """
    def __init__(self, n_simulations, frequency, percentile=95, tol=1e-3,
            random_state=None, n_processes=1):
        if frequency < 1:
            raise ValueError("frequency must be a positive integer!")
        if n_simulations == 0 or n_simulations < -1:
            raise ValueError("n_simulations must be positive or -1!")
        self.n_simulations = n_simulations
        self.frequency = frequency
        self.percentile = percentile
        self.tol = tol
        self.random_state = random_state
        self.n_processes = n_processes
        self.gap = None
        self.evaluation = None
        self.reason = "convergence tolerance:{} has reached".format(tol)

    def stop(self, solver):
        if solver.iteration % self.frequency != 0:
            return False
        from pysddp.evaluation import Evaluation
        start = time.time()
        evaluation = Evaluation(solver.graph)
        evaluation.run(
            n_simulations=self.n_simulations,
            percentile=self.percentile,
            random_state=self.random_state,
            n_processes=self.n_processes,
        )
        solver._log_evaluation(evaluation, time.time() - start)
        self.evaluation = evaluation
        self.gap = evaluation.gap
        # gap is -1 when it is not available (risk averse or zero bound)
        return self.gap >= 0 and self.gap <= self.tol
