"""Sampling, confidence intervals and input checks shared by the solver and the
evaluation."""
import numpy
from scipy import stats
import numbers


def compute_CI(array, percentile):
    """Two-sided percentile% t-interval of the mean of array."""
    n = len(array)
    if n < 2:
        raise NotImplementedError(
            "a confidence interval needs at least two samples")
    mean = numpy.mean(array)
    half_width = (
        stats.t.ppf(0.5 + percentile / 200, n - 1) * stats.sem(array)
    )
    return mean - half_width, mean + half_width

def rand_int(k, random_state, probability=None, size=None, replace=None):
    """Draw from range(k), uniformly unless probability is given. replace
    is passed to choice when a probability or replace is given."""
    if probability is not None or replace is not None:
        return random_state.choice(a=k, p=probability, size=size, replace=replace)
    return random_state.randint(low=0, high=k, size=size)

def check_random_state(seed):
    """Turn seed into a numpy.random.RandomState.

    None or numpy.random gives the global RandomState, an int a new
    RandomState seeded by it and a RandomState is returned as is.
    """
    if seed is None or seed is numpy.random:
        return numpy.random.mtrand._rand
    if isinstance(seed, numpy.random.RandomState):
        return seed
    if isinstance(seed, (numbers.Integral, numpy.integer)):
        return numpy.random.RandomState(seed)
    raise ValueError(
        "{!r} cannot be used to seed a numpy.random.RandomState instance"
        .format(seed)
    )

def check_Markov_states_and_transition_matrix(
        Markov_states,
        transition_matrix,
        T):
    """Check a Markov chain given stage by stage. Return the dimension of the
    Markov states and the number of Markov states of every stage."""
    for name, item in [("Markov_states", Markov_states),
            ("transition_matrix", transition_matrix)]:
        if len(item) != T:
            raise ValueError("The {} is of length {}, expecting of length {}!"
                .format(name, len(item), T))
    n_Markov_states = []
    n_previous = 1
    for matrix in transition_matrix:
        matrix = numpy.array(matrix, dtype='float64')
        if matrix.ndim != 2 or matrix.shape[0] != n_previous:
            raise ValueError("Invalid transition_matrix!")
        if not numpy.allclose(matrix.sum(axis=1), 1, rtol=0, atol=1e-4):
            raise ValueError("Probability does not sum to one!")
        n_previous = matrix.shape[1]
        n_Markov_states.append(n_previous)
    dim_Markov_states = []
    for states, n in zip(Markov_states, n_Markov_states):
        states = numpy.array(states)
        if states.ndim != 2 or len(states) != n:
            raise ValueError(
                "The dimension of Markov_states is not compatible with "
                "the dimension of transition_matrix!"
            )
        dim_Markov_states.append(states.shape[1])
    return dim_Markov_states, n_Markov_states

def check_Markovian_uncertainty(Markovian_uncertainty, T):
    """Check a sample path generator by drawing two sample paths. Return the
    dimension of the process at every stage."""
    if not callable(Markovian_uncertainty):
        raise ValueError("Markovian uncertainty must be callable!")
    try:
        sample = Markovian_uncertainty(numpy.random, 2)
    except TypeError:
        raise TypeError("The sample path generator must take a "
            "numpy.random.RandomState and size as its arguments!")
    if not isinstance(sample, numpy.ndarray) or sample.ndim != 3:
        raise ValueError("The sample path generator must return a three "
            "dimensional numpy array!")
    if sample.shape[1] != T:
        raise ValueError("The sample path generator returns {} stages instead "
            "of {}!".format(sample.shape[1], T))
    return [sample.shape[2]] * T

def allocate_jobs(n_jobs, n_processes):
    """Split range(n_jobs) into at most n_processes consecutive ranges whose
    sizes differ by at most one"""
    n_processes = min(n_processes, n_jobs)
    size, extra = divmod(n_jobs, n_processes)
    jobs = []
    start = 0
    for p in range(n_processes):
        stop = start + size + (1 if p < extra else 0)
        jobs.append(range(start, stop))
        start = stop
    return jobs
