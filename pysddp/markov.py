"""
Approximate a Markovian continuous process by a non-homogeneous Markov chain.

The Markov states of every stage are trained on sample paths drawn from the
process. Every sample is then labelled by its nearest Markov state (Euclidean
distance) and the transition matrices are the normalized transition counts
between consecutive labels.
"""
import numpy
import pandas
import logging

logger = logging.getLogger(__name__)


class Markovian(object):
    """
    Parameters
    ----------
    f: callable
        The sample path generator f(random_state, size), returning an array
        (size, T, dim).

    n_Markov_states: array-like
        The intended number of Markov states of every stage. The first entry
        must be one.

    n_sample_paths: int
        The number of sample paths to train the chain on. They are drawn with
        RandomState(0).

    int_flag: bool
        Round the Markov states to integers.

    Attributes
    ----------
    Markov_states, transition_matrix: list
        The trained chain, in the layout of PolicyGraph.add_MC_uncertainty.
        transition_matrix is None until one of SA, RSA and SAA has run.

    n_Markov_states: list
        The number of Markov states of every stage after training. It may be
        smaller than asked for since duplicated and unvisited Markov states
        are dropped.
    """
    def __init__(self, f, n_Markov_states, n_sample_paths, int_flag=0):
        if n_sample_paths < 1:
            raise ValueError("n_sample_paths must be a positive integer!")
        self.f = f
        self.samples = f(numpy.random.RandomState(0), size=n_sample_paths)
        self.n_samples, self.T, self.dim_Markov_states = self.samples.shape
        if len(n_Markov_states) != self.T:
            raise ValueError(
                "n_Markov_states list should be of length {} rather than {}!"
                .format(self.T, len(n_Markov_states))
            )
        if max(n_Markov_states) > self.n_samples:
            raise ValueError(
                "n_sample_paths must be no less than the number of Markov "
                "states of every stage!"
            )
        self.n_Markov_states = list(n_Markov_states)
        self.int_flag = int_flag
        self.Markov_states = [self.samples[:1, 0, :].astype('float64')]
        self.Markov_states += [None] * (self.T-1)
        self.transition_matrix = None

    def __repr__(self):
        return "<Markovian instance, {} stages, Markov states {}>".format(
            self.T, self.n_Markov_states)

    def _labels(self, points, t):
        """Index of the nearest Markov state of stage t for every point"""
        gaps = points[:, numpy.newaxis, :] - self.Markov_states[t]
        return numpy.argmin(numpy.sum(gaps**2, axis=2), axis=1)

    def _stochastic_approximation(self, step_size, averaged):
        """Pass over the samples once; each sample pulls its nearest Markov
        state toward itself by step_size(i)."""
        iterate = {
            t: self.samples[:self.n_Markov_states[t], t, :].astype('float64')
            for t in range(1, self.T)
        }
        total = {t: numpy.zeros_like(iterate[t]) for t in iterate}
        for i, sample in enumerate(self.samples):
            for t, states in iterate.items():
                j = numpy.argmin(numpy.sum((states - sample[t])**2, axis=1))
                states[j] += step_size(i) * (sample[t] - states[j])
                if averaged:
                    total[t] += states
        for t in iterate:
            self.Markov_states[t] = (
                total[t] / self.n_samples if averaged else iterate[t])
        self.train_transition_matrix()
        return self.Markov_states, self.transition_matrix

    def SA(self):
        """Stochastic approximation with step size 1/(i+1)."""
        return self._stochastic_approximation(
            lambda i: 1.0 / (i+1), averaged=False)

    def RSA(self):
        """Robust stochastic approximation: constant step size
        1/sqrt(n_sample_paths), the Markov states are the averages of the
        iterates."""
        step = 1.0 / numpy.sqrt(self.n_samples)
        return self._stochastic_approximation(lambda i: step, averaged=True)

    def SAA(self):
        """K-means clustering of the samples of every stage."""
        from sklearn.cluster import KMeans
        for t in range(1, self.T):
            self.Markov_states[t] = KMeans(
                n_clusters=self.n_Markov_states[t],
                n_init=10,
                random_state=0,
            ).fit(self.samples[:, t, :]).cluster_centers_
        self.train_transition_matrix()
        return self.Markov_states, self.transition_matrix

    def train_transition_matrix(self):
        """Estimate the transition matrices from the labelled samples.
        Duplicated Markov states are merged first. A Markov state no sample
        is labelled by has no outgoing transition and is dropped."""
        for t in range(1, self.T):
            if self.int_flag == 1:
                self.Markov_states[t] = numpy.rint(self.Markov_states[t])
            self.Markov_states[t] = numpy.unique(self.Markov_states[t], axis=0)
        labels = numpy.zeros((self.n_samples, self.T), dtype=int)
        for t in range(1, self.T):
            labels[:, t] = self._labels(self.samples[:, t, :], t)
        counts = [numpy.ones((1, 1))]
        for t in range(1, self.T):
            count = numpy.zeros(
                (len(self.Markov_states[t-1]), len(self.Markov_states[t])))
            numpy.add.at(count, (labels[:, t-1], labels[:, t]), 1)
            counts.append(count)
        for t in range(1, self.T):
            unvisited = numpy.flatnonzero(counts[t].sum(axis=1) == 0)
            if len(unvisited) == 0:
                continue
            logger.info(
                "%d unvisited Markov states of stage %d are dropped",
                len(unvisited), t-1,
            )
            self.Markov_states[t-1] = numpy.delete(
                self.Markov_states[t-1], unvisited, axis=0)
            counts[t-1] = numpy.delete(counts[t-1], unvisited, axis=1)
            counts[t] = numpy.delete(counts[t], unvisited, axis=0)
        self.transition_matrix = [
            count / count.sum(axis=1, keepdims=True) for count in counts]
        self.n_Markov_states = [len(states) for states in self.Markov_states]

    def _check_trained(self):
        if self.transition_matrix is None:
            raise ValueError("The Markov chain has not been trained!")

    def write(self, path):
        """Write the chain of stage t to path + 'Markov_states_t.csv' and
        path + 'transition_matrix_t.csv'."""
        self._check_trained()
        for t in range(self.T):
            pandas.DataFrame(self.Markov_states[t]).to_csv(
                path + "Markov_states_{}.csv".format(t))
            pandas.DataFrame(self.transition_matrix[t]).to_csv(
                path + "transition_matrix_{}.csv".format(t))

    def simulate(self, n_samples):
        """Sample paths of the trained chain as an array (n_samples, T, dim),
        e.g. for a fan plot against the process. Path i is drawn with
        RandomState(i)."""
        self._check_trained()
        paths = numpy.empty((n_samples, self.T, self.dim_Markov_states))
        for i in range(n_samples):
            random_state = numpy.random.RandomState(i)
            k = 0
            for t in range(self.T):
                k = random_state.choice(
                    len(self.Markov_states[t]),
                    p=self.transition_matrix[t][k],
                )
                paths[i, t] = self.Markov_states[t][k]
        return paths
