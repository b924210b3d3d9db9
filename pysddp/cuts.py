"""Outer approximation of the cost-to-go function of a node by cutting planes.

A cut of a minimization node reads alpha >= rhs + gradient * x, where x is the
outgoing state of the node and alpha is the cost-to-go variable. Maximization
flips the inequality.
"""
import gurobipy
import numpy
import pandas
import logging

logger = logging.getLogger(__name__)


class Cut(object):
    """A supporting hyperplane of the cost-to-go function.

    Parameters
    ----------
    rhs: float
        The intercept.

    gradient: array-like
        The coefficients of the outgoing state variables.

    iteration: int, optional
        The SDDP iteration that generated the cut.
    """
    def __init__(self, rhs, gradient, iteration=None, constr=None):
        self.rhs = float(rhs)
        self.gradient = numpy.array(gradient, dtype='float64')
        self.iteration = iteration
        self.constr = constr

    def __repr__(self):
        return "<Cut rhs={}, gradient={}>".format(self.rhs, list(self.gradient))

    def evaluate(self, x):
        return self.rhs + numpy.dot(self.gradient, x)


class ValueFunction(object):
    """The cuts of a single node. Every cut is stored here and added to the
    node subproblem as a constraint on its cost-to-go variable.

    Parameters
    ----------
    subproblem: Subproblem
        The node subproblem, with its cost-to-go variable already created.

    bound: float
        The known bound of the cost-to-go function.
    """
    def __init__(self, subproblem, bound):
        self.subproblem = subproblem
        self.bound = bound
        self.cuts = []

    def __repr__(self):
        return "<ValueFunction {} cuts>".format(len(self.cuts))

    def __len__(self):
        return len(self.cuts)

    def __iter__(self):
        return iter(self.cuts)

    def __getitem__(self, i):
        return self.cuts[i]

    @property
    def sense(self):
        return self.subproblem.modelSense

    def _is_duplicate(self, rhs, gradient):
        for cut in self.cuts:
            if (abs(cut.rhs - rhs) <= 1e-9
                    and numpy.allclose(cut.gradient, gradient, rtol=0, atol=1e-9)):
                return True
        return False

    def add(self, rhs, gradient, iteration=None):
        """Add a cut. Return the added Cut or None if the same cut is already
        stored."""
        m = self.subproblem
        gradient = numpy.array(gradient, dtype='float64')
        if len(gradient) != m.n_states:
            raise ValueError(
                "gradient is of length {} while the subproblem has {} state "
                "variables!".format(len(gradient), m.n_states)
            )
        if self._is_duplicate(rhs, gradient):
            return None
        temp = gurobipy.LinExpr(list(gradient), m.states)
        constr = m._model.addConstr(
            self.sense * (m.alpha - temp - rhs) >= 0
        )
        m._model.update()
        cut = Cut(rhs, gradient, iteration, constr)
        self.cuts.append(cut)
        return cut

    def remove(self, i):
        cut = self.cuts.pop(i)
        self.subproblem._model.remove(cut.constr)
        self.subproblem._model.update()

    def clear(self):
        for cut in self.cuts:
            self.subproblem._model.remove(cut.constr)
        self.cuts = []
        self.subproblem._model.update()

    def evaluate(self, x):
        """Evaluate the outer approximation at outgoing state x"""
        if not self.cuts:
            return self.bound
        values = [cut.evaluate(x) for cut in self.cuts]
        if self.sense == 1:
            return max(max(values), self.bound)
        return min(min(values), self.bound)

    def remove_dominated(self, states):
        """Remove the cuts that are not active at any of the given states.

        Parameters
        ----------
        states: array-like
            The sampled outgoing states (n_points * n_states), typically the
            forward solutions visited so far.

        Returns
        -------
        The number of removed cuts: int
        """
        if not self.cuts:
            return 0
        states = numpy.atleast_2d(numpy.array(states, dtype='float64'))
        values = numpy.array([
            [cut.evaluate(x) for cut in self.cuts] for x in states
        ])
        best = (
            numpy.argmax(values, axis=1)
            if self.sense == 1
            else numpy.argmin(values, axis=1)
        )
        keep = set(best.tolist())
        removed = 0
        for i in reversed(range(len(self.cuts))):
            if i not in keep:
                self.remove(i)
                removed += 1
        return removed

    def to_frame(self):
        """Cuts as a DataFrame: one column per state variable and a column
        'rhs'."""
        columns = [state.varName for state in self.subproblem.states]
        data = [list(cut.gradient) + [cut.rhs] for cut in self.cuts]
        return pandas.DataFrame(data, columns=columns + ["rhs"])

    def write(self, filename):
        """Write the cuts to a csv file"""
        self.to_frame().to_csv(filename)

    def read(self, filename):
        """Read cuts from a csv file written by write and add them. Return the
        number of added cuts."""
        df = pandas.read_csv(filename, index_col=0)
        columns = [state.varName for state in self.subproblem.states]
        if list(df.columns) != columns + ["rhs"]:
            raise ValueError(
                "cut file {} has columns {} while {} are expected!"
                .format(filename, list(df.columns), columns + ["rhs"])
            )
        count = 0
        for coeff in df.values:
            if self.add(coeff[-1], coeff[:-1]) is not None:
                count += 1
        logger.info("%d cuts read from %s", count, filename)
        return count
