"""
Risk measures of the backward pass.

A measure turns the scenario values `obj` (n,) and gradients `grad` (n, n_states)
of a node, with nominal probability `p`, into the value and the gradient of a
single cut. Both measures below reweight the scenarios, so the cut is always
a convex combination of the scenario cuts.
"""
import numpy


class Expectation(object):
    """The risk neutral measure"""

    def __repr__(self):
        return "Expectation"

    def weights(self, obj, p, sense):
        return p

    def __call__(self, obj, grad, p, sense):
        obj = numpy.asarray(obj, dtype='float64')
        if p is None:
            p = numpy.full(len(obj), 1.0 / len(obj))
        q = self.weights(obj, numpy.asarray(p, dtype='float64'), sense)
        return q.dot(obj), q.dot(numpy.asarray(grad, dtype='float64'))


class Expectation_AVaR(Expectation):
    """(1-l) * E + l * AVaR_a.

    AVaR_a is the mean of the worst a share of the probability mass (largest
    costs if minimizing, smallest rewards if maximizing). Bigger l or smaller
    a means more risk averse.
    """
    def __init__(self, a, l):
        self.a = a
        self.l = l

    def __repr__(self):
        return "Expectation_AVaR(a={}, l={})".format(self.a, self.l)

    def weights(self, obj, p, sense):
        tail = numpy.zeros_like(p)
        mass = self.a
        for j in numpy.argsort(-sense * obj, kind='stable'):
            if mass <= 0:
                break
            tail[j] = min(p[j], mass)
            mass -= tail[j]
        return (1 - self.l) * p + self.l * tail / self.a
