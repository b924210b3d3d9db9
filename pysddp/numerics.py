"""Numerical stability report of the node subproblems.

Badly scaled coefficients make the duals of the linking constraints, and so
the cuts, unreliable. The report collects the smallest and the largest
absolute non-zero value of the constraint matrix, the objective coefficients,
the finite variable bounds and the right-hand sides of every node, the
scenario values included, and warns about ranges outside [1e-3, 1e6].
"""
import gurobipy
import numpy
import pandas
import logging

logger = logging.getLogger(__name__)

STABLE_RANGE = (1e-3, 1e6)

KINDS = ['matrix', 'objective', 'bounds', 'rhs']


def _flatten(values):
    result = []
    for item in values:
        if isinstance(item, (list, tuple, numpy.ndarray)):
            result += _flatten(item)
        else:
            result.append(item)
    return result

def _abs_range(values):
    values = numpy.abs(numpy.array(_flatten(values), dtype='float64'))
    values = values[(values > 0) & (values < gurobipy.GRB.INFINITY)]
    if len(values) == 0:
        return numpy.nan, numpy.nan
    return values.min(), values.max()

def _node_values(m):
    """The coefficients of a node subproblem by kind"""
    m.update()
    variables = [
        var for var in m.getVars()
        if m.alpha is None or not var.sameAs(m.alpha)
    ]
    values = {}
    if m.NumConstrs > 0 and m.NumVars > 0:
        values['matrix'] = list(m.getA().data)
    else:
        values['matrix'] = []
    values['matrix'] += list(m.uncertainty_coef.values())
    values['objective'] = (
        m.getAttr('Obj', variables)
        + list(m.uncertainty_obj.values())
    )
    values['bounds'] = m.getAttr('LB', variables) + m.getAttr('UB', variables)
    values['rhs'] = (
        m.getAttr('RHS', m.getConstrs())
        + list(m.uncertainty_rhs.values())
    )
    return values

def numerical_stability_report(graph, by_node=False, warn=True):
    """Report the ranges of the coefficients of the policy graph.

    Parameters
    ----------
    graph: PolicyGraph
        A policy graph whose nodes are populated.

    by_node: bool, optional (default=False)
        If True, report one row per node; otherwise one row for the whole
        graph.

    warn: bool, optional (default=True)
        Log a warning for every range that is outside [1e-3, 1e6].

    Returns
    -------
    pandas.DataFrame with columns <kind>_min and <kind>_max for kind in
    matrix, objective, bounds and rhs.

    Examples
    --------
    >>> numerical_stability_report(graph, by_node=True)
    """
    rows = {}
    collected = {kind: [] for kind in KINDS}
    for t, k, m in graph.nodes:
        values = _node_values(m)
        name = (
            "stage {}".format(t)
            if graph.n_Markov_states == 1
            else "stage {} Markov state {}".format(t, k)
        )
        if by_node:
            rows[name] = values
        for kind in KINDS:
            collected[kind] += values[kind]
    if not by_node:
        rows['all'] = collected
    data = {}
    for name, values in rows.items():
        row = {}
        for kind in KINDS:
            row[kind+'_min'], row[kind+'_max'] = _abs_range(values[kind])
            if warn:
                _warn(name, kind, row[kind+'_min'], row[kind+'_max'])
        data[name] = row
    return pandas.DataFrame.from_dict(
        data,
        orient='index',
        columns=[kind+suffix for kind in KINDS for suffix in ['_min', '_max']],
    )

def _warn(name, kind, low, high):
    if numpy.isnan(low):
        return
    if low < STABLE_RANGE[0] or high > STABLE_RANGE[1]:
        logger.warning(
            "%s: %s range [%g, %g] is outside [%g, %g]; consider rescaling "
            "the model",
            name, kind, low, high, STABLE_RANGE[0], STABLE_RANGE[1],
        )
