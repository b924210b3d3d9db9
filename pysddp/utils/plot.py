"""
Matplotlib figures of training progress and of simulated policies.

Every function draws on the given axes, or on a new figure if ax is None, and
returns the figure.
"""
import matplotlib.pyplot as plt
from matplotlib.ticker import MaxNLocator
import numpy
from pysddp.utils.statistics import compute_CI


def _get_figure(ax):
    if ax is None:
        fig, ax = plt.subplots()
        return fig, ax
    return ax.figure, ax

def _extract(simulations, key):
    """Turn simulation dictionaries into an (n_simulations * T) array. key can
    be a key of the stage dictionaries or a callable on the stage
    dictionary."""
    getter = key if callable(key) else (lambda stage: stage[key])
    return numpy.array(
        [[getter(stage) for stage in simulation] for simulation in simulations],
        dtype='float64',
    )

def _label(ax, key, ylabel, title):
    ax.set_xlabel('Stage')
    if ylabel is None:
        ylabel = key if isinstance(key, str) else ''
    ax.set_ylabel(ylabel)
    if title is not None:
        ax.set_title(title)

def fan_plot(x, ax=None):
    """Shade every sample path of x against the sample mean (dashed).

    x: array-like (n_samples, T)
    """
    x = numpy.asarray(x)
    if x.ndim != 2:
        raise ValueError("x must be a two dimensional array!")
    fig, ax = _get_figure(ax)
    periods = numpy.arange(x.shape[1])
    mean = x.mean(axis=0)
    ax.plot(periods, mean, '--', color='black')
    for path in x:
        ax.plot(periods, path, color='purple', alpha=0.05)
        ax.fill_between(periods, path, mean, color='purple', alpha=0.05)
    return fig

def spaghetti_plot(simulations, key, ax=None, alpha=0.3, color='steelblue',
        title=None, ylabel=None):
    """Plot one line per replication of a simulated quantity.

    Parameters
    ----------
    simulations: list
        The output of Evaluation.simulate: a list (replications) of lists
        (stages) of dictionaries.

    key: str or callable
        The key of the stage dictionaries to plot, e.g. a queried variable
        name or 'stage_objective'. A callable takes the stage dictionary and
        returns a number.

    Returns
    -------
    matplotlib.pyplot.figure instance

    Examples
    --------
    >>> simulations = Evaluation(graph).simulate(100, query=['volume'])
    >>> spaghetti_plot(simulations, 'volume')
    >>> spaghetti_plot(simulations, lambda s: s['stage_objective'] / 1000)
    """
    values = _extract(simulations, key)
    fig, ax = _get_figure(ax)
    stages = range(1, values.shape[1]+1)
    for replication in values:
        ax.plot(stages, replication, '-', color=color, alpha=alpha)
    _label(ax, key, ylabel, title)
    return fig

def publication_plot(simulations, key, quantiles=(0.0, 0.1, 0.25),
        ax=None, color='royalblue', title=None, ylabel=None):
    """Plot the distribution of a simulated quantity over the stages as
    shaded quantile bands with the median line.

    Parameters
    ----------
    simulations: list
        The output of Evaluation.simulate.

    key: str or callable
        See spaghetti_plot.

    quantiles: array-like of floats in [0, 0.5)
        Lower quantiles of the bands; the band of q spans the q and 1-q
        quantiles.

    Returns
    -------
    matplotlib.pyplot.figure instance
    """
    if any(q < 0 or q >= 0.5 for q in quantiles):
        raise ValueError("quantiles must be in [0, 0.5)!")
    values = _extract(simulations, key)
    fig, ax = _get_figure(ax)
    stages = range(1, values.shape[1]+1)
    n_bands = len(quantiles)
    for idx, q in enumerate(sorted(quantiles)):
        ax.fill_between(
            stages,
            numpy.quantile(values, q, axis=0),
            numpy.quantile(values, 1-q, axis=0),
            facecolor=color,
            alpha=0.5*(idx+1)/n_bands,
            edgecolor='none',
        )
    ax.plot(stages, numpy.median(values, axis=0), '-', color='black',
        label='median')
    _label(ax, key, ylabel, title)
    ax.legend(loc='best')
    return fig

def plot_bounds(db, pv, sense=1, percentile=95, start=0, window=1, ax=None):
    """Plot the bounds recorded while training, from iteration start on.

    Parameters
    ----------
    db, pv: array-like
        Deterministic bound and policy value of every iteration, e.g. the
        columns of SDDP.bounds.

    sense: 1 or -1 (default=1)
        1 for minimization, -1 for maximization.

    window: int, optional (default=1)
        With window > 1 the policy values of the last window iterations give a
        percentile% CI, drawn as a band, and its pessimistic end is drawn as
        the statistical bound. Otherwise the policy values are drawn as is.
    """
    fig, ax = _get_figure(ax)
    db = numpy.asarray(db, dtype='float64')
    pv = numpy.asarray(pv, dtype='float64')
    iterations = numpy.arange(start, len(db))
    ax.plot(iterations, db[start:], '-b', label='deterministic bounds')
    if window > 1:
        iterations = iterations[iterations >= window-1]
        lower, upper = numpy.array(
            [compute_CI(pv[i-window+1:i+1], percentile) for i in iterations]
        ).reshape(-1, 2).T
        ax.fill_between(iterations, lower, upper, facecolor='pink', alpha=0.5,
            edgecolor='none',
            label='expected policy values {}% CI'.format(percentile))
        ax.plot(iterations, upper if sense == 1 else lower, '-r',
            label='statistical bounds {}% CI'.format(percentile))
    else:
        ax.plot(iterations, pv[start:], '-r', label='policy values')
    ax.set_xlabel('Iterations')
    ax.set_ylabel('Values')
    ax.xaxis.set_major_locator(MaxNLocator(integer=True))
    ax.legend(loc='best')
    ax.set_title('Evolution of bounds')
    return fig
