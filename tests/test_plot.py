from pysddp.utils.plot import (fan_plot, spaghetti_plot, publication_plot,
    plot_bounds)
import matplotlib.pyplot as plt
import numpy
import pytest

# two replications of three stages
simulations = [
    [
        {'stage': t, 'volume': 100.0 - 10*t, 'stage_objective': 10.0*t}
        for t in range(3)
    ],
    [
        {'stage': t, 'volume': 100.0 + 10*t, 'stage_objective': 5.0*t}
        for t in range(3)
    ],
]


def teardown_function():
    plt.close('all')


def test_fan_plot():
    x = numpy.random.RandomState(0).normal(size=[20, 4])
    fig = fan_plot(x)
    assert fig.axes[0].lines
    with pytest.raises(ValueError):
        fan_plot([1, 2, 3])


def test_spaghetti_plot():
    fig = spaghetti_plot(simulations, 'volume')
    ax = fig.axes[0]
    assert len(ax.lines) == 2
    assert list(ax.lines[0].get_ydata()) == [100, 90, 80]
    assert ax.get_ylabel() == 'volume'
    fig = spaghetti_plot(simulations, lambda s: s['stage_objective'] / 5,
        ylabel='cost')
    assert list(fig.axes[0].lines[1].get_ydata()) == [0, 1, 2]
    assert fig.axes[0].get_ylabel() == 'cost'


def test_spaghetti_plot_on_axes():
    fig, ax = plt.subplots(1, 2)
    assert spaghetti_plot(simulations, 'volume', ax=ax[1]) is fig
    assert len(ax[1].lines) == 2


def test_publication_plot():
    fig = publication_plot(simulations, 'volume', title='Reservoir')
    ax = fig.axes[0]
    assert ax.get_title() == 'Reservoir'
    assert list(ax.lines[0].get_ydata()) == [100, 100, 100]
    with pytest.raises(ValueError):
        publication_plot(simulations, 'volume', quantiles=[0.5])


def test_plot_bounds():
    db = [1, 2, 3, 3, 3]
    pv = [5, 4, 3.5, 3.2, 2.8]
    fig = plot_bounds(db, pv)
    assert len(fig.axes[0].lines) == 2
    fig = plot_bounds(db, pv, window=2, start=1)
    assert fig.axes[0].get_title() == 'Evolution of bounds'
