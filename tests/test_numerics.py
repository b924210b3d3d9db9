from pysddp.numerics import numerical_stability_report
from pysddp.graph import PolicyGraph
from pysddp.utils.examples import (construct_hydro_thermal,
    construct_hydro_thermal_markov)
import logging


def construct_badly_scaled():
    def builder(m, t):
        x, x_past = m.addStateVar(ub=10, name='x')
        y = m.addVar(name='y', obj=1e7)
        m.addConstr(x + y >= x_past, name='cover')
    return PolicyGraph(T=2, bound=0).build(builder)


def test_report():
    report = numerical_stability_report(construct_hydro_thermal())
    assert list(report.columns) == [
        'matrix_min', 'matrix_max',
        'objective_min', 'objective_max',
        'bounds_min', 'bounds_max',
        'rhs_min', 'rhs_max',
    ]
    assert list(report.index) == ['all']
    row = report.loc['all']
    assert row['matrix_min'] == row['matrix_max'] == 1
    assert row['objective_min'] == 50
    assert row['objective_max'] == 150
    assert row['rhs_min'] == 50
    assert row['rhs_max'] == 150


def test_by_node():
    report = numerical_stability_report(construct_hydro_thermal(),
        by_node=True)
    assert list(report.index) == ['stage 0', 'stage 1', 'stage 2']
    assert report.loc['stage 2', 'objective_max'] == 150
    report = numerical_stability_report(construct_hydro_thermal_markov(),
        by_node=True)
    assert 'stage 1 Markov state 1' in report.index
    assert len(report) == 5


def test_warning(caplog):
    with caplog.at_level(logging.WARNING, logger='pysddp.numerics'):
        numerical_stability_report(construct_hydro_thermal())
    assert not caplog.records
    with caplog.at_level(logging.WARNING, logger='pysddp.numerics'):
        report = numerical_stability_report(construct_badly_scaled())
    assert report.loc['all', 'objective_max'] == 1e7
    assert any('objective' in record.getMessage() for record in caplog.records)
    caplog.clear()
    with caplog.at_level(logging.WARNING, logger='pysddp.numerics'):
        numerical_stability_report(construct_badly_scaled(), warn=False)
    assert not caplog.records
