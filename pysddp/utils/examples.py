"""
Small policy graphs shared by the tests and the tutorials. The hydrothermal
models schedule one reservoir: every stage the demand of 150 units is met by
hydro generation (free, drawn from the reservoir) and thermal generation
(paying fuel cost); water can be spilled and the reservoir holds at most 200
units.
"""
from pysddp.graph import PolicyGraph


def _hydro_thermal_stage(m, fuel_cost, initial_volume=200):
    volume, volume_in = m.addStateVar(
        ub=200, name='volume', initial_value=initial_volume)
    thermal = m.addVar(name='thermal_generation', obj=fuel_cost)
    hydro = m.addVar(name='hydro_generation')
    spill = m.addVar(name='hydro_spill')
    m.addConstr(thermal + hydro == 150, name='demand')
    return volume, volume_in, thermal, hydro, spill

# Stage-wise independent inflow
def construct_hydro_thermal(T=3):
    """Inflow scenarios [0, 50, 100] are equally likely from the second stage
    on; the first stage inflow is 50. Fuel cost is 50 * (t+1)."""
    def builder(m, t):
        volume, volume_in, _, hydro, spill = _hydro_thermal_stage(
            m, fuel_cost=50*(t+1))
        if t == 0:
            m.addConstr(volume - volume_in + hydro + spill == 50,
                name='balance')
        else:
            m.addConstr(volume - volume_in + hydro + spill == 0,
                name='balance', uncertainty={'rhs': [0, 50, 100]})
    return PolicyGraph(T=T, bound=0).build(builder)

# Deterministic problem with a known optimum of 12500
def construct_hydro_thermal_deterministic():
    """No inflow and 100 units of water: all of it is best used in the second
    stage, where fuel costs 100 rather than 50."""
    def builder(m, t):
        volume, volume_in, _, hydro, spill = _hydro_thermal_stage(
            m, fuel_cost=[50, 100][t], initial_volume=100)
        m.addConstr(volume - volume_in + hydro + spill == 0, name='balance')
    return PolicyGraph(T=2, bound=0).build(builder)

# Markov chain inflow
def construct_hydro_thermal_markov():
    """The climate is wet (inflow 100) or dry (inflow 0) and tends to persist.
    The first stage inflow is 50."""
    graph = PolicyGraph(T=3, bound=0)
    graph.add_MC_uncertainty(
        Markov_states=[[[50]],[[100],[0]],[[100],[0]]],
        transition_matrix=[
            [[1]],
            [[0.5,0.5]],
            [[0.75,0.25],[0.25,0.75]]
        ]
    )
    def builder(m, t, k):
        volume, volume_in, _, hydro, spill = _hydro_thermal_stage(
            m, fuel_cost=50*(t+1))
        m.addConstr(volume - volume_in + hydro + spill == 0,
            name='balance', uncertainty_dependent={'rhs': 0})
    return graph.build(builder)

# Stage-wise independent inflow and fuel cost
def construct_hydro_thermal_objective_noise():
    """Inflow and fuel cost are jointly uncertain: a dry stage is also an
    expensive one."""
    def builder(m, t):
        volume, volume_in = m.addStateVar(
            ub=200, name='volume', initial_value=200)
        hydro = m.addVar(name='hydro_generation')
        spill = m.addVar(name='hydro_spill')
        cost = 50*(t+1)
        if t == 0:
            thermal = m.addVar(name='thermal_generation', obj=cost)
            m.addConstr(volume - volume_in + hydro + spill == 50,
                name='balance')
        else:
            thermal = m.addVar(name='thermal_generation',
                uncertainty=[1.25*cost, cost, 0.75*cost])
            m.addConstr(volume - volume_in + hydro + spill == 0,
                name='balance', uncertainty={'rhs': [0, 50, 100]})
        m.addConstr(thermal + hydro == 150, name='demand')
    return PolicyGraph(T=3, bound=0).build(builder)

# Stage-wise independent maximization problem
def construct_newsvendor():
    """Buy at 1, sell at 2 and recycle at 0.5 the unsold with demand uniform
    on 0..10. The optimal order is 7 with expected profit 35/11."""
    def builder(m, t):
        if t == 0:
            m.addStateVar(name='bought', obj=-1.0)
        else:
            _, buy_past = m.addStateVar(name='bought')
            sold = m.addVar(name='sold', obj=2)
            unsatisfied = m.addVar(name='unsatisfied')
            recycled = m.addVar(name='recycled', obj=0.5)
            m.addConstr(sold + unsatisfied == 0, name='demand',
                uncertainty={'rhs':range(11)})
            m.addConstr(sold + recycled == buy_past, name='inventory')
    return PolicyGraph(T=2, sense=-1, bound=20).build(builder)
