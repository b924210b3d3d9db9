# %% [markdown]
# # Hydrothermal scheduling with stage-wise independent inflow
#
# One reservoir (at most 200 units, full at the start) and a thermal plant
# meet a demand of 150 units in each of three stages. Hydro generation is
# free, thermal generation costs 50, 100 and 150 per unit in the three stages
# and the inflow of the second and third stage is 0, 50 or 100 with equal
# probability.

# %%
import matplotlib.pyplot as plt
from pysddp.graph import PolicyGraph
from pysddp.solver import SDDP
from pysddp.evaluation import Evaluation
from pysddp.utils.plot import spaghetti_plot, publication_plot

T = 3
fuel_cost = [50, 100, 150]
inflow = [0, 50, 100]

# %% [markdown]
# Every node is built by the same callback. The volume at the end of a stage
# is the state variable; `volume_in` is its value at the start of the stage.

# %%
def builder(m, t):
    # state: the volume of the reservoir at the end of the stage
    volume, volume_in = m.addStateVar(ub=200, name='volume', initial_value=200)
    # controls
    thermal = m.addVar(name='thermal_generation', obj=fuel_cost[t])
    hydro = m.addVar(name='hydro_generation')
    spill = m.addVar(name='hydro_spill')
    # dynamics
    if t == 0:
        m.addConstr(volume == volume_in - hydro - spill + 50, name='balance')
    else:
        m.addConstr(volume - volume_in + hydro + spill == 0, name='balance',
            uncertainty={'rhs': inflow})
    m.addConstr(thermal + hydro == 150, name='demand')

graph = PolicyGraph(T=T, bound=0).build(builder)

# %% [markdown]
# ## Training

# %%
sddp = SDDP(graph).train(max_iterations=20, logFile=0)
print(sddp.bounds.tail())
print(sddp.first_stage_solution)

# %% [markdown]
# ## Simulation
#
# The price of electricity is the dual of the demand constraint.

# %%
simulations = Evaluation(graph).simulate(
    100,
    query=['volume', 'thermal_generation', 'hydro_generation'],
    query_dual=['demand'],
    random_state=888,
)
print([stage['demand'] for stage in simulations[0]])

# %%
fig, ax = plt.subplots(1, 3, figsize=(12, 4))
spaghetti_plot(simulations, 'volume', ax=ax[0], title='Reservoir volume')
publication_plot(simulations, 'thermal_generation', ax=ax[1],
    title='Thermal generation')
publication_plot(simulations, 'hydro_generation', ax=ax[2],
    title='Hydro generation')
fig.savefig('hydro_thermal_simulations.png')
sddp.plot_bounds().savefig('hydro_thermal_bounds.png')
