# %% [markdown]
# # Hydrothermal scheduling with a Markov chain climate
#
# The climate is wet (inflow 100) or dry (inflow 0) and stays the same with
# probability 0.75. The inflow of a node is read from its Markov state
# through `uncertainty_dependent`.

# %%
import numpy
import matplotlib.pyplot as plt
from pysddp.graph import PolicyGraph
from pysddp.solver import SDDP
from pysddp.evaluation import Evaluation
from pysddp.utils.plot import fan_plot

T = 3

def builder(m, t, k):
    volume, volume_in = m.addStateVar(ub=200, name='volume', initial_value=200)
    thermal = m.addVar(name='thermal_generation', obj=50*(t+1))
    hydro = m.addVar(name='hydro_generation')
    spill = m.addVar(name='hydro_spill')
    m.addConstr(volume - volume_in + hydro + spill == 0, name='balance',
        uncertainty_dependent={'rhs': 0})
    m.addConstr(thermal + hydro == 150, name='demand')

graph = PolicyGraph(T=T, bound=0)
graph.add_MC_uncertainty(
    Markov_states=[[[50]],[[100],[0]],[[100],[0]]],
    transition_matrix=[
        [[1]],
        [[0.5,0.5]],
        [[0.75,0.25],[0.25,0.75]]
    ]
)
graph.build(builder)
sddp = SDDP(graph).train(max_iterations=20, logFile=0)

# %%
evaluation = Evaluation(graph).run(n_simulations=-1, query=['volume'])
print("bound: {}, expected policy value: {}".format(graph.db, evaluation.epv))

# %% [markdown]
# A wet start followed by a dry spell, given as
# (scenario indices, Markov state indices).

# %%
simulation = Evaluation(graph).simulate(
    1, query=['volume'], sample_paths=[([0,0,0], [0,0,1])])[0]
print([(stage['markov_state'], stage['volume']) for stage in simulation])

# %% [markdown]
# ## Approximating a continuous process
#
# An autoregressive inflow process is approximated by a Markov chain with
# three Markov states per stage, trained by stochastic approximation.

# %%
def inflow_generator(random_state, size):
    inflow = numpy.empty([size,T,1])
    inflow[:,0,:] = 50
    for t in range(1,T):
        inflow[:,t,:] = (
            0.5 * inflow[:,t-1,:]
            + random_state.uniform(0, 100, size=[size,1])
        )
    return inflow

graph = PolicyGraph(T=T, bound=0)
graph.add_Markovian_uncertainty(inflow_generator)
markovian = graph.discretize(n_Markov_states=3, n_sample_paths=1000,
    method='SA')
print(markovian.Markov_states)
graph.build(builder)
SDDP(graph).train(max_iterations=20, logFile=0)

# %% [markdown]
# The generated inflow paths against the trained Markov states.

# %%
fig = fan_plot(inflow_generator(numpy.random.RandomState(0), 100)[:,:,0])
ax = fig.axes[0]
for t in range(1,T):
    ax.scatter([t]*markovian.n_Markov_states[t], markovian.Markov_states[t][:,0],
        color='black')
fig.savefig('markov_inflow.png')
plt.close(fig)
