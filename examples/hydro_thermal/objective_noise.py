# %% [markdown]
# # Uncertain fuel cost and a risk averse policy
#
# The fuel cost in the objective is uncertain and the dry scenario is also
# the expensive one. It is given probability 0.5.

# %%
from pysddp.solver import SDDP
from pysddp.evaluation import Evaluation
from pysddp.utils.examples import construct_hydro_thermal_objective_noise

graph = construct_hydro_thermal_objective_noise()
for t in range(1, graph.T):
    graph[t].set_probability([0.5, 0.25, 0.25])
SDDP(graph).train(max_iterations=20, logFile=0)
risk_neutral = Evaluation(graph).run(n_simulations=-1)
print("risk neutral: bound {}, expected cost {}".format(graph.db,
    risk_neutral.epv))

# %% [markdown]
# Half expectation and half AVaR of the worst quarter.

# %%
graph = construct_hydro_thermal_objective_noise()
for t in range(1, graph.T):
    graph[t].set_probability([0.5, 0.25, 0.25])
graph.set_AVaR(l=0.5, a=0.25)
SDDP(graph).train(max_iterations=20, logFile=0)
risk_averse = Evaluation(graph).run(n_simulations=-1)
print("risk averse: expected cost {}".format(risk_averse.epv))
