# %% [markdown]
# # Numerical scaling
#
# The same model written in liters and dollars rather than megaliters and
# thousands of dollars has coefficients spanning many orders of magnitude.
# The report warns about such ranges before training.

# %%
import logging
from pysddp.graph import PolicyGraph
from pysddp.numerics import numerical_stability_report

logging.basicConfig(level=logging.INFO)

def construct(scale):
    def builder(m, t):
        volume, volume_in = m.addStateVar(
            ub=200*scale, name='volume', initial_value=200*scale)
        thermal = m.addVar(name='thermal_generation', obj=50*(t+1)*scale)
        hydro = m.addVar(name='hydro_generation')
        spill = m.addVar(name='hydro_spill')
        m.addConstr(volume - volume_in + hydro/scale + spill == 50*scale,
            name='balance')
        m.addConstr(thermal + hydro == 150, name='demand')
    return PolicyGraph(T=3, bound=0).build(builder)

# %%
print(numerical_stability_report(construct(1)))

# %%
print(numerical_stability_report(construct(1e6), by_node=True))
