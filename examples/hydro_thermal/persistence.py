# %% [markdown]
# # Saving cuts
#
# Save the cuts of a trained policy and warm start a new graph from them.

# %%
import os
import tempfile
from pysddp.solver import SDDP
from pysddp.utils.examples import construct_hydro_thermal

directory = tempfile.mkdtemp()
prefix = os.path.join(directory, 'cuts_')

graph = construct_hydro_thermal()
sddp = SDDP(graph)
sddp.train(max_iterations=20, logFile=1, logToConsole=0,
    directory=directory + os.sep, cut_file=prefix)
print("log written to", os.path.join(directory, 'SDDP.log'))

# %%
warm = construct_hydro_thermal()
warm_sddp = SDDP(warm)
print("cuts read:", warm_sddp.read_cuts(prefix))
warm_sddp.train(max_iterations=1, logFile=0)
print(sddp.bounds['db'].iloc[-1], warm_sddp.bounds['db'].iloc[-1])
