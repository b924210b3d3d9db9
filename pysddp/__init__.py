from pysddp.graph import PolicyGraph
from pysddp.solver import SDDP
from pysddp.evaluation import Evaluation
from pysddp.stopping import (StoppingRule, IterationLimit, TimeLimit,
    BoundStalling, Statistical)
from pysddp.numerics import numerical_stability_report
