"""Errors raised while building, solving and querying a policy graph."""


class SampleSizeError(Exception):
    """Uncertainties of one node subproblem disagree on the number of
    scenarios."""
    def __init__(self, modelName, dimensionality, uncertainty, dimension):
        Exception.__init__(
            self,
            "Subproblem {} has {} scenarios but uncertainty {} has {}".format(
                modelName, dimensionality, uncertainty, dimension
            ),
        )


class MarkovianDimensionError(Exception):
    """dim_index of a Markovian uncertainty is missing or out of range."""
    def __init__(self):
        Exception.__init__(
            self,
            "Each Markovian uncertainty needs dim_index within the dimension "
            "of the Markov states."
        )


class InfeasibilityError(Exception):
    def __init__(self, modelName, status):
        self.modelName = modelName
        self.status = status
        Exception.__init__(
            self,
            "Subproblem {} terminated with status {}; "
            "check complete recourse condition!".format(modelName, status)
        )


class NotTrainedError(Exception):
    """Results are queried before SDDP.train."""
    def __init__(self, what="policy"):
        Exception.__init__(
            self,
            "The {} is not available; run SDDP.train first!".format(what)
        )
