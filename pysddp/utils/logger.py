"""
Fixed-width progress tables written while training.

Each table goes to its own logger, "pysddp.<name>", which writes to
directory + name + '.log' (append mode) and/or to the console.
"""
import logging


class Logger(object):
    """A progress table.

    Parameters
    ----------
    logFile: bool
        Write the table to directory + name + '.log'.

    logToConsole: bool
        Write the table to the console.

    directory: str
        The prefix of the log file.

    Attributes
    ----------
    logger:
        The underlying logging.Logger.

    time:
        The accumulated time of the logged rows.
    """
    name = ""
    title = ""
    # (label, width) of every column
    columns = []

    def __init__(self, logFile, logToConsole, directory=''):
        logger = logging.getLogger("pysddp." + self.name)
        logger.setLevel(logging.INFO)
        logger.propagate = False
        self.logger = logger
        # drop the handlers of a previous run
        self.close()
        self.filename = None
        if logFile != 0:
            self.filename = directory + self.name + ".log"
            logger.addHandler(logging.FileHandler(self.filename, mode="a"))
        if logToConsole != 0:
            logger.addHandler(logging.StreamHandler())
        self.time = 0

    def __repr__(self):
        return self.name

    @property
    def width(self):
        return sum(width for _, width in self.columns)

    def rule(self):
        self.logger.info("-" * self.width)

    def header(self, *lines):
        self.rule()
        self.logger.info("{:^{width}s}".format(self.title, width=self.width))
        self.rule()
        if lines:
            for line in lines:
                self.logger.info(line)
            self.rule()
        self.logger.info("".join(
            "{:>{width}s}".format(label, width=width)
            for label, width in self.columns
        ))
        self.rule()

    def footer(self):
        self.rule()
        self.logger.info("Time: {} seconds".format(self.time))

    def close(self):
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)


class LoggerSDDP(Logger):
    name = "SDDP"
    title = "SDDP Solver, pysddp"
    columns = [("Iteration", 12), ("Bound", 20), ("Value", 20), ("Time", 12)]

    def __init__(self, n_stages, n_nodes, n_states, **kwargs):
        self.n_stages = n_stages
        self.n_nodes = n_nodes
        self.n_states = n_states
        super().__init__(**kwargs)

    def header(self):
        super().header(
            "Stages: {}".format(self.n_stages),
            "Nodes: {}".format(self.n_nodes),
            "State variables: {}".format(self.n_states),
        )

    def text(self, iteration, db, pv, time):
        self.logger.info(
            "{:>12d}{:>20f}{:>20f}{:>12f}".format(iteration, db, pv, time))
        self.time += time

    def footer(self, reason):
        super().footer()
        self.logger.info("Algorithm stops since " + reason)


class LoggerEvaluation(Logger):
    """Table of the policy evaluations made during training. A Monte Carlo
    evaluation shows the CI of the policy value, an exhaustive or single
    one the value itself."""
    name = "Evaluation"
    title = "Evaluation for approximation model, pysddp"

    def __init__(self, percentile, n_simulations, **kwargs):
        self.percentile = percentile
        self.n_simulations = n_simulations
        if n_simulations in [-1, 1]:
            value = ("Value", 20)
        else:
            value = ("Value {}% CI ({})".format(percentile, n_simulations), 40)
        self.columns = [("Iteration", 12), ("Bound", 20), value,
            ("Time", 12), ("Gap", 12)]
        super().__init__(**kwargs)

    def text(self, iteration, db, time, pv=None, CI=None, gap=None):
        if CI is not None:
            value = "{:>19f}, {:<19f}".format(CI[0], CI[1])
        else:
            value = "{:>20f}".format(pv)
        self.logger.info("{:>12d}{:>20f}{}{:>12f}{:>12}".format(
            iteration, db, value, time, gap))
        self.time += time
