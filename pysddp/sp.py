import gurobipy
import numpy
from pysddp.utils.exception import SampleSizeError, InfeasibilityError
from pysddp.utils.measure import Expectation
from pysddp.cuts import ValueFunction
from collections import abc
from numbers import Number
import logging

logger = logging.getLogger(__name__)


class Subproblem(object):
    """The subproblem of a node of the policy graph.

    A Subproblem wraps a gurobipy.Model. Attributes and methods that are not
    defined here are looked up on the underlying model, so a Subproblem can
    be used like a gurobipy.Model (m.optimize(), m.objVal, m.getVars(),...).

    Stage-wise independent uncertainties are given as finite lists of
    scenarios (uncertainty=...). Uncertainties that depend on the Markov
    state are given as indices into the Markov state vector
    (uncertainty_dependent=...).
    """
    def __init__(self, name="", env=None):
        self.env = env if env is not None else gurobipy.Env()
        self._model = gurobipy.Model(env=self.env, name=name)
        # state variables, their local copies and the first stage values
        self.states = []
        self.local_copies = []
        self.initial_values = []
        # scenarios keyed by the constraint / (constraint, variable) /
        # variable they apply to; a tuple key stands for a block
        self.uncertainty_rhs = {}
        self.uncertainty_coef = {}
        self.uncertainty_obj = {}
        # Markov state vector indices, keyed the same way
        self.uncertainty_rhs_dependent = {}
        self.uncertainty_coef_dependent = {}
        self.uncertainty_obj_dependent = {}
        self.Markovian_dim_index = []
        # cost-to-go variable alpha and its outer approximation
        self.alpha = None
        self.value_function = None
        self.discount = 1.0
        self.link_constrs = []
        self.n_samples = 1
        self.n_states = 0
        self.probability = None
        self.measure = Expectation()

    def __getattr__(self, name):
        # _model is looked up here before __init__ completes under pickling
        if name == "_model":
            raise AttributeError(name)
        try:
            return getattr(self._model, name)
        except AttributeError:
            raise AttributeError("no attribute named {}".format(name))

    def __repr__(self):
        kinds = [
            description
            for uncertainty, description in [
                (self.uncertainty_rhs, "uncertainties on the RHS of constraints"),
                (self.uncertainty_coef, "uncertainties on the coefficients of constraints"),
                (self.uncertainty_obj, "uncertainties in the objective"),
            ]
            if uncertainty
        ]
        return "<Subproblem {}, {} state variables, {} samples{}>".format(
            repr(self._model)[1:-1],
            self.n_states,
            self.n_samples,
            "".join(", " + kind for kind in kinds),
        )

    @staticmethod
    def _as_scenarios(item):
        if isinstance(item, str):
            raise TypeError("scenarios must be given as an array-like!")
        try:
            return numpy.array(item, dtype='float64')
        except (TypeError, ValueError):
            raise ValueError("Scenarios must only contain numbers!")

    def _set_n_samples(self, n_samples, uncertainty):
        # the first scenario list of the node fixes n_samples
        if not (self.uncertainty_rhs or self.uncertainty_coef
                or self.uncertainty_obj):
            self.n_samples = n_samples
        elif n_samples != self.n_samples:
            raise SampleSizeError(self._model.modelName, self.n_samples,
                uncertainty, n_samples)

    def _block_scenarios(self, uncertainty, size):
        """Scenarios of a block of size objects: a list if size is 1, else an
        array-like of shape (n_samples, size). Returned as nested lists."""
        if not isinstance(uncertainty, (abc.Sequence, numpy.ndarray, range)):
            raise TypeError("uncertainty of {} objects must be an array-like "
                "of scenarios!".format(size))
        scenarios = self._as_scenarios(uncertainty)
        expected = (len(scenarios),) + ((size,) if size > 1 else ())
        if scenarios.shape != expected:
            raise ValueError("scenarios of shape {} do not fit {} objects!"
                .format(scenarios.shape, size))
        self._set_n_samples(len(scenarios), uncertainty)
        return scenarios.tolist()

    def _constraint_scenarios(self, uncertainty):
        """{'rhs' or gurobipy.Var: scenarios} as given to addConstr"""
        if not isinstance(uncertainty, abc.Mapping):
            raise TypeError("uncertainty of a constraint must be a dict!")
        result = {}
        for key, item in uncertainty.items():
            if callable(item):
                raise TypeError(
                    "continuous uncertainties must be given as a list of "
                    "scenarios!"
                )
            scenarios = self._as_scenarios(item)
            if scenarios.ndim != 1:
                raise ValueError("scenarios of {} must be a flat list!"
                    .format(key))
            result[key] = scenarios.tolist()
        lengths = sorted(set(len(item) for item in result.values()))
        if len(lengths) > 1:
            raise SampleSizeError(self._model.modelName, lengths[0], result,
                lengths[-1])
        if lengths:
            self._set_n_samples(lengths[0], result)
        return result

    def _block_indices(self, uncertainty_dependent, size):
        """Markov state indices of a block of size objects: an int if size
        is 1, else a sequence of size ints. Recorded in Markovian_dim_index."""
        if isinstance(uncertainty_dependent, Number):
            indices = [int(uncertainty_dependent)]
        elif (isinstance(uncertainty_dependent, (abc.Sequence, numpy.ndarray))
                and not isinstance(uncertainty_dependent, str)):
            indices = [int(item) for item in uncertainty_dependent]
        else:
            raise TypeError("uncertainty_dependent must be an int or a "
                "sequence of ints!")
        if len(indices) != size:
            raise ValueError("{} Markov state indices are given for {} objects!"
                .format(len(indices), size))
        self.Markovian_dim_index += indices
        return indices[0] if isinstance(uncertainty_dependent, Number) else indices

    def _constraint_indices(self, uncertainty_dependent):
        if not isinstance(uncertainty_dependent, abc.Mapping):
            raise TypeError("uncertainty_dependent of a constraint must be a "
                "dict!")
        result = {}
        for key, item in uncertainty_dependent.items():
            try:
                result[key] = int(item)
            except (TypeError, ValueError):
                raise ValueError("Markov state index of {} must be an integer!"
                    .format(key))
        self.Markovian_dim_index += result.values()
        return result

    def _add_obj_uncertainty(self, key, dim, uncertainty, uncertainty_dependent):
        if uncertainty is not None:
            self.uncertainty_obj[key] = self._block_scenarios(uncertainty, dim)
        if uncertainty_dependent is not None:
            self.uncertainty_obj_dependent[key] = self._block_indices(
                uncertainty_dependent, dim)

    def _register_states(self, states, local_copies, initial_values):
        self._model.update()
        self.states += states
        self.local_copies += local_copies
        self.initial_values += initial_values
        self.n_states += len(states)

    def addStateVars(
            self,
            *indices,
            lb=0.0,
            ub=gurobipy.GRB.INFINITY,
            obj=0.0,
            vtype='C',
            name="",
            initial_value=None,
            uncertainty=None,
            uncertainty_dependent=None
    ):
        """Add a block of state variables; see addStateVar. initial_value is
        a number for all or one per variable.

        Examples
        --------
        >>> now, past = model.addStateVars(2, ub=2.0, initial_value=[1,1])
        >>> now, past = model.addStateVars(2, uncertainty=[[2,4],[3,5]])
        """
        state = self._model.addVars(*indices, lb=lb, ub=ub, obj=obj,
            vtype=vtype, name=name)
        local_copy = self._model.addVars(*indices, lb=lb, ub=ub,
            name=name + "_local_copy")
        n = len(state)
        if isinstance(initial_value, (abc.Sequence, numpy.ndarray)):
            if len(initial_value) != n:
                raise ValueError(
                    "initial_value is of length {} while {} state variables "
                    "are added!".format(len(initial_value), n)
                )
            initial_values = [float(item) for item in initial_value]
        else:
            initial_values = [initial_value] * n
        self._register_states(list(state.values()), list(local_copy.values()),
            initial_values)
        self._add_obj_uncertainty(tuple(state.values()), n, uncertainty,
            uncertainty_dependent)
        return state, local_copy

    def addStateVar(
            self,
            lb=0.0,
            ub=gurobipy.GRB.INFINITY,
            obj=0.0,
            vtype='C',
            name="",
            column=None,
            initial_value=None,
            uncertainty=None,
            uncertainty_dependent=None,
    ):
        """Add a state variable and, behind the scene, its local copy: the
        variable holding the value the state had at the end of the previous
        stage.

        Parameters
        ----------
        initial_value: float, optional, default=None
            The incoming value of the state in the first stage.

        uncertainty: array-like, optional, default=None
            Scenarios of the objective coefficient.

        uncertainty_dependent: int, optional, default=None
            Index in the Markov state vector of the objective coefficient.

        Returns
        -------
        (state variable, local copy variable): tuple

        Examples
        --------
        >>> volume, volume_in = model.addStateVar(ub=200, initial_value=200)
        """
        state = self._model.addVar(lb=lb, ub=ub, obj=obj, vtype=vtype,
            name=name, column=column)
        local_copy = self._model.addVar(lb=lb, ub=ub, name=name + "_local_copy")
        self._register_states([state], [local_copy], [initial_value])
        self._add_obj_uncertainty(state, 1, uncertainty, uncertainty_dependent)
        return state, local_copy

    def addVars(
            self,
            *indices,
            lb=0.0,
            ub=gurobipy.GRB.INFINITY,
            obj=0.0,
            vtype='C',
            name="",
            uncertainty=None,
            uncertainty_dependent=None
    ):
        """gurobipy addVars with uncertain objective coefficients of shape
        (n_samples, n_vars) or Markov state indices of length n_vars."""
        var = self._model.addVars(*indices, lb=lb, ub=ub, obj=obj,
            vtype=vtype, name=name)
        self._model.update()
        self._add_obj_uncertainty(tuple(var.values()), len(var),
            uncertainty, uncertainty_dependent)
        return var

    def addVar(
            self,
            lb=0.0,
            ub=gurobipy.GRB.INFINITY,
            obj=0.0,
            vtype='C',
            name="",
            column=None,
            uncertainty=None,
            uncertainty_dependent=None,
    ):
        """gurobipy addVar with an uncertain objective coefficient.

        Examples
        --------
        >>> thermal = model.addVar(ub=150, uncertainty=[50,100,150])
        >>> thermal = model.addVar(ub=150, uncertainty_dependent=1)
        """
        var = self._model.addVar(lb=lb, ub=ub, obj=obj, vtype=vtype,
            name=name, column=column)
        self._model.update()
        self._add_obj_uncertainty(var, 1, uncertainty, uncertainty_dependent)
        return var

    def addConstr(
            self,
            lhs,
            sense=None,
            rhs=None,
            name="",
            uncertainty=None,
            uncertainty_dependent=None,
    ):
        """gurobipy addConstr with uncertain RHS and coefficients.

        Parameters
        ----------
        uncertainty: dict, optional, default=None
            Scenarios keyed by 'rhs' or by the gurobipy.Var whose coefficient
            is uncertain.

        uncertainty_dependent: dict, optional, default=None
            Markov state vector indices, keyed the same way.

        Examples
        --------
        Inflow scenarios on the RHS of the water balance:

        >>> balance = model.addConstr(
        ...     volume - volume_in + hydro + spill == 0,
        ...     uncertainty={'rhs': [0, 50, 100]}
        ... )

        Inflow given by the first component of the Markov state:

        >>> balance = model.addConstr(
        ...     volume - volume_in + hydro + spill == 0,
        ...     uncertainty_dependent={'rhs': 0}
        ... )
        """
        if sense is None:
            constr = self._model.addConstr(lhs, name=name)
        else:
            # lhs is a linear expression, sense one of '<', '>', '='
            constr = self._model.addLConstr(lhs, sense, rhs, name=name)
        self._model.update()
        targets = []
        if uncertainty is not None:
            uncertainty = self._constraint_scenarios(uncertainty)
            targets.append(
                (uncertainty, self.uncertainty_coef, self.uncertainty_rhs))
        if uncertainty_dependent is not None:
            uncertainty_dependent = self._constraint_indices(
                uncertainty_dependent)
            targets.append((uncertainty_dependent,
                self.uncertainty_coef_dependent, self.uncertainty_rhs_dependent))
        for values, coef, rhs in targets:
            for key, value in values.items():
                if isinstance(key, gurobipy.Var):
                    if not any(key.sameAs(var) for var in self._model.getVars()):
                        raise ValueError("uncertain coefficient of a variable "
                            "outside the subproblem!")
                    coef[(constr, key)] = value
                elif isinstance(key, str) and key.lower() == "rhs":
                    rhs[constr] = value
                else:
                    raise ValueError("uncertainty keys must be 'rhs' or "
                        "variables, not {!r}!".format(key))
        return constr

    def addConstrs(
        self, generator, name="", uncertainty=None, uncertainty_dependent=None
    ):
        """gurobipy addConstrs with uncertain RHS of shape
        (n_samples, n_constrs). Constraints with uncertain coefficients are
        added one by one with addConstr.

        Examples
        --------
        >>> model.addConstrs(
        ...     (stored[i] - stored_in[i] + hydro[i] == 0 for i in range(2)),
        ...     uncertainty=[[10,20],[30,40]]
        ... )
        """
        constr = self._model.addConstrs(generator, name=name)
        self._model.update()
        key = tuple(constr.values())
        if uncertainty is not None:
            self.uncertainty_rhs[key] = self._block_scenarios(uncertainty,
                len(constr))
        if uncertainty_dependent is not None:
            self.uncertainty_rhs_dependent[key] = self._block_indices(
                uncertainty_dependent, len(constr))
        return constr

    def _set_attr(self, attr, key, value):
        if isinstance(key, tuple):
            # a block, possibly of one object
            if not isinstance(value, list):
                value = [value]
            self._model.setAttr(attr, list(key), value)
        else:
            key.setAttr(attr, value)

    def _update_uncertainty(self, k):
        """Set the k-th scenario"""
        for (constr, var), value in self.uncertainty_coef.items():
            self._model.chgCoeff(constr, var, value[k])
        for key, value in self.uncertainty_rhs.items():
            self._set_attr("RHS", key, value[k])
        for key, value in self.uncertainty_obj.items():
            self._set_attr("Obj", key, value[k])

    def _update_uncertainty_dependent(self, Markov_state):
        """Set the data that depends on the Markov state"""
        Markov_state = numpy.asarray(Markov_state)
        for (constr, var), index in self.uncertainty_coef_dependent.items():
            self._model.chgCoeff(constr, var, float(Markov_state[index]))
        for key, index in self.uncertainty_rhs_dependent.items():
            self._set_attr("RHS", key, Markov_state[index].tolist())
        for key, index in self.uncertainty_obj_dependent.items():
            self._set_attr("Obj", key, Markov_state[index].tolist())

    def _set_up_link_constrs(self):
        if self.link_constrs == []:
            self.link_constrs = list(
                self._model.addConstrs(
                    (var == var.lb for var in self.local_copies),
                    name="link_constrs",
                ).values()
            )
            # bounds of the local copies would take part of the duals
            for var in self.local_copies:
                var.lb = -gurobipy.GRB.INFINITY
                var.ub = gurobipy.GRB.INFINITY
            self._model.update()

    def _fix_initial_values(self):
        for var, value in zip(self.local_copies, self.initial_values):
            if value is not None:
                var.lb = value
                var.ub = value
        self._model.update()

    def _set_up_CTG(self, discount, bound):
        self.discount = discount
        if self.alpha is not None:
            return
        # alpha is bounded below for minimization, above for maximization
        if self.modelsense == 1:
            lb, ub = bound, gurobipy.GRB.INFINITY
        else:
            lb, ub = -gurobipy.GRB.INFINITY, bound
        self.alpha = self._model.addVar(lb=lb, ub=ub, obj=discount,
            name="alpha")
        self._model.update()
        self.value_function = ValueFunction(self, bound)

    def _update_link_constrs(self, incoming):
        self._model.setAttr("RHS", self.link_constrs, list(incoming))

    def _add_cut(self, rhs, gradient, iteration=None):
        return self.value_function.add(rhs, gradient, iteration)

    def _check_status(self, text):
        # optimal or suboptimal
        if self._model.status not in [2,11]:
            self.write_infeasible_model(text)

    def _solveLP(self):
        """Solve every scenario of the subproblem. Return the objective values
        and the dual values of the linking constraints."""
        values = numpy.empty(self.n_samples)
        duals = numpy.empty((self.n_samples, self.n_states))
        for k in range(self.n_samples):
            self._update_uncertainty(k)
            self.optimize()
            self._check_status("backward_" + str(self._model.modelName))
            values[k] = self.objVal
            duals[k] = self.getAttr("Pi", self.link_constrs)
        return values, duals

    def _average(self, values, duals, probability=None):
        """Aggregate scenario values and gradients by the risk measure of the
        node, under probability (by default the scenario probabilities)"""
        if probability is None:
            probability = self.scenario_probability
        return self.measure(values, duals, probability,
            self._model.modelSense)

    @property
    def scenario_probability(self):
        """The scenario probabilities as an array; uniform unless set by
        set_probability"""
        if self.probability is None:
            return numpy.full(self.n_samples, 1.0 / self.n_samples)
        return numpy.array(self.probability)

    def _outgoing_state(self):
        """The values of the state variables after a solve. Integer states are
        rounded and continuous ones clipped into their bounds."""
        values = []
        for var in self.states:
            if var.vtype in ('B', 'I'):
                values.append(int(round(var.X)))
            else:
                values.append(min(max(var.X, var.lb), var.ub))
        return values

    def set_probability(self, probability):
        """
        Set probability measure of discrete scenarios. Default is the uniform
        measure. The order must match the order of the scenario lists.

        Examples
        --------
        >>> newVar = model.addVar(ub=2.0, uncertainty=[1,2,3])
        >>> model.set_probability([0.2,0.3,0.5])
        """
        probability = [float(item) for item in probability]
        if len(probability) != self.n_samples:
            raise ValueError(
                "{} probabilities are given for {} scenarios!"
                .format(len(probability), self.n_samples)
            )
        if round(sum(probability), 4) != 1:
            raise ValueError("Probability does not sum to one!")
        self.probability = probability

    @property
    def stage_objective(self):
        """The stage cost of the last solve, i.e. the objective without the
        discounted cost-to-go"""
        if self.alpha is not None:
            return self.objVal - self.discount * self.alpha.X
        return self.objVal

    @property
    def controls(self):
        """Variables other than the states, local copies and alpha"""
        excluded = set(
            var.varName for var in self.states + self.local_copies
        )
        if self.alpha is not None:
            excluded.add(self.alpha.varName)
        return [
            var
            for var in self._model.getVars()
            if var.varName not in excluded
        ]

    @property
    def states_and_controls(self):
        return self.states + self.controls

    def get_cut_coeffs_and_rhs(self):
        """Coefficients and rhs of the cuts alpha - ax - by >= c (<= c if
        maximization) as {x.varName: [a1,a2], y.varName: [b1,b2],
        'rhs': [c1,c2]}"""
        return self.value_function.to_frame().to_dict(orient='list')

    def optimize(self):
        self._model.optimize()

    def write_infeasible_model(self, text):
        """Write the model (and its IIS if infeasible) to the working
        directory and raise InfeasibilityError."""
        status = self._model.status
        self._model.write('./' + text + ".lp")
        if status in [3, 4]:
            try:
                self._model.computeIIS()
                self._model.write('./' + text + ".ilp")
            except gurobipy.GurobiError as e:
                logger.warning("Cannot compute IIS of %s: %s", text, e)
        raise InfeasibilityError(self._model.modelName, status)
