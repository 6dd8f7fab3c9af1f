import unittest

from . import boundaryconditions_test
from . import errors_test
from . import experiment_test
from . import initialization_test
from . import lattice_test
from . import main_test
from . import plotting_test
from . import relaxation_test
from . import utils_test
