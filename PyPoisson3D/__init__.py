import jax
# import external libraries

jax.config.update("jax_enable_x64", True)
jax.config.update('jax_platform_name', 'cpu')

from . import boundaryconditions
from . import lattice
from . import relaxation
from . import errors
from . import utils
from . import initialization
from . import plotting
