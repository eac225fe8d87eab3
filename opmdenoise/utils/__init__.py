#!/usr/bin/python

from . import logger  # noqa: F401, F403
from . import simulate  # noqa: F401, F403
from .file_handling import *  # noqa: F401, F403
from .lvm import read_lvm, load_opm_lvm  # noqa: F401, F403
from .opm import *  # noqa: F401, F403
from .parallel import dask_parallel_bag, map_channels  # noqa: F401, F403
from .simulate import *  # noqa: F401, F403
from .version_utils import check_version  # noqa: F401, F403
