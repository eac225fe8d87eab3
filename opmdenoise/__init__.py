#!/usr/bin/python

# --------------------------------------------------------
# If user hasn't configured NumExpr environment the an irritating low-level log
# is generated. We supress it by setting a default value of 8 if not already
# set.
#
# https://numexpr.readthedocs.io/projects/NumExpr3/en/latest/user_guide.html#threadpool-configuration

import os
if 'NUMEXPR_MAX_THREADS' not in os.environ:
    os.environ['NUMEXPR_MAX_THREADS'] = '8'

# Some modules are chatty by default when a logger is on - set log-levels to
# WARNING on setup
import logging
logging.getLogger("asyncio").setLevel(logging.WARNING)
logging.getLogger("distributed").setLevel(logging.WARNING)

# --------------------------------------------------------
# Main importing - set module structure here

from . import utils  # noqa: F401, F403
from . import preprocessing  # noqa: F401, F403

# --------------------------------------------------------
opm_logger = logging.getLogger(__name__)
opm_logger.debug('opmdenoise main init complete')

# --------------------------------------------------------
__version__ = '0.1.0'
