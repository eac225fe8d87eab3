#!/usr/bin/python

from . import opm_wrappers  # noqa: F401, F403

from ._checks import ConfigurationError  # noqa: F401, F403
from .calibration import LockInCalibrator, demodulate_amplitude  # noqa: F401, F403
from .despike import MedianDespiker, median_despike, running_median  # noqa: F401, F403
from .diagnostics import Diagnostics, noise_reduction, channel_noise_reduction  # noqa: F401, F403
from .hfc import HomogeneousFieldProjector, default_dual_axis_orientations  # noqa: F401, F403
from .notch import CascadedNotchFilter, remove_line_noise  # noqa: F401, F403
from .pipeline import *  # noqa: F401, F403
from .lms import LMSNoiseCanceller  # noqa: F401, F403
from .rls import RLSState, RecursiveNoiseCanceller  # noqa: F401, F403

from .batch import *  # noqa: F401, F403
