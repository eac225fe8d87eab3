"""Argument validation shared by the denoising stages.

"""

import numpy as np


class ConfigurationError(ValueError):
    """Invalid or inconsistent parameters passed to a denoising stage.

    Parameters
    ----------
    param : str
        Name of the offending parameter.
    constraint : str
        The constraint that was violated.
    value : object
        The value that was passed.
    """

    def __init__(self, param, constraint, value=None):
        self.param = param
        self.constraint = constraint
        self.value = value
        super().__init__("Invalid {0}={1!r}: {2}".format(param, value, constraint))


def check_number(value, name):
    """Raise a ConfigurationError naming ``name`` if value is not a real number."""
    if isinstance(value, (bool, str, bytes)) or value is None:
        raise ConfigurationError(name, "must be a number", value)
    try:
        scalar = np.ndim(value) == 0
        finite = scalar and bool(np.isfinite(value))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(name, "must be a number", value) from e
    if not scalar:
        raise ConfigurationError(name, "must be a number", value)
    if not finite:
        raise ConfigurationError(name, "must be finite", value)
    return value


def check_sfreq(sfreq):
    check_number(sfreq, "sfreq")
    if sfreq <= 0:
        raise ConfigurationError("sfreq", "sampling rate must be positive", sfreq)
    return float(sfreq)


def check_positive(value, name):
    check_number(value, name)
    if value <= 0:
        raise ConfigurationError(name, "must be positive", value)
    return value


def check_int(value, name, minimum=None, even=False):
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ConfigurationError(name, "must be an integer", value)
    if minimum is not None and value < minimum:
        raise ConfigurationError(name, "must be >= {0}".format(minimum), value)
    if even and value % 2 != 0:
        raise ConfigurationError(name, "must be even", value)
    return int(value)


def check_data(data, name="data"):
    """Return data as a float64 2D array without modifying the input."""
    data = np.asarray(data, dtype=float)
    if data.ndim != 2:
        raise ConfigurationError(name, "must be a 2D (channels x samples) array",
                                 "array with shape {0}".format(data.shape))
    return data
