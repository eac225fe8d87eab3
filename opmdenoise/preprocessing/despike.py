"""Removal of isolated spikes with a running median.

Samples whose deviation from the running median exceeds a multiple of the
robust (MAD based) standard deviation of the channel are replaced by the
median. Slow drifts and tones are left untouched as long as they vary
slowly on the scale of the median window.
"""

import logging

import numpy as np
from scipy import signal

from ._checks import ConfigurationError, check_data, check_int, check_positive
from ..utils.parallel import map_channels

logger = logging.getLogger(__name__)

# Scales the median absolute deviation to a Gaussian standard deviation
MAD_TO_STD = 1.4826


def running_median(x, window_size):
    """Running median with the window truncated at the edges of the signal.

    Parameters
    ----------
    x : ndarray, shape (n_samples,)
        Channel data.
    window_size : int
        Odd window length in samples.

    Returns
    -------
    ndarray, shape (n_samples,)
    """
    x = np.asarray(x, dtype=float)
    n_samples = len(x)
    half = window_size // 2

    if n_samples > window_size:
        out = signal.medfilt(x, window_size)
        # medfilt zero pads, recompute the edges over the samples available
        edges = list(range(half)) + list(range(n_samples - half, n_samples))
    else:
        out = np.empty_like(x)
        edges = range(n_samples)

    for ii in edges:
        out[ii] = np.median(x[max(ii - half, 0):ii + half + 1])
    return out


def _despike_channel(x, window_size, threshold):
    if len(x) == 0:
        return x.copy()

    median = running_median(x, window_size)
    residual = x - median

    mad = np.median(np.abs(residual - np.median(residual)))
    spikes = np.abs(residual) > threshold * MAD_TO_STD * mad

    out = x.copy()
    out[spikes] = median[spikes]
    return out


class MedianDespiker:
    """Replace outlying samples by their running median.

    Parameters
    ----------
    window_size : int
        Odd length (samples) of the running median, at least 3.
    threshold : float
        Number of robust standard deviations a sample must deviate from
        the running median to count as a spike.
    """

    def __init__(self, window_size=5, threshold=3.0):
        self.window_size = check_int(window_size, "window_size", minimum=3)
        if self.window_size % 2 == 0:
            raise ConfigurationError("window_size", "must be odd", window_size)
        self.threshold = float(check_positive(threshold, "threshold"))

    def __repr__(self):
        return "<MedianDespiker: window={0}, threshold={1}>".format(self.window_size, self.threshold)

    def apply(self, data, dask_client=False):
        """Despike every channel of a channel x sample array.

        Parameters
        ----------
        data : ndarray, shape (n_channels, n_samples)
            Data to clean. Not modified.
        dask_client : bool
            Map channels on a previously initialised dask client.

        Returns
        -------
        out : ndarray, shape (n_channels, n_samples)
            Despiked data.
        n_spikes : int
            Number of samples that were replaced.
        """
        data = check_data(data)
        logger.info("Median despiking, window {0}, threshold {1}".format(self.window_size, self.threshold))

        kwargs = {"window_size": self.window_size, "threshold": self.threshold}
        out = map_channels(_despike_channel, data, func_kwargs=kwargs, dask_client=dask_client)

        n_spikes = int(np.count_nonzero(out != data))
        logger.info("Replaced {0} spike samples".format(n_spikes))
        return out, n_spikes


def median_despike(data, window_size=5, threshold=3.0):
    """Despike data with a running median. See :py:class:`MedianDespiker`."""
    return MedianDespiker(window_size, threshold).apply(data)[0]
