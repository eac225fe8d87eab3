"""Notch filters for calibration tones and line noise.

"""

import logging

import numpy as np
from scipy import signal

from ._checks import ConfigurationError, check_data, check_int, check_positive, check_sfreq
from .diagnostics import _warn
from ..utils.parallel import map_channels

logger = logging.getLogger(__name__)

# Limits on the normalised band-stop edges
EDGE_MIN = 0.001
EDGE_MAX = 0.999


def _filtfilt_channel(x, b, a, n_passes=1):
    """Zero-phase filter a channel ``n_passes`` times in sequence."""
    padlen = min(3 * max(len(a), len(b)), len(x) - 1)
    for _ in range(n_passes):
        x = signal.filtfilt(b, a, x, padlen=padlen)
    return x


def design_bandstop(freq, sfreq, bandwidth, order):
    """Design a linear-phase FIR band-stop centred on ``freq``.

    Parameters
    ----------
    freq : float
        Centre frequency in Hz.
    sfreq : float
        Sampling frequency in Hz.
    bandwidth : float
        Width of the stop band in Hz.
    order : int
        Filter order, must be even.

    Returns
    -------
    b : ndarray or None
        Filter coefficients, None if the normalised stop band collapses.
    """
    nyq = sfreq / 2
    low = np.clip((freq - bandwidth / 2) / nyq, EDGE_MIN, EDGE_MAX)
    high = np.clip((freq + bandwidth / 2) / nyq, EDGE_MIN, EDGE_MAX)
    if low >= high:
        return None
    return signal.firwin(order + 1, [low, high], pass_zero='bandstop')


class CascadedNotchFilter:
    """Deep suppression of narrow-band tones by repeated FIR band-stops.

    Parameters
    ----------
    freqs : float or list of float
        Frequencies (Hz) to remove.
    bandwidth : float
        Width of each stop band in Hz.
    order : int
        Even FIR order, the filter has ``order + 1`` taps.
    cascade : int
        Number of zero-phase passes of each band-stop.
    """

    def __init__(self, freqs, bandwidth=10.0, order=400, cascade=6):
        self.freqs = [check_positive(ff, "freqs") for ff in np.atleast_1d(freqs)]
        self.bandwidth = check_positive(bandwidth, "bandwidth")
        self.order = check_int(order, "order", minimum=2, even=True)
        self.cascade = check_int(cascade, "cascade", minimum=1)

    def __repr__(self):
        return "<CascadedNotchFilter: {0} Hz x{1}>".format(self.freqs, self.cascade)

    def apply(self, data, sfreq, diagnostics=None, dask_client=False):
        """Notch every channel at each configured frequency.

        Parameters
        ----------
        data : ndarray, shape (n_channels, n_samples)
            Data to filter. Not modified.
        sfreq : float
            Sampling frequency in Hz.
        diagnostics : :py:class:`Diagnostics <opmdenoise.preprocessing.diagnostics.Diagnostics>`
            Optional record of skipped frequencies.
        dask_client : bool
            Map channels on a previously initialised dask client.

        Returns
        -------
        ndarray, shape (n_channels, n_samples)
            Filtered data.
        """
        data = check_data(data)
        sfreq = check_sfreq(sfreq)
        nyq = sfreq / 2

        if data.shape[1] < 2:
            _warn(diagnostics, "notch", "fewer than 2 samples, data returned unfiltered")
            return data.copy()

        out = data.copy()
        for freq in self.freqs:
            if freq >= nyq:
                _warn(diagnostics, "notch",
                      "{0} Hz is at or above Nyquist ({1} Hz), skipped".format(freq, nyq))
                continue

            try:
                b = design_bandstop(freq, sfreq, self.bandwidth, self.order)
            except ValueError as e:
                _warn(diagnostics, "notch", "filter design failed at {0} Hz ({1}), skipped".format(freq, e))
                continue
            if b is None:
                _warn(diagnostics, "notch", "empty stop band at {0} Hz, skipped".format(freq))
                continue

            logger.info("Notch at {0} Hz, {1} Hz wide, order {2}, {3} passes".format(
                freq, self.bandwidth, self.order, self.cascade))
            kwargs = {"b": b, "a": np.ones(1), "n_passes": self.cascade}
            out = map_channels(_filtfilt_channel, out, func_kwargs=kwargs, dask_client=dask_client)

        return out


def remove_line_noise(data, sfreq, freqs, bandwidth=2.0, diagnostics=None):
    """Remove power line noise with 2nd order IIR notches.

    Parameters
    ----------
    data : ndarray, shape (n_channels, n_samples)
        Data to filter. Not modified.
    sfreq : float
        Sampling frequency in Hz.
    freqs : float or list of float
        Line frequencies (and harmonics) to remove.
    bandwidth : float
        -3 dB width of each notch in Hz.
    diagnostics : :py:class:`Diagnostics <opmdenoise.preprocessing.diagnostics.Diagnostics>`
        Optional record of skipped frequencies.

    Returns
    -------
    ndarray, shape (n_channels, n_samples)
        Filtered data.
    """
    data = check_data(data)
    sfreq = check_sfreq(sfreq)
    check_positive(bandwidth, "bandwidth")
    nyq = sfreq / 2

    out = data.copy()
    if out.shape[1] < 2:
        return out

    for freq in np.atleast_1d(freqs):
        check_positive(freq, "line_freqs")
        if freq >= nyq:
            _warn(diagnostics, "line_notch",
                  "{0} Hz is at or above Nyquist ({1} Hz), skipped".format(freq, nyq))
            continue
        b, a = signal.iirnotch(freq, freq / bandwidth, fs=sfreq)
        logger.info("Line notch at {0} Hz".format(freq))
        out = map_channels(_filtfilt_channel, out, func_kwargs={"b": b, "a": a})

    return out
