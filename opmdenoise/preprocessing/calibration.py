"""Real-time gain calibration of OPM sensors by lock-in demodulation.

Each OPM sensor is driven by an internal coil at a known reference frequency
(240 Hz on the Y axis, 320 Hz on the Z axis for the dual-axis system). The
amplitude of that tone is tracked with a digital lock-in amplifier and used to
rescale the recording so that the tone sits at a fixed target amplitude,
compensating slow gain drift of the sensor.
"""

import logging

import numpy as np
from scipy import signal

from ._checks import ConfigurationError, check_data, check_int, check_positive, check_sfreq
from .diagnostics import _warn
from ..utils.parallel import map_channels

logger = logging.getLogger(__name__)

# Bounds on the gain correction factor
GAIN_MIN = 0.1
GAIN_MAX = 10.0

# Half width (Hz) of the band-pass around the reference tone
BANDPASS_HALF_WIDTH = 5.0


def design_bandpass(sfreq, ref_freq, fir_order, half_width=BANDPASS_HALF_WIDTH):
    """Design the FIR band-pass isolating the reference tone.

    Parameters
    ----------
    sfreq : float
        Sampling frequency in Hz.
    ref_freq : float
        Reference tone frequency in Hz.
    fir_order : int
        Filter order, the filter has ``fir_order + 1`` taps.
    half_width : float
        Half width of the pass band in Hz.

    Returns
    -------
    b : ndarray, shape (fir_order + 1,)
        Filter coefficients, unit gain at the pass band centre.

    Raises
    ------
    ValueError
        If the clipped band edges are degenerate.
    """
    cutoff = np.array([ref_freq - half_width, ref_freq + half_width])
    cutoff = np.clip(cutoff, 1, sfreq / 2 - 1)
    return signal.firwin(fir_order + 1, cutoff, pass_zero=False, fs=sfreq)


def design_lowpass(sfreq, lp_cutoff):
    """2nd order Butterworth low-pass used to smooth the demodulated signal."""
    wn = min(lp_cutoff / (sfreq / 2), 0.99)
    return signal.butter(2, wn)


def _reference_waves(n_samples, sfreq, freq):
    t = np.arange(n_samples) / sfreq
    return np.sin(2 * np.pi * freq * t), np.cos(2 * np.pi * freq * t)


def _envelope(x, b_bp, b_lp, a_lp, ref_sin, ref_cos):
    """Lock-in amplitude of the reference tone in a single channel."""
    filtered = signal.lfilter(b_bp, 1.0, x)
    padlen = min(3 * max(len(a_lp), len(b_lp)), len(x) - 1)

    # IQ demodulation, then keep the DC part of each product
    in_phase = signal.filtfilt(b_lp, a_lp, filtered * ref_sin, padlen=padlen)
    quadrature = signal.filtfilt(b_lp, a_lp, filtered * ref_cos, padlen=padlen)

    return 2 * np.sqrt(in_phase ** 2 + quadrature ** 2)


def _calibrate_channel(x, b_bp, b_lp, a_lp, ref_sin, ref_cos, target_peak, floor, delay):
    amplitude = _envelope(x, b_bp, b_lp, a_lp, ref_sin, ref_cos)

    gain = target_peak / np.maximum(amplitude, floor)
    gain = np.clip(gain, GAIN_MIN, GAIN_MAX)

    # Undo the band-pass group delay; the tail repeats the last factor
    if 0 < delay < len(gain):
        gain = np.concatenate([gain[delay:], np.full(delay, gain[-1])])

    out = x * gain
    return out - out[0]


def demodulate_amplitude(x, sfreq, freq, fir_order=100, lp_cutoff=2.0):
    """Estimate the amplitude envelope of a tone in a single channel.

    Parameters
    ----------
    x : ndarray, shape (n_samples,)
        Channel data.
    sfreq : float
        Sampling frequency in Hz.
    freq : float
        Frequency of the tone in Hz.
    fir_order : int
        Order of the band-pass isolating the tone.
    lp_cutoff : float
        Cut-off of the envelope smoother in Hz.

    Returns
    -------
    amplitude : ndarray, shape (n_samples,)
        Peak amplitude of the tone at each sample. The first ``fir_order``
        samples are affected by the band-pass start-up. Zero for
        fewer than 2 samples.
    """
    x = np.asarray(x, dtype=float)
    sfreq = check_sfreq(sfreq)
    if len(x) < 2:
        return np.zeros_like(x)
    b_bp = design_bandpass(sfreq, freq, fir_order)
    b_lp, a_lp = design_lowpass(sfreq, lp_cutoff)
    ref_sin, ref_cos = _reference_waves(len(x), sfreq, freq)
    return _envelope(x, b_bp, b_lp, a_lp, ref_sin, ref_cos)


class LockInCalibrator:
    """Rescale channels so their reference tone matches a target amplitude.

    Parameters
    ----------
    ref_freq : float
        Frequency of the calibration tone in Hz.
    target_peak : float
        Amplitude the tone should have after calibration.
    fir_order : int
        Order of the FIR band-pass isolating the tone. Half of it is the
        group delay compensated for.
    lp_cutoff : float
        Cut-off (Hz) of the low-pass smoothing the demodulated signal.
    min_amplitude : float
        Floor on the measured amplitude, as a fraction of ``target_peak``.
    """

    def __init__(self, ref_freq, target_peak, fir_order=100, lp_cutoff=2.0, min_amplitude=0.01):
        self.ref_freq = check_positive(ref_freq, "ref_freq")
        self.target_peak = check_positive(target_peak, "target_peak")
        self.fir_order = check_int(fir_order, "fir_order", minimum=1)
        self.lp_cutoff = check_positive(lp_cutoff, "lp_cutoff")
        self.min_amplitude = check_positive(min_amplitude, "min_amplitude")

    def __repr__(self):
        return "<LockInCalibrator: {0} Hz -> {1}>".format(self.ref_freq, self.target_peak)

    def apply(self, data, sfreq, diagnostics=None, dask_client=False):
        """Calibrate every channel of a channel x sample array.

        Parameters
        ----------
        data : ndarray, shape (n_channels, n_samples)
            Raw data. Not modified.
        sfreq : float
            Sampling frequency in Hz.
        diagnostics : :py:class:`Diagnostics <opmdenoise.preprocessing.diagnostics.Diagnostics>`
            Optional record for fallback warnings.
        dask_client : bool
            Map channels on a previously initialised dask client.

        Returns
        -------
        ndarray, shape (n_channels, n_samples)
            Calibrated data, each channel re-baselined to start at zero.
        """
        data = check_data(data)
        sfreq = check_sfreq(sfreq)
        if self.ref_freq >= sfreq / 2:
            raise ConfigurationError(
                "ref_freq", "must be below the Nyquist frequency ({0} Hz)".format(sfreq / 2),
                self.ref_freq)

        if data.shape[1] < 2:
            _warn(diagnostics, "calibration", "fewer than 2 samples, data returned uncalibrated")
            return data.copy()

        logger.info("Lock-in calibration at {0} Hz, target peak {1}".format(self.ref_freq, self.target_peak))

        try:
            b_bp = design_bandpass(sfreq, self.ref_freq, self.fir_order)
        except ValueError as e:
            _warn(diagnostics, "calibration",
                  "band-pass design failed at {0} Hz ({1}), using moving average".format(self.ref_freq, e))
            b_bp = np.ones(self.fir_order + 1) / (self.fir_order + 1)

        b_lp, a_lp = design_lowpass(sfreq, self.lp_cutoff)
        ref_sin, ref_cos = _reference_waves(data.shape[1], sfreq, self.ref_freq)

        kwargs = {
            "b_bp": b_bp,
            "b_lp": b_lp,
            "a_lp": a_lp,
            "ref_sin": ref_sin,
            "ref_cos": ref_cos,
            "target_peak": self.target_peak,
            "floor": self.min_amplitude * self.target_peak,
            "delay": self.fir_order // 2,
        }
        return map_channels(_calibrate_channel, data, func_kwargs=kwargs, dask_client=dask_client)
