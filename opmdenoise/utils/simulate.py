"""Utility functions for simulating OPM recordings.

"""

import numpy as np


def simulate_tone_data(n_channels, n_samples, sfreq, freq, amplitude=1.0,
                       noise_std=0.0, phase=None, seed=None):
    """Simulate channels containing a sinusoid plus white noise.

    Parameters
    ----------
    n_channels : int
        The number of channels to simulate.
    n_samples : int
        The number of samples to simulate.
    sfreq : float
        Sampling frequency in Hz.
    freq : float
        Tone frequency in Hz.
    amplitude : float or array_like
        Tone peak amplitude, scalar or one value per channel.
    noise_std : float
        Standard deviation of the additive white noise.
    phase : array_like, optional
        Phase of the tone in each channel (radians). Random if None.
    seed : int, optional
        Seed for the random generator.

    Returns
    -------
    Y : ndarray, shape (n_channels, n_samples)
        The simulated data.
    """
    rng = np.random.default_rng(seed)
    t = np.arange(n_samples) / sfreq

    if phase is None:
        phase = rng.uniform(0, 2 * np.pi, n_channels)
    phase = np.broadcast_to(np.asarray(phase, dtype=float), (n_channels,))
    amplitude = np.broadcast_to(np.asarray(amplitude, dtype=float), (n_channels,))

    Y = amplitude[:, None] * np.sin(2 * np.pi * freq * t[None, :] + phase[:, None])
    if noise_std > 0:
        Y += rng.standard_normal((n_channels, n_samples)) * noise_std

    return Y


def simulate_reference_noise(n_targets, n_refs, n_samples, weights=None,
                             bias=0.0, noise_std=0.1, seed=None):
    """Simulate target channels driven linearly by reference channels.

    Parameters
    ----------
    n_targets : int
        The number of target channels.
    n_refs : int
        The number of reference channels.
    n_samples : int
        The number of samples to simulate.
    weights : ndarray, shape (n_refs, n_targets), optional
        Mixing weights from references to targets. Random if None.
    bias : float
        Constant offset added to every target.
    noise_std : float
        Standard deviation of the independent noise on each target.
    seed : int, optional
        Seed for the random generator.

    Returns
    -------
    targets : ndarray, shape (n_targets, n_samples)
    refs : ndarray, shape (n_refs, n_samples)
    weights : ndarray, shape (n_refs, n_targets)
    """
    rng = np.random.default_rng(seed)

    refs = rng.standard_normal((n_refs, n_samples))
    if weights is None:
        weights = rng.uniform(-3, 3, (n_refs, n_targets))
    weights = np.asarray(weights, dtype=float).reshape(n_refs, n_targets)

    targets = weights.T @ refs + bias
    targets += rng.standard_normal((n_targets, n_samples)) * noise_std

    return targets, refs, weights


def simulate_dual_axis_recording(n_sensors=8, n_refs=3, sfreq=4800, duration=2.0,
                                 axes=('Z', 'Y'), ref_freqs=None, tone_amplitudes=None,
                                 signal_freq=17.0, signal_amplitude=50.0,
                                 interference_amplitude=2000.0, noise_std=20.0,
                                 seed=None):
    """Simulate a raw dual-axis OPM recording.

    Rows follow the recorded layout: each sensor contributes two adjacent
    rows (axis 0 then axis 1); head sensors come first and reference sensors
    last. Every channel carries its axis' calibration tone, a homogeneous
    low-frequency interference common to all sensors of an axis and white
    noise. Head sensors also carry a focal signal.

    Parameters
    ----------
    n_sensors : int
        The number of head sensors.
    n_refs : int
        The number of reference sensors.
    sfreq : float
        Sampling frequency in Hz.
    duration : float
        Length of the recording in seconds.
    axes : tuple of str
        Names of the two sensing axes.
    ref_freqs : dict, optional
        Calibration tone frequency per axis. Defaults to Z: 320 Hz, Y: 240 Hz.
    tone_amplitudes : dict, optional
        Calibration tone amplitude per axis. Defaults to Z: 55600, Y: 62400.
    signal_freq : float
        Frequency of the focal signal.
    signal_amplitude : float
        Peak amplitude of the focal signal.
    interference_amplitude : float
        Peak amplitude of the homogeneous interference.
    noise_std : float
        Standard deviation of the sensor noise.
    seed : int, optional
        Seed for the random generator.

    Returns
    -------
    dict
        ``'data'`` (ndarray, shape (2 * (n_sensors + n_refs), n_samples)),
        ``'sfreq'``, ``'ref_indices'`` (per-axis indices of the reference
        sensors), ``'signal'`` (the focal signal time course) and
        ``'interference'`` (the homogeneous interference per axis).
    """
    if ref_freqs is None:
        ref_freqs = {'Z': 320.0, 'Y': 240.0}
    if tone_amplitudes is None:
        tone_amplitudes = {'Z': 55600.0, 'Y': 62400.0}

    rng = np.random.default_rng(seed)
    n_samples = int(round(duration * sfreq))
    t = np.arange(n_samples) / sfreq
    n_total = n_sensors + n_refs

    signal = signal_amplitude * np.sin(2 * np.pi * signal_freq * t)

    data = np.zeros((2 * n_total, n_samples))
    interference = {}
    for aa, axis in enumerate(axes):
        # Slow drift plus mains hum, identical across sensors
        hum = np.sin(2 * np.pi * 50 * t + rng.uniform(0, 2 * np.pi))
        drift = np.sin(2 * np.pi * 1.3 * t + rng.uniform(0, 2 * np.pi))
        interference[axis] = interference_amplitude * (drift + 0.5 * hum)

        tones = simulate_tone_data(n_total, n_samples, sfreq, ref_freqs[axis],
                                   amplitude=tone_amplitudes[axis],
                                   noise_std=noise_std, seed=rng.integers(2**32))
        rows = np.arange(n_total) * 2 + aa
        data[rows] = tones + interference[axis]
        data[rows[:n_sensors]] += signal * rng.uniform(0.5, 1.0, n_sensors)[:, None]

    return {
        "data": data,
        "sfreq": sfreq,
        "ref_indices": list(range(n_sensors, n_total)),
        "signal": signal,
        "interference": interference,
    }
