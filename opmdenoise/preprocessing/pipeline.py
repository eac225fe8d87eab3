"""Dual-axis OPM denoising pipeline.

Raw recordings from the dual-axis system interleave the two sensing axes of
each sensor: row ``2i`` is sensor ``i`` along axis 0 (Z) and row ``2i + 1``
the same sensor along axis 1 (Y). A few sensors away from the head serve as
references for adaptive noise cancellation.
"""

import copy
import logging

import numpy as np
import yaml

from ._checks import ConfigurationError, check_data, check_sfreq
from .calibration import LockInCalibrator
from .diagnostics import Diagnostics, noise_reduction
from .hfc import HomogeneousFieldProjector, default_dual_axis_orientations
from .notch import CascadedNotchFilter, remove_line_noise
from .rls import RecursiveNoiseCanceller
from ..utils.opm import split_axis_orientations

logger = logging.getLogger(__name__)


DEFAULT_OPTIONS = {
    "axes": ("Z", "Y"),
    "ref_freqs": {"Z": 320.0, "Y": 240.0},
    "target_peaks": {"Z": 55600.0, "Y": 62400.0},
    "calibration": {"apply": True, "fir_order": 100, "lp_cutoff": 2.0, "min_amplitude": 0.01},
    "notch": {"apply": True, "bandwidth": 10.0, "order": 400, "cascade": 6},
    "ref_indices": [64, 65, 66],
    "rls": {"apply": True, "forgetting_factor": 0.995, "min_samples": 100, "init_scale": 1000.0},
    "hfc": {"apply": True, "eps": None},
    "line_freqs": [],
    "line_bandwidth": 2.0,
    "return_axis": "Z",
}


# --------------------------------------------------------------
# Channel layout helpers

def split_axes(data):
    """Split an interleaved dual-axis matrix into its two axes.

    Parameters
    ----------
    data : ndarray, shape (2 * n_sensors, n_samples)
        Interleaved data, axis 0 on even rows.

    Returns
    -------
    data_a, data_b : ndarray, shape (n_sensors, n_samples)
    """
    data = check_data(data)
    if data.shape[0] % 2:
        raise ConfigurationError("data", "must have an even number of rows (two axes per sensor)",
                                 "array with shape {0}".format(data.shape))
    return data[0::2].copy(), data[1::2].copy()


def interleave(data_a, data_b):
    """Merge two single-axis matrices so each sensor's axes are adjacent."""
    if data_a.shape != data_b.shape:
        raise ValueError("Axis shapes must match: {0} vs {1}".format(data_a.shape, data_b.shape))
    out = np.empty((2 * data_a.shape[0], data_a.shape[1]))
    out[0::2] = data_a
    out[1::2] = data_b
    return out


def baseline_correct(data):
    """Subtract each channel's first sample."""
    if data.shape[1] == 0:
        return data.copy()
    return data - data[:, :1]


def remove_dc(data):
    """Subtract each channel's mean."""
    if data.shape[1] == 0:
        return data.copy()
    return data - data.mean(axis=1, keepdims=True)


def select_axis(data, return_axis, axes=("Z", "Y")):
    """Pick the rows of an interleaved matrix belonging to one or both axes.

    Parameters
    ----------
    data : ndarray, shape (2 * n_sensors, n_samples)
        Interleaved data.
    return_axis : str
        One of ``axes`` or ``'both'`` (case insensitive).
    axes : tuple of str
        Names of axis 0 and axis 1.

    Returns
    -------
    ndarray
    """
    ret = str(return_axis).upper()
    if ret == "BOTH":
        return data.copy()
    names = [str(ax).upper() for ax in axes]
    if ret not in names:
        raise ConfigurationError("return_axis", "must be one of {0} or 'both'".format(list(axes)),
                                 return_axis)
    return data[names.index(ret)::2].copy()


# --------------------------------------------------------------
# Pipeline

def _merge_options(defaults, options):
    merged = copy.deepcopy(defaults)
    for key, value in options.items():
        if key not in merged:
            raise ConfigurationError(key, "unknown option, expected one of {0}".format(sorted(merged)),
                                     value)
        if isinstance(merged[key], dict) and key not in ("ref_freqs", "target_peaks"):
            if not isinstance(value, dict):
                raise ConfigurationError(key, "must be a dictionary of settings", value)
            for subkey in value:
                if subkey not in merged[key]:
                    raise ConfigurationError("{0}.{1}".format(key, subkey), "unknown setting",
                                             value[subkey])
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def _target_rows(sensors):
    """Raw rows of the given sensors, both axes, interleaved."""
    return np.array([[2 * ii, 2 * ii + 1] for ii in sensors], dtype=int).reshape(-1)


def _settings(options, key):
    """Stage settings without the on/off switch."""
    return {k: v for k, v in options[key].items() if k != "apply"}


class DualAxisPipeline:
    """Denoise a raw dual-axis OPM recording.

    The stages are: axis split and baseline correction, lock-in gain
    calibration per axis, cascaded notch of the calibration tones per axis,
    interleaving of the head sensors, RLS cancellation with the reference
    sensors of both axes, homogeneous field correction, an optional power
    line notch and finally selection of the requested axis.

    Parameters
    ----------
    **options
        Overrides of :py:data:`DEFAULT_OPTIONS`. Stage settings (``calibration``,
        ``notch``, ``rls``, ``hfc``) are merged key by key and each can be
        switched off with ``apply: False``.
    """

    def __init__(self, **options):
        self.options = _merge_options(DEFAULT_OPTIONS, options)
        opts = self.options

        axes = tuple(opts["axes"])
        if len(axes) != 2 or axes[0] == axes[1]:
            raise ConfigurationError("axes", "must name two distinct axes", opts["axes"])
        self.axes = axes

        for key in ("ref_freqs", "target_peaks"):
            missing = [ax for ax in axes if ax not in opts[key]]
            if missing:
                raise ConfigurationError(key, "missing a value for axis {0}".format(missing), opts[key])

        # Fail on a bad return axis before doing any work
        select_axis(np.zeros((2, 0)), opts["return_axis"], axes)

        self.calibrators = {}
        self.notches = {}
        for ax in axes:
            self.calibrators[ax] = LockInCalibrator(opts["ref_freqs"][ax], opts["target_peaks"][ax],
                                                    **_settings(opts, "calibration"))
            self.notches[ax] = CascadedNotchFilter(opts["ref_freqs"][ax], **_settings(opts, "notch"))
        self.canceller = RecursiveNoiseCanceller(**_settings(opts, "rls"))
        self.projector = HomogeneousFieldProjector(**_settings(opts, "hfc"))

    def __repr__(self):
        return "<DualAxisPipeline: axes={0}, refs={1}, return={2}>".format(
            self.axes, self.options["ref_indices"], self.options["return_axis"])

    @classmethod
    def from_config(cls, config):
        """Create a pipeline from a dict or a YAML string of options."""
        if isinstance(config, str):
            config = yaml.load(config, Loader=yaml.FullLoader)
        config = {} if config is None else dict(config)
        return cls(**config)

    def _check_refs(self, n_sensors):
        refs = list(self.options["ref_indices"] or [])
        for ii in refs:
            if isinstance(ii, bool) or not isinstance(ii, (int, np.integer)) or not 0 <= ii < n_sensors:
                raise ConfigurationError("ref_indices", "must be sensor indices in [0, {0})".format(n_sensors),
                                         self.options["ref_indices"])
        if len(set(refs)) != len(refs):
            raise ConfigurationError("ref_indices", "must not contain duplicates", refs)
        if len(refs) >= n_sensors:
            raise ConfigurationError("ref_indices", "must leave at least one head sensor", refs)
        return [int(ii) for ii in refs]

    def output_rows(self, n_channels):
        """Rows of the raw matrix that end up in the output, in output order.

        Parameters
        ----------
        n_channels : int
            Number of rows of the raw interleaved matrix.

        Returns
        -------
        ndarray of int
        """
        refs = self._check_refs(n_channels // 2)
        targets = [ii for ii in range(n_channels // 2) if ii not in refs]
        rows = _target_rows(targets)
        return select_axis(rows[:, None], self.options["return_axis"], self.axes)[:, 0]

    def _orientations(self, orientations, targets, n_rows):
        if orientations is None:
            return default_dual_axis_orientations(n_rows)
        if isinstance(orientations, (tuple, list)) and len(orientations) == 2:
            return orientations
        # Raw layout, one row per recorded channel
        orientations = np.asarray(orientations, dtype=float)
        return split_axis_orientations(orientations[_target_rows(targets)])

    def run(self, data, sfreq, orientations=None, diagnostics=None, dask_client=False):
        """Run the pipeline on a raw interleaved recording.

        Parameters
        ----------
        data : ndarray, shape (2 * n_sensors, n_samples)
            Raw data, axis 0 on even rows. Not modified.
        sfreq : float
            Sampling frequency in Hz.
        orientations : ndarray or tuple, optional
            Either per-row orientations of the raw data, shape
            (2 * n_sensors, 3), or a tuple ``(ori_a, ori_b)`` already matching
            the interleaved head sensor rows. Defaults to the instrument
            convention (axis 0 along z, axis 1 along y).
        diagnostics : :py:class:`Diagnostics <opmdenoise.preprocessing.diagnostics.Diagnostics>`, optional
            Record to append to. A new one is created if None.
        dask_client : bool
            Map the per-channel filters on a previously initialised dask client.

        Returns
        -------
        output : ndarray
            Denoised head sensors for the requested axis (both axes
            interleaved if ``return_axis='both'``).
        diagnostics : :py:class:`Diagnostics <opmdenoise.preprocessing.diagnostics.Diagnostics>`
        """
        opts = self.options
        diagnostics = Diagnostics() if diagnostics is None else diagnostics
        sfreq = check_sfreq(sfreq)

        axis_data = split_axes(data)
        n_sensors = axis_data[0].shape[0]
        refs = self._check_refs(n_sensors)
        targets = [ii for ii in range(n_sensors) if ii not in refs]

        logger.info("Dual-axis pipeline: {0} sensors ({1} references), {2} samples".format(
            n_sensors, len(refs), axis_data[0].shape[1]))

        axis_data = [baseline_correct(block) for block in axis_data]
        diagnostics.add_step("split_axes")

        if opts["calibration"]["apply"]:
            before = np.vstack(axis_data)
            axis_data = [self.calibrators[ax].apply(block, sfreq, diagnostics=diagnostics,
                                                    dask_client=dask_client)
                         for ax, block in zip(self.axes, axis_data)]
            diagnostics.add_step("calibration", noise_reduction(before, np.vstack(axis_data)))

        if opts["notch"]["apply"]:
            before = np.vstack(axis_data)
            axis_data = [self.notches[ax].apply(block, sfreq, diagnostics=diagnostics,
                                                dask_client=dask_client)
                         for ax, block in zip(self.axes, axis_data)]
            diagnostics.add_step("notch", noise_reduction(before, np.vstack(axis_data)))

        combined = interleave(axis_data[0][targets], axis_data[1][targets])
        ref_data = np.vstack([axis_data[0][refs], axis_data[1][refs]])
        diagnostics.add_step("interleave")

        if opts["rls"]["apply"]:
            combined, info = self.canceller.apply(combined, ref_data, diagnostics=diagnostics)
            diagnostics.add_step("rls", info["noise_reduction"])

        if opts["hfc"]["apply"]:
            ori_a, ori_b = self._orientations(orientations, targets, combined.shape[0])
            combined, info = self.projector.apply(combined, ori_a, ori_b, diagnostics=diagnostics)
            diagnostics.hfc_rank = info["rank"]
            diagnostics.add_step("hfc", info["noise_reduction"])

        if opts["line_freqs"]:
            before = combined
            combined = remove_line_noise(combined, sfreq, opts["line_freqs"],
                                         bandwidth=opts["line_bandwidth"], diagnostics=diagnostics)
            diagnostics.add_step("line_notch", noise_reduction(before, combined))

        output = select_axis(combined, opts["return_axis"], self.axes)
        diagnostics.add_step("select_axis")

        return output, diagnostics
