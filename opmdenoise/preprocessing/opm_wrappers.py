"""Batch wrappers for the OPM denoising stages.

Every wrapper takes a dataset dict and a dict of user arguments from the
``preproc`` section of a config and returns the dataset, modified in place.
A dataset holds the keys ``'data'`` (channels x samples), ``'sfreq'``,
``'stim'``, ``'trigger'``, ``'ch_names'``, ``'orientations'`` (one row per
channel of ``'data'``, or None) and ``'diagnostics'``.
"""

import logging

import numpy as np

from .calibration import LockInCalibrator
from .despike import MedianDespiker
from .diagnostics import Diagnostics, noise_reduction
from .hfc import HomogeneousFieldProjector, default_dual_axis_orientations
from .notch import CascadedNotchFilter, remove_line_noise
from .pipeline import DualAxisPipeline, baseline_correct, remove_dc, select_axis
from .lms import LMSNoiseCanceller
from .rls import RecursiveNoiseCanceller
from ._checks import ConfigurationError
from ..utils.opm import split_axis_orientations

logger = logging.getLogger(__name__)


# --------------------------------------------------------------
# Dataset helpers

def _diagnostics(dataset):
    if dataset.get("diagnostics") is None:
        dataset["diagnostics"] = Diagnostics()
    return dataset["diagnostics"]


def _axis_rows(n_channels, axis):
    """Rows of an interleaved matrix belonging to axis 0, axis 1 or both."""
    if axis is None:
        return np.arange(n_channels)
    if axis not in (0, 1):
        raise ConfigurationError("axis", "must be 0, 1 or None", axis)
    return np.arange(axis, n_channels, 2)


def _keep_rows(dataset, rows):
    """Keep the channel bookkeeping in step with a row selection of the data."""
    rows = np.asarray(rows, dtype=int)
    if dataset.get("orientations") is not None:
        dataset["orientations"] = np.asarray(dataset["orientations"])[rows]
    if dataset.get("ch_names") is not None:
        dataset["ch_names"] = [dataset["ch_names"][ii] for ii in rows]
    return dataset


def _apply_to_rows(dataset, func, axis):
    rows = _axis_rows(dataset["data"].shape[0], axis)
    before = dataset["data"]
    out = before.copy()
    out[rows] = func(before[rows])
    dataset["data"] = out
    return noise_reduction(before[rows], out[rows])


def _split_ref_rows(n_channels, ref_rows):
    """Validate reference rows and return them with the remaining rows."""
    ref_rows = [int(ii) for ii in ref_rows]
    if any(ii < 0 or ii >= n_channels for ii in ref_rows):
        raise ConfigurationError("ref_rows", "must be rows in [0, {0})".format(n_channels), ref_rows)
    return ref_rows, [ii for ii in range(n_channels) if ii not in ref_rows]


# --------------------------------------------------------------
# OPM stage wrappers

def run_opm_baseline(dataset, userargs):
    """OPM-Batch wrapper subtracting the first sample of every channel.

    Parameters
    ----------
    dataset : dict
        Dictionary containing at least ``'data'``.
    userargs : dict
        No arguments are used.

    Returns
    -------
    dataset : dict
        Input dictionary with ``'data'`` replaced.
    """
    target = userargs.pop("target", "data")
    logger.info("OPM Stage - {0} : {1}".format(target, "baseline_correct"))
    logger.info("userargs: {0}".format(str(userargs)))
    dataset["data"] = baseline_correct(dataset["data"])
    _diagnostics(dataset).add_step("baseline")
    return dataset


def run_opm_remove_dc(dataset, userargs):
    """OPM-Batch wrapper subtracting the mean of every channel."""
    target = userargs.pop("target", "data")
    logger.info("OPM Stage - {0} : {1}".format(target, "remove_dc"))
    logger.info("userargs: {0}".format(str(userargs)))
    dataset["data"] = remove_dc(dataset["data"])
    _diagnostics(dataset).add_step("remove_dc")
    return dataset


def run_opm_calibrate(dataset, userargs):
    """OPM-Batch wrapper for :py:class:`LockInCalibrator <opmdenoise.preprocessing.calibration.LockInCalibrator>`.

    Parameters
    ----------
    dataset : dict
        Dictionary containing at least ``'data'`` and ``'sfreq'``.
    userargs : dict
        ``ref_freq`` and ``target_peak`` plus optional ``fir_order``,
        ``lp_cutoff``, ``min_amplitude``, ``axis`` (0 or 1 to only calibrate
        even or odd rows) and ``dask_client``.

    Returns
    -------
    dataset : dict
        Input dictionary with ``'data'`` replaced.
    """
    target = userargs.pop("target", "data")
    logger.info("OPM Stage - {0} : {1}".format(target, "calibrate"))
    logger.info("userargs: {0}".format(str(userargs)))
    axis = userargs.pop("axis", None)
    dask_client = userargs.pop("dask_client", False)

    diagnostics = _diagnostics(dataset)
    calibrator = LockInCalibrator(**userargs)
    reduction = _apply_to_rows(
        dataset,
        lambda x: calibrator.apply(x, dataset["sfreq"], diagnostics=diagnostics, dask_client=dask_client),
        axis,
    )
    diagnostics.add_step("calibration", reduction)
    return dataset


def run_opm_deep_notch(dataset, userargs):
    """OPM-Batch wrapper for :py:class:`CascadedNotchFilter <opmdenoise.preprocessing.notch.CascadedNotchFilter>`.

    Parameters
    ----------
    dataset : dict
        Dictionary containing at least ``'data'`` and ``'sfreq'``.
    userargs : dict
        ``freqs`` plus optional ``bandwidth``, ``order``, ``cascade``,
        ``axis`` and ``dask_client``.

    Returns
    -------
    dataset : dict
        Input dictionary with ``'data'`` replaced.
    """
    target = userargs.pop("target", "data")
    logger.info("OPM Stage - {0} : {1}".format(target, "deep_notch"))
    logger.info("userargs: {0}".format(str(userargs)))
    axis = userargs.pop("axis", None)
    dask_client = userargs.pop("dask_client", False)

    diagnostics = _diagnostics(dataset)
    notch = CascadedNotchFilter(**userargs)
    reduction = _apply_to_rows(
        dataset,
        lambda x: notch.apply(x, dataset["sfreq"], diagnostics=diagnostics, dask_client=dask_client),
        axis,
    )
    diagnostics.add_step("notch", reduction)
    return dataset


def run_opm_despike(dataset, userargs):
    """OPM-Batch wrapper for :py:class:`MedianDespiker <opmdenoise.preprocessing.despike.MedianDespiker>`.

    Parameters
    ----------
    dataset : dict
        Dictionary containing at least ``'data'``.
    userargs : dict
        Optional ``window_size``, ``threshold``, ``axis`` and ``dask_client``.

    Returns
    -------
    dataset : dict
        Input dictionary with ``'data'`` replaced.
    """
    target = userargs.pop("target", "data")
    logger.info("OPM Stage - {0} : {1}".format(target, "despike"))
    logger.info("userargs: {0}".format(str(userargs)))
    axis = userargs.pop("axis", None)
    dask_client = userargs.pop("dask_client", False)

    despiker = MedianDespiker(**userargs)
    reduction = _apply_to_rows(dataset, lambda x: despiker.apply(x, dask_client=dask_client)[0], axis)
    _diagnostics(dataset).add_step("despike", reduction)
    return dataset


def run_opm_rls(dataset, userargs):
    """OPM-Batch wrapper for :py:class:`RecursiveNoiseCanceller <opmdenoise.preprocessing.rls.RecursiveNoiseCanceller>`.

    The reference rows are removed from the data after cancellation.

    Parameters
    ----------
    dataset : dict
        Dictionary containing at least ``'data'``.
    userargs : dict
        ``ref_rows`` (rows of ``'data'`` used as references) plus optional
        ``forgetting_factor``, ``min_samples`` and ``init_scale``.

    Returns
    -------
    dataset : dict
        Input dictionary with ``'data'`` replaced by the cleaned targets.
    """
    target = userargs.pop("target", "data")
    logger.info("OPM Stage - {0} : {1}".format(target, "rls"))
    logger.info("userargs: {0}".format(str(userargs)))
    ref_rows, targets = _split_ref_rows(dataset["data"].shape[0], userargs.pop("ref_rows"))

    diagnostics = _diagnostics(dataset)
    canceller = RecursiveNoiseCanceller(**userargs)
    residual, info = canceller.apply(dataset["data"][targets], dataset["data"][ref_rows],
                                     diagnostics=diagnostics)

    dataset["data"] = residual
    _keep_rows(dataset, targets)
    diagnostics.add_step("rls", info["noise_reduction"])
    return dataset


def run_opm_lms(dataset, userargs):
    """OPM-Batch wrapper for :py:class:`LMSNoiseCanceller <opmdenoise.preprocessing.lms.LMSNoiseCanceller>`.

    The reference rows are removed from the data after cancellation.

    Parameters
    ----------
    dataset : dict
        Dictionary containing at least ``'data'``.
    userargs : dict
        ``ref_rows`` (rows of ``'data'`` used as references) plus optional
        ``step_size``, ``filter_order`` and ``normalized``.

    Returns
    -------
    dataset : dict
        Input dictionary with ``'data'`` replaced by the cleaned targets.
    """
    target = userargs.pop("target", "data")
    logger.info("OPM Stage - {0} : {1}".format(target, "lms"))
    logger.info("userargs: {0}".format(str(userargs)))
    ref_rows, targets = _split_ref_rows(dataset["data"].shape[0], userargs.pop("ref_rows"))

    diagnostics = _diagnostics(dataset)
    canceller = LMSNoiseCanceller(**userargs)
    residual, info = canceller.apply(dataset["data"][targets], dataset["data"][ref_rows],
                                     diagnostics=diagnostics)

    dataset["data"] = residual
    _keep_rows(dataset, targets)
    diagnostics.add_step("lms", info["noise_reduction"])
    return dataset


def run_opm_hfc(dataset, userargs):
    """OPM-Batch wrapper for :py:class:`HomogeneousFieldProjector <opmdenoise.preprocessing.hfc.HomogeneousFieldProjector>`.

    Orientations are taken from ``dataset['orientations']`` (interleaved
    axis 0 / axis 1 rows), or the instrument convention if missing.

    Parameters
    ----------
    dataset : dict
        Dictionary containing at least ``'data'``.
    userargs : dict
        Optional ``eps``.

    Returns
    -------
    dataset : dict
        Input dictionary with ``'data'`` replaced.
    """
    target = userargs.pop("target", "data")
    logger.info("OPM Stage - {0} : {1}".format(target, "hfc"))
    logger.info("userargs: {0}".format(str(userargs)))

    if dataset.get("orientations") is None:
        ori_a, ori_b = default_dual_axis_orientations(dataset["data"].shape[0])
    else:
        ori_a, ori_b = split_axis_orientations(dataset["orientations"])

    diagnostics = _diagnostics(dataset)
    dataset["data"], info = HomogeneousFieldProjector(**userargs).apply(
        dataset["data"], ori_a, ori_b, diagnostics=diagnostics)
    diagnostics.hfc_rank = info["rank"]
    diagnostics.add_step("hfc", info["noise_reduction"])
    return dataset


def run_opm_line_notch(dataset, userargs):
    """OPM-Batch wrapper for :py:func:`remove_line_noise <opmdenoise.preprocessing.notch.remove_line_noise>`.

    Parameters
    ----------
    dataset : dict
        Dictionary containing at least ``'data'`` and ``'sfreq'``.
    userargs : dict
        ``freqs`` plus optional ``bandwidth``.

    Returns
    -------
    dataset : dict
        Input dictionary with ``'data'`` replaced.
    """
    target = userargs.pop("target", "data")
    logger.info("OPM Stage - {0} : {1}".format(target, "line_notch"))
    logger.info("userargs: {0}".format(str(userargs)))

    diagnostics = _diagnostics(dataset)
    before = dataset["data"]
    dataset["data"] = remove_line_noise(before, dataset["sfreq"], diagnostics=diagnostics, **userargs)
    diagnostics.add_step("line_notch", noise_reduction(before, dataset["data"]))
    return dataset


def run_opm_select_axis(dataset, userargs):
    """OPM-Batch wrapper keeping the rows of one axis of an interleaved matrix.

    Parameters
    ----------
    dataset : dict
        Dictionary containing at least ``'data'``.
    userargs : dict
        ``return_axis`` and optional ``axes`` (default ``['Z', 'Y']``).

    Returns
    -------
    dataset : dict
        Input dictionary with ``'data'`` replaced.
    """
    target = userargs.pop("target", "data")
    logger.info("OPM Stage - {0} : {1}".format(target, "select_axis"))
    logger.info("userargs: {0}".format(str(userargs)))
    return_axis = userargs.pop("return_axis")
    axes = tuple(userargs.pop("axes", ("Z", "Y")))

    rows = np.arange(dataset["data"].shape[0])
    rows = select_axis(rows[:, None], return_axis, axes)[:, 0]
    dataset["data"] = dataset["data"][rows]
    _keep_rows(dataset, rows)
    _diagnostics(dataset).add_step("select_axis")
    return dataset


def run_opm_dual_axis(dataset, userargs):
    """OPM-Batch wrapper for :py:class:`DualAxisPipeline <opmdenoise.preprocessing.pipeline.DualAxisPipeline>`.

    Parameters
    ----------
    dataset : dict
        Dictionary containing at least the raw interleaved ``'data'`` and
        ``'sfreq'``.
    userargs : dict
        Pipeline options, plus optional ``dask_client``.

    Returns
    -------
    dataset : dict
        Input dictionary with ``'data'`` replaced by the denoised head
        sensors.
    """
    target = userargs.pop("target", "data")
    logger.info("OPM Stage - {0} : {1}".format(target, "dual_axis"))
    logger.info("userargs: {0}".format(str(userargs)))
    dask_client = userargs.pop("dask_client", False)

    pipeline = DualAxisPipeline(**userargs)
    n_channels = dataset["data"].shape[0]
    dataset["data"], dataset["diagnostics"] = pipeline.run(
        dataset["data"],
        dataset["sfreq"],
        orientations=dataset.get("orientations"),
        diagnostics=_diagnostics(dataset),
        dask_client=dask_client,
    )
    _keep_rows(dataset, pipeline.output_rows(n_channels))
    return dataset
