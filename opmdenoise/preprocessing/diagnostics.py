"""Summary statistics and warnings collected while denoising.

"""

import logging

import numpy as np

logger = logging.getLogger(__name__)


def noise_reduction(before, after):
    """Aggregate noise reduction between two channel x sample arrays.

    Computed as ``100 * (1 - mean(var(after)) / mean(var(before)))`` where the
    variance is taken over samples for each channel.

    Parameters
    ----------
    before : ndarray, shape (n_channels, n_samples)
        Data before the stage.
    after : ndarray, shape (n_channels, n_samples)
        Data after the stage.

    Returns
    -------
    float
        Percentage reduction in mean channel variance. Zero if the input has
        no variance.
    """
    if before.shape[1] < 2:
        return 0.0
    power_before = np.mean(np.var(before, axis=1, ddof=1))
    power_after = np.mean(np.var(after, axis=1, ddof=1))
    if power_before == 0:
        return 0.0
    return float(100 * (1 - power_after / power_before))


def channel_noise_reduction(before, after):
    """Noise reduction per channel based on mean square power.

    Parameters
    ----------
    before : ndarray, shape (n_channels, n_samples)
        Data before filtering.
    after : ndarray, shape (n_channels, n_samples)
        Data after filtering.

    Returns
    -------
    reduction : ndarray, shape (n_channels,)
        ``100 * (1 - power_after / power_before)`` per channel, zero for
        channels with no power before filtering.
    """
    if before.shape != after.shape:
        raise ValueError("Shapes must match: before={0}, after={1}".format(
            before.shape, after.shape))

    power_before = np.mean(before ** 2, axis=1)
    power_after = np.mean(after ** 2, axis=1)

    reduction = np.zeros(before.shape[0])
    good = power_before > 0
    reduction[good] = 100 * (1 - power_after[good] / power_before[good])

    if np.any(~good):
        logger.warning("{0} channel(s) have zero power before filtering".format(np.sum(~good)))
    if np.any(reduction < 0):
        logger.warning("{0} channel(s) show negative noise reduction: {1}".format(
            np.sum(reduction < 0), np.where(reduction < 0)[0].tolist()))

    return reduction


class Diagnostics:
    """Record of what a denoising run did.

    Attributes
    ----------
    noise_reduction : dict
        Percentage noise reduction keyed by stage name.
    warnings : list of str
        Every skip or fallback that was triggered, prefixed with its stage.
    steps : list of str
        Names of the stages that ran, in order.
    hfc_rank : int or None
        Rank of the orientation matrix used by the HFC projection.
    """

    def __init__(self):
        self.noise_reduction = {}
        self.warnings = []
        self.steps = []
        self.hfc_rank = None

    def __repr__(self):
        return "<Diagnostics: {0} steps, {1} warnings>".format(len(self.steps), len(self.warnings))

    def add_step(self, stage, reduction=None):
        self.steps.append(stage)
        if reduction is not None:
            self.noise_reduction[stage] = float(reduction)
            logger.info("{0} noise reduction: {1:.1f}%".format(stage, reduction))

    def warn(self, stage, msg):
        msg = "{0}: {1}".format(stage, msg)
        logger.warning(msg)
        self.warnings.append(msg)

    def to_dict(self):
        return {
            "steps": list(self.steps),
            "noise_reduction": dict(self.noise_reduction),
            "warnings": list(self.warnings),
            "hfc_rank": self.hfc_rank,
        }


def _warn(diagnostics, stage, msg):
    """Log a warning and record it if a diagnostics object was passed."""
    if diagnostics is None:
        logger.warning("{0}: {1}".format(stage, msg))
    else:
        diagnostics.warn(stage, msg)
