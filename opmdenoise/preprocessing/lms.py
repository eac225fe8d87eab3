"""Adaptive reference noise cancellation with least mean squares.

A cheaper alternative to :py:mod:`opmdenoise.preprocessing.rls`. Each target
channel is predicted from a tapped delay line of every reference channel
and the prediction error, which is the cleaned signal, drives a stochastic
gradient update of the taps.
"""

import logging

import numpy as np

from ._checks import ConfigurationError, check_data, check_int, check_positive
from .diagnostics import _warn, noise_reduction

logger = logging.getLogger(__name__)


class LMSNoiseCanceller:
    """Subtract reference sensor noise from target channels with LMS.

    The first ``filter_order - 1`` samples, for which the delay line is not
    yet full, are passed through unchanged.

    Parameters
    ----------
    step_size : float
        Adaptation step size (mu).
    filter_order : int
        Number of taps per reference channel.
    normalized : bool
        Divide the step by the power of the regressor (NLMS). Makes the step
        size independent of the signal scale.
    """

    def __init__(self, step_size=0.01, filter_order=10, normalized=False):
        self.step_size = float(check_positive(step_size, "step_size"))
        self.filter_order = check_int(filter_order, "filter_order", minimum=1)
        self.normalized = bool(normalized)

    def __repr__(self):
        return "<LMSNoiseCanceller: mu={0}, order={1}{2}>".format(
            self.step_size, self.filter_order, ", normalized" if self.normalized else "")

    def _regressor(self, refs, tt):
        # Most recent sample first, references stacked one after another
        return refs[:, tt - self.filter_order + 1:tt + 1][:, ::-1].ravel()

    def apply(self, targets, refs, diagnostics=None):
        """Clean target channels using reference channels.

        Parameters
        ----------
        targets : ndarray, shape (n_targets, n_samples)
            Channels to clean. Not modified.
        refs : ndarray, shape (n_refs, n_samples)
            Reference channels.
        diagnostics : :py:class:`Diagnostics <opmdenoise.preprocessing.diagnostics.Diagnostics>`
            Optional record for warnings.

        Returns
        -------
        residual : ndarray, shape (n_targets, n_samples)
            Cleaned data.
        info : dict
            ``'noise_reduction'`` (percent), ``'coefficients'`` (final taps,
            shape (filter_order, n_refs, n_targets)) and ``'n_warmup'``.
        """
        targets = check_data(targets, "targets")
        refs = check_data(refs, "refs")
        n_refs, n_samples = refs.shape

        if targets.shape[1] != n_samples:
            raise ConfigurationError(
                "refs", "must have as many samples as targets ({0})".format(targets.shape[1]),
                "array with shape {0}".format(refs.shape))
        if self.filter_order > n_samples:
            raise ConfigurationError(
                "filter_order", "cannot exceed the number of samples ({0})".format(n_samples),
                self.filter_order)

        logger.info("LMS with {0} references on {1} channels, mu={2}, order={3}".format(
            n_refs, targets.shape[0], self.step_size, self.filter_order))

        weights = np.zeros((self.filter_order * n_refs, targets.shape[0]))
        residual = targets.copy()
        n_warmup = self.filter_order - 1

        for tt in range(n_warmup, n_samples):
            x = self._regressor(refs, tt)
            e = targets[:, tt] - weights.T @ x
            mu = self.step_size
            if self.normalized:
                mu = mu / (np.finfo(float).eps + x @ x)
            weights += mu * np.outer(x, e)
            residual[:, tt] = e

        if not np.all(np.isfinite(residual)):
            _warn(diagnostics, "lms", "adaptation diverged, reduce step_size or use normalized=True")

        info = {
            "noise_reduction": noise_reduction(targets, residual),
            "coefficients": weights.reshape(n_refs, self.filter_order, -1).transpose(1, 0, 2),
            "n_warmup": n_warmup,
        }
        return residual, info
