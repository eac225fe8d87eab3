"""Adaptive reference noise cancellation with recursive least squares.

Reference sensors placed away from the head see the environmental field but
not the brain. Their contribution to each head sensor is tracked with an
exponentially weighted RLS regression (plus an intercept) and subtracted
sample by sample.
"""

import logging

import numpy as np

from ._checks import ConfigurationError, check_data, check_int, check_number, check_positive
from .diagnostics import _warn, noise_reduction

logger = logging.getLogger(__name__)


class RLSState:
    """Coefficients and inverse correlation matrix of an RLS regression.

    All target channels share the regressors, and therefore ``P``.

    Parameters
    ----------
    n_refs : int
        Number of reference channels.
    n_targets : int
        Number of target channels.
    forgetting_factor : float
        Exponential forgetting factor, in (0, 1).
    init_scale : float
        ``P`` is reset to ``init_scale * I`` when the state is initialised.

    Attributes
    ----------
    coef : ndarray, shape (n_refs + 1, n_targets)
        Regression coefficients, intercept first.
    P : ndarray, shape (n_refs + 1, n_refs + 1)
        Inverse correlation matrix.
    """

    def __init__(self, n_refs, n_targets, forgetting_factor=0.995, init_scale=1000.0):
        self.n_refs = n_refs
        self.n_targets = n_targets
        self.forgetting_factor = forgetting_factor
        self.init_scale = init_scale

        self.coef = np.zeros((n_refs + 1, n_targets))
        self.P = init_scale * np.eye(n_refs + 1)

    def __repr__(self):
        return "<RLSState: {0} refs -> {1} targets>".format(self.n_refs, self.n_targets)

    def initialise(self, ref_window, target_window):
        """Initialise the coefficients by least squares over a window.

        Parameters
        ----------
        ref_window : ndarray, shape (n_refs, n_window)
            Reference data.
        target_window : ndarray, shape (n_targets, n_window)
            Target data.

        Returns
        -------
        rank : int
            Rank of the regressor matrix. The minimum-norm solution is used
            when it is below ``n_refs + 1``.
        """
        X = np.vstack([np.ones(ref_window.shape[1]), ref_window]).T
        coef, _, rank, _ = np.linalg.lstsq(X, target_window.T, rcond=None)
        self.coef = coef
        self.P = self.init_scale * np.eye(self.n_refs + 1)
        return int(rank)

    def advance(self, ref_sample, target_sample):
        """Update with one sample and return the cleaned target sample."""
        x = np.concatenate([[1.0], ref_sample])
        lam = self.forgetting_factor

        Px = self.P @ x
        k = Px / (lam + x @ Px)
        e = target_sample - self.coef.T @ x

        self.coef += np.outer(k, e)
        self.P = (self.P - np.outer(k, x @ self.P)) / lam

        return target_sample - self.coef.T @ x


class RecursiveNoiseCanceller:
    """Subtract reference sensor noise from target channels.

    The first ``min_samples - 1`` samples are passed through unchanged. At
    sample ``min_samples - 1`` the regression is initialised by least squares
    over the first ``min_samples`` samples and every sample from there on is
    cleaned adaptively.

    Parameters
    ----------
    forgetting_factor : float
        Exponential forgetting factor, in (0, 1).
    min_samples : int
        Length of the least squares warm-up window.
    init_scale : float
        Initial scale of the inverse correlation matrix.
    """

    def __init__(self, forgetting_factor=0.995, min_samples=100, init_scale=1000.0):
        check_number(forgetting_factor, "forgetting_factor")
        if not 0 < forgetting_factor < 1:
            raise ConfigurationError("forgetting_factor", "must be in the open interval (0, 1)",
                                     forgetting_factor)
        self.forgetting_factor = float(forgetting_factor)
        self.min_samples = check_int(min_samples, "min_samples", minimum=1)
        self.init_scale = check_positive(init_scale, "init_scale")

    def __repr__(self):
        return "<RecursiveNoiseCanceller: lambda={0}, warm-up={1}>".format(
            self.forgetting_factor, self.min_samples)

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
            ``'noise_reduction'`` (percent), ``'coefficients'`` (final
            coefficients, shape (n_refs + 1, n_targets)) and ``'n_warmup'``
            (number of samples passed through).
        """
        targets = check_data(targets, "targets")
        refs = check_data(refs, "refs")
        n_refs, n_samples = refs.shape

        if targets.shape[1] != n_samples:
            raise ConfigurationError(
                "refs", "must have as many samples as targets ({0})".format(targets.shape[1]),
                "array with shape {0}".format(refs.shape))
        if self.min_samples < n_refs + 1:
            raise ConfigurationError(
                "min_samples", "must be at least n_refs + 1 ({0})".format(n_refs + 1),
                self.min_samples)

        logger.info("RLS with {0} references on {1} channels, lambda={2}".format(
            n_refs, targets.shape[0], self.forgetting_factor))

        state = RLSState(n_refs, targets.shape[0], self.forgetting_factor, self.init_scale)
        residual = targets.copy()

        if self.min_samples > n_samples:
            _warn(diagnostics, "rls",
                  "min_samples={0} exceeds the {1} available samples, data passed through".format(
                      self.min_samples, n_samples))
            n_warmup = n_samples
        else:
            n_warmup = self.min_samples - 1
            rank = state.initialise(refs[:, :self.min_samples], targets[:, :self.min_samples])
            if rank < n_refs + 1:
                _warn(diagnostics, "rls",
                      "warm-up regressors are rank deficient ({0} < {1}), "
                      "using minimum-norm solution".format(rank, n_refs + 1))

            for tt in range(n_warmup, n_samples):
                residual[:, tt] = state.advance(refs[:, tt], targets[:, tt])

        info = {
            "noise_reduction": noise_reduction(targets, residual),
            "coefficients": state.coef,
            "n_warmup": n_warmup,
        }
        return residual, info
