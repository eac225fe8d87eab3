"""Homogeneous field correction.

A spatially uniform field B adds ``O @ B`` to a sensor array with
orientations ``O``. Projecting the data onto the orthogonal complement of the
column space of the orientation matrix removes that component.
"""

import logging

import numpy as np

from ._checks import ConfigurationError, check_data, check_number
from .diagnostics import _warn, noise_reduction

logger = logging.getLogger(__name__)


def default_dual_axis_orientations(n_channels):
    """Orientations of an interleaved dual-axis array without a sensor file.

    Every channel is given axis A along z and axis B along y, which is the
    convention of the acquisition software.

    Parameters
    ----------
    n_channels : int
        Number of channels.

    Returns
    -------
    ori_a : ndarray, shape (n_channels, 3)
    ori_b : ndarray, shape (n_channels, 3)
    """
    ori_a = np.tile([0.0, 0.0, 1.0], (n_channels, 1))
    ori_b = np.tile([0.0, 1.0, 0.0], (n_channels, 1))
    return ori_a, ori_b


def _check_orientations(ori, n_channels, name):
    ori = np.asarray(ori, dtype=float)
    if ori.shape != (n_channels, 3):
        raise ConfigurationError(name, "must have shape ({0}, 3)".format(n_channels),
                                 "array with shape {0}".format(ori.shape))
    return ori


class HomogeneousFieldProjector:
    """Remove the homogeneous field seen along two sets of orientations.

    Parameters
    ----------
    eps : float, optional
        Relative tolerance used to determine the rank of the orientation
        matrix. Defaults to the float64 machine epsilon.
    """

    def __init__(self, eps=None):
        if eps is None:
            eps = np.finfo(float).eps
        check_number(eps, "eps")
        if eps < 0:
            raise ConfigurationError("eps", "must be non-negative", eps)
        self.eps = float(eps)

    def __repr__(self):
        return "<HomogeneousFieldProjector: eps={0}>".format(self.eps)

    def build(self, ori_a, ori_b):
        """Build the projector for a pair of orientation matrices.

        Parameters
        ----------
        ori_a : ndarray, shape (n_channels, 3)
            Orientation of each channel along the first axis.
        ori_b : ndarray, shape (n_channels, 3)
            Orientation of each channel along the second axis.

        Returns
        -------
        projector : ndarray, shape (n_channels, n_channels)
            ``I - U_r U_r^T``, identity if the rank is zero.
        rank : int
            Numerical rank of ``[ori_a, ori_b]``.
        """
        ori_a = np.asarray(ori_a, dtype=float)
        if ori_a.ndim != 2:
            raise ConfigurationError("ori_a", "must be a 2D (channels x 3) array",
                                     "array with shape {0}".format(ori_a.shape))
        n_channels = ori_a.shape[0]
        ori_a = _check_orientations(ori_a, n_channels, "ori_a")
        ori_b = _check_orientations(ori_b, n_channels, "ori_b")

        N = np.hstack([ori_a, ori_b])
        U, s, _ = np.linalg.svd(N, full_matrices=False)

        if s.size == 0 or s[0] == 0:
            return np.eye(n_channels), 0

        tol = max(N.shape) * self.eps * s[0]
        rank = int(np.sum(s > tol))

        Ur = U[:, :rank]
        return np.eye(n_channels) - Ur @ Ur.T, rank

    def apply(self, data, ori_a, ori_b, diagnostics=None):
        """Project the homogeneous field out of the data.

        Parameters
        ----------
        data : ndarray, shape (n_channels, n_samples)
            Data to correct. Not modified.
        ori_a : ndarray, shape (n_channels, 3)
            Orientation of each channel along the first axis.
        ori_b : ndarray, shape (n_channels, 3)
            Orientation of each channel along the second axis.
        diagnostics : :py:class:`Diagnostics <opmdenoise.preprocessing.diagnostics.Diagnostics>`
            Optional record for warnings.

        Returns
        -------
        data : ndarray, shape (n_channels, n_samples)
            Corrected data.
        info : dict
            ``'noise_reduction'`` (percent), ``'rank'`` and ``'projector'``.
        """
        data = check_data(data)
        ori_a = _check_orientations(ori_a, data.shape[0], "ori_a")
        ori_b = _check_orientations(ori_b, data.shape[0], "ori_b")

        projector, rank = self.build(ori_a, ori_b)
        logger.info("HFC orientation matrix rank: {0}".format(rank))

        if rank == 0:
            _warn(diagnostics, "hfc", "orientation matrix has rank 0, data passed through")
            return data.copy(), {"noise_reduction": 0.0, "rank": 0, "projector": projector}

        out = projector @ data
        info = {
            "noise_reduction": noise_reduction(data, out),
            "rank": rank,
            "projector": projector,
        }
        return out, info
