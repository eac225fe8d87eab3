"""Utility functions for handling OPM sensor geometry and MNE conversion.

"""

import numpy as np
import pandas as pd

import mne
from mne.io.constants import FIFF

# Housekeeping for logging
import logging
opm_logger = logging.getLogger(__name__)


# -------------------------------------------------------------
# %% Sensor orientations from tsv file

def read_sensor_tsv(tsv_file):
    """Read sensor names, locations and orientations from a tsv file.

    Parameters
    ----------
    tsv_file : str
        The tsv file containing the sensor locations and orientations.

    Returns
    -------
    dict
        ``'names'`` (list of str), ``'positions'`` and ``'orientations'``
        (ndarray, shape (n_channels, 3)) and ``'bads'`` (list of str).

    Notes
    -----
    The tsv file is assumed to contain a header row, and the following columns:
    name, type, unit, status, x, y, z, qx, qy, qz
    The x,y,z columns are the sensor locations in metres.
    The qx,qy,qz columns are the sensor orientations.
    """
    chan_info = pd.read_csv(tsv_file, header=None, skiprows=[0], sep='\t')

    if chan_info.shape[1] < 10:
        raise ValueError("Expected at least 10 columns in {0}, got {1}".format(
            tsv_file, chan_info.shape[1]))

    names = chan_info.iloc[:, 0].astype(str).tolist()
    status = chan_info.iloc[:, 3].astype(str).to_numpy()
    positions = chan_info.iloc[:, 4:7].to_numpy(dtype=float)
    orientations = chan_info.iloc[:, 7:10].to_numpy(dtype=float)

    bads = [name for name, st in zip(names, status) if st == 'bad']
    opm_logger.info("Read {0} sensors ({1} bad) from {2}".format(len(names), len(bads), tsv_file))

    return {
        "names": names,
        "positions": positions,
        "orientations": orientations,
        "bads": bads,
    }


def split_axis_orientations(orientations):
    """Split interleaved per-channel orientations into the two sensing axes.

    Parameters
    ----------
    orientations : ndarray, shape (n_channels, 3)
        Orientations of an interleaved dual-axis channel set (axis A on even
        rows, axis B on odd rows).

    Returns
    -------
    orientations_a, orientations_b : ndarray, shape (n_channels, 3)
        Each channel's axis A and axis B direction. The two rows of a sensor
        share both directions.
    """
    orientations = np.asarray(orientations, dtype=float)
    if orientations.ndim != 2 or orientations.shape[1] != 3 or orientations.shape[0] % 2:
        raise ValueError("orientations must have shape (2 * n_sensors, 3), got {0}".format(
            orientations.shape))
    ori_a = np.repeat(orientations[0::2], 2, axis=0)
    ori_b = np.repeat(orientations[1::2], 2, axis=0)
    return ori_a, ori_b


# -------------------------------------------------------------
# %% MNE conversion

def _orientation_to_loc(pos, ori):
    """Build an MNE 12 element channel loc with its z-axis along ori."""
    loc = np.zeros(12)
    loc[:3] = pos
    norm = np.linalg.norm(ori)
    if norm == 0:
        return loc

    ez = np.asarray(ori, dtype=float) / norm
    # Any vector not parallel to ez seeds the in-plane axes
    seed = np.array([1.0, 0.0, 0.0]) if abs(ez[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    ex = np.cross(seed, ez)
    ex /= np.linalg.norm(ex)
    ey = np.cross(ez, ex)

    loc[3:6] = ex
    loc[6:9] = ey
    loc[9:12] = ez
    return loc


def make_opm_info(ch_names, sfreq, orientations=None, positions=None):
    """Create an MNE info for point magnetometers.

    Parameters
    ----------
    ch_names : list of str
        Channel names.
    sfreq : float
        Sampling frequency in Hz.
    orientations : ndarray, shape (n_channels, 3), optional
        Sensing direction of each channel.
    positions : ndarray, shape (n_channels, 3), optional
        Sensor locations in metres.

    Returns
    -------
    info : :py:class:`mne.Info <mne.Info>`
    """
    n_channels = len(ch_names)
    info = mne.create_info(ch_names=list(ch_names), ch_types='mag', sfreq=sfreq)

    if positions is None:
        positions = np.zeros((n_channels, 3))
    if orientations is None:
        orientations = np.zeros((n_channels, 3))

    for cc in range(n_channels):
        info['chs'][cc]['loc'] = _orientation_to_loc(positions[cc], orientations[cc])
        info['chs'][cc]['coil_type'] = FIFF.FIFFV_COIL_POINT_MAGNETOMETER

    return info


def orientations_from_info(info, picks='mag'):
    """Read channel orientations back from an MNE info.

    Parameters
    ----------
    info : :py:class:`mne.Info <mne.Info>`
    picks : str
        Channel types to pick.

    Returns
    -------
    ndarray, shape (n_picked, 3)
    """
    chinds = mne.pick_types(info, meg=picks, ref_meg=False, exclude=[])
    return np.array([info['chs'][ii]['loc'][9:12] for ii in chinds])


def to_raw(data, sfreq, orientations=None, positions=None, ch_names=None, scale=1e-15):
    """Wrap a channel x sample array in an MNE RawArray.

    Parameters
    ----------
    data : ndarray, shape (n_channels, n_samples)
        Data in recording units.
    sfreq : float
        Sampling frequency in Hz.
    orientations : ndarray, shape (n_channels, 3), optional
        Sensing direction of each channel.
    positions : ndarray, shape (n_channels, 3), optional
        Sensor locations in metres.
    ch_names : list of str, optional
        Channel names. Defaults to ``OPM001``, ``OPM002``...
    scale : float
        Factor converting recording units to Tesla (default fT -> T).

    Returns
    -------
    raw : :py:class:`mne.io.RawArray <mne.io.RawArray>`
    """
    data = np.asarray(data, dtype=float)
    if ch_names is None:
        ch_names = ['OPM{0:03d}'.format(ii + 1) for ii in range(data.shape[0])]

    info = make_opm_info(ch_names, sfreq, orientations=orientations, positions=positions)
    return mne.io.RawArray(data * scale, info, verbose=False)
