"""Readers for LabVIEW measurement (.lvm) recordings from the OPM system.

"""

import os

import numpy as np
import pandas as pd

# Housekeeping for logging
import logging
opm_logger = logging.getLogger(__name__)

END_OF_HEADER = '***End_of_Header***'

# Column layout of a dual-axis recording: time, 136 interleaved sensor
# columns (Z, Y, Z, Y, ...), sync and digital trigger.
DUAL_AXIS_NCOLS = 139


def _parse_header(lines):
    """Read the separator settings from the file header."""
    separator = '\t'
    decimal = '.'
    for line in lines:
        if line.startswith(END_OF_HEADER):
            break
        fields = line.rstrip('\r\n').split('\t')
        if fields[0] == 'Separator' and len(fields) > 1:
            separator = ',' if fields[1].strip() == 'Comma' else '\t'
        elif fields[0] == 'Decimal_Separator' and len(fields) > 1:
            decimal = fields[1].strip() or '.'
    return separator, decimal


def _is_numeric_row(line, separator, decimal):
    field = line.split(separator)[0].strip()
    if decimal != '.':
        field = field.replace(decimal, '.')
    try:
        float(field)
    except ValueError:
        return False
    return True


def read_lvm(fname):
    """Read the first data segment of an LVM file.

    Parameters
    ----------
    fname : str
        Path to the .lvm file.

    Returns
    -------
    data : ndarray, shape (n_columns, n_samples)
        The numeric columns of the first segment, one row per column. Empty
        trailing columns (e.g. the LabVIEW 'Comment' column) are dropped.
    """
    if not os.path.isfile(fname):
        raise FileNotFoundError("LVM file not found: {0}".format(fname))

    with open(fname, 'r') as f:
        lines = f.readlines()

    separator, decimal = _parse_header(lines)

    header_ends = [ii for ii, line in enumerate(lines) if line.startswith(END_OF_HEADER)]
    if len(header_ends) == 0:
        # Headerless export
        start = 0
    else:
        # File header is followed by a segment header
        start = header_ends[1] + 1 if len(header_ends) > 1 else header_ends[0] + 1

    # Skip blank lines and the column name row ('X_Value ...')
    while start < len(lines) and not _is_numeric_row(lines[start], separator, decimal):
        start += 1

    stop = start
    while stop < len(lines) and _is_numeric_row(lines[stop], separator, decimal):
        stop += 1

    if stop == start:
        raise ValueError("No data segments found in LVM file: {0}".format(fname))

    opm_logger.info("Reading {0} samples from {1}".format(stop - start, fname))

    df = pd.read_csv(fname, sep=separator, decimal=decimal, header=None,
                     skiprows=start, nrows=stop - start, skip_blank_lines=False)
    df = df.dropna(axis=1, how='all')

    return df.to_numpy(dtype=float).T


def load_opm_lvm(fname, gain=1e6, baseline=True):
    """Load a dual-axis OPM recording from an LVM file.

    Parameters
    ----------
    fname : str
        Path to the .lvm file.
    gain : float
        Conversion factor from recorded volts to field units.
    baseline : bool
        Subtract the first sample of every sensor column.

    Returns
    -------
    dict
        ``'data'``: ndarray (136, n_samples) of gain scaled sensor columns in
        the recorded interleaved order, ``'stim'``: baseline corrected sync
        channel, ``'trigger'``: digital trigger channel and ``'time'``.
    """
    columns = read_lvm(fname)

    if columns.shape[0] < DUAL_AXIS_NCOLS:
        raise ValueError(
            "Expected {0} columns for a dual-axis recording, got {1} in {2}".format(
                DUAL_AXIS_NCOLS, columns.shape[0], fname
            )
        )
    if columns.shape[0] > DUAL_AXIS_NCOLS:
        opm_logger.warning("Ignoring {0} extra columns in {1}".format(
            columns.shape[0] - DUAL_AXIS_NCOLS, fname))

    data = columns[1:137, :] * gain
    if baseline:
        data = data - data[:, :1]

    return {
        "data": data,
        "time": columns[0, :],
        "stim": columns[137, :] - columns[137, 0],
        "trigger": columns[138, :],
    }
