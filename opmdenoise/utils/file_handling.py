"""File handling utility functions.

"""

import os
import csv
import glob
import pathlib
import numpy as np

# Housekeeping for logging
import logging
opm_logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ('.lvm', '.npy', '.fif')


def process_file_inputs(inputs):
    """Process inputs for several cases

    The argument, inputs, can be...
    1) string path to a text file listing inputs (optionally ``path,run_id``)
    2) string path to file or glob expression matching files
    3) list of string paths to files
    4) list of tuples with path to file and output name pairs

    Returns
    -------
    infiles : list of str
        Input file paths.
    outnames : list of str
        Run IDs used to name the outputs.
    good_files : list of int
        1 for each input that exists, 0 otherwise.
    """

    infiles = []
    outnames = []

    if isinstance(inputs, pathlib.Path):
        inputs = str(inputs)

    if isinstance(inputs, str):
        if os.path.splitext(inputs)[1] in ('.txt', '.csv') and os.path.isfile(inputs):
            infiles, outnames = _load_unicode_inputs(inputs)
        else:
            # ...else we have a single path or glob expression
            infiles = sorted(glob.glob(inputs)) or [sanitise_filepath(inputs)]
            outnames = [find_run_id(f) for f in infiles]

    elif isinstance(inputs, (list, tuple)):
        if len(inputs) == 0:
            raise ValueError("inputs is an empty list!")
        for row in inputs:
            if isinstance(row, pathlib.Path):
                row = str(row)
            if isinstance(row, str):
                infiles.append(sanitise_filepath(row))
                outnames.append(find_run_id(infiles[-1]))
            elif isinstance(row, (list, tuple)):
                # We have a file and output name pair
                infiles.append(sanitise_filepath(str(row[0])))
                outnames.append(row[1])
            else:
                raise ValueError("Input type is invalid: {0}".format(type(row)))
    else:
        raise ValueError("Input type is invalid")

    # Check that files actually exist
    good_files = [int(os.path.isfile(f)) for f in infiles]
    for fname, good in zip(infiles, good_files):
        if good == 0:
            opm_logger.warning('Input file not found: {0}'.format(fname))

    if np.all(good_files):
        opm_logger.info('{0} files to be processed.'.format(len(infiles)))
    else:
        opm_logger.warning('{0} of {1} input files not found'.format(np.sum(np.array(good_files) == 0), len(infiles)))

    return infiles, outnames, good_files


def sanitise_filepath(fname):
    """Remove leading/trailing whitespace, tab, newline and carriage return
    characters."""
    return fname.strip(' \t\n\r')


def _load_unicode_inputs(fname):
    checked_files = []
    outnames = []
    opm_logger.info("loading inputs from : {0}".format(fname))
    with open(fname, 'r') as f:
        for row in csv.reader(f, delimiter=","):
            if len(row) == 0 or len(row[0].strip()) == 0:
                continue
            infile = sanitise_filepath(row[0])
            checked_files.append(infile)
            if len(row) > 1:
                outnames.append(sanitise_filepath(row[1]))
            else:
                outnames.append(find_run_id(infile))
    return checked_files, outnames


def find_run_id(infile):
    """Get a run ID from a file name by stripping the directory and extension.

    Parameters
    ----------
    infile : str
        Path to an input recording.

    Returns
    -------
    str
        Run ID, e.g. ``'data_1'`` for ``'/data/Mission1/data_1.lvm'``.
    """
    infile = str(infile)
    base = os.path.basename(infile)
    if os.path.splitext(base)[1] in SUPPORTED_EXTENSIONS:
        return os.path.splitext(base)[0]
    # Strip to the left of the dot and hope for the best...
    return base.split('.')[0]


def validate_outdir(outdir):
    """Checks if an output directory exists and if not creates it."""

    outdir = pathlib.Path(outdir)
    if outdir.exists():
        # Check outdir is a directory
        if not outdir.is_dir():
            raise ValueError("outdir must be the path to a directory.")

        # Check we have write permission
        if not os.access(outdir, os.W_OK):
            raise PermissionError("No write access for {0}".format(outdir))
    else:
        # Output directory doesn't exist
        if outdir.parent.exists():
            # Parent exists, make the output directory
            outdir.mkdir()
        else:
            # Parent doesn't exist
            raise ValueError(
                "Please create the parent directory: {0}".format(outdir.parent)
            )

    return outdir
