#!/usr/bin/env python

"""Tools for batch denoising of OPM recordings.

"""

import argparse
import os
import sys
import pprint
import traceback
import logging
from pathlib import Path
from copy import deepcopy
from functools import partial, wraps
from time import localtime, strftime
from datetime import datetime

import mne
import numpy as np
import yaml

from . import opm_wrappers
from .diagnostics import Diagnostics
from ..utils import find_run_id, validate_outdir, process_file_inputs
from ..utils import logger as opm_logger
from ..utils.lvm import load_opm_lvm
from ..utils.opm import orientations_from_info, read_sensor_tsv, to_raw
from ..utils.parallel import dask_parallel_bag
from ..utils.version_utils import check_version

logger = logging.getLogger(__name__)

# Recorded field units (fT) per Tesla
FT_PER_T = 1e15


default_config = """
meta:
  sfreq: 4800
  gain: 1.0e+6
preproc:
  - dual_axis:
      axes: [Z, Y]
      ref_freqs: {Z: 320, Y: 240}
      target_peaks: {Z: 55600, Y: 62400}
      calibration: {apply: true, fir_order: 100, lp_cutoff: 2.0, min_amplitude: 0.01}
      notch: {apply: true, bandwidth: 10.0, order: 400, cascade: 6}
      ref_indices: [64, 65, 66]
      rls: {apply: true, forgetting_factor: 0.995, min_samples: 100, init_scale: 1000.0}
      hfc: {apply: true, eps: null}
      line_freqs: [50, 100, 150]
      line_bandwidth: 2.0
      return_axis: Z
"""


# --------------------------------------------------------------
# Decorators


def print_custom_func_info(func):
    """Prints info for user-specified functions.

    Parameters
    ----------
    func : function
        Function to wrap.

    Returns
    -------
    function
        Wrapped function.
    """

    @wraps(func)
    def wrapper(dataset, userargs):
        logger.info("CUSTOM Stage - {}".format(func.__name__))
        logger.info("userargs: {}".format(str(userargs)))
        return func(dataset, userargs)

    return wrapper


# --------------------------------------------------------------
# Data importers


def import_data(infile, sfreq=None, gain=1e6, sensors_tsv=None):
    """Imports data from a file.

    Parameters
    ----------
    infile : str
        Path to file to read. File can be lvm, npy or fif.
    sfreq : float
        Sampling frequency in Hz. Required for npy files; for lvm files it is
        estimated from the time column if not given.
    gain : float
        Conversion factor from recorded volts to field units (lvm only).
    sensors_tsv : str
        Optional channels.tsv file with sensor names and orientations.

    Returns
    -------
    dataset : dict
        Contains keys: ``'data'``, ``'sfreq'``, ``'stim'``, ``'trigger'``,
        ``'ch_names'``, ``'orientations'``, ``'positions'`` and
        ``'diagnostics'``.
    """
    if not isinstance(infile, str):
        raise ValueError(
            "infile must be a str. Got type(infile)={0}.".format(type(infile))
        )

    logger.info("IMPORTING: {0}".format(infile))

    dataset = {
        "data": None,
        "sfreq": sfreq,
        "stim": None,
        "trigger": None,
        "ch_names": None,
        "orientations": None,
        "positions": None,
        "diagnostics": Diagnostics(),
    }

    ext = os.path.splitext(infile)[1].lower()

    # LabVIEW measurement file
    if ext == ".lvm":
        logger.info("Detected lvm file format, using: opmdenoise.utils.load_opm_lvm")
        rec = load_opm_lvm(infile, gain=gain)
        dataset["data"] = rec["data"]
        dataset["stim"] = rec["stim"]
        dataset["trigger"] = rec["trigger"]
        if sfreq is None:
            if len(rec["time"]) < 2:
                raise ValueError("Cannot estimate sfreq from {0}, please pass it in the config".format(infile))
            dataset["sfreq"] = float(np.round(1 / np.median(np.diff(rec["time"]))))
            logger.info("Estimated sfreq from time column: {0} Hz".format(dataset["sfreq"]))

    # numpy array, channels x samples
    elif ext == ".npy":
        logger.info("Detected npy file format, using: numpy.load")
        if sfreq is None:
            raise ValueError("sfreq must be given in the config meta section for npy input")
        dataset["data"] = np.load(infile)

    # FIF file
    elif ext == ".fif":
        logger.info("Detected fif file format, using: mne.io.read_raw_fif")
        raw = mne.io.read_raw_fif(infile, preload=True)
        picks = mne.pick_types(raw.info, meg='mag', ref_meg=False, exclude=[])
        dataset["data"] = raw.get_data(picks=picks) * FT_PER_T
        dataset["sfreq"] = raw.info["sfreq"]
        dataset["ch_names"] = [raw.ch_names[ii] for ii in picks]
        dataset["orientations"] = orientations_from_info(raw.info)

    # Other formats not accepted
    else:
        msg = "Unable to determine file type of input {0}".format(infile)
        logger.error(msg)
        raise ValueError(msg)

    if sensors_tsv is not None:
        sensors = read_sensor_tsv(sensors_tsv)
        if len(sensors["names"]) != dataset["data"].shape[0]:
            raise ValueError("{0} lists {1} sensors but the data has {2} channels".format(
                sensors_tsv, len(sensors["names"]), dataset["data"].shape[0]))
        dataset["ch_names"] = sensors["names"]
        dataset["orientations"] = sensors["orientations"]
        dataset["positions"] = sensors["positions"]

    return dataset


# --------------------------------------------------------------
# Batch processing utilities


def find_func(method, extra_funcs=None):
    """Find a denoising function.

    Function priority:

    1. User custom function

    2. OPM wrapper

    Parameters
    ----------
    method : str
        Function name.
    extra_funcs : list
        List of user-defined functions.

    Returns
    -------
    function
        Function to process a dataset dict.
    """
    func = None

    # 1) user custom function
    if extra_funcs is not None:
        func_ind = [
            idx if (f.__name__ == method) else -1 for idx, f in enumerate(extra_funcs)
        ]
        if np.max(func_ind) > -1:
            func = extra_funcs[np.argmax(func_ind)]
            func = print_custom_func_info(func)

    # 2) OPM Wrapper
    if func is None and hasattr(opm_wrappers, "run_opm_{}".format(method)):
        func = getattr(opm_wrappers, "run_opm_{}".format(method))

    if func is None:
        logger.critical("Function not found! {}".format(method))

    return func


def load_config(config):
    """Load config.

    Parameters
    ----------
    config : str or dict
        Path to yaml file or string to convert to dict or a dict.

    Returns
    -------
    dict
        Denoising config.
    """
    if type(config) not in [str, dict]:
        raise ValueError("config must be a str or dict, got {}.".format(type(config)))

    if isinstance(config, str):
        try:
            # See if we have a filepath
            with open(config, "r") as f:
                config = yaml.load(f, Loader=yaml.FullLoader)
        except (UnicodeDecodeError, FileNotFoundError, OSError):
            # We have a string
            config = yaml.load(config, Loader=yaml.FullLoader)

    if not isinstance(config, dict):
        raise ValueError("config must describe a dict, got {}.".format(type(config)))

    # do some checks on the config
    for key in config:
        if config[key] == 'None':
            config[key] = None

    # Initialise missing values in config
    if config.get("meta") is None:
        config["meta"] = {}
    config["meta"].setdefault("sfreq", None)
    config["meta"].setdefault("gain", 1e6)
    config["meta"].setdefault("sensors_tsv", None)

    if "preproc" not in config:
        raise KeyError("Please specify processing steps in config.")

    if config["preproc"] is not None:
        for stage in config["preproc"]:
            # Check each stage is a dictionary with a single key
            if not isinstance(stage, dict):
                raise ValueError(
                    "Processing stage '{0}' is a {1} not a dict".format(
                        stage, type(stage)
                    )
                )

            if len(stage) != 1:
                raise ValueError(
                    "Processing stage '{0}' should only have a single key".format(stage)
                )

            for key, val in stage.items():
                # internally we want options to be an empty dict
                if val in ["null", "None", None]:
                    stage[key] = {}
    else:
        config["preproc"] = []

    return config


def check_config_versions(config):
    """Check package versions requested in a config.

    Parameters
    ----------
    config : dictionary or yaml string
        Denoising configuration to check.

    Raises
    ------
    AssertionError
        Raised if package version mismatch found in 'version_assert'
    Warning
        Raised if package version mismatch found in 'version_warn'
    """
    config = load_config(config)

    # Check for version and raise an error if mismatch found
    if 'version_assert' in config['meta']:
        for vers in config['meta']['version_assert']:
            check_version(vers, mode='assert')

    # Check for version and raise a warning if mismatch found
    if 'version_warn' in config['meta']:
        for vers in config['meta']['version_warn']:
            check_version(vers, mode='warn')


def append_proc_info(dataset, config):
    """Add the run config and package version to the dataset diagnostics.

    Parameters
    ----------
    dataset : dict
        Processed dataset.
    config : dict
        Denoising config.

    Returns
    -------
    dict
        Dataset dict edited in place.
    """
    from .. import __version__  # here to avoid circular import

    dataset["proc_info"] = {
        "date": datetime.today().strftime('%d/%m/%Y %H:%M:%S'),
        "version": __version__,
        "config": config,
    }
    return dataset


def write_dataset(dataset, outbase, run_id, ftype='preproc-raw', overwrite=False, skip=None):
    """Write denoised data to disk.

    Writes ``'data'`` as npy, the diagnostics (and run info) as yml and the
    data as an MNE fif file.

    Parameters
    ----------
    dataset : dict
        Processed dataset.
    outbase : str
        Path template with ``{run_id}``, ``{ftype}`` and ``{fext}`` fields.
    run_id : str
        ID for the output file.
    ftype: str
        Extension for the fif file (default ``preproc-raw``)
    overwrite : bool
        Should we overwrite if the file already exists?
    skip : list or None
        List of keys (``'data'``, ``'diagnostics'``, ``'raw'``) to skip
        writing to disk. If None, we don't skip any keys.

    Returns
    -------
    outnames : dict
        The saved file names, None for skipped keys.
    """

    if skip is None:
        skip = []
    else:
        [logger.info("Skip saving of dataset['{}']".format(key)) for key in skip]

    # Strip "_preproc-raw" or "_raw" from the run id
    for string in ["_preproc-raw", "_raw"]:
        if string in run_id:
            run_id = run_id.replace(string, "")

    outnames = {"raw": None, "data": None, "diagnostics": None}

    if "raw" not in skip:
        outnames["raw"] = outbase.format(run_id=run_id, ftype=ftype, fext="fif")
        if Path(outnames["raw"]).exists() and not overwrite:
            raise ValueError(
                "{} already exists. Please delete or do use overwrite=True.".format(outnames["raw"])
            )
        raw = to_raw(
            dataset["data"],
            dataset["sfreq"],
            orientations=dataset.get("orientations"),
            positions=dataset.get("positions"),
            ch_names=dataset.get("ch_names"),
            scale=1 / FT_PER_T,
        )
        logger.info(f"Saving dataset['data'] as {outnames['raw']}")
        raw.save(outnames["raw"], overwrite=overwrite)

    if "data" not in skip:
        outnames["data"] = outbase.format(run_id=run_id, ftype="denoised", fext="npy")
        logger.info(f"Saving dataset['data'] as {outnames['data']}")
        np.save(outnames["data"], dataset["data"])

    if "diagnostics" not in skip and dataset.get("diagnostics") is not None:
        outnames["diagnostics"] = outbase.format(run_id=run_id, ftype="diagnostics", fext="yml")
        info = dataset["diagnostics"].to_dict()
        if dataset.get("proc_info") is not None:
            info["version"] = dataset["proc_info"]["version"]
            info["date"] = dataset["proc_info"]["date"]
        logger.info(f"Saving dataset['diagnostics'] as {outnames['diagnostics']}")
        with open(outnames["diagnostics"], "w") as f:
            yaml.dump(info, f)

    return outnames


def read_dataset(fif):
    """Read the outputs written by :py:func:`write_dataset` for a run.

    Parameters
    ----------
    fif : str
        Path to the denoised fif file.

    Returns
    -------
    dataset : dict
        Contains keys: ``'data'``, ``'sfreq'``, ``'ch_names'``,
        ``'orientations'`` and ``'diagnostics'`` (dict, or None if missing).
    """
    dataset = import_data(fif)
    diagnostics_file = fif.replace("preproc-raw.fif", "diagnostics.yml")
    if os.path.exists(diagnostics_file):
        with open(diagnostics_file, "r") as file:
            dataset["diagnostics"] = yaml.load(file, Loader=yaml.FullLoader)
    else:
        dataset["diagnostics"] = None
    return dataset


# --------------------------------------------------------------
# Batch processing


def run_proc_chain(
    config,
    infile,
    subject=None,
    ftype='preproc-raw',
    outdir=None,
    logsdir=None,
    ret_dataset=True,
    overwrite=False,
    skip_save=None,
    extra_funcs=None,
    verbose="INFO",
    mneverbose="WARNING",
):
    """Run denoising for a single file.

    Parameters
    ----------
    config : str or dict
        Denoising config.
    infile : str or dict
        Path to input file, or an already imported dataset dict (then
        subject must be given).
    subject : str
        Subject ID. This will be the sub-directory in outdir.
    ftype: str
        Extension for the fif file (default ``preproc-raw``)
    outdir : str
        Output directory.
    logsdir : str
        Directory to save log files to.
    ret_dataset : bool
        Should we return a dataset dict?
    overwrite : bool
        Should we overwrite the output file if it already exists?
    skip_save: list or None (default)
        List of keys to skip writing to disk. If None, we don't skip any keys.
    extra_funcs : list
        User-defined functions.
    verbose : str
        Level of info to print.
        Can be: ``'CRITICAL'``, ``'ERROR'``, ``'WARNING'``, ``'INFO'``, ``'DEBUG'`` or ``'NOTSET'``.
    mneverbose : str
        Level of info from MNE to print.
        Can be: ``'CRITICAL'``, ``'ERROR'``, ``'WARNING'``, ``'INFO'``, ``'DEBUG'`` or ``'NOTSET'``.

    Returns
    -------
    dict or bool
        If ``ret_dataset=True``, a dict containing the denoised dataset with
        the keys described in :py:func:`import_data`. An empty dict is
        returned if processing fails. If ``ret_dataset=False``, we return a
        flag indicating whether processing was successful.
    """

    # Get run (subject) ID
    run_id = subject or find_run_id(infile)
    name_base = "{run_id}_{ftype}.{fext}"

    if not ret_dataset:
        # Let's make sure we have an output directory
        outdir = outdir or os.getcwd()

    if outdir is not None:
        # We're saving the output to disk
        outdir = validate_outdir(f"{outdir}/{run_id}")
        logsdir = validate_outdir(logsdir or outdir / "logs")
    elif logsdir is not None:
        # Allow the user to create a log if they pass logsdir
        logsdir = validate_outdir(logsdir)

    # Create output filename
    if outdir is not None:
        outbase = os.path.join(outdir, name_base)

    # Generate log filename
    if logsdir is not None:
        logbase = os.path.join(logsdir, name_base)
        logfile = logbase.format(
            run_id=run_id.replace("_raw", ""), ftype=ftype, fext="log"
        )
        mne.set_log_file(logfile, overwrite=overwrite)
    else:
        logfile = None

    # Finish setting up loggers
    opm_logger.set_up(prefix=run_id, log_file=logfile, level=verbose, startup=False)
    mne.set_log_level(mneverbose)
    logger = logging.getLogger(__name__)
    now = strftime("%Y-%m-%d %H:%M:%S", localtime())
    logger.info("{0} : Starting OPM Processing".format(now))
    logger.info("input : {0}".format(infile))

    # Write denoised data to output directory
    if outdir is not None:
        # Check for existing outputs - should be a .fif at least
        fifout = outbase.format(
            run_id=run_id.replace('_raw', ''), ftype=ftype, fext='fif'
        )
        if os.path.exists(fifout) and (overwrite is False):
            logger.critical('Skipping processing - existing output detected')
            return False

    # MAIN BLOCK - Run the processing chain and catch any exceptions
    try:
        # Load config, filling in missing meta values
        config = load_config(config)
        check_config_versions(deepcopy(config))

        if isinstance(infile, dict):
            dataset = infile
        else:
            dataset = import_data(
                infile,
                sfreq=config["meta"]["sfreq"],
                gain=config["meta"]["gain"],
                sensors_tsv=config["meta"]["sensors_tsv"],
            )

        # Do the processing
        for stage in deepcopy(config["preproc"]):
            method, userargs = next(iter(stage.items()))
            func = find_func(method, extra_funcs=extra_funcs)
            if func is None:
                raise ValueError("Unknown processing stage: {0}".format(method))
            # Actual function call
            dataset = func(dataset, userargs)

        # Add processing info to dataset dict
        dataset = append_proc_info(dataset, config)

        outnames = {"raw": None}
        if outdir is not None:
            outnames = write_dataset(dataset, outbase, run_id, ftype=ftype,
                                     overwrite=overwrite, skip=skip_save)

    except Exception as e:
        # Processing failed

        if 'method' not in locals():
            method = 'import_data'
            func = import_data

        logger.critical("**********************")
        logger.critical("* PROCESSING FAILED! *")
        logger.critical("**********************")

        ex_type, ex_value, ex_traceback = sys.exc_info()
        logger.error("{0} : {1}".format(method, func))
        logger.error(ex_type)
        logger.error(ex_value)
        logger.error("".join(traceback.format_tb(ex_traceback)))

        if logfile is not None:
            with open(logfile.replace(".log", ".error.log"), "w") as f:
                f.write("OPM PROCESSING CHAIN FAILED AT: {0}".format(now))
                f.write("\n")
                f.write('Processing failed during stage : "{0}"'.format(method))
                f.write(str(ex_type))
                f.write("\n")
                f.write(str(ex_value))
                f.write("\n")
                traceback.print_tb(ex_traceback, file=f)

        if ret_dataset:
            # We return an empty dict to indicate processing failed
            # This ensures the function consistently returns one
            # variable type
            return {}
        else:
            return False

    now = strftime("%Y-%m-%d %H:%M:%S", localtime())
    logger.info("{0} : Processing Complete".format(now))

    if outnames["raw"] is not None:
        logger.info("Output file is {}".format(outnames["raw"]))

    if ret_dataset:
        return dataset
    else:
        return True


def run_proc_batch(
    config,
    files,
    subjects=None,
    ftype='preproc-raw',
    outdir=None,
    logsdir=None,
    overwrite=False,
    skip_save=None,
    extra_funcs=None,
    verbose="INFO",
    mneverbose="WARNING",
    dask_client=False,
):
    """Run batched denoising.

    This function will write output to disk (i.e. will not return the
    denoised data).

    Parameters
    ----------
    config : str or dict
        Denoising config.
    files : str or list
        A list of filenames or a path to a textfile list of filenames or a
        glob expression.
    subjects : list of str
        Subject directory names. These are sub-directories in outdir.
    ftype: None or str
        Extension of the denoised fif files. Default option is `_preproc-raw`.
    outdir : str
        Output directory.
    logsdir : str
        Directory to save log files to.
    overwrite : bool
        Should we overwrite the output file if it exists?
    skip_save: list or None (default)
        List of keys to skip writing to disk. If None, we don't skip any keys.
    extra_funcs : list
        User-defined functions.
    verbose : str
        Level of info to print.
        Can be: ``'CRITICAL'``, ``'ERROR'``, ``'WARNING'``, ``'INFO'``, ``'DEBUG'`` or ``'NOTSET'``.
    mneverbose : str
        Level of info from MNE to print.
        Can be: ``'CRITICAL'``, ``'ERROR'``, ``'WARNING'``, ``'INFO'``, ``'DEBUG'`` or ``'NOTSET'``.
    dask_client : bool
        Indicate whether to use a previously initialised :py:class:`dask.distributed.Client <distributed.Client>` instance.

    Returns
    -------
    list of bool
        Flags indicating whether processing was successful for each input file.

    Notes
    -----
    If you are using a :py:class:`dask.distributed.Client <distributed.Client>` instance, you must initialise it
    before calling this function. For example:

    >>> from dask.distributed import Client
    >>> client = Client(threads_per_worker=1, n_workers=4)
    """

    if outdir is None:
        # Use the current working directory
        outdir = os.getcwd()

    # Validate the parent outdir - later do so for each subdirectory
    tmpoutdir = validate_outdir(outdir.split('{')[0])
    logsdir = validate_outdir(logsdir or tmpoutdir / "logs")

    # Initialise Loggers
    mne.set_log_level(mneverbose)
    logfile = os.path.join(logsdir, 'opm_batch.log')
    opm_logger.set_up(log_file=logfile, level=verbose, startup=False)

    logger.info('Starting OPM Batch Processing')

    # Check through inputs and parameters
    infiles, good_files_outnames, good_files = process_file_inputs(files)

    # Specify filenames for the output data
    if subjects is None:
        subjects = good_files_outnames
    else:
        if len(subjects) != len(good_files_outnames):
            logger.critical(
                f"Number of subjects ({len(subjects)}) does not match "
                f"number of good files {len(good_files_outnames)}. "
                "Please fix the subjects list or pass subjects=None."
            )

    logger.info('Outputs saving to: {0}'.format(outdir))

    config = load_config(config)
    config_str = pprint.PrettyPrinter().pformat(config)
    logger.info('Running config\n {0}'.format(config_str))

    # Create partial function with fixed options
    pool_func = partial(
        run_proc_chain,
        outdir=outdir,
        ftype=ftype,
        logsdir=logsdir,
        ret_dataset=False,
        overwrite=overwrite,
        skip_save=skip_save,
        extra_funcs=extra_funcs,
        verbose=verbose,
        mneverbose=mneverbose,
    )

    # Loop through input files to generate arguments for run_proc_chain
    args = []
    for infile, subject in zip(infiles, subjects):
        args.append((config, infile, subject))

    # Actually run the processes
    if dask_client:
        proc_flags = dask_parallel_bag(pool_func, args)
    else:
        proc_flags = [pool_func(*aa) for aa in args]

    opm_logger.set_up(log_file=logfile, level=verbose, startup=False)
    logger.info(
        "Processed {0}/{1} files successfully".format(
            np.sum(proc_flags), len(proc_flags)
        )
    )

    # Return flags
    return proc_flags


# ----------------------------------------------------------
# Main CLI user function


def main(argv=None):
    """Main function for command line interface.

    Parameters
    ----------
    argv : list
        Command line arguments.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Batch denoise some OPM recordings.")
    parser.add_argument("config", type=str, help="yaml defining the processing stages")
    parser.add_argument(
        "files",
        type=str,
        help="plain text file containing full paths to files to be processed",
    )
    parser.add_argument(
        "--outdir",
        type=str,
        default=None,
        help="Path to output directory to save data in",
    )
    parser.add_argument(
        "--logsdir", type=str, default=None, help="Path to logs directory"
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        default=False,
        help="Overwrite previous output files if they're in the way",
    )
    parser.add_argument(
        "--verbose",
        type=str,
        default="INFO",
        help="Set the logging level for opmdenoise functions",
    )
    parser.add_argument(
        "--mneverbose",
        type=str,
        default="WARNING",
        help="Set the logging level for MNE functions",
    )

    parser.usage = parser.format_help()
    args = parser.parse_args(argv)

    opm_logger.log_or_print("Denoising {0} with {1}".format(args.files, args.config))
    flags = run_proc_batch(**vars(args))

    n_failed = len(flags) - int(np.sum(flags))
    if n_failed:
        opm_logger.log_or_print("{0} of {1} files failed, see the logs for details".format(
            n_failed, len(flags)), warning=True)
    return 0 if n_failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
