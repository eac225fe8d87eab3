"""Utility functions for parallel processing.

"""

from functools import partial
import dask.bag as db
from dask.distributed import default_client

import numpy as np

# Housekeeping for logging
import logging
opm_logger = logging.getLogger(__name__)


def dask_parallel_bag(func, iter_args,
                      func_args=None, func_kwargs=None):
    """Run a function over a list of inputs on the active dask client.

    Parameters
    ---------
    func : function
        The function to run in parallel.
    iter_args : list
        A list of iterables to pass to func.
    func_args : list, optional
        A list of positional arguments to pass to func.
    func_kwargs : dict, optional
        A dictionary of keyword arguments to pass to func.

    Returns
    -------
    flags : list
        A list of return values from func.

    References
    ----------
    https://docs.dask.org/en/stable/bag.html

    """

    func_args = [] if func_args is None else func_args
    func_kwargs = {} if func_kwargs is None else func_kwargs

    # Get connection to currently active cluster
    client = default_client()

    # Print some helpful info
    opm_logger.info('Dask Client : {0}'.format(client.__repr__()))
    opm_logger.info('Dask Client dashboard link: {0}'.format(client.dashboard_link))

    opm_logger.debug('Running function : {0}'.format(func.__repr__()))
    opm_logger.debug('User args : {0}'.format(func_args))
    opm_logger.debug('User kwargs : {0}'.format(func_kwargs))

    # Set kwargs - need to handle args on function call to preserve order.
    run_func = partial(func, **func_kwargs)

    # Ensure input iter_args is list of lists
    if all(isinstance(aa, (list, tuple)) for aa in iter_args) is False:
        iter_args = [[aa] for aa in iter_args]

    # Add fixed positonal args if specified
    iter_args = [list(aa) + list(func_args) for aa in iter_args]

    # Make dask bag from inputs: https://docs.dask.org/en/stable/bag.html
    b = db.from_sequence(iter_args)

    # Map iterable arguments to function using dask bag + current client
    bm = b.starmap(run_func)

    # Actually run the computation
    flags = bm.compute()

    opm_logger.info('Computation complete')

    return flags


def map_channels(func, data, func_kwargs=None, dask_client=False):
    """Apply a per-channel function to every row of a channel x sample array.

    Parameters
    ----------
    func : function
        Function taking a 1D channel array (plus keyword arguments) and
        returning a 1D array of the same length.
    data : ndarray, shape (n_channels, n_samples)
        Data to process.
    func_kwargs : dict, optional
        Read-only keyword arguments shared by all channels, e.g. filter
        coefficients.
    dask_client : bool
        Indicate whether to map the channels on a previously initialised
        :py:class:`dask.distributed.Client <distributed.Client>`.

    Returns
    -------
    out : ndarray, shape (n_channels, n_samples)
        Processed data, rows in the input order.
    """
    func_kwargs = {} if func_kwargs is None else func_kwargs

    if data.shape[0] == 0:
        return np.array(data, dtype=float, copy=True)

    if dask_client:
        rows = dask_parallel_bag(func, [[row] for row in data], func_kwargs=func_kwargs)
    else:
        rows = [func(row, **func_kwargs) for row in data]

    return np.vstack(rows)
