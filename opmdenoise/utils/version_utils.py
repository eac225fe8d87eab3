from packaging.version import Version
import re
import operator
from importlib.metadata import version

# Housekeeping for logging
import logging
opm_logger = logging.getLogger(__name__)


def _parse_condition(cond):
    """Split a requirement string such as 'numpy>=1.20' into its parts."""
    name = re.split(r'[=<>!]', cond)[0]
    comp = cond[len(name):]

    if comp[:2] == '==':
        func = operator.eq
    elif comp[:2] == '!=':
        func = operator.ne
    elif comp[:2] == '<=':
        func = operator.le
    elif comp[:2] == '>=':
        func = operator.ge
    elif comp[:1] == '<':
        func = operator.lt
    elif comp[:1] == '>':
        func = operator.gt
    else:
        raise ValueError("Comparator not recognised in '{0}'".format(cond))

    val = comp.lstrip('!=<>')

    return (name.strip(), func, val.strip())


def check_version(test_statement, mode='warn'):
    """Check whether the version of a package meets a specified condition.

    Parameters
    ----------
    test_statement : str
        Package version comparison string in the standard format expected by python installs.
        eg 'scipy>=1.8' or 'mne==1.6.0'
    mode : {'warn', 'assert'}
        Flag indicating whether to warn the user or raise an error if the comparison fails

    Returns
    -------
    bool
        True if the installed version meets the condition.
    """
    test_module, comparator, target_version = _parse_condition(test_statement)

    test_version = Version(version(test_module))
    target_version = Version(target_version)

    if comparator(test_version, target_version) is False:
        msg = "Package '{}' version ({}) fails specified requirement ({})"
        msg = msg.format(test_module, test_version, test_statement)

        opm_logger.warning(msg)
        if mode == 'assert':
            raise AssertionError(msg)
        return False

    return True
