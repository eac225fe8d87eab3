"""Logging module for opmdenoise.

Handlers are configured from a YAML template so that the console and the
optional rotating log file share one definition.
"""

import yaml
import logging
import logging.config


# Housekeeping for logging
# Set logger level to WARNING as default
logging.getLogger("opmdenoise").setLevel(logging.WARNING)

# Initialise logging for this sub-module
opm_logger = logging.getLogger(__name__)

#%% ------------------------------------------------------------


default_config = """
version: 1
loggers:
  opmdenoise:
    level: DEBUG
    handlers: [console, file]
    propagate: false

handlers:
  console:
    class : logging.StreamHandler
    formatter: brief
    level   : DEBUG
    stream  : ext://sys.stdout
  file:
    class : logging.handlers.RotatingFileHandler
    formatter: verbose
    filename: {log_file}
    backupCount: 3
    maxBytes: 102400

formatters:
  brief:
    format: '{prefix} %(message)s'
  default:
    format: '[%(asctime)s] {prefix} %(levelname)-8s : %(message)s'
    datefmt: '%H:%M:%S'
  verbose:
    format: '[%(asctime)s] {prefix} - %(levelname)s - opmdenoise.%(module)s:%(lineno)s : %(message)s'
    datefmt: '%Y-%m-%d %H:%M:%S'

disable_existing_loggers: false

"""


def set_up(prefix='', log_file=None, level=None, console_format=None, startup=True):
    """Initialise the opmdenoise logger.

    Parameters
    ----------
    prefix : str
        Optional prefix to attach to logger output, typically the run ID.
    log_file : str
        Optional path to a log file to record logger output.
    level : {'CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG'}
        String indicating initial logging level of the console handler.
    console_format : str
        Name of the formatter to use for console logging.
    startup : bool
        Should we log a start-up message?
    """
    # Format config with user options
    if (len(prefix) > 0) and (console_format != 'verbose'):
        prefix = prefix + ' :'
    new_config = default_config.format(prefix=prefix, log_file=log_file)
    # Load config to dict
    new_config = yaml.load(new_config, Loader=yaml.FullLoader)

    # Remove log file from dict if not user requested
    if log_file is None:
        new_config['loggers']['opmdenoise']['handlers'] = ['console']
        del new_config['handlers']['file']

    if console_format is not None:
        new_config['handlers']['console']['formatter'] = console_format

    # Configure logger with dict
    logging.config.dictConfig(new_config)

    # Customise options
    if level is not None:
        set_level(level)

    if startup:
        # Say hello
        opm_logger.info('opmdenoise Logger Started')

    # Print some info
    if log_file is not None:
        opm_logger.info('logging to file: {0}'.format(log_file))

    # Attribute to let us know if we have setup the logger
    opm_logger.already_setup = True


def set_level(level, handler='console'):
    """Set new logging level for a handler of the opmdenoise logger.

    Parameters
    ----------
    level : {'CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG'}
        String indicating new logging level.
    handler : str
        The handler to set the level for. Defaults to 'console'.
    """
    pkg_logger = logging.getLogger('opmdenoise')
    for hnd in pkg_logger.handlers:
        if hnd.get_name() == handler:
            if level in ['INFO', 'DEBUG']:
                pkg_logger.info("opmdenoise logger: handler '{0}' level set to '{1}'".format(hnd.get_name(), level))
            hnd.setLevel(getattr(logging, level))


def get_level(handler='console'):
    """Return current logging level of a handler of the opmdenoise logger.

    Parameters
    ----------
    handler : str
        The handler to get the level for. Defaults to 'console'.

    Returns
    -------
    level : int or None
        Numeric logging level, None if the handler is not configured.
    """
    pkg_logger = logging.getLogger('opmdenoise')
    for hnd in pkg_logger.handlers:
        if hnd.get_name() == handler:
            return hnd.level


def log_or_print(msg, warning=False):
    """Execute logger.info if the opmdenoise logger has been setup, otherwise print.

    Parameters
    ----------
    msg : str
        Message to log/print.
    warning : bool
        Is the msg a warning? Defaults to False, which will print info.
    """
    if warning:
        msg = f"WARNING: {msg}"
    if hasattr(opm_logger, "already_setup"):
        opm_logger.info(msg)
    else:
        print(msg)
