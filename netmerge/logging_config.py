import logging
import os

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_FILENAME = "run.log"


def _handler(handler, level):
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    return handler


def configure_logging(output_dir=None, console_level=logging.INFO):
    """Send netmerge's subset / join / merge progress to the console and,
    optionally, to a log file kept next to the merged output.

    Only the "netmerge" logger is touched, so calling this from a notebook
    or another application leaves their logging alone. Calling it again
    replaces the handlers instead of stacking them.

    Parameters
    ----------
    output_dir : str, optional
        If given, DEBUG records (per-step feature counts, resolved
        aggregations, rescale ratios) are appended to {output_dir}/run.log.
    console_level : int
        Threshold for console output.
    """
    pkg_logger = logging.getLogger("netmerge")
    pkg_logger.handlers.clear()
    pkg_logger.setLevel(logging.DEBUG)
    pkg_logger.addHandler(_handler(logging.StreamHandler(), console_level))

    if output_dir is not None:
        os.makedirs(output_dir, exist_ok=True)
        log_path = os.path.join(output_dir, LOG_FILENAME)
        pkg_logger.addHandler(_handler(logging.FileHandler(log_path, mode="a"), logging.DEBUG))

    return pkg_logger
