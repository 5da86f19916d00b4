import logging
import os
from datetime import datetime

_FILE_HANDLER_NAME = "livepatch-file"


def setup_logger(log_dir: str = ".livepatch/logs", level: int = logging.DEBUG) -> str:
    """Send every ``live_patcher`` record at *level* or above to a fresh log file.

    Calling it again replaces the previous file handler instead of stacking a
    second one. Returns the path of the log file.
    """
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(log_dir, f"livepatch_{timestamp}_{os.getpid()}.log")

    logger = logging.getLogger("live_patcher")
    if logger.level == logging.NOTSET or logger.level > level:
        logger.setLevel(level)
    for handler in list(logger.handlers):
        if handler.get_name() == _FILE_HANDLER_NAME:
            logger.removeHandler(handler)
            handler.close()

    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.set_name(_FILE_HANDLER_NAME)
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%H:%M:%S"
    ))
    logger.addHandler(fh)
    return log_file


def print_status(patcher, title: str = "Patch status") -> None:
    """Print a short summary of the patcher state."""
    report = patcher.last_report
    print(f"\n{title}")
    print("-" * 60)
    print(f"  Live capability:  {'yes' if patcher.is_live_capable() else 'no'}")
    print(f"  Tracked units:    {len(patcher.store)}")
    if report is not None:
        print(f"  Last patch:       {report.summary()}")
        for name in report.restart_required:
            print(f"    ! {name}")
    print(f"  Needs restart:    {'YES' if patcher.needs_restart() else 'no'}")
