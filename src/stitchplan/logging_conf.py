import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers that only add noise next to planning output.
QUIET_LOGGERS = ("uvicorn.access", "watchfiles")

PLANNER_LOGGERS = ("stitchplan.planner", "stitchplan.timeline", "stitchplan.capacity")


def _resolve_level(level: str) -> int:
    numeric_level = getattr(logging, str(level).upper(), None)
    if isinstance(numeric_level, int):
        return numeric_level
    print(f"Invalid log level: {level}, defaulting to INFO")
    return logging.INFO


def configure_logging(level: str = "INFO", *, trace_planning: bool = False) -> None:
    """Set up a single stdout handler on the root logger.

    Safe to call again (NiceGUI reloads): existing root handlers are replaced.
    With `trace_planning` the planning engines log at DEBUG, which shows every
    line-count attempt of the capacity search and every cascade shift.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(_resolve_level(level))
    root_logger.handlers[:] = [handler]

    planner_level = logging.DEBUG if trace_planning else logging.NOTSET
    for name in PLANNER_LOGGERS:
        logging.getLogger(name).setLevel(planner_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
