import logging
from typing import Any, Type

from ndslice.utils import RuntimeEnv, get_runtime
from ndslice.utils.helpers import DEBUG


# Notebook runtimes swallow handler output
class PrintLogger:  # noqa: D101
    template: str = "[{level}]: {msg}"

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def info(self, msg: str):
        print(self.template.format(level="INFO", msg=msg))

    def debug(self, msg: str):
        if self.verbose:
            print(self.template.format(level="DEBUG", msg=msg))

    def exception(self, msg: str):
        print(self.template.format(level="EXCEPTION", msg=msg))

    def error(self, msg: str):
        print(self.template.format(level="ERROR", msg=msg))

    def warning(self, msg: str):
        print(self.template.format(level="WARNING", msg=msg))


# Set up Logger
class Logger:  # noqa: D101
    def __init__(self, name: str = "ndslice"):
        """Initializes the Logger instance.

        Chooses between PrintLogger (for Colab) and the standard logging.Logger.
        The level follows the DEBUG environment flag.
        """
        if get_runtime() == RuntimeEnv.COLAB:
            self.base = PrintLogger(verbose=DEBUG >= 1)
        else:
            self.base = logging.getLogger(name)
            self.base.propagate = False
            self.base.setLevel(logging.DEBUG if DEBUG >= 1 else logging.WARNING)

            if not self.base.handlers:
                logFormatter = logging.Formatter(
                    "%(filename)s:%(lineno)d - [%(levelname)s]: %(message)s"
                )
                consoleHandler = logging.StreamHandler()
                consoleHandler.setFormatter(logFormatter)
                self.base.addHandler(consoleHandler)

    def _emit(self, level: str, msg: str):
        # skip _emit and the public method so %(filename)s names the caller
        if isinstance(self.base, PrintLogger):
            getattr(self.base, level)(msg)
        else:
            getattr(self.base, level)(msg, stacklevel=3)

    def info(self, msg: str):
        self._emit("info", msg)

    def debug(self, msg: str):
        self._emit("debug", msg)

    def exception(self, msg: str):
        self._emit("exception", msg)

    def error(self, msg: str):
        self._emit("error", msg)

    def warning(self, msg: str):
        self._emit("warning", msg)

    def check_and_raise(self, msg: str, error_type: Type[Exception], condition: Any):
        """Logs `msg` at ERROR and raises `error_type(msg)` unless `condition` holds."""
        if not condition:
            self._emit("error", msg)
            raise error_type(msg)


default_logger = Logger()
