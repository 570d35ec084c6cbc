import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class AdForgeLogger:
    """Centralized logging for ad generation.

    Components get their own named child (``adforge.pipeline``, ``adforge.worker``...)
    that writes through the handlers configured here.
    """

    def __init__(self, log_level=logging.INFO, name: str = "adforge", log_file: str = None):
        if isinstance(log_level, str):
            log_level = logging.getLevelName(log_level.upper())

        self.logger = logging.getLogger(name)
        self.logger.setLevel(log_level)

        if not self.logger.handlers:
            formatter = logging.Formatter(LOG_FORMAT)
            handlers = [logging.StreamHandler(sys.stdout)]
            if log_file:
                handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
            for handler in handlers:
                handler.setLevel(log_level)
                handler.setFormatter(formatter)
                self.logger.addHandler(handler)

    @classmethod
    def _wrap(cls, logger: logging.Logger) -> "AdForgeLogger":
        wrapper = cls.__new__(cls)
        wrapper.logger = logger
        return wrapper

    def child(self, suffix: str) -> "AdForgeLogger":
        return self._wrap(self.logger.getChild(suffix))

    def info(self, message):
        self.logger.info(message)

    def debug(self, message):
        self.logger.debug(message)

    def warning(self, message):
        self.logger.warning(message)

    def error(self, message):
        self.logger.error(message)

    def exception(self, message):
        # Only meaningful inside an except block
        self.logger.exception(message)
