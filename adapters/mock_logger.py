# coding: utf-8
"""@brief Module implementing a stub logger
"""
from typing import List, Tuple

from logging import ERROR, WARNING, INFO, DEBUG

class MockLogger:
    """@brief Concrete implementation of a history-recording logger, used for unit test purposes"""
    def __init__(self, log_level: int = DEBUG):
        self.reset_logs()
        self.log_level = log_level

    def reset_logs(self):
        self.logs_history: List[Tuple[int, str]] = []

    def _log_as(self, level, message):
        """@brief Record a log containing @p message at a given log level
        @param level The log level (eg: ERROR, INFO etc.)
        @param message The content of the log message
        """
        if level >= self.log_level:
            self.logs_history.append((level, message))

    def get_messages(self, level: int = None) -> List[str]:
        """@brief Get the recorded messages, optionally only those at a given level
        """
        return [message for (message_level, message) in self.logs_history if level is None or message_level == level]

    def error(self, message: str):
        self._log_as(ERROR, message)

    def warning(self, message: str):
        self._log_as(WARNING, message)

    def info(self, message: str):
        self._log_as(INFO, message)

    def debug(self, message: str):
        self._log_as(DEBUG, message)
