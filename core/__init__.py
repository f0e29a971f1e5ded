from core.config import *
from core.logger import logging
from core.result import Result


__all__ = [
    "logging",
    "Result",
]
