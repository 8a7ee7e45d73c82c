from sanic.log import access_logger as logger
from sanic.log import logger as root_logger
from sanic.logging.color import Colors as c

__version__ = "1.0.0"

__all__ = ["__version__", "logger", "root_logger", "c"]
