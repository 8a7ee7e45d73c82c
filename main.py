"""keyprobe - Main Application Entry Point

HTTP service validating batches of OpenAI, Claude and Gemini API keys
against live endpoints with bounded concurrency, jittered retries and
Gemini paid tier detection.
"""

# Standard library imports
import logging

# Third-party imports
from sanic import Sanic, Request
from sanic.exceptions import SanicException
from sanic.response import json as json_response, HTTPResponse, empty
from sanic.log import LOGGING_CONFIG_DEFAULTS

# Local imports
from keyprobe import logger, c, __version__ as VERSION
from keyprobe.core.config import settings
from keyprobe.api.routes import api_bp
from keyprobe.services.batch_service import batch_controller


# Suppress verbose logging from third-party libraries
logging.getLogger("asyncio").setLevel(logging.CRITICAL)

# Configure Sanic logging
log_config = LOGGING_CONFIG_DEFAULTS.copy()
log_config["formatters"]["access"]["class"] = "sanic.logging.formatter.AutoFormatter"
log_config["formatters"]["access"]["format"] = settings.log_format
log_config["formatters"]["access"]["datefmt"] = "%H:%M:%S"

# Create Sanic application
app = Sanic("keyprobe", log_config=log_config)
app.config["REAL_IP_HEADER"] = "X-Real-IP"
app.config["PROXIES_COUNT"] = 1

# Register API blueprint
app.blueprint(api_bp)


@app.get("/", name="index")
async def index(request: Request):
    return empty()


@app.get("/version", name="version")
async def version(request: Request):
    return json_response({"version": VERSION})


@app.before_server_stop
async def server_stop(app: Sanic, _loop) -> None:
    """Ask an active run to stop scheduling new tests before shutdown.

    Args:
        app: Sanic application instance
        loop: Event loop (unused, required by Sanic)
    """
    if batch_controller.cancel():
        logger.info(f"{c.YELLOW}Active batch run cancelled for shutdown{c.END}")


@app.exception(Exception)
async def handle_exception(request: Request, exception: Exception) -> HTTPResponse:
    """Global exception handler for unhandled errors.

    Args:
        request: The request that caused the exception
        exception: The unhandled exception

    Returns:
        JSON error response with the exception status, 500 for unexpected errors
    """
    if isinstance(exception, SanicException):
        return json_response(
            {"success": False, "error": str(exception)}, status=exception.status_code
        )

    logger.error(f"Unhandled exception: {exception}", exc_info=True)
    return json_response(
        {
            "success": False,
            "error": "Internal server error",
            "message": str(exception),
        },
        status=500,
    )


if __name__ == "__main__":
    # Run state lives in this process, so a single worker serves it
    app.run(
        host=settings.app_host,
        port=settings.app_port,
        dev=settings.app_debug,
        workers=settings.app_worker,
    )
