"""keyprobe CLI - Command-line interface for one-shot validation runs

Validates the keys of a file (or stdin) without starting the web server and
prints a summary by status.
"""

# Standard library imports
import argparse
import asyncio
import logging
import signal
import sys

# Third-party imports
from pydantic import ValidationError as PydanticValidationError

# Local imports
from keyprobe.core.config import settings
from keyprobe.exceptions import ValidationError
from keyprobe.models import CredentialStatus, ProviderType, RunRequest
from keyprobe.services.batch_service import BatchController

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Suppress verbose logging from third-party libraries
logging.getLogger("asyncio").setLevel(logging.CRITICAL)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Validate API keys against live endpoints")
    parser.add_argument("file", nargs="?", default="-", help="Key file, one per line ('-' for stdin)")
    parser.add_argument(
        "--provider",
        required=True,
        choices=[provider.value for provider in ProviderType],
    )
    parser.add_argument("--model", required=True, help="Model used for the test call")
    parser.add_argument("--proxy-url", default=None, help="API base URL override")
    parser.add_argument(
        "--concurrency", type=int, default=settings.default_concurrency
    )
    parser.add_argument("--retries", type=int, default=settings.default_max_retries)
    parser.add_argument(
        "--show",
        choices=[status.value for status in CredentialStatus],
        default=None,
        help="Print the keys that ended with this status",
    )
    return parser


def read_keys(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, encoding="utf-8") as f:
        return f.read()


async def main(argv=None) -> int:
    """Main CLI entry point - runs one batch and prints the results."""
    args = build_parser().parse_args(argv)
    controller = BatchController()

    last_reported = {"percent": -1}

    def report(completed: int, total: int) -> None:
        percent = int(completed * 100 / total) if total else 100
        if percent // 10 != last_reported["percent"] // 10:
            last_reported["percent"] = percent
            logger.info(f"Progress: {completed}/{total} ({percent}%)")

    controller.subscribe(report)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, controller.cancel)
    except NotImplementedError:
        pass

    try:
        request = RunRequest(
            provider=args.provider,
            model=args.model,
            keys=read_keys(args.file),
            proxy_base_url=args.proxy_url,
            concurrency_limit=args.concurrency,
            max_retries=args.retries,
        )
        run = await controller.run(request)
    except ValidationError as e:
        logger.error(f"✗ {e}")
        return 2
    except PydanticValidationError as e:
        logger.error(f"✗ Invalid parameter: {e.errors()[0]['msg']}")
        return 2
    except Exception as e:
        logger.error(f"✗ CLI execution failed: {e}", exc_info=True)
        raise

    if run.duplicate_count:
        logger.info(f"Removed {run.duplicate_count} duplicate key(s)")
    for status, count in run.count_by_status().items():
        if count:
            print(f"{status:>13}: {count}")

    if args.show:
        for cred in run.credentials_with(CredentialStatus(args.show)):
            print(cred.value)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
