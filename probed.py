import asyncio
import logging
import os
import shutil
import sys

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from config import Settings, load_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def configure_logging(settings: Settings) -> None:
    """Console logging through rich, plus an optional plain-text log file."""
    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    handlers: list[logging.Handler] = [console_handler]

    if settings.LOG_FILE:
        log_dir = os.path.dirname(os.path.abspath(settings.LOG_FILE))
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(
            settings.LOG_FILE,
            mode="w" if settings.LOG_TRUNCATE_ON_START else "a",
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        handlers=handlers,
        force=True,
    )


def _check_ping_command(settings: Settings) -> bool:
    """The system backend shells out to ping."""
    if settings.PROBE_BACKEND != "system" or shutil.which("ping") is not None:
        return True

    logging.error("Required system command not found: ping")
    if sys.platform == "win32":
        print("  ping.exe ships with Windows; check your PATH")
    else:
        print("  Debian/Ubuntu: sudo apt-get install iputils-ping")
        print("  RHEL/CentOS: sudo yum install iputils")
        print("  Alpine: sudo apk add iputils")
    return False


def main() -> int:
    try:
        settings = load_settings()
    except ValidationError as exc:
        logging.basicConfig(level=logging.ERROR, format=LOG_FORMAT)
        logging.error(f"Invalid configuration: {exc}")
        return 2

    configure_logging(settings)
    if not _check_ping_command(settings):
        return 1

    from main import run_async_main

    return asyncio.run(run_async_main(settings))


if __name__ == "__main__":
    sys.exit(main())
