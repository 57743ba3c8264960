"""The Base module of the `pr_coverity` package. This holds the objects shared by
multiple modules."""
import os
import logging
from typing import Dict
from requests import Response
from rich.logging import RichHandler

logging.basicConfig(
    format="%(name)s: %(message)s",
    handlers=[RichHandler(show_time=False)],
)

#: The logging.Logger object used for outputting data.
logger = logging.getLogger("PR Coverity")

# global constant variables
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN", os.getenv("TOKEN", ""))
GITHUB_WEBHOOK_API = os.getenv("GITHUB_WEBHOOK_API", "").rstrip("/")
GITHUB_SHA = os.getenv("GITHUB_SHA", "")
STATUS_CONTEXT = "TAOS/pr-prebuild-coverity"


class CheckResult:
    """The possible outcomes of the coverity module."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIP = "skip"


class Globals:
    """Global variables for re-use (non-constant)."""

    CHECK_RESULT: str = CheckResult.SKIP
    """The outcome of the module, one of the `CheckResult` values."""
    FILE_NAME: str = ""
    """The changed source file that triggered the scan."""
    response_buffer = Response()
    """A shared response object for `requests` module."""


def make_headers() -> Dict[str, str]:
    """Create the headers used for the webhook API requests."""
    headers = {"Accept": "application/vnd.github.v3+json"}
    if GITHUB_TOKEN:
        headers["Authorization"] = f"token {GITHUB_TOKEN}"
    return headers


def log_response_msg() -> bool:
    """Output the response buffer's message on a failed request.

    Returns:
        A bool describing if response's status code was less than 400.
    """
    if Globals.response_buffer.status_code >= 400:
        logger.error(
            "response returned %d message: %s",
            Globals.response_buffer.status_code,
            Globals.response_buffer.text,
        )
        return False
    return True
