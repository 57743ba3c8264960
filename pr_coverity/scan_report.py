"""A crawler that fetches the build and defect summary of a project from the
Coverity Scan website.

!!! info "See Also"
    - [Coverity Scan build submission frequency](https://scan.coverity.com/faq#frequency)
"""
import re
from pathlib import Path
from typing import Optional
import bs4
import requests
from . import Globals, logger, log_response_msg

DEFECT_REPORT = "cov-report-defect.html"
BUILD_REPORT = "cov-report-build.html"

#: Up to 28 builds per week (max 4 per day) for projects under 100K lines of code,
#: down to 7 builds per week (max 1 per day) above 1 million lines of code.
DEFAULT_TIME_LIMIT = 23  # unit is hour

RELATIVE_TIME = re.compile(
    r"\b(\d+|an?)\s+(minute|hour|day|week|month|year)s?\s+ago", re.IGNORECASE
)
HOURS_PER_UNIT = {
    "minute": 0,
    "hour": 1,
    "day": 24,
    "week": 24 * 7,
    "month": 24 * 30,
    "year": 24 * 365,
}


class ScanReport:
    """The fields scraped from the project page of Coverity Scan.

    Attributes:
        last_build (str): When the last build was analyzed (e.g. "about 5 hours
            ago").
        total_defects (str): The number of defects found so far.
        outstanding (str): The number of outstanding defects.
        dismissed (str): The number of dismissed defects.
        fixed (str): The number of fixed defects.
        build_status (str): The status of the last build submission. This is
            only available from the build page that requires a login.
    """

    def __init__(
        self,
        last_build: str = "",
        total_defects: str = "",
        outstanding: str = "",
        dismissed: str = "",
        fixed: str = "",
    ):
        self.last_build = last_build
        self.total_defects = total_defects
        self.outstanding = outstanding
        self.dismissed = dismissed
        self.fixed = fixed
        self.build_status = ""

    def __repr__(self) -> str:
        return (
            f"<ScanReport last build {self.last_build!r}: {self.total_defects} "
            f"defects ({self.outstanding} outstanding, {self.dismissed} dismissed, "
            f"{self.fixed} fixed)>"
        )

    def hours_since_last_build(self) -> Optional[int]:
        """The age of the last analyzed build in hours (None if unknown)."""
        return hours_since(self.last_build)


def hours_since(text: str) -> Optional[int]:
    """Translate a relative time (as displayed on the website) into hours.

    Args:
        text: A phrase like "about 5 hours ago" or "3 days ago".

    Returns:
        The number of whole hours or None if the phrase isn't understood.
    """
    match = RELATIVE_TIME.search(text)
    if match is None:
        return None
    amount, unit = match.groups()
    count = 1 if amount.lower() in ("a", "an") else int(amount)
    return count * HOURS_PER_UNIT[unit.lower()]


def _find_label(soup: bs4.BeautifulSoup, label: str) -> Optional[bs4.Tag]:
    """Get the element whose (whole) text is the given label."""
    pattern = re.compile(rf"^\s*{re.escape(label)}:?\s*$")
    found = soup.find(string=pattern)
    if found is None or not isinstance(found.parent, bs4.Tag):
        return None
    return found.parent


def _adjacent_text(label: bs4.Tag, previous: bool = False) -> str:
    """Get the text of the element next to (or before) a label. If the label
    has no such sibling, then its ancestors are searched instead."""
    tag: Optional[bs4.Tag] = label
    while tag is not None and not isinstance(tag, bs4.BeautifulSoup):
        sibling = (
            tag.find_previous_sibling(True) if previous else tag.find_next_sibling(True)
        )
        if sibling is not None:
            return sibling.get_text(" ", strip=True)
        tag = tag.parent
    return ""


def _scrape(soup: bs4.BeautifulSoup, label: str, previous: bool = False) -> str:
    tag = _find_label(soup, label)
    if tag is None:
        logger.debug("could not find %r in the report", label)
        return ""
    return _adjacent_text(tag, previous)


def parse_scan_report(html: str) -> ScanReport:
    """Parse the project page of Coverity Scan.

    The last build time is displayed after its label, whereas each defect count
    is displayed before its label.
    """
    soup = bs4.BeautifulSoup(html, "html.parser")
    return ScanReport(
        last_build=_scrape(soup, "Last build analyzed"),
        total_defects=_scrape(soup, "Total defects", previous=True),
        outstanding=_scrape(soup, "Outstanding", previous=True),
        dismissed=_scrape(soup, "Dismissed", previous=True),
        fixed=_scrape(soup, "Fixed", previous=True),
    )


def parse_build_status(html: str) -> str:
    """Get the "Last Build Status:" line from the build page of a project."""
    soup = bs4.BeautifulSoup(html, "html.parser")
    found = soup.find(string=re.compile("Last Build Status:"))
    if found is None:
        return ""
    label = str(found).strip()
    tag = found.parent
    # the status may follow the label in a sibling of the label's element
    while (
        isinstance(tag, bs4.Tag)
        and tag.get_text(strip=True) == label
        and isinstance(tag.parent, bs4.Tag)
        and not isinstance(tag.parent, bs4.BeautifulSoup)
    ):
        tag = tag.parent
    if isinstance(tag, bs4.Tag):
        return tag.get_text(" ", strip=True)
    return label


def _download(url: str, output: str) -> Optional[str]:
    logger.info("Fetching %s", url)
    try:
        Globals.response_buffer = requests.get(url)
    except requests.RequestException as exc:
        logger.error("failed to fetch %s: %s", url, exc)
        return None
    Path(output).write_text(Globals.response_buffer.text, encoding="utf-8")
    if not log_response_msg():
        return None
    return Globals.response_buffer.text


def fetch_scan_report(project_url: str, login: bool = False) -> ScanReport:
    """Fetch the defects (outstanding, dismissed, fixed) and the time of the last
    analyzed build from a project page of Coverity Scan.

    Args:
        project_url: The project page (e.g.
            ``https://scan.coverity.com/projects/<project>``).
        login: Also crawl the build page of the project. This page is only
            accessible for a logged in user.

    Returns:
        A [`ScanReport`][pr_coverity.scan_report.ScanReport]. The report is empty
        if the page could not be fetched.
    """
    html = _download(project_url, DEFECT_REPORT)
    report = ScanReport() if html is None else parse_scan_report(html)
    logger.info("Last build analyzed: %s", report.last_build)
    logger.info("Total defects: %s", report.total_defects)
    logger.info("-Outstanding: %s", report.outstanding)
    logger.info("-Dismissed: %s", report.dismissed)
    logger.info("-Fixed: %s", report.fixed)

    if login:
        html = _download(
            project_url.rstrip("/") + "/builds/new?tab=upload", BUILD_REPORT
        )
        if html is not None:
            report.build_status = parse_build_status(html)
        logger.info("Build Status: %s", report.build_status)
    return report


def is_quota_full(report: ScanReport, time_limit: int = DEFAULT_TIME_LIMIT) -> bool:
    """Check the build submission quota for a project.

    Args:
        report: The crawled project page.
        time_limit: The number of hours that must pass between 2 builds.

    Returns:
        False only if the last build is known to be older than `time_limit`.
    """
    hours = report.hours_since_last_build()
    logger.debug("(%s) hour", hours)
    if hours is not None and hours > time_limit:
        logger.info(
            "Okay. Continuing the task because the last build passed %d hours.",
            time_limit,
        )
        return False
    logger.info(
        "Ooops. Stopping the task because the last build is less than %d hours.",
        time_limit,
    )
    return True
