"""Check defects and security issues in the C/C++ source files of a pull request
with coverity, then report the result to the pull request via the webhook API. If
executed from command-line, then [`main()`][pr_coverity.run.main] is the
entrypoint.

!!! info "See Also"
    - [Coverity Scan for GitHub projects](https://scan.coverity.com/github)
    - [github rest API reference for statuses](
        https://docs.github.com/en/rest/commits/statuses)
"""
import os
import sys
import argparse
import logging
import urllib.parse
from typing import List, Optional
from . import (
    Globals,
    CheckResult,
    logger,
    GITHUB_TOKEN,
    GITHUB_WEBHOOK_API,
    GITHUB_SHA,
)
from .git import get_changed_files, parse_ignore_option, filter_source_files
from .scan_report import fetch_scan_report, is_quota_full, DEFAULT_TIME_LIMIT
from .cov_build import (
    REQUIRED_COMMANDS,
    MissingCommandError,
    UnsupportedBuildType,
    check_cmd_dep,
    log_coverity_version,
    configure_compilers,
    run_cov_build,
    create_archive,
    submit_build,
)
from .cibot import cibot_report, cibot_comment

# global constant variables
COVERITY_TOKEN = os.getenv("COVERITY_TOKEN", "")

# setup CLI args
cli_arg_parser = argparse.ArgumentParser(
    description=__doc__[: __doc__.find("If executed from")]
)
cli_arg_parser.add_argument(
    "-v",
    "--verbosity",
    type=int,
    default=20,
    help="The logging level. Defaults to level 20 (aka 'logging.INFO').",
)
cli_arg_parser.add_argument(
    "-r",
    "--repo-root",
    default=".",
    help="The relative path to the repository root directory. "
    "Defaults to '%(default)s'.",
)
cli_arg_parser.add_argument(
    "-e",
    "--extensions",
    default=["c", "cc", "cpp", "c++"],
    type=lambda i: [ext.strip().lstrip(".") for ext in i.split(",")],
    help="The file extensions of the source files that trigger the analysis. This "
    "comma-separated string defaults to %(default)s.",
)
cli_arg_parser.add_argument(
    "-i",
    "--ignore",
    default="obsolete|external",
    help="Set this option with paths to ignore. In the case of multiple "
    "paths, separate them with a '|'. Prefix a path with '!' to explicitly not "
    "ignore it. Defaults to '%(default)s'.",
)
cli_arg_parser.add_argument(
    "-b",
    "--build-type",
    default="meson",
    help="The build system of the project. Only 'meson' is supported.",
)
cli_arg_parser.add_argument(
    "--build-dir",
    default="build-coverity",
    help="The directory to build the project in. Defaults to '%(default)s'.",
)
cli_arg_parser.add_argument(
    "--cov-dir",
    default="cov-int",
    help="The intermediate directory of cov-build. Defaults to '%(default)s'.",
)
cli_arg_parser.add_argument(
    "--report-dir",
    default="../report",
    help="The directory to save the output of cov-build in. "
    "Defaults to '%(default)s'.",
)
cli_arg_parser.add_argument(
    "-p",
    "--project",
    default=os.getenv("COVERITY_PROJECT", ""),
    help="The name of the project on Coverity Scan (e.g. 'nnsuite-nnstreamer'). "
    "Defaults to the COVERITY_PROJECT environment variable.",
)
cli_arg_parser.add_argument(
    "--scan-site",
    default="https://scan.coverity.com",
    help="The Coverity Scan website. Defaults to '%(default)s'.",
)
cli_arg_parser.add_argument(
    "--email",
    default=os.getenv("COVERITY_EMAIL", ""),
    help="The email address notified by Coverity Scan when the analysis is done. "
    "Defaults to the COVERITY_EMAIL environment variable.",
)
cli_arg_parser.add_argument(
    "-t",
    "--time-limit",
    type=int,
    default=DEFAULT_TIME_LIMIT,
    help="The number of hours that have to pass since the last analyzed build. "
    "Defaults to %(default)s.",
)
cli_arg_parser.add_argument(
    "-l",
    "--login",
    default="false",
    type=lambda input: input.lower() == "true",
    help="Set this option to 'true' to also crawl the build status of the project. "
    "Defaults to %(default)s.",
)
cli_arg_parser.add_argument(
    "-w",
    "--webhook-api",
    default=GITHUB_WEBHOOK_API,
    help="The REST API of the repository (e.g. "
    "'https://api.github.com/repos/<owner>/<repo>'). "
    "Defaults to the GITHUB_WEBHOOK_API environment variable.",
)
cli_arg_parser.add_argument(
    "-c",
    "--commit",
    default=GITHUB_SHA,
    help="The SHA of the commit to set the status of. "
    "Defaults to the GITHUB_SHA environment variable.",
)
cli_arg_parser.add_argument(
    "--pr",
    default=os.getenv("PR_NUMBER", ""),
    help="The number of the pull request. Defaults to the PR_NUMBER environment "
    "variable.",
)
cli_arg_parser.add_argument(
    "-u",
    "--user",
    default=os.getenv("PR_AUTHOR", ""),
    help="The account name of the pull request's author. Defaults to the "
    "PR_AUTHOR environment variable.",
)
cli_arg_parser.add_argument(
    "--ci-url",
    default=os.getenv("CI_REPORT_URL", ""),
    help="The URL of the CI report for the commit. Defaults to the CI_REPORT_URL "
    "environment variable.",
)


def set_exit_code(override: Optional[int] = None) -> int:
    """Set the module's exit code.

    Args:
        override: The number to use when overriding the module's logic.

    Returns:
        The exit code that was used. If the `override` parameter was not passed,
        then this value will describe (like a bool value) if the check failed.
    """
    exit_code = (
        override
        if override is not None
        else int(Globals.CHECK_RESULT == CheckResult.FAILURE)
    )
    try:
        with open(os.environ["GITHUB_OUTPUT"], "a", encoding="utf-8") as env_file:
            env_file.write(f"checks-failed={exit_code}\n")
    except (KeyError, FileNotFoundError):  # pragma: no cover
        # not executed on a github CI runner; ignore this error when executed locally
        pass
    return exit_code


# setup a separate logger for using github log commands
log_commander = logger.getChild("LOG COMMANDER")  # create a child of our logger obj
log_commander.setLevel(logging.DEBUG)  # be sure that log commands are output
console_handler = logging.StreamHandler()  # Create special stdout stream handler
console_handler.setFormatter(logging.Formatter("%(message)s"))  # no formatted log cmds
log_commander.addHandler(console_handler)  # Use special handler for log_commander
log_commander.propagate = False  # prevent duplicate messages in the parent logger obj


def start_log_group(name: str) -> None:
    """Begin a collapsable group of log statements.

    Args:
        name: The name of the collapsable group
    """
    log_commander.fatal("::group::%s", name)


def end_log_group() -> None:
    """End a collapsable group of log statements."""
    log_commander.fatal("::endgroup::")


def project_url(scan_site: str, project: str) -> str:
    """The page of a project on Coverity Scan."""
    return f"{scan_site.rstrip('/')}/projects/{project}"


def upload_url(scan_site: str, project: str) -> str:
    """The build submission URL of a project on Coverity Scan."""
    query = urllib.parse.urlencode({"project": project})
    return f"{scan_site.rstrip('/')}/builds?{query}"


def scan_changed_files(args: argparse.Namespace, files: List[str]) -> str:
    """Run coverity if the changed files include C/C++ source code.

    Although there may be many source files, coverity only runs once because it
    inspects all source files of the project.

    Args:
        args: The parsed CLI args.
        files: The changed C/C++ source files.

    Returns:
        The check result ("success", "failure" or "skip").
    """
    if not files:
        return CheckResult.SKIP
    file_name = files[0]
    Globals.FILE_NAME = file_name
    if not args.project:
        logger.error("The name of the project on Coverity Scan is required!")
        return CheckResult.SKIP

    start_log_group(f"Running coverity for {file_name}")
    try:
        configure_compilers()

        # check the build submission quota of this project
        report = fetch_scan_report(
            project_url(args.scan_site, args.project), args.login
        )
        if is_quota_full(report, args.time_limit):
            logger.info("Sorry. The build quota of the coverity scan is exceeded.")
            logger.info("Stopping the coverity module.")
            return CheckResult.SKIP

        try:
            passed = run_cov_build(
                file_name,
                build_type=args.build_type,
                build_dir=args.build_dir,
                cov_dir=args.cov_dir,
                report_dir=args.report_dir,
            )
        except UnsupportedBuildType as exc:
            logger.warning("%s", exc)
            logger.warning(
                "If you want to add new build type, Please contribute the build type."
            )
            return CheckResult.SKIP

        if not passed:
            logger.error("cov-build: failed. file name: %s", file_name)
            return CheckResult.FAILURE
        logger.info("cov-build: passed. file name: %s", file_name)

        if not COVERITY_TOKEN:
            logger.warning("COVERITY_TOKEN is not set. The build is not submitted.")
            return CheckResult.SUCCESS
        archive = create_archive(args.cov_dir)
        if submit_build(
            upload_url(args.scan_site, args.project),
            COVERITY_TOKEN,
            args.email,
            archive,
        ):
            logger.info("Please visit %s", project_url(args.scan_site, args.project))
        return CheckResult.SUCCESS
    finally:
        end_log_group()


def report_result(args: argparse.Namespace, check_result: str) -> bool:
    """Post the commit status (and a comment on failure) to the pull request.

    Args:
        args: The parsed CLI args.
        check_result: The result of
            [`scan_changed_files()`][pr_coverity.run.scan_changed_files].

    Returns:
        A bool describing if all requests succeeded.
    """
    if not GITHUB_TOKEN or not args.webhook_api:
        logger.error("The GITHUB_TOKEN and GITHUB_WEBHOOK_API are required!")
        return False

    if check_result == CheckResult.SUCCESS:
        logger.info("Passed. Static code analysis tool for security - coverity.")
        return cibot_report(
            args.webhook_api,
            "success",
            "Successfully coverity has done the static analysis.",
            project_url(args.scan_site, args.project),
            args.commit,
        )
    if check_result == CheckResult.SKIP:
        logger.info("Skipped. Static code analysis tool for security - coverity.")
        return cibot_report(
            args.webhook_api,
            "success",
            "Skipped. This module did not investigate your PR.",
            args.ci_url,
            args.commit,
        )

    logger.info("Failed. Static code analysis tool for security - coverity.")
    reported = cibot_report(
        args.webhook_api,
        "failure",
        "Oooops. coverity is not completed. "
        "Please ask the CI administrator on this issue.",
        args.ci_url,
        args.commit,
    )
    # inform the PR submitter of a hint in more detail
    commented = cibot_comment(
        args.webhook_api,
        f":octocat: **cibot**: {args.user}, **{Globals.FILE_NAME}** "
        "includes bug(s). "
        "Please fix security flaws in your commit before entering a review process.",
        args.pr,
    )
    return reported and commented


def main():
    """The main script."""

    # The parsed CLI args
    args = cli_arg_parser.parse_args()

    # set logging verbosity
    logger.setLevel(int(args.verbosity))
    logger.info(
        "[MODULE] TAOS/pr-prebuild-coverity: "
        "Check defects and security issues in C/C++ source codes with coverity"
    )

    # change working directory
    os.chdir(args.repo_root)

    start_log_group("Check required commands")
    try:
        for cmd in REQUIRED_COMMANDS:
            check_cmd_dep(cmd)
    except MissingCommandError as exc:
        logger.error("%s", exc)
        end_log_group()
        sys.exit(set_exit_code(1))
    log_coverity_version()
    end_log_group()

    ignored, not_ignored = parse_ignore_option(args.ignore)
    start_log_group("Get list of changed source files")
    files = filter_source_files(
        get_changed_files(), args.extensions, ignored, not_ignored
    )
    end_log_group()

    Globals.CHECK_RESULT = scan_changed_files(args, files)

    start_log_group("Posting commit status")
    report_result(args, Globals.CHECK_RESULT)
    end_log_group()
    sys.exit(set_exit_code())


if __name__ == "__main__":
    main()
