"""Run the static analysis of coverity (cov-build) and submit the result to
Coverity Scan.

!!! info "See Also"
    - [Coverity Scan build submission](https://scan.coverity.com/download?tab=cxx)
    - [Using ccache with cov-build](https://community.synopsys.com/s/article/While-using-ccache-prefix-to-build-project-c-primary-source-files-are-not-captured)
"""
import os
import shutil
import subprocess
import tarfile
from datetime import datetime
from pathlib import Path, PurePath
from typing import Optional
import requests
from . import Globals, logger, log_response_msg

#: The commands that the server administrator has to install.
REQUIRED_COMMANDS = [
    "file",
    "git",
    "cov-build",
    "cov-configure",
    "meson",
    "ninja",
    "ccache",
]
SUPPORTED_BUILD_TYPES = ["meson"]
COV_BUILD_SUCCESS = "The cov-build utility completed successfully"
COV_RESULT_PREFIX = "coverity_defects_result"
UPLOAD_OUTPUT = "curl_output.txt"


class MissingCommandError(RuntimeError):
    """Raised when a required command is not installed on the CI server."""


class UnsupportedBuildType(ValueError):
    """Raised when the project is built with something other than meson."""


def check_cmd_dep(cmd: str) -> None:
    """Make sure a command is available from the PATH environment variable.

    Raises:
        MissingCommandError: if the command is not found.
    """
    if shutil.which(cmd) is None:
        raise MissingCommandError(f"{cmd} is not installed. Please install it.")
    logger.debug("found %s", cmd)


def log_coverity_version() -> None:
    """Display the coverity version installed on the CI server. Note that an
    out-of-date version can generate an incorrect result."""
    try:
        results = subprocess.run(["coverity", "--version"], capture_output=True)
    except OSError as exc:
        logger.warning("could not get the coverity version: %s", exc)
        return
    logger.info("%s", results.stdout.decode(encoding="utf-8").strip())


def configure_compilers() -> None:
    """Configure the compiler types and commands for cov-build.

    The compilers are wrapped with ccache, so ccache is registered as a
    prefix. Otherwise the primary source files are not captured.
    """
    for comptype, compiler in [("prefix", "ccache"), ("gcc", "cc"), ("g++", "c++")]:
        cmds = ["cov-configure", "--comptype", comptype, "--compiler", compiler]
        logger.info('Running "%s"', " ".join(cmds))
        results = subprocess.run(cmds, capture_output=True)
        if results.returncode:
            logger.warning(
                "%s raised the following error(s):\n%s",
                cmds[0],
                results.stderr.decode(encoding="utf-8"),
            )


def result_file_name(file_name: str, report_dir: str = "../report") -> Path:
    """Get the path of the file that holds the output of cov-build."""
    flat_name = "_".join(PurePath(file_name).parts)
    return Path(report_dir, f"{COV_RESULT_PREFIX}_{flat_name}.txt")


def run_cov_build(
    file_name: str,
    build_type: str = "meson",
    build_dir: str = "build-coverity",
    cov_dir: str = "cov-int",
    report_dir: str = "../report",
) -> bool:
    """Build the project with cov-build to execute a static analysis.

    Args:
        file_name: The changed source file that triggered the analysis. It only
            names the report; coverity inspects all source files.
        build_type: The build system of the project.
        build_dir: The directory to build the project in.
        cov_dir: The intermediate directory for the result of cov-build.
        report_dir: The directory to save the output of cov-build in.

    Returns:
        True if cov-build completed successfully.

    Raises:
        UnsupportedBuildType: if `build_type` is not supported.
    """
    if build_type not in SUPPORTED_BUILD_TYPES:
        raise UnsupportedBuildType(
            f"Sorry. We currently provide the {', '.join(SUPPORTED_BUILD_TYPES)} "
            f"build type(s), not '{build_type}'."
        )
    shutil.rmtree(build_dir, ignore_errors=True)
    cmds = ["meson", "setup", build_dir]
    logger.info('Running "%s"', " ".join(cmds))
    results = subprocess.run(cmds, capture_output=True)
    if results.returncode:
        logger.warning(
            "meson raised the following error(s):\n%s",
            results.stderr.decode(encoding="utf-8"),
        )

    cmds = ["cov-build", "--dir", cov_dir, "ninja", "-C", build_dir]
    logger.info('Running "%s"', " ".join(cmds))
    results = subprocess.run(cmds, capture_output=True)
    report = result_file_name(file_name, report_dir)
    report.parent.mkdir(parents=True, exist_ok=True)
    report.write_bytes(results.stdout)
    output = results.stdout.decode(encoding="utf-8", errors="replace")
    logger.debug("Output from cov-build:\n%s", output)
    if results.stderr:
        logger.info(
            "cov-build made the following summary:\n%s",
            results.stderr.decode(encoding="utf-8", errors="replace"),
        )
    return COV_BUILD_SUCCESS in output


def create_archive(cov_dir: str = "cov-int", archive: str = "cov_project.tgz") -> Path:
    """Create a (gzip compressed) tar archive from the result of cov-build."""
    archive_path = Path(archive)
    with tarfile.open(archive_path, "w:gz") as tar:
        tar.add(cov_dir, arcname=os.path.basename(os.path.normpath(cov_dir)))
    logger.info("Created %s (%d bytes)", archive, archive_path.stat().st_size)
    return archive_path


def submit_build(
    upload_url: str,
    token: str,
    email: str,
    archive: Path,
    version: Optional[str] = None,
    description: Optional[str] = None,
) -> bool:
    """Commit the output of cov-build to Coverity Scan.

    Args:
        upload_url: The build submission URL of the project.
        token: The project's token for build submissions.
        email: The email address to notify when the analysis is done.
        archive: The tar archive of the cov-build result.
        version: The version of the build. Defaults to the current date and time.
        description: The description of the build.

    Returns:
        True if the build was accepted.
    """
    if version is None:
        version = datetime.now().strftime("%Y%m%d-%H%M")
    if description is None:
        description = f"{version}-coverity"
    form = {
        "token": token,
        "email": email,
        "version": version,
        "description": description,
    }
    logger.info("Submitting %s (version %s) to %s", archive, version, upload_url)
    try:
        with open(archive, "rb") as tarball:
            Globals.response_buffer = requests.post(
                upload_url,
                data=form,
                files={"file": (archive.name, tarball, "application/gzip")},
            )
    except requests.RequestException as exc:
        logger.error("Ooops... The coverity task is failed: %s", exc)
        return False
    Path(UPLOAD_OUTPUT).write_text(Globals.response_buffer.text, encoding="utf-8")
    logger.info("Got %d from POSTing the build", Globals.response_buffer.status_code)
    return log_response_msg()
