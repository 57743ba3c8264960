"""Tests related to running cov-build and submitting its result."""
import subprocess
import tarfile
from pathlib import Path
from typing import List
import pytest
import requests
import pr_coverity.cov_build
from pr_coverity.cov_build import (
    MissingCommandError,
    UnsupportedBuildType,
    check_cmd_dep,
    configure_compilers,
    run_cov_build,
    result_file_name,
    create_archive,
    submit_build,
    COV_BUILD_SUCCESS,
    UPLOAD_OUTPUT,
)


def make_response(status_code: int, text: str = "") -> requests.Response:
    """Create a response object without a network request."""
    response = requests.Response()
    response.status_code = status_code
    response._content = text.encode("utf-8")  # pylint: disable=protected-access
    return response


class FakeRun:
    """Record the issued commands instead of running them."""

    def __init__(self, stdout: bytes = b"", returncode: int = 0):
        self.stdout = stdout
        self.returncode = returncode
        self.cmds: List[List[str]] = []

    def __call__(self, cmds, **kwargs):
        self.cmds.append(cmds)
        return subprocess.CompletedProcess(
            cmds, self.returncode, stdout=self.stdout, stderr=b""
        )


def test_missing_command(monkeypatch: pytest.MonkeyPatch):
    """A command that is not installed raises an error."""
    monkeypatch.setattr(pr_coverity.cov_build.shutil, "which", lambda cmd: None)
    with pytest.raises(MissingCommandError, match="cov-build is not installed"):
        check_cmd_dep("cov-build")


def test_found_command(monkeypatch: pytest.MonkeyPatch):
    """An installed command passes the check."""
    monkeypatch.setattr(
        pr_coverity.cov_build.shutil, "which", lambda cmd: f"/usr/bin/{cmd}"
    )
    check_cmd_dep("ninja")


def test_configure_compilers(monkeypatch: pytest.MonkeyPatch):
    """ccache is configured as a prefix of the C and C++ compilers."""
    fake_run = FakeRun()
    monkeypatch.setattr(pr_coverity.cov_build.subprocess, "run", fake_run)
    configure_compilers()
    assert fake_run.cmds == [
        ["cov-configure", "--comptype", "prefix", "--compiler", "ccache"],
        ["cov-configure", "--comptype", "gcc", "--compiler", "cc"],
        ["cov-configure", "--comptype", "g++", "--compiler", "c++"],
    ]


def test_result_file_name():
    """Nested source files are flattened into one report name."""
    assert result_file_name("gst/tensor_filter.c", "report") == Path(
        "report", "coverity_defects_result_gst_tensor_filter.c.txt"
    )


@pytest.mark.parametrize(
    "stdout,expected",
    [
        (f"3 C/C++ compilation units (100%) are ready.\n{COV_BUILD_SUCCESS}.\n", True),
        ("[ERROR] No files were emitted.\n", False),
    ],
    ids=["completed", "no emitted files"],
)
def test_run_cov_build(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, stdout: str, expected: bool
):
    """Build the project with meson under cov-build and save the output."""
    monkeypatch.chdir(str(tmp_path))
    Path("build-coverity").mkdir()
    Path("build-coverity", "stale.o").write_bytes(b"\0")
    fake_run = FakeRun(stdout=stdout.encode("utf-8"))
    monkeypatch.setattr(pr_coverity.cov_build.subprocess, "run", fake_run)
    assert expected is run_cov_build("gst/tensor_filter.c", report_dir="report")
    assert not Path("build-coverity").exists()  # removed before building
    assert fake_run.cmds == [
        ["meson", "setup", "build-coverity"],
        ["cov-build", "--dir", "cov-int", "ninja", "-C", "build-coverity"],
    ]
    report = result_file_name("gst/tensor_filter.c", "report")
    assert report.read_text(encoding="utf-8") == stdout


def test_unsupported_build_type(monkeypatch: pytest.MonkeyPatch):
    """Only meson is supported."""
    fake_run = FakeRun()
    monkeypatch.setattr(pr_coverity.cov_build.subprocess, "run", fake_run)
    with pytest.raises(UnsupportedBuildType):
        run_cov_build("demo.c", build_type="cmake")
    assert not fake_run.cmds


def test_create_archive(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """The archive holds the intermediate directory of cov-build."""
    monkeypatch.chdir(str(tmp_path))
    Path("cov-int", "emit").mkdir(parents=True)
    Path("cov-int", "build-log.txt").write_text("log", encoding="utf-8")
    archive = create_archive()
    with tarfile.open(archive, "r:gz") as tar:
        names = tar.getnames()
    assert "cov-int/build-log.txt" in names
    assert "cov-int/emit" in names


def test_submit_build(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """The archive and its metadata are posted as a multipart form."""
    monkeypatch.chdir(str(tmp_path))
    archive = Path("cov_project.tgz")
    archive.write_bytes(b"tarball")
    posted = {}

    def fake_post(url, data=None, files=None, **kwargs):
        posted["url"] = url
        posted["data"] = data
        name, tarball, mime = files["file"]
        posted["file"] = (name, tarball.read(), mime)
        return make_response(201, "Build successfully submitted.")

    monkeypatch.setattr(pr_coverity.cov_build.requests, "post", fake_post)
    assert submit_build(
        "https://scan.coverity.com/builds?project=demo",
        "secret",
        "ci@example.com",
        archive,
        version="20190520-1200",
    )
    assert posted["url"] == "https://scan.coverity.com/builds?project=demo"
    assert posted["data"] == {
        "token": "secret",
        "email": "ci@example.com",
        "version": "20190520-1200",
        "description": "20190520-1200-coverity",
    }
    assert posted["file"] == ("cov_project.tgz", b"tarball", "application/gzip")
    assert Path(UPLOAD_OUTPUT).read_text(encoding="utf-8") == (
        "Build successfully submitted."
    )


def test_submit_rejected(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """A rejected submission (e.g. a wrong token) is reported as a failure."""
    monkeypatch.chdir(str(tmp_path))
    archive = Path("cov_project.tgz")
    archive.write_bytes(b"tarball")
    monkeypatch.setattr(
        pr_coverity.cov_build.requests,
        "post",
        lambda url, **kwargs: make_response(401, "Access denied"),
    )
    assert not submit_build("https://scan", "bad", "ci@example.com", archive)


def test_submit_network_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """A connection failure is reported as a failure."""
    monkeypatch.chdir(str(tmp_path))
    archive = Path("cov_project.tgz")
    archive.write_bytes(b"tarball")

    def fake_post(url, **kwargs):
        raise requests.ConnectionError("connection reset")

    monkeypatch.setattr(pr_coverity.cov_build.requests, "post", fake_post)
    assert not submit_build("https://scan", "token", "ci@example.com", archive)
