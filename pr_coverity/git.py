"""Gather the files changed by the last commit and decide which of them the
coverity module should give attention to."""
import os
import subprocess
from pathlib import PurePath
from typing import List, Tuple
from . import logger


def get_changed_files(repo_root: str = ".") -> List[str]:
    """Read the names of files that a contributor modified (added, moved, copied
    and updated) in the last commit. Deleted files are excluded.

    Args:
        repo_root: The path to the repository's working tree.

    Returns:
        A list of file names relative to the repository root.
    """
    cmds = ["git", "show", "--pretty=format:", "--name-only", "--diff-filter=AMRC"]
    logger.info('Running "%s"', " ".join(cmds))
    results = subprocess.run(cmds, capture_output=True, cwd=repo_root)
    if results.returncode:
        logger.error(
            "git raised the following error(s):\n%s",
            results.stderr.decode(encoding="utf-8", errors="replace"),
        )
        return []
    files = [
        line.strip()
        for line in results.stdout.decode(encoding="utf-8").splitlines()
        if line.strip()
    ]
    logger.debug("Files changed in the last commit:\n\t%s", "\n\t".join(files))
    return files


def is_file_in_list(paths: List[str], file_name: str, prompt: str) -> bool:
    """Determine if a file is specified in a list of paths and/or filenames.

    Args:
        paths: A list of specified paths to compare with. This list can contain a
            specified file, but the file's path must be included as part of the
            filename.
        file_name: The file's path & name being sought in the `paths` list.
        prompt: A debugging prompt to use when the path is found in the list.
    Returns:
        - True if `file_name` is in the `paths` list.
        - False if `file_name` is not in the `paths` list.
    """
    for path in paths:
        result = os.path.commonpath([path, file_name]).replace(os.sep, "/")
        if result == path:
            logger.debug(
                '"./%s" is %s as specified in the domain "./%s"',
                file_name,
                prompt,
                path,
            )
            return True
    return False


def parse_ignore_option(paths: str) -> Tuple[List[str], List[str]]:
    """Parse a given string of paths (separated by a '|') into `ignored` and
    `not_ignored` lists of strings.

    Args:
        paths: This argument conforms to the CLI arg `--ignore` (or `-i`).

    Returns:
        A tuple of lists in which each list is a set of strings.
        - index 0 is the `ignored` list
        - index 1 is the `not_ignored` list
    """
    ignored: List[str] = []
    not_ignored: List[str] = []

    for path in paths.split("|"):
        path = path.strip()  # strip leading/trailing spaces
        if not path:
            continue
        is_included = path.startswith("!")
        if path.startswith("!./" if is_included else "./"):
            path = path.replace("./", "", 1)  # relative dir is assumed
        if is_included:
            not_ignored.append(path[1:])  # strip leading `!`
        else:
            ignored.append(path)

    if ignored:
        logger.info(
            "Ignoring the following paths/files:\n\t./%s",
            "\n\t./".join(f for f in ignored),
        )
    if not_ignored:
        logger.info(
            "Not ignoring the following paths/files:\n\t./%s",
            "\n\t./".join(f for f in not_ignored),
        )
    return (ignored, not_ignored)


def is_text_file(file_name: str) -> bool:
    """Ask the `file` command if a file is plain text.

    Only text files are handled in case there are lots of (binary) files in
    one commit.
    """
    if not os.path.isfile(file_name):
        logger.debug("%s does not exist in the working tree", file_name)
        return False
    results = subprocess.run(["file", file_name], capture_output=True)
    return "ASCII text" in results.stdout.decode(encoding="utf-8", errors="replace")


def filter_source_files(
    files: List[str],
    ext_list: List[str],
    ignored: List[str],
    not_ignored: List[str],
) -> List[str]:
    """Exclude the files that the coverity module does not scan.

    Args:
        files: The changed files of the last commit.
        ext_list: A list of file extensions that are to be examined.
        ignored: A list of paths to explicitly ignore.
        not_ignored: A list of paths to explicitly not ignore.

    Returns:
        The C/C++ source files (in text format) that are to be scanned.
    """
    sources = []
    for file_name in files:
        if is_file_in_list(ignored, file_name, "ignored") and not is_file_in_list(
            not_ignored, file_name, "not ignored"
        ):
            continue
        logger.debug("file name is (%s).", file_name)
        if not is_text_file(file_name):
            continue
        if PurePath(file_name).suffix.lstrip(".") not in ext_list:
            logger.debug("The coverity module does not scan (%s) file.", file_name)
            continue
        logger.debug("(%s) file is source code with the text format.", file_name)
        sources.append(file_name)

    if sources:
        logger.info(
            "Giving attention to the following files:\n\t%s", "\n\t".join(sources)
        )
    else:
        logger.info("No source files need checking!")
    return sources
