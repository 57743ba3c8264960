#!/usr/bin/env python
"""Bootstrapper for the CI server's coverity module.

The module is installed as the `pr-coverity` executable.
"""
import setuptools

setuptools.setup(
    name="pr-coverity",
    version="0.1.0",
    description="Check defects and security issues in the C/C++ source files of a "
    "pull request with Coverity Scan",
    packages=["pr_coverity"],
    python_requires=">=3.7",
    install_requires=["requests", "rich", "beautifulsoup4"],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["pr-coverity=pr_coverity.run:main"]},
)
