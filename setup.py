#!/usr/bin/python
# -*- encoding: utf-8 -*-
import ast
import re

from setuptools import find_packages
from setuptools import setup

## The version number is kept in one place only, as
## davstream.__version__, and read from there.
_version_re = re.compile(r"__version__\s+=\s+(.*)")
with open("davstream/__init__.py", "rb") as f:
    version = str(
        ast.literal_eval(_version_re.search(f.read().decode("utf-8")).group(1))
    )

if __name__ == "__main__":
    test_packages = [
        "pytest",
        "pytest-asyncio",
        "pytest-coverage",
        "coverage",
        "pyyaml",
    ]

    setup(
        name="davstream",
        version=version,
        description="WebDAV (RFC4918) client library with progress reporting transfers",
        long_description=open("README.md").read(),
        long_description_content_type="text/markdown",
        classifiers=[
            "Development Status :: 4 - Beta",
            "Intended Audience :: Developers",
            "License :: OSI Approved :: Apache Software License",
            "Operating System :: OS Independent",
            "Programming Language :: Python",
            "Programming Language :: Python :: 3",
            "Framework :: AsyncIO",
            "Topic :: Internet :: WWW/HTTP",
            "Topic :: Software Development :: Libraries " ":: Python Modules",
        ],
        keywords="webdav",
        license="Apache-2.0",
        python_requires=">=3.8",
        packages=find_packages(exclude=["tests", "tests.*"]),
        include_package_data=True,
        zip_safe=False,
        install_requires=[
            "httpx",
            "lxml",
            "anyio",
            "typing_extensions",
        ],
        extras_require={
            "yaml": ["pyyaml"],
            "test": test_packages,
        },
    )
