# setup.py - Package bitmatch
import re
from pathlib import Path

from setuptools import setup, find_packages

version = re.search(
    r'^__version__ = "([^"]+)"',
    (Path(__file__).parent / "bitmatch" / "__init__.py").read_text(),
    re.M,
).group(1)

setup(
    name="bitmatch",
    version=version,
    description="Hashed-value column fingerprints and approximate overlap matching",
    packages=find_packages(exclude=["tests", "tests.*", "examples", "examples.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "duckdb",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
