"""
Setup script for npegen

Installs the generator package, its Jinja2 templates and the `npegen`
console script.
"""

from pathlib import Path
from setuptools import setup, find_packages


# Read version from src/npegen/__init__.py
def get_version():
    version_file = Path("src/npegen/__init__.py")
    if version_file.exists():
        for line in version_file.read_text().splitlines():
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"').strip("'")
    return "0.1.0"


# Read long description from README
def get_long_description():
    readme = Path("README.md")
    if readme.exists():
        return readme.read_text(encoding="utf-8")
    return ""


setup(
    name="npegen",
    version=get_version(),
    description="Type-specialization and dispatch generator for numeric Python extensions",
    long_description=get_long_description(),
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages("src"),
    package_data={"npegen": ["templates/*.j2"]},
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "jinja2>=3.0",
        "numpy>=1.21",
        "scipy>=1.7",
        "tomli>=1.1; python_version < '3.11'",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "npegen=npegen.cli:main",
        ],
    },
    zip_safe=False,  # Templates are loaded from the package directory
)
