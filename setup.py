"""Setup script for calproxy, the merged calendar feed proxy."""

from pathlib import Path

from setuptools import find_packages, setup

HERE = Path(__file__).parent


def read_requirements(path: Path) -> tuple[list[str], list[str]]:
    """Split requirements.txt into runtime and test (pytest*) requirements."""
    runtime, test = [], []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            (test if line.startswith("pytest") else runtime).append(line)
    return runtime, test


readme_file = HERE / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""
requirements, test_requirements = read_requirements(HERE / "requirements.txt")

setup(
    name="calproxy",
    version="0.1.0",
    description="Serve the calendar feeds listed on an index page as one merged iCalendar feed",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="calproxy maintainers",
    # Package configuration
    packages=find_packages(include=["calproxy", "calproxy.*"]),
    include_package_data=True,
    # Dependencies
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
        "dev": test_requirements
        + [
            "mypy>=1.0.0",
            "ruff>=0.4.0",
        ],
    },
    # typing.assert_never
    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: No Input/Output (Daemon)",
        "Environment :: Web Environment",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
        "Topic :: Internet :: Proxy Servers",
        "Framework :: AsyncIO",
    ],
    keywords="calendar ics icalendar proxy aggregate caldav prometheus async",
    entry_points={
        "console_scripts": [
            "calproxy=calproxy.__main__:main",
        ],
    },
    zip_safe=False,
    platforms=["linux", "macos"],
)
