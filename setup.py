"""
Setup script for Capacity Orchestrator

Provisions on-demand compute capacity for batch jobs, runs each job once the
capacity is ready and reliably releases the capacity afterwards.
"""

from setuptools import setup, find_packages
import pathlib

here = pathlib.Path(__file__).parent.resolve()

# Get the long description from the README file
try:
    long_description = (here / "README.md").read_text(encoding="utf-8")
except FileNotFoundError:
    long_description = """
    Capacity Orchestrator

    Elastic-capacity orchestration for batch jobs: scale a compute pool up,
    wait until the capacity is ready, run the job and scale the pool back to
    idle, failing safely under partial failure.
    """

setup(
    name="capacity-orchestrator",
    version="1.0.0",
    description="Elastic-capacity orchestration for batch jobs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Capacity Orchestrator Team",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: System :: Distributed Computing",
        "Topic :: System :: Systems Administration",
    ],
    keywords="capacity, autoscaling, orchestration, batch processing, async",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        # Core dependencies
        "asyncpg>=0.27.0",
        "click>=8.0.0",
        "psutil>=5.8.0",

        # Configuration and serialization
        "pyyaml>=6.0",
        "pydantic>=2.0.0",
    ],
    extras_require={
        "aws": [
            "boto3>=1.34.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "black>=22.0.0",
            "isort>=5.10.0",
            "mypy>=1.0.0",
            "coverage>=6.0.0",
            "flake8>=5.0.0",
            "boto3>=1.34.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "capacity-orchestrator=capacity_orchestrator.cli.main:main",
            "capo=capacity_orchestrator.cli.main:main",
        ],
    },
)
