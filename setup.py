"""
Setup script for amc-practice-analytics.

Client-side analytics for AMC practice problems:

1. Statistics aggregate - per-topic, per-difficulty and per-day rollups
2. Sync controller - batched saves to Supabase with reconnect handling
3. Emergency snapshots - local recovery of attempts that could not be saved

The 'amc-analytics' command provides operator tools for inspecting
and recovering analytics.
"""

from setuptools import find_packages, setup

setup(
    name="amc-practice-analytics",
    version="1.0.0",
    description="Practice problem analytics with Supabase sync and emergency recovery",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="AMC Practice",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "amc-analytics=src.cli.analytics_cli:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    keywords="analytics practice-problems supabase education",
)
