# setup.py
from setuptools import setup, find_packages

setup(
    name="budgetwatch",
    version="0.1.0",
    description="Team budget tracking with recurring schedules, rollover caps and allocation alerts",
    author="Your Name",
    author_email="you@example.com",
    url="https://github.com/yourusername/budgetwatch",
    packages=find_packages(include=["budget_tracker", "budget_tracker.*"]),
    python_requires=">=3.10",
    install_requires=[
        "click>=7.0",
        "pyyaml>=5.3",
        "python-dotenv>=0.19",
        "huggingface_hub>=0.20",
        "mcp>=1.0,<2",
        "anyio>=3.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "budgetwatch=budget_tracker.cli:main",
            "budgetwatch-mcp=budget_tracker.mcp_server:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
