"""
Setup script for the Mancala game server.
"""
from setuptools import setup, find_packages

setup(
    name="mancala-server",
    version="0.1.0",
    description="Multi-player Mancala server speaking a line-based text protocol",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.26.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.1",
        ],
        "dev": [
            "pytest>=7.4.1",
            "coverage>=7.3.0",
        ]
    },
)
