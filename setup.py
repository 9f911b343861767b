"""
GraphForge — Setup Script
==========================
Installs GraphForge as a local editable package so that all internal
imports (e.g. `from graphforge.nn import Linear, Stack`) work
seamlessly from any script or notebook.

Usage:
    cd /path/to/graphforge
    pip install -e .
    pip install -e ".[dev]"   # with test dependencies
"""

from setuptools import setup, find_packages

setup(
    name="graphforge",
    version="0.1.0",
    description=(
        "GraphForge: composable neural network layers evaluated on a "
        "per-request computation graph, with a BERT model and task heads"
    ),
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(include=["graphforge", "graphforge.*"]),
    python_requires=">=3.10",
    install_requires=[
        "torch>=2.1.0",
        "safetensors>=0.4.0",
        "numpy",  # required at runtime by safetensors.torch save/load
        "tokenizers>=0.15.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": ["pytest>=7.0"],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
)
