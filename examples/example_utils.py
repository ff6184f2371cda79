#!/usr/bin/env python3
"""
Utility functions for the vectordb-rpc examples.
Provides consistent path resolution and environment setup.
"""

import os
import sys
from pathlib import Path


def setup_example_environment() -> Path:
    """
    Configure the Python path so the examples find `vectordb_rpc` from a checkout.
    Returns the project root path.
    """
    examples_dir = Path(__file__).resolve().parent
    project_root = examples_dir.parent
    src_dir = project_root / "src"

    if src_dir.exists() and str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))

    return project_root


def clear_vectordb_env_vars() -> None:
    """Remove VECTORDB_* settings that would change the example defaults."""
    for var in [k for k in os.environ if k.startswith("VECTORDB_")]:
        del os.environ[var]


def configure_for_example() -> None:
    """Configure the environment for example execution."""
    clear_vectordb_env_vars()
    setup_example_environment()

    from vectordb_rpc import configure

    configure(connect_timeout="5s", pool_max_size=4)


def example_address() -> str:
    """Server address, taken from VECTORDB_EXAMPLE_ADDRESS when set."""
    return os.environ.get("VECTORDB_EXAMPLE_ADDRESS", "localhost:19530")


# 🐍🛠️
