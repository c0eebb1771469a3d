#!/usr/bin/env python3
"""
Entry point for datasafe-ops.
Wraps datasafe_ops/cli.py to ensure correct import resolution.
"""
import sys
import os

# Ensure project root is in python path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from datasafe_ops.config.dotenv_loader import load_dotenv_files

# Explicit dotenv loading for local use. No-op when no .env files exist.
load_dotenv_files()

from datasafe_ops.cli import app

if __name__ == "__main__":
    app()
