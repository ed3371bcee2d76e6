"""
API layer for the Skill Validator.

External interfaces:
- CLI (command line interface)
"""

from .cli import main as cli_main

__all__ = [
    "cli_main",
]
