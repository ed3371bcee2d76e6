"""
Entry point for running the Skill Validator as a module.

Usage:
    python -m skill_validator run skills/
    python -m skill_validator list skills/
    python -m skill_validator validate skills/
    python -m skill_validator profile skills/
"""

from .api.cli import main

if __name__ == "__main__":
    main()
