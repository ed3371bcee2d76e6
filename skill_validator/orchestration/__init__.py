"""
Orchestration layer for the Skill Validator.

Provides:
- SkillValidatorRunner: Runs, judges and compares scenarios per skill
"""

from .runner import SkillValidatorRunner

__all__ = [
    "SkillValidatorRunner",
]
