"""
Skill discovery and static profiling.
"""

from .discovery import discover_skills, discover_skill_at, parse_frontmatter
from .profile import SkillProfile, analyze_skill, complexity_tier

__all__ = [
    "discover_skills",
    "discover_skill_at",
    "parse_frontmatter",
    "SkillProfile",
    "analyze_skill",
    "complexity_tier",
]
