"""
Static structure analysis of SKILL.md.

Profiles a skill's size and structure without running anything. The
warnings point at likely reasons a skill fails to help an agent and are
attached to failed verdicts.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..models.skill import SkillInfo
from ..evaluation.metrics_collector import estimate_tokens

# Tier boundaries in estimated tokens
COMPACT_MAX = 400
DETAILED_MAX = 2500
STANDARD_MAX = 5000
SPARSE_MIN = 200

_FRONTMATTER = re.compile(r"^---\r?\n[\s\S]*?\r?\n---", re.MULTILINE)
_FRONTMATTER_BLOCK = re.compile(r"^---\r?\n[\s\S]*?\r?\n---\r?\n?")
_SECTION = re.compile(r"^#{1,4}\s+", re.MULTILINE)
_NUMBERED_STEP = re.compile(r"^\d+\.\s", re.MULTILINE)
_BULLET = re.compile(r"^[-*]\s", re.MULTILINE)
_WHEN_TO_USE = re.compile(r"^#{1,4}\s+when\s+to\s+use", re.MULTILINE | re.IGNORECASE)
_WHEN_NOT_TO_USE = re.compile(r"^#{1,4}\s+when\s+not\s+to\s+use", re.MULTILINE | re.IGNORECASE)


@dataclass
class SkillProfile:
    """Size and structure summary of one SKILL.md."""

    name: str
    token_count: int
    complexity_tier: str  # compact, detailed, standard, comprehensive
    section_count: int
    code_block_count: int
    numbered_step_count: int
    bullet_count: int
    has_frontmatter: bool
    has_when_to_use: bool
    has_when_not_to_use: bool
    resource_file_count: int
    warnings: List[str] = field(default_factory=list)

    @property
    def tier_ok(self) -> bool:
        return self.complexity_tier in ("compact", "detailed")

    def summary(self) -> str:
        """One-line description for console output."""
        if self.tier_ok:
            mark = "ok"
        elif self.complexity_tier == "comprehensive":
            mark = "too large"
        else:
            mark = "large"
        return (
            f"{self.name}: {self.token_count:,} tokens ({self.complexity_tier}, {mark}), "
            f"{self.section_count} sections, {self.code_block_count} code blocks"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "token_count": self.token_count,
            "complexity_tier": self.complexity_tier,
            "section_count": self.section_count,
            "code_block_count": self.code_block_count,
            "numbered_step_count": self.numbered_step_count,
            "bullet_count": self.bullet_count,
            "has_frontmatter": self.has_frontmatter,
            "has_when_to_use": self.has_when_to_use,
            "has_when_not_to_use": self.has_when_not_to_use,
            "resource_file_count": self.resource_file_count,
            "warnings": list(self.warnings),
        }


def complexity_tier(token_count: int) -> str:
    if token_count < COMPACT_MAX:
        return "compact"
    if token_count <= DETAILED_MAX:
        return "detailed"
    if token_count <= STANDARD_MAX:
        return "standard"
    return "comprehensive"


def analyze_skill(skill: SkillInfo) -> SkillProfile:
    """Profile a skill's SKILL.md."""
    content = skill.skill_md_content
    token_count = estimate_tokens(content)
    has_frontmatter = bool(_FRONTMATTER.search(content))
    body = _FRONTMATTER_BLOCK.sub("", content, count=1)

    section_count = len(_SECTION.findall(body))
    code_block_count = body.count("```") // 2
    numbered_step_count = len(_NUMBERED_STEP.findall(body))
    bullet_count = len(_BULLET.findall(body))

    resource_file_count = 0
    if skill.eval_config is not None:
        resource_file_count = sum(len(s.setup_files) for s in skill.eval_config.scenarios)

    warnings = []
    if token_count > STANDARD_MAX:
        warnings.append(
            f"Skill is {token_count:,} tokens; comprehensive skills tend to hurt "
            f"agent performance. Consider splitting it into 2-3 focused skills."
        )
    elif token_count > DETAILED_MAX:
        warnings.append(
            f"Skill is {token_count:,} tokens, approaching the comprehensive range "
            f"where gains diminish."
        )
    elif token_count < SPARSE_MIN:
        warnings.append(
            f"Skill is only {token_count} tokens and may be too sparse to give "
            f"actionable guidance."
        )

    if section_count == 0:
        warnings.append("No section headers; agents navigate structured documents better.")
    if code_block_count == 0:
        warnings.append("No code blocks; agents do better with concrete snippets and commands.")
    if numbered_step_count == 0:
        warnings.append("No numbered workflow steps; agents follow sequenced procedures more reliably.")
    if not has_frontmatter:
        warnings.append("No YAML frontmatter; agents use name/description for skill discovery.")

    return SkillProfile(
        name=skill.name,
        token_count=token_count,
        complexity_tier=complexity_tier(token_count),
        section_count=section_count,
        code_block_count=code_block_count,
        numbered_step_count=numbered_step_count,
        bullet_count=bullet_count,
        has_frontmatter=has_frontmatter,
        has_when_to_use=bool(_WHEN_TO_USE.search(body)),
        has_when_not_to_use=bool(_WHEN_NOT_TO_USE.search(body)),
        resource_file_count=resource_file_count,
        warnings=warnings,
    )
