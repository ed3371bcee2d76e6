"""
Skill discovery.

A directory containing ``SKILL.md`` is a skill. Any other directory is
scanned one level deep for skills, skipping hidden entries.
"""

import re
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..models.scenario import EvalConfig
from ..models.skill import SkillInfo
from ..exceptions import ScenarioError

logger = logging.getLogger(__name__)

SKILL_FILE = "SKILL.md"
EVAL_FILE = Path("tests") / "eval.yaml"

_FRONTMATTER = re.compile(r"^---\r?\n([\s\S]*?)\r?\n---\r?\n([\s\S]*)$")


def parse_frontmatter(content: str) -> Tuple[Dict[str, Any], str]:
    """Split a Markdown document into (frontmatter metadata, body).

    Raises:
        ScenarioError: If the frontmatter block is not valid YAML
    """
    match = _FRONTMATTER.match(content)
    if not match:
        return {}, content
    try:
        metadata = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise ScenarioError(f"Invalid YAML frontmatter: {e}")
    if not isinstance(metadata, dict):
        metadata = {}
    return metadata, match.group(2)


def discover_skill_at(directory: Path) -> Optional[SkillInfo]:
    """Load the skill in ``directory``, or None when it has no SKILL.md.

    Raises:
        ScenarioError: If SKILL.md frontmatter or tests/eval.yaml is invalid
    """
    skill_md_path = directory / SKILL_FILE
    if not skill_md_path.is_file():
        return None

    content = skill_md_path.read_text(encoding="utf-8")
    try:
        metadata, _ = parse_frontmatter(content)
    except ScenarioError as e:
        raise ScenarioError(f"{skill_md_path}: {e}")

    eval_path = directory / EVAL_FILE
    eval_config = None
    if eval_path.is_file():
        eval_config = EvalConfig.from_yaml(eval_path)
    else:
        eval_path = None

    skill = SkillInfo(
        name=str(metadata.get("name") or directory.name),
        description=str(metadata.get("description") or ""),
        path=directory,
        skill_md_path=skill_md_path,
        skill_md_content=content,
        eval_path=eval_path,
        eval_config=eval_config,
    )
    logger.debug(
        f"Discovered skill {skill.name} at {directory}"
        f"{'' if skill.has_evals else ' (no evals)'}"
    )
    return skill


def discover_skills(target: Path) -> List[SkillInfo]:
    """Find skills at ``target`` or in its immediate subdirectories.

    Returns:
        Skills in name order of their directories (empty if none)
    """
    target = Path(target)
    direct = discover_skill_at(target)
    if direct is not None:
        return [direct]

    if not target.is_dir():
        return []

    skills = []
    for entry in sorted(target.iterdir()):
        if not entry.is_dir() or entry.name.startswith("."):
            continue
        skill = discover_skill_at(entry)
        if skill is not None:
            skills.append(skill)
    return skills
