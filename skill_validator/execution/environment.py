"""
Isolated execution environment for the Skill Validator.

Every agent run gets its own temporary working directory, seeded with the
scenario's setup files. Baseline and skill runs never share a directory.
"""

import shutil
import tempfile
import logging
from pathlib import Path
from typing import Optional, Union

from ..models.scenario import Scenario
from ..exceptions import EnvironmentError

logger = logging.getLogger(__name__)

WORKDIR_PREFIX = "skill-validator-"


def is_within(path: Union[str, Path], *roots: Union[str, Path]) -> bool:
    """Whether ``path`` resolves to one of ``roots`` or somewhere below them."""
    resolved = Path(path).resolve()
    for root in roots:
        root = Path(root).resolve()
        if resolved == root or root in resolved.parents:
            return True
    return False


def install_skill(workdir: Path, skill_dir: Path) -> Path:
    """Copy a skill directory to ``<workdir>/.claude/skills/<name>``.

    Returns:
        The installed skill directory

    Raises:
        EnvironmentError: If the copy fails
    """
    target = workdir / ".claude" / "skills" / skill_dir.name
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(skill_dir, target, dirs_exist_ok=True)
    except OSError as e:
        raise EnvironmentError(f"Failed to install skill {skill_dir}: {e}") from e
    logger.debug(f"Installed skill {skill_dir.name} into {target}")
    return target


class Environment:
    """Isolated working directory for one agent run.

    Usage:
        # As context manager
        with Environment(scenario, skill_dir) as env:
            workdir = env.workdir
            # Run agent in workdir...

        # Manual management (the runner keeps the directory until
        # assertions have been checked)
        env = Environment(scenario, skill_dir)
        env.setup()
        try:
            # Do work...
        finally:
            env.cleanup()

    Attributes:
        scenario: The scenario whose setup files are created
        skill_dir: Skill directory that ``source`` setup files are read from
        keep_workdir: Leave the directory on disk after cleanup()
    """

    def __init__(
        self,
        scenario: Scenario,
        skill_dir: Optional[Path] = None,
        keep_workdir: bool = False,
    ):
        self.scenario = scenario
        self.skill_dir = skill_dir
        self.keep_workdir = keep_workdir
        self._workdir: Optional[Path] = None

    @property
    def workdir(self) -> Path:
        """Get the working directory.

        Raises:
            EnvironmentError: If environment not initialized
        """
        if self._workdir is None:
            raise EnvironmentError("Environment not initialized. Call setup() first.")
        return self._workdir

    def setup(self) -> Path:
        """Create the directory and write the setup files.

        Returns:
            Path to the working directory

        Raises:
            EnvironmentError: If setup fails
        """
        try:
            self._workdir = Path(tempfile.mkdtemp(prefix=WORKDIR_PREFIX))
            logger.debug(f"Setting up environment in {self._workdir}")
            self._create_files()
            return self._workdir

        except EnvironmentError:
            self.cleanup(force=True)
            raise
        except Exception as e:
            logger.error(f"Environment setup failed: {e}")
            self.cleanup(force=True)
            raise EnvironmentError(f"Failed to setup environment: {e}") from e

    def _create_files(self) -> None:
        """Create files specified in the setup."""
        for file_spec in self.scenario.setup_files:
            target = self._workdir / file_spec.path
            if not is_within(target, self._workdir):
                raise EnvironmentError(
                    f"Setup file escapes the working directory: {file_spec.path}"
                )
            target.parent.mkdir(parents=True, exist_ok=True)

            if file_spec.content is not None:
                target.write_text(file_spec.content, encoding="utf-8")
            elif self.skill_dir is not None:
                source = self.skill_dir / file_spec.source
                if not is_within(source, self.skill_dir):
                    raise EnvironmentError(
                        f"Setup source escapes the skill directory: {file_spec.source}"
                    )
                if not source.is_file():
                    raise EnvironmentError(f"Setup source not found: {source}")
                shutil.copyfile(source, target)
            else:
                logger.warning(
                    f"Skipping setup file {file_spec.path}: "
                    f"source '{file_spec.source}' needs a skill directory"
                )
                continue

            logger.debug(f"Created file: {target}")

    def cleanup(self, force: bool = False) -> None:
        """Remove the working directory unless it should be kept."""
        if not self._workdir or not self._workdir.exists():
            return

        if self.keep_workdir and not force:
            logger.info(f"Keeping environment for debugging: {self._workdir}")
            return

        try:
            shutil.rmtree(self._workdir)
            logger.debug(f"Cleaned up environment: {self._workdir}")
        except OSError as e:
            logger.error(f"Failed to cleanup environment: {e}")

    def __enter__(self) -> "Environment":
        self.setup()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()
