"""
Exception hierarchy for the Skill Validator.

All exceptions inherit from SkillValidatorError for easy catching.
"""

from typing import List


class SkillValidatorError(Exception):
    """Base exception for the skill validator.

    All other exceptions in this module inherit from this,
    allowing callers to catch any validator error with a single except.
    """
    pass


class ConfigurationError(SkillValidatorError):
    """Error in configuration.

    Raised when:
    - Config file not found
    - Config validation fails
    - Required config missing
    """
    pass


class ScenarioError(SkillValidatorError):
    """Error loading or validating a skill's eval file.

    Raised when:
    - YAML parsing fails
    - Required fields are missing
    - An assertion has an unknown type or an invalid regex pattern
    - A setup file escapes the working directory
    """
    pass


class EnvironmentError(SkillValidatorError):
    """Error setting up or cleaning the run working directory.

    Raised when:
    - Temp directory creation fails
    - A setup file cannot be written or copied
    - Cleanup fails
    """
    pass


class ExecutionError(SkillValidatorError):
    """Error executing the agent.

    Raised when:
    - Agent CLI not found
    - Agent process fails to start
    - Agent reports an error for the session
    """
    pass


class TimeoutError(SkillValidatorError):
    """An agent run or a judge call exceeded its time budget."""
    pass


class RetryExhaustedError(SkillValidatorError):
    """All attempts of a retried operation failed.

    Attributes:
        operation: Name of the operation that was retried
        failures: One exception per failed attempt, in order
    """

    def __init__(self, operation: str, failures: List[BaseException]):
        self.operation = operation
        self.failures = list(failures)
        last = failures[-1] if failures else None
        super().__init__(
            f"{operation} failed after {len(self.failures)} attempts: {last}"
        )


class JudgeError(SkillValidatorError):
    """Error during LLM judging.

    Raised when:
    - The evaluator call fails or times out on every attempt
    - The evaluator reply contains no extractable JSON
    - The evaluator returns no content

    Judging is load-bearing: a JudgeError aborts the evaluation batch.
    """
    pass


class ReportingError(SkillValidatorError):
    """Error writing a report or saving run results."""
    pass
