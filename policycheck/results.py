"""Result records shared by evaluation, validation and output formatting."""

from __future__ import annotations

import platform
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any

FORMATTED_OUTPUT_OPTIONS: tuple[str, ...] = ("yaml", "json", "xml", "JUnit")
INTERACTIVE_OUTPUT_OPTIONS: tuple[str, ...] = ("", "simple")
VALID_OUTPUT_OPTIONS: tuple[str, ...] = FORMATTED_OUTPUT_OPTIONS + INTERACTIVE_OUTPUT_OPTIONS
EXPLICIT_OUTPUT_OPTIONS: tuple[str, ...] = ("simple", "yaml", "json", "xml", "JUnit")


def is_valid_output_option(option: str) -> bool:
    """Return True if *option* is an accepted value for the output flag."""
    return option in VALID_OUTPUT_OPTIONS


def is_formatted_output_option(option: str) -> bool:
    """Return True if *option* selects a machine-readable output format."""
    return option in FORMATTED_OUTPUT_OPTIONS


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _serialise(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {_camel(f.name): _serialise(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, BaseException):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_serialise(item) for item in value]
    if isinstance(value, dict):
        return {key: _serialise(item) for key, item in value.items()}
    return value


@dataclass
class OccurrenceDetails:
    """One configuration in which a rule failed."""

    metadata_name: str = ""
    kind: str = ""
    skip_message: str = ""
    occurrences: int = 0
    is_skipped: bool = False


@dataclass
class Rule:
    """A failed rule together with every place it failed in one file."""

    identifier: str
    name: str
    message_on_failure: str = ""
    documentation_url: str = ""
    occurrences_details: list[OccurrenceDetails] = field(default_factory=list)

    def failed_occurrences_count(self) -> int:
        """Total occurrences across configurations that were not skipped."""
        return sum(o.occurrences for o in self.occurrences_details if not o.is_skipped)


@dataclass
class RuleResult:
    identifier: str = ""
    name: str = ""
    message_on_failure: str = ""
    occurrences_details: list[OccurrenceDetails] = field(default_factory=list)


@dataclass
class FormattedEvaluationResults:
    file_name: str = ""
    rule_results: list[RuleResult] = field(default_factory=list)


@dataclass
class PolicySummary:
    policy_name: str = ""
    total_rules_in_policy: int = 0
    total_skipped_rules: int = 0
    total_rules_failed: int = 0
    total_passed_count: int = 0


@dataclass
class NonInteractiveEvaluationSummary:
    configs_count: int = 0
    files_count: int = 0
    passed_yaml_validation_count: int = 0
    k8s_validation: str = ""
    passed_policy_validation_count: int = 0


@dataclass
class NonInteractiveEvaluationResults:
    formatted_evaluation_results: list[FormattedEvaluationResults] | None = None
    policy_summary: PolicySummary | None = None


@dataclass
class InvalidFile:
    """A file that failed YAML or Kubernetes schema validation."""

    path: str
    validation_errors: list[BaseException] = field(default_factory=list)


@dataclass
class FileConfigurations:
    """The configurations (YAML documents) read from one file."""

    file_name: str
    configurations: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class FormattedOutput:
    """Everything written by the machine-readable output formats."""

    policy_validation_results: list[FormattedEvaluationResults] | None = None
    policy_summary: PolicySummary | None = None
    evaluation_summary: NonInteractiveEvaluationSummary = field(
        default_factory=NonInteractiveEvaluationSummary
    )
    yaml_validation_results: list[InvalidFile] | None = None
    k8s_validation_results: list[InvalidFile] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Plain nested dictionaries with camelCase keys, in output order."""
        return _serialise(self)


@dataclass
class RuleData:
    identifier: str
    name: str


@dataclass
class OSInfo:
    os: str = ""
    platform_version: str = ""
    kernel_version: str = ""


def _platform_version(system: str) -> str:
    if system == "darwin":
        return platform.mac_ver()[0]
    if system == "windows":
        return platform.version()
    try:
        return platform.freedesktop_os_release().get("VERSION_ID", "")
    except (OSError, AttributeError):
        return ""


def get_os_info() -> OSInfo:
    """Describe the host operating system; unknown parts are empty strings."""
    system = platform.system().lower()
    return OSInfo(
        os=system,
        platform_version=_platform_version(system),
        kernel_version=platform.release(),
    )