"""Evaluate configurations against the rules of a policy."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from jsonschema import FormatChecker
from jsonschema.validators import validator_for

from .policy import Policy, RuleWithSchema
from .results import (
    FileConfigurations,
    FormattedEvaluationResults,
    NonInteractiveEvaluationResults,
    OccurrenceDetails,
    OSInfo,
    PolicySummary,
    Rule,
    RuleData,
    RuleResult,
    get_os_info,
)

SKIP_RULE_PREFIX = "datree.io/skip/"


@dataclass
class FailedConfiguration:
    """One configuration in which a rule failed or was skipped."""

    name: str = ""
    kind: str = ""
    occurrences: int = 0
    is_skipped: bool = False
    skip_message: str = ""


@dataclass
class FailedRule:
    name: str = ""
    documentation_url: str = ""
    message_on_failure: str = ""
    configurations: list[FailedConfiguration] = field(default_factory=list)


@dataclass
class FileData:
    file_path: str
    configurations_count: int


@dataclass
class EvaluationResultsSummary:
    total_failed_rules: int = 0
    total_skipped_rules: int = 0
    total_passed_rules: int = 0
    files_count: int = 0
    files_passed_count: int = 0


@dataclass
class EvaluationResults:
    file_name_rule_mapper: dict[str, dict[str, Rule]] = field(default_factory=dict)
    summary: EvaluationResultsSummary = field(default_factory=EvaluationResultsSummary)


@dataclass
class FormattedResults:
    evaluation_results: EvaluationResults | None = None
    non_interactive_evaluation_results: NonInteractiveEvaluationResults | None = None


@dataclass
class EvaluationRequestData:
    token: str = ""
    client_id: str = ""
    cli_version: str = ""
    k8s_version: str = ""
    policy_name: str = ""
    ci_context: Any = None
    rules_data: list[RuleData] = field(default_factory=list)
    files_data: list[FileData] = field(default_factory=list)
    failed_yaml_files: list[str] = field(default_factory=list)
    failed_k8s_files: list[str] = field(default_factory=list)
    policy_check_results: dict[str, dict[str, FailedRule]] | None = None


@dataclass
class EvaluationResultRequest:
    """The evaluation report sent to the service."""

    k8s_version: str
    client_id: str
    token: str
    policy_name: str
    cli_version: str
    os: str
    platform_version: str
    kernel_version: str
    ci_context: Any
    failed_yaml_files: list[str]
    failed_k8s_files: list[str]
    all_executed_rules: list[RuleData]
    all_evaluated_files: list[FileData]
    policy_check_results: dict[str, dict[str, FailedRule]] | None


@dataclass
class PolicyCheckData:
    files_configurations: list[FileConfigurations]
    is_interactive_mode: bool
    policy_name: str
    policy: Policy


@dataclass
class PolicyCheckResultData:
    formatted_results: FormattedResults = field(default_factory=FormattedResults)
    rules_data: list[RuleData] = field(default_factory=list)
    files_data: list[FileData] = field(default_factory=list)
    raw_results: dict[str, dict[str, FailedRule]] = field(default_factory=dict)
    rules_count: int = 0


class EvaluationClient(Protocol):
    def send_evaluation_result(self, request: EvaluationResultRequest) -> Any: ...


def validate_against_schema(schema: Any, configuration: Any) -> list[str]:
    """Validate *configuration* against a JSON schema; return the error messages.

    Raises jsonschema.SchemaError if the schema itself is invalid.
    """
    validator_cls = validator_for(schema)
    validator_cls.check_schema(schema)
    validator = validator_cls(schema, format_checker=FormatChecker())
    return [error.message for error in validator.iter_errors(configuration)]


def _require_str(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{what} must be a string, got {type(value).__name__}")
    return value


def extract_skip_annotations(configuration: dict[str, Any]) -> dict[str, str]:
    """The annotations of a configuration that skip rules, by annotation key."""
    metadata = configuration.get("metadata")
    if not isinstance(metadata, dict):
        return {}
    annotations = metadata.get("annotations")
    if not isinstance(annotations, dict):
        return {}
    return {
        key: _require_str(value, f"annotation {key}")
        for key, value in annotations.items()
        if SKIP_RULE_PREFIX in key
    }


def extract_configuration_info(configuration: dict[str, Any]) -> tuple[str, str]:
    """Return (metadata.name, kind) of a configuration, empty where missing."""
    kind = configuration.get("kind")
    kind = "" if kind is None else _require_str(kind, "kind")

    name = ""
    metadata = configuration.get("metadata")
    if metadata is not None:
        if not isinstance(metadata, dict):
            raise TypeError("metadata must be a mapping")
        raw_name = metadata.get("name")
        if raw_name is not None:
            name = _require_str(raw_name, "metadata.name")
    return name, kind


def _add_failed_rule(
    failed_rules_by_files: dict[str, dict[str, FailedRule]],
    file_name: str,
    rule_identifier: str,
    failed_rule: FailedRule,
) -> None:
    file_rules = failed_rules_by_files.setdefault(file_name, {})
    existing = file_rules.get(rule_identifier)
    if existing is None:
        file_rules[rule_identifier] = failed_rule
    else:
        existing.configurations.extend(failed_rule.configurations)


def _evaluate_rule(
    rule: RuleWithSchema,
    configuration: dict[str, Any],
    name: str,
    kind: str,
    skip_annotations: dict[str, str],
) -> FailedRule | None:
    occurrences = len(validate_against_schema(rule.schema, configuration))
    skip_key = SKIP_RULE_PREFIX + rule.rule_identifier
    is_skipped = skip_key in skip_annotations
    if occurrences < 1 and not is_skipped:
        return None
    return FailedRule(
        name=rule.rule_name,
        documentation_url=rule.documentation_url,
        message_on_failure=rule.message_on_failure,
        configurations=[
            FailedConfiguration(
                name=name,
                kind=kind,
                occurrences=occurrences,
                is_skipped=is_skipped,
                skip_message=skip_annotations.get(skip_key, ""),
            )
        ],
    )


def _format_evaluation_results(
    failed_rules_by_files: dict[str, dict[str, FailedRule]], files_count: int, rules_count: int
) -> EvaluationResults:
    mapper: dict[str, dict[str, Rule]] = {}
    total_failed = 0
    total_skipped = 0
    failed_files_count = len(failed_rules_by_files)

    for file_path, failed_rules in failed_rules_by_files.items():
        file_rules = mapper.setdefault(file_path, {})
        for rule_identifier, failed_rule in failed_rules.items():
            rule = file_rules.setdefault(
                rule_identifier,
                Rule(
                    identifier=rule_identifier,
                    name=failed_rule.name,
                    documentation_url=failed_rule.documentation_url,
                    message_on_failure=failed_rule.message_on_failure,
                ),
            )
            rule.occurrences_details.extend(
                OccurrenceDetails(
                    metadata_name=c.name,
                    kind=c.kind,
                    occurrences=c.occurrences,
                    is_skipped=c.is_skipped,
                    skip_message=c.skip_message,
                )
                for c in failed_rule.configurations
            )

        all_rules_are_skipped = True
        for rule in file_rules.values():
            skipped = sum(1 for o in rule.occurrences_details if o.is_skipped)
            if skipped < len(rule.occurrences_details):
                all_rules_are_skipped = False
            if skipped == len(rule.occurrences_details):
                total_skipped += 1
            elif skipped >= 1:
                total_skipped += 1
                total_failed += 1
            else:
                total_failed += 1

        if all_rules_are_skipped:
            failed_files_count -= 1

    return EvaluationResults(
        file_name_rule_mapper=mapper,
        summary=EvaluationResultsSummary(
            total_failed_rules=total_failed,
            total_skipped_rules=total_skipped,
            total_passed_rules=rules_count * files_count - (total_failed + total_skipped),
            files_count=files_count,
            files_passed_count=files_count - failed_files_count,
        ),
    )


def _format_non_interactive_results(
    results: EvaluationResults, policy_name: str, total_rules_in_policy: int
) -> NonInteractiveEvaluationResults:
    formatted = [
        FormattedEvaluationResults(
            file_name=file_name,
            rule_results=[
                RuleResult(
                    identifier=rule.identifier,
                    name=rule.name,
                    message_on_failure=rule.message_on_failure,
                    occurrences_details=rule.occurrences_details,
                )
                for rule in rules.values()
            ],
        )
        for file_name, rules in results.file_name_rule_mapper.items()
    ]
    return NonInteractiveEvaluationResults(
        formatted_evaluation_results=formatted or None,
        policy_summary=PolicySummary(
            policy_name=policy_name,
            total_rules_in_policy=total_rules_in_policy,
            total_rules_failed=results.summary.total_failed_rules,
            total_skipped_rules=results.summary.total_skipped_rules,
            total_passed_count=results.summary.total_passed_rules,
        ),
    )


class Evaluator:
    """Runs policy rules over configurations and reports the results."""

    def __init__(
        self,
        cli_client: EvaluationClient,
        ci_context: Any = None,
        os_info_provider: Callable[[], OSInfo] = get_os_info,
    ) -> None:
        self.cli_client = cli_client
        self.ci_context = ci_context
        self.os_info_provider = os_info_provider

    def send_evaluation_result(self, request_data: EvaluationRequestData) -> Any:
        """Send the evaluation report and return the service's response."""
        os_info = self.os_info_provider()
        request = EvaluationResultRequest(
            k8s_version=request_data.k8s_version,
            client_id=request_data.client_id,
            token=request_data.token,
            policy_name=request_data.policy_name,
            cli_version=request_data.cli_version,
            os=os_info.os,
            platform_version=os_info.platform_version,
            kernel_version=os_info.kernel_version,
            ci_context=request_data.ci_context,
            failed_yaml_files=request_data.failed_yaml_files,
            failed_k8s_files=request_data.failed_k8s_files,
            all_executed_rules=request_data.rules_data,
            all_evaluated_files=request_data.files_data,
            policy_check_results=request_data.policy_check_results,
        )
        return self.cli_client.send_evaluation_result(request)

    def evaluate(self, policy_check_data: PolicyCheckData) -> PolicyCheckResultData:
        """Check every configuration of every file against every rule of the policy."""
        rules = policy_check_data.policy.rules
        rules_count = len(rules)
        files = policy_check_data.files_configurations

        if not files:
            return PolicyCheckResultData(rules_count=rules_count)

        files_data = [FileData(f.file_name, len(f.configurations)) for f in files]
        rules_data = [RuleData(identifier=r.rule_identifier, name=r.rule_name) for r in rules]

        failed_rules_by_files: dict[str, dict[str, FailedRule]] = {}
        for file_configurations in files:
            for configuration in file_configurations.configurations:
                skip_annotations = extract_skip_annotations(configuration)
                name, kind = extract_configuration_info(configuration)
                for rule in rules:
                    failed_rule = _evaluate_rule(rule, configuration, name, kind, skip_annotations)
                    if failed_rule is not None:
                        _add_failed_rule(
                            failed_rules_by_files, file_configurations.file_name, rule.rule_identifier, failed_rule
                        )

        evaluation_results = _format_evaluation_results(failed_rules_by_files, len(files), rules_count)
        formatted = FormattedResults(evaluation_results=evaluation_results)
        if not policy_check_data.is_interactive_mode:
            formatted.non_interactive_evaluation_results = _format_non_interactive_results(
                evaluation_results, policy_check_data.policy_name, rules_count
            )

        return PolicyCheckResultData(formatted, rules_data, files_data, failed_rules_by_files, rules_count)