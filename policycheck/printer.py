"""Printing evaluation results as text, JSON, YAML, XML or JUnit."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol, Sequence

import yaml

from .evaluator import EvaluationResults, FormattedResults
from .junit import formatted_output_to_junit
from .results import (
    FormattedOutput,
    InvalidFile,
    NonInteractiveEvaluationResults,
    NonInteractiveEvaluationSummary,
    RuleData,
    is_formatted_output_option,
)
from .validation import FileWithWarning

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'

HELM_MESSAGE = (
    "Are you trying to test a raw Helm file? To run the policy check with Helm - "
    "check out the helm plugin README\n"
)
KUSTOMIZE_MESSAGE = (
    "Are you trying to test Kustomize files? To run the policy check with Kustomize, "
    "use the `kustomize test` command, or check out the Kustomize support docs\n"
)

_HELM_MARKERS = ("Chart", "chart", "Values", "values")
_KUSTOMIZE_MARKERS = ("kustomization.yml", "kustomization.yaml", "Kustomization")
_YAML_LIST_KEYS = frozenset(
    {
        "policyValidationResults",
        "yamlValidationResults",
        "k8sValidationResults",
        "ruleResults",
        "occurrencesDetails",
        "validationErrors",
    }
)
_XML_ESCAPES = {
    '"': "&#34;",
    "'": "&#39;",
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    "\t": "&#x9;",
    "\n": "&#xA;",
    "\r": "&#xD;",
}


@dataclass
class OccurrenceLine:
    """One configuration listed under a failed or skipped rule."""

    metadata_name: str = ""
    kind: str = ""
    skip_message: str = ""


@dataclass
class PrinterFailedRule:
    name: str = ""
    documentation_url: str = ""
    suggestion: str = ""
    occurrences: int = 0
    occurrences_details: list[OccurrenceLine] = field(default_factory=list)


@dataclass
class ExtraMessage:
    text: str
    color: str


@dataclass
class Warning:
    """Everything printed about one file."""

    title: str
    failed_rules: list[PrinterFailedRule] = field(default_factory=list)
    skipped_rules: list[PrinterFailedRule] = field(default_factory=list)
    yaml_validation_errors: list[BaseException] = field(default_factory=list)
    k8s_validation_errors: list[BaseException] = field(default_factory=list)
    k8s_version: str = ""
    k8s_validation_warning: str = ""
    extra_messages: list[ExtraMessage] = field(default_factory=list)


@dataclass
class EvaluationSummary:
    configs_count: int = 0
    rules_count: int = 0
    files_count: int = 0
    passed_yaml_validation_count: int = 0
    k8s_validation: str = ""
    passed_policy_check_count: int = 0


@dataclass
class SummaryItem:
    left_col: str
    right_col: str
    row_index: int


@dataclass
class Summary:
    plain_rows: list[SummaryItem]
    skip_row: SummaryItem
    error_row: SummaryItem
    success_row: SummaryItem


class OutputTitle(Enum):
    EVALUATED_CONFIGURATIONS = "Configs tested against policy"
    TOTAL_RULES_EVALUATED = "Total rules evaluated"
    SEE_ALL = "See all rules in policy"
    TOTAL_RULES_PASSED = "Total rules passed"
    TOTAL_SKIPPED_RULES = "Total rules skipped"
    TOTAL_RULES_FAILED = "Total rules failed"

    def __str__(self) -> str:
        return self.value


class Printer(Protocol):
    def print_warnings(self, warnings: list[Warning]) -> None: ...

    def print_summary_table(self, summary: Summary) -> None: ...

    def print_evaluation_summary(self, summary: EvaluationSummary, k8s_version: str) -> None: ...


@dataclass
class PrintResultsData:
    results: FormattedResults = field(default_factory=FormattedResults)
    rules_data: list[RuleData] = field(default_factory=list)
    invalid_yaml_files: list[InvalidFile] = field(default_factory=list)
    invalid_k8s_files: list[InvalidFile] = field(default_factory=list)
    evaluation_summary: EvaluationSummary = field(default_factory=EvaluationSummary)
    login_url: str = ""
    output_format: str = ""
    printer: Printer | None = None
    k8s_version: str = ""
    verbose: bool = False
    policy_name: str = ""
    k8s_validation_warnings: Mapping[str, FileWithWarning] = field(default_factory=dict)


def print_results(data: PrintResultsData) -> None:
    """Print the results in the format chosen by ``data.output_format``."""
    if not is_formatted_output_option(data.output_format):
        _text_output(data)
        return

    non_interactive = data.results.non_interactive_evaluation_results or NonInteractiveEvaluationResults()
    summary = data.evaluation_summary
    formatted_output = FormattedOutput(
        policy_validation_results=non_interactive.formatted_evaluation_results,
        policy_summary=non_interactive.policy_summary,
        evaluation_summary=NonInteractiveEvaluationSummary(
            configs_count=summary.configs_count,
            files_count=summary.files_count,
            passed_yaml_validation_count=summary.passed_yaml_validation_count,
            k8s_validation=summary.k8s_validation,
            passed_policy_validation_count=summary.passed_policy_check_count,
        ),
        yaml_validation_results=data.invalid_yaml_files,
        k8s_validation_results=data.invalid_k8s_files,
    )

    if data.output_format == "json":
        json_output(formatted_output)
    elif data.output_format == "yaml":
        yaml_output(formatted_output)
    elif data.output_format == "xml":
        xml_output(formatted_output)
    else:
        junit_output(formatted_output, data.rules_data)


def json_output(formatted_output: FormattedOutput) -> None:
    """Print compact JSON with HTML-sensitive characters escaped."""
    text = json.dumps(formatted_output.to_dict(), ensure_ascii=False, separators=(",", ":"))
    for char, escaped in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(char, escaped)
    print(text)


def _lists_not_null(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: [] if item is None and key in _YAML_LIST_KEYS else _lists_not_null(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_lists_not_null(item) for item in value]
    return value


def yaml_output(formatted_output: FormattedOutput) -> None:
    data = _lists_not_null(formatted_output.to_dict())
    print(yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False))


def _xml_escape(text: str) -> str:
    return "".join(_XML_ESCAPES.get(char, char) for char in text)


def _xml_nodes(tag: str, value: Any, depth: int) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [node for item in value for node in _xml_nodes(tag, item, depth)]
    indent = "\t" * depth
    if isinstance(value, dict):
        children = [node for key, item in value.items() for node in _xml_nodes(key, item, depth + 1)]
        if not children:
            return [f"{indent}<{tag}></{tag}>"]
        return [f"{indent}<{tag}>\n" + "\n".join(children) + f"\n{indent}</{tag}>"]
    text = ("true" if value else "false") if isinstance(value, bool) else str(value)
    return [f"{indent}<{tag}>{_xml_escape(text)}</{tag}>"]


def xml_output(formatted_output: FormattedOutput) -> None:
    body = "\n".join(_xml_nodes("FormattedOutput", formatted_output.to_dict(), 0))
    print(XML_HEADER + body)


def junit_output(formatted_output: FormattedOutput, rules_data: Sequence[RuleData]) -> None:
    print(XML_HEADER + formatted_output_to_junit(formatted_output, rules_data).to_xml())


def _text_output(data: PrintResultsData) -> None:
    if data.printer is None:
        raise ValueError("a printer is required for text output")
    warnings = parse_to_printer_warnings(
        data.results.evaluation_results,
        data.invalid_yaml_files,
        data.invalid_k8s_files,
        os.getcwd(),
        data.k8s_version,
        data.k8s_validation_warnings,
        data.verbose,
    )
    data.printer.print_warnings(warnings)
    summary = parse_evaluation_results_to_summary(
        data.results.evaluation_results, data.evaluation_summary, data.login_url, data.policy_name
    )
    data.printer.print_evaluation_summary(data.evaluation_summary, data.k8s_version)
    data.printer.print_summary_table(summary)


def _file_title(path: str) -> str:
    return f">>  File: {path}\n"


def _relative_path(path: str, start: str) -> str:
    try:
        return os.path.relpath(path, start)
    except ValueError:
        return ""


def parse_to_printer_warnings(
    results: EvaluationResults | None,
    invalid_yaml_files: Iterable[InvalidFile],
    invalid_k8s_files: Iterable[InvalidFile],
    pwd: str,
    k8s_version: str,
    k8s_validation_warnings: Mapping[str, FileWithWarning],
    verbose: bool,
) -> list[Warning]:
    """Build one warning per invalid file and per file with failed or skipped rules."""
    warnings = [
        Warning(title=_file_title(f.path), yaml_validation_errors=list(f.validation_errors))
        for f in invalid_yaml_files
    ]
    warnings.extend(
        Warning(
            title=_file_title(f.path),
            k8s_validation_errors=list(f.validation_errors),
            k8s_version=k8s_version,
            extra_messages=warning_extra_messages(f),
        )
        for f in invalid_k8s_files
    )
    if results is None:
        return warnings

    for filename in sorted(results.file_name_rule_mapper):
        rules = results.file_name_rule_mapper[filename]
        failed_rules: list[PrinterFailedRule] = []
        skipped_rules: list[PrinterFailedRule] = []
        for rule_key in sorted(rules):
            rule = rules[rule_key]
            common = dict(
                name=rule.name,
                documentation_url=rule.documentation_url if verbose else "",
                suggestion=rule.message_on_failure,
                occurrences=rule.failed_occurrences_count(),
            )
            failed = PrinterFailedRule(**common)
            skipped = PrinterFailedRule(**common)
            for occurrence in rule.occurrences_details:
                if occurrence.is_skipped:
                    skipped.occurrences_details.append(
                        OccurrenceLine(occurrence.metadata_name, occurrence.kind, occurrence.skip_message)
                    )
                else:
                    failed.occurrences_details.append(OccurrenceLine(occurrence.metadata_name, occurrence.kind))
            if skipped.occurrences_details:
                skipped_rules.append(skipped)
            if failed.occurrences_details:
                failed_rules.append(failed)

        file_warning = k8s_validation_warnings.get(filename)
        warnings.append(
            Warning(
                title=_file_title(_relative_path(filename, pwd)),
                failed_rules=failed_rules,
                skipped_rules=skipped_rules,
                k8s_validation_warning=file_warning.warning if file_warning is not None else "",
            )
        )
    return warnings


def warning_extra_messages(invalid_file: InvalidFile) -> list[ExtraMessage]:
    """Hints for files that look like raw Helm or Kustomize sources."""
    if is_helm_file(invalid_file.path):
        return [ExtraMessage(text=HELM_MESSAGE, color="cyan")]
    if is_kustomization_file(invalid_file.path):
        return [ExtraMessage(text=KUSTOMIZE_MESSAGE, color="cyan")]
    return []


def _extension(path: str) -> str:
    base = path.rsplit("/", 1)[-1]
    dot = base.rfind(".")
    return base[dot:] if dot >= 0 else ""


def is_helm_file(file_path: str) -> bool:
    clean_path = file_path.replace("\n", "")
    if _extension(clean_path) not in (".yml", ".yaml"):
        return False
    return any(marker in clean_path for marker in _HELM_MARKERS)


def is_kustomization_file(file_path: str) -> bool:
    clean_path = file_path.replace("\n", "")
    return any(marker in clean_path for marker in _KUSTOMIZE_MARKERS)


def parse_evaluation_results_to_summary(
    results: EvaluationResults | None,
    evaluation_summary: EvaluationSummary,
    login_url: str,
    policy_name: str,
) -> Summary:
    """The rows of the summary table."""
    total_evaluated = total_failed = total_skipped = total_passed = 0
    if results is not None:
        total_evaluated = evaluation_summary.rules_count * results.summary.files_count
        total_failed = results.summary.total_failed_rules
        total_skipped = results.summary.total_skipped_rules
        total_passed = results.summary.total_passed_rules

    plain_rows = [
        SummaryItem(f"Enabled rules in policy “{policy_name}”", str(evaluation_summary.rules_count), 0),
        SummaryItem(str(OutputTitle.EVALUATED_CONFIGURATIONS), str(evaluation_summary.configs_count), 1),
        SummaryItem(str(OutputTitle.TOTAL_RULES_EVALUATED), str(total_evaluated), 2),
        SummaryItem(str(OutputTitle.SEE_ALL), login_url, 6),
    ]
    return Summary(
        plain_rows=plain_rows,
        skip_row=SummaryItem(str(OutputTitle.TOTAL_SKIPPED_RULES), str(total_skipped), 3),
        error_row=SummaryItem(str(OutputTitle.TOTAL_RULES_FAILED), str(total_failed), 4),
        success_row=SummaryItem(str(OutputTitle.TOTAL_RULES_PASSED), str(total_passed), 5),
    )