"""JUnit XML report of a policy check."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from .results import (
    FormattedEvaluationResults,
    FormattedOutput,
    OccurrenceDetails,
    PolicySummary,
    RuleData,
    RuleResult,
)

ALL_SKIPPED_MESSAGE = "All failing configs skipped"

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


def _escape(text: str) -> str:
    return "".join(_XML_ESCAPES.get(char, char) for char in text)


def _element(tag: str, attributes: Sequence[tuple[str, str]], depth: int, children: Sequence[str] = (), text: str = "") -> str:
    indent = "\t" * depth
    attrs = "".join(f' {name}="{_escape(value)}"' for name, value in attributes)
    opening = f"{indent}<{tag}{attrs}>"
    if children:
        return opening + "\n" + "\n".join(children) + "\n" + indent + f"</{tag}>"
    return f"{opening}{_escape(text)}</{tag}>"


@dataclass
class JUnitProperty:
    name: str
    value: str

    def _render(self, depth: int) -> str:
        return _element("property", [("name", self.name), ("value", self.value)], depth)


@dataclass
class JUnitTestCase:
    """One rule checked against one file; failure and skip are optional."""

    name: str
    class_name: str
    skipped_message: str | None = None
    failure_message: str | None = None
    failure_content: str = ""

    def _render(self, depth: int) -> str:
        children = []
        if self.skipped_message is not None:
            children.append(_element("skipped", [("message", self.skipped_message)], depth + 1))
        if self.failure_message is not None:
            children.append(
                _element("failure", [("message", self.failure_message)], depth + 1, text=self.failure_content)
            )
        return _element("testcase", [("name", self.name), ("classname", self.class_name)], depth, children)


@dataclass
class JUnitTestSuite:
    name: str
    properties: list[JUnitProperty] | None = None
    test_cases: list[JUnitTestCase] = field(default_factory=list)

    def _render(self, depth: int) -> str:
        children = []
        if self.properties:
            children.append(
                _element("properties", [], depth + 1, [p._render(depth + 2) for p in self.properties])
            )
        children.extend(case._render(depth + 1) for case in self.test_cases)
        return _element("testsuite", [("name", self.name)], depth, children)


@dataclass
class JUnitOutput:
    name: str
    tests: int
    failures: int
    skipped: int
    test_suites: list[JUnitTestSuite] = field(default_factory=list)

    def to_xml(self) -> str:
        """The tab-indented XML document, without the XML declaration."""
        attributes = [
            ("name", self.name),
            ("tests", str(self.tests)),
            ("failures", str(self.failures)),
            ("skipped", str(self.skipped)),
        ]
        return _element("testsuites", attributes, 0, [suite._render(1) for suite in self.test_suites])


def _occurrences_content(details: Sequence[OccurrenceDetails]) -> str:
    total = sum(d.occurrences for d in details)
    lines = [f"— metadata.name: {d.metadata_name} (kind: {d.kind})\n" for d in details]
    skipped_lines = [line for line, d in zip(lines, details) if d.is_skipped]
    return f"{total} occurrences\n{''.join(lines)}{len(skipped_lines)} skipped\n{''.join(skipped_lines)}"


def _find_rule_result(rule: RuleData, rule_results: Sequence[RuleResult]) -> RuleResult | None:
    return next((result for result in rule_results if result.identifier == rule.identifier), None)


def _file_suite(file_results: FormattedEvaluationResults, rules_data: Sequence[RuleData]) -> JUnitTestSuite:
    suite = JUnitTestSuite(name=file_results.file_name, test_cases=[])
    for rule in rules_data:
        case = JUnitTestCase(name=rule.name, class_name=rule.identifier)
        result = _find_rule_result(rule, file_results.rule_results or ())
        if result is not None:
            case.failure_message = result.message_on_failure
            case.failure_content = _occurrences_content(result.occurrences_details)
            if all(d.is_skipped for d in result.occurrences_details):
                case.skipped_message = ALL_SKIPPED_MESSAGE
        suite.test_cases.append(case)
    return suite


def formatted_output_to_junit(formatted_output: FormattedOutput, rules_data: Sequence[RuleData]) -> JUnitOutput:
    """One suite per evaluated file plus policy and evaluation summary suites."""
    summary = formatted_output.policy_summary or PolicySummary()
    evaluation = formatted_output.evaluation_summary
    suites = [_file_suite(result, rules_data) for result in formatted_output.policy_validation_results or ()]
    suites.append(
        JUnitTestSuite(
            name="policySummary",
            properties=[
                JUnitProperty("policyName", summary.policy_name),
                JUnitProperty("totalRulesInPolicy", str(summary.total_rules_in_policy)),
                JUnitProperty("totalSkippedRules", str(summary.total_skipped_rules)),
                JUnitProperty("totalRulesFailed", str(summary.total_rules_failed)),
                JUnitProperty("totalPassedCount", str(summary.total_passed_count)),
            ],
        )
    )
    suites.append(
        JUnitTestSuite(
            name="evaluationSummary",
            properties=[
                JUnitProperty("configsCount", str(evaluation.configs_count)),
                JUnitProperty("filesCount", str(evaluation.files_count)),
                JUnitProperty("passedYamlValidationCount", str(evaluation.passed_yaml_validation_count)),
                JUnitProperty("k8sValidation", evaluation.k8s_validation),
                JUnitProperty("passedPolicyValidationCount", str(evaluation.passed_policy_validation_count)),
            ],
        )
    )
    return JUnitOutput(
        name=summary.policy_name,
        tests=summary.total_rules_in_policy,
        failures=summary.total_rules_failed,
        skipped=summary.total_skipped_rules,
        test_suites=suites,
    )