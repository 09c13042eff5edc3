import json
import os

import pytest
import yaml

from policycheck.evaluator import EvaluationResults, EvaluationResultsSummary, FormattedResults
from policycheck.printer import (
    HELM_MESSAGE,
    KUSTOMIZE_MESSAGE,
    EvaluationSummary,
    OutputTitle,
    PrintResultsData,
    is_helm_file,
    is_kustomization_file,
    json_output,
    junit_output,
    parse_evaluation_results_to_summary,
    parse_to_printer_warnings,
    print_results,
    warning_extra_messages,
    xml_output,
    yaml_output,
)
from policycheck.results import (
    FormattedEvaluationResults,
    FormattedOutput,
    InvalidFile,
    NonInteractiveEvaluationResults,
    NonInteractiveEvaluationSummary,
    OccurrenceDetails,
    PolicySummary,
    Rule,
    RuleData,
    RuleResult,
)
from policycheck.validation import FileWithWarning, WarningKind


class RecordingPrinter:
    def __init__(self):
        self.calls = []

    def print_warnings(self, warnings):
        self.calls.append(("warnings", warnings))

    def print_summary_table(self, summary):
        self.calls.append(("summary_table", summary))

    def print_evaluation_summary(self, summary, k8s_version):
        self.calls.append(("evaluation_summary", summary, k8s_version))


def _results_data(output_format, printer):
    return PrintResultsData(
        results=FormattedResults(
            evaluation_results=EvaluationResults(file_name_rule_mapper={}, summary=EvaluationResultsSummary()),
            non_interactive_evaluation_results=NonInteractiveEvaluationResults(
                policy_summary=PolicySummary(policy_name="Default"),
                formatted_evaluation_results=[],
            ),
        ),
        login_url="login/url",
        output_format=output_format,
        printer=printer,
        k8s_version="1.18.0",
        policy_name="Default",
    )


def _occurrence():
    return [OccurrenceDetails(metadata_name="rss-site", kind="Deployment", occurrences=1)]


def _formatted_output():
    return FormattedOutput(
        policy_validation_results=[
            FormattedEvaluationResults(
                file_name="File1",
                rule_results=[
                    RuleResult(
                        identifier="CONTAINERS_MISSING_IMAGE_VALUE_VERSION",
                        name="Ensure each container image has a pinned (tag) version",
                        message_on_failure='Incorrect value for key `image` - specify an image version to avoid unpleasant "version surprises" in the future',
                        occurrences_details=_occurrence(),
                    ),
                    RuleResult(
                        identifier="CONTAINERS_MISSING_MEMORY_LIMIT_KEY",
                        name="Ensure each container has a configured memory limit",
                        message_on_failure="Missing property object `limits.memory` - value should be within the accepted boundaries recommended by the organization",
                        occurrences_details=_occurrence(),
                    ),
                    RuleResult(
                        identifier="WORKLOAD_INVALID_LABELS_VALUE",
                        name="Ensure workload has valid label values",
                        message_on_failure="Incorrect value for key(s) under `labels` - the vales syntax is not valid so the Kubernetes engine will not accept it",
                        occurrences_details=_occurrence(),
                    ),
                    RuleResult(
                        identifier="CONTAINERS_MISSING_LIVENESSPROBE_KEY",
                        name="Ensure each container has a configured liveness probe",
                        message_on_failure="Missing property object `livenessProbe` - add a properly configured livenessProbe to catch possible deadlocks",
                        occurrences_details=_occurrence(),
                    ),
                ],
            )
        ],
        policy_summary=PolicySummary(
            policy_name="Default", total_rules_in_policy=21, total_rules_failed=4, total_passed_count=0
        ),
        evaluation_summary=NonInteractiveEvaluationSummary(
            configs_count=1,
            files_count=1,
            passed_yaml_validation_count=1,
            k8s_validation="1/1",
            passed_policy_validation_count=0,
        ),
    )


def _rules_data():
    return [
        RuleData("CONTAINERS_MISSING_IMAGE_VALUE_VERSION", "Ensure each container image has a pinned (tag) version"),
        RuleData("CONTAINERS_MISSING_MEMORY_LIMIT_KEY", "Ensure each container has a configured memory limit"),
        RuleData("WORKLOAD_INVALID_LABELS_VALUE", "Ensure workload has valid label values"),
        RuleData("CONTAINERS_MISSING_LIVENESSPROBE_KEY", "Ensure each container has a configured liveness probe"),
        RuleData("CONTAINERS_MISSING_CPU_LIMIT_KEY", "Ensure each container has a configured CPU limit"),
    ]


@pytest.mark.parametrize("output_format", ["json", "yaml", "xml", "JUnit"])
def test_formatted_outputs_do_not_print_warnings(output_format, capsys):
    printer = RecordingPrinter()
    print_results(_results_data(output_format, printer))
    assert printer.calls == []
    assert capsys.readouterr().out.strip() != ""


def test_text_output_calls_printer_in_order():
    printer = RecordingPrinter()
    data = _results_data("", printer)
    print_results(data)
    expected_warnings = parse_to_printer_warnings(
        data.results.evaluation_results, [], [], os.getcwd(), "1.18.0", {}, False
    )
    assert [call[0] for call in printer.calls] == ["warnings", "evaluation_summary", "summary_table"]
    assert printer.calls[0][1] == expected_warnings == []
    assert printer.calls[1][2] == "1.18.0"
    assert printer.calls[2][1].plain_rows[3].right_col == "login/url"


def test_text_output_without_printer_raises():
    with pytest.raises(ValueError):
        print_results(_results_data("simple", None))


def test_json_output(capsys):
    json_output(_formatted_output())
    out = capsys.readouterr().out
    assert out.startswith(
        '{"policyValidationResults":[{"fileName":"File1","ruleResults":[{"identifier":"CONTAINERS_MISSING_IMAGE_VALUE_VERSION"'
    )
    assert out.endswith('"yamlValidationResults":null,"k8sValidationResults":null}\n')
    assert '\\"version surprises\\"' in out
    loaded = json.loads(out)
    assert loaded["evaluationSummary"] == {
        "configsCount": 1,
        "filesCount": 1,
        "passedYamlValidationCount": 1,
        "k8sValidation": "1/1",
        "passedPolicyValidationCount": 0,
    }
    assert loaded["policySummary"]["totalRulesInPolicy"] == 21


def test_json_output_escapes_html_characters(capsys):
    output = FormattedOutput(policy_summary=PolicySummary(policy_name="a<b>&c"))
    json_output(output)
    out = capsys.readouterr().out
    assert "a\\u003cb\\u003e\\u0026c" in out
    assert json.loads(out)["policySummary"]["policyName"] == "a<b>&c"


def test_yaml_output(capsys):
    yaml_output(_formatted_output())
    loaded = yaml.safe_load(capsys.readouterr().out)
    assert list(loaded) == [
        "policyValidationResults",
        "policySummary",
        "evaluationSummary",
        "yamlValidationResults",
        "k8sValidationResults",
    ]
    assert loaded["yamlValidationResults"] == []
    assert loaded["policyValidationResults"][0]["ruleResults"][3]["identifier"] == "CONTAINERS_MISSING_LIVENESSPROBE_KEY"
    assert loaded["policySummary"]["totalRulesFailed"] == 4


def test_xml_output(capsys):
    xml_output(_formatted_output())
    out = capsys.readouterr().out
    assert out.startswith(
        '<?xml version="1.0" encoding="UTF-8"?>\n<FormattedOutput>\n\t<policyValidationResults>\n\t\t<fileName>File1</fileName>\n\t\t<ruleResults>\n'
    )
    assert "&#34;version surprises&#34;" in out
    assert "\t<evaluationSummary>\n\t\t<configsCount>1</configsCount>" in out
    assert "<isSkipped>false</isSkipped>" in out
    assert "<skipMessage></skipMessage>" in out
    assert "yamlValidationResults" not in out
    assert out.endswith("</FormattedOutput>\n")


def test_junit_output(capsys):
    junit_output(_formatted_output(), _rules_data())
    out = capsys.readouterr().out
    assert out.startswith(
        '<?xml version="1.0" encoding="UTF-8"?>\n<testsuites name="Default" tests="21" failures="4" skipped="0">\n\t<testsuite name="File1">'
    )
    assert (
        '<testcase name="Ensure each container has a configured CPU limit" '
        'classname="CONTAINERS_MISSING_CPU_LIMIT_KEY"></testcase>' in out
    )
    assert out.count("<failure ") == 4
    assert '<property name="k8sValidation" value="1/1"></property>' in out


def _results_with_file(path):
    rule_a = Rule(
        identifier="B_RULE",
        name="rule b",
        message_on_failure="fix b",
        documentation_url="docs/b",
        occurrences_details=[
            OccurrenceDetails(metadata_name="one", kind="Deployment", occurrences=2),
            OccurrenceDetails(metadata_name="two", kind="Service", occurrences=3, is_skipped=True, skip_message="why"),
        ],
    )
    rule_b = Rule(
        identifier="A_RULE",
        name="rule a",
        message_on_failure="fix a",
        occurrences_details=[OccurrenceDetails(metadata_name="one", kind="Deployment", occurrences=1)],
    )
    return EvaluationResults(
        file_name_rule_mapper={path: {"B_RULE": rule_a, "A_RULE": rule_b}},
        summary=EvaluationResultsSummary(files_count=1),
    )


def test_parse_to_printer_warnings_splits_failed_and_skipped(tmp_path):
    path = str(tmp_path / "dir" / "deploy.yaml")
    warning = FileWithWarning(path, "no connection", WarningKind.NETWORK_ERROR)
    warnings = parse_to_printer_warnings(
        _results_with_file(path), [], [], str(tmp_path), "1.20.0", {path: warning}, False
    )
    assert len(warnings) == 1
    only = warnings[0]
    assert only.title == f">>  File: {os.path.join('dir', 'deploy.yaml')}\n"
    assert [r.name for r in only.failed_rules] == ["rule a", "rule b"]
    assert [r.name for r in only.skipped_rules] == ["rule b"]
    assert only.failed_rules[1].occurrences == 2
    assert only.failed_rules[1].documentation_url == ""
    assert [o.metadata_name for o in only.failed_rules[1].occurrences_details] == ["one"]
    assert only.skipped_rules[0].occurrences_details[0].skip_message == "why"
    assert only.k8s_validation_warning == "no connection"


def test_parse_to_printer_warnings_verbose_keeps_documentation(tmp_path):
    path = str(tmp_path / "deploy.yaml")
    warnings = parse_to_printer_warnings(_results_with_file(path), [], [], str(tmp_path), "", {}, True)
    assert warnings[0].failed_rules[1].documentation_url == "docs/b"
    assert warnings[0].k8s_validation_warning == ""


def test_parse_to_printer_warnings_invalid_files_first():
    yaml_error = ValueError("bad yaml")
    k8s_error = ValueError("bad schema")
    warnings = parse_to_printer_warnings(
        None,
        [InvalidFile("broken.yaml", [yaml_error])],
        [InvalidFile("Chart.yaml", [k8s_error])],
        "/",
        "1.19.0",
        {},
        False,
    )
    assert [w.title for w in warnings] == [">>  File: broken.yaml\n", ">>  File: Chart.yaml\n"]
    assert warnings[0].yaml_validation_errors == [yaml_error]
    assert warnings[1].k8s_validation_errors == [k8s_error]
    assert warnings[1].k8s_version == "1.19.0"
    assert warnings[1].extra_messages[0].text == HELM_MESSAGE
    assert warnings[1].extra_messages[0].color == "cyan"


def test_warning_extra_messages():
    assert warning_extra_messages(InvalidFile("kustomization.yaml"))[0].text == KUSTOMIZE_MESSAGE
    assert warning_extra_messages(InvalidFile("deploy.yaml")) == []


@pytest.mark.parametrize(
    "path, expected",
    [
        ("Chart.yaml", True),
        ("templates/values.yml", True),
        ("a/Values.yaml\n", True),
        ("chart.txt", False),
        ("deploy.yaml", False),
    ],
)
def test_is_helm_file(path, expected):
    assert is_helm_file(path) is expected


@pytest.mark.parametrize(
    "path, expected",
    [
        ("kustomization.yaml", True),
        ("base/kustomization.yml", True),
        ("Kustomization", True),
        ("deploy.yaml", False),
    ],
)
def test_is_kustomization_file(path, expected):
    assert is_kustomization_file(path) is expected


def test_summary_rows():
    results = EvaluationResults(
        summary=EvaluationResultsSummary(
            total_failed_rules=2, total_skipped_rules=1, total_passed_rules=3, files_count=2
        )
    )
    summary = parse_evaluation_results_to_summary(
        results, EvaluationSummary(configs_count=4, rules_count=3), "login/url", "Default"
    )
    assert [(r.left_col, r.right_col, r.row_index) for r in summary.plain_rows] == [
        ("Enabled rules in policy “Default”", "3", 0),
        ("Configs tested against policy", "4", 1),
        ("Total rules evaluated", "6", 2),
        ("See all rules in policy", "login/url", 6),
    ]
    assert (summary.skip_row.right_col, summary.skip_row.row_index) == ("1", 3)
    assert (summary.error_row.right_col, summary.error_row.row_index) == ("2", 4)
    assert (summary.success_row.right_col, summary.success_row.row_index) == ("3", 5)


def test_summary_without_results_is_zero():
    summary = parse_evaluation_results_to_summary(None, EvaluationSummary(rules_count=5), "", "p")
    assert summary.plain_rows[2].right_col == "0"
    assert summary.error_row.right_col == "0"
    assert summary.plain_rows[0].right_col == "5"


def test_output_title_strings():
    summary = parse_evaluation_results_to_summary(None, EvaluationSummary(), "", "p")
    assert summary.error_row.left_col == str(OutputTitle.TOTAL_RULES_FAILED) == "Total rules failed"
    assert summary.skip_row.left_col == str(OutputTitle.TOTAL_SKIPPED_RULES) == "Total rules skipped"
    assert summary.success_row.left_col == str(OutputTitle.TOTAL_RULES_PASSED) == "Total rules passed"