# policycheck

A library for checking Kubernetes YAML configurations against a policy of
JSON-schema rules and reporting what failed, what was skipped and what passed.

## Installation

```
pip install policycheck
```

To run the tests as well:

```
pip install "policycheck[test]"
pytest
```

## Modules

- `policycheck.results` holds the records shared by the other modules
  (`FileConfigurations`, `InvalidFile`, `Rule`, `OccurrenceDetails`,
  `FormattedOutput`, `RuleData`, ...), the output-option checks
  `is_valid_output_option` and `is_formatted_output_option`, and
  `get_os_info`, which describes the host operating system.
- `policycheck.files` reads YAML:
  `extract_yaml_file_to_unknown_struct(path)` returns the first document of a
  file as a mapping, and `extract_files_configurations(paths, extract,
  concurrency=4)` runs an extractor function over many paths in a thread pool
  and returns `(valid_files, invalid_files)` in the order of the paths.
- `policycheck.validation` has `K8sValidator`, which sorts files into
  Kubernetes and other YAML files (`get_k8s_files`, `is_k8s_file`) and checks
  them through a validation client you supply (`validate_resources`, which
  returns a `ValidationOutcome` of valid files, invalid files and warnings).
  `default_schema_locations()` and `datree_crd_schema_by_name(name)` give the
  schema location templates such a client would search.
- `policycheck.policy` builds the policy to evaluate:
  `create_policy(policies, policy_name, registration_url, default_rules)`
  picks a named policy, or the account's default one, from `PrerunPolicies`
  and resolves its rules against custom and default rules;
  `create_default_policy(default_rules)` keeps every `DefaultRule` that is
  enabled by default. Problems raise `PolicyError`.
- `policycheck.evaluator` has `Evaluator`, which runs every rule of a policy
  over every configuration (`evaluate`) and sends a report through a client
  you supply (`send_evaluation_result`). A rule is skipped for a resource
  that carries the annotation `datree.io/skip/<RULE_ID>`.
- `policycheck.printer` prints results (`print_results`) as JSON, YAML, XML
  or JUnit, or hands warnings and summary rows to a printer object for text
  output.
- `policycheck.junit` builds the JUnit report (`formatted_output_to_junit`,
  `JUnitOutput.to_xml`).
- `policycheck.messager` fetches a version message in the background
  (`Messager.load_version_messages` returns a `concurrent.futures.Future`).
- `policycheck.error_reporter` sends error reports through a client you
  supply (`ErrorReporter`); reporting never raises.

## Example

```python
import os

import yaml

from policycheck.evaluator import Evaluator, PolicyCheckData
from policycheck.files import extract_files_configurations
from policycheck.policy import DefaultRule, create_default_policy
from policycheck.results import FileConfigurations, InvalidFile


def extract(path):
    try:
        with open(path, encoding="utf-8") as stream:
            documents = [d for d in yaml.safe_load_all(stream) if d is not None]
    except (OSError, yaml.YAMLError) as exc:
        return InvalidFile(path=path, validation_errors=[exc])
    return FileConfigurations(file_name=os.path.abspath(path), configurations=documents)


default_rules = [
    DefaultRule(
        unique_name="RESOURCE_MISSING_NAME",
        name="Ensure each resource has a name",
        schema={"properties": {"metadata": {"required": ["name"]}}},
        message_on_failure="Missing property `metadata.name`",
        enabled_by_default=True,
    ),
]
policy = create_default_policy(default_rules)

files, invalid = extract_files_configurations(["deployment.yaml"], extract)
evaluator = Evaluator(cli_client=None)
result = evaluator.evaluate(
    PolicyCheckData(
        files_configurations=files,
        is_interactive_mode=False,
        policy_name=policy.name,
        policy=policy,
    )
)
results = result.formatted_results.evaluation_results
if results is not None:
    print(results.summary.total_failed_rules, results.summary.total_passed_rules)
```

`Evaluator` only uses its client in `send_evaluation_result`; any object with
a `send_evaluation_result(request)` method will do.

## Output formats

`is_valid_output_option` accepts `""`, `"simple"`, `"yaml"`, `"json"`,
`"xml"` and `"JUnit"`. The last four are the formatted outputs
(`is_formatted_output_option`) and are printed to standard output. For the
others, `print_results` passes warnings, the evaluation summary and the
summary table to the printer object given in `PrintResultsData`.

## What it does not do

- There is no command-line program; the package is a library.
- It does not split YAML files into configurations by itself for
  `extract_files_configurations`; you pass the extractor function.
- It does not download Kubernetes schemas or talk to any service. Schema
  validation, evaluation reports, version messages and error reports all go
  through client objects you supply.
- It ships no built-in rule set and stores no local configuration; default
  rules and local configuration are passed in.
- Text output is drawn by the printer object you supply; the package only
  prepares what it is given.