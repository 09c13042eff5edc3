"""Build the policy to evaluate from the policies known to the service."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Sequence

DEFAULT_POLICY_NAME = "Default"


class PolicyError(Exception):
    """The requested policy cannot be built."""


@dataclass
class RuleWithSchema:
    """A rule ready for evaluation: its identity, message and JSON schema."""

    rule_identifier: str
    rule_name: str
    documentation_url: str
    schema: Any
    message_on_failure: str


@dataclass
class Policy:
    name: str = ""
    rules: list[RuleWithSchema] = field(default_factory=list)


@dataclass
class DefaultRule:
    """A built-in rule definition."""

    unique_name: str
    name: str
    schema: Any
    message_on_failure: str = ""
    documentation_url: str = ""
    enabled_by_default: bool = False


@dataclass
class PolicyRule:
    """A rule reference inside a policy, with the policy's failure message."""

    identifier: str
    message_on_failure: str = ""


@dataclass
class CustomRule:
    """A user-defined rule; its schema is given parsed or as a JSON string."""

    identifier: str
    name: str
    schema: Any = None
    json_schema: str = ""


@dataclass
class PrerunPolicy:
    name: str
    is_default: bool = False
    rules: list[PolicyRule] | None = field(default_factory=list)


@dataclass
class PrerunPolicies:
    """The policies and custom rules of an account."""

    policies: list[PrerunPolicy] = field(default_factory=list)
    custom_rules: list[CustomRule] = field(default_factory=list)


def create_policy(
    policies: PrerunPolicies | None,
    policy_name: str,
    registration_url: str,
    default_rules: Sequence[DefaultRule],
) -> Policy:
    """Choose a policy by name (or the account default) and resolve its rules.

    Without account policies only the built-in default policy is available.
    """
    if policies is None:
        if policy_name not in ("", DEFAULT_POLICY_NAME):
            raise PolicyError(
                f"policy {policy_name} doesn't exist, sign in to the dashboard to "
                f"customize your policies: {registration_url}"
            )
        return create_default_policy(default_rules)

    chosen: PrerunPolicy | None = None
    for candidate in policies.policies:
        if policy_name == "" and candidate.is_default:
            chosen = candidate
            policy_name = candidate.name
            break
        if candidate.name == policy_name:
            chosen = candidate
            break

    if chosen is None:
        raise PolicyError(f"policy {policy_name} doesn't exist")

    rules = _populate_rules(chosen.rules, policies.custom_rules, default_rules)
    return Policy(policy_name, rules)


def _parse_json_schema(text: str) -> dict[str, Any]:
    try:
        schema = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PolicyError(f"invalid custom rule schema: {exc}") from exc
    if not isinstance(schema, dict):
        raise PolicyError("invalid custom rule schema: expected a JSON object")
    return schema


def _populate_rules(
    policy_rules: list[PolicyRule] | None,
    custom_rules: Sequence[CustomRule],
    default_rules: Sequence[DefaultRule],
) -> list[RuleWithSchema]:
    custom_by_id = {}
    for custom in custom_rules:
        custom_by_id.setdefault(custom.identifier, custom)
    default_by_id = {}
    for default in default_rules:
        default_by_id.setdefault(default.unique_name, default)

    rules: list[RuleWithSchema] = []
    for rule in policy_rules or ():
        custom = custom_by_id.get(rule.identifier)
        if custom is not None:
            schema = custom.schema if custom.schema is not None else _parse_json_schema(custom.json_schema)
            rules.append(RuleWithSchema(rule.identifier, custom.name, "", schema, rule.message_on_failure))
            continue
        default = default_by_id.get(rule.identifier)
        if default is None:
            raise PolicyError(f"rule {rule.identifier} is not custom nor default")
        rules.append(
            RuleWithSchema(
                rule.identifier,
                default.name,
                default.documentation_url,
                default.schema,
                rule.message_on_failure,
            )
        )
    return rules


def create_default_policy(default_rules: Sequence[DefaultRule]) -> Policy:
    """The built-in policy: every default rule that is enabled by default."""
    rules = [
        RuleWithSchema(
            rule.unique_name,
            rule.name,
            rule.documentation_url,
            rule.schema,
            rule.message_on_failure,
        )
        for rule in default_rules
        if rule.enabled_by_default
    ]
    return Policy(DEFAULT_POLICY_NAME, rules)