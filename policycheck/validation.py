"""Kubernetes schema validation of extracted files."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import BinaryIO, Iterable, Protocol

from .results import FileConfigurations, InvalidFile

NO_CONNECTION_WARNING = "k8s schema validation skipped: no internet connection"
MISSING_SCHEMA_WARNING = "k8s schema validation skipped: --ignore-missing-schemas flag was used"


class InvalidK8sSchemaError(Exception):
    """A Kubernetes schema validation failure."""

    def __init__(self, error_message: str) -> None:
        super().__init__(error_message)
        self.error_message = error_message

    def _usage_suggestion(self) -> str:
        if self.error_message.startswith("could not find schema for "):
            return (
                "You can skip files with missing schemas instead of failing by using "
                "the `--ignore-missing-schemas` flag\n"
            )
        return ""

    def __str__(self) -> str:
        return f"k8s schema validation error: {self.error_message}\n{self._usage_suggestion()}"


class ValidationStatus(Enum):
    ERROR = "error"
    SKIPPED = "skipped"
    VALID = "valid"
    INVALID = "invalid"
    EMPTY = "empty"


@dataclass
class ValidationResult:
    """Outcome of validating one resource of a file."""

    status: ValidationStatus
    error: BaseException | None = None


class ValidationClient(Protocol):
    def validate(self, filename: str, stream: BinaryIO) -> list[ValidationResult]: ...


class WarningKind(IntEnum):
    NETWORK_ERROR = 1
    SKIPPED = 2


@dataclass
class FileWithWarning:
    filename: str
    warning: str
    warning_kind: WarningKind


@dataclass
class ValidationOutcome:
    """Files sorted by the result of schema validation."""

    valid_files: list[FileConfigurations] = field(default_factory=list)
    invalid_files: list[InvalidFile] = field(default_factory=list)
    warnings: list[FileWithWarning] = field(default_factory=list)


@dataclass
class _FileCheck:
    is_valid: bool
    errors: list[BaseException] = field(default_factory=list)
    warning: tuple[WarningKind, str] | None = None


def _is_network_error(message: str) -> bool:
    return "no such host" in message or "connection refused" in message


class K8sValidator:
    """Validates files against Kubernetes schemas through a validation client."""

    def __init__(self, validation_client: ValidationClient) -> None:
        self.validation_client = validation_client

    def validate_resources(self, files_configurations: Iterable[FileConfigurations]) -> ValidationOutcome:
        """Split files into valid and invalid ones, collecting warnings for valid files."""
        outcome = ValidationOutcome()
        for file_configurations in files_configurations:
            path = file_configurations.file_name
            try:
                check = self._validate_resource(path)
            except OSError as exc:
                opening_error = OSError(f"failed opening {path}: {InvalidK8sSchemaError(str(exc))}")
                outcome.invalid_files.append(InvalidFile(path=path, validation_errors=[opening_error]))
                # An unreadable file is also reported as invalid with no schema errors.
                check = _FileCheck(is_valid=False)
            if check.is_valid:
                outcome.valid_files.append(file_configurations)
                if check.warning is not None:
                    kind, message = check.warning
                    outcome.warnings.append(FileWithWarning(filename=path, warning=message, warning_kind=kind))
            else:
                outcome.invalid_files.append(InvalidFile(path=path, validation_errors=check.errors))
        return outcome

    def get_k8s_files(
        self, files_configurations: Iterable[FileConfigurations]
    ) -> tuple[list[FileConfigurations], list[FileConfigurations]]:
        """Return (Kubernetes files, other YAML files)."""
        k8s_files: list[FileConfigurations] = []
        ignored_files: list[FileConfigurations] = []
        for file_configurations in files_configurations:
            target = k8s_files if self.is_k8s_file(file_configurations.configurations) else ignored_files
            target.append(file_configurations)
        return k8s_files, ignored_files

    def is_k8s_file(self, configurations: Iterable[dict]) -> bool:
        """True if every configuration has both apiVersion and kind keys."""
        return all("apiVersion" in c and "kind" in c for c in configurations)

    def _validate_resource(self, path: str) -> _FileCheck:
        with open(path, "rb") as stream:
            results = self.validation_client.validate(path, stream)

        if all(result.status is ValidationStatus.EMPTY for result in results):
            return _FileCheck(is_valid=False, errors=[InvalidK8sSchemaError("empty file")])

        is_valid = True
        any_skipped = False
        errors: list[BaseException] = []
        for result in results:
            if result.status is ValidationStatus.SKIPPED:
                any_skipped = True
            if result.status in (ValidationStatus.INVALID, ValidationStatus.ERROR):
                message = str(result.error)
                if _is_network_error(message):
                    return _FileCheck(
                        is_valid=True, warning=(WarningKind.NETWORK_ERROR, NO_CONNECTION_WARNING)
                    )
                is_valid = False
                errors.extend(InvalidK8sSchemaError(part.strip(" ")) for part in message.split("-"))

        warning = (WarningKind.SKIPPED, MISSING_SCHEMA_WARNING) if any_skipped and is_valid else None
        return _FileCheck(is_valid=is_valid, errors=errors, warning=warning)


def datree_crd_schema_by_name(crd_catalog_name: str) -> str:
    """Schema location template for a CRD catalog."""
    return (
        "https://raw.githubusercontent.com/datreeio/CRDs-catalog/master/"
        + crd_catalog_name
        + "/{{ .ResourceKind }}_{{ .ResourceAPIVersion }}.json"
    )


def default_schema_locations() -> list[str]:
    """Schema locations searched before any user-supplied ones; order matters."""
    return [
        "default",
        "https://raw.githubusercontent.com/yannh/kubernetes-json-schema/master/"
        "{{ .NormalizedKubernetesVersion }}/{{ .ResourceKind }}{{ .KindSuffix }}.json",
        datree_crd_schema_by_name("argo"),
    ]