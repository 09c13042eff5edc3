"""Reporting unexpected errors to the service."""

from __future__ import annotations

import traceback
from dataclasses import dataclass
from typing import Any, Protocol

PANIC_ERROR_URI = "/report-cli-panic-error"
UNEXPECTED_ERROR_URI = "/report-cli-unexpected-error"


@dataclass
class LocalConfig:
    client_id: str = ""
    token: str = ""


@dataclass
class CliErrorReport:
    client_id: str
    token: str
    cli_version: str
    error_message: str
    stack_trace: str


class LocalConfigProvider(Protocol):
    def get_local_configuration(self) -> LocalConfig: ...


class ErrorReportClient(Protocol):
    def report_cli_error(self, report: CliErrorReport, uri: str) -> Any: ...


class ErrorReporter:
    """Sends error reports; reporting itself never raises."""

    def __init__(self, client: ErrorReportClient, local_config: LocalConfigProvider, cli_version: str) -> None:
        self.client = client
        self.local_config = local_config
        self.cli_version = cli_version

    def report_panic_error(self, error: Any) -> None:
        self.report_error(error, PANIC_ERROR_URI)

    def report_unexpected_error(self, error: BaseException) -> None:
        self.report_error(error, UNEXPECTED_ERROR_URI)

    def report_error(self, error: Any, uri: str) -> None:
        """Send *error* with the current stack to *uri*, ignoring any failure."""
        config = self._local_config()
        report = CliErrorReport(
            client_id=config.client_id,
            token=config.token,
            cli_version=self.cli_version,
            error_message=str(error),
            stack_trace="".join(traceback.format_stack()),
        )
        try:
            self.client.report_cli_error(report, uri)
        except Exception:
            pass

    def _local_config(self) -> LocalConfig:
        unknown = LocalConfig(client_id="unknown", token="unknown")
        try:
            config = self.local_config.get_local_configuration()
        except Exception:
            return unknown
        return config if config is not None else unknown