"""Check Kubernetes configurations against JSON-schema policy rules and format the results."""

__version__ = "0.1.0"