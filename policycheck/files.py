"""Reading YAML files into configurations."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable

import yaml

from .results import FileConfigurations, InvalidFile

Extractor = Callable[[str], "FileConfigurations | InvalidFile"]


def extract_yaml_file_to_unknown_struct(path: str) -> dict[str, Any]:
    """Read the first YAML document of a file as a mapping.

    Raises OSError if the file cannot be read, yaml.YAMLError if it is not
    valid YAML and ValueError if it holds no mapping.
    """
    absolute_path = os.path.abspath(path)
    with open(absolute_path, encoding="utf-8") as stream:
        content = stream.read()

    document = next(iter(yaml.safe_load_all(content)), None)
    if document is None:
        raise ValueError(f"{path}: no YAML document found")
    if not isinstance(document, dict):
        raise ValueError(f"{path}: expected a YAML mapping")
    return document


def extract_files_configurations(
    paths: Iterable[str],
    extract: Extractor,
    concurrency: int = 4,
) -> tuple[list[FileConfigurations], list[InvalidFile]]:
    """Run *extract* on every path with up to *concurrency* workers.

    *extract* returns a FileConfigurations for a readable file or an
    InvalidFile describing why it could not be read. Results keep the order
    of *paths*.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    valid: list[FileConfigurations] = []
    invalid: list[InvalidFile] = []
    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        for result in pool.map(extract, paths):
            if isinstance(result, InvalidFile):
                invalid.append(result)
            else:
                valid.append(result)
    return valid, invalid