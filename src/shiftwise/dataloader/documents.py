# src/shiftwise/dataloader/documents.py
from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from shiftwise.errors import ShiftwiseError

YAML_SUFFIXES = frozenset({".yaml", ".yml"})
JSON_SUFFIXES = frozenset({".json"})


def read_mapping(
    path: Path | str,
    *,
    suffixes: frozenset[str],
    error: type[ShiftwiseError],
    what: str,
    source: str,
) -> dict[str, Any]:
    """
    @brief
    Read a YAML or JSON document whose root must be a mapping.

    @details
    The parser follows the file suffix: `.json` goes through `json`, every
    other accepted suffix through `yaml.safe_load`. All failures raise the
    caller's error class so config and snapshot problems stay distinguishable.

    @params
        path : Path | str
            Document location.
        suffixes : frozenset[str]
            Accepted lower-case suffixes.
        error : type[ShiftwiseError]
            Exception class raised on any failure.
        what : str
            Human name of the document, used in messages.
        source : str
            Reported as the error source.

    @returns
        The parsed root mapping as a plain dict.

    @raises
        ShiftwiseError subclass given by `error`
            Missing file, wrong suffix, I/O or syntax error, empty document
            or non-mapping root.
    """
    # (1) Location and suffix
    path = Path(path)
    if not path.exists():
        raise error(
            f"{what} not found: {path}",
            source=source,
            suggested_action=f"Check that the {what.lower()} path is correct.",
        )
    suffix = path.suffix.lower()
    if suffix not in suffixes:
        raise error(
            f"Unsupported {what.lower()} extension: {path.suffix or '<none>'}",
            source=source,
            suggested_action=f"Use one of: {', '.join(sorted(suffixes))}.",
        )

    # (2) Parse
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f) if suffix in JSON_SUFFIXES else yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise error(
            f"{what} parsing failed: {e}",
            source=source,
            suggested_action="Fix the document syntax.",
        ) from e
    except OSError as e:
        raise error(
            f"Unable to read {what.lower()}: {e}",
            source=source,
            suggested_action="Check file permissions and path accessibility.",
        ) from e

    # (3) Root shape
    if data is None:
        raise error(f"{what} is empty.", source=source)
    if not isinstance(data, Mapping):
        raise error(
            f"{what} root must be a mapping, got {type(data).__name__}.",
            source=source,
            suggested_action="Use key: value pairs at the top level.",
        )
    return dict(data)


__all__ = ["JSON_SUFFIXES", "YAML_SUFFIXES", "read_mapping"]
