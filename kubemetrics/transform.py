"""Transformations turning mapping values into one attribute per key."""

from __future__ import annotations

from typing import Any, Callable


def prefix_from_map_int(prefix: str) -> Callable[[Any], dict]:
    """Build a transform prefixing every key of a ``str -> int`` mapping."""

    def transform(value: Any) -> dict:
        if not isinstance(value, dict) or not all(
            isinstance(k, str) and isinstance(v, int) and not isinstance(v, bool)
            for k, v in value.items()
        ):
            raise TypeError("cannot make prefixes: value is not map[string]string")
        return {f"{prefix}{key}": item for key, item in value.items()}

    return transform


def one_metric_per_label(raw_labels: Any) -> dict:
    """Turn a label mapping into ``label.<name>`` attributes."""
    if not isinstance(raw_labels, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in raw_labels.items()
    ):
        raise TypeError("error on creating kubelet label metrics")
    return {f"label.{key}": value for key, value in raw_labels.items()}