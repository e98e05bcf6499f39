"""Resource quantities and their expansion into one attribute per resource."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import Any, Mapping

RESOURCE_TYPE_ALLOCATABLE = "allocatable"
RESOURCE_TYPE_CAPACITY = "capacity"

_UNIT_BYTES = "Bytes"
_UNIT_CORES = "Cores"
_RESOURCE_UNITS = {
    "ephemeral-storage": _UNIT_BYTES,
    "memory": _UNIT_BYTES,
    "cpu": _UNIT_CORES,
    "storage": _UNIT_BYTES,
}

_DECIMAL_SUFFIXES = {
    "n": Fraction(1, 10**9),
    "u": Fraction(1, 10**6),
    "m": Fraction(1, 10**3),
    "": Fraction(1),
    "k": Fraction(10**3),
    "M": Fraction(10**6),
    "G": Fraction(10**9),
    "T": Fraction(10**12),
    "P": Fraction(10**15),
    "E": Fraction(10**18),
}
_BINARY_SUFFIXES = {
    "Ki": Fraction(2**10),
    "Mi": Fraction(2**20),
    "Gi": Fraction(2**30),
    "Ti": Fraction(2**40),
    "Pi": Fraction(2**50),
    "Ei": Fraction(2**60),
}
_NUMBER = re.compile(r"([+-]?(?:\d+(?:\.\d*)?|\.\d+))(.*)", re.DOTALL)
_EXPONENT = re.compile(r"[eE]([+-]?\d+)")
_WORD = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z0-9]+")
_TITLE = re.compile(r"(^|[^0-9A-Za-z_])([a-z])")


@dataclass(frozen=True)
class Quantity:
    """An exact resource amount, such as ``1985m`` CPU or ``100Mi`` memory."""

    amount: Fraction

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", Fraction(self.amount))

    def value(self) -> int:
        """The amount as an integer, rounded up."""
        return math.ceil(self.amount)

    def milli_value(self) -> int:
        """The amount in thousandths, rounded up."""
        return math.ceil(self.amount * 1000)

    def as_approximate_float(self) -> float:
        """The amount as a float, possibly losing precision."""
        return float(self.amount)


def parse_quantity(text: str) -> Quantity:
    """Parse a quantity string with an optional SI, binary or exponent suffix."""
    if not isinstance(text, str):
        raise TypeError("quantity must be a string")
    match = _NUMBER.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid quantity {text!r}")
    try:
        number = Fraction(Decimal(match.group(1)))
    except InvalidOperation as exc:
        raise ValueError(f"invalid quantity {text!r}") from exc

    suffix = match.group(2)
    if suffix in _DECIMAL_SUFFIXES:
        return Quantity(number * _DECIMAL_SUFFIXES[suffix])
    if suffix in _BINARY_SUFFIXES:
        return Quantity(number * _BINARY_SUFFIXES[suffix])
    exponent = _EXPONENT.fullmatch(suffix)
    if exponent is not None:
        return Quantity(number * Fraction(10) ** int(exponent.group(1)))
    raise ValueError(f"invalid quantity suffix {suffix!r} in {text!r}")


def _title(text: str) -> str:
    return _TITLE.sub(lambda m: m.group(1) + m.group(2).upper(), text)


def _camelcase(text: str) -> str:
    words = _WORD.findall(text)
    if not words:
        return ""
    first, rest = words[0], words[1:]
    return first.lower() + "".join(word[0].upper() + word[1:].lower() for word in rest)


def _add_resource_unit(resource: str) -> str:
    return resource + _RESOURCE_UNITS.get(resource, "")


def _one_attribute_per_resource(raw_resources: Any, resource_type: str) -> dict:
    if not isinstance(raw_resources, Mapping) or not all(
        isinstance(name, str) and isinstance(quantity, Quantity)
        for name, quantity in raw_resources.items()
    ):
        raise TypeError(f"creating resource {resource_type} attributes")

    attributes = {}
    for name, quantity in raw_resources.items():
        key = _camelcase(resource_type + _title(_add_resource_unit(name)))
        if name == "cpu":
            attributes[key] = quantity.as_approximate_float()
        else:
            attributes[key] = quantity.value()
    return attributes


def one_attribute_per_allocatable(raw_resources: Any) -> dict:
    """Expand a resource mapping into ``allocatable<Resource>`` attributes."""
    return _one_attribute_per_resource(raw_resources, RESOURCE_TYPE_ALLOCATABLE)


def one_attribute_per_capacity(raw_resources: Any) -> dict:
    """Expand a resource mapping into ``capacity<Resource>`` attributes."""
    return _one_attribute_per_resource(raw_resources, RESOURCE_TYPE_CAPACITY)