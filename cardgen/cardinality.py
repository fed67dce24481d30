"""Cardinality management and attribute combination generation."""
from typing import Iterator, List, Sequence, Tuple

from cardgen.config import AttributeConfig

AttributeCombination = Tuple[Tuple[str, str], ...]


def format_attribute_value(i: int) -> str:
    """Render an attribute value as a fixed-width, zero-padded string."""
    return "%09d" % i


def iterate_attributes(attributes: Sequence[AttributeConfig]) -> Iterator[AttributeCombination]:
    """
    Yield the Cartesian product of all attribute values.

    The first attribute is the most significant digit and the last one
    cycles fastest. Every combination is a fresh tuple of (name, value)
    pairs in definition order, so callers may keep them. An empty
    attribute list yields nothing.

    Cardinalities must already be clamped to at least 1.

    Args:
        attributes: Ordered attribute definitions

    Returns:
        Iterator over attribute combinations
    """
    if not attributes:
        return

    def cartesian_product(remaining: Sequence[AttributeConfig]) -> Iterator[List[Tuple[str, str]]]:
        if not remaining:
            yield []
            return

        head = remaining[0]
        for i in range(head.cardinality):
            pair = (head.name, format_attribute_value(i))
            for rest in cartesian_product(remaining[1:]):
                yield [pair] + rest

    for combination in cartesian_product(attributes):
        yield tuple(combination)


def attribute_cardinality(attributes: Sequence[AttributeConfig]) -> int:
    """Number of attribute combinations per metric (1 when there are none)."""
    cardinality = 1
    for attribute in attributes:
        cardinality *= attribute.cardinality
    return cardinality
