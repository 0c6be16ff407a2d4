"""
Call Chaining - output references between tool calls of one pass.

A reasoning engine chains calls by putting a reference object in place of
an argument value:

    {"$ref": "<call_id>"}            the whole output of that call
    {"$ref": "<call_id>.results"}    one field of it (dotted path; list
                                     indexes are plain integers)

References may appear at any depth of the arguments. A call that holds a
reference depends on the referenced call and runs after it.
"""

from typing import Any, Iterator, Mapping

from experience_discovery.core.exceptions import UnresolvedReference


REF_KEY = "$ref"


def is_reference(value: Any) -> bool:
    return isinstance(value, dict) and len(value) == 1 and isinstance(value.get(REF_KEY), str)


def iter_references(value: Any) -> Iterator[str]:
    """Every reference string inside ``value``, depth first."""
    if is_reference(value):
        yield value[REF_KEY]
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_references(item)
    elif isinstance(value, list):
        for item in value:
            yield from iter_references(item)


def split_reference(reference: str) -> tuple[str, list[str]]:
    call_id, _, path = reference.partition(".")
    return call_id, [part for part in path.split(".") if part] if path else []


def referenced_calls(arguments: Mapping[str, Any]) -> list[str]:
    """Call ids referenced by the arguments, first occurrence order."""
    seen: dict[str, None] = {}
    for reference in iter_references(dict(arguments)):
        seen[split_reference(reference)[0]] = None
    return list(seen)


def _follow(value: Any, path: list[str], reference: str) -> Any:
    for part in path:
        if isinstance(value, dict) and part in value:
            value = value[part]
        elif isinstance(value, list) and part.lstrip("-").isdigit() and -len(value) <= int(part) < len(value):
            value = value[int(part)]
        else:
            raise UnresolvedReference(f"'{reference}' has no field '{part}'", reference=reference)
    return value


def resolve_references(arguments: Mapping[str, Any], outputs: Mapping[str, Any]) -> dict[str, Any]:
    """
    Return a copy of ``arguments`` with every reference replaced.

    Args:
        arguments: Raw tool arguments.
        outputs: Outputs of completed successful calls (and upstream data), by id.

    Raises:
        UnresolvedReference: The referenced call has no output, or the path
            does not exist in it.
    """

    def substitute(value: Any) -> Any:
        if is_reference(value):
            reference = value[REF_KEY]
            call_id, path = split_reference(reference)
            if call_id not in outputs:
                raise UnresolvedReference(
                    f"'{reference}' refers to '{call_id}', which produced no output",
                    reference=reference,
                )
            return _follow(outputs[call_id], path, reference)
        if isinstance(value, dict):
            return {key: substitute(item) for key, item in value.items()}
        if isinstance(value, list):
            return [substitute(item) for item in value]
        return value

    return {key: substitute(value) for key, value in arguments.items()}
