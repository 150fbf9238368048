from typing import Any, Iterable, List, Mapping, Tuple, Union

from .schema import validate_entity_id

KeySource = Union[Iterable[Any], Mapping[Any, Any]]


def normalize_key(key: Any) -> str:
    """Entity keys are stored and delivered as stripped strings."""
    errors = validate_entity_id(key)
    if errors:
        raise ValueError(f"Invalid entity key {key!r}: {'; '.join(errors)}")
    return str(key).strip()


def natural_sort_key(key: str) -> Tuple[int, int, str]:
    # numeric keys first, by value; everything else lexically
    if key.isdecimal():
        return (0, int(key), key)
    return (1, 0, key)


def sort_keys(keys: Iterable[str]) -> List[str]:
    return sorted(keys, key=natural_sort_key)


def key_map(keys: KeySource) -> dict:
    """
    Map source key -> entity id.

    A mapping is taken as-is (source key -> produced entity id); any other
    iterable is treated as keys that are also the entity ids.
    """
    if isinstance(keys, Mapping):
        return {normalize_key(k): normalize_key(v) for k, v in keys.items()}
    return {normalize_key(k): normalize_key(k) for k in keys}


def normalize_keys(keys: Iterable[Any]) -> set:
    return {normalize_key(k) for k in keys}


def dedupe(entity_ids: Iterable[Any]) -> List[str]:
    """Normalize entity ids, keeping the first occurrence of each."""
    seen = set()
    result = []
    for entity_id in entity_ids:
        key = normalize_key(entity_id)
        if key in seen:
            continue
        seen.add(key)
        result.append(key)
    return result
