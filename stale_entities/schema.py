import re
from typing import Any, Dict, List

from .errors import InvalidJobId

JOB_ID_MAX_LENGTH = 128
JOB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:\-]+$")
ENTITY_ID_MAX_LENGTH = 255


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def validate_job_id(job_id: Any) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    errors: List[str] = []

    if not _is_non_empty_str(job_id):
        errors.append("Job id must be a non-empty string")
        return errors

    if len(job_id) > JOB_ID_MAX_LENGTH:
        errors.append(f"Job id must be at most {JOB_ID_MAX_LENGTH} characters")
    if not JOB_ID_PATTERN.match(job_id):
        errors.append("Job id may only contain letters, digits, '_', '.', ':' and '-'")

    return errors


def ensure_job_id(job_id: Any) -> str:
    """Return job_id unchanged or raise InvalidJobId."""
    errors = validate_job_id(job_id)
    if errors:
        raise InvalidJobId(job_id, errors)
    return job_id


def validate_job_info(key: Any, entry: Any) -> List[str]:
    """
    Validate one entry of an importer info mapping.

    Entries look like {"importer_id": "my_importer", "refresh": True}. The
    importer_id may be omitted, in which case the mapping key is used.
    """
    errors: List[str] = []

    if not isinstance(entry, dict):
        errors.append(f"Entry for {key!r} must be a mapping")
        return errors

    importer_id = entry.get("importer_id", key)
    errors.extend(validate_job_id(importer_id))

    if "importer_id" in entry and entry["importer_id"] != key:
        errors.append(f"importer_id {entry['importer_id']!r} does not match key {key!r}")

    if "refresh" in entry and not isinstance(entry["refresh"], bool):
        errors.append("Field 'refresh' must be a boolean if provided")

    return errors


def validate_entity_id(entity_id: Any) -> List[str]:
    errors: List[str] = []
    if isinstance(entity_id, bool) or not isinstance(entity_id, (str, int)):
        errors.append("Entity id must be a string or an integer")
    elif isinstance(entity_id, str):
        if entity_id.strip() == "":
            errors.append("Entity id must not be empty")
        elif len(entity_id) > ENTITY_ID_MAX_LENGTH:
            errors.append(f"Entity id must be at most {ENTITY_ID_MAX_LENGTH} characters")
    return errors


def info_to_jobs(info: Dict[Any, Any]) -> List[Dict[str, Any]]:
    """
    Validate an importer info mapping and return normalized job entries.

    Raises InvalidJobId on the first invalid entry.
    """
    jobs = []
    for key, entry in info.items():
        errors = validate_job_info(key, entry)
        if errors:
            raise InvalidJobId(key, errors)
        jobs.append({
            "job_id": entry.get("importer_id", key),
            "refresh": entry.get("refresh", False),
        })
    return jobs
