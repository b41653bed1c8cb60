"""Input validation utilities."""

from typing import Any, Dict, Optional, Tuple
from pathlib import Path


def validate_input_path(file_path: str) -> bool:
    """Validate that an input path exists and is a readable file or directory."""
    path = Path(file_path)
    return path.exists() and (path.is_file() or path.is_dir())


def is_platform_api_version(api_version: Any, api_group: str) -> bool:
    """Check that apiVersion belongs to the platform API group (e.g. 'forklift.konveyor.io/v1beta1')."""
    return isinstance(api_version, str) and api_version.startswith(f"{api_group}/")


def get_string_from_map(obj: Optional[Dict[str, Any]], key: str) -> str:
    """Safely extract a string value from a mapping; anything else yields ''."""
    if not isinstance(obj, dict):
        return ""
    value = obj.get(key)
    return value if isinstance(value, str) else ""


def validate_resource_ref(ref: Any) -> Optional[Tuple[str, str]]:
    """
    Validate a {name, namespace} reference.

    Returns:
        (namespace, name) when both are non-empty strings, otherwise None
    """
    name = get_string_from_map(ref, "name")
    namespace = get_string_from_map(ref, "namespace")
    if not name or not namespace:
        return None
    return namespace, name
