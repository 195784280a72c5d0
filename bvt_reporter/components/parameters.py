"""
Scenario Parameters - Example-row parameters, test data templates and redaction
"""
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

from ..models.events import Pickle, Scenario

logger = logging.getLogger(__name__)

MASKED_PLACEHOLDER = "****"
REDACTED_PREFIXES = ("secret:", "totp:", "mask:")
TEMPLATE_PATTERN = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")


def compute_parameters(pickle: Pickle, scenario: Optional[Scenario]) -> Dict[str, str]:
    """
    Map example-table header cells to the cells of the row this pickle was
    compiled from.

    The row id is the last entry of the pickle's ``astNodeIds``; plain
    scenarios (no matching row) have no parameters.
    """
    if scenario is None or len(pickle.ast_node_ids) < 2:
        return {}
    row_id = pickle.ast_node_ids[-1]
    for examples in scenario.examples:
        if examples.table_header is None:
            continue
        for row in examples.table_body:
            if row.id != row_id:
                continue
            headers = [cell.value for cell in examples.table_header.cells]
            return {
                header: cell.value
                for header, cell in zip(headers, row.cells)
            }
    return {}


def redact_value(value: str) -> str:
    """Replace the variable part of a secret-like value with the placeholder."""
    for prefix in REDACTED_PREFIXES:
        if value.startswith(prefix):
            return prefix + MASKED_PLACEHOLDER
    return value


def redact_parameters(parameters: Dict[str, str]) -> Dict[str, str]:
    return {key: redact_value(value) for key, value in parameters.items()}


def has_template(value: str) -> bool:
    return bool(TEMPLATE_PATTERN.search(value))


def resolve_template(value: str, data: Dict[str, str]) -> Optional[str]:
    """
    Substitute ``{{name}}`` references from the test data.

    Returns:
        The resolved string, or None if any reference has no value
    """
    missing = []

    def _substitute(match: "re.Match") -> str:
        key = match.group(1)
        if key not in data:
            missing.append(key)
            return match.group(0)
        return str(data[key])

    resolved = TEMPLATE_PATTERN.sub(_substitute, value)
    if missing:
        logger.debug(f"Unresolved test data keys: {', '.join(missing)}")
        return None
    return resolved


def load_test_data(path: Optional[Path]) -> Dict[str, str]:
    """
    Read a test data file.

    Accepts either a JSON object or a list of ``{"key": ..., "value": ...}``
    entries. Missing or malformed files yield an empty mapping.

    Args:
        path: Location of the data file

    Returns:
        Key/value mapping (possibly empty)
    """
    if path is None:
        return {}
    path = Path(path)
    if not path.exists():
        logger.debug(f"No test data file at {path}")
        return {}
    try:
        raw: Any = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read test data file {path}: {e}")
        return {}

    if isinstance(raw, dict):
        return {str(key): str(value) for key, value in raw.items()}
    if isinstance(raw, list):
        data = {}
        for item in raw:
            if isinstance(item, dict) and "key" in item:
                data[str(item["key"])] = str(item.get("value", ""))
        return data

    logger.warning(f"Ignoring test data file {path}: unexpected JSON shape")
    return {}
