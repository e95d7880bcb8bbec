import json
from pathlib import Path
from typing import Any, Dict, List

from jsonschema import Draft202012Validator

from ev_core.issues import Issue


def default_config_schema_path() -> str:
    return str(Path(__file__).resolve().parent / "schemas" / "config.schema.json")


def load_schema(schema_path: str) -> Dict[str, Any]:
    path = Path(schema_path)
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_path}")
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _to_json_path(parts: List[Any]) -> str:
    if not parts:
        return "/"
    return "/" + "/".join(str(part) for part in parts)


def _issue_code(validator_name: str) -> str:
    if validator_name == "required":
        return "CONFIG_MISSING_VALUE"
    if validator_name in ("type", "minLength", "minimum", "maximum", "pattern"):
        return "CONFIG_INVALID_VALUE"
    if validator_name == "additionalProperties":
        return "CONFIG_UNKNOWN_KEY"
    return "CONFIG_VALIDATION_FAILED"


def schema_issues(config: Dict[str, Any], schema: Dict[str, Any]) -> List[Issue]:
    validator = Draft202012Validator(schema)
    issues: List[Issue] = []

    for error in sorted(validator.iter_errors(config), key=lambda e: list(e.absolute_path)):
        issues.append(
            Issue(
                severity="error",
                code=_issue_code(str(error.validator)),
                message=error.message,
                path=_to_json_path(list(error.absolute_path)),
            )
        )

    return issues
