import json
from pathlib import Path
from typing import Any, Dict

import yaml


def load_yaml_file(path: str, label: str = "Config") -> Dict[str, Any]:
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"{label} file not found: {path}")

    with file_path.open("r", encoding="utf-8") as handle:
        if file_path.suffix.lower() == ".json":
            data = json.load(handle)
        else:
            data = yaml.safe_load(handle)

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ValueError(f"{label} file must parse to an object/map at root.")

    return data


def write_yaml_file(path: str, payload: Dict[str, Any]) -> None:
    output = yaml.safe_dump(payload, sort_keys=False)
    Path(path).write_text(output, encoding="utf-8")
