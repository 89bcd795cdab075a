from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
import json
from typing import Any, Mapping

from jsonschema import Draft202012Validator

SCHEMA_FILE = "schemas/mqtt-options.schema.json"


@dataclass(frozen=True)
class OptionError:
    key: str | None
    message: str


def load_schema() -> dict[str, Any]:
    schema_path = resources.files("vzlogger_mqtt").joinpath(SCHEMA_FILE)
    return json.loads(schema_path.read_text(encoding="utf-8"))


@lru_cache(maxsize=1)
def get_validator() -> Draft202012Validator:
    schema = load_schema()
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema=schema)


def known_option_keys() -> frozenset[str]:
    return frozenset(get_validator().schema["properties"])


def validate_options(options: Mapping[str, Any]) -> list[OptionError]:
    """Validate a raw MQTT option mapping.

    Returns one ``OptionError`` per offending key (wrong type, out of range or
    unknown). An error with ``key=None`` means the mapping itself is invalid.
    """
    validator = get_validator()
    known = known_option_keys()
    errors: list[OptionError] = []
    for error in sorted(validator.iter_errors(dict(options)), key=lambda e: list(e.path)):
        if error.path:
            errors.append(OptionError(key=str(error.path[0]), message=error.message))
        elif error.validator == "additionalProperties":
            for key in sorted(k for k in options if k not in known):
                errors.append(OptionError(key=key, message=f"Unknown option '{key}'"))
        else:
            errors.append(OptionError(key=None, message=error.message))
    return errors
