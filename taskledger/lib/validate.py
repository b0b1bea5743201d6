"""
JSON Schema checks for ledger documents.

Feature metadata (_meta.json), tracker sync mappings and ledger.yaml are
each described by a schema under taskledger/schemas/. Documents are
checked when loaded and again right before they are written, so a file
on disk never holds data the ledger itself would reject.
"""

import json
from pathlib import Path

from jsonschema.exceptions import best_match
from jsonschema.validators import validator_for

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


class ValidationError(Exception):
    """A document does not match its schema (or could not be read as JSON)."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


# schema name -> compiled validator
_validators: dict = {}


def _validator(schema_name: str):
    if schema_name not in _validators:
        schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
        schema = json.loads(schema_path.read_text())
        cls = validator_for(schema)
        cls.check_schema(schema)
        _validators[schema_name] = cls(schema)
    return _validators[schema_name]


def validate(data: dict, schema_name: str) -> None:
    """Check data against a named schema ("feature", "sync_mapping", "config").

    The most relevant error is reported, with its dotted location.
    """
    error = best_match(_validator(schema_name).iter_errors(data))
    if error is None:
        return
    location = ".".join(str(p) for p in error.absolute_path) or "(root)"
    raise ValidationError(schema_name, error.message, location)


def validate_file(filepath: Path, schema_name: str) -> dict:
    """Read a JSON file and check it. Returns the parsed document."""
    if not filepath.exists():
        raise ValidationError(schema_name, f"File not found: {filepath}")
    try:
        data = json.loads(filepath.read_text())
    except json.JSONDecodeError as e:
        raise ValidationError(schema_name, f"Invalid JSON in {filepath}: {e}") from None

    validate(data, schema_name)
    return data


def validate_before_write(data: dict, schema_name: str, filepath: Path) -> None:
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(schema_name, f"Refusing to write invalid data to {filepath}: {e}") from None
