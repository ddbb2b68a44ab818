"""Checks every bundled payload schema and that the registry can load them."""

from pathlib import Path
import json
import sys

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from market_notify.validation import SchemaRegistry


SCHEMA_DIR = Path(__file__).resolve().parent.parent / "market_notify" / "schemas"


def validate() -> list[str]:
    failures: list[str] = []
    for schema_path in sorted(SCHEMA_DIR.glob("*.json")):
        try:
            Draft202012Validator.check_schema(json.loads(schema_path.read_text()))
        except (SchemaError, json.JSONDecodeError) as exc:
            failures.append(f"{schema_path.name}: {exc}")
            continue
        print(f"ok    {schema_path.stem}")
    if not failures:
        SchemaRegistry(SCHEMA_DIR)
    return failures


if __name__ == "__main__":
    problems = validate()
    for problem in problems:
        print(f"error {problem}", file=sys.stderr)
    sys.exit(1 if problems else 0)
