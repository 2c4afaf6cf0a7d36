# extpack/themes/validator.py
from __future__ import annotations
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft7Validator

from extpack.core.errors import ThemeDiagnostic, ThemeValidationError

logger = logging.getLogger(__name__)

__all__ = ["THEME_SCHEMA_PATH", "themeFamilySchema", "themeDiagnostics", "validateTheme"]


THEME_SCHEMA_PATH = Path(__file__).with_name("theme_family.schema.json")



@lru_cache(maxsize=1)
def _validator() -> Draft7Validator:
    schema = json.loads(THEME_SCHEMA_PATH.read_text(encoding="utf-8"))
    Draft7Validator.check_schema(schema)
    logger.debug("Compiled theme family schema from '%s'", THEME_SCHEMA_PATH.name)
    return Draft7Validator(schema)



def themeFamilySchema() -> dict[str, Any]:
    """The embedded schema. Returned as-is; callers must not mutate it."""
    return _validator().schema



def _pointer(parts) -> str:
    return "".join(f"/{part}" for part in parts)



def themeDiagnostics(document: Any) -> list[ThemeDiagnostic]:
    """Every schema violation in `document`, ordered by location for stable output."""
    errors = sorted(_validator().iter_errors(document), key=lambda err: (list(map(str, err.absolute_path)), err.message))
    return [ThemeDiagnostic(path=_pointer(err.absolute_path), message=err.message) for err in errors]



def validateTheme(document: Any) -> None:
    """Raises ThemeValidationError carrying all diagnostics when `document` does not fit the schema."""
    diagnostics = themeDiagnostics(document)
    if diagnostics:
        raise ThemeValidationError(diagnostics)
