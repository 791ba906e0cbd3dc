# brushquote/pricing/schemes.py
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import ValidationError as SchemaValidationError
from jsonschema import validate

from brushquote.core.errors import ValidationError

PRICING_DIR = Path(__file__).parent
DEFAULT_SCHEMES_PATH = PRICING_DIR / "default_schemes.yaml"
SCHEMA_PATH = PRICING_DIR / "schemas" / "pricing_schemes.schema.json"


@lru_cache(maxsize=1)
def _schema() -> Dict[str, Any]:
    with SCHEMA_PATH.open("r", encoding="utf-8") as f:
        return json.load(f)


def validate_schemes(doc: Dict[str, Any]) -> None:
    try:
        validate(instance=doc, schema=_schema())
    except SchemaValidationError as e:
        raise ValidationError(
            f"Invalid pricing scheme: {e.message}",
            code="INVALID_PRICING_SCHEME",
            details={"path": [str(p) for p in e.absolute_path]},
        ) from e


def validate_scheme(scheme: Dict[str, Any]) -> None:
    """Validate one scheme by wrapping it in a one-item document."""
    validate_schemes({"schemes": [scheme]})


def load_default_schemes(path: Optional[str] = None) -> List[Dict[str, Any]]:
    schemes_path = Path(path) if path else DEFAULT_SCHEMES_PATH
    with schemes_path.open("r", encoding="utf-8") as f:
        doc = yaml.safe_load(f)
    validate_schemes(doc)
    return doc["schemes"]
