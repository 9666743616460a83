from __future__ import annotations
"""Output contract check for generated UI payloads.

The validator proves shape only. It never coerces, defaults or repairs a
value; the first failing clause is reported with its field name.

Contract::

    {
      "confidence": <number>,
      "ui": {"layout": <any>, "components": [<any>, ...]},
      "fallback": {"reason": <any>, "raw": <any>}     # optional
    }
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Union

from core.errors import (
    ContractViolation,
    FieldTypeError,
    InvalidFormatError,
    MissingFieldError,
    NotAnObjectError,
    truncate,
)

__all__ = [
    "ValidatedOutput",
    "Valid",
    "Invalid",
    "ValidationOutcome",
    "OutputValidator",
]


@dataclass(frozen=True)
class ValidatedOutput:
    payload: Dict[str, Any]

    @property
    def confidence(self) -> float:
        return self.payload["confidence"]

    @property
    def ui(self) -> Dict[str, Any]:
        return self.payload["ui"]


@dataclass(frozen=True)
class Valid:
    output: ValidatedOutput
    ok = True


@dataclass(frozen=True)
class Invalid:
    error: ContractViolation
    ok = False

    @property
    def field(self) -> str:
        return self.error.field


ValidationOutcome = Union[Valid, Invalid]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _type_name(value: Any) -> str:
    return "null" if value is None else type(value).__name__


class OutputValidator:
    """Checks raw provider output (JSON text or a parsed value)."""

    def validate(self, raw: Any) -> ValidationOutcome:
        try:
            payload = self._parse(raw)
            self._check(payload)
        except ContractViolation as e:
            return Invalid(e)
        return Valid(ValidatedOutput(payload))

    def validate_or_raise(self, raw: Any) -> ValidatedOutput:
        outcome = self.validate(raw)
        if isinstance(outcome, Invalid):
            raise outcome.error
        return outcome.output

    # ------------------------------------------------------------------
    @staticmethod
    def _parse(raw: Any) -> Any:
        if not isinstance(raw, str):
            return raw
        try:
            return json.loads(raw)
        except ValueError as e:
            raise InvalidFormatError(
                f"Output is not valid JSON: {truncate(raw)}",
                field="$",
                details={"preview": truncate(raw), "reason": str(e)},
            ) from e

    @staticmethod
    def _check(payload: Any) -> None:
        if not isinstance(payload, dict):
            raise NotAnObjectError(
                f"Output must be a JSON object, got {_type_name(payload)}", field="$"
            )
        for name in ("confidence", "ui"):
            if name not in payload:
                raise MissingFieldError(f"Missing required field '{name}'", field=name)
        if not _is_number(payload["confidence"]):
            raise FieldTypeError(
                f"Field 'confidence' must be a number, got {_type_name(payload['confidence'])}",
                field="confidence",
            )

        ui = payload["ui"]
        if not isinstance(ui, dict):
            raise NotAnObjectError(f"Field 'ui' must be an object, got {_type_name(ui)}", field="ui")
        for name in ("layout", "components"):
            if name not in ui:
                raise MissingFieldError(f"Missing required field 'ui.{name}'", field=f"ui.{name}")
        if not isinstance(ui["components"], list):
            raise FieldTypeError(
                f"Field 'ui.components' must be an array, got {_type_name(ui['components'])}",
                field="ui.components",
            )

        if "fallback" in payload:
            fallback = payload["fallback"]
            if not isinstance(fallback, dict):
                raise NotAnObjectError(
                    f"Field 'fallback' must be an object, got {_type_name(fallback)}", field="fallback"
                )
            for name in ("reason", "raw"):
                if name not in fallback:
                    raise MissingFieldError(
                        f"Missing required field 'fallback.{name}'", field=f"fallback.{name}"
                    )
