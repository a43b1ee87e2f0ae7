"""Validator protocol and adapters.

The store treats validation as an opaque capability: ``validate(raw)`` either
returns the normalized record or raises ``relstore.errors.ValidationError``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

import pydantic

from relstore.errors import FieldError, ValidationError


@runtime_checkable
class Validator(Protocol):
    """Protocol that all validators must implement."""

    def validate(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        """Return the normalized record or raise ValidationError."""
        ...


class PassthroughValidator:
    """Accept any mapping as-is (shallow copy)."""

    def __init__(self, type_name: str = "") -> None:
        self.type_name = type_name

    def validate(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(raw, Mapping):
            raise ValidationError.single(self.type_name, "", "record must be a mapping")
        return dict(raw)


class PydanticValidator:
    """Validate records against a pydantic model.

    Optional fields that were neither provided nor defaulted to a non-None
    value are left out of the output, so a record round-trips unchanged.
    """

    def __init__(self, model: type[pydantic.BaseModel], type_name: str = "") -> None:
        self.model = model
        self.type_name = type_name or model.__name__

    def validate(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        try:
            instance = self.model.model_validate(raw)
        except pydantic.ValidationError as e:
            raise ValidationError(
                self.type_name,
                [
                    FieldError(".".join(str(p) for p in err["loc"]), err["msg"])
                    for err in e.errors()
                ],
            ) from e
        dumped = instance.model_dump()
        return {
            k: v for k, v in dumped.items() if k in instance.model_fields_set or v is not None
        }


class CallableValidator:
    """Wrap a plain ``fn(raw) -> record`` callable.

    ``ValueError``/``TypeError`` raised by the callable become ValidationError.
    """

    def __init__(self, fn: Callable[[Mapping[str, Any]], Mapping[str, Any]], type_name: str = "") -> None:
        self.fn = fn
        self.type_name = type_name

    def validate(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        try:
            result = self.fn(raw)
        except ValidationError:
            raise
        except (ValueError, TypeError) as e:
            raise ValidationError.single(self.type_name, "", str(e)) from e
        if not isinstance(result, Mapping):
            raise ValidationError.single(self.type_name, "", "validator must return a mapping")
        return dict(result)


def as_validator(spec: Any, type_name: str) -> Validator:
    """Coerce a validator spec (None, pydantic model, callable, Validator) to a Validator."""
    if spec is None:
        return PassthroughValidator(type_name)
    if isinstance(spec, type) and issubclass(spec, pydantic.BaseModel):
        return PydanticValidator(spec, type_name)
    if isinstance(spec, Validator):
        return spec
    if callable(spec):
        return CallableValidator(spec, type_name)
    raise TypeError(f"Unsupported validator for '{type_name}': {spec!r}")
