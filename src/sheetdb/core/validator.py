"""
Turns raw caller input into typed cell values for a `TableConfig`.

Coercion problems on optional fields are collected, not raised; only a
required field without a usable value aborts with `ValidationError`.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field

from ..errors import TypeCoercionError, ValidationError
from .schema import ID_COLUMN, TableConfig


class FieldTrace(BaseModel):
    field: str
    raw: Any = None
    value: Any = None
    action: str


class ValidationReport(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    values: dict[str, Any] = Field(default_factory=dict)
    missing: list[str] = Field(default_factory=list)
    errors: list[TypeCoercionError] = Field(default_factory=list)
    ignored: list[str] = Field(default_factory=list)
    trace: list[FieldTrace] = Field(default_factory=list)

    def summary(self, with_trace: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {
            "missingFields": list(self.missing),
            "coercionErrors": [err.to_dict() for err in self.errors],
            "ignoredFields": list(self.ignored),
        }
        if with_trace:
            out["trace"] = [t.model_dump(mode="json") for t in self.trace]
        return out


def validate(
    config: TableConfig,
    raw: Mapping[str, Any],
    allowed_fields: Iterable[str] | None = None,
) -> ValidationReport:
    """Coerce ``raw`` against ``config``.

    Raises:
        ValidationError: a required field is missing (no default) or could
            not be coerced. ``issues`` holds one entry per offending field.
    """
    allowed = set(config.fields) if allowed_fields is None else set(allowed_fields)
    report = ValidationReport()

    for key in raw:
        if key == ID_COLUMN:
            continue
        if key not in config.fields or key not in allowed:
            report.ignored.append(key)
            report.trace.append(FieldTrace(field=key, raw=raw[key], action="ignored"))

    issues: list[dict[str, Any]] = []
    for name, spec in config.fields.items():
        if name not in allowed:
            continue
        value = raw.get(name)
        absent = name not in raw or (value is None and spec.treat_null_as_missing)

        if absent:
            if spec.has_default:
                coerced = spec.resolve_default(name)
                report.values[name] = coerced
                report.trace.append(
                    FieldTrace(field=name, raw=value, value=coerced, action="defaulted")
                )
                continue
            report.values[name] = None
            report.missing.append(name)
            report.trace.append(FieldTrace(field=name, raw=value, action="missing"))
            if spec.required:
                issues.append({"field": name, "error": "required field is missing"})
            continue

        if value is None:
            report.values[name] = None
            report.trace.append(FieldTrace(field=name, action="null"))
            if spec.required:
                issues.append({"field": name, "error": "required field is null"})
            continue

        try:
            coerced = spec.coerce(name, value)
        except TypeCoercionError as exc:
            report.values[name] = None
            report.errors.append(exc)
            report.trace.append(FieldTrace(field=name, raw=value, action="coercion_failed"))
            if spec.required:
                issues.append(exc.to_dict())
            continue

        report.values[name] = coerced
        action = "provided" if coerced == value and type(coerced) is type(value) else "coerced"
        report.trace.append(FieldTrace(field=name, raw=value, value=coerced, action=action))

    if issues:
        raise ValidationError(
            f"Validation failed for {config.table_name}: "
            + ", ".join(issue["field"] for issue in issues),
            issues,
        )
    return report


def validate_with_logs(
    config: TableConfig,
    raw: Mapping[str, Any],
    allowed_fields: Iterable[str] | None = None,
) -> tuple[ValidationReport | None, list[FieldTrace], ValidationError | None]:
    """Same outcome as `validate`, plus the per-field trace even on failure."""
    try:
        report = validate(config, raw, allowed_fields)
    except ValidationError as exc:
        # rerun on optional copies to recover the trace of the failing input
        relaxed = config.model_copy(
            update={
                "fields": {
                    name: spec.model_copy(update={"required": False})
                    for name, spec in config.fields.items()
                }
            }
        )
        return None, validate(relaxed, raw, allowed_fields).trace, exc
    return report, report.trace, None
