"""Pydantic payload schemas for structured process output lines."""

import math
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    FiniteFloat,
    TypeAdapter,
    field_validator,
)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _finite_or_none(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError, OverflowError):
        return None
    return value if math.isfinite(value) else None


def _without_non_finite(value: Any) -> Any:
    """Replace NaN and infinities anywhere in a decoded JSON value with None."""
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, list):
        return [_without_non_finite(v) for v in value]
    if isinstance(value, dict):
        return {k: _without_non_finite(v) for k, v in value.items()}
    return value


class ChartSeriesPayload(_Payload):
    name: str | None = None
    # Gaps (non-numeric or non-finite points) are kept as None
    values: list[float | None] = Field(default_factory=list)

    @field_validator("values", mode="before")
    @classmethod
    def _finite_values(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [_finite_or_none(v) for v in value]
        return value


class ChartPayload(_Payload):
    title: str | None = None
    type: Literal["line", "bar"] = "line"
    labels: list[str] | None = None
    series: list[ChartSeriesPayload] = Field(default_factory=list)

    @field_validator("labels", mode="before")
    @classmethod
    def _labels_as_text(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(v) for v in value]
        return value


class ThoughtPayload(_Payload):
    type: Literal["thought"]
    text: str = Field(min_length=1)
    slot: str | None = None
    timestamp: FiniteFloat | None = None


class InsightPayload(_Payload):
    type: Literal["insight"]
    summary: str = Field(min_length=1)
    id: str | None = None
    timestamp: FiniteFloat | None = None
    chart: ChartPayload | None = None


class StatusPayload(_Payload):
    # completed/failed belong to the supervisor, not the process
    type: Literal["status"]
    status: Literal["pending", "running"]


class MetadataPayload(_Payload):
    type: Literal["metadata"]
    key: str = Field(min_length=1)
    value: Any = None

    @field_validator("value", mode="before")
    @classmethod
    def _finite_value(cls, value: Any) -> Any:
        return _without_non_finite(value)


LinePayload = Annotated[
    Union[ThoughtPayload, InsightPayload, StatusPayload, MetadataPayload],
    Field(discriminator="type"),
]

line_payload_adapter: TypeAdapter[LinePayload] = TypeAdapter(LinePayload)
