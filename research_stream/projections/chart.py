"""Chart projector: ChartSpec -> drawable geometry in a fixed logical area."""

import math
from dataclasses import dataclass
from typing import Any

from ..models import ChartSpec

MAX_VALUE_TICKS = 4


@dataclass(frozen=True)
class Padding:
    top: float = 14
    right: float = 10
    bottom: float = 28
    left: float = 46


@dataclass(frozen=True)
class Point:
    x: float
    y: float
    value: float


@dataclass(frozen=True)
class ValueTick:
    """Tick along the category axis, labelled with the value at that index."""

    index: int
    x: float
    label: str
    value: float
    text: str


@dataclass(frozen=True)
class AxisTick:
    """Tick along the value axis."""

    value: float
    y: float
    text: str


@dataclass(frozen=True)
class Bar:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class ChartGeometry:
    """Everything a renderer needs to draw the first series of a chart."""

    type: str
    title: str | None
    series_name: str | None
    width: float
    height: float
    min: float
    max: float
    span: float
    points: tuple[Point, ...]
    labels: tuple[str, ...]
    value_ticks: tuple[ValueTick, ...]
    axis_ticks: tuple[AxisTick, ...]
    bars: tuple[Bar, ...]
    ignored_series: int = 0


def format_value(value: float) -> str:
    """Compact SI-style formatting for axis labels."""
    magnitude = abs(value)
    if magnitude >= 1_000_000_000:
        return f"{value / 1_000_000_000:.1f}B"
    if magnitude >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if magnitude >= 1_000:
        return f"{value / 1_000:.1f}k"
    if magnitude >= 100:
        return f"{value:.0f}"
    if magnitude >= 1:
        return f"{value:.2f}"
    return _significant(value, 2)


def _significant(value: float, digits: int) -> str:
    if value == 0:
        return f"{0:.{digits - 1}f}"
    exponent = math.floor(math.log10(abs(value)))
    decimals = max(0, digits - 1 - exponent)
    return f"{value:.{decimals}f}"


def _as_number(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def project_chart(
    spec: ChartSpec,
    width: float = 260,
    height: float = 140,
    padding: Padding = Padding(),
) -> ChartGeometry | None:
    """Project the first series of ``spec``; None when nothing is drawable.

    Additional series are not drawn; their count is reported as
    ``ignored_series``.
    """
    if not spec.series:
        return None
    series = spec.series[0]
    values = [v for v in (_as_number(raw) for raw in series.values) if v is not None]
    if not values:
        return None

    low = min(values)
    high = max(values)
    span = (high - low) or 1.0

    inner_width = width - padding.left - padding.right
    inner_height = height - padding.top - padding.bottom
    count = len(values)
    x_step = inner_width / max(count - 1, 1)

    def x_at(idx: int) -> float:
        return padding.left + idx * x_step

    def y_at(value: float) -> float:
        return padding.top + (1 - (value - low) / span) * inner_height

    points = tuple(Point(x=x_at(i), y=y_at(v), value=v) for i, v in enumerate(values))

    if spec.labels is not None and len(spec.labels) == count:
        labels = tuple(spec.labels)
    else:
        labels = tuple(str(i + 1) for i in range(count))

    stride = max(1, math.ceil(count / MAX_VALUE_TICKS))
    indices = list(range(0, count, stride))
    if indices[-1] != count - 1:
        indices.append(count - 1)
    value_ticks = tuple(
        ValueTick(
            index=i,
            x=x_at(i),
            label=labels[i],
            value=values[i],
            text=format_value(values[i]),
        )
        for i in indices
    )

    axis_ticks = tuple(
        AxisTick(
            value=low + span * t,
            y=padding.top + (1 - t) * inner_height,
            text=format_value(low + span * t),
        )
        for t in (0.0, 0.5, 1.0)
    )

    bars: tuple[Bar, ...] = ()
    if spec.type == "bar":
        bar_width = inner_width / max(count * 1.4, 1)
        baseline = height - padding.bottom
        bars = tuple(
            Bar(
                x=p.x - bar_width / 2,
                y=p.y,
                width=bar_width,
                height=baseline - p.y,
            )
            for p in points
        )

    return ChartGeometry(
        type=spec.type,
        title=spec.title,
        series_name=series.name,
        width=width,
        height=height,
        min=low,
        max=high,
        span=span,
        points=points,
        labels=labels,
        value_ticks=value_ticks,
        axis_ticks=axis_ticks,
        bars=bars,
        ignored_series=len(spec.series) - 1,
    )
