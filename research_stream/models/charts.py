"""Chart payload data models."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ChartSeries:
    """One named series of numeric values."""

    values: tuple[Any, ...]
    name: str | None = None

    def to_dict(self) -> dict:
        data: dict = {"values": list(self.values)}
        if self.name is not None:
            data["name"] = self.name
        return data


@dataclass(frozen=True)
class ChartSpec:
    """Small chart attached to an insight. Only the first series is drawn."""

    series: tuple[ChartSeries, ...]
    type: str = "line"  # "line" | "bar"
    title: str | None = None
    labels: tuple[str, ...] | None = None

    def to_dict(self) -> dict:
        data: dict = {
            "type": self.type,
            "series": [s.to_dict() for s in self.series],
        }
        if self.title is not None:
            data["title"] = self.title
        if self.labels is not None:
            data["labels"] = list(self.labels)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ChartSpec":
        labels = data.get("labels")
        return cls(
            series=tuple(
                ChartSeries(values=tuple(s.get("values", ())), name=s.get("name"))
                for s in data.get("series", ())
            ),
            type=data.get("type", "line"),
            title=data.get("title"),
            labels=tuple(str(label) for label in labels) if labels is not None else None,
        )
