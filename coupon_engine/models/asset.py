"""Polymorphic references to sellable marketplace items."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class AssetKind(str, Enum):
    ACTIVITIES = "activities"
    EVENTS = "events"
    RESTAURANTS = "restaurants"
    VEHICLES = "vehicles"
    PACKAGES = "packages"

    @classmethod
    def parse(cls, value: str | None) -> AssetKind | None:
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class AssetRef:
    """A single item in the catalog, e.g. ``AssetRef(AssetKind.EVENTS, "E1")``.

    Rows store the pair as two strings; everything above the repositories works
    with this value object so rules compare kinds, not raw strings.
    """

    kind: AssetKind
    asset_id: str

    @classmethod
    def parse(cls, asset_type: str | None, asset_id: str | None) -> AssetRef | None:
        kind = AssetKind.parse(asset_type)
        if kind is None or not asset_id:
            return None
        return cls(kind=kind, asset_id=asset_id)


@dataclass(frozen=True)
class ApplicableAsset:
    """Explicit per-item scoping entry of a coupon."""

    ref: AssetRef
    is_active: bool = True

    @classmethod
    def from_row(cls, data: dict[str, Any]) -> ApplicableAsset | None:
        ref = AssetRef.parse(data.get("asset_type"), data.get("asset_id"))
        if ref is None:
            return None
        return cls(ref=ref, is_active=bool(data.get("is_active", True)))
