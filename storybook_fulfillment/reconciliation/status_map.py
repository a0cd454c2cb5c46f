"""
Provider status vocabulary mapped onto order statuses, loaded from YAML.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from storybook_fulfillment.orders.models import OrderStatus

DEFAULT_STATUS_MAP_PATH = Path(__file__).with_name("provider_status_map.yaml")
DEFAULT_TOPIC = "PRINT_JOB_STATUS_CHANGED"


@dataclass(frozen=True)
class StatusMapping:
    provider_status: str
    target: OrderStatus | None
    known: bool


class ProviderStatusMap:
    def __init__(
        self,
        statuses: Mapping[str, OrderStatus | None],
        *,
        topic: str = DEFAULT_TOPIC,
    ) -> None:
        self.topic = topic
        self._statuses = {name.strip().upper(): target for name, target in statuses.items()}

    def __contains__(self, provider_status: object) -> bool:
        return isinstance(provider_status, str) and provider_status.strip().upper() in self._statuses

    def lookup(self, provider_status: str) -> StatusMapping:
        key = provider_status.strip().upper()
        if key not in self._statuses:
            return StatusMapping(provider_status=key, target=None, known=False)
        return StatusMapping(provider_status=key, target=self._statuses[key], known=True)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ProviderStatusMap":
        raw_statuses = payload.get("statuses")
        if not isinstance(raw_statuses, Mapping):
            raise ValueError("Status map must contain a 'statuses' mapping.")

        statuses: dict[str, OrderStatus | None] = {}
        for name, target in raw_statuses.items():
            if target is None:
                statuses[str(name)] = None
                continue
            try:
                statuses[str(name)] = OrderStatus(str(target))
            except ValueError as exc:
                raise ValueError(f"Status {name!r} maps to unknown order status {target!r}") from exc

        return cls(statuses, topic=str(payload.get("topic") or DEFAULT_TOPIC))

    @classmethod
    def from_yaml(cls, source: str | Path | None = None) -> "ProviderStatusMap":
        path = Path(source) if source else DEFAULT_STATUS_MAP_PATH
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not isinstance(data, Mapping):
            raise ValueError(f"Status map {path} must deserialize to a mapping.")
        return cls.from_dict(data)
