"""Runtime policy: how often a flow runs, how much it takes, and how each
record is shaped before it reaches the sink.

A flow stores its runtime as a descriptor like any connector:

    {"type_tag": "heartbeat", "options": {"interval": 600, "batch_size": 50}}

A flow without a runtime, or whose runtime cannot be rebuilt, runs under
RuntimePolicy() defaults.
"""

import copy
from datetime import timedelta
from typing import Any

from pydantic import Field

from batchflow.connectors.config_base import PluginConfig
from batchflow.contracts import CollisionResult

DEFAULT_INTERVAL_SECONDS = 3600
DEFAULT_BATCH_SIZE = 100


class RuntimePolicyConfig(PluginConfig):
    """Configuration for the default runtime policy."""

    interval: float = Field(default=DEFAULT_INTERVAL_SECONDS, gt=0)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, gt=0)
    enabled: bool = True
    id_field: str = "id"
    collision_key: str | None = None


class RuntimePolicy:
    """Scheduling knobs plus the identity transform.

    Config options:
        interval: Seconds between scheduled runs (default: 3600)
        batch_size: Maximum records per run (default: 100)
        enabled: Whether runs are scheduled at all (default: True)
        id_field: Source field holding the cursor value (default: "id")
        collision_key: Transformed field used to look the record up in the
            sink before writing. Collision detection is off when unset.
    """

    name = "heartbeat"
    plugin_version = "1.0.0"
    config_model: type[RuntimePolicyConfig] = RuntimePolicyConfig

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = dict(config or {})
        cfg = self.config_model.from_dict(self.config)
        self._cfg = cfg
        self.interval = cfg.interval
        self.batch_size = cfg.batch_size
        self.enabled = cfg.enabled
        self.id_field = cfg.id_field
        self.collision_key = cfg.collision_key

    @property
    def options(self) -> dict[str, Any]:
        return copy.deepcopy(self.config)

    @property
    def interval_delta(self) -> timedelta:
        return timedelta(seconds=self.interval)

    def transform(self, record: dict[str, Any]) -> dict[str, Any]:
        """Identity transform. Subclasses reshape records here."""
        return dict(record)

    def record_id(self, record: dict[str, Any]) -> Any:
        """Cursor value of a source record.

        Raises:
            ValueError: If the record has no id_field
        """
        try:
            return record[self.id_field]
        except KeyError:
            raise ValueError(f"Record has no '{self.id_field}' field") from None

    # === Collision detection ===

    @property
    def detects_collisions(self) -> bool:
        return self.collision_key is not None

    def collision_target(self, transformed: dict[str, Any]) -> Any:
        """Key of the sink record this transformed record would collide with."""
        if self.collision_key is None:
            return None
        try:
            return transformed[self.collision_key]
        except KeyError:
            raise ValueError(
                f"Transformed record has no collision key '{self.collision_key}'"
            ) from None

    def detect_collision(
        self,
        record: dict[str, Any],
        transformed: dict[str, Any],
        existing: dict[str, Any] | None,
    ) -> CollisionResult:
        """Predict what writing transformed would do to the sink.

        NEW when nothing is stored under the key, REDUNDANT when every
        transformed field already holds the same value, UPDATE otherwise.
        """
        if existing is None:
            return CollisionResult.NEW
        if all(k in existing and existing[k] == v for k, v in transformed.items()):
            return CollisionResult.REDUNDANT
        return CollisionResult.UPDATE

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._cfg == other._cfg  # type: ignore[attr-defined, no-any-return]

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.interval, self.batch_size))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.config!r})"
