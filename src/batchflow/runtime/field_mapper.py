"""Field mapper runtime: renames and selects fields on the way to the sink."""

from typing import Any

from pydantic import Field

from batchflow.runtime.policy import RuntimePolicy, RuntimePolicyConfig

_MISSING = object()


class FieldMapperConfig(RuntimePolicyConfig):
    """Configuration for the field mapper runtime."""

    mapping: dict[str, str] = Field(default_factory=dict)
    select_only: bool = False
    strict: bool = False


def _get_path(record: dict[str, Any], path: str) -> Any:
    """Read a dotted path ("address.city") from nested dicts."""
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


class FieldMapperRuntime(RuntimePolicy):
    """RuntimePolicy whose transform renames fields.

    Config options (in addition to RuntimePolicy's):
        mapping: {source_path: target_field}; source paths may be dotted
            to read nested values
        select_only: Emit only mapped fields (default: False)
        strict: Raise when a mapped source path is missing (default: False)

    Example:
        FieldMapperRuntime({"mapping": {"user.email": "email"}, "select_only": True})
        # {"id": 1, "user": {"email": "a@b"}} -> {"email": "a@b"}
    """

    name = "field_mapper"
    plugin_version = "1.0.0"
    config_model = FieldMapperConfig

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        super().__init__(config)
        cfg = self._cfg
        assert isinstance(cfg, FieldMapperConfig)
        self.mapping = dict(cfg.mapping)
        self.select_only = cfg.select_only
        self.strict = cfg.strict

    def transform(self, record: dict[str, Any]) -> dict[str, Any]:
        """Apply the mapping.

        Raises:
            ValueError: If strict and a mapped path is missing
        """
        if self.select_only:
            result: dict[str, Any] = {}
        else:
            # Renamed top-level fields move; nested reads leave the parent
            result = {
                k: v
                for k, v in record.items()
                if k not in self.mapping or self.mapping[k] == k
            }

        for source_path, target in self.mapping.items():
            value = _get_path(record, source_path)
            if value is _MISSING:
                if self.strict:
                    raise ValueError(f"Record has no field '{source_path}'")
                continue
            result[target] = value
        return result
