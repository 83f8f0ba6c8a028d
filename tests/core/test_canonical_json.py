"""Tests for canonical JSON serialization and hashing."""

import json
import math
from datetime import UTC, datetime

import pytest
from hypothesis import given
from hypothesis import strategies as st

# RFC 8785 numbers are IEEE doubles; keep ints in the exactly representable range
json_scalars = (
    st.none()
    | st.booleans()
    | st.integers(min_value=-(2**53) + 1, max_value=2**53 - 1)
    | st.floats(allow_nan=False, allow_infinity=False)
    | st.text(max_size=20)
)
json_values = st.recursive(
    json_scalars,
    lambda children: st.lists(children, max_size=4)
    | st.dictionaries(st.text(max_size=8), children, max_size=4),
    max_leaves=12,
)


class TestCanonicalJson:
    """canonical_json output."""

    def test_keys_sorted_without_whitespace(self) -> None:
        from batchflow.core.canonical import canonical_json

        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_key_order_does_not_matter(self) -> None:
        from batchflow.core.canonical import canonical_json

        assert canonical_json({"x": 1, "y": 2}) == canonical_json({"y": 2, "x": 1})

    def test_datetimes_become_utc_isoformat(self) -> None:
        from batchflow.core.canonical import canonical_json

        value = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        assert canonical_json({"at": value}) == '{"at":"2026-01-01T12:00:00+00:00"}'

    def test_naive_datetime_assumed_utc(self) -> None:
        from batchflow.core.canonical import canonical_json

        naive = datetime(2026, 1, 1, 12, 0)
        aware = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        assert canonical_json(naive) == canonical_json(aware)

    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_non_finite_floats_rejected(self, bad: float) -> None:
        from batchflow.core.canonical import canonical_json

        with pytest.raises(ValueError, match="non-finite"):
            canonical_json({"value": bad})

    @given(json_values)
    def test_output_parses_back_to_equal_value(self, value: object) -> None:
        from batchflow.core.canonical import canonical_json

        assert json.loads(canonical_json(value)) == value


class TestStableHash:
    """stable_hash determinism."""

    def test_equal_structures_hash_equal(self) -> None:
        from batchflow.core.canonical import stable_hash

        assert stable_hash({"interval": 60, "batch_size": 5}) == stable_hash(
            {"batch_size": 5, "interval": 60}
        )

    def test_different_structures_hash_differently(self) -> None:
        from batchflow.core.canonical import stable_hash

        assert stable_hash({"interval": 60}) != stable_hash({"interval": 61})

    def test_hash_is_sha256_hex(self) -> None:
        from batchflow.core.canonical import stable_hash

        digest = stable_hash(None)
        assert len(digest) == 64
        int(digest, 16)


class TestOptionalJson:
    """dump_optional / load_optional used for cursors."""

    def test_none_passes_through(self) -> None:
        from batchflow.core.canonical import dump_optional, load_optional

        assert dump_optional(None) is None
        assert load_optional(None) is None

    @pytest.mark.parametrize("cursor", [0, 42, "2026-01-01", "abc", 1.5])
    def test_cursor_type_survives(self, cursor: object) -> None:
        from batchflow.core.canonical import dump_optional, load_optional

        restored = load_optional(dump_optional(cursor))
        assert restored == cursor
        assert type(restored) is type(cursor)


class TestCursorEncoding:
    """dump_cursor / load_cursor keep source-id types across a text column."""

    @pytest.mark.parametrize(
        "cursor",
        [
            0,
            42,
            1.5,
            "2026-01-01T00:00:00",
            datetime(2025, 1, 1, 8, 1),
            datetime(2025, 1, 1, 8, 1, tzinfo=UTC),
        ],
    )
    def test_type_survives(self, cursor: object) -> None:
        from batchflow.core.canonical import dump_cursor, load_cursor

        restored = load_cursor(dump_cursor(cursor))

        assert restored == cursor
        assert type(restored) is type(cursor)

    def test_naive_datetime_stays_naive(self) -> None:
        from batchflow.core.canonical import dump_cursor, load_cursor

        restored = load_cursor(dump_cursor(datetime(2025, 1, 1, 8, 1)))

        assert restored.tzinfo is None

    def test_date(self) -> None:
        from datetime import date

        from batchflow.core.canonical import dump_cursor, load_cursor

        assert load_cursor(dump_cursor(date(2025, 1, 2))) == date(2025, 1, 2)

    def test_none_passes_through(self) -> None:
        from batchflow.core.canonical import dump_cursor, load_cursor

        assert dump_cursor(None) is None
        assert load_cursor(None) is None

    @pytest.mark.parametrize("cursor", [True, [1, 2], {"id": 1}, object()])
    def test_unsupported_types_rejected(self, cursor: object) -> None:
        from batchflow.core.canonical import dump_cursor

        with pytest.raises(TypeError, match="cannot be stored"):
            dump_cursor(cursor)
