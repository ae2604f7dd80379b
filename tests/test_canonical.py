"""Unit tests for canonical serialization and digests."""

import hashlib
import math
from datetime import datetime, timedelta, timezone

import pytest

from omega_review.artifacts.canonical import (
    HASH_PREFIX,
    hash_payload,
    stable_stringify,
    strip_hash_prefix,
)


class TestStableStringify:
    """Tests for the canonical JSON text."""

    def test_sorts_object_keys(self):
        assert stable_stringify({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test_sorts_nested_keys(self):
        value = {"z": {"y": 1, "x": [{"b": 1, "a": 2}]}}
        assert stable_stringify(value) == '{"z":{"x":[{"a":2,"b":1}],"y":1}}'

    def test_preserves_array_order(self):
        assert stable_stringify([3, 1, 2]) == "[3,1,2]"

    def test_non_finite_numbers_become_null(self):
        value = {"nan": math.nan, "inf": math.inf, "ninf": -math.inf}
        assert stable_stringify(value) == '{"inf":null,"nan":null,"ninf":null}'

    def test_integral_floats_serialize_as_integers(self):
        assert stable_stringify({"a": 1.0, "b": 1.5}) == '{"a":1,"b":1.5}'

    def test_small_floats_use_shortest_repr(self):
        assert stable_stringify(1.5e-05) == "1.5e-05"
        assert stable_stringify({"x": 0.1}) == '{"x":0.1}'

    def test_keeps_unicode_unescaped(self):
        assert stable_stringify({"title": "Über"}) == '{"title":"Über"}'

    def test_scalars(self):
        assert stable_stringify(None) == "null"
        assert stable_stringify(True) == "true"
        assert stable_stringify("x") == '"x"'

    def test_tuples_serialize_as_arrays(self):
        assert stable_stringify({"a": (1, 2)}) == '{"a":[1,2]}'

    def test_datetimes_serialize_as_utc(self):
        moment = datetime(2024, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2)))
        assert stable_stringify(moment) == '"2024-01-02T03:04:05Z"'

    def test_rejects_unsupported_types(self):
        with pytest.raises(TypeError):
            stable_stringify({"a": {1, 2}})


class TestHashPayload:
    """Tests for algorithm-tagged digests."""

    def test_digest_is_tagged_sha256_of_canonical_text(self):
        expected = hashlib.sha256(b'{"a":1,"b":[2,1]}').hexdigest()
        assert hash_payload({"b": [2, 1], "a": 1}) == f"{HASH_PREFIX}{expected}"

    def test_independent_of_key_order(self):
        first = {"paper": {"id": "p1", "title": "T"}, "tasks": []}
        second = {"tasks": [], "paper": {"title": "T", "id": "p1"}}
        assert hash_payload(first) == hash_payload(second)

    def test_sensitive_to_array_order(self):
        assert hash_payload([1, 2]) != hash_payload([2, 1])

    def test_repeated_calls_agree(self):
        payload = {"paper": {"id": "p1"}, "score": 0.25}
        assert hash_payload(payload) == hash_payload(payload)

    def test_strip_hash_prefix(self):
        digest = hash_payload({})
        assert strip_hash_prefix(digest) == digest[len(HASH_PREFIX):]
        assert strip_hash_prefix("abc") == "abc"
