"""Tests for request signing."""

import hashlib
import itertools
from urllib.parse import parse_qsl, urlsplit

from rtm_client.signing import (
    SIGNATURE_PARAM,
    build_signed_url,
    sign_params,
    signed_query,
)


class TestSignParams:
    """Tests for sign_params."""

    def test_digest_of_sorted_pairs(self):
        """Signature is the MD5 of the secret followed by key-sorted pairs."""
        params = {"yxz": "foo", "feg": "bar", "abc": "baz"}
        expected = hashlib.md5(b"BANANASabcbazfegbaryxzfoo").hexdigest()
        assert sign_params("BANANAS", params) == expected

    def test_lowercase_hex(self):
        """Signature is 32 lowercase hex characters."""
        sig = sign_params("secret", {"a": "1"})
        assert len(sig) == 32
        assert sig == sig.lower()
        int(sig, 16)

    def test_order_independent(self):
        """Every insertion order of the same pairs yields the same signature."""
        pairs = [("method", "rtm.test.echo"), ("api_key", "k"), ("format", "json"), ("v", "2")]
        signatures = {
            sign_params("s3cret", dict(permutation))
            for permutation in itertools.permutations(pairs)
        }
        assert len(signatures) == 1

    def test_depends_on_secret(self):
        """Different secrets produce different signatures."""
        params = {"a": "1"}
        assert sign_params("one", params) != sign_params("two", params)

    def test_depends_on_values(self):
        """Changing a value changes the signature."""
        assert sign_params("s", {"a": "1"}) != sign_params("s", {"a": "2"})

    def test_existing_signature_ignored(self):
        """An api_sig already present is not part of what gets signed."""
        params = {"a": "1"}
        with_sig = {"a": "1", SIGNATURE_PARAM: "whatever"}
        assert sign_params("s", with_sig) == sign_params("s", params)

    def test_empty_params(self):
        """With no parameters, only the secret is digested."""
        assert sign_params("s", {}) == hashlib.md5(b"s").hexdigest()

    def test_unicode_values(self):
        """Non-ASCII values are encoded as UTF-8 before hashing."""
        expected = hashlib.md5("snameété".encode("utf-8")).hexdigest()
        assert sign_params("s", {"name": "été"}) == expected


class TestSignedQuery:
    """Tests for signed_query and build_signed_url."""

    def test_adds_signature(self):
        """The signed query carries the original params plus api_sig."""
        query = signed_query("s", {"a": "1", "b": "2"})
        assert query["a"] == "1"
        assert query["b"] == "2"
        assert query[SIGNATURE_PARAM] == sign_params("s", {"a": "1", "b": "2"})

    def test_does_not_mutate_input(self):
        """The caller's mapping is left untouched."""
        params = {"a": "1"}
        signed_query("s", params)
        assert params == {"a": "1"}

    def test_signed_url(self):
        """URL query round-trips to a verifiable signature."""
        url = build_signed_url(
            "https://www.rememberthemilk.com/services/auth/",
            "s",
            {"api_key": "k", "perms": "write", "frob": "f1"},
        )
        parts = urlsplit(url)
        assert parts.netloc == "www.rememberthemilk.com"
        query = dict(parse_qsl(parts.query))
        sig = query.pop(SIGNATURE_PARAM)
        assert query == {"api_key": "k", "perms": "write", "frob": "f1"}
        assert sig == sign_params("s", query)
