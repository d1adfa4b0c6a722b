"""Unit tests for content fingerprinting."""

import hashlib

from jobfeed.utils.hashing import FINGERPRINT_LENGTH, compute_content_fingerprint


class TestComputeContentFingerprint:
    """Tests for compute_content_fingerprint."""

    def test_format(self):
        """16 lowercase hex characters."""
        fingerprint = compute_content_fingerprint("Data Engineer", "New York, NY", "Engineering")

        assert len(fingerprint) == FINGERPRINT_LENGTH == 16
        assert all(c in "0123456789abcdef" for c in fingerprint)

    def test_matches_sha256_prefix(self):
        """Hash covers "title|location|department" exactly."""
        expected = hashlib.sha256(b"Data Engineer|New York, NY|Engineering").hexdigest()[:16]

        assert compute_content_fingerprint("Data Engineer", "New York, NY", "Engineering") == expected

    def test_deterministic(self):
        first = compute_content_fingerprint("Analyst", "London", "Research")
        second = compute_content_fingerprint("Analyst", "London", "Research")

        assert first == second

    def test_each_field_changes_fingerprint(self):
        base = compute_content_fingerprint("Analyst", "London", "Research")

        assert compute_content_fingerprint("Senior Analyst", "London", "Research") != base
        assert compute_content_fingerprint("Analyst", "Paris", "Research") != base
        assert compute_content_fingerprint("Analyst", "London", "Trading") != base

    def test_raw_casing_counts(self):
        """Raw strings are hashed as published, so a casing edit is a change."""
        assert compute_content_fingerprint("analyst", "London", "Research") != compute_content_fingerprint(
            "Analyst", "London", "Research"
        )
