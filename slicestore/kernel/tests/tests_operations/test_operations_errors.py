"""
Operation Tracker — Error Normalization Tests
"""

from slicestore.kernel.operations import normalize_error


class TestNormalizeError:
    def test_exception_message(self):
        assert normalize_error(ConnectionError("network down")) == "network down"

    def test_empty_message_falls_back_to_class_name(self):
        assert normalize_error(TimeoutError()) == "TimeoutError"

    def test_plain_string(self):
        assert normalize_error("network down") == "network down"

    def test_none(self):
        assert normalize_error(None) == "Unknown error"
