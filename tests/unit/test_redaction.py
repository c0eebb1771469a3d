"""Unit tests for log redaction and logging setup."""
import json
import logging

import pytest

from datasafe_ops.monitoring.logger import get_logger, setup_logging
from datasafe_ops.monitoring.redaction import mask_secrets, redact, register_secret


class TestRedact:
    @pytest.mark.parametrize("key", ["password", "ds_secret", "root_secret", "auth_token", "private_key"])
    def test_sensitive_keys(self, key):
        assert redact({key: "value", "user": "u"}) == {key: "[hidden]", "user": "u"}

    def test_empty_sensitive_value_kept(self):
        assert redact({"secret": None}) == {"secret": None}

    def test_nested_structures(self):
        assert redact({"payload": [{"password": "x"}]}) == {"payload": [{"password": "[hidden]"}]}

    def test_registered_values_masked_inside_strings(self):
        register_secret("abc123!")
        register_secret("abc")
        assert redact({"event": "failed with abc123! and abc"}) == {"event": "failed with [hidden] and [hidden]"}

    def test_no_registered_secrets(self):
        assert mask_secrets("plain text") == "plain text"


def test_log_output_is_redacted(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    setup_logging("INFO", "json", str(log_file))
    register_secret("Hunter2-pw")
    get_logger("tests").info("Calling CLI", command="update --password Hunter2-pw", password="Hunter2-pw")
    for handler in logging.getLogger().handlers:
        handler.flush()
    lines = [json.loads(line) for line in log_file.read_text().splitlines() if line.strip()]
    setup_logging("INFO")
    record = [r for r in lines if r["event"] == "Calling CLI"][0]
    assert record["password"] == "[hidden]"
    assert record["command"] == "update --password [hidden]"
    assert "Hunter2-pw" not in log_file.read_text()
