"""
Runner Command Line Tests
"""

import pytest

from kinesis_ingestion.__main__ import main


def test_unknown_log_level_is_rejected_by_parser():
    with pytest.raises(SystemExit) as excinfo:
        main(["--log-level", "verbose", "--once"])

    assert excinfo.value.code == 2


def test_log_level_is_case_insensitive(tmp_path):
    # Reaches config loading, which fails on the missing file
    assert main(["--config", str(tmp_path / "missing.json"), "--log-level", "debug", "--once"]) == 2


def test_invalid_config_exits_with_status_2(tmp_path):
    path = tmp_path / "bridge.json"
    path.write_text('{"kinesisStreamName": "events"}', encoding="utf-8")

    assert main(["--config", str(path), "--once"]) == 2
