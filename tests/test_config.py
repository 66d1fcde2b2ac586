import pytest

from responder.core.config import CONFIG_FILE, load_config
from responder.core.errors import ConfigError


def test_defaults_without_file(tmp_path):
    config = load_config(tmp_path)

    assert config.data_dir == tmp_path
    assert config.database_path == tmp_path / "responder.db"
    assert config.escalation_log_path == tmp_path / "escalations.jsonl"
    assert config.default_firm is None
    assert config.log_format == "text"


def test_file_values_and_overrides(tmp_path):
    (tmp_path / CONFIG_FILE).write_text(
        "default_firm: firm-a\nlog_format: json\nescalation_log: null\n", encoding="utf-8"
    )

    config = load_config(tmp_path, {"log_format": "text", "database": None})

    assert config.default_firm == "firm-a"
    assert config.log_format == "text"
    assert config.database == "responder.db"
    assert config.escalation_log_path is None


@pytest.mark.parametrize(
    "content",
    [
        "default_firm: [unclosed\n",
        "- just\n- a list\n",
        "log_format: xml\n",
        "unknown_setting: 1\n",
    ],
)
def test_invalid_file(tmp_path, content):
    (tmp_path / CONFIG_FILE).write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)
