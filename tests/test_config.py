"""Tests for configuration loading."""

import math

import pytest

from shellkit.core.context import Context
from shellkit.core.errors import ConfigError
from shellkit.lib.config_parser import (
    RuntimeConfig,
    apply_config,
    export_vars,
    load_config,
    load_config_file,
    parse_config_content,
    save_config_file,
)


class TestRuntimeConfig:
    """Test YAML runtime configuration."""

    def test_defaults(self):
        """Test an empty configuration."""
        config = RuntimeConfig()
        assert config.shell == "sh"
        assert config.strict is False
        assert config.max_jobs is None
        assert config.log_level == "INFO"
        assert config.variables == {}

    def test_load_yaml(self, tmp_path):
        """Test loading a full configuration file."""
        path = tmp_path / "shellkit.yaml"
        path.write_text(
            "shell: bash\n"
            "strict: true\n"
            "max_jobs: 4\n"
            "default_timeout: 2.5\n"
            "log_level: debug\n"
            "variables:\n"
            "  VERSION: 1.0\n"
            "  ENABLED: true\n"
            "  EMPTY:\n"
            "  TARGETS: [x86, arm]\n"
        )
        config = load_config(path)
        assert config.shell == "bash"
        assert config.strict is True
        assert config.max_jobs == 4
        assert config.default_timeout == 2.5
        assert config.log_level == "DEBUG"
        assert config.variables == {
            "VERSION": "1.0",
            "ENABLED": "true",
            "EMPTY": "",
            "TARGETS": ["x86", "arm"],
        }

    def test_infinite_timeout(self, tmp_path):
        """Test default_timeout accepts YAML infinity."""
        path = tmp_path / "inf.yaml"
        path.write_text("default_timeout: .inf\n")
        assert math.isinf(load_config(path).default_timeout)

    def test_empty_file(self, tmp_path):
        """Test an empty file gives the defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == RuntimeConfig()

    def test_missing_file(self, tmp_path):
        """Test a missing file raises ConfigError."""
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.yaml")

    @pytest.mark.parametrize("content", [
        "max_jobs: 0\n",
        "default_timeout: -1\n",
        "log_level: LOUD\n",
        "variables: [a, b]\n",
        "- just\n- a list\n",
        "shell: [unclosed\n",
    ])
    def test_invalid(self, tmp_path, content):
        """Test invalid YAML and invalid values raise ConfigError."""
        path = tmp_path / "bad.yaml"
        path.write_text(content)
        with pytest.raises(ConfigError):
            load_config(path)

    def test_apply_config(self):
        """Test variables and arrays are written into the context."""
        context = Context()
        config = RuntimeConfig(variables={"NAME": "demo", "HOSTS": ["a", "b"]})
        apply_config(config, context)
        assert context.get("NAME") == "demo"
        assert context.get_array("HOSTS") == ["a", "b"]


class TestKeyValueFiles:
    """Test bash-style KEY=value files."""

    def test_parse_content(self):
        """Test comments, quotes, export and arrays."""
        context = Context()
        count = parse_config_content(
            "# comment\n"
            "\n"
            "NAME=demo\n"
            'GREETING="hello world"\n'
            "export PATH_EXTRA='/opt/bin'\n"
            "LIST=(a b c)\n"
            "not a pair\n",
            context,
        )
        assert count == 4
        assert context.get("NAME") == "demo"
        assert context.get("GREETING") == "hello world"
        assert context.get("PATH_EXTRA") == "/opt/bin"
        assert context.get_array("LIST") == ["a", "b", "c"]

    def test_load_missing_file(self, tmp_path):
        """Test loading a missing file reports False."""
        assert load_config_file(str(tmp_path / "nope.conf"), Context()) is False

    def test_save_and_load(self, tmp_path):
        """Test saved variables load back into a fresh context."""
        source = Context({"NAME": "demo", "GREETING": "hello world"})
        source.set_array("LIST", ["a", "b"])
        path = tmp_path / "saved.conf"
        save_config_file(str(path), ["NAME", "GREETING", "LIST", "UNSET"], source)

        text = path.read_text()
        assert text.startswith("# shellkit configuration\n")
        assert "UNSET" not in text

        target = Context()
        assert load_config_file(str(path), target) is True
        assert target.get("NAME") == "demo"
        assert target.get("GREETING") == "hello world"
        assert target.get_array("LIST") == ["a", "b"]

    def test_parenthesized_scalar_round_trip(self, tmp_path):
        """Test scalars that look like arrays reload as scalars."""
        source = Context({"GROUP": "(a b)", "SINGLE": "(x)"})
        path = tmp_path / "parens.conf"
        save_config_file(str(path), ["GROUP", "SINGLE"], source)
        assert 'SINGLE="(x)"' in path.read_text()

        target = Context()
        load_config_file(str(path), target)
        for key in ("GROUP", "SINGLE"):
            assert target.get(key) == source.get(key)
            assert not target.has(f"{key}_LENGTH")

    def test_quoted_parentheses_not_array(self):
        """Test only a bare (a b) value is an array."""
        context = Context()
        parse_config_content("QUOTED=\"(a b)\"\nBARE=(a b)\n", context)
        assert context.get("QUOTED") == "(a b)"
        assert not context.has("QUOTED_LENGTH")
        assert context.get_array("BARE") == ["a", "b"]

    def test_load_expands_path(self, tmp_path):
        """Test the file path is expanded against the context."""
        (tmp_path / "app.conf").write_text("KEY=value\n")
        context = Context({"CONF_DIR": str(tmp_path)})
        assert load_config_file("$CONF_DIR/app.conf", context) is True
        assert context.get("KEY") == "value"

    def test_export_vars(self, tmp_path):
        """Test export lines are sorted and escaped."""
        context = Context({"B": 'say "hi" $HOME', "A": "plain"})
        path = tmp_path / "env.sh"
        export_vars(str(path), context)
        assert path.read_text() == 'export A="plain"\nexport B="say \\"hi\\" \\$HOME"\n'
