"""配置测试"""

import pytest

from zhenduan.config import Config, client_config, parse_port


class TestParsePort:
    """端口校验测试"""

    @pytest.mark.parametrize("value,expected", [(0, 0), ("8765", 8765), (65535, 65535)])
    def test_valid(self, value, expected):
        assert parse_port(value) == expected

    @pytest.mark.parametrize("value", [-1, 65536, "abc", None, True])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_port(value)


class TestConfig:
    """Config 测试"""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch, tmp_path):
        monkeypatch.delenv("ZHENDUAN_PORT", raising=False)
        monkeypatch.delenv("ZHENDUAN_WORKSPACE", raising=False)
        # 避免读到开发机上的配置
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path / "home"))

    def test_defaults(self):
        """测试默认配置"""
        config = Config.load()
        assert config.server.port == 0
        assert config.server.keepalive_interval == 15.0
        assert config.workspace.root == "."
        assert config.workspace.diagnostics_file is None

    def test_from_yaml(self, tmp_path):
        """测试从 YAML 加载"""
        path = tmp_path / "zhenduan.yaml"
        path.write_text(
            "server:\n"
            "  port: 8765\n"
            "  keepalive_interval: 5\n"
            "workspace:\n"
            "  root: /srv/proj\n"
            "  diagnostics_file: diag.json\n",
            encoding="utf-8",
        )
        config = Config.load(path)
        assert config.server.port == 8765
        assert config.server.keepalive_interval == 5.0
        assert config.workspace.root == "/srv/proj"
        assert config.workspace.diagnostics_file == "diag.json"

    def test_search_path(self, tmp_path):
        """测试在当前目录的 config/ 下查找"""
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "zhenduan.yaml").write_text("server:\n  port: 9000\n", encoding="utf-8")
        assert Config.load().server.port == 9000

    def test_empty_file(self, tmp_path):
        """测试空配置文件"""
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert Config.load(path).server.port == 0

    def test_missing_explicit_file(self, tmp_path):
        """测试指定的文件不存在"""
        with pytest.raises(FileNotFoundError):
            Config.load(tmp_path / "nope.yaml")

    def test_not_a_mapping(self, tmp_path):
        """测试非映射格式"""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            Config.load(path)

    def test_invalid_port(self):
        """测试非法端口"""
        with pytest.raises(ValueError):
            Config.from_dict({"server": {"port": 70000}})

    def test_invalid_keepalive(self):
        """测试非法保活间隔"""
        with pytest.raises(ValueError):
            Config.from_dict({"server": {"keepalive_interval": 0}})

    def test_env_override(self, tmp_path, monkeypatch):
        """测试环境变量覆盖"""
        path = tmp_path / "zhenduan.yaml"
        path.write_text("server:\n  port: 8765\n", encoding="utf-8")
        monkeypatch.setenv("ZHENDUAN_PORT", "9100")
        monkeypatch.setenv("ZHENDUAN_WORKSPACE", "/tmp/ws")

        config = Config.load(path)
        assert config.server.port == 9100
        assert config.workspace.root == "/tmp/ws"

    def test_env_invalid_port(self, monkeypatch):
        """测试环境变量端口非法"""
        monkeypatch.setenv("ZHENDUAN_PORT", "http")
        with pytest.raises(ValueError):
            Config.load()


class TestClientConfig:
    """客户端配置片段测试"""

    def test_sse(self):
        """测试 SSE 配置"""
        entry = client_config(8765)["mcpServers"]["editor-diagnostics"]
        assert entry["url"] == "http://127.0.0.1:8765/sse"
        assert entry["transport"] == {"type": "sse"}
        assert "command" not in entry

    def test_stdio(self):
        """测试 stdio 配置"""
        entry = client_config()["mcpServers"]["editor-diagnostics"]
        assert entry["command"] == "zhenduan"
        assert entry["args"] == ["serve", "--transport", "stdio"]
        assert entry["transport"] == {"type": "stdio"}

    def test_description(self):
        """测试描述字段"""
        for port in (None, 8765):
            entry = client_config(port)["mcpServers"]["editor-diagnostics"]
            assert entry["description"] == "Expose editor Problems as diagnostics-only MCP service"
