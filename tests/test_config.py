import socket

import pytest

from onboarding.__main__ import pick_port
from onboarding.config import Settings, load_dotenv


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "GEMINI_MODEL", "REDIS_URL", "PORT", "RELOAD"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


class TestLoadDotenv:
    def test_exports_without_overriding(self, tmp_path, clean_env):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# local settings\n"
            "GEMINI_API_KEY='abc123'\n"
            "export REDIS_URL=redis://localhost:6379/0\n"
            "PORT=9000\n"
            "GEMINI_MODEL=\n"
            "not a pair\n",
            encoding="utf-8",
        )
        clean_env.setenv("PORT", "8100")

        loaded = load_dotenv(env_file)

        assert loaded == ["GEMINI_API_KEY", "REDIS_URL"]
        settings = Settings.from_env()
        assert settings.gemini_api_key == "abc123"
        assert settings.redis_url == "redis://localhost:6379/0"
        assert settings.port == 8100
        assert settings.gemini_model == "gemini-2.5-flash"

    def test_reads_working_directory(self, tmp_path, clean_env):
        (tmp_path / ".env").write_text('REDIS_URL="redis://cache:6379"\n', encoding="utf-8")
        clean_env.chdir(tmp_path)
        assert load_dotenv() == ["REDIS_URL"]

    def test_missing_file(self, tmp_path, clean_env):
        assert load_dotenv(tmp_path / "nope.env") == []


def test_settings_from_env(clean_env):
    clean_env.setenv("GOOGLE_API_KEY", "g-key")
    clean_env.setenv("RELOAD", "false")
    settings = Settings.from_env()
    assert settings.gemini_api_key == "g-key"
    assert settings.reload is False
    assert settings.redis_url is None


class TestPickPort:
    def test_skips_busy_port(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind(("127.0.0.1", 0))
            busy.listen()
            taken = busy.getsockname()[1]
            port = pick_port(Settings(host="127.0.0.1", port=taken, port_tries=5))
        assert taken < port < taken + 5

    def test_falls_back_to_preferred_port(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind(("127.0.0.1", 0))
            busy.listen()
            taken = busy.getsockname()[1]
            assert pick_port(Settings(host="127.0.0.1", port=taken, port_tries=1)) == taken
