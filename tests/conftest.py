import pytest


@pytest.fixture(autouse=True)
def isolate_user_config(monkeypatch, tmp_path):
    """Keep the user's real config file and OLLAMA_* variables out of tests.

    Tests that need a config file patch ``_get_config_directory`` themselves;
    by default it points at an empty temporary directory.
    """
    for name in ("OLLAMA_HOST", "OLLAMA_MODEL", "OLLAMA_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(
        "aicommit.config.loader._get_config_directory",
        lambda: tmp_path / "no-config",
    )
    yield
