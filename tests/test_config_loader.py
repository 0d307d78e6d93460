import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from aicommit.config.loader import (
    DEFAULT_TIMEOUT,
    ConfigError,
    Settings,
    load_config,
    parse_host,
)


class TestConfigLoader(unittest.TestCase):
    """Tests for the configuration loader."""

    def _load_with_file(self, content, environ=None):
        with tempfile.TemporaryDirectory() as tmp:
            config_dir = Path(tmp)
            (config_dir / "config.json").write_text(content)
            with patch("aicommit.config.loader._get_config_directory", return_value=config_dir):
                return load_config(environ or {})

    def test_defaults_without_file_or_env(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with patch("aicommit.config.loader._get_config_directory", return_value=Path(tmp)):
                settings = load_config({})
        self.assertEqual(settings, Settings())
        self.assertIsNone(settings.model)
        self.assertEqual(settings.request_timeout, DEFAULT_TIMEOUT)
        self.assertEqual(settings.request_timeout, 120.0)
        self.assertTrue(settings.stream)

    def test_load_config_file(self) -> None:
        config = {
            "base_url": "http://gpu-box",
            "port": 8080,
            "model": "llama3",
            "request_timeout": 30,
            "stream": False,
        }
        settings = self._load_with_file(json.dumps(config))
        self.assertEqual(settings.base_url, "http://gpu-box")
        self.assertEqual(settings.port, 8080)
        self.assertEqual(settings.model, "llama3")
        self.assertEqual(settings.request_timeout, 30.0)
        self.assertFalse(settings.stream)
        self.assertIsNotNone(settings.config_path)

    def test_environment_overrides_file(self) -> None:
        config = {"model": "llama3", "request_timeout": 30}
        settings = self._load_with_file(
            json.dumps(config),
            {"OLLAMA_MODEL": "qwen2.5-coder", "OLLAMA_TIMEOUT": "300"},
        )
        self.assertEqual(settings.model, "qwen2.5-coder")
        self.assertEqual(settings.request_timeout, 300.0)

    def test_blank_model_means_unset(self) -> None:
        settings = load_config({"OLLAMA_MODEL": "   "})
        self.assertIsNone(settings.model)

    def test_invalid_json(self) -> None:
        with self.assertRaises(ConfigError):
            self._load_with_file("{invalid}")

    def test_non_object_document(self) -> None:
        with self.assertRaises(ConfigError):
            self._load_with_file("[1, 2]")

    def test_wrong_types(self) -> None:
        for bad in (
            {"port": "11434"},
            {"port": True},
            {"model": 3},
            {"request_timeout": "fast"},
            {"request_timeout": 0},
            {"stream": "yes"},
        ):
            with self.subTest(config=bad):
                with self.assertRaises(ConfigError):
                    self._load_with_file(json.dumps(bad))

    def test_invalid_timeout_env(self) -> None:
        with self.assertRaises(ConfigError):
            load_config({"OLLAMA_TIMEOUT": "soon"})
        with self.assertRaises(ConfigError):
            load_config({"OLLAMA_TIMEOUT": "-5"})

    def test_host_env(self) -> None:
        settings = load_config({"OLLAMA_HOST": "127.0.0.1:9999"})
        self.assertEqual(settings.base_url, "http://127.0.0.1")
        self.assertEqual(settings.port, 9999)


class TestParseHost(unittest.TestCase):
    def test_host_only_keeps_port(self) -> None:
        self.assertEqual(parse_host("gpu-box"), {"base_url": "http://gpu-box"})

    def test_scheme_and_port(self) -> None:
        self.assertEqual(
            parse_host("https://ollama.lan:443/"),
            {"base_url": "https://ollama.lan", "port": 443},
        )

    def test_scheme_without_port_uses_standard_port(self) -> None:
        self.assertEqual(parse_host("https://ollama.lan"), {"base_url": "https://ollama.lan", "port": 443})
        self.assertEqual(parse_host("http://ollama.lan/"), {"base_url": "http://ollama.lan", "port": 80})

    def test_host_env_with_https_scheme(self) -> None:
        settings = load_config({"OLLAMA_HOST": "https://ollama.example.com"})
        self.assertEqual(settings.base_url, "https://ollama.example.com")
        self.assertEqual(settings.port, 443)

    def test_invalid_port(self) -> None:
        with self.assertRaises(ConfigError):
            parse_host("localhost:notaport")


if __name__ == "__main__":
    unittest.main()
