"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from model_provider.config import EndpointSpec, Settings, load_settings


class TestDefaults:
    def test_defaults(self):
        s = Settings()
        assert s.ollama.base_url == "http://127.0.0.1:11434/api"
        assert s.ollama.model == "llama2"
        assert s.llamafile.base_url == "http://127.0.0.1:8080"
        assert s.together.base_url == "https://api.together.xyz"
        assert s.together.api_key is None

    def test_endpoint_lookup(self):
        s = Settings()
        assert s.endpoint("llamafile") is s.llamafile
        with pytest.raises(KeyError):
            s.endpoint("replicate")


class TestLoadSettings:
    def test_missing_explicit_path_uses_defaults(self, tmp_path: Path):
        s = load_settings(tmp_path / "nope.yaml", environ={})
        assert s.ollama == EndpointSpec(base_url="http://127.0.0.1:11434/api", model="llama2")

    def test_yaml_values(self, tmp_path: Path):
        path = tmp_path / "model_provider.yaml"
        path.write_text(yaml.dump({
            "providers": {
                "ollama": {"base_url": "http://gpu-box:11434/api", "model": "mistral"},
                "together": {"api_key": "from-yaml"},
            },
            "timeout": 30,
        }))

        s = load_settings(path, environ={})

        assert s.ollama.base_url == "http://gpu-box:11434/api"
        assert s.ollama.model == "mistral"
        assert s.together.api_key == "from-yaml"
        assert s.together.base_url == "https://api.together.xyz"
        assert s.timeout == 30

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_settings(path, environ={}) == Settings()

    def test_invalid_yaml_raises(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("invalid: yaml: content: [[[")
        with pytest.raises(yaml.YAMLError):
            load_settings(path, environ={})

    def test_environment_overrides(self, tmp_path: Path):
        path = tmp_path / "model_provider.yaml"
        path.write_text(yaml.dump({"providers": {"together": {"api_key": "from-yaml"}}}))

        s = load_settings(path, environ={
            "OLLAMA_API_BASE": "http://env:11434/api",
            "LLAMAFILE_API_BASE": "http://env:8080",
            "TOGETHERAI_API_KEY": "from-env",
            "TOGETHERAI_MODEL": "llama-2-70b-chat",
        })

        assert s.ollama.base_url == "http://env:11434/api"
        assert s.llamafile.base_url == "http://env:8080"
        assert s.together.api_key == "from-env"
        assert s.together.model == "llama-2-70b-chat"

    def test_empty_env_value_ignored(self, tmp_path: Path):
        s = load_settings(tmp_path / "nope.yaml", environ={"OLLAMA_API_BASE": ""})
        assert s.ollama.base_url == "http://127.0.0.1:11434/api"
