from __future__ import annotations

from probeflow import create_engine
from probeflow.settings import EngineSettings


class TestEngineSettings:
    def test_defaults(self):
        settings = EngineSettings()
        assert settings.rpc_timeout_ms == 5000
        assert settings.max_depth == 256
        assert settings.max_native_args == 16

    def test_from_env(self):
        settings = EngineSettings.from_env({"PROBEFLOW_RPC_TIMEOUT_MS": "250", "PROBEFLOW_MAX_DEPTH": "32"})
        assert (settings.rpc_timeout_ms, settings.max_depth) == (250, 32)

    def test_bad_values_fall_back(self, caplog):
        settings = EngineSettings.from_env({"PROBEFLOW_RPC_TIMEOUT_MS": "soon", "PROBEFLOW_MAX_DEPTH": "-1"})
        assert settings == EngineSettings()
        assert "PROBEFLOW_RPC_TIMEOUT_MS" in caplog.text

    def test_create_engine(self, monkeypatch):
        monkeypatch.setenv("PROBEFLOW_RPC_TIMEOUT_MS", "1234")
        engine = create_engine()
        try:
            assert engine.settings.rpc_timeout_ms == 1234
            assert engine.bridge.timeout_ms == 1234
        finally:
            engine.bridge.close()
