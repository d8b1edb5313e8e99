import logging

from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION

from hybrid_backtest.core.telemetry import build_resource, configure_logging, setup_telemetry


class TestTelemetry:
    def test_no_endpoint_skips_setup(self, monkeypatch):
        monkeypatch.setattr(
            "hybrid_backtest.core.telemetry.settings.OTEL_EXPORTER_OTLP_ENDPOINT", ""
        )
        assert setup_telemetry() is False

    def test_resource_from_settings(self, monkeypatch):
        monkeypatch.setattr("hybrid_backtest.core.telemetry.settings.VERSION", "9.9.9")
        monkeypatch.setattr("hybrid_backtest.core.telemetry.settings.ENV", "PROD")

        attrs = build_resource().attributes

        assert attrs[SERVICE_NAME] == "hybrid-backtest"
        assert attrs[SERVICE_VERSION] == "9.9.9"
        assert attrs["deployment.environment"] == "PROD"

    def test_resource_service_name_override(self):
        assert build_resource("replay-worker").attributes[SERVICE_NAME] == "replay-worker"

    def test_configure_logging(self):
        configure_logging("debug")
        assert logging.getLogger().handlers
