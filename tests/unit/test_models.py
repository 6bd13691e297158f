"""
Unit tests for request models, errors and configuration.
"""

import pytest

from markdown_pdf_engine.config import Config
from markdown_pdf_engine.dependencies import EnvironmentCapabilities, detect_capabilities, probe_full, probe_remote
from markdown_pdf_engine.engines.base import StrategyKind
from markdown_pdf_engine.errors import (
    EngineTimeout,
    ErrorKind,
    InvalidRequest,
    UnknownTemplate,
)
from markdown_pdf_engine.models import Margins, RenderOptions, RenderOutcome, RenderRequest, TierAttempt
from markdown_pdf_engine.templates import TemplateId


class TestMargins:
    """Tests for CSS-style margin parsing."""

    def test_single_value(self):
        """Test that one value applies to every side."""
        margins = Margins.parse("2cm")

        assert margins == Margins(2.0, 2.0, 2.0, 2.0)

    def test_two_values(self):
        """Test vertical and horizontal values."""
        margins = Margins.parse("1in 0.75in")

        assert margins.top == pytest.approx(2.54)
        assert margins.right == pytest.approx(1.905)
        assert margins.bottom == margins.top
        assert margins.left == margins.right

    def test_four_values_mixed_units(self):
        """Test top, right, bottom, left with mixed units."""
        margins = Margins.parse("10mm 1cm 72pt 0")

        assert margins.top == pytest.approx(1.0)
        assert margins.right == pytest.approx(1.0)
        assert margins.bottom == pytest.approx(2.54, rel=1e-3)
        assert margins.left == 0

    def test_unitless_means_inches(self):
        """Test that a bare number is read as inches."""
        assert Margins.parse("1").top == pytest.approx(2.54)

    @pytest.mark.parametrize("value", ["abc", "1in 2in 3in", "4in", "-1cm", "10furlongs"])
    def test_invalid(self, value):
        """Test rejected margin strings."""
        with pytest.raises(ValueError):
            Margins.parse(value)

    def test_as_css(self):
        """Test CSS rendering of margins."""
        assert Margins.parse("1cm 2cm").as_css() == {
            "top": "1.000cm", "right": "2.000cm", "bottom": "1.000cm", "left": "2.000cm",
        }


class TestRenderRequest:
    """Tests for request validation."""

    def test_create_defaults(self):
        """Test a request with default options."""
        request = RenderRequest.create("# Hi")

        assert request.template is TemplateId.DOCUMENT
        assert request.options.page_size == "A4"
        assert request.options.header_footer is True
        assert request.options.overall_deadline_ms == 25000

    def test_unknown_template(self):
        """Test that an unknown template is rejected at creation."""
        with pytest.raises(UnknownTemplate):
            RenderRequest.create("# Hi", template="glossy")

    @pytest.mark.parametrize("kwargs", [
        {"page_size": "B7"},
        {"margins": "9in"},
        {"overall_deadline_ms": 0},
    ])
    def test_invalid_options(self, kwargs):
        """Test that bad options raise InvalidRequest."""
        with pytest.raises(InvalidRequest) as exc_info:
            RenderRequest.create("# Hi", **kwargs)

        assert exc_info.value.kind is ErrorKind.INVALID_REQUEST
        assert isinstance(exc_info.value, ValueError)

    def test_options_validate_directly(self):
        """Test that RenderOptions validates on construction."""
        with pytest.raises(ValueError):
            RenderOptions(page_size="Tabloid")

    def test_page_dimensions(self):
        """Test page dimension lookup."""
        assert RenderOptions(page_size="A3").page_dimensions_mm == (297.0, 420.0)


class TestOutcome:
    """Tests for RenderOutcome."""

    def test_success(self, fake_pdf):
        """Test a successful outcome."""
        outcome = RenderOutcome.success(fake_pdf, "full", [TierAttempt("full")])

        assert outcome.ok
        assert outcome.content_length == len(fake_pdf)
        assert outcome.error_kind is None
        assert not outcome.retryable
        assert outcome.failed_tiers == ()

    def test_failure_retryable(self):
        """Test retryability by error kind."""
        assert RenderOutcome.failure(ErrorKind.ALL_TIERS_EXHAUSTED, "x").retryable
        assert RenderOutcome.failure(ErrorKind.RESOURCE_EXHAUSTED, "x").retryable
        assert not RenderOutcome.failure(ErrorKind.UNKNOWN_TEMPLATE, "x").retryable
        assert not RenderOutcome.failure(ErrorKind.INVALID_REQUEST, "x").retryable

    def test_error_str_includes_tier(self):
        """Test error formatting."""
        assert str(EngineTimeout("too slow", tier="full")) == "[full] too slow"
        assert str(EngineTimeout("too slow")) == "too slow"


class TestConfig:
    """Tests for layered configuration."""

    def test_defaults(self):
        """Test built-in defaults."""
        config = Config(environ={})

        assert config.get_template() == "document"
        assert config.get_overall_deadline_ms() == 25000
        assert config.get_backpressure() == "queue"
        assert config.get_engines() is None
        assert config.get_remote_url() is None

    def test_environment_overrides_defaults(self):
        """Test MDPDF_* environment variables."""
        config = Config(environ={
            "MDPDF_PAGE_SIZE": "Letter",
            "MDPDF_MAX_CONCURRENT_ENGINES": "3",
            "MDPDF_HEADER_FOOTER": "false",
            "MDPDF_DEBUG": "yes",
        })

        assert config.get_page_size() == "Letter"
        assert config.get_max_concurrent_engines() == 3
        assert config.get_header_footer() is False
        assert config.get_debug() is True

    def test_cli_overrides_environment(self):
        """Test that CLI values win and None means 'not given'."""
        config = Config({"page_size": "A5", "template": None}, environ={"MDPDF_PAGE_SIZE": "Letter"})

        assert config.get_page_size() == "A5"
        assert config.get_template() == "document"

    def test_engine_list(self):
        """Test comma-separated engine lists."""
        config = Config({"engines": "minimal, remote"}, environ={})

        assert config.get_engines() == ["minimal", "remote"]

    @pytest.mark.parametrize("values", [
        {"unknown_key": 1},
        {"overall_deadline_ms": "soon"},
        {"acquire_timeout_ms": -5},
        {"backpressure": "drop"},
        {"timeout_policy": "retry"},
    ])
    def test_invalid_values(self, values):
        """Test that bad configuration fails early."""
        with pytest.raises(ValueError):
            Config(values, environ={})


class TestCapabilities:
    """Tests for the environment capability probe."""

    def test_forced_engine_list(self):
        """Test that an explicit engine list bypasses probing."""
        config = Config({"engines": "remote,minimal"}, environ={})

        capabilities = detect_capabilities(config)

        assert capabilities.viable == frozenset({StrategyKind.REMOTE, StrategyKind.MINIMAL})
        assert not capabilities.allows(StrategyKind.FULL)

    def test_invalid_forced_engine(self):
        """Test that an unknown engine name is rejected."""
        with pytest.raises(ValueError):
            detect_capabilities(Config({"engines": "full,gpu"}, environ={}))

    def test_minimal_always_viable(self):
        """Test that probing always keeps the minimal tier."""
        capabilities = detect_capabilities(Config(environ={}))

        assert capabilities.allows(StrategyKind.MINIMAL)
        assert set(capabilities.reasons) == set(StrategyKind)

    def test_serverless_disables_full(self, monkeypatch):
        """Test that serverless markers rule out spawning a browser."""
        monkeypatch.setenv("AWS_LAMBDA_FUNCTION_NAME", "converter")

        viable, reason = probe_full()

        assert viable is False
        assert "serverless" in reason

    def test_missing_executable(self, tmp_path, monkeypatch):
        """Test that a configured but absent Chromium binary is reported."""
        for name in ("AWS_LAMBDA_FUNCTION_NAME", "VERCEL", "NETLIFY", "FUNCTIONS_WORKER_RUNTIME"):
            monkeypatch.delenv(name, raising=False)

        viable, reason = probe_full(str(tmp_path / "no-chrome"))

        assert viable is False

    def test_remote_requires_url(self):
        """Test remote viability."""
        assert probe_remote(None)[0] is False
        assert probe_remote("http://render.local")[0] is True

    def test_all_and_only(self):
        """Test capability constructors."""
        assert EnvironmentCapabilities.all().viable == frozenset(StrategyKind)
        only = EnvironmentCapabilities.only(StrategyKind.MINIMAL)
        assert only.reasons[StrategyKind.FULL] == "excluded by configuration"
