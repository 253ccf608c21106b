"""
配置系统测试
"""
import pytest

from core.config import (
    AlignmentSettings,
    HTTPSettings,
    LoggingSettings,
    PDBeSettings,
    RCSBSettings,
    Settings,
)


class TestUpstreamSettings:
    """上游地址配置测试"""

    def test_rcsb_defaults(self):
        rcsb = RCSBSettings()
        assert rcsb.search_url == "https://search.rcsb.org/rcsbsearch/v2/query"
        assert rcsb.graphql_url == "https://data.rcsb.org/graphql"
        assert rcsb.health_url == "https://data.rcsb.org/rest/v1/status"

    def test_rcsb_env_override(self, monkeypatch):
        """环境变量覆盖地址"""
        monkeypatch.setenv("RCSB_BASE_URL", "http://rcsb.local")
        rcsb = RCSBSettings()
        assert rcsb.health_url == "http://rcsb.local/rest/v1/status"

    def test_pdbe_health_url(self):
        pdbe = PDBeSettings(api_url="http://pdbe.local/api")
        assert pdbe.health_url == "http://pdbe.local/api/pdb/entry/status"


class TestAlignmentSettings:
    """比对配置测试"""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ALIGNMENT_POLL_INTERVAL", raising=False)
        settings = AlignmentSettings()
        assert settings.poll_interval == 2.0
        assert settings.max_poll_attempts == 15
        assert settings.default_method == "cealign"

    def test_default_concurrency_covers_all_candidates(self, monkeypatch):
        monkeypatch.delenv("ALIGNMENT_MAX_CONCURRENCY", raising=False)
        monkeypatch.delenv("ALIGNMENT_MAX_STRUCTURE_CANDIDATES", raising=False)
        settings = AlignmentSettings()
        assert settings.max_concurrency == 10
        assert settings.max_concurrency >= settings.max_structure_candidates

    def test_method_is_normalized(self):
        assert AlignmentSettings(default_method="TMALIGN").default_method == "tmalign"

    def test_invalid_method_raises_error(self):
        with pytest.raises(ValueError):
            AlignmentSettings(default_method="dali")

    def test_max_poll_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            AlignmentSettings(max_poll_attempts=0)


class TestSettings:
    """主配置测试"""

    def test_default_settings(self):
        settings = Settings()
        assert settings.app_name == "ProteinStructService"
        assert settings.api_prefix == "/api/v1"
        assert isinstance(settings.http, HTTPSettings)

    def test_cors_origin_list(self):
        """测试 CORS 源列表解析"""
        settings = Settings(cors_origins="http://localhost:3000, http://example.com")
        assert settings.cors_origin_list == ["http://localhost:3000", "http://example.com"]

    def test_display_config(self):
        display = Settings().display_config()
        assert display["rcsb_search_url"].startswith("https://search.rcsb.org")
        assert "alignment_max_poll_attempts" in display

    def test_invalid_environment_raises_error(self):
        with pytest.raises(ValueError):
            Settings(environment="invalid")

    def test_invalid_log_level_raises_error(self):
        with pytest.raises(ValueError):
            LoggingSettings(level="TRACE")
