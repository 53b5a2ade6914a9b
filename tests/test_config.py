from datetime import timedelta
from pathlib import Path

from slopecast.config import load_config


def test_defaults_come_from_packaged_yaml():
    config = load_config(env={})

    assert config.database.path == ""
    assert config.scraper.base_url == "https://www.skiresort.info"
    assert config.scraper.concurrency == 1
    assert config.cache.forecast_ttl == timedelta(hours=1)
    assert config.cache.radar_ttl == timedelta(minutes=5)
    assert config.cache.photo_ttl == timedelta(days=7)
    assert config.scheduler.enabled is True


def test_override_file_merges_into_defaults(tmp_path: Path):
    override = tmp_path / "slopecast.yaml"
    override.write_text("scraper:\n  request_delay: 2.5\ncache:\n  retention_hours: 12\n")

    config = load_config(config_path=str(override), env={})

    assert config.scraper.request_delay == 2.5
    assert config.scraper.timeout == 15.0
    assert config.cache.retention == timedelta(hours=12)


def test_environment_wins_over_files(tmp_path: Path):
    env = {
        "SLOPECAST_DATABASE_PATH": str(tmp_path / "slopecast.db"),
        "SLOPECAST_SCRAPER_CONCURRENCY": "2",
        "SLOPECAST_SCHEDULER_ENABLED": "off",
        "SLOPECAST_LOG_JSON": "false",
        "SLOPECAST_CRON_SECRET": "abc",
        "UNSPLASH_API_KEY": "key",
    }

    config = load_config(env=env)

    assert config.database.path == str(tmp_path / "slopecast.db")
    assert config.scraper.concurrency == 2
    assert config.scheduler.enabled is False
    assert config.logging.json is False
    assert config.api.cron_secret == "abc"
    assert config.api.unsplash_api_key == "key"
