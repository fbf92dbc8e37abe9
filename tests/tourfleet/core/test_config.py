from datetime import time

import pytest

from tourfleet.core import config


def test_get_time_parses_clock_values() -> None:
    assert config._get_time('07:30', time(8, 0)) == time(7, 30)
    assert config._get_time(None, time(8, 0)) == time(8, 0)


def test_get_list_splits_comma_separated_values() -> None:
    assert config._get_list('http://a.test, http://b.test,', []) == ['http://a.test', 'http://b.test']


def test_validate_runtime_config_rejects_inverted_operating_hours(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'DAY_START', time(22, 0))
    monkeypatch.setattr(config, 'DAY_END', time(8, 0))

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()


def test_validate_runtime_config_requires_postgres_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.setattr(config, 'DATABASE_URL', 'sqlite:///./tourfleet.db')

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()
