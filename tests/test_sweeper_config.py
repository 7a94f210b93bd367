import logging

import pytest

from chatroom.core.config import (
    MAX_NAME_LENGTH,
    NAME_COLUMN_LENGTH,
    SweeperConfig,
    get_sweeper_config,
    parse_max_name_length,
)
from chatroom.core.errors import ConfigError


def test_defaults_split_period_and_threshold():
    cfg = get_sweeper_config()
    assert cfg.sweep_period_ms > 0
    assert cfg.staleness_threshold_ms > 0


@pytest.mark.parametrize("period,threshold", [(0, 10000), (15000, 0), (-1, 10000), (15000, -5)])
def test_non_positive_values_are_rejected(period, threshold):
    with pytest.raises(ConfigError):
        SweeperConfig(sweep_period_ms=period, staleness_threshold_ms=threshold)


def test_non_integer_values_are_rejected():
    with pytest.raises(ConfigError):
        SweeperConfig(sweep_period_ms=1.5, staleness_threshold_ms=10000)  # type: ignore[arg-type]
    with pytest.raises(ConfigError):
        SweeperConfig(sweep_period_ms=True, staleness_threshold_ms=10000)  # type: ignore[arg-type]


def test_config_error_is_a_value_error():
    with pytest.raises(ValueError):
        SweeperConfig(sweep_period_ms=0, staleness_threshold_ms=1)


def test_period_longer_than_threshold_is_allowed_but_warned(caplog):
    cfg = SweeperConfig(sweep_period_ms=15000, staleness_threshold_ms=10000)
    with caplog.at_level(logging.WARNING, logger="chatroom.core.config"):
        assert cfg.check() is False
    assert "sweep period exceeds staleness threshold" in caplog.text
    assert cfg.max_eviction_delay_ms == 25000


def test_tight_config_passes_check(caplog):
    cfg = SweeperConfig(sweep_period_ms=5000, staleness_threshold_ms=10000)
    with caplog.at_level(logging.WARNING, logger="chatroom.core.config"):
        assert cfg.check() is True
    assert caplog.text == ""
    assert cfg.sweep_period_s == 5.0


def test_max_name_length_is_bounded_by_the_name_column():
    assert parse_max_name_length("40") == 40
    assert parse_max_name_length(str(NAME_COLUMN_LENGTH)) == NAME_COLUMN_LENGTH
    for raw in ("0", "-5", str(NAME_COLUMN_LENGTH + 1), "wide"):
        with pytest.raises(ConfigError):
            parse_max_name_length(raw)
    assert MAX_NAME_LENGTH <= NAME_COLUMN_LENGTH
