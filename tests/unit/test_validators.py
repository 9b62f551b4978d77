"""Unit tests for boundary validation (hunter_engine/validators.py)"""
import pytest

from hunter_engine.exceptions import InvalidInputError
from hunter_engine.models.profile import StatKey
from hunter_engine.validators import parse_reward_stats, parse_stat_key, require_positive_amount


@pytest.mark.parametrize("raw,expected", [
    ("str", StatKey.STR),
    ("INT", StatKey.INT),
    (StatKey.CHA, StatKey.CHA),
])
def test_parse_stat_key(raw, expected):
    assert parse_stat_key(raw) == expected


def test_parse_stat_key_unknown():
    with pytest.raises(InvalidInputError) as exc_info:
        parse_stat_key("luck", user_id="u1")

    assert exc_info.value.field == "stat_key"
    assert "Valid stats" in exc_info.value.message


def test_parse_reward_stats():
    assert parse_reward_stats({"str": 2, "vit": 1}) == {StatKey.STR: 2, StatKey.VIT: 1}
    assert parse_reward_stats(None) == {}
    assert parse_reward_stats({}) == {}


@pytest.mark.parametrize("raw", [{"luck": 1}, {"str": 0}, {"agi": -3}, {"vit": "lots"}])
def test_parse_reward_stats_rejects(raw):
    with pytest.raises(InvalidInputError) as exc_info:
        parse_reward_stats(raw)

    assert exc_info.value.field == "reward_stats"


@pytest.mark.parametrize("amount,expected", [(1, 1.0), (2.5, 2.5), ("10", 10.0)])
def test_require_positive_amount(amount, expected):
    assert require_positive_amount(amount) == expected


@pytest.mark.parametrize("amount", [0, -1, float("nan"), float("inf"), None, "ten"])
def test_require_positive_amount_rejects(amount):
    with pytest.raises(InvalidInputError):
        require_positive_amount(amount, field="duration_minutes")
