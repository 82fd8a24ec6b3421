"""
Unit tests for resource limit parsing.
"""
import pytest
from dockyard.UTILS.resources import ResourceLimits, parse_cpu_string, parse_memory_string


def test_parse_memory_string():
    assert parse_memory_string("512m") == 512 * 1024 ** 2
    assert parse_memory_string("1g") == 1024 ** 3
    assert parse_memory_string("2GB") == 2 * 1024 ** 3
    assert parse_memory_string("1024") == 1024
    assert parse_memory_string("lots") is None
    assert parse_memory_string("0m") is None


def test_parse_cpu_string():
    assert parse_cpu_string("0.5") == (50000, 100000)
    assert parse_cpu_string("2") == (200000, 100000)
    with pytest.raises(ValueError):
        parse_cpu_string("-1")
    with pytest.raises(ValueError):
        parse_cpu_string("many")


def test_limits_from_strings():
    limits = ResourceLimits.from_strings("256m", "1.5")
    assert limits.memory == 256 * 1024 ** 2
    assert limits.cpu_quota == 150000
    assert limits.cpu_period == 100000
    assert ResourceLimits.from_strings().is_empty()


def test_limits_reject_bad_memory():
    with pytest.raises(ValueError, match="memory"):
        ResourceLimits.from_strings("huge", None)
