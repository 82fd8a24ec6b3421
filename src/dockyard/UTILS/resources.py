"""
Parsing of memory and CPU limit strings into the values the container runtime expects.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

CPU_PERIOD = 100000


@dataclass
class ResourceLimits:
    """Resolved limits for one container."""

    memory: Optional[int] = None  # bytes
    cpu_quota: Optional[int] = None
    cpu_period: Optional[int] = None

    @classmethod
    def from_strings(cls, memory: Optional[str] = None, cpus: Optional[str] = None) -> "ResourceLimits":
        """
        Builds limits from strings such as "512m" and "0.5".

        :raises ValueError: If either string cannot be parsed.
        """
        limits = cls()
        if memory:
            limits.memory = parse_memory_string(memory)
            if limits.memory is None:
                raise ValueError(f"invalid memory limit: {memory}")
        if cpus:
            limits.cpu_quota, limits.cpu_period = parse_cpu_string(cpus)
        return limits

    def is_empty(self) -> bool:
        return self.memory is None and self.cpu_quota is None


def parse_memory_string(memory_str: str) -> Optional[int]:
    """
    Parse a memory string like "512m" or "1g" to bytes.

    Args:
        memory_str: Memory size string.

    Returns:
        Size in bytes, or None if parsing fails.
    """
    if not memory_str:
        return None

    memory_str = memory_str.strip().lower()

    suffixes = {
        'b': 1,
        'k': 1024,
        'kb': 1024,
        'm': 1024 ** 2,
        'mb': 1024 ** 2,
        'g': 1024 ** 3,
        'gb': 1024 ** 3,
        't': 1024 ** 4,
        'tb': 1024 ** 4,
    }

    for suffix, multiplier in sorted(suffixes.items(), key=lambda x: -len(x[0])):
        if memory_str.endswith(suffix):
            try:
                value = float(memory_str[:-len(suffix)])
            except ValueError:
                return None
            return int(value * multiplier) if value > 0 else None

    try:
        value = int(memory_str)
    except ValueError:
        return None
    return value if value > 0 else None


def parse_cpu_string(cpu_str: str) -> Tuple[int, int]:
    """
    Converts a fractional CPU count ("0.5", "2") into a (quota, period) pair.

    :raises ValueError: If the string is not a positive number.
    """
    try:
        cpus = float(cpu_str)
    except (TypeError, ValueError):
        raise ValueError(f"invalid CPU limit: {cpu_str}")
    if cpus <= 0:
        raise ValueError(f"CPU limit must be positive: {cpu_str}")
    return int(cpus * CPU_PERIOD), CPU_PERIOD
