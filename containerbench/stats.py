from __future__ import annotations

from dataclasses import dataclass

from .errors import StatsFormatError

STATS_FORMAT = "{{.CPUPerc}}|{{.MemUsage}}|{{.MemPerc}}|{{.NetIO}}|{{.BlockIO}}|{{.PIDs}}"
FIELD_COUNT = 6


@dataclass(frozen=True)
class ResourceSample:
    """Point-in-time resource snapshot of one container."""

    cpu_percent: float
    mem_usage: str
    mem_limit: str
    mem_percent: float
    net_in: str
    net_out: str
    block_in: str
    block_out: str
    pids: int

    @property
    def mem_usage_limit(self) -> str:
        return f"{self.mem_usage} / {self.mem_limit}"


def parse(line: str) -> ResourceSample:
    """Parse one ``docker stats --format STATS_FORMAT`` line.

    Raises StatsFormatError for any line that does not have exactly six
    pipe-delimited fields or whose numeric fields do not parse.
    """
    parts = line.strip().split("|")
    if len(parts) != FIELD_COUNT:
        raise StatsFormatError(f"Unexpected stats format ({len(parts)} fields): {line!r}")

    cpu, mem, mem_perc, net, block, pids = parts
    mem_usage, mem_limit = _split_pair(mem)
    net_in, net_out = _split_pair(net)
    block_in, block_out = _split_pair(block)

    return ResourceSample(
        cpu_percent=_parse_percent(cpu, line),
        mem_usage=mem_usage,
        mem_limit=mem_limit,
        mem_percent=_parse_percent(mem_perc, line),
        net_in=net_in,
        net_out=net_out,
        block_in=block_in,
        block_out=block_out,
        pids=_parse_int(pids, line),
    )


def _split_pair(raw: str) -> tuple[str, str]:
    left, _, right = raw.partition("/")
    return left.strip(), right.strip()


def _parse_percent(raw: str, line: str) -> float:
    try:
        return float(raw.strip().replace("%", ""))
    except ValueError:
        raise StatsFormatError(f"Invalid percent value {raw!r} in stats line: {line!r}") from None


def _parse_int(raw: str, line: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise StatsFormatError(f"Invalid PIDs value {raw!r} in stats line: {line!r}") from None
