"""
Hosts-file entries for instance domains.
"""
import logging
import os
from typing import List

logger = logging.getLogger(__name__)

BEGIN_MARKER = "# BEGIN dockyard"
END_MARKER = "# END dockyard"


class DNSManager:
    """
    Maintains a marker-delimited block of `127.0.0.1 <instance>.<domain>` lines in a hosts file.
    Every failure is logged and reported as False; DNS is never fatal.
    """

    def __init__(self, hosts_path: str = "/etc/hosts", address: str = "127.0.0.1"):
        self.hosts_path = hosts_path
        self.address = address

    def _read(self) -> List[str]:
        if not os.path.exists(self.hosts_path):
            return []
        with open(self.hosts_path, 'r') as f:
            return f.read().splitlines()

    def _split(self, lines: List[str]):
        if BEGIN_MARKER in lines and END_MARKER in lines:
            start, end = lines.index(BEGIN_MARKER), lines.index(END_MARKER)
            return lines[:start], lines[start + 1:end], lines[end + 1:]
        return lines, [], []

    def _write(self, before: List[str], block: List[str], after: List[str]):
        lines = list(before)
        if block:
            lines += [BEGIN_MARKER] + block + [END_MARKER]
        lines += after
        with open(self.hosts_path, 'w') as f:
            f.write("\n".join(lines) + "\n")

    def entries(self) -> List[str]:
        _, block, _ = self._split(self._read())
        return [line.split()[1] for line in block if len(line.split()) >= 2]

    def add_domain(self, instance_name: str, domain: str) -> bool:
        host = f"{instance_name}.{domain}"
        try:
            before, block, after = self._split(self._read())
            if any(line.split()[1:2] == [host] for line in block):
                return True
            block.append(f"{self.address} {host}")
            self._write(before, block, after)
        except OSError as e:
            logger.warning(f"Could not add {host} to {self.hosts_path}: {e}")
            return False
        logger.info(f"Added {host} to {self.hosts_path}")
        return True

    def remove_domain(self, instance_name: str, domain: str) -> bool:
        host = f"{instance_name}.{domain}"
        try:
            before, block, after = self._split(self._read())
            remaining = [line for line in block if line.split()[1:2] != [host]]
            if len(remaining) == len(block):
                return True
            self._write(before, remaining, after)
        except OSError as e:
            logger.warning(f"Could not remove {host} from {self.hosts_path}: {e}")
            return False
        return True
