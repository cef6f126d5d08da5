"""
Request/response shapes for the edge proxy handler
"""

from dataclasses import dataclass, field
from typing import Dict, Optional


def _lookup(headers: Dict[str, str], name: str) -> Optional[str]:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


@dataclass
class EdgeRequest:
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        return _lookup(self.headers, name)


@dataclass
class EdgeResponse:
    status: int
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        return _lookup(self.headers, name)
