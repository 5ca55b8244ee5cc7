from __future__ import annotations

import os
import socket
import tempfile

import pytest

# Must be in place before linkpreview.config is imported.
_DB_DIR = tempfile.mkdtemp(prefix="linkpreview-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DB_DIR}/test.db")
os.environ.setdefault("SECRET_KEY", "test-secret")

PUBLIC_IP = "93.184.216.34"


def fake_resolver(table: dict[str, list[str]], calls: list | None = None):
    """getaddrinfo stand-in answering from *table*; unknown hosts fail like NXDOMAIN."""
    def resolve(host, port, *args, **kwargs):
        if calls is not None:
            calls.append(host)
        if host not in table:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        out = []
        for ip in table[host]:
            if ":" in ip:
                out.append((socket.AF_INET6, socket.SOCK_STREAM, 6, "", (ip, port, 0, 0)))
            else:
                out.append((socket.AF_INET, socket.SOCK_STREAM, 6, "", (ip, port)))
        return out

    return resolve


@pytest.fixture
def resolver_for():
    return fake_resolver


@pytest.fixture
def public_resolver():
    """Everything under example.com/.org is public; internal.example is not."""
    return fake_resolver({
        "example.com": [PUBLIC_IP],
        "www.example.com": [PUBLIC_IP],
        "cdn.example.com": [PUBLIC_IP],
        "example.org": ["93.184.216.35"],
        "internal.example": ["10.0.0.7"],
        "metadata.example": ["169.254.169.254"],
    })
