"""
Brief: Shared pytest fixtures: src on sys.path, a sample config, UDP stub resolvers.

Inputs:
  - None

Outputs:
  - None
"""

import os
import socket
import sys
import threading
import time

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from dnslib import A, QTYPE, RR, DNSRecord  # noqa: E402

from hybrid_dns.config import Config  # noqa: E402


@pytest.fixture
def config():
    """
    Brief: Configuration matching the example.org / 10.0.0.x test network.

    Outputs:
      - Config
    """
    return Config(
        listen_address="10.0.0.5",
        local_domain="example.org.",
        local_network="10.0.0",
        resolvers=("8.8.8.8", "8.8.4.4"),
        ttl=60,
        timeout=0.3,
    )


def _answer_with(address):
    """
    Brief: Build a stub handler answering every query with one A record.

    Inputs:
      - address: IPv4 address placed in the answer

    Outputs:
      - callable(bytes) -> bytes
    """

    def handler(data):
        request = DNSRecord.parse(data)
        reply = request.reply()
        reply.add_answer(RR(request.q.qname, QTYPE.A, rdata=A(address), ttl=300))
        return reply.pack()

    return handler


@pytest.fixture
def answer_with():
    """
    Brief: Expose the A-record stub handler factory to tests.

    Outputs:
      - callable(address) -> handler
    """
    return _answer_with


class UDPStub:
    """Local UDP resolver stub; ``handler`` returning None means stay silent."""

    def __init__(self, handler):
        self.handler = handler
        self.hits = 0
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.addr = self.sock.getsockname()
        self._stop = False
        self.thread = threading.Thread(target=self._loop, daemon=True)

    @property
    def resolver(self):
        return "%s:%d" % self.addr

    def start(self):
        self.thread.start()
        time.sleep(0.02)
        return self

    def _loop(self):
        while not self._stop:
            try:
                self.sock.settimeout(0.1)
                data, peer = self.sock.recvfrom(4096)
            except OSError:
                continue
            self.hits += 1
            reply = self.handler(data)
            if reply is not None:
                try:
                    self.sock.sendto(reply, peer)
                except OSError:
                    pass

    def close(self):
        self._stop = True
        self.thread.join(timeout=1)
        self.sock.close()


@pytest.fixture
def udp_stub():
    """
    Brief: Factory starting UDP stubs that are closed after the test.

    Outputs:
      - callable(handler) -> UDPStub
    """
    stubs = []

    def start(handler):
        stub = UDPStub(handler).start()
        stubs.append(stub)
        return stub

    yield start
    for stub in stubs:
        stub.close()
