"""Pytest fixtures and test utilities for LatticeView."""

import socket
import socketserver
import threading

import numpy as np
import pytest

from latticeview.config import init_taichi
from latticeview.core.geometry import NUM_DIRECTIONS, GridDimensions
from latticeview.protocol.codec import HEADER_SIZE, Command, encode_handshake

# Marker response: the fake solver closes the connection instead of answering
CLOSE = object()


@pytest.fixture(scope="session", autouse=True)
def taichi_init():
    """Initialize Taichi once per test session with CPU backend."""
    init_taichi(backend="cpu", debug=True)
    yield


class _SolverHandler(socketserver.BaseRequestHandler):
    def handle(self):
        solver = self.server.solver
        while True:
            data = self.request.recv(1)
            if not data:
                return
            command = data[0]
            solver.commands.append(command)
            if command == Command.HANDSHAKE:
                self.request.sendall(solver.handshake)
            elif command == Command.POLL:
                if not solver.responses:
                    continue
                response = solver.responses.pop(0)
                if response is CLOSE:
                    return
                self.request.sendall(response)
            elif command == Command.DISCONNECT:
                solver.disconnected.set()
                return


class _SolverServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


class FakeSolver:
    """Loopback stand-in for the solver end of one stream.

    Answers the handshake with fixed dimensions and each poll with the next
    queued response (raw bytes, or CLOSE to drop the connection). Polls with
    nothing queued get no answer.
    """

    def __init__(self, dims=(4, 3, 2), responses=None, handshake=None):
        self.dims = GridDimensions(*dims)
        self.handshake = handshake if handshake is not None else encode_handshake(
            self.dims, pad_to=HEADER_SIZE
        )
        self.responses = list(responses or [])
        self.commands: list[int] = []
        self.disconnected = threading.Event()
        self._server = _SolverServer(("127.0.0.1", 0), _SolverHandler)
        self._server.solver = self
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)

    @property
    def port(self) -> int:
        return self._server.server_address[1]

    def start(self) -> "FakeSolver":
        self._thread.start()
        return self

    def stop(self) -> None:
        self._server.shutdown()
        self._server.server_close()
        self._thread.join(timeout=2.0)


def unused_ports(count: int) -> list[int]:
    """Distinct loopback ports with nothing listening on them."""
    sockets = [socket.socket(socket.AF_INET, socket.SOCK_STREAM) for _ in range(count)]
    try:
        for sock in sockets:
            sock.bind(("127.0.0.1", 0))
        return [sock.getsockname()[1] for sock in sockets]
    finally:
        for sock in sockets:
            sock.close()


@pytest.fixture
def fake_solver():
    """Factory for running fake solver servers; stopped after the test."""
    solvers = []

    def start(dims=(4, 3, 2), responses=None, handshake=None) -> FakeSolver:
        solver = FakeSolver(dims, responses, handshake).start()
        solvers.append(solver)
        return solver

    yield start
    for solver in solvers:
        solver.stop()


@pytest.fixture
def closed_port() -> int:
    """A loopback port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def fast_channel_kwargs():
    """Channel timeouts short enough for failure-path tests."""
    return {
        "header_timeout": 0.3,
        "receive_timeout": 0.002,
        "retry_budget": 50,
        "connect_timeout": 1.0,
    }


@pytest.fixture
def micro_factory():
    """Factory for deterministic (27, n, 3) micro velocity arrays."""
    return make_micro_velocities


def make_micro_velocities(node_count: int, seed: int = 0) -> np.ndarray:
    """Random micro velocities with a fixed seed, float32."""
    rng = np.random.default_rng(seed)
    return rng.uniform(-1.0, 1.0, size=(NUM_DIRECTIONS, node_count, 3)).astype(np.float32)
