"""
Shared fixtures for the ARQ tests.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.arq.context import SessionContext
from src.utils.clock import EventScheduler
from src.utils.logger import SimulationLogger, LogLevel
from src.utils.metrics import MetricsCollector


class Session:
    """Context plus captured channel output, without a channel."""

    def __init__(self, window_size: int = 4, transit_duration: float = 5.0):
        self.scheduler = EventScheduler()
        self.logger = SimulationLogger(
            name="TEST",
            level=LogLevel.CRITICAL,
            use_colors=False,
            time_source=lambda: self.scheduler.now
        )
        self.metrics = MetricsCollector()
        self.context = SessionContext(
            scheduler=self.scheduler,
            logger=self.logger,
            metrics=self.metrics,
            window_size=window_size,
            transit_duration=transit_duration
        )

        self.packets = []
        self.acks = []
        self.context.send_packet = self.packets.append
        self.context.send_ack = self.acks.append


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def make_session():
    return Session
