import sys
from pathlib import Path

import pytest

# Add project root (1 level up from tests/) to sys.path so tests can import 'peercall'
root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))


# Optionally set PYTHONPATH for runtime
import os
os.environ.setdefault('PYTHONPATH', str(root))


from helpers import FakeChannel, FakeMedia, FakeTransportFactory


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def media():
    return FakeMedia()


@pytest.fixture
def transports():
    return FakeTransportFactory()


@pytest.fixture
def statuses():
    return []


@pytest.fixture
def manager(channel, media, transports, statuses):
    from peercall.services.call.manager import CallSessionManager

    return CallSessionManager(
        "alice",
        channel,
        media,
        transports,
        error_revert_delay=0.05,
        on_status=statuses.append,
    )
