"""Shared fixtures for offload tests.

Every test starts with no root token, no host binding and no worker
channel in the test process.
"""

import pytest

from offload.core import token as token_module
from offload.process import channel, executor


@pytest.fixture(autouse=True)
def clean_process_state():
    yield
    host = channel.get_host_binding()
    if host is not None:
        host.close()
    channel._close_worker_channel()
    token_module.clear_root_token()
    executor._default_offloader = None


@pytest.fixture
def host_binding():
    """Active host binding with a couple of plugin handlers."""
    binding = channel.bind_host({
        "scale": lambda x, factor=10: x * factor,
        "greet": lambda name: f"hello {name}",
    })
    yield binding
    binding.close()
