"""
Shared fixtures
"""

import pytest

from nwc_bridge.keys import NWCKeys


@pytest.fixture
def nwc_keys() -> NWCKeys:
    return NWCKeys.generate()
