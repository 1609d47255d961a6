import pytest

from helpers import fixed_machine


@pytest.fixture
def machine():
    return fixed_machine()
