from __future__ import annotations

import pytest

from helpers import RecordingGame


@pytest.fixture
def game():
    return RecordingGame()
