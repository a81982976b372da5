from datetime import datetime, timedelta

import pytest

T0 = datetime(2024, 5, 4, 12, 0, 0)


def at(seconds: float) -> datetime:
    """Race-day timestamp `seconds` after 12:00:00."""
    return T0 + timedelta(seconds=seconds)


class RecordingObserver:
    def __init__(self):
        self.opened = []
        self.closed = []
        self.finished = []

    def lap_opened(self, lap):
        self.opened.append((lap.kart_id, lap.lap_number))

    def lap_closed(self, lap):
        self.closed.append((lap.kart_id, lap.lap_number))

    def race_finished(self, winner):
        self.finished.append(winner)


@pytest.fixture
def recorder():
    return RecordingObserver()
