import pytest

from kcal_bot.storage import Storage


class RecordingTransport:
    def __init__(self):
        self.sent = []

    async def send_text(self, user_id, text, html=False):
        self.sent.append((user_id, text, html))

    def texts(self, user_id=None):
        return [text for uid, text, _ in self.sent if user_id is None or uid == user_id]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def storage(tmp_path):
    return Storage(str(tmp_path / "kcal.db"))


@pytest.fixture
def transport():
    return RecordingTransport()
