"""Shared fixtures for taskledger tests."""

import pytest

from taskledger.lib.config import BoardProject, TrackerConfig
from taskledger.lib.types import BoardColumnOption, BoardItem, ExternalItem, TrackerError
from taskledger.workflow.migrations import MigrationManager


class FakeTracker:
    """In-memory tracker. Records every call; failures are switched on per method."""

    def __init__(self, available=True):
        self._available = available
        self.calls = []
        self.fail = set()          # method names that raise TrackerError
        self.fail_titles = set()   # create_item titles that raise
        self.items = []            # returned by list_board_items
        self.issues = {}           # item_ref -> dict for get_item
        self._next_issue = 100

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail:
            raise TrackerError(f"{name} failed")

    def calls_to(self, name):
        return [c for c in self.calls if c[0] == name]

    def available(self):
        return self._available

    def create_item(self, title, body, labels=None):
        self._record("create_item", title, body, labels)
        if any(title.startswith(t) for t in self.fail_titles):
            raise TrackerError(f"cannot create {title}")
        self._next_issue += 1
        number = self._next_issue
        return ExternalItem(id=str(number), url=f"https://github.com/acme/app/issues/{number}")

    def add_item_to_board(self, board_id, item_url):
        self._record("add_item_to_board", board_id, item_url)
        return f"ITEM_{item_url.rsplit('/', 1)[-1]}"

    def move_item(self, board_id, item_id, field_id, option_id):
        self._record("move_item", board_id, item_id, field_id, option_id)

    def list_board_items(self, owner, board_number):
        self._record("list_board_items", owner, board_number)
        return list(self.items)

    def get_item(self, item_ref):
        self._record("get_item", item_ref)
        if item_ref not in self.issues:
            raise TrackerError(f"issue {item_ref} not found")
        return self.issues[item_ref]

    def comment_on_item(self, item_ref, text):
        self._record("comment_on_item", item_ref, text)

    def close_item(self, item_ref):
        self._record("close_item", item_ref)

    def get_board_columns(self, board_id):
        self._record("get_board_columns", board_id)
        return [BoardColumnOption(name="Todo", option_id="opt-todo", field_id="FIELD")]


@pytest.fixture
def fake_tracker():
    return FakeTracker()


@pytest.fixture
def tracker_config():
    """Tracker config with a board and option ids for the default columns."""
    return TrackerConfig(
        engine="both",
        owner="acme",
        repo="app",
        project=BoardProject(number=3, id="PVT_1"),
        field_id="FIELD",
        column_options={
            "Todo": "opt-todo",
            "In Progress": "opt-doing",
            "Done": "opt-done",
            "Blocked": "opt-blocked",
        },
    )


@pytest.fixture
def feature_dir(tmp_path):
    path = tmp_path / ".ledger" / "001-login"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def manager(feature_dir):
    return MigrationManager(feature_dir)


@pytest.fixture
def feature(manager):
    return manager.init_feature("001", "login", "001-login")


def make_board_item(item_id, status, url=None, title=""):
    return BoardItem(item_id=item_id, title=title, status=status, source_ref=url)
