import pytest

from personnel.errors import StorageFailure, TransactionError
from personnel.persistence import TransactionManager, TransactionState


class RecordingAdapter:
    def __init__(self, fail_commit=False):
        self.calls = []
        self.fail_commit = fail_commit

    def begin(self):
        self.calls.append("begin")

    def commit(self):
        self.calls.append("commit")
        if self.fail_commit:
            raise StorageFailure("disk full")

    def rollback(self):
        self.calls.append("rollback")


def test_commit_path_visits_every_state():
    adapter = RecordingAdapter()
    manager = TransactionManager(adapter)
    assert manager.state is TransactionState.IDLE

    manager.begin()
    assert manager.state is TransactionState.OPEN
    manager.commit()
    assert manager.state is TransactionState.COMMITTED
    manager.close()
    assert manager.state is TransactionState.CLOSED
    assert adapter.calls == ["begin", "commit"]


def test_rollback_path():
    adapter = RecordingAdapter()
    manager = TransactionManager(adapter)
    manager.begin()
    manager.rollback()
    assert manager.state is TransactionState.ROLLED_BACK
    manager.close()
    assert adapter.calls == ["begin", "rollback"]


def test_failed_commit_rolls_back_and_reraises():
    adapter = RecordingAdapter(fail_commit=True)
    manager = TransactionManager(adapter)
    manager.begin()
    with pytest.raises(StorageFailure):
        manager.commit()
    assert manager.state is TransactionState.ROLLED_BACK
    assert adapter.calls == ["begin", "commit", "rollback"]


def test_close_rolls_back_open_transaction():
    adapter = RecordingAdapter()
    manager = TransactionManager(adapter)
    manager.begin()
    manager.close()
    assert manager.state is TransactionState.CLOSED
    assert adapter.calls == ["begin", "rollback"]


def test_close_is_idempotent_and_final():
    manager = TransactionManager(RecordingAdapter())
    manager.close()
    manager.close()
    with pytest.raises(TransactionError):
        manager.begin()


@pytest.mark.parametrize("operation", ["commit", "rollback"])
def test_commit_or_rollback_without_begin_is_illegal(operation):
    manager = TransactionManager(RecordingAdapter())
    with pytest.raises(TransactionError):
        getattr(manager, operation)()


def test_second_commit_is_illegal():
    manager = TransactionManager(RecordingAdapter())
    manager.begin()
    manager.commit()
    with pytest.raises(TransactionError):
        manager.commit()
    with pytest.raises(TransactionError):
        manager.begin()


def test_transaction_context_commits_or_rolls_back():
    adapter = RecordingAdapter()
    with TransactionManager(adapter).transaction() as manager:
        assert manager.is_open
    assert adapter.calls == ["begin", "commit"]
    assert manager.state is TransactionState.CLOSED

    adapter = RecordingAdapter()
    with pytest.raises(RuntimeError):
        with TransactionManager(adapter).transaction():
            raise RuntimeError("boom")
    assert adapter.calls == ["begin", "rollback"]
