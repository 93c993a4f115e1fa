"""Test doubles for the evaluation core.

- ``ManualScheduler``: fake clock; timers fire only when the test advances time
- ``RecordingScoreStore``: real ORM store that also records every write
- ``FailingScoreStore``: raises PersistenceError for chosen items
- ``StatusFailingEvaluationStore`` / ``LogFailingEvaluationStore``: status writes or activity logging fail
"""

from api.evaluation_exceptions import PersistenceError
from api.evaluation_stores import EvaluationStore, ScoreStore


class ManualHandle:
    def __init__(self, due, seq, callback):
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for TimerScheduler."""

    def __init__(self):
        self.now = 0.0
        self.handles = []

    def schedule(self, delay, callback):
        handle = ManualHandle(self.now + delay, len(self.handles), callback)
        self.handles.append(handle)
        return handle

    def pending(self):
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [h for h in self.pending() if h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.due, h.seq))
            self.now = handle.due
            handle.fired = True
            handle.callback()
        self.now = target


class RecordingScoreStore(ScoreStore):
    def __init__(self):
        self.calls = []

    def replace_score(self, evaluation_id, item_id, score, comment, grade, item_name=None):
        self.calls.append(('replace', item_id, grade, score, comment))
        return super().replace_score(evaluation_id, item_id, score, comment, grade, item_name=item_name)

    def delete_score(self, evaluation_id, item_id, item_name=None):
        self.calls.append(('delete', item_id))
        return super().delete_score(evaluation_id, item_id, item_name=item_name)

    def replaces(self, item_id=None):
        return [c for c in self.calls if c[0] == 'replace' and (item_id is None or c[1] == item_id)]


class FailingScoreStore(RecordingScoreStore):
    def __init__(self, fail_items):
        super().__init__()
        self.fail_items = set(fail_items)

    def replace_score(self, evaluation_id, item_id, score, comment, grade, item_name=None):
        if item_id in self.fail_items:
            self.calls.append(('failed', item_id, grade, score, comment))
            raise PersistenceError('database unavailable', item_id=item_id, item_name=item_name)
        return super().replace_score(evaluation_id, item_id, score, comment, grade, item_name=item_name)

    def delete_score(self, evaluation_id, item_id, item_name=None):
        if item_id in self.fail_items:
            self.calls.append(('failed', item_id))
            raise PersistenceError('database unavailable', item_id=item_id, item_name=item_name)
        return super().delete_score(evaluation_id, item_id, item_name=item_name)


class StatusFailingEvaluationStore(EvaluationStore):
    def update_evaluation(self, evaluation_id, **fields):
        if 'status' in fields:
            raise PersistenceError('status write failed')
        return super().update_evaluation(evaluation_id, **fields)


class LogFailingEvaluationStore(EvaluationStore):
    def log_activity(self, evaluation_id, action, description, user=None, metadata=None):
        raise PersistenceError('activity log unavailable')
