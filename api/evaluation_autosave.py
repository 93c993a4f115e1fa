# api/evaluation_autosave.py - Immediate structured saves and debounced free-text saves

from collections import defaultdict
from django.conf import settings
from django.db import connections
from django.utils import timezone
from django.utils.module_loading import import_string
import logging
import threading

from .evaluation_exceptions import PersistenceError, StageTransitionError
from .evaluation_grades import GRADE_KEYS, HOLD, validate_grade
from .evaluation_state import SAVE
from .evaluation_stores import EvaluationStore, ScoreStore

logger = logging.getLogger(__name__)

OVERALL_COMMENT = 'overall_comment'


class TimerScheduler:
    """Runs callbacks on daemon threading.Timer threads"""

    def schedule(self, delay, callback):
        def run():
            try:
                callback()
            finally:
                # timer threads own their DB connections
                connections.close_all()

        timer = threading.Timer(delay, run)
        timer.daemon = True
        timer.start()
        return timer


def get_scheduler():
    path = settings.EVALUATION_SYSTEM_SETTINGS.get(
        'AUTOSAVE_SCHEDULER', 'api.evaluation_autosave.TimerScheduler'
    )
    return import_string(path)()


def get_debounce_seconds():
    return float(settings.EVALUATION_SYSTEM_SETTINGS.get('AUTOSAVE_DEBOUNCE_SECONDS', 0.5))


class AutosaveController:
    """
    Owns one EvaluationState while it is being edited.

    Grade and HOLD changes are written through at once. Comment edits restart a per-key
    timer; when it fires the latest value is read from the state, never from the edit
    that scheduled it. Writes for one item are serialized and versioned so an older
    snapshot can never overwrite a newer one.

    Failures of debounced saves are logged and kept in ``warnings``; failures of
    structured saves are kept in ``warnings`` and raised to the caller.
    """

    def __init__(self, state, score_store=None, evaluation_store=None, scheduler=None,
                 debounce_seconds=None, user=None):
        self.state = state
        self.score_store = score_store or ScoreStore()
        self.evaluation_store = evaluation_store or EvaluationStore()
        self.scheduler = scheduler or get_scheduler()
        self.debounce_seconds = get_debounce_seconds() if debounce_seconds is None else debounce_seconds
        self.user = user

        self.warnings = []
        self.closed = False

        self._lock = threading.RLock()
        self._timers = {}
        self._timer_generation = defaultdict(int)
        self._versions = defaultdict(int)
        self._persisted_versions = defaultdict(int)
        self._write_locks = {}
        self._cleared = set()

    # ---------------------------------------------------------------- item edits

    def set_grade(self, item_id, grade):
        """Select a letter grade (or '' / HOLD) and persist it right away"""
        with self._lock:
            self._ensure_open()
            item_state = self.state.item(item_id)
            item_state.set_grade(grade)
            self._cleared.discard(item_id)
            self._cancel_timer(item_id)
            self._versions[item_id] += 1

        self._persist_item(item_id, background=False)
        self.mark_in_progress(background=False)
        return item_state

    def toggle_hold(self, item_id):
        """
        HOLD on: saves grade HOLD with score 0 and the current comment.
        HOLD off: grade and score go back to empty, the stored row is deleted, the comment stays.
        """
        with self._lock:
            self._ensure_open()
            item_state = self.state.item(item_id)
            if item_state.is_hold:
                item_state.clear_grade()
                self._cleared.add(item_id)
            else:
                item_state.set_grade(HOLD)
                self._cleared.discard(item_id)
            self._cancel_timer(item_id)
            self._versions[item_id] += 1

        self._persist_item(item_id, background=False)
        self.mark_in_progress(background=False)
        return item_state

    def edit_comment(self, item_id, comment):
        with self._lock:
            self._ensure_open()
            item_state = self.state.item(item_id)
            item_state.comment = comment or ''
            self._cleared.discard(item_id)
            self._versions[item_id] += 1
            self._schedule(item_id)
        return item_state

    # ------------------------------------------------------------- overall fields

    def edit_overall_comment(self, comment):
        with self._lock:
            self._ensure_open()
            self._require_final_stage('overall comment')
            self.state.overall_comment = comment or ''
            self._versions[OVERALL_COMMENT] += 1
            self._schedule(OVERALL_COMMENT)

    def set_overall_grade(self, grade):
        self._set_overall_field('overall_grade', grade)

    def set_final_decision(self, grade):
        self._set_overall_field('final_decision', grade)

    def _set_overall_field(self, field_name, grade):
        grade = grade or ''
        with self._lock:
            self._ensure_open()
            self._require_final_stage(field_name.replace('_', ' '))
            validate_grade(grade, GRADE_KEYS)
            setattr(self.state, field_name, grade)

        try:
            self.evaluation_store.update_evaluation(self.state.id, **{field_name: grade})
        except PersistenceError as e:
            self.record_warning(field_name, field_name, e)
            raise
        self.mark_in_progress(background=False)

    # ----------------------------------------------------------------- lifecycle

    def cancel_pending(self):
        """Drop every pending debounce timer without firing it"""
        with self._lock:
            keys = list(self._timers)
            for key in keys:
                self._cancel_timer(key)
        if keys:
            logger.debug(f"Evaluation {self.state.id}: cancelled pending saves for {keys}")
        return keys

    def pending_keys(self):
        with self._lock:
            return list(self._timers)

    def close(self):
        """Abandon the evaluation: pending edits are discarded, not saved"""
        with self._lock:
            self.cancel_pending()
            self.closed = True

    def has_warnings(self):
        return bool(self.warnings)

    # ------------------------------------------------------------------ internals

    def _ensure_open(self):
        if self.closed:
            raise StageTransitionError(f"Evaluation {self.state.id} is no longer open for editing")

    def _require_final_stage(self, what):
        if not self.state.is_final_stage:
            raise StageTransitionError(f"The {what} can only be set on the final stage")

    def _schedule(self, key):
        self._cancel_timer(key)
        self._timer_generation[key] += 1
        generation = self._timer_generation[key]
        self._timers[key] = self.scheduler.schedule(
            self.debounce_seconds, lambda: self._fire(key, generation)
        )

    def _cancel_timer(self, key):
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()
        self._timer_generation[key] += 1

    def _fire(self, key, generation):
        with self._lock:
            if self.closed or self._timer_generation[key] != generation:
                return
            self._timers.pop(key, None)

        try:
            if key == OVERALL_COMMENT:
                self._persist_overall_comment()
            else:
                self._persist_item(key, background=True)
        except Exception as e:
            logger.error(f"Evaluation {self.state.id}: debounced save of {key} failed: {e}")
            self.record_warning(key, str(key), e)

    def _write_lock(self, key):
        with self._lock:
            lock = self._write_locks.get(key)
            if lock is None:
                lock = self._write_locks[key] = threading.Lock()
            return lock

    def _persist_item(self, item_id, background):
        """Write the latest state of one item unless a newer write already landed"""
        with self._write_lock(item_id):
            with self._lock:
                version = self._versions[item_id]
                if version <= self._persisted_versions[item_id]:
                    return False
                item_state = self.state.item(item_id)
                snapshot = item_state.snapshot()
                delete = item_id in self._cleared
                item_name = item_state.item.name

            try:
                if delete:
                    self.score_store.delete_score(self.state.id, item_id, item_name=item_name)
                else:
                    self.score_store.replace_score(
                        self.state.id, item_id, snapshot['score'], snapshot['comment'], snapshot['grade'],
                        item_name=item_name,
                    )
            except PersistenceError as e:
                self.record_warning(item_id, item_name, e)
                if background:
                    return False
                raise

            with self._lock:
                self._persisted_versions[item_id] = max(self._persisted_versions[item_id], version)
        return True

    def _persist_overall_comment(self):
        with self._write_lock(OVERALL_COMMENT):
            with self._lock:
                version = self._versions[OVERALL_COMMENT]
                if version <= self._persisted_versions[OVERALL_COMMENT]:
                    return False
                comment = self.state.overall_comment

            try:
                self.evaluation_store.update_evaluation(self.state.id, overall_comment=comment)
            except PersistenceError as e:
                self.record_warning(OVERALL_COMMENT, 'Overall comment', e)
                return False

            with self._lock:
                self._persisted_versions[OVERALL_COMMENT] = max(
                    self._persisted_versions[OVERALL_COMMENT], version
                )
        return True

    def mark_in_progress(self, background):
        """
        pending -> in_progress after the first successful structured save.
        Returns True when the status moved, None when it already had, False when the
        background write failed (the failure is in ``warnings``).
        """
        with self._lock:
            previous = self.state.status
            if not self.state.apply(SAVE):
                return None

        try:
            self.evaluation_store.update_evaluation(self.state.id, status=self.state.status)
        except PersistenceError as e:
            with self._lock:
                self.state.status = previous
            self.record_warning('status', 'Status', e)
            if not background:
                raise
            return False

        try:
            self.evaluation_store.log_activity(
                self.state.id, 'STARTED', f"Evaluation started ({self.state.stage} stage)", user=self.user
            )
        except PersistenceError as e:
            self.record_warning('activity', 'Activity log', e)
        logger.info(f"Evaluation {self.state.id} moved to {self.state.status}")
        return True

    def record_warning(self, key, name, error):
        warning = {
            'key': key,
            'name': name,
            'message': getattr(error, 'message', None) or str(error),
            'at': timezone.now().isoformat(),
        }
        with self._lock:
            self.warnings.append(warning)
        logger.warning(f"Evaluation {self.state.id}: save of {name} failed: {warning['message']}")
