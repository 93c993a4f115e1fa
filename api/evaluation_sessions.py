# api/evaluation_sessions.py - One open evaluation (autosave controller) per user

import logging
import threading

from .evaluation_autosave import AutosaveController
from .evaluation_exceptions import NotFoundError
from .evaluation_stores import load_evaluation_state
from .evaluation_workflow import SubmissionWorkflow

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Process-local current-evaluation pointer per user.

    Opening another evaluation cancels the previous controller's pending saves without
    firing them. The pointer is cleared only after a successful submit or resubmit.

    Sessions and their debounce timers live in this process only. With several worker
    processes a user's requests must keep reaching the same worker (a single worker, or
    sticky routing by user); otherwise edits land on a worker with no open session and
    get 404, and pending comment saves stay on the worker that scheduled them.
    """

    def __init__(self, controller_factory=None):
        self._lock = threading.Lock()
        self._sessions = {}
        self.controller_factory = controller_factory or AutosaveController

    def open(self, user, evaluation_id):
        with self._lock:
            current = self._sessions.get(user.id)

        if current is not None and current.state.id == evaluation_id and not current.closed:
            return current

        state = load_evaluation_state(evaluation_id)
        controller = self.controller_factory(state, user=user)

        with self._lock:
            previous = self._sessions.get(user.id)
            self._sessions[user.id] = controller

        if previous is not None:
            previous.close()
            logger.info(f"User {user.id} switched from evaluation {previous.state.id} to {evaluation_id}")
        else:
            logger.info(f"User {user.id} opened evaluation {evaluation_id}")
        return controller

    def current(self, user):
        with self._lock:
            return self._sessions.get(user.id)

    def get(self, user, evaluation_id):
        """Controller for ``evaluation_id`` if it is the user's open evaluation"""
        controller = self.current(user)
        if controller is None or controller.state.id != evaluation_id:
            raise NotFoundError(f"Evaluation {evaluation_id} is not open; open it before editing")
        return controller

    def close(self, user):
        with self._lock:
            controller = self._sessions.pop(user.id, None)
        if controller is not None:
            controller.close()
            logger.info(f"User {user.id} closed evaluation {controller.state.id}")
        return controller

    def submit(self, user, evaluation_id, actor=None, confirmed=False, resubmit=False):
        controller = self.get(user, evaluation_id)
        workflow = SubmissionWorkflow(controller, actor=actor, user=user)
        if resubmit:
            workflow.resubmit(confirmed=confirmed)
        else:
            workflow.submit(confirmed=confirmed)

        with self._lock:
            if self._sessions.get(user.id) is controller:
                del self._sessions[user.id]
        controller.close()
        return controller

    def clear(self):
        with self._lock:
            controllers = list(self._sessions.values())
            self._sessions.clear()
        for controller in controllers:
            controller.close()


registry = SessionRegistry()
