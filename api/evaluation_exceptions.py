# api/evaluation_exceptions.py


class EvaluationError(Exception):
    """Base class for evaluation workflow errors"""

    def __init__(self, message='', **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        data = {'error': self.message}
        data.update(self.details)
        return data


class InvalidGradeError(EvaluationError):
    pass


class EvaluationValidationError(EvaluationError):
    """Submission blocked; ``items`` lists the offending (id, name) pairs"""

    def __init__(self, message, items=None):
        self.items = list(items or [])
        super().__init__(message, items=[{'id': item_id, 'name': name} for item_id, name in self.items])


class ConfirmationRequired(EvaluationError):
    """Submission may proceed but the user has to confirm incomplete items first"""

    def __init__(self, check):
        self.check = check
        super().__init__(
            'Confirmation required before submitting',
            comment_only=[{'id': s.item.id, 'name': s.item.name} for s in check.comment_only],
            hold=[{'id': s.item.id, 'name': s.item.name} for s in check.hold],
        )


class PersistenceError(EvaluationError):
    """Store write failed; carries the affected item when there is one"""

    def __init__(self, message, item_id=None, item_name=None):
        self.item_id = item_id
        self.item_name = item_name
        super().__init__(message, item_id=item_id, item_name=item_name)


class NotFoundError(EvaluationError):
    pass


class StageTransitionError(EvaluationError):
    pass
