# api/evaluation_grades.py - Five-letter grading scale, HOLD placeholder and score derivation

from django.conf import settings

from .evaluation_exceptions import InvalidGradeError

GRADE_KEYS = ('A', 'B', 'C', 'D', 'E')
HOLD = 'HOLD'

UNTOUCHED = 'untouched'
COMMENT_ONLY = 'comment_only'
GRADED = 'graded'
ON_HOLD = 'hold'

_FALLBACK_GRADE_SCORES = {'A': 5, 'B': 4, 'C': 3, 'D': 2, 'E': 1}


def default_grade_scores():
    configured = getattr(settings, 'EVALUATION_SYSTEM_SETTINGS', {}).get('DEFAULT_GRADE_SCORES')
    return dict(configured or _FALLBACK_GRADE_SCORES)


def is_hold(grade):
    return grade == HOLD


def is_graded(grade):
    """True for a real letter grade; empty and HOLD are not graded"""
    return bool(grade) and grade != HOLD


def resolve_score(grade, grade_scores):
    """
    Score for ``grade`` under an item's ``grade_scores``.
    Empty and HOLD score 0; a letter missing from the mapping also scores 0.
    """
    if not grade or grade == HOLD:
        return 0
    if grade not in GRADE_KEYS:
        raise InvalidGradeError(f"Unknown grade '{grade}'")
    value = (grade_scores or {}).get(grade, 0)
    return float(value or 0)


def validate_grade(grade, enabled_grades, allow_hold=True):
    """Accept '', HOLD or one of the enabled letters"""
    if grade == '':
        return grade
    if grade == HOLD:
        if not allow_hold:
            raise InvalidGradeError('HOLD is not allowed here')
        return grade
    if grade not in GRADE_KEYS:
        raise InvalidGradeError(f"Unknown grade '{grade}'")
    if grade not in (enabled_grades or GRADE_KEYS):
        raise InvalidGradeError(f"Grade '{grade}' is not enabled for this item")
    return grade


def normalize_enabled_grades(grades):
    """Deduplicate and order by the A..E scale"""
    wanted = set(grades or [])
    return [g for g in GRADE_KEYS if g in wanted]


def toggle_enabled_grade(enabled_grades, grade):
    """
    Flip ``grade`` in the enabled set.
    Turning off the last remaining grade is a no-op so an item always keeps one selectable grade.
    """
    if grade not in GRADE_KEYS:
        raise InvalidGradeError(f"Unknown grade '{grade}'")
    current = normalize_enabled_grades(enabled_grades)
    if grade in current:
        if len(current) == 1:
            return current
        return [g for g in current if g != grade]
    return normalize_enabled_grades(current + [grade])


def has_text(value):
    return bool(value and value.strip())


def classify(grade, comment):
    if is_hold(grade):
        return ON_HOLD
    if grade:
        return GRADED
    if has_text(comment):
        return COMMENT_ONLY
    return UNTOUCHED
