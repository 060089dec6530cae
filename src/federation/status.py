"""
Competition timeline status.

The status shown for a competition is a pure function of its four
timestamps and the current time. It is computed on every read and never
persisted; the stored ``status`` field only tracks the manual lifecycle
(draft / published / results_published).
"""
from datetime import date, datetime, timezone

from federation.models import CompetitionStatus

UPCOMING = 'upcoming'
REGISTRATION_OPEN = 'registration_open'
REGISTRATION_CLOSED = 'registration_closed'
IN_PROGRESS = 'in_progress'
COMPLETED = 'completed'
ERROR = 'error'

TIMELINE_STATUSES = (UPCOMING, REGISTRATION_OPEN, REGISTRATION_CLOSED, IN_PROGRESS, COMPLETED)

STATUS_LABELS = {
    UPCOMING: 'Opening soon',
    REGISTRATION_OPEN: 'Registration open',
    REGISTRATION_CLOSED: 'Registration closed',
    IN_PROGRESS: 'In progress',
    COMPLETED: 'Completed',
    ERROR: 'Invalid dates',
    CompetitionStatus.DRAFT: 'Draft',
    CompetitionStatus.PUBLISHED: 'Published',
    CompetitionStatus.RESULTS_PUBLISHED: 'Results published',
}

DATE_FIELDS = ('registration_start_date', 'registration_end_date', 'start_date', 'end_date')


def parse_timestamp(value):
    """Parse an ISO-8601 string, date or datetime into an aware datetime.

    Naive values are taken as UTC. Returns None for anything unparseable.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def utcnow():
    return datetime.now(timezone.utc)


def derive_status(competition, now=None):
    """Return the timeline status of a competition at ``now``."""
    reg_start, reg_end, comp_start, comp_end = (
        parse_timestamp(competition.get(field)) for field in DATE_FIELDS
    )
    if None in (reg_start, reg_end, comp_start, comp_end):
        return ERROR

    if now is None:
        now = utcnow()
    else:
        parsed = parse_timestamp(now)
        if parsed is None:
            raise ValueError(f'Unparseable current time: {now!r}')
        now = parsed

    if now < reg_start:
        return UPCOMING
    if reg_start <= now <= reg_end:
        return REGISTRATION_OPEN
    if reg_end < now < comp_start:
        return REGISTRATION_CLOSED
    if comp_start <= now <= comp_end:
        return IN_PROGRESS
    return COMPLETED


def display_status(competition, now=None):
    """Status shown on screens: published results win over the timeline."""
    if competition.get('status') == CompetitionStatus.RESULTS_PUBLISHED:
        return CompetitionStatus.RESULTS_PUBLISHED
    return derive_status(competition, now)


def is_finished(competition, now=None):
    return display_status(competition, now) in (COMPLETED, CompetitionStatus.RESULTS_PUBLISHED)


def validate_dates(registration_start, registration_end, start, end):
    """Check the ordering of a competition's date window.

    Returns an error message, or None when the window is valid.
    """
    reg_start = parse_timestamp(registration_start)
    reg_end = parse_timestamp(registration_end)
    comp_start = parse_timestamp(start)
    comp_end = parse_timestamp(end)
    if None in (reg_start, reg_end, comp_start, comp_end):
        return 'Invalid dates entered.'
    if reg_end <= reg_start:
        return 'Registration must end after it starts.'
    if comp_start <= reg_start:
        return 'The competition must start after registration opens.'
    if comp_end <= comp_start:
        return 'The competition must end after it starts.'
    return None
