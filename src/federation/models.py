"""
Domain constants for the federation console.

Rows are plain dicts as loaded from the YAML store; these classes only name
the enumerated values each table uses.
"""


class Role:
    ATHLETE = 'athlete'
    REGIONAL_REP = 'regional_rep'
    FSP_ADMIN = 'fsp_admin'

    ALL = (ATHLETE, REGIONAL_REP, FSP_ADMIN)

    LABELS = {
        ATHLETE: 'Athlete',
        REGIONAL_REP: 'Regional representative',
        FSP_ADMIN: 'FSP administrator',
    }


class CompetitionType:
    OPEN = 'open'
    REGIONAL = 'regional'
    FEDERAL = 'federal'

    ALL = (OPEN, REGIONAL, FEDERAL)

    LABELS = {
        OPEN: 'Open',
        REGIONAL: 'Regional',
        FEDERAL: 'Federal',
    }


class ParticipationType:
    TEAM = 'team'
    INDIVIDUAL = 'individual'
    MIXED = 'mixed'

    ALL = (TEAM, INDIVIDUAL, MIXED)

    LABELS = {
        TEAM: 'Team',
        INDIVIDUAL: 'Individual',
        MIXED: 'Team and individual',
    }

    @classmethod
    def allows_team(cls, value):
        return value in (cls.TEAM, cls.MIXED)

    @classmethod
    def allows_individual(cls, value):
        return value in (cls.INDIVIDUAL, cls.MIXED)


class CompetitionStatus:
    """Stored lifecycle of a competition. The timeline status is derived."""
    DRAFT = 'draft'
    PUBLISHED = 'published'
    RESULTS_PUBLISHED = 'results_published'

    ALL = (DRAFT, PUBLISHED, RESULTS_PUBLISHED)


class ApplicationType:
    TEAM = 'team'
    INDIVIDUAL = 'individual'

    LABELS = {
        TEAM: 'Team application',
        INDIVIDUAL: 'Individual application',
    }


class ApplicationStatus:
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'
    FORMING = 'forming'

    ALL = (PENDING, APPROVED, REJECTED, CANCELLED, FORMING)
    ACTIVE = frozenset({PENDING, APPROVED, FORMING})

    LABELS = {
        PENDING: 'Under review',
        APPROVED: 'Approved',
        REJECTED: 'Rejected',
        CANCELLED: 'Cancelled',
        FORMING: 'Team forming',
    }


class JoinRequestStatus:
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'


def display_name(user):
    """Full name, falling back to e-mail, for a user row (or None)."""
    if not user:
        return 'Unknown'
    return user.get('full_name') or user.get('email') or 'Unknown'
