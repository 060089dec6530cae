"""
Competition applications: submission, eligibility and the status machine.

Organizer review moves applications between pending, approved and
rejected. Applicants may cancel their own active applications, and a team
captain finalizes a "forming" application once the team is complete.
"""
import logging

from federation.competitions import get_competition
from federation.errors import (
    Conflict,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from federation.models import (
    ApplicationStatus,
    ApplicationType,
    CompetitionStatus,
    CompetitionType,
    ParticipationType,
    Role,
    display_name,
)
from federation.roles import (
    can_apply_to_federal_as_regional_rep,
    can_apply_to_regional_competition,
    is_captain,
    is_organizer,
)
from federation.status import COMPLETED, REGISTRATION_OPEN, derive_status
from federation.store import now_iso

logger = logging.getLogger(__name__)

APPROVE = 'approve'
REJECT = 'reject'
CANCEL = 'cancel'
FINALIZE = 'finalize'

REVIEW_TRANSITIONS = {
    (ApplicationStatus.PENDING, APPROVE): ApplicationStatus.APPROVED,
    (ApplicationStatus.PENDING, REJECT): ApplicationStatus.REJECTED,
    (ApplicationStatus.APPROVED, REJECT): ApplicationStatus.REJECTED,
    (ApplicationStatus.REJECTED, APPROVE): ApplicationStatus.APPROVED,
}

APPLICANT_TRANSITIONS = {
    (ApplicationStatus.PENDING, CANCEL): ApplicationStatus.CANCELLED,
    (ApplicationStatus.FORMING, CANCEL): ApplicationStatus.CANCELLED,
    (ApplicationStatus.APPROVED, CANCEL): ApplicationStatus.CANCELLED,
    (ApplicationStatus.FORMING, FINALIZE): ApplicationStatus.PENDING,
}

ACTION_LABELS = {
    (ApplicationStatus.PENDING, APPROVE): 'Approve',
    (ApplicationStatus.PENDING, REJECT): 'Reject',
    (ApplicationStatus.APPROVED, REJECT): 'Cancel participation',
    (ApplicationStatus.REJECTED, APPROVE): 'Restore',
}


def next_status(status, action, transitions=REVIEW_TRANSITIONS):
    """Target status for an action, raising InvalidTransition when not allowed."""
    try:
        return transitions[(status, action)]
    except KeyError:
        raise InvalidTransition(f'Cannot {action} an application that is {status}.') from None


def review_actions(status):
    """(action, label) pairs an organizer can apply to an application in this status."""
    return [(action, ACTION_LABELS[(s, action)])
            for (s, action) in REVIEW_TRANSITIONS if s == status]


def get_application(store, application_id):
    application = store.get('applications', application_id)
    if application is None:
        raise NotFound('Application not found.')
    return application


def _set_status(store, application, status):
    updated = store.update('applications', application['id'], status=status)
    logger.info(f'Application {application["id"]} {application["status"]} -> {status}')
    return updated


def review_application(store, user, application_id, action):
    """Organizer approves or rejects an application."""
    with store.transaction():
        application = get_application(store, application_id)
        competition = get_competition(store, application['competition_id'])
        if not is_organizer(user, competition):
            raise PermissionDenied('You are not allowed to manage applications for this competition.')
        status = next_status(application['status'], action)
        return _set_status(store, application, status)


def _is_applicant(store, user, application):
    if application.get('submitted_by_user_id') == user['id']:
        return True
    if application.get('applicant_user_id') == user['id']:
        return True
    team = store.get('teams', application.get('applicant_team_id'))
    return is_captain(user, team)


def cancel_application(store, user, application_id):
    """Applicant withdraws an active application."""
    with store.transaction():
        application = get_application(store, application_id)
        if not _is_applicant(store, user, application):
            raise PermissionDenied('Only the applicant can cancel this application.')
        status = next_status(application['status'], CANCEL, APPLICANT_TRANSITIONS)
        return _set_status(store, application, status)


def finalize_application(store, user, application_id):
    """Captain submits a forming team application for review."""
    with store.transaction():
        application = get_application(store, application_id)
        team = store.get('teams', application.get('applicant_team_id'))
        if not is_captain(user, team):
            raise PermissionDenied('Only the team captain can finalize this application.')
        status = next_status(application['status'], FINALIZE, APPLICANT_TRANSITIONS)
        store.update('applications', application['id'], additional_data=None)
        return _set_status(store, application, status)


# -- submission ---------------------------------------------------------------

def _require_registration_open(competition, now=None):
    if competition.get('status') == CompetitionStatus.DRAFT:
        raise ValidationError('This competition is not published yet.')
    if derive_status(competition, now) != REGISTRATION_OPEN:
        raise ValidationError('Registration for this competition is not open.')


def _check_capacity(store, competition, adding):
    limit = competition.get('max_participants_or_teams')
    if not limit:
        return
    active = [a for a in store.find('applications', competition_id=competition['id'])
              if a.get('status') in ApplicationStatus.ACTIVE]
    if len(active) + adding > limit:
        raise Conflict(f'The competition is full ({limit} places).')


def submit_individual(store, user, competition_id, notes='', now=None):
    with store.transaction():
        competition = get_competition(store, competition_id)
        _require_registration_open(competition, now)
        if not ParticipationType.allows_individual(competition.get('participation_type')):
            raise ValidationError('This competition only accepts team applications.')
        if competition.get('type') == CompetitionType.REGIONAL and not can_apply_to_regional_competition(
                user.get('region_id'), competition.get('region_id'), user.get('role')):
            raise PermissionDenied('This regional competition is only open to its region.')
        if store.find('applications', competition_id=competition_id, applicant_user_id=user['id']):
            raise Conflict('You have already applied to this competition.')
        _check_capacity(store, competition, 1)
        notes = (notes or '').strip()
        application = store.insert('applications', {
            'competition_id': competition_id,
            'application_type': ApplicationType.INDIVIDUAL,
            'applicant_user_id': user['id'],
            'applicant_team_id': None,
            'submitted_by_user_id': user['id'],
            'status': ApplicationStatus.PENDING,
            'submitted_at': now_iso(),
            'additional_data': {'notes': notes} if notes else None,
        })
    logger.info(f'Individual application {application["id"]} by user {user["id"]} '
                f'for competition {competition_id}')
    return application


def team_region_ids(store, team):
    """Regions of everyone on a team; the captain alone for a team without members."""
    member_ids = [m['user_id'] for m in store.find('team_members', team_id=team['id'])]
    if not member_ids:
        member_ids = [team['captain_user_id']]
    return [u.get('region_id') for u in store.find_in('users', 'id', member_ids)]


def submit_team(store, user, competition_id, team_id, forming=False,
                required_members=None, roles_needed='', now=None):
    with store.transaction():
        competition = get_competition(store, competition_id)
        _require_registration_open(competition, now)
        if not ParticipationType.allows_team(competition.get('participation_type')):
            raise ValidationError('This competition only accepts individual applications.')
        team = store.get('teams', team_id)
        if team is None:
            raise ValidationError('Select a team.')
        if not is_captain(user, team):
            raise PermissionDenied('Only the team captain can apply for the team.')
        if competition.get('type') == CompetitionType.REGIONAL:
            regions = team_region_ids(store, team)
            if not regions or any(r != competition.get('region_id') for r in regions):
                raise PermissionDenied(
                    'This team cannot take part: every member must be from the competition region.')
        if store.find('applications', competition_id=competition_id, applicant_team_id=team_id):
            raise Conflict('This team has already applied.')

        additional_data = None
        if forming:
            if required_members is None or required_members < 1:
                raise ValidationError('Enter how many members the team still needs.')
            additional_data = {
                'required_members': required_members,
                'roles_needed': (roles_needed or '').strip(),
            }
        _check_capacity(store, competition, 1)
        application = store.insert('applications', {
            'competition_id': competition_id,
            'application_type': ApplicationType.TEAM,
            'applicant_user_id': None,
            'applicant_team_id': team_id,
            'submitted_by_user_id': user['id'],
            'status': ApplicationStatus.FORMING if forming else ApplicationStatus.PENDING,
            'submitted_at': now_iso(),
            'additional_data': additional_data,
        })
    logger.info(f'Team application {application["id"]} for team {team_id} '
                f'in competition {competition_id} ({application["status"]})')
    return application


def regional_candidates(store, user, competition_id) -> list:
    """Teams a representative may enter: captained from their region, not yet applied."""
    if not user.get('region_id'):
        raise ValidationError('Your profile has no region. Please complete your profile.')
    captains = {u['id']: u for u in store.find('users', region_id=user['region_id'])}
    applied = {a.get('applicant_team_id')
               for a in store.find('applications', competition_id=competition_id)}
    candidates = []
    for team in store.find_in('teams', 'captain_user_id', captains):
        if team['id'] in applied:
            continue
        captain = captains[team['captain_user_id']]
        candidates.append({**team, 'captain_name': display_name(captain)})
    return candidates


def submit_regional(store, user, competition_id, team_ids, now=None) -> list:
    """Regional representative enters several of the region's teams at once."""
    with store.transaction():
        competition = get_competition(store, competition_id)
        if competition.get('type') != CompetitionType.FEDERAL:
            raise ValidationError('Regional entries are only accepted for federal competitions.')
        if not can_apply_to_federal_as_regional_rep(user.get('role')):
            raise PermissionDenied('Only regional representatives can submit regional entries.')
        _require_registration_open(competition, now)
        team_ids = list(dict.fromkeys(team_ids or []))
        if not team_ids:
            raise ValidationError('Select at least one team.')
        allowed = {t['id'] for t in regional_candidates(store, user, competition_id)}
        rejected = [t for t in team_ids if t not in allowed]
        if rejected:
            raise ValidationError('Some selected teams cannot be entered by your region.')
        _check_capacity(store, competition, len(team_ids))
        submitted_at = now_iso()
        created = store.insert_many('applications', [{
            'competition_id': competition_id,
            'application_type': ApplicationType.TEAM,
            'applicant_user_id': None,
            'applicant_team_id': team_id,
            'submitted_by_user_id': user['id'],
            'status': ApplicationStatus.PENDING,
            'submitted_at': submitted_at,
            'additional_data': None,
        } for team_id in team_ids])
    logger.info(f'Regional representative {user["id"]} entered {len(created)} teams '
                f'in competition {competition_id}')
    return created


# -- queries ------------------------------------------------------------------

def own_application(store, user, competition_id):
    """The user's individual application or one of their captained teams' applications."""
    team_ids = {t['id'] for t in store.find('teams', captain_user_id=user['id'])}
    for application in store.find('applications', competition_id=competition_id):
        if application.get('applicant_user_id') == user['id']:
            return application
        if application.get('applicant_team_id') in team_ids:
            return application
    return None


def eligibility(store, user, competition, now=None) -> dict:
    """What the competition screen offers this user."""
    status = derive_status(competition, now)
    registration_open = (status == REGISTRATION_OPEN
                         and competition.get('status') != CompetitionStatus.DRAFT)
    captain_teams = store.find('teams', captain_user_id=user['id'])
    application = own_application(store, user, competition['id'])
    participation = competition.get('participation_type')

    region_ok = True
    if competition.get('type') == CompetitionType.REGIONAL:
        region_ok = can_apply_to_regional_competition(
            user.get('region_id'), competition.get('region_id'), user.get('role'))

    athlete_ok = registration_open and application is None and region_ok
    organizer = is_organizer(user, competition)
    return {
        'status': status,
        'registration_open': registration_open,
        'application': application,
        'captain_teams': captain_teams,
        'can_apply_individual': athlete_ok and ParticipationType.allows_individual(participation),
        'can_apply_team': (athlete_ok and ParticipationType.allows_team(participation)
                           and bool(captain_teams)),
        'needs_team': (registration_open and application is None
                       and ParticipationType.allows_team(participation) and not captain_teams),
        'region_blocked': registration_open and not region_ok,
        'can_apply_regional': (registration_open
                               and competition.get('type') == CompetitionType.FEDERAL
                               and can_apply_to_federal_as_regional_rep(user.get('role'))),
        'is_organizer': organizer,
        'can_enter_results': organizer and status == COMPLETED,
    }


def _enrich(store, applications) -> list:
    user_ids = set()
    team_ids = set()
    for a in applications:
        user_ids.update(x for x in (a.get('applicant_user_id'), a.get('submitted_by_user_id')) if x)
        if a.get('applicant_team_id'):
            team_ids.add(a['applicant_team_id'])
    teams = {t['id']: t for t in store.find_in('teams', 'id', team_ids)}
    user_ids.update(t['captain_user_id'] for t in teams.values())
    users = {u['id']: u for u in store.find_in('users', 'id', user_ids)}
    regions = store.name_lookup('regions')
    competitions = store.name_lookup('competitions')

    enriched = []
    for a in applications:
        applicant = users.get(a.get('applicant_user_id'))
        submitter = users.get(a.get('submitted_by_user_id'))
        team = teams.get(a.get('applicant_team_id'))
        captain = users.get(team['captain_user_id']) if team else None
        person = captain if team else applicant
        item = {
            **a,
            'competition_name': competitions.get(a.get('competition_id'), ''),
            'type_label': ApplicationType.LABELS.get(a.get('application_type'), ''),
            'status_label': ApplicationStatus.LABELS.get(a.get('status'), a.get('status')),
            'applicant_name': team['name'] if team else display_name(applicant),
            'applicant_email': applicant.get('email') if applicant else None,
            'captain_name': display_name(captain) if team else None,
            'region_name': regions.get(person.get('region_id')) if person else None,
            'submitted_by_region': None,
            'actions': review_actions(a.get('status')),
        }
        if (submitter and submitter.get('role') == Role.REGIONAL_REP
                and submitter['id'] != (captain or applicant or {}).get('id')):
            item['submitted_by_region'] = regions.get(submitter.get('region_id'))
        enriched.append(item)
    return enriched


def list_for_competition(store, user, competition_id, status=None) -> list:
    """Organizer view of a competition's applications, newest first."""
    competition = get_competition(store, competition_id)
    if not is_organizer(user, competition):
        raise PermissionDenied('You are not allowed to manage applications for this competition.')
    applications = store.find('applications', competition_id=competition_id)
    if status:
        applications = [a for a in applications if a.get('status') == status]
    applications.sort(key=lambda a: a.get('submitted_at') or '', reverse=True)
    return _enrich(store, applications)


def list_for_user(store, user) -> list:
    """Applications the user filed, is named in, or that involve teams they captain or belong to."""
    team_ids = {t['id'] for t in store.find('teams', captain_user_id=user['id'])}
    team_ids.update(m['team_id'] for m in store.find('team_members', user_id=user['id']))
    applications = [a for a in store.load('applications')
                    if a.get('applicant_user_id') == user['id']
                    or a.get('submitted_by_user_id') == user['id']
                    or a.get('applicant_team_id') in team_ids]
    applications.sort(key=lambda a: a.get('submitted_at') or '', reverse=True)
    return _enrich(store, applications)
