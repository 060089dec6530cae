"""
Tests for standings entry and participation history.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from federation import results
from federation.errors import PermissionDenied, ValidationError
from federation.models import Role


@pytest.fixture
def finished(store, make_user, make_competition, make_team):
    """A completed competition with one approved athlete, one approved team and one rejected athlete."""
    organizer = make_user(Role.REGIONAL_REP)
    athlete = make_user(full_name='Anna')
    captain = make_user(full_name='Cap')
    member = make_user()
    team = make_team(captain, name='Bots', members=[member])
    competition = make_competition(organizer, phase='completed')
    rows = store.insert_many('applications', [
        {'competition_id': competition['id'], 'application_type': 'individual',
         'applicant_user_id': athlete['id'], 'applicant_team_id': None, 'status': 'approved'},
        {'competition_id': competition['id'], 'application_type': 'team',
         'applicant_user_id': None, 'applicant_team_id': team['id'], 'status': 'approved'},
        {'competition_id': competition['id'], 'application_type': 'individual',
         'applicant_user_id': make_user()['id'], 'applicant_team_id': None, 'status': 'rejected'},
    ])
    return {
        'organizer': organizer, 'athlete': athlete, 'captain': captain, 'member': member,
        'team': team, 'competition': competition, 'applications': rows,
    }


def entry_rows(finished, team_place='1', athlete_place='2'):
    athlete_app, team_app, _ = finished['applications']
    return [
        {'application_id': team_app['id'], 'place': team_place, 'score': '98.5', 'details': 'fast'},
        {'application_id': athlete_app['id'], 'place': athlete_place, 'score': '', 'details': ''},
    ]


class TestParticipants:
    """Who appears on the results form."""

    def test_only_approved(self, store, finished):
        participants = results.participants_for_results(
            store, finished['organizer'], finished['competition']['id'])
        assert {p['name'] for p in participants} == {'Anna', 'Bots'}
        team_row = next(p for p in participants if p['team_id'])
        assert team_row['captain_name'] == 'Cap'

    def test_organizer_only(self, store, finished):
        with pytest.raises(PermissionDenied):
            results.participants_for_results(store, finished['athlete'], finished['competition']['id'])

    def test_competition_must_be_completed(self, store, make_user, make_competition):
        organizer = make_user(Role.REGIONAL_REP)
        competition = make_competition(organizer, phase='in_progress')
        with pytest.raises(ValidationError):
            results.participants_for_results(store, organizer, competition['id'])


class TestRecordResults:
    """Saving standings."""

    def test_record(self, store, finished):
        created = results.record_results(store, finished['organizer'], finished['competition']['id'],
                                         entry_rows(finished))
        assert len(created) == 2
        team_result = next(r for r in created if r['team_id'])
        assert team_result['place'] == 1
        assert team_result['score'] == 98.5
        assert team_result['result_data'] == {'details': 'fast'}
        athlete_result = next(r for r in created if r['user_id'])
        assert athlete_result['score'] is None
        assert athlete_result['result_data'] is None
        competition = store.get('competitions', finished['competition']['id'])
        assert competition['status'] == 'results_published'

    def test_replaces_previous(self, store, finished):
        competition_id = finished['competition']['id']
        results.record_results(store, finished['organizer'], competition_id, entry_rows(finished))
        results.record_results(store, finished['organizer'], competition_id,
                               entry_rows(finished, team_place='2', athlete_place='1'))
        rows = results.standings(store, competition_id)
        assert len(rows) == 2
        assert [r['name'] for r in rows] == ['Anna', 'Bots']

    def test_bad_place(self, store, finished):
        with pytest.raises(ValidationError):
            results.record_results(store, finished['organizer'], finished['competition']['id'],
                                   entry_rows(finished, team_place='first'))

    def test_rejected_application_not_accepted(self, store, finished):
        rejected = finished['applications'][2]
        with pytest.raises(ValidationError):
            results.record_results(store, finished['organizer'], finished['competition']['id'],
                                   [{'application_id': rejected['id'], 'place': '1'}])

    def test_form_prefilled_after_recording(self, store, finished):
        competition_id = finished['competition']['id']
        results.record_results(store, finished['organizer'], competition_id, entry_rows(finished))
        participants = results.participants_for_results(store, finished['organizer'], competition_id)
        team_row = next(p for p in participants if p['team_id'])
        assert team_row['place'] == 1
        assert team_row['details'] == 'fast'


class TestHistory:
    """Participation history on the profile."""

    def test_member_sees_team_result(self, store, finished):
        results.record_results(store, finished['organizer'], finished['competition']['id'],
                               entry_rows(finished))
        history = results.history_for_user(store, finished['member']['id'])
        assert len(history) == 1
        assert history[0]['team_name'] == 'Bots'
        assert history[0]['details'] == 'fast'

    def test_individual_result(self, store, finished):
        results.record_results(store, finished['organizer'], finished['competition']['id'],
                               entry_rows(finished))
        history = results.history_for_user(store, finished['athlete']['id'])
        assert [h['place'] for h in history] == [2]
        assert history[0]['team_name'] is None

    def test_unfinished_competition_hidden(self, store, make_user, make_competition):
        athlete = make_user()
        competition = make_competition(make_user(Role.REGIONAL_REP), phase='in_progress')
        store.insert('competition_results', {'competition_id': competition['id'],
                                             'user_id': athlete['id'], 'team_id': None,
                                             'place': 1, 'recorded_at': '2026-01-01'})
        assert results.history_for_user(store, athlete['id']) == []

    def test_team_results(self, store, finished):
        results.record_results(store, finished['organizer'], finished['competition']['id'],
                               entry_rows(finished))
        rows = results.team_results(store, finished['team']['id'])
        assert len(rows) == 1
        assert rows[0]['competition_name'] == finished['competition']['name']
        assert (rows[0]['place'], rows[0]['score'], rows[0]['details']) == (1, 98.5, 'fast')

    def test_team_without_results(self, store, make_user, make_team):
        assert results.team_results(store, make_team(make_user())['id']) == []

    def test_captain_and_member_not_duplicated(self, store, finished):
        """A user who is captain and also listed as member sees a result once."""
        store.insert('team_members', {'team_id': finished['team']['id'],
                                      'user_id': finished['captain']['id']})
        results.record_results(store, finished['organizer'], finished['competition']['id'],
                               entry_rows(finished))
        assert len(results.history_for_user(store, finished['captain']['id'])) == 1
