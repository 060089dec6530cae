"""
Shared pytest fixtures for the FSP console tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os
from datetime import datetime, timedelta, timezone

from werkzeug.security import generate_password_hash

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from federation.models import CompetitionStatus, Role
from federation.store import Store

PASSWORD = 'secret123'

# Day offsets (registration start, registration end, start, end) relative to now
PHASES = {
    'upcoming': (1, 2, 3, 4),
    'registration_open': (-1, 1, 2, 3),
    'registration_closed': (-3, -1, 1, 2),
    'in_progress': (-4, -3, -1, 1),
    'completed': (-5, -4, -3, -1),
}


def phase_dates(phase: str) -> dict:
    """Competition date fields placing 'now' inside the given phase."""
    now = datetime.now(timezone.utc)
    offsets = PHASES[phase]
    fields = ('registration_start_date', 'registration_end_date', 'start_date', 'end_date')
    return {f: (now + timedelta(days=d)).isoformat() for f, d in zip(fields, offsets)}


@pytest.fixture
def store(tmp_path):
    """Store over a temporary directory with default regions and disciplines."""
    s = Store(str(tmp_path / 'data'))
    s.seed_reference_data()
    return s


@pytest.fixture
def make_user(store):
    """Factory inserting a user row. Region defaults to region 1."""
    counter = {'n': 0}

    def _make(role=Role.ATHLETE, region_id=1, email=None, full_name=None):
        counter['n'] += 1
        n = counter['n']
        return store.insert('users', {
            'email': email or f'user{n}@example.com',
            'full_name': full_name or f'User {n}',
            'password_hash': generate_password_hash(PASSWORD),
            'role': role,
            'region_id': region_id,
            'bio': '',
            'created_at': '2026-01-01T00:00:00+00:00',
        })
    return _make


@pytest.fixture
def make_competition(store):
    """Factory inserting a competition row in a given timeline phase."""
    def _make(organizer, phase='registration_open', type='open', region_id=None,
              participation_type='mixed', status=CompetitionStatus.PUBLISHED,
              max_participants_or_teams=None, name='Cup'):
        row = {
            'name': name,
            'description': '',
            'discipline_id': 1,
            'type': type,
            'region_id': region_id,
            'max_participants_or_teams': max_participants_or_teams,
            'participation_type': participation_type,
            'status': status,
            'organizer_user_id': organizer['id'],
            'created_at': datetime.now(timezone.utc).isoformat(),
            'updated_at': None,
        }
        row.update(phase_dates(phase))
        return store.insert('competitions', row)
    return _make


@pytest.fixture
def make_team(store):
    """Factory inserting a team with optional members."""
    def _make(captain, name='Team A', members=()):
        team = store.insert('teams', {'name': name, 'captain_user_id': captain['id'],
                                      'created_at': '2026-01-01T00:00:00+00:00'})
        for member in members:
            store.insert('team_members', {'team_id': team['id'], 'user_id': member['id']})
        return team
    return _make


@pytest.fixture
def data_dir(store, monkeypatch):
    """Point the web app at the temporary store directory."""
    import app as app_module
    monkeypatch.setattr(app_module, 'DATA_DIR', store.data_dir)
    return store.data_dir


@pytest.fixture
def client(data_dir):
    """Create a test client (unauthenticated by default)."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as c:
        yield c


@pytest.fixture
def login(client):
    """Log a user into the test client by writing the session directly."""
    def _login(user):
        with client.session_transaction() as sess:
            sess['user_id'] = user['id']
        return client
    return _login
