"""
Tests for the HTTP backup/restore API endpoints.

Covers the API key decorator, the export route and the import route.
"""
import pytest
import sys
import os
import io
import zipfile
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from federation.models import Role

API_KEY = 'test-backup-key'


@pytest.fixture
def backup_client(client, make_user, make_competition, tmp_path, monkeypatch):
    """Client with a configured backup key, sample data and backups under tmp_path."""
    import app as app_module
    monkeypatch.setenv('BACKUP_API_KEY', API_KEY)
    monkeypatch.setattr(app_module, 'BASE_DIR', str(tmp_path))
    organizer = make_user(Role.REGIONAL_REP, email='rep@example.com')
    make_competition(organizer, name='Spring Cup')
    return client


def auth(key=API_KEY):
    return {'Authorization': f'Bearer {key}'}


def make_zip(files: dict) -> io.BytesIO:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    buffer.seek(0)
    return buffer


def upload(client, buffer, headers=None):
    return client.post('/api/admin/import',
                       data={'file': (buffer, 'backup.zip')},
                       content_type='multipart/form-data',
                       headers=auth() if headers is None else headers)


def backup_users(*emails):
    return yaml.dump({'users': [
        {'id': i, 'email': email, 'full_name': email.split('@')[0], 'role': 'athlete',
         'region_id': 1, 'password_hash': 'x'}
        for i, email in enumerate(emails, start=1)
    ]}, default_flow_style=False)


class TestBackupKey:
    """Tests for the require_backup_key decorator."""

    def test_not_configured(self, client, monkeypatch):
        monkeypatch.delenv('BACKUP_API_KEY', raising=False)
        response = client.get('/api/admin/export', headers=auth())
        assert response.status_code == 500

    def test_missing_header(self, backup_client):
        response = backup_client.get('/api/admin/export')
        assert response.status_code == 401
        assert 'Authorization' in response.get_json()['error']

    def test_wrong_key(self, backup_client):
        response = backup_client.get('/api/admin/export', headers=auth('nope'))
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Invalid API key'

    def test_session_not_required(self, backup_client):
        """Backup routes authenticate by key, not by login session."""
        response = backup_client.get('/api/admin/export', headers=auth())
        assert response.status_code == 200


class TestExport:
    """Tests for GET /api/admin/export."""

    def test_export_contains_tables(self, backup_client):
        response = backup_client.get('/api/admin/export', headers=auth())
        assert response.status_code == 200
        assert response.mimetype == 'application/zip'
        assert 'fsp-backup-' in response.headers['Content-Disposition']

        with zipfile.ZipFile(io.BytesIO(response.data)) as zf:
            names = set(zf.namelist())
            assert {'users.yaml', 'competitions.yaml', 'regions.yaml'} <= names
            assert '.lock' not in names
            competitions = yaml.safe_load(zf.read('competitions.yaml'))
        assert competitions['competitions'][0]['name'] == 'Spring Cup'

    def test_export_only_table_files(self, backup_client, store):
        with open(os.path.join(store.data_dir, '.secret_key'), 'wb') as f:
            f.write(b'not for backups')
        response = backup_client.get('/api/admin/export', headers=auth())
        with zipfile.ZipFile(io.BytesIO(response.data)) as zf:
            names = set(zf.namelist())
        assert names == set(store.table_files())
        assert '.secret_key' not in names

    def test_missing_data_dir(self, backup_client, tmp_path, monkeypatch):
        import app as app_module
        monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path / 'missing'))
        response = backup_client.get('/api/admin/export', headers=auth())
        assert response.status_code == 404


class TestImport:
    """Tests for POST /api/admin/import."""

    def test_restore_replaces_tables(self, backup_client, store):
        response = upload(backup_client, make_zip({'users.yaml': backup_users('restored@example.com')}))
        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        assert [u['email'] for u in store.load('users')] == ['restored@example.com']

    def test_tables_missing_from_backup_are_emptied(self, backup_client, store):
        """Restoring a users-only backup leaves no competitions owned by the restored ids."""
        response = upload(backup_client, make_zip({'users.yaml': backup_users('restored@example.com')}))
        assert response.status_code == 200
        assert store.load('competitions') == []
        assert not os.path.exists(os.path.join(store.data_dir, 'competitions.yaml'))

    def test_non_table_entries_ignored(self, backup_client, store):
        buffer = make_zip({'users.yaml': backup_users('restored@example.com'),
                           '.secret_key': 'stolen', 'notes.txt': 'hello'})
        response = upload(backup_client, buffer)
        assert response.status_code == 200
        assert not os.path.exists(os.path.join(store.data_dir, '.secret_key'))
        assert not os.path.exists(os.path.join(store.data_dir, 'notes.txt'))

    def test_pre_restore_backup_kept(self, backup_client, tmp_path):
        response = upload(backup_client, make_zip({'users.yaml': backup_users('restored@example.com')}))
        location = response.get_json()['backup_location']
        assert location.startswith(str(tmp_path / 'backups'))
        with open(os.path.join(location, 'users.yaml'), encoding='utf-8') as f:
            saved = yaml.safe_load(f)
        assert saved['users'][0]['email'] == 'rep@example.com'
        assert not os.path.exists(os.path.join(location, '.lock'))

    def test_export_then_import(self, backup_client, store, make_user):
        exported = backup_client.get('/api/admin/export', headers=auth()).data
        make_user(email='late@example.com')
        response = upload(backup_client, io.BytesIO(exported))
        assert response.status_code == 200
        assert [u['email'] for u in store.load('users')] == ['rep@example.com']

    def test_no_file(self, backup_client):
        response = backup_client.post('/api/admin/import', headers=auth())
        assert response.status_code == 400
        assert response.get_json()['error'] == 'No file uploaded'

    def test_requires_key(self, backup_client, store):
        response = upload(backup_client, make_zip({'users.yaml': backup_users('x@example.com')}),
                          headers={})
        assert response.status_code == 401
        assert [u['email'] for u in store.load('users')] == ['rep@example.com']

    def test_not_a_zip(self, backup_client):
        response = upload(backup_client, io.BytesIO(b'definitely not a zip'))
        assert response.status_code == 400
        assert 'not a valid ZIP' in response.get_json()['error']

    def test_missing_users_yaml(self, backup_client):
        response = upload(backup_client, make_zip({'competitions.yaml': 'competitions: []\n'}))
        assert response.status_code == 400
        assert 'users.yaml' in response.get_json()['error']

    @pytest.mark.parametrize('bad_name', ['../evil.yaml', 'nested/../../evil.yaml'])
    def test_unsafe_paths(self, backup_client, bad_name, tmp_path):
        buffer = make_zip({'users.yaml': backup_users('x@example.com'), bad_name: 'boom'})
        response = upload(backup_client, buffer)
        assert response.status_code == 400
        assert 'unsafe' in response.get_json()['error']
        assert not (tmp_path / 'backups').exists()

    def test_too_large(self, backup_client, monkeypatch):
        import app as app_module
        monkeypatch.setattr(app_module, 'MAX_SITE_UPLOAD_SIZE', 10)
        response = upload(backup_client, make_zip({'users.yaml': backup_users('x@example.com')}))
        assert response.status_code == 400
        assert 'too large' in response.get_json()['error']
