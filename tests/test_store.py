"""
Tests for the YAML table store.
"""
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from federation.store import DEFAULT_DISCIPLINES, DEFAULT_REGIONS, Store


class TestStore:
    """Row helpers over YAML files."""

    def test_insert_assigns_increasing_ids(self, tmp_path):
        store = Store(str(tmp_path))
        first = store.insert('teams', {'name': 'A', 'captain_user_id': 1})
        second = store.insert('teams', {'name': 'B', 'captain_user_id': 1})
        assert (first['id'], second['id']) == (1, 2)

    def test_ids_not_reused_after_delete_of_last(self, tmp_path):
        """Deleting the newest row does not free its id."""
        store = Store(str(tmp_path))
        store.insert_many('teams', [{'name': 'A'}, {'name': 'B'}, {'name': 'C'}])
        store.delete('teams', 3)
        assert store.insert('teams', {'name': 'D'})['id'] == 4

    def test_ids_not_reused_after_emptying_table(self, tmp_path):
        store = Store(str(tmp_path))
        store.insert_many('teams', [{'name': 'A'}, {'name': 'B'}])
        store.delete_where('teams', lambda r: True)
        assert store.insert('teams', {'name': 'C'})['id'] == 3

    def test_counter_survives_reopen(self, tmp_path):
        Store(str(tmp_path)).insert('teams', {'name': 'A'})
        Store(str(tmp_path)).delete('teams', 1)
        assert Store(str(tmp_path)).insert('teams', {'name': 'B'})['id'] == 2

    def test_file_without_counter(self, tmp_path):
        """Files written without a counter continue after the highest id."""
        (tmp_path / 'teams.yaml').write_text('teams:\n- id: 7\n  name: A\n', encoding='utf-8')
        assert Store(str(tmp_path)).insert('teams', {'name': 'B'})['id'] == 8

    def test_file_layout(self, tmp_path):
        """Each table is a YAML mapping of the table name to its rows, plus the id counter."""
        store = Store(str(tmp_path))
        store.insert('regions', {'name': 'Moscow'})
        with open(tmp_path / 'regions.yaml', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        assert data == {'regions': [{'id': 1, 'name': 'Moscow'}], 'next_id': 2}

    def test_find_and_update(self, tmp_path):
        store = Store(str(tmp_path))
        store.insert_many('team_members', [{'team_id': 1, 'user_id': 5},
                                           {'team_id': 2, 'user_id': 5},
                                           {'team_id': 2, 'user_id': 6}])
        assert len(store.find('team_members', user_id=5)) == 2
        assert store.find_one('team_members', team_id=2, user_id=6)['id'] == 3
        updated = store.update('team_members', 3, user_id=7)
        assert updated['user_id'] == 7
        assert store.get('team_members', 3)['user_id'] == 7

    def test_update_missing_row(self, tmp_path):
        assert Store(str(tmp_path)).update('teams', 99, name='x') is None

    def test_delete_where_counts(self, tmp_path):
        store = Store(str(tmp_path))
        store.insert_many('teams', [{'name': 'A'}, {'name': 'B'}, {'name': 'A'}])
        assert store.delete_where('teams', lambda r: r['name'] == 'A') == 2
        assert [t['name'] for t in store.load('teams')] == ['B']

    def test_unknown_table(self, tmp_path):
        with pytest.raises(KeyError):
            Store(str(tmp_path)).load('matches')

    def test_corrupt_file_reads_empty(self, tmp_path):
        (tmp_path / 'teams.yaml').write_text('teams: [unclosed', encoding='utf-8')
        assert Store(str(tmp_path)).load('teams') == []

    def test_transaction_is_reentrant(self, tmp_path):
        """Helpers that take the lock work inside an open transaction."""
        store = Store(str(tmp_path))
        with store.transaction():
            store.insert('teams', {'name': 'A'})
            with store.transaction():
                store.update('teams', 1, name='B')
        assert store.get('teams', 1)['name'] == 'B'

    def test_seed_reference_data_once(self, tmp_path):
        store = Store(str(tmp_path))
        store.seed_reference_data()
        store.seed_reference_data()
        assert len(store.load('regions')) == len(DEFAULT_REGIONS)
        assert len(store.load('disciplines')) == len(DEFAULT_DISCIPLINES)

    def test_unicode_names_round_trip(self, tmp_path):
        store = Store(str(tmp_path))
        store.insert('regions', {'name': 'Москва'})
        assert store.name_lookup('regions') == {1: 'Москва'}
