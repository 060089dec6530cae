"""
Administration of the region and discipline reference tables.
"""
import logging

from federation.errors import Conflict, NotFound, PermissionDenied, ValidationError
from federation.roles import is_admin

logger = logging.getLogger(__name__)

REFERENCE_TABLES = {
    'regions': 'region_id',
    'disciplines': 'discipline_id',
}

# Tables whose rows point at a reference row through the table's key.
_DEPENDENTS = {
    'regions': ('users', 'competitions'),
    'disciplines': ('competitions',),
}


def _check(admin, table):
    if not is_admin(admin):
        raise PermissionDenied('Only FSP administrators can manage reference data.')
    if table not in REFERENCE_TABLES:
        raise NotFound(f'Unknown reference table: {table}')


def list_items(store, table) -> list:
    return sorted(store.load(table), key=lambda r: r.get('name', '').lower())


def add_item(store, admin, table, name: str):
    _check(admin, table)
    name = (name or '').strip()
    if not name:
        raise ValidationError('Enter a name.')
    with store.transaction():
        if any(r.get('name', '').lower() == name.lower() for r in store.load(table)):
            raise Conflict(f'"{name}" already exists.')
        row = store.insert(table, {'name': name})
    logger.info(f'Added {table} {row["id"]} "{name}"')
    return row


def delete_item(store, admin, table, item_id):
    """Delete a region or discipline that nothing refers to."""
    _check(admin, table)
    key = REFERENCE_TABLES[table]
    with store.transaction():
        if store.get(table, item_id) is None:
            raise NotFound('Item not found.')
        for dependent in _DEPENDENTS[table]:
            if store.find(dependent, **{key: item_id}):
                raise Conflict(f'This item is still used by {dependent}.')
        store.delete(table, item_id)
    logger.info(f'Deleted {table} {item_id}')
