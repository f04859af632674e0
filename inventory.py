"""Liquor inventory kept as rows of a Google Sheet.

Row one of the tab holds the header labels and every following row is one
item. Items are addressed by their ``ID`` cell, but the Sheets API can only
address rows by position, so every update or delete scans the whole tab to
find the position first.

Known hazard: another request can append or delete rows between that scan
and the write. ``LiquorInventory`` re-reads the ID cell at the computed row
right before writing and locates the row again if it moved, which narrows
the window but does not close it.
"""
import logging
import re
import uuid
from collections import namedtuple
from datetime import datetime

logger = logging.getLogger(__name__)

HEADERS = ['ID', 'Name', 'Type', 'Brand', 'Volume (ml)', 'Price', 'Quantity', 'Last Updated']
SYSTEM_FIELDS = ('ID', 'Last Updated')
FORM_FIELDS = [header for header in HEADERS if header not in SYSTEM_FIELDS]

ID_INDEX = HEADERS.index('ID')
MAX_LENGTH = 255

# ASCII digits only
NUMBER_PATTERN = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")

CREATE_RULES = {
    'Name': 'string',
    'Type': 'string',
    'Brand': 'string',
    'Volume (ml)': 'numeric',
    'Price': 'numeric',
    'Quantity': 'integer',
}
# Every editable field is required on update as well.
UPDATE_RULES = dict(CREATE_RULES)

FAILURE_HINTS = {
    'auth': 'Google Sheets refused our credentials.',
    'not_found': 'The spreadsheet or tab could not be found.',
    'quota': 'Google Sheets rate limit reached, try again in a minute.',
    'network': 'Google Sheets could not be reached.',
}

Outcome = namedtuple('Outcome', ['status', 'message'])


def column_letter(number):
    """Convert a 1-based column number to A1 letters (1 -> A, 27 -> AA)."""
    if number < 1:
        raise ValueError('Column number must be >= 1')
    letters = ''
    while number > 0:
        remainder = (number - 1) % 26
        letters = chr(65 + remainder) + letters
        number = (number - 1) // 26
    return letters


LAST_COLUMN = column_letter(len(HEADERS))
ID_COLUMN = column_letter(ID_INDEX + 1)


def a1(sheet_name, cells):
    title = sheet_name.replace("'", "''")
    return "'%s'!%s" % (title, cells)


def request_key(header):
    """Form field name for a header: 'Volume (ml)' -> 'volume_ml'."""
    return re.sub(r'[ ()]+', '_', header.lower()).strip('_')


def timestamp():
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def normalise_row(row):
    """Pad a row with None or cut it down to exactly the header width."""
    width = len(HEADERS)
    row = list(row[:width])
    return row + [None] * (width - len(row))


def is_blank_row(row):
    return all(value is None or value == '' for value in row)


def map_rows(values):
    """Turn raw sheet values (header row included) into item dicts."""
    if not values:
        return []
    sheet_headers = list(values[0])
    if sheet_headers != HEADERS:
        # Still mapped by position.
        logger.warning('Sheet headers %s do not match expected headers %s', sheet_headers, HEADERS)

    items = []
    for row in values[1:]:
        if is_blank_row(row):
            continue
        items.append(dict(zip(HEADERS, normalise_row(row))))
    return items


def filter_items(items, search):
    """Case-insensitive substring match on Name or Type."""
    if not search:
        return list(items)
    term = search.lower()
    matches = []
    for item in items:
        name = item.get('Name')
        kind = item.get('Type')
        name = name.lower() if isinstance(name, str) else ''
        kind = kind.lower() if isinstance(kind, str) else ''
        if term in name or term in kind:
            matches.append(item)
    return matches


def find_row(values, item_id):
    """Return ``(position, item)`` for the first data row whose ID is ``item_id``.

    ``position`` counts data rows from zero, not including the header row.
    Returns None when no row matches.
    """
    for position, row in enumerate(values[1:]):
        if len(row) <= ID_INDEX:
            continue
        if row[ID_INDEX] == item_id:
            return position, dict(zip(HEADERS, normalise_row(row)))
    return None


def sheet_row_number(position):
    # 1-based sheet numbering plus the header row
    return position + 2


def physical_row_index(position):
    # 0-based over the whole sheet, header row included
    return position + 1


def _is_number(value):
    return NUMBER_PATTERN.fullmatch(value) is not None


def validate(form, rules):
    """Check ``form`` against ``rules`` keyed by header.

    Returns ``(data, errors)``. ``data`` holds the stripped values keyed by
    request key, ``errors`` maps request keys to a message.
    """
    data = {}
    errors = {}
    for header, rule in rules.items():
        key = request_key(header)
        value = form.get(key)
        value = value.strip() if isinstance(value, str) else value
        label = header.lower()
        if value is None or value == '':
            errors[key] = 'The %s field is required.' % label
            continue
        if len(value) > MAX_LENGTH:
            errors[key] = 'The %s field must not be greater than %d characters.' % (label, MAX_LENGTH)
        elif rule == 'numeric' and not _is_number(value):
            errors[key] = 'The %s field must be a number.' % label
        elif rule == 'integer' and INTEGER_PATTERN.fullmatch(value) is None:
            errors[key] = 'The %s field must be an integer.' % label
        data[key] = value
    return data, errors


def new_row(data):
    row = []
    for header in HEADERS:
        if header == 'ID':
            row.append(str(uuid.uuid4()))
        elif header == 'Last Updated':
            row.append(timestamp())
        else:
            row.append(data.get(request_key(header), ''))
    return row


def updated_row(item_id, data, current):
    """Rebuild a full row, keeping stored values for fields not supplied."""
    row = []
    for header in HEADERS:
        if header == 'ID':
            row.append(item_id)
        elif header == 'Last Updated':
            row.append(timestamp())
        else:
            value = data.get(request_key(header))
            if value is None:
                value = current.get(header)
            row.append('' if value is None else value)
    return row


def parse_gid(value):
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class LiquorInventory:

    def __init__(self, sheets, sheet_name='Inventory', sheet_gid=None):
        self.sheets = sheets
        self.sheet_name = sheet_name
        self.sheet_gid = sheet_gid

    @property
    def table_range(self):
        return a1(self.sheet_name, 'A:%s' % LAST_COLUMN)

    def row_range(self, row_number):
        return a1(self.sheet_name, 'A%d:%s%d' % (row_number, LAST_COLUMN, row_number))

    def _failure_message(self, message):
        failure = self.sheets.last_failure
        hint = FAILURE_HINTS.get(failure.reason) if failure else None
        return '%s %s' % (message, hint or 'Please check logs.')

    def list_items(self, search=None):
        values = self.sheets.get_sheet_data(self.table_range)
        return filter_items(map_rows(values), search)

    def find(self, item_id):
        values = self.sheets.get_sheet_data(self.table_range)
        return find_row(values, item_id)

    def _current_position(self, item_id, position):
        """Re-check the ID cell at ``position`` and locate again if it moved."""
        row_number = sheet_row_number(position)
        cells = self.sheets.get_sheet_data(a1(self.sheet_name, '%s%d' % (ID_COLUMN, row_number)))
        if self.sheets.last_failure is not None:
            logger.warning('Could not re-check row %d for %s, using scanned position', row_number, item_id)
            return position
        if cells and cells[0] and cells[0][0] == item_id:
            return position
        logger.warning('Row for %s moved after it was located, locating again', item_id)
        found = self.find(item_id)
        return found[0] if found else None

    def add_item(self, data):
        row = new_row(data)
        response = self.sheets.append_sheet_data(a1(self.sheet_name, 'A1'), [row])
        updated = (response or {}).get('updates', {}).get('updatedCells', 0)
        if updated > 0:
            logger.info('Added item %s', row[ID_INDEX])
            return Outcome('ok', 'Liquor item added successfully with ID.')
        logger.error('Failed to append data to Google Sheet or no cells were updated.')
        return Outcome('failed', self._failure_message('Failed to add liquor item.'))

    def update_item(self, item_id, data):
        found = self.find(item_id)
        if found is None:
            logger.error('Item with ID %s not found for updating.', item_id)
            return Outcome('not_found', 'Liquor item not found for update.')
        position, current = found
        position = self._current_position(item_id, position)
        if position is None:
            logger.error('Item with ID %s disappeared before it could be updated.', item_id)
            return Outcome('not_found', 'Liquor item not found for update.')

        row_range = self.row_range(sheet_row_number(position))
        response = self.sheets.update_sheet_data(row_range, [updated_row(item_id, data, current)])
        if response and response.get('updatedCells', 0) > 0:
            logger.info('Updated item %s at %s', item_id, row_range)
            return Outcome('ok', 'Liquor item updated successfully.')
        logger.error('Failed to update data in Google Sheet or no cells were updated for ID %s (range=%s, response=%r)',
                     item_id, row_range, response)
        return Outcome('failed', self._failure_message('Failed to update liquor item.'))

    def delete_item(self, item_id):
        found = self.find(item_id)
        if found is None:
            logger.error('Item with ID %s not found for deletion.', item_id)
            return Outcome('not_found', 'Liquor item not found to delete.')

        sheet_gid = parse_gid(self.sheet_gid)
        if sheet_gid is None:
            logger.error('GOOGLE_SHEET_GID is not configured or invalid (%r). Cannot delete row.', self.sheet_gid)
            return Outcome('misconfigured', 'Sheet configuration error. Cannot delete item.')

        position = self._current_position(item_id, found[0])
        if position is None:
            logger.error('Item with ID %s disappeared before it could be deleted.', item_id)
            return Outcome('not_found', 'Liquor item not found to delete.')

        row_index = physical_row_index(position)
        response = self.sheets.delete_sheet_row(sheet_gid, row_index)
        replies = (response or {}).get('replies')
        if not replies:
            logger.error('Failed to delete item %s from Google Sheet (row index %d, response=%r)',
                         item_id, row_index, response)
            return Outcome('failed', self._failure_message('Failed to delete liquor item.'))
        if replies[0] == {}:
            logger.info('Deleted item %s at row index %d', item_id, row_index)
            return Outcome('ok', 'Liquor item deleted successfully.')
        # The row may still have been removed.
        logger.warning('Delete reply for ID %s was not the expected empty object: %r', item_id, replies)
        return Outcome('unverified', 'Liquor item deleted. Please verify.')
