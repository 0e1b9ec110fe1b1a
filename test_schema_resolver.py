"""
Unit tests for schema resolution.
"""

import pyarrow as pa

from userforms.field_models import FieldDefinition, UserRecord, get_default_fields
from userforms.schema_resolver import (
    ID_COLUMN,
    build_records_frame,
    column_headers,
    effective_fields_for,
    find_name_collision,
    unique_columns_across_all_records,
)

from test_fixtures import FieldFixtures, RecordFixtures


def _records():
    return [UserRecord.from_payload(RecordFixtures.ann()), UserRecord.from_payload(RecordFixtures.bob())]


class TestEffectiveFields:
    """effective_fields_for()"""

    def test_globals_then_record_custom_fields(self):
        global_fields = get_default_fields()
        record = UserRecord.from_payload(RecordFixtures.bob())

        fields = effective_fields_for(global_fields, record)

        assert len(fields) == len(global_fields) + len(record.custom_fields)
        assert [f.name for f in fields][-1] == 'department'

    def test_no_record(self):
        global_fields = get_default_fields()

        assert effective_fields_for(global_fields) == global_fields

    def test_staged_fields_take_precedence(self):
        record = UserRecord.from_payload(RecordFixtures.bob())
        staged = [FieldFixtures.custom('floor', stamp=9)]

        fields = effective_fields_for([FieldFixtures.email()], record, staged_custom_fields=staged)

        assert [f.name for f in fields] == ['email', 'floor']

    def test_empty_staged_list_hides_record_fields(self):
        record = UserRecord.from_payload(RecordFixtures.bob())

        fields = effective_fields_for([], record, staged_custom_fields=[])

        assert fields == []


class TestTableColumns:
    """unique_columns_across_all_records()"""

    def test_columns_cover_every_record_without_duplicates(self):
        global_fields = get_default_fields()
        records = _records() + [UserRecord.from_payload(RecordFixtures.bob(user_id='user-3'))]

        columns = unique_columns_across_all_records(global_fields, records)
        names = [c.name for c in columns]

        assert len(names) == len(set(names))
        for record in records:
            for field in effective_fields_for(global_fields, record):
                assert field.name in names

    def test_first_occurrence_wins(self):
        first = UserRecord(id='u1', custom_fields=[FieldFixtures.custom('team', 'Team A', stamp=1)])
        second = UserRecord(id='u2', custom_fields=[FieldFixtures.custom('team', 'Team B', stamp=2)])

        columns = unique_columns_across_all_records([], [first, second])

        assert [c.label for c in columns] == ['Team A']

    def test_global_fields_come_first(self):
        record = UserRecord(id='u1', custom_fields=[FieldFixtures.custom('team')])

        columns = unique_columns_across_all_records([FieldFixtures.email()], [record])

        assert [c.name for c in columns] == ['email', 'team']


class TestHelpers:
    """find_name_collision() and build_records_frame()"""

    def test_find_name_collision(self):
        fields = [FieldFixtures.first_name(), FieldFixtures.email()]

        assert find_name_collision('email', fields).id == 'email'
        assert find_name_collision('phone', fields) is None

    def test_build_records_frame(self):
        records = _records()
        columns = unique_columns_across_all_records([FieldFixtures.first_name(), FieldFixtures.email()], records)

        frame = build_records_frame(records, columns)

        assert list(frame.columns) == [ID_COLUMN, 'First Name', 'Email Address', 'Department']
        assert frame.shape == (2, 4)
        assert frame.iloc[0]['Department'] == ''
        assert frame.iloc[1]['Department'] == 'Sales'

    def test_build_empty_frame(self):
        frame = build_records_frame([], [FieldDefinition(id='a', name='a', label='A')])

        assert list(frame.columns) == [ID_COLUMN, 'A']
        assert frame.empty

    def test_repeated_labels_get_unique_headers(self):
        records = [UserRecord.from_payload({
            'id': 'user-1-aaaaaaaaa',
            'email': 'ann@example.com',
            'workEmail': 'ann@corp.example.com',
            'customFields': [{'id': 'custom-1', 'name': 'workEmail', 'label': 'Email'}],
        })]
        global_fields = [FieldDefinition(id='email', name='email', label='Email', type='email')]
        columns = unique_columns_across_all_records(global_fields, records)

        frame = build_records_frame(records, columns)

        assert list(frame.columns) == [ID_COLUMN, 'Email', 'Email (workEmail)']
        assert frame.iloc[0]['Email (workEmail)'] == 'ann@corp.example.com'
        table = pa.Table.from_pandas(frame, preserve_index=False)
        assert table.column_names == [ID_COLUMN, 'Email', 'Email (workEmail)']

    def test_label_matching_id_column(self):
        columns = [FieldDefinition(id='a', name='badge', label='ID'),
                   FieldDefinition(id='b', name='other', label='ID (badge)')]

        assert column_headers(columns) == ['ID (badge)', 'ID (badge) 2']
