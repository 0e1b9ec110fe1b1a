"""
Unit tests for the screen workflows.
"""

import logging

import pytest
from unittest.mock import MagicMock, patch

from userforms.exceptions import BackendFailure, DuplicateFieldNameError, FieldDefinitionError, RecordValidationError
from userforms.field_models import FieldDefinition, UserRecord
from userforms.field_store import FieldStore
from userforms.record_store import RecordStore
from userforms.workflows import (
    CustomFieldState,
    FormBuilderWorkflow,
    SaveState,
    UserManagementWorkflow,
    build_field_from_draft,
    summarize_submit_error,
)

from test_fixtures import FieldFixtures, InMemoryBackend, RecordFixtures


def _global_payloads():
    return [FieldFixtures.first_name().to_payload(), FieldFixtures.email().to_payload()]


@pytest.fixture
def backend():
    return InMemoryBackend(fields=_global_payloads(), users=[RecordFixtures.ann(), RecordFixtures.bob()])


@pytest.fixture
def workflow(backend):
    counter = iter(range(10, 1000))
    record_store = RecordStore(backend, id_factory=lambda: f"user-{next(counter)}-workflows")
    wf = UserManagementWorkflow(FieldStore(backend), record_store)
    wf.load()
    return wf


class TestBuildFieldFromDraft:
    """Draft to FieldDefinition conversion."""

    def test_strips_and_prefixes(self):
        field = build_field_from_draft(
            {'name': ' team ', 'label': ' Team ', 'placeholder': '', 'validation': {'pattern': '', 'minLength': None}},
            'custom', []
        )

        assert field.name == 'team'
        assert field.label == 'Team'
        assert field.id.startswith('custom-')
        assert field.placeholder is None
        assert field.validation is None

    def test_missing_label(self):
        with pytest.raises(FieldDefinitionError) as exc_info:
            build_field_from_draft({'name': 'team', 'label': ''}, 'custom', [])

        assert exc_info.value.message == "Field name and label are required"


class TestFormBuilderWorkflow:
    """Form Builder screen state."""

    def test_load(self, backend):
        wf = FormBuilderWorkflow(FieldStore(backend))

        assert wf.load() is True
        assert [f.name for f in wf.fields] == ['firstName', 'email']

    def test_load_fails_open(self, backend):
        backend.fail_on.add('list_fields')
        wf = FormBuilderWorkflow(FieldStore(backend))

        assert wf.load() is False
        assert wf.fields == []

    def test_add_field_refreshes_list(self, backend):
        wf = FormBuilderWorkflow(FieldStore(backend))
        wf.load()

        field = wf.add_field({'name': 'dateOfBirth', 'label': 'Date of Birth', 'type': 'date'})

        assert field.id.startswith('field-')
        assert [f.name for f in wf.fields] == ['firstName', 'email', 'dateOfBirth']

    def test_add_duplicate_field(self, backend):
        wf = FormBuilderWorkflow(FieldStore(backend))
        wf.load()

        with pytest.raises(DuplicateFieldNameError):
            wf.add_field({'name': 'email', 'label': 'Email again'})

        assert 'create_field' not in backend.calls

    def test_add_failure_keeps_list(self, backend):
        wf = FormBuilderWorkflow(FieldStore(backend))
        wf.load()
        before = list(wf.fields)
        backend.fail_on.add('create_field')

        with pytest.raises(BackendFailure):
            wf.add_field({'name': 'age', 'label': 'Age', 'type': 'number'})

        assert wf.fields == before

    def test_remove_and_reset(self, backend):
        wf = FormBuilderWorkflow(FieldStore(backend))
        wf.load()

        wf.remove_field('email')
        assert [f.name for f in wf.fields] == ['firstName']

        wf.reset_to_default()
        assert [f.name for f in wf.fields] == ['firstName', 'lastName', 'phoneNumber', 'email']

    def test_update_field(self, backend):
        wf = FormBuilderWorkflow(FieldStore(backend))
        wf.load()

        wf.update_field('firstName', {'label': 'Given Name'})

        assert wf.fields[0].label == 'Given Name'


class TestLoadAndEditor:
    """Loading and opening the editor."""

    def test_load(self, workflow):
        assert [u.id for u in workflow.users] == ['user-1-aaaaaaaaa', 'user-2-bbbbbbbbb']
        assert [c.name for c in workflow.columns()] == ['firstName', 'email', 'department']

    def test_load_fails_open_per_read(self, backend):
        backend.fail_on.add('list_users')
        wf = UserManagementWorkflow(FieldStore(backend), RecordStore(backend))

        assert wf.load() is False
        assert wf.users == []
        assert [f.name for f in wf.global_fields] == ['firstName', 'email']

    def test_open_editor_create_mode(self, workflow):
        editor = workflow.open_editor()

        assert not editor.is_edit_mode
        assert editor.form_data == {}
        assert editor.staged_custom_fields == []
        assert editor.custom_field_state == CustomFieldState.IDLE

    def test_open_editor_edit_mode_copies_state(self, workflow):
        bob = workflow.find_user('user-2-bbbbbbbbb')

        editor = workflow.open_editor(bob)

        assert editor.is_edit_mode
        assert editor.form_data == {'firstName': 'Bob', 'email': 'bob@example.com', 'department': 'Sales'}
        assert [f.name for f in editor.staged_custom_fields] == ['department']
        editor.staged_custom_fields.clear()
        assert len(bob.custom_fields) == 1

    def test_open_editor_rereads_global_fields(self, workflow, backend):
        backend.fields.append({'id': 'field-9', 'name': 'age', 'label': 'Age', 'type': 'number'})

        workflow.open_editor()

        assert [f.name for f in workflow.effective_fields()] == ['firstName', 'email', 'age']

    def test_open_editor_keeps_fields_on_failure(self, workflow, backend):
        backend.fail_on.add('list_fields')

        workflow.open_editor()

        assert [f.name for f in workflow.global_fields] == ['firstName', 'email']

    def test_close_editor(self, workflow):
        workflow.open_editor()
        workflow.close_editor()

        assert workflow.editor is None

    def test_editor_required(self, workflow):
        with pytest.raises(RuntimeError):
            workflow.submit()


class TestCustomFields:
    """Adding and removing record-local fields."""

    def test_add_custom_field(self, workflow):
        workflow.open_editor()
        workflow.begin_custom_field()

        field = workflow.add_custom_field({'name': 'team', 'label': 'Team'})

        assert field.id.startswith('custom-')
        assert workflow.editor.staged_custom_fields == [field]
        assert workflow.editor.custom_field_state == CustomFieldState.IDLE
        assert [f.name for f in workflow.effective_fields()] == ['firstName', 'email', 'team']

    def test_custom_field_colliding_with_global_rejected(self, workflow):
        workflow.open_editor()
        workflow.begin_custom_field()

        with pytest.raises(DuplicateFieldNameError) as exc_info:
            workflow.add_custom_field({'name': 'email', 'label': 'Email'})

        assert exc_info.value.message == "A field with this name already exists"
        assert workflow.editor.staged_custom_fields == []
        assert workflow.editor.custom_field_state == CustomFieldState.EDITING_NEW_FIELD

    def test_custom_field_colliding_with_staged_rejected(self, workflow):
        workflow.open_editor()
        workflow.add_custom_field({'name': 'team', 'label': 'Team'})

        with pytest.raises(DuplicateFieldNameError):
            workflow.add_custom_field({'name': 'team', 'label': 'Team 2'})

        assert len(workflow.editor.staged_custom_fields) == 1

    def test_custom_field_requires_name_and_label(self, workflow):
        workflow.open_editor()
        workflow.begin_custom_field()

        with pytest.raises(FieldDefinitionError):
            workflow.add_custom_field({'name': 'team', 'label': '  '})

        assert workflow.editor.staged_custom_fields == []

    def test_custom_field_ids_unique_within_record(self, workflow):
        workflow.open_editor()
        with patch('userforms.field_models._epoch_ms', return_value=5000):
            first = workflow.add_custom_field({'name': 'a', 'label': 'A'})
            second = workflow.add_custom_field({'name': 'b', 'label': 'B'})

        assert first.id == 'custom-5000'
        assert second.id == 'custom-5001'

    def test_cancel_custom_field(self, workflow):
        workflow.open_editor()
        workflow.begin_custom_field()
        workflow.cancel_custom_field()

        assert workflow.editor.custom_field_state == CustomFieldState.IDLE

    def test_remove_custom_field_drops_value(self, workflow):
        workflow.open_editor(workflow.find_user('user-2-bbbbbbbbb'))
        field_id = workflow.editor.staged_custom_fields[0].id

        removed = workflow.remove_custom_field(field_id)

        assert removed.name == 'department'
        assert 'department' not in workflow.editor.form_data
        assert workflow.editor.removed_custom_field_names == ['department']

    def test_remove_unknown_custom_field(self, workflow):
        workflow.open_editor()

        assert workflow.remove_custom_field('custom-404') is None


class TestSubmit:
    """Saving the form."""

    def test_invalid_record_never_calls_create(self, backend):
        backend.fields = _global_payloads()
        record_store = MagicMock(spec=RecordStore)
        wf = UserManagementWorkflow(FieldStore(backend), record_store)
        wf.load()
        wf.open_editor()
        wf.set_value('firstName', 'Ann')

        with pytest.raises(RecordValidationError) as exc_info:
            wf.submit()

        assert exc_info.value.errors == {'email': 'Email Address is required'}
        assert wf.editor.errors == {'email': 'Email Address is required'}
        record_store.create.assert_not_called()
        assert wf.save_state == SaveState.IDLE

    def test_create_user(self, workflow, backend):
        workflow.open_editor()
        workflow.set_value('firstName', 'Cleo')
        workflow.set_value('email', 'cleo@example.com')
        workflow.add_custom_field({'name': 'team', 'label': 'Team'})
        workflow.set_value('team', 'Blue')

        record = workflow.submit()

        assert record.id == 'user-10-workflows'
        assert record.values == {'firstName': 'Cleo', 'email': 'cleo@example.com', 'team': 'Blue'}
        assert [f.name for f in record.custom_fields] == ['team']
        assert workflow.editor is None
        assert workflow.save_state == SaveState.IDLE
        assert workflow.users[-1].id == 'user-10-workflows'

    def test_custom_field_validated_on_submit(self, workflow):
        workflow.open_editor()
        workflow.set_value('firstName', 'Cleo')
        workflow.set_value('email', 'cleo@example.com')
        workflow.add_custom_field({'name': 'age', 'label': 'Age', 'type': 'number', 'required': True})

        with pytest.raises(RecordValidationError) as exc_info:
            workflow.submit()

        assert exc_info.value.errors == {'age': 'Age is required'}

    def test_update_user(self, workflow, backend):
        workflow.open_editor(workflow.find_user('user-1-aaaaaaaaa'))
        workflow.set_value('email', 'ann@new.example.com')

        record = workflow.submit()

        assert record.get('email') == 'ann@new.example.com'
        assert workflow.last_changed_fields == ['email']
        assert 'update_user' in backend.calls
        assert workflow.find_user('user-1-aaaaaaaaa').get('email') == 'ann@new.example.com'

    def test_update_clears_removed_custom_field_value(self, workflow, backend):
        workflow.open_editor(workflow.find_user('user-2-bbbbbbbbb'))
        workflow.remove_custom_field(workflow.editor.staged_custom_fields[0].id)
        workflow.editor.form_data['department'] = 'stale'

        payload = workflow.build_submission()

        assert payload['department'] is None
        assert payload['customFields'] == []

    def test_cleared_value_is_not_restored_when_field_is_added_again(self, workflow, backend):
        workflow.open_editor(workflow.find_user('user-2-bbbbbbbbb'))
        workflow.remove_custom_field(workflow.editor.staged_custom_fields[0].id)
        workflow.submit()

        workflow.open_editor(workflow.find_user('user-2-bbbbbbbbb'))
        workflow.add_custom_field({'name': 'department', 'label': 'Department'})

        assert backend.users[1]['department'] is None
        assert backend.users[1]['customFields'] == []
        assert workflow.editor.form_data.get('department') is None

    def test_create_strips_removed_custom_field_value(self, workflow):
        workflow.open_editor()
        field = workflow.add_custom_field({'name': 'team', 'label': 'Team'})
        workflow.set_value('team', 'Blue')
        workflow.remove_custom_field(field.id)

        assert 'team' not in workflow.build_submission()

    def test_state_is_submitting_during_store_call(self, workflow, backend):
        seen = []
        original_create = backend.create_user

        def create_user(user):
            seen.append(workflow.save_state)
            return original_create(user)

        backend.create_user = create_user
        workflow.open_editor()
        workflow.set_value('firstName', 'Cleo')
        workflow.set_value('email', 'cleo@example.com')

        workflow.submit()

        assert seen == [SaveState.SUBMITTING]
        assert workflow.save_state == SaveState.IDLE

    def test_update_logs_change_summary(self, workflow, caplog):
        workflow.open_editor(workflow.find_user('user-1-aaaaaaaaa'))
        workflow.set_value('email', 'ann@new.example.com')

        with caplog.at_level(logging.INFO, logger="userforms.workflows"):
            workflow.submit()

        assert "Updating user user-1-aaaaaaaaa: 1 modified, 0 added, 0 removed" in caplog.text


    def test_readded_custom_field_keeps_value(self, workflow):
        workflow.open_editor(workflow.find_user('user-2-bbbbbbbbb'))
        workflow.remove_custom_field(workflow.editor.staged_custom_fields[0].id)
        workflow.add_custom_field({'name': 'department', 'label': 'Department'})
        workflow.set_value('department', 'Support')

        payload = workflow.build_submission()

        assert payload['department'] == 'Support'
        assert [f['name'] for f in payload['customFields']] == ['department']

    def test_backend_failure_keeps_editor(self, workflow, backend):
        workflow.open_editor()
        workflow.set_value('firstName', 'Cleo')
        workflow.set_value('email', 'cleo@example.com')
        users_before = list(workflow.users)
        backend.fail_on.add('create_user')

        with pytest.raises(BackendFailure):
            workflow.submit()

        assert workflow.editor is not None
        assert workflow.editor.form_data == {'firstName': 'Cleo', 'email': 'cleo@example.com'}
        assert workflow.users == users_before
        assert workflow.save_state == SaveState.IDLE


class TestDelete:
    """Deleting users."""

    def test_declined_confirmation_makes_no_call(self, workflow, backend):
        backend.calls.clear()
        confirm = MagicMock(return_value=False)

        assert workflow.delete_user('user-1-aaaaaaaaa', confirm) is False

        confirm.assert_called_once_with('user-1-aaaaaaaaa')
        assert backend.calls == []

    def test_confirmed_delete(self, workflow, backend):
        assert workflow.delete_user('user-1-aaaaaaaaa', lambda _user_id: True) is True

        assert [u.id for u in workflow.users] == ['user-2-bbbbbbbbb']

    def test_delete_failure_keeps_list(self, workflow, backend):
        backend.fail_on.add('delete_user')

        with pytest.raises(BackendFailure):
            workflow.delete_user('user-1-aaaaaaaaa', lambda _user_id: True)

        assert len(workflow.users) == 2


class TestSummarizeSubmitError:
    """summarize_submit_error()"""

    def test_validation_error(self):
        message, errors = summarize_submit_error(RecordValidationError({'a': 'A is required'}), False)

        assert message == "Please fix the errors in the form"
        assert errors == {'a': 'A is required'}

    def test_backend_failure(self):
        assert summarize_submit_error(BackendFailure('create user'), False) == ("Failed to create user", {})
        assert summarize_submit_error(BackendFailure('update user'), True) == ("Failed to update user", {})


class TestScenario:
    """End-to-end flow over the in-memory backend."""

    def test_schema_change_under_existing_records(self, workflow, backend):
        builder = FormBuilderWorkflow(workflow.field_store)
        builder.load()
        builder.add_field({'name': 'phone', 'label': 'Phone', 'type': 'tel'})

        workflow.load()
        workflow.open_editor(workflow.find_user('user-1-aaaaaaaaa'))
        names = [f.name for f in workflow.effective_fields()]

        assert names == ['firstName', 'email', 'phone']
        record = workflow.submit()
        assert record.get('phone') is None
        assert isinstance(record, UserRecord)
        assert isinstance(workflow.global_fields[0], FieldDefinition)
