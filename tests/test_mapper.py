import pytest

from project_console.core.engine.describer import ObjectSchema
from project_console.core.engine.errors import UnknownField
from project_console.core.engine.fetcher import RemoteRecord
from project_console.core.engine.mapper import (
    DEFAULT_OVERRIDES,
    FieldMapper,
    generic_display_name,
)

from fakes import fake_field, make_id, reference


@pytest.fixture
def project_schema():
    raw = {
        "name": "Project__c",
        "label": "Project",
        "fields": [
            fake_field("Id", "id", createable=False),
            fake_field("Name"),
            fake_field("Project_Short_Description__c"),
            fake_field("Project_ID_for_Reports__c"),
            fake_field("Require_PM_Approval_for_Productivity__c", "boolean"),
            fake_field("Lever_Requisition_ID__c"),
            fake_field("Formula_Score__c", "double", calculated=True),
            fake_field("Locked__c", createable=False),
            fake_field("CreatedDate", "datetime", createable=False),
            reference("Account__c", "Account"),
        ],
    }
    return ObjectSchema.from_describe(raw)


@pytest.mark.parametrize(
    "remote, display",
    [
        ("Project_Short_Description__c", "projectShortDescription"),
        ("Project_ID_for_Reports__c", "projectIdForReports"),
        ("Account__c", "account"),
        ("CreatedDate", "createdDate"),
        ("Name", "name"),
    ],
)
def test_generic_display_names(remote, display):
    assert generic_display_name(remote) == display


@pytest.mark.parametrize(
    "remote",
    ["Project_Short_Description__c", "Project_ID_for_Reports__c", "Status__c", "LastModifiedDate"],
)
def test_generic_transform_is_idempotent(remote):
    once = generic_display_name(remote)
    assert generic_display_name(once) == once


def test_overridden_names_round_trip(project_schema):
    mapper = FieldMapper()
    for remote in DEFAULT_OVERRIDES["Project__c"]:
        display = mapper.to_display_name(remote, "Project__c")
        assert mapper.to_remote_name(display, project_schema) == remote


def test_override_applies_only_to_its_object():
    mapper = FieldMapper()
    assert mapper.to_display_name("Name", "Project__c") == "projectName"
    assert mapper.to_display_name("Name", "Project_Page__c") == "name"


def test_colliding_overrides_rejected():
    with pytest.raises(ValueError):
        FieldMapper({"Project__c": {"Name": "title", "Title__c": "title"}})


def test_to_remote_name_accepts_remote_names_and_rejects_unknown(project_schema):
    mapper = FieldMapper()
    assert mapper.to_remote_name("Project_Short_Description__c", project_schema) == "Project_Short_Description__c"
    assert mapper.to_remote_name("projectIdForReports", project_schema) == "Project_ID_for_Reports__c"
    with pytest.raises(UnknownField):
        mapper.to_remote_name("doesNotExist", project_schema)


def test_display_record_exposes_reference_id_and_name(project_schema):
    record = RemoteRecord.from_api(
        {
            "attributes": {"type": "Project__c"},
            "Id": make_id("a01", 1),
            "Name": "Acme EN",
            "Account__c": make_id("001", 1),
            "Account__r": {"attributes": {"type": "Account"}, "Name": "Acme"},
        }
    )

    data = FieldMapper().to_display_record(record, project_schema)

    assert data["projectName"] == "Acme EN"
    assert data["account"] == make_id("001", 1)
    assert data["accountName"] == "Acme"
    assert "Account__r" not in data


def test_display_record_without_related_value_has_no_name_key(project_schema):
    record = RemoteRecord.from_api({"Id": make_id("a01", 1), "Account__c": None, "Account__r": None})
    data = FieldMapper().to_display_record(record, project_schema)

    assert data["account"] is None
    assert "accountName" not in data


def test_to_remote_values_skips_system_calculated_and_empty(project_schema):
    form = {
        "projectName": "Acme EN",
        "projectShortDescription": "",
        "projectIdForReports": "R-1",
        "requirePMApprovalForProductivity": True,
        "formulaScore": 3,
        "locked": "x",
        "createdDate": "2024-01-01",
        "id": make_id("a01", 9),
        "Account__c": make_id("001", 1),
        "unrelatedKey": "ignored",
    }

    values = FieldMapper().to_remote_values(form, project_schema)

    assert values == {
        "Name": "Acme EN",
        "Project_ID_for_Reports__c": "R-1",
        "Require_PM_Approval_for_Productivity__c": True,
        "Account__c": make_id("001", 1),
    }


# ============================================================================
# DISPLAY KEY COLLISIONS
# ============================================================================


def test_override_keeps_its_key_over_generic_rule():
    schema = ObjectSchema.from_describe(
        {
            "name": "Project__c",
            "fields": [
                fake_field("Id", "id", createable=False),
                fake_field("Project_Name__c"),
                fake_field("Name"),
            ],
        }
    )
    record = RemoteRecord.from_api(
        {"Id": make_id("a01", 1), "Name": "Acme", "Project_Name__c": "Acme Long Name"}
    )
    mapper = FieldMapper()

    data = mapper.to_display_record(record, schema)

    assert data["projectName"] == "Acme"
    assert data["Project_Name__c"] == "Acme Long Name"
    assert mapper.to_remote_name("projectName", schema) == "Name"
    assert mapper.to_remote_name("Project_Name__c", schema) == "Project_Name__c"


def test_related_name_key_is_not_overwritten_by_plain_field():
    schema = ObjectSchema.from_describe(
        {
            "name": "Project_Objective__c",
            "fields": [
                fake_field("Id", "id", createable=False),
                fake_field("Name"),
                fake_field("Project_Name__c"),
                reference("Project__c", "Project__c"),
            ],
        }
    )
    project_id = make_id("a01", 1)
    record = RemoteRecord.from_api(
        {
            "Id": make_id("a0K", 1),
            "Name": "Objective A",
            "Project_Name__c": "Local copy",
            "Project__c": project_id,
            "Project__r": {"attributes": {"type": "Project__c"}, "Name": "Related Project"},
        }
    )

    data = FieldMapper().to_display_record(record, schema)

    assert data["project"] == project_id
    assert data["projectName"] == "Related Project"
    assert data["Project_Name__c"] == "Local copy"


def test_display_keys_are_unique_and_stable():
    schema = ObjectSchema.from_describe(
        {
            "name": "Project__c",
            "fields": [
                fake_field("Name"),
                fake_field("Project_Name__c"),
                reference("Account__c", "Account"),
                fake_field("Account_Name__c"),
            ],
        }
    )
    mapper = FieldMapper()

    keys = mapper.display_keys(schema)
    all_keys = list(keys.fields.values()) + list(keys.related_names.values())

    assert len(all_keys) == len(set(all_keys))
    assert keys.related_names["Account__c"] == "accountName"
    assert keys.fields["Account_Name__c"] == "Account_Name__c"
    assert mapper.display_keys(schema) is keys
