import pytest

from project_console.core.engine import soql
from project_console.core.engine.errors import ValidationRejected


@pytest.mark.parametrize(
    "raw",
    [
        "' OR 1=1 --",
        "x'; DROP TABLE Project__c",
        "abc' UNION SELECT Id FROM User",
        "name -- DELETE",
        "WAITFOR DELAY('0:0:5')",
    ],
)
def test_injection_rejected(raw):
    with pytest.raises(ValidationRejected):
        soql.validate_search_term(raw)


@pytest.mark.parametrize("raw", [None, "", "   ", "'", '""'])
def test_empty_terms_mean_no_filter(raw):
    assert soql.validate_search_term(raw) is None


def test_plain_term_is_substring_match():
    term = soql.validate_search_term("  acme  ")
    assert term == soql.SearchTerm("acme", exact=False)
    assert soql.name_filter("Name", term) == "Name LIKE '%acme%'"


def test_quoted_term_is_exact_match():
    term = soql.validate_search_term('"Create Project"')
    assert term.exact is True
    assert soql.name_filter("Name", term) == "Name = 'Create Project'"


def test_markup_characters_stripped():
    assert soql.validate_search_term("<b>acme</b>").value == "bacme/b"


def test_overlong_term_rejected():
    with pytest.raises(ValidationRejected):
        soql.validate_search_term("a" * 256)


def test_like_escaping_covers_quotes_and_wildcards():
    term = soql.SearchTerm("50% o'neil_x")
    assert soql.name_filter("Name", term) == "Name LIKE '%50\\% o\\'neil\\_x%'"


@pytest.mark.parametrize("value", ["a01000000000001", "a01000000000000001"])
def test_valid_record_ids(value):
    assert soql.validate_record_id(value) == value


@pytest.mark.parametrize("value", ["", "short", "a0100000000000000'", "a01000000000000001x", None])
def test_invalid_record_ids(value):
    with pytest.raises(ValidationRejected):
        soql.validate_record_id(value)


def test_build_select_assembles_clauses():
    query = soql.build_select(
        "Project__c",
        ["Id", "Name", "Account__r.Name"],
        where=["Name LIKE '%a%'", None, "Status__c = 'Active'"],
        order_by="Name",
        limit=50,
    )
    assert query == (
        "SELECT Id, Name, Account__r.Name FROM Project__c "
        "WHERE Name LIKE '%a%' AND Status__c = 'Active' ORDER BY Name LIMIT 50"
    )


def test_build_select_rejects_bad_identifiers():
    with pytest.raises(ValidationRejected):
        soql.build_select("Project__c; DELETE", ["Id"])
    with pytest.raises(ValidationRejected):
        soql.build_select("Project__c", ["Id, Name"])


def test_quote_ids_validates_each_id():
    ids = ["a01000000000000001", "a01000000000000002"]
    assert soql.quote_ids(ids) == "'a01000000000000001','a01000000000000002'"
    with pytest.raises(ValidationRejected):
        soql.quote_ids(["a01000000000000001", "1' OR '1'='1"])
