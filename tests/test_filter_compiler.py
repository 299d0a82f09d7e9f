"""Tests for the filter/search compiler."""

from fakes import MemoryQueryBuilder

from attendee_crm.query.builder import SqlQueryBuilder
from attendee_crm.query.compiler import compile_query, split_set_value
from attendee_crm.query.models import Collection, FilterClause, FilterOperator
from attendee_crm.records.record_models import AttendeeRecord, HealthSystemRecord


def _attendees():
    return [
        AttendeeRecord(id="a", first_name="Jane", last_name="Doe", email="jane@x.org", title="CNO"),
        AttendeeRecord(id="b", first_name="Omar", last_name="Ali", email="", company="Janeway Labs"),
        AttendeeRecord(id="c", first_name="Lee", last_name="Chen", email=None, title="CIO"),
        AttendeeRecord(id="d", first_name="Ana", last_name="Baker", email="x", company="Mercy"),
    ]


def _matching(query: MemoryQueryBuilder, records):
    return sorted(r.id for r in records if query.matches(r))


def _compile(clauses, search="", collection=Collection.ATTENDEES):
    return compile_query(MemoryQueryBuilder(collection), clauses, search, collection)


def test_split_set_value_trims_and_drops_empty_tokens():
    assert split_set_value(" a, b ,,c , ") == ["a", "b", "c"]


def test_equals_with_commas_compiles_to_set_membership():
    query = _compile([{"property": "id", "operator": "equals", "value": "a,b,c"}])

    assert query.ops == (("with_in", "id", ["a", "b", "c"]),)
    assert _matching(query, _attendees()) == ["a", "b", "c"]


def test_equals_set_membership_is_order_independent():
    first = _compile([{"property": "id", "operator": "equals", "value": "c, a ,b"}])
    second = _compile([{"property": "id", "operator": "equals", "value": "b,c,a"}])

    assert _matching(first, _attendees()) == _matching(second, _attendees()) == ["a", "b", "c"]


def test_equals_without_comma_compiles_to_plain_equality():
    query = _compile([{"property": "id", "operator": "equals", "value": "a"}])

    assert query.ops == (("with_equals", "id", "a"),)
    assert _matching(query, _attendees()) == ["a"]


def test_equals_with_only_commas_and_blank_value_are_skipped():
    assert _compile([{"property": "id", "operator": "equals", "value": " , ,"}]).ops == ()
    assert _compile([{"property": "id", "operator": "equals", "value": ""}]).ops == ()


def test_is_empty_matches_null_and_empty_string():
    query = _compile([FilterClause(property="email", operator=FilterOperator.IS_EMPTY)])

    assert _matching(query, _attendees()) == ["b", "c"]


def test_is_not_empty_is_the_complement():
    query = _compile([FilterClause(property="email", operator=FilterOperator.IS_NOT_EMPTY)])

    assert _matching(query, _attendees()) == ["a", "d"]
    # A field holding "x" is excluded by is_empty and included by is_not_empty
    record = _attendees()[3]
    assert not _compile([{"property": "email", "operator": "is_empty"}]).matches(record)
    assert _compile([{"property": "email", "operator": "is_not_empty"}]).matches(record)


def test_text_operators_are_case_insensitive():
    records = _attendees()
    assert _matching(_compile([{"property": "first_name", "operator": "contains", "value": "AN"}]), records) == ["a", "d"]
    assert _matching(_compile([{"property": "last_name", "operator": "starts_with", "value": "ch"}]), records) == ["c"]
    assert _matching(_compile([{"property": "last_name", "operator": "ends_with", "value": "OE"}]), records) == ["a"]
    assert _matching(_compile([{"property": "first_name", "operator": "not_contains", "value": "a"}]), records) == ["c"]


def test_value_operators_skip_empty_values():
    for operator in ("contains", "not_contains", "starts_with", "ends_with", "greater_than", "less_than"):
        query = _compile([{"property": "first_name", "operator": operator, "value": ""}])
        assert query.ops == (), operator


def test_comparison_operators():
    records = _attendees()
    assert _matching(_compile([{"property": "last_name", "operator": "greater_than", "value": "C"}]), records) == [
        "a",
        "c",
    ]
    assert _matching(_compile([{"property": "last_name", "operator": "less_than", "value": "C"}]), records) == [
        "b",
        "d",
    ]


def test_malformed_clauses_are_skipped_silently():
    clauses = [
        None,
        "first_name equals Jane",
        {"operator": "equals", "value": "Jane"},
        {"property": "first_name", "value": "Jane"},
        {"property": "first_name", "operator": "sounds_like", "value": "Jane"},
        {"property": "no_such_column", "operator": "equals", "value": "Jane"},
        {"property": "first_name", "operator": "equals", "value": "Jane"},
    ]

    query = _compile(clauses)

    assert query.ops == (("with_equals", "first_name", "Jane"),)


def test_non_list_clauses_degrade_to_no_predicate():
    assert _compile(None).ops == ()
    assert _compile("not-a-list").ops == ()
    assert _compile({"property": "id", "operator": "equals", "value": "a"}).ops == ()


def test_clauses_are_and_combined_with_search_group():
    query = _compile(
        [{"property": "title", "operator": "is_not_empty"}],
        search="jane",
    )

    assert query.ops[0] == (
        "with_any_contains",
        ("first_name", "last_name", "email", "title", "company"),
        "jane",
    )
    # "b" matches the search through company but has no title
    assert _matching(query, _attendees()) == ["a"]


def test_blank_search_term_adds_nothing():
    assert _compile([], search="   ").ops == ()


def test_search_uses_the_collection_field_set():
    hs_query = compile_query(MemoryQueryBuilder(Collection.HEALTH_SYSTEMS), [], "austin", "health-systems")
    assert hs_query.ops == (("with_any_contains", ("name", "city", "state"), "austin"),)

    conf_query = _compile([], search="orlando", collection=Collection.CONFERENCES)
    assert conf_query.ops == (("with_any_contains", ("name", "location"), "orlando"),)

    health_systems = [
        HealthSystemRecord(id="h1", name="Mercy Regional", city="Austin"),
        HealthSystemRecord(id="h2", name="Valley Care", city="Dallas", website="austin.example.org"),
    ]
    # website is not part of the health system search fields
    assert [h.id for h in health_systems if hs_query.matches(h)] == ["h1"]


def test_unknown_collection_skips_search_but_keeps_clauses():
    query = compile_query(
        MemoryQueryBuilder(Collection.ATTENDEES),
        [{"property": "id", "operator": "equals", "value": "a"}],
        "jane",
        "contacts",
    )

    assert query.ops == (("with_equals", "id", "a"),)


def test_compile_does_not_mutate_the_input_builder():
    base = MemoryQueryBuilder(Collection.ATTENDEES)

    compile_query(base, [{"property": "id", "operator": "equals", "value": "a"}], "x", Collection.ATTENDEES)

    assert base.ops == ()


def _sql_ids(session, query: SqlQueryBuilder):
    return sorted(row.id for row in session.execute(query.to_select()).scalars())


def test_sql_builder_set_membership_and_equality(seeded):
    session, ids = seeded.session, seeded.ids

    in_query = compile_query(
        SqlQueryBuilder(Collection.ATTENDEES),
        [{"property": "id", "operator": "equals", "value": f"{ids.jane},{ids.lee}, {ids.zed}"}],
        "",
        Collection.ATTENDEES,
    )
    eq_query = compile_query(
        SqlQueryBuilder(Collection.ATTENDEES),
        [{"property": "last_name", "operator": "equals", "value": "Doe"}],
        "",
        Collection.ATTENDEES,
    )

    assert _sql_ids(session, in_query) == sorted([ids.jane, ids.lee, ids.zed])
    assert _sql_ids(session, eq_query) == [ids.jane]


def test_sql_builder_empty_operators(seeded):
    session, ids = seeded.session, seeded.ids

    empty = compile_query(
        SqlQueryBuilder(Collection.ATTENDEES), [{"property": "title", "operator": "is_empty"}], "", "attendees"
    )
    not_empty = compile_query(
        SqlQueryBuilder(Collection.ATTENDEES), [{"property": "title", "operator": "is_not_empty"}], "", "attendees"
    )

    # Lee has title "" and nobody has a NULL title
    assert _sql_ids(session, empty) == [ids.lee]
    assert _sql_ids(session, not_empty) == sorted([ids.jane, ids.omar, ids.ana, ids.zed])


def test_sql_builder_search_is_case_insensitive_and_scoped(seeded):
    session, ids = seeded.session, seeded.ids

    attendees = compile_query(SqlQueryBuilder(Collection.ATTENDEES), [], "JANE", Collection.ATTENDEES)
    health_systems = compile_query(SqlQueryBuilder(Collection.HEALTH_SYSTEMS), [], "jane", Collection.HEALTH_SYSTEMS)

    # Omar works at "Jane Health Center" but none of his own search fields mention it
    assert _sql_ids(session, attendees) == [ids.jane]
    assert _sql_ids(session, health_systems) == [ids.jane_hc]


def test_sql_builder_escapes_like_wildcards(seeded):
    session = seeded.session

    query = compile_query(
        SqlQueryBuilder(Collection.ATTENDEES),
        [{"property": "email", "operator": "contains", "value": "%"}],
        "",
        Collection.ATTENDEES,
    )

    assert _sql_ids(session, query) == []


def test_sql_builder_date_comparison_is_lexicographic_iso(seeded):
    session, ids = seeded.session, seeded.ids

    query = compile_query(
        SqlQueryBuilder(Collection.CONFERENCES),
        [{"property": "start_date", "operator": "greater_than", "value": "2024-01-01"}],
        "",
        Collection.CONFERENCES,
    )

    assert _sql_ids(session, query) == [ids.summit]


def test_sql_builder_certifications_contains(seeded):
    session, ids = seeded.session, seeded.ids

    query = compile_query(
        SqlQueryBuilder(Collection.ATTENDEES),
        [{"property": "certifications", "operator": "contains", "value": "cphims"}],
        "",
        Collection.ATTENDEES,
    )

    assert _sql_ids(session, query) == [ids.jane]
