from __future__ import annotations

import pytest

from app.services.filters import And, Eq, Not, Or, matches, referenced_fields, resolve_field
from app.services.repository import RepositoryValidationError, SqlQuery, nest_row


def test_sql_query_joins_each_relation_once_and_numbers_params() -> None:
    query = SqlQuery("application")
    sql = query.select(
        And(Eq("job.category", "FTE"), Not(Eq("job.classification", "none"))),
        ["student.roll"],
    )

    assert sql.startswith('select r_student."roll" as "student.roll" from applications as t ')
    assert sql.count("left join jobs as r_job") == 1
    assert 'left join students as r_student on r_student.id = t."student_id"' in sql
    assert (
        'where (r_job."category" is not distinct from $1 and '
        'not (r_job."classification" is not distinct from $2)) order by t.id'
    ) in sql
    assert query.params == ["FTE", "none"]


def test_sql_query_limit_and_empty_groups() -> None:
    query = SqlQuery("student")
    sql = query.select(Or(), None, limit=1)
    assert sql == "select t.* from students as t  where false order by t.id limit 1"

    assert SqlQuery("student").where(And()) == "true"


@pytest.mark.parametrize(
    ("entity", "field_name"),
    [
        ("student", "roll; drop table students"),
        ("student", "job.category"),
        ("application", "company.name"),
        ("unknown", "roll"),
    ],
)
def test_sql_query_rejects_unknown_names(entity: str, field_name: str) -> None:
    with pytest.raises(RepositoryValidationError):
        SqlQuery(entity).column(field_name)


def test_eq_is_null_safe_in_memory() -> None:
    row = {"job": {"category": "Internship", "classification": None}}

    assert matches(Not(Eq("job.classification", "none")), row)
    assert matches(Eq("job.classification", None), row)
    assert not matches(Eq("job.category", "FTE"), row)
    assert matches(Or(Eq("job.category", "FTE"), Eq("job.category", "Internship")), row)
    assert not matches(Or(), row)
    assert matches(And(), row)
    assert matches(None, row)


def test_missing_relation_resolves_to_none() -> None:
    assert resolve_field({"job": None}, "job.category") is None
    assert resolve_field({"roll": "19cs11"}, "roll") == "19cs11"


def test_referenced_fields_walks_nested_clauses() -> None:
    clause = Or(And(Eq("job.category", "FTE"), Not(Eq("job.classification", "none"))), Eq("status", "selected"))
    assert referenced_fields(clause) == ["job.category", "job.classification", "status"]


def test_nest_row_groups_relation_columns() -> None:
    assert nest_row({"id": 3, "student.roll": "19cs11", "job.category": "FTE"}) == {
        "id": 3,
        "student": {"roll": "19cs11"},
        "job": {"category": "FTE"},
    }
