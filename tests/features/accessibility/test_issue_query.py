from datetime import datetime

import pytest
from sqlalchemy import select

from app.features.accessibility.models.issue import AccessibilityIssue, IssueWorkflowState
from app.features.accessibility.models.resource import ResourceType, ResourceWorkflowState
from app.features.accessibility.schemas.filters import IssueFilters
from app.features.accessibility.services.query import IssueQueryService
from app.features.accessibility.services.resource_store import ResourceRef

COURSE = "course-1"


@pytest.fixture
def scanned_course(make_resource, orchestrator):
    resources = {
        "Alpha": make_resource(
            title="Alpha",
            body='<h1>Alpha</h1><div><img src="a.png"></div><p><img src="b.png"></p>',
            updated_at=datetime(2025, 1, 10),
        ),
        "Bravo": make_resource(
            title="Bravo",
            body="<table><tr><td>1</td></tr></table>",
            workflow_state=ResourceWorkflowState.unpublished,
            updated_at=datetime(2025, 2, 10),
        ),
        "Charlie": make_resource(
            title="Charlie",
            body="<p>Write 500 words.</p>",
            resource_type=ResourceType.assignment,
            updated_at=datetime(2025, 3, 10),
        ),
        "Delta": make_resource(
            title="Delta",
            body="%PDF-1.7",
            resource_type=ResourceType.attachment,
            content_type="application/pdf",
            updated_at=datetime(2025, 4, 10),
        ),
    }
    orchestrator.run_course_scan(COURSE)
    return resources


@pytest.fixture
def queries(db_session, scanned_course):
    return IssueQueryService(db_session)


def names(page):
    return [item.resource_name for item in page.items]


class TestQueryIssues:
    def test_unfiltered_lists_every_current_scan(self, queries):
        page = queries.query_issues(COURSE)

        assert names(page) == ["Alpha", "Bravo", "Charlie", "Delta"]
        assert [item.issue_count for item in page.items] == [3, 2, 0, 0]
        assert [item.workflow_state for item in page.items] == ["completed", "completed", "completed", "failed"]
        assert page.total == 4
        assert page.page_count == 1

    @pytest.mark.parametrize("filters", [None, {}, IssueFilters(), {"ruleTypes": []}, {"ruleTypes": ["all"]}])
    def test_empty_filters_match_unfiltered(self, queries, filters):
        assert names(queries.query_issues(COURSE, filters)) == ["Alpha", "Bravo", "Charlie", "Delta"]

    @pytest.mark.parametrize(
        "filters,expected",
        [
            ({"ruleTypes": ["img-alt"]}, ["Alpha"]),
            ({"ruleTypes": ["table-caption", "headings-start-at-h2"]}, ["Alpha", "Bravo"]),
            ({"ruleTypes": [{"label": "Image alt text", "value": "img-alt"}]}, ["Alpha"]),
            ({"artifactTypes": ["wiki_page"]}, ["Alpha", "Bravo"]),
            ({"artifactTypes": ["Assignment"]}, ["Charlie"]),
            ({"artifactTypes": ["attachment", "assignment"]}, ["Charlie", "Delta"]),
            ({"artifactTypes": ["quiz"]}, []),
            ({"workflowStates": ["unpublished"]}, ["Bravo"]),
            ({"fromDate": "2025-02-01T00:00:00Z"}, ["Bravo", "Charlie", "Delta"]),
            ({"toDate": "2025-03-31T23:59:59Z"}, ["Alpha", "Bravo", "Charlie"]),
            ({"fromDate": "2025-02-01T00:00:00Z", "toDate": "2025-03-31T00:00:00+00:00"}, ["Bravo", "Charlie"]),
        ],
    )
    def test_single_dimension_filters(self, queries, filters, expected):
        assert names(queries.query_issues(COURSE, filters)) == expected

    @pytest.mark.parametrize("bad_date", ["not-a-date", "2025-13-45", "", "12345", "1700000000"])
    def test_invalid_dates_are_ignored(self, queries, bad_date):
        page = queries.query_issues(COURSE, {"fromDate": bad_date, "toDate": bad_date})
        assert page.total == 4

    def test_filters_are_combined_with_and(self, queries):
        filters = {"artifactTypes": ["wiki_page"], "workflowStates": ["published"], "ruleTypes": ["img-alt"]}
        assert names(queries.query_issues(COURSE, filters)) == ["Alpha"]

        filters = {"artifactTypes": ["assignment"], "ruleTypes": ["img-alt"]}
        assert names(queries.query_issues(COURSE, filters)) == []

    def test_other_courses_are_invisible(self, queries):
        assert queries.query_issues("course-2").total == 0

    def test_pagination(self, queries):
        page = queries.query_issues(COURSE, page=2, per_page=3)

        assert names(page) == ["Delta"]
        assert page.page == 2
        assert page.per_page == 3
        assert page.total == 4
        assert page.page_count == 2

    def test_page_past_the_end_is_empty(self, queries):
        assert queries.query_issues(COURSE, page=5, per_page=3).items == []

    def test_sort_by_issue_count_desc(self, queries):
        page = queries.query_issues(COURSE, sort="issue_count", direction="desc")
        assert names(page)[:2] == ["Alpha", "Bravo"]

    def test_sort_by_resource_updated_at_desc(self, queries):
        page = queries.query_issues(COURSE, sort="resource_updated_at", direction="desc")
        assert names(page) == ["Delta", "Charlie", "Bravo", "Alpha"]

    def test_unknown_sort_falls_back_to_name(self, queries):
        page = queries.query_issues(COURSE, sort="drop table", direction="desc")
        assert names(page) == ["Alpha", "Bravo", "Charlie", "Delta"]

    def test_rescan_in_flight_shows_as_current_scan(self, queries, orchestrator, scanned_course):
        alpha = scanned_course["Alpha"]
        orchestrator.enqueue_scan(ResourceRef(alpha.resource_type, alpha.id))

        item = queries.query_issues(COURSE, {"ruleTypes": ["img-alt"]}).items[0]

        assert item.workflow_state == "queued"
        assert item.sequence == 2
        assert item.issue_count == 3


class TestIssueSummary:
    def test_totals_by_rule_type(self, queries):
        summary = queries.get_issues_summary(COURSE)

        assert summary.total == 5
        assert summary.by_rule_type == {
            "img-alt": 2,
            "headings-start-at-h2": 1,
            "table-header": 1,
            "table-caption": 1,
        }

    def test_none_and_empty_filters_agree(self, queries):
        assert queries.get_issues_summary(COURSE, None) == queries.get_issues_summary(COURSE, {})

    def test_rule_type_filter_limits_counted_issues(self, queries):
        summary = queries.get_issues_summary(COURSE, {"ruleTypes": ["img-alt"]})
        assert summary.total == 2
        assert summary.by_rule_type == {"img-alt": 2}

    def test_resource_filters(self, queries):
        assert queries.get_issues_summary(COURSE, {"workflowStates": ["unpublished"]}).total == 2
        assert queries.get_issues_summary(COURSE, {"artifactTypes": ["assignment"]}).total == 0
        assert queries.get_issues_summary(COURSE, {"toDate": "2025-01-31T00:00:00Z"}).total == 3

    def test_dismissed_issues_are_not_counted(self, db_session, queries):
        issue = db_session.execute(
            select(AccessibilityIssue).where(AccessibilityIssue.rule_type == "table-caption")
        ).scalar_one()
        issue.workflow_state = IssueWorkflowState.dismissed
        db_session.commit()

        summary = queries.get_issues_summary(COURSE)
        assert summary.total == 4
        assert "table-caption" not in summary.by_rule_type

    def test_uses_latest_completed_scan_while_rescan_is_queued(self, queries, orchestrator, scanned_course):
        bravo = scanned_course["Bravo"]
        orchestrator.enqueue_scan(ResourceRef(bravo.resource_type, bravo.id))

        assert queries.get_issues_summary(COURSE).total == 5

    def test_empty_course(self, queries):
        summary = queries.get_issues_summary("course-2")
        assert summary.total == 0
        assert summary.by_rule_type == {}


class TestIssueFilters:
    def test_wire_aliases_and_snake_case(self):
        by_alias = IssueFilters.model_validate({"ruleTypes": ["img-alt"], "fromDate": "2025-01-01T00:00:00Z"})
        by_name = IssueFilters(rule_types=["img-alt"], from_date=datetime(2025, 1, 1))

        assert by_alias == by_name
        assert by_alias.from_date.tzinfo is None

    @pytest.mark.parametrize("epoch", ["12345", "1700000000", 1700000000])
    def test_epoch_numbers_are_not_dates(self, epoch):
        filters = IssueFilters.model_validate({"fromDate": epoch, "toDate": epoch})
        assert filters.from_date is None
        assert filters.to_date is None

    def test_date_only_and_offset_values(self):
        filters = IssueFilters.model_validate({"fromDate": "2025-02-01", "toDate": "2025-02-01T02:00:00+02:00"})
        assert filters.from_date == datetime(2025, 2, 1)
        assert filters.to_date == datetime(2025, 2, 1)

    def test_unknown_keys_are_ignored(self):
        assert IssueFilters.model_validate({"search": "quiz"}).is_empty

    def test_coerce(self):
        filters = IssueFilters(rule_types=["img-alt"])
        assert IssueFilters.coerce(None) is None
        assert IssueFilters.coerce(filters) is filters
        assert IssueFilters.coerce({"ruleTypes": "img-alt"}).rule_types == ["img-alt"]
