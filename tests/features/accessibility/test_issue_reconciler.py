from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.features.accessibility.exceptions import ReconciliationCommitError
from app.features.accessibility.models.issue import AccessibilityIssue, IssueWorkflowState
from app.features.accessibility.services.reconciler import IssueReconciler, dedupe_findings
from app.features.accessibility.services.resource_store import ResourceRef, SqlResourceStore
from app.features.accessibility.services.rules import Finding
from app.features.accessibility.services.state_machine import ScanStateMachine
from app.platform.utils.clock import utcnow

IMG_1 = Finding("img-alt", "/div[1]/img[1]", {"src": "a.png"})
IMG_2 = Finding("img-alt", "/p[1]/img[1]", {"src": "b.png"})
IMG_3 = Finding("img-alt", "/section[1]/img[1]", {"src": "c.png"})


@pytest.fixture
def resource(make_resource):
    return make_resource(body="<p>placeholder</p>")


@pytest.fixture
def start_scan(db_session, resource):
    def _start():
        snapshot = SqlResourceStore(db_session).get_resource(ResourceRef(resource.resource_type, resource.id))
        machine = ScanStateMachine(db_session)
        scan, created = machine.enqueue(snapshot)
        assert created
        assert machine.claim(scan, snapshot)
        return scan

    return _start


@pytest.fixture
def scan_pass(db_session, start_scan):
    """Run one scan pass with the given findings and complete the scan."""
    reconciler = IssueReconciler()

    def _pass(findings, now=None):
        scan = start_scan()
        plan = reconciler.reconcile(db_session, scan, findings, now=now)
        ScanStateMachine(db_session).complete(scan, plan.active_count)
        return plan

    return _pass


def issues_by_path(db_session):
    db_session.expire_all()
    rows = db_session.execute(select(AccessibilityIssue)).scalars().all()
    return {issue.node_path: issue for issue in rows}


def test_new_findings_become_active_issues(db_session, scan_pass):
    plan = scan_pass([IMG_1, IMG_2, IMG_3])

    assert plan.summary() == {"created": 3, "touched": 0, "reopened": 0, "resolved": 0, "suppressed": 0}
    assert plan.active_count == 3

    issues = issues_by_path(db_session)
    assert set(issues) == {IMG_1.node_path, IMG_2.node_path, IMG_3.node_path}
    for issue in issues.values():
        assert issue.workflow_state == IssueWorkflowState.active
        assert issue.first_detected_at == issue.last_detected_at
        assert issue.course_id == "course-1"


def test_rescan_keeps_identity_and_first_detection(db_session, scan_pass):
    first_seen = utcnow() - timedelta(days=1)
    scan_pass([IMG_1, IMG_2], now=first_seen)
    before = {path: issue.id for path, issue in issues_by_path(db_session).items()}

    later = utcnow()
    plan = scan_pass([IMG_1, IMG_2], now=later)

    assert plan.summary()["touched"] == 2
    issues = issues_by_path(db_session)
    assert {path: issue.id for path, issue in issues.items()} == before
    for issue in issues.values():
        assert issue.first_detected_at == first_seen
        assert issue.last_detected_at == later


def test_missing_finding_resolves_only_that_issue(db_session, scan_pass):
    scan_pass([IMG_1, IMG_2, IMG_3])
    before = issues_by_path(db_session)

    plan = scan_pass([IMG_1, IMG_3])

    assert plan.summary()["resolved"] == 1
    assert plan.active_count == 2
    after = issues_by_path(db_session)
    assert after[IMG_2.node_path].workflow_state == IssueWorkflowState.resolved
    assert after[IMG_2.node_path].resolved_at is not None
    for path in (IMG_1.node_path, IMG_3.node_path):
        assert after[path].id == before[path].id
        assert after[path].workflow_state == IssueWorkflowState.active


def test_reappearing_finding_reopens_the_same_issue(db_session, scan_pass):
    scan_pass([IMG_1])
    original_id = issues_by_path(db_session)[IMG_1.node_path].id
    scan_pass([])

    plan = scan_pass([IMG_1])

    assert plan.summary()["reopened"] == 1
    issue = issues_by_path(db_session)[IMG_1.node_path]
    assert issue.id == original_id
    assert issue.workflow_state == IssueWorkflowState.active
    assert issue.resolved_at is None
    assert db_session.execute(select(func.count(AccessibilityIssue.id))).scalar_one() == 1


def test_dismissed_issue_stays_dismissed(db_session, scan_pass):
    scan_pass([IMG_1, IMG_2])
    dismissed = issues_by_path(db_session)[IMG_1.node_path]
    dismissed.workflow_state = IssueWorkflowState.dismissed
    dismissed.dismissed_at = utcnow()
    db_session.commit()

    plan = scan_pass([IMG_1, IMG_2])

    assert plan.suppressed == [IMG_1]
    assert plan.active_count == 1
    issues = issues_by_path(db_session)
    assert len(issues) == 2
    assert issues[IMG_1.node_path].workflow_state == IssueWorkflowState.dismissed


def test_dismissed_issue_is_not_resolved_when_finding_disappears(db_session, scan_pass):
    scan_pass([IMG_1])
    issue = issues_by_path(db_session)[IMG_1.node_path]
    issue.workflow_state = IssueWorkflowState.dismissed
    db_session.commit()

    plan = scan_pass([])

    assert plan.resolve == []
    assert issues_by_path(db_session)[IMG_1.node_path].workflow_state == IssueWorkflowState.dismissed


def test_empty_batch_resolves_all_active_issues(db_session, scan_pass):
    scan_pass([IMG_1, IMG_2, IMG_3])

    plan = scan_pass([])

    assert plan.active_count == 0
    assert {i.workflow_state for i in issues_by_path(db_session).values()} == {IssueWorkflowState.resolved}


def test_duplicate_findings_collapse_to_one_issue(db_session, scan_pass):
    duplicate = Finding(IMG_1.rule_type, IMG_1.node_path, {"src": "other.png"})
    plan = scan_pass([IMG_1, duplicate])

    assert plan.summary()["created"] == 1
    assert issues_by_path(db_session)[IMG_1.node_path].issue_metadata == {"src": "a.png"}


def test_same_path_different_rule_are_distinct_issues(db_session, scan_pass):
    scan_pass([IMG_1, Finding("img-alt-length", IMG_1.node_path)])

    rows = db_session.execute(select(AccessibilityIssue)).scalars().all()
    assert sorted(issue.rule_type for issue in rows) == ["img-alt", "img-alt-length"]


def test_failed_commit_leaves_issues_untouched(db_session, scan_pass, start_scan, monkeypatch):
    scan_pass([IMG_1])
    scan = start_scan()

    def failing_commit():
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(db_session, "commit", failing_commit)
    with pytest.raises(ReconciliationCommitError):
        IssueReconciler().reconcile(db_session, scan, [IMG_2, IMG_3])
    monkeypatch.undo()

    issues = issues_by_path(db_session)
    assert list(issues) == [IMG_1.node_path]
    assert issues[IMG_1.node_path].workflow_state == IssueWorkflowState.active


def test_staged_writes_commit_with_the_scan_transition(db_session, start_scan):
    scan = start_scan()

    IssueReconciler().stage(db_session, scan, [IMG_1, IMG_2])
    db_session.rollback()
    assert issues_by_path(db_session) == {}

    db_session.refresh(scan)
    plan = IssueReconciler().stage(db_session, scan, [IMG_1, IMG_2])
    ScanStateMachine(db_session).complete(scan, plan.active_count)

    assert sorted(issues_by_path(db_session)) == sorted([IMG_1.node_path, IMG_2.node_path])
    assert scan.issue_count == 2


def test_plan_is_pure():
    existing = [
        AccessibilityIssue(rule_type="img-alt", node_path="/p[1]/img[1]", workflow_state=IssueWorkflowState.active),
        AccessibilityIssue(rule_type="img-alt", node_path="/div[1]/img[1]", workflow_state=IssueWorkflowState.resolved),
    ]

    plan = IssueReconciler().plan([IMG_1, IMG_3], existing)

    assert [issue.node_path for issue, _ in plan.reopen] == [IMG_1.node_path]
    assert plan.create == [IMG_3]
    assert [issue.node_path for issue in plan.resolve] == ["/p[1]/img[1]"]
    assert existing[1].workflow_state == IssueWorkflowState.resolved


def test_dedupe_findings_keeps_first_occurrence():
    assert dedupe_findings([IMG_1, IMG_2, IMG_1]) == [IMG_1, IMG_2]
