"""accessibility_scanning

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RESOURCE_TYPES = ('wiki_page', 'assignment', 'attachment')
# Shared by all three tables; created once in upgrade()
resource_type_enum = postgresql.ENUM(*RESOURCE_TYPES, name='resourcetype', create_type=False)
ACTIVE_SCAN_WHERE = sa.text("workflow_state IN ('queued', 'in_progress')")


def upgrade() -> None:
    """Upgrade schema."""
    sa.Enum(*RESOURCE_TYPES, name='resourcetype').create(op.get_bind(), checkfirst=True)

    # Create course_resources table
    op.create_table(
        'course_resources',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('course_id', sa.String(), nullable=False),
        sa.Column('resource_type', resource_type_enum, nullable=False),
        sa.Column('title', sa.String(512), nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('content_type', sa.String(255), nullable=False),
        sa.Column(
            'workflow_state',
            sa.Enum('published', 'unpublished', 'deleted', name='resourceworkflowstate'),
            nullable=False,
        ),
        sa.Column('content_updated_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_course_resources_id'), 'course_resources', ['id'], unique=False)
    op.create_index(op.f('ix_course_resources_course_id'), 'course_resources', ['course_id'], unique=False)
    op.create_index(
        op.f('ix_course_resources_resource_type'), 'course_resources', ['resource_type'], unique=False
    )
    op.create_index(
        'idx_course_resources_course_type', 'course_resources', ['course_id', 'resource_type'], unique=False
    )

    # Create accessibility_resource_scans table
    op.create_table(
        'accessibility_resource_scans',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('course_id', sa.String(), nullable=False),
        sa.Column('resource_type', resource_type_enum, nullable=False),
        sa.Column('resource_id', sa.String(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column(
            'workflow_state',
            sa.Enum('queued', 'in_progress', 'completed', 'failed', name='scanworkflowstate'),
            nullable=False,
        ),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('resource_name', sa.String(512), nullable=True),
        sa.Column('resource_workflow_state', sa.String(32), nullable=True),
        sa.Column('resource_updated_at', sa.DateTime(), nullable=True),
        sa.Column('issue_count', sa.Integer(), nullable=False),
        sa.Column('queued_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'resource_type', 'resource_id', 'sequence', name='uq_a11y_scans_resource_sequence'
        ),
    )
    op.create_index(
        op.f('ix_accessibility_resource_scans_id'), 'accessibility_resource_scans', ['id'], unique=False
    )
    op.create_index(
        op.f('ix_accessibility_resource_scans_course_id'),
        'accessibility_resource_scans',
        ['course_id'],
        unique=False,
    )
    op.create_index(
        op.f('ix_accessibility_resource_scans_workflow_state'),
        'accessibility_resource_scans',
        ['workflow_state'],
        unique=False,
    )
    op.create_index(
        'idx_a11y_scans_course_resource',
        'accessibility_resource_scans',
        ['course_id', 'resource_type', 'resource_id'],
        unique=False,
    )
    op.create_index(
        'idx_a11y_scans_one_active_per_resource',
        'accessibility_resource_scans',
        ['resource_type', 'resource_id'],
        unique=True,
        sqlite_where=ACTIVE_SCAN_WHERE,
        postgresql_where=ACTIVE_SCAN_WHERE,
    )

    # Create accessibility_issues table
    op.create_table(
        'accessibility_issues',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('course_id', sa.String(), nullable=False),
        sa.Column('resource_type', resource_type_enum, nullable=False),
        sa.Column('resource_id', sa.String(), nullable=False),
        sa.Column('accessibility_resource_scan_id', sa.String(), nullable=True),
        sa.Column('rule_type', sa.String(255), nullable=False),
        sa.Column('node_path', sa.String(2048), nullable=False),
        sa.Column(
            'workflow_state',
            sa.Enum('active', 'resolved', 'dismissed', name='issueworkflowstate'),
            nullable=False,
        ),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('first_detected_at', sa.DateTime(), nullable=False),
        sa.Column('last_detected_at', sa.DateTime(), nullable=False),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('dismissed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ['accessibility_resource_scan_id'],
            ['accessibility_resource_scans.id'],
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_accessibility_issues_id'), 'accessibility_issues', ['id'], unique=False)
    op.create_index(
        op.f('ix_accessibility_issues_course_id'), 'accessibility_issues', ['course_id'], unique=False
    )
    op.create_index(
        op.f('ix_accessibility_issues_accessibility_resource_scan_id'),
        'accessibility_issues',
        ['accessibility_resource_scan_id'],
        unique=False,
    )
    op.create_index(
        op.f('ix_accessibility_issues_rule_type'), 'accessibility_issues', ['rule_type'], unique=False
    )
    op.create_index(
        op.f('ix_accessibility_issues_workflow_state'), 'accessibility_issues', ['workflow_state'], unique=False
    )
    op.create_index(
        'idx_a11y_issues_identity',
        'accessibility_issues',
        ['resource_type', 'resource_id', 'rule_type', 'node_path'],
        unique=True,
    )
    op.create_index(
        'idx_a11y_issues_course_state', 'accessibility_issues', ['course_id', 'workflow_state'], unique=False
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_a11y_issues_course_state', table_name='accessibility_issues')
    op.drop_index('idx_a11y_issues_identity', table_name='accessibility_issues')
    op.drop_index(op.f('ix_accessibility_issues_workflow_state'), table_name='accessibility_issues')
    op.drop_index(op.f('ix_accessibility_issues_rule_type'), table_name='accessibility_issues')
    op.drop_index(
        op.f('ix_accessibility_issues_accessibility_resource_scan_id'), table_name='accessibility_issues'
    )
    op.drop_index(op.f('ix_accessibility_issues_course_id'), table_name='accessibility_issues')
    op.drop_index(op.f('ix_accessibility_issues_id'), table_name='accessibility_issues')
    op.drop_table('accessibility_issues')

    op.drop_index('idx_a11y_scans_one_active_per_resource', table_name='accessibility_resource_scans')
    op.drop_index('idx_a11y_scans_course_resource', table_name='accessibility_resource_scans')
    op.drop_index(
        op.f('ix_accessibility_resource_scans_workflow_state'), table_name='accessibility_resource_scans'
    )
    op.drop_index(op.f('ix_accessibility_resource_scans_course_id'), table_name='accessibility_resource_scans')
    op.drop_index(op.f('ix_accessibility_resource_scans_id'), table_name='accessibility_resource_scans')
    op.drop_table('accessibility_resource_scans')

    op.drop_index('idx_course_resources_course_type', table_name='course_resources')
    op.drop_index(op.f('ix_course_resources_resource_type'), table_name='course_resources')
    op.drop_index(op.f('ix_course_resources_course_id'), table_name='course_resources')
    op.drop_index(op.f('ix_course_resources_id'), table_name='course_resources')
    op.drop_table('course_resources')
    for enum_name in ('issueworkflowstate', 'scanworkflowstate', 'resourceworkflowstate', 'resourcetype'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
