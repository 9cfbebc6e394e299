"""initial schema: users issues issue_upvotes comments

Creates the four tables of the tracker. issue_upvotes has a composite primary
key on (issue_id, user_id) so a user can hold at most one upvote per issue.

Revision ID: initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('address', sa.String(length=300), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_name', 'users', ['name'])

    op.create_table(
        'issues',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.String(length=2000), nullable=False),
        sa.Column('category', sa.String(length=30), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=True),
        sa.Column('location', sa.String(length=300), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('reported_by_id', sa.String(length=32), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('assigned_to_id', sa.String(length=32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('image_url', sa.String(), nullable=True),
        sa.Column('completion_image_url', sa.String(), nullable=True),
        sa.Column('upvote_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('comment_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('upvote_count >= 0', name='ck_issues_upvote_count_nonneg'),
        sa.CheckConstraint('comment_count >= 0', name='ck_issues_comment_count_nonneg'),
    )
    op.create_index('ix_issues_title', 'issues', ['title'])
    op.create_index('ix_issues_category', 'issues', ['category'])
    op.create_index('ix_issues_status', 'issues', ['status'])
    op.create_index('ix_issues_reported_by_id', 'issues', ['reported_by_id'])
    op.create_index('ix_issues_assigned_to_id', 'issues', ['assigned_to_id'])
    op.create_index('ix_issues_upvote_count', 'issues', ['upvote_count'])
    op.create_index('ix_issues_created_at', 'issues', ['created_at'])
    op.create_index('ix_issues_lat_lng', 'issues', ['latitude', 'longitude'])
    op.create_index('ix_issues_status_category_created', 'issues', ['status', 'category', 'created_at'])

    op.create_table(
        'issue_upvotes',
        sa.Column('issue_id', sa.String(length=32), sa.ForeignKey('issues.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('user_id', sa.String(length=32), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_issue_upvotes_user_id', 'issue_upvotes', ['user_id'])

    op.create_table(
        'comments',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('issue_id', sa.String(length=32), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', sa.String(length=32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('text', sa.String(length=500), nullable=False),
        sa.Column('is_official', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_comments_issue_id', 'comments', ['issue_id'])
    op.create_index('ix_comments_author_id', 'comments', ['author_id'])
    op.create_index('ix_comments_created_at', 'comments', ['created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('comments')
    op.drop_table('issue_upvotes')
    op.drop_table('issues')
    op.drop_table('users')
