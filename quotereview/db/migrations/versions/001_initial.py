"""initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Creates users, quotations, quotation_versions and quotation_history.
Enum columns are plain VARCHAR holding the literal wire values.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Users
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('onboarded_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('invitation_token', sa.String(128)),
        sa.Column('invitation_expires', sa.DateTime(timezone=True)),
        sa.Column('email_verified', sa.Boolean(), server_default=sa.false()),
        sa.Column('email_verification_token', sa.String(128)),
        sa.Column('email_verification_expires', sa.DateTime(timezone=True)),
        sa.Column('password_reset_token', sa.String(128)),
        sa.Column('password_reset_expires', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_onboarded_by', 'users', ['onboarded_by'])
    op.create_index('ix_users_invitation_token', 'users', ['invitation_token'])
    op.create_index('ix_users_email_verification_token', 'users', ['email_verification_token'])
    op.create_index('ix_users_password_reset_token', 'users', ['password_reset_token'])

    # Quotations
    op.create_table('quotations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('project_number', sa.String(255), nullable=False),
        sa.Column('document_number', sa.String(255), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('current_version', sa.String(32), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('approved_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True)),
        sa.Column('issued_date', sa.DateTime(timezone=True)),
        sa.Column('due_date', sa.DateTime(timezone=True)),
        sa.Column('lock_version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_quotations_id', 'quotations', ['id'])
    op.create_index('ix_quotations_document_number', 'quotations', ['document_number'], unique=True)
    op.create_index('ix_quotations_status', 'quotations', ['status'])
    op.create_index('ix_quotations_created_by', 'quotations', ['created_by'])

    # Versions
    op.create_table('quotation_versions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('quotation_id', sa.Integer(), sa.ForeignKey('quotations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('version', sa.String(32), nullable=False),
        sa.Column('pdf_url', sa.Text(), nullable=False),
        sa.Column('annotated_pdf_url', sa.Text()),
        sa.Column('comments', sa.JSON()),
        sa.Column('annotations', sa.JSON()),
        sa.Column('uploaded_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('reviewed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('html_content', sa.Text()),
    )
    op.create_index('ix_quotation_versions_id', 'quotation_versions', ['id'])
    op.create_index(
        'ix_quotation_versions_quotation_position', 'quotation_versions',
        ['quotation_id', 'position'], unique=True,
    )

    # History
    op.create_table('quotation_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('quotation_id', sa.Integer(), sa.ForeignKey('quotations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(32), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('performed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('old_value', sa.JSON()),
        sa.Column('new_value', sa.JSON()),
        sa.Column('version', sa.String(32)),
        sa.Column('metadata', sa.JSON()),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_quotation_history_id', 'quotation_history', ['id'])
    op.create_index('ix_quotation_history_action', 'quotation_history', ['action'])
    op.create_index(
        'ix_quotation_history_quotation_sequence', 'quotation_history',
        ['quotation_id', 'sequence'], unique=True,
    )


def downgrade() -> None:
    # Drop tables in reverse order (respecting foreign keys)
    op.drop_table('quotation_history')
    op.drop_table('quotation_versions')
    op.drop_table('quotations')
    op.drop_table('users')
