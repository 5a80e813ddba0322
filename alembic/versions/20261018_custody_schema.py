"""Initial custody schema: evidence, audit_logs, qr_sequences

Revision ID: 001_custody
Revises:
Create Date: 2026-10-18 00:00:00.000000

The custody chain is stored as a JSON array on the evidence row, so a single
versioned UPDATE covers status, seal and chain together.
file_url is Text (not VARCHAR(255)) to support long S3 signed URLs.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_custody'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'evidence',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('qr_code', sa.String(length=64), nullable=False),
        sa.Column('case_id', sa.String(length=100), nullable=False),
        sa.Column('station_id', sa.String(length=100), nullable=False),
        sa.Column('evidence_type', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('collected_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('collected_location', sa.Text(), nullable=False),
        sa.Column('collected_by', sa.String(length=100), nullable=False),
        sa.Column('is_sealed', sa.Boolean(), nullable=False),
        sa.Column('sealed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sealed_by', sa.String(length=100), nullable=True),
        sa.Column('file_url', sa.Text(), nullable=True),
        sa.Column('file_name', sa.String(length=255), nullable=True),
        sa.Column('file_size', sa.BigInteger(), nullable=True),
        sa.Column('file_mime_type', sa.String(length=100), nullable=True),
        sa.Column('file_hash', sa.String(length=64), nullable=True),
        sa.Column('storage_location', sa.Text(), nullable=True),
        sa.Column('chain_of_custody', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_evidence_qr_code'), 'evidence', ['qr_code'], unique=True)
    op.create_index(op.f('ix_evidence_case_id'), 'evidence', ['case_id'], unique=False)
    op.create_index(op.f('ix_evidence_station_id'), 'evidence', ['station_id'], unique=False)
    op.create_index(op.f('ix_evidence_evidence_type'), 'evidence', ['evidence_type'], unique=False)
    op.create_index(op.f('ix_evidence_status'), 'evidence', ['status'], unique=False)
    op.create_index(op.f('ix_evidence_collected_date'), 'evidence', ['collected_date'], unique=False)
    op.create_index(op.f('ix_evidence_collected_by'), 'evidence', ['collected_by'], unique=False)
    op.create_index(op.f('ix_evidence_file_hash'), 'evidence', ['file_hash'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=36), nullable=True),
        sa.Column('officer_id', sa.String(length=100), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('station_id', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_logs_entity_type'), 'audit_logs', ['entity_type'], unique=False)
    op.create_index(op.f('ix_audit_logs_entity_id'), 'audit_logs', ['entity_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_officer_id'), 'audit_logs', ['officer_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_created_at'), 'audit_logs', ['created_at'], unique=False)

    op.create_table(
        'qr_sequences',
        sa.Column('station_code', sa.String(length=100), nullable=False),
        sa.Column('year', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('last_value', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('station_code', 'year')
    )


def downgrade() -> None:
    op.drop_table('qr_sequences')

    op.drop_index(op.f('ix_audit_logs_created_at'), table_name='audit_logs')
    op.drop_index(op.f('ix_audit_logs_officer_id'), table_name='audit_logs')
    op.drop_index(op.f('ix_audit_logs_entity_id'), table_name='audit_logs')
    op.drop_index(op.f('ix_audit_logs_entity_type'), table_name='audit_logs')
    op.drop_table('audit_logs')

    for column in (
        'file_hash', 'collected_by', 'collected_date', 'status',
        'evidence_type', 'station_id', 'case_id', 'qr_code',
    ):
        op.drop_index(op.f(f'ix_evidence_{column}'), table_name='evidence')
    op.drop_table('evidence')
