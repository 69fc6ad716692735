"""Create files table

Revision ID: 001_files
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from pgvector.sqlalchemy import Vector

# revision identifiers, used by Alembic.
revision: str = '001_files'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

FILE_TYPES = ('pdf', 'image', 'text', 'code', 'spreadsheet', 'other')
FILE_STATUSES = ('pending', 'processing', 'ready', 'failed')
PROCESSING_STAGES = ('extraction', 'compression', 'embedding', 'finalization')


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    op.create_table(
        'files',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('filename', sa.String(), nullable=False),
        sa.Column('file_type', sa.Enum(*FILE_TYPES, name='file_type_enum'), nullable=False, server_default='other'),
        sa.Column('content_hash', sa.String(64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('embedding', Vector(1024), nullable=True),
        sa.Column('status', sa.Enum(*FILE_STATUSES, name='file_status_enum'), nullable=False, server_default='pending'),
        sa.Column('processing_stage', sa.Enum(*PROCESSING_STAGES, name='processing_stage_enum'), nullable=True),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('progress >= 0 AND progress <= 100', name='ck_files_progress_range'),
    )
    op.create_index('ix_files_id', 'files', ['id'], unique=False)
    op.create_index('ix_files_user_id', 'files', ['user_id'], unique=False)
    op.create_index('ix_files_user_id_status', 'files', ['user_id', 'status'], unique=False)
    op.create_index('ix_files_content_hash', 'files', ['content_hash'], unique=False)
    op.create_index('ix_files_status', 'files', ['status'], unique=False)
    op.create_index('ix_files_uploaded_at', 'files', ['uploaded_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_files_uploaded_at', table_name='files')
    op.drop_index('ix_files_status', table_name='files')
    op.drop_index('ix_files_content_hash', table_name='files')
    op.drop_index('ix_files_user_id_status', table_name='files')
    op.drop_index('ix_files_user_id', table_name='files')
    op.drop_index('ix_files_id', table_name='files')
    op.drop_table('files')
    sa.Enum(name='processing_stage_enum').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='file_status_enum').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='file_type_enum').drop(op.get_bind(), checkfirst=True)
