"""add_sites_and_time_entries

Revision ID: c7d8e9f0a1b2
Revises:
Create Date: 2026-10-19 09:00:00.000000

현장 및 펀치 테이블 생성: sites, time_entries.
Add the sites registry and time entry (punch) tables.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID


# revision identifiers, used by Alembic.
revision: str = 'c7d8e9f0a1b2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # sites — 작업 현장 및 지오펜스 (center + radius and/or polygon)
    # Work sites with their permitted boundary
    op.create_table(
        'sites',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('geofence_radius', sa.Integer(), server_default='100', nullable=False),
        sa.Column('geofence_polygon', JSONB(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # time_entries — 출퇴근 펀치 기록 (one row per punch)
    # Punch events per user and work session
    op.create_table(
        'time_entries',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('guid', sa.String(64), nullable=False, unique=True),
        sa.Column('session_id', UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('site_id', UUID(as_uuid=True), sa.ForeignKey('sites.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('pointage_type', sa.String(20), nullable=False),
        sa.Column('pointage_status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('clocked_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('real_clocked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('server_received_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('gps_accuracy', sa.Float(), nullable=True),
        # 관리자 수정 위치 — Corrected location, submitted values kept
        sa.Column('real_latitude', sa.Float(), nullable=True),
        sa.Column('real_longitude', sa.Float(), nullable=True),
        sa.Column('real_gps_accuracy', sa.Float(), nullable=True),
        sa.Column('real_site_id', UUID(as_uuid=True), sa.ForeignKey('sites.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('device_info', JSONB(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_offline', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('local_id', sa.String(50), nullable=True),
        sa.Column('sync_attempts', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_sync_attempt', sa.DateTime(timezone=True), nullable=True),
        sa.Column('memo_id', UUID(as_uuid=True), nullable=True),
        sa.Column('correction_reason', sa.Text(), nullable=True),
        sa.Column('corrected_by', UUID(as_uuid=True), nullable=True),
        sa.Column('corrected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        # 좌표 범위 — Coordinate and counter ranges
        sa.CheckConstraint('latitude BETWEEN -90 AND 90', name='ck_time_entries_latitude'),
        sa.CheckConstraint('longitude BETWEEN -180 AND 180', name='ck_time_entries_longitude'),
        sa.CheckConstraint('gps_accuracy IS NULL OR gps_accuracy >= 0', name='ck_time_entries_gps_accuracy'),
        sa.CheckConstraint('sync_attempts >= 0', name='ck_time_entries_sync_attempts'),
    )

    # 펀치 인덱스 — Time entry indexes
    op.create_index('ix_time_entries_user_clocked_at', 'time_entries', ['user_id', 'clocked_at'])
    op.create_index('ix_time_entries_session_clocked_at', 'time_entries', ['session_id', 'clocked_at'])

    # 유니크 제약 — Unique constraint: 동일 사용자+로컬 ID 중복 방지
    # One server entry per offline local id per user (NULL local ids never collide)
    op.create_unique_constraint(
        'uq_time_entries_user_local_id',
        'time_entries',
        ['user_id', 'local_id'],
    )


def downgrade() -> None:
    op.drop_constraint('uq_time_entries_user_local_id', 'time_entries', type_='unique')
    op.drop_index('ix_time_entries_session_clocked_at', table_name='time_entries')
    op.drop_index('ix_time_entries_user_clocked_at', table_name='time_entries')
    op.drop_table('time_entries')
    op.drop_table('sites')
