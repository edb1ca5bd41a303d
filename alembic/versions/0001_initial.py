# /app/alembic/versions/0001_initial.py

"""Initial tables: users, calendar events, event contacts, calendar preferences

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 12:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('external_id', sa.String(length=128), nullable=False, comment="Identity provider subject (sub)"),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('photo_url', sa.String(length=1024), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_users_external_id', 'users', ['external_id'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=False)

    # Events: unique per (client event id, owner)
    op.create_table(
        'calendar_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('event_id', sa.String(length=255), nullable=False, comment="Client-side event identifier"),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_all_day', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=500), nullable=True),
        sa.Column('calendar_id', sa.String(length=255), nullable=True),
        sa.Column('calendar_name', sa.String(length=255), nullable=True),
        sa.Column('owner_external_id', sa.String(length=128), nullable=False,
                  comment="Denormalized identity subject of the owner"),
        sa.Column('fetched_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('event_id', 'user_id', name='uq_calendar_event_owner'),
    )
    op.create_index('ix_calendar_events_user_id', 'calendar_events', ['user_id'])
    op.create_index('ix_calendar_events_start_date', 'calendar_events', ['start_date'])

    op.create_table(
        'event_contacts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('event_id', sa.Integer(), sa.ForeignKey('calendar_events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('contact_id', sa.String(length=255), nullable=False),
        sa.Column('contact_name', sa.String(length=255), nullable=False),
        sa.Column('contact_emails', sa.Text(), nullable=True),
        sa.Column('contact_phone_numbers', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_event_contacts_event_id', 'event_contacts', ['event_id'])

    op.create_table(
        'user_calendar_preferences',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('calendar_id', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'calendar_id', name='uq_calendar_pref_user_calendar'),
    )
    op.create_index('ix_user_calendar_preferences_user_id', 'user_calendar_preferences', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_user_calendar_preferences_user_id', table_name='user_calendar_preferences')
    op.drop_table('user_calendar_preferences')
    op.drop_index('ix_event_contacts_event_id', table_name='event_contacts')
    op.drop_table('event_contacts')
    op.drop_index('ix_calendar_events_start_date', table_name='calendar_events')
    op.drop_index('ix_calendar_events_user_id', table_name='calendar_events')
    op.drop_table('calendar_events')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_external_id', table_name='users')
    op.drop_table('users')
