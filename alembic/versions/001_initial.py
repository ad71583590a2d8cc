"""users, events, ticket tiers, bookings

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None

EVENT_TYPES = (
    'LECTURE', 'CLASS', 'PERFORMANCE', 'SOCIAL', 'WORKSHOP', 'CONFERENCE',
    'CONVENTION', 'EXPO', 'GAME', 'RALLY', 'SCREENING', 'TOUR',
)
EVENT_CATEGORIES = (
    'BUSINESS', 'FOOD', 'HEALTH_LIFESTYLE', 'MUSIC', 'VEHICLE', 'CHARITY',
    'COMMUNITY', 'FASHION', 'FILM', 'HOME', 'HOBBIES', 'PERFORMING_VISUAL_ARTS',
    'POLITICS', 'SPIRITUALITY', 'SCHOOL', 'SCIENCE_TECHNOLOGY', 'HOLIDAY',
    'SPORTS_FITNESS', 'TRAVEL', 'OUTDOOR_RECREATION', 'OTHER',
)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=42), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('role', sa.Enum('USER', 'ADMIN', name='userrole'), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=True),
        sa.Column('photo', sa.String(), nullable=True),
        sa.Column('tagline', sa.String(length=150), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('interests', sa.String(length=500), nullable=True),
        sa.Column('private_favorites', sa.Boolean(), nullable=True),
        sa.Column('password_changed_at', sa.DateTime(), nullable=True),
        sa.Column('password_reset_token', sa.String(length=64), nullable=True),
        sa.Column('password_reset_expires', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_active', 'users', ['active'])
    op.create_index('ix_users_password_reset_token', 'users', ['password_reset_token'])
    op.create_index('ix_users_created_at', 'users', ['created_at'])
    op.create_index('idx_user_active_role', 'users', ['active', 'role'])

    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=75), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=True),
        sa.Column('type', sa.Enum(*EVENT_TYPES, name='eventtype'), nullable=False),
        sa.Column('category', sa.Enum(*EVENT_CATEGORIES, name='eventcategory'), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('converted_description', sa.Text(), nullable=True),
        sa.Column('photo', sa.String(), nullable=True),
        sa.Column('date_time_start', sa.DateTime(), nullable=False),
        sa.Column('date_time_end', sa.DateTime(), nullable=False),
        sa.Column('address', sa.String(length=200), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('total_capacity', sa.Integer(), nullable=False),
        sa.Column('organizer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('published', sa.Boolean(), nullable=True),
        sa.Column('canceled', sa.Boolean(), nullable=True),
        sa.Column('fee_policy', sa.Enum('PASS_FEE', 'ABSORB_FEE', name='feepolicy'), nullable=True),
        sa.Column('refund_policy', sa.Text(), nullable=True),
        sa.Column('online', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_events_id', 'events', ['id'])
    op.create_index('ix_events_name', 'events', ['name'])
    op.create_index('ix_events_type', 'events', ['type'])
    op.create_index('ix_events_category', 'events', ['category'])
    op.create_index('ix_events_date_time_start', 'events', ['date_time_start'])
    op.create_index('ix_events_organizer_id', 'events', ['organizer_id'])
    op.create_index('ix_events_published', 'events', ['published'])
    op.create_index('ix_events_canceled', 'events', ['canceled'])
    op.create_index('ix_events_created_at', 'events', ['created_at'])
    op.create_index('idx_event_published_start', 'events', ['published', 'date_time_start'])
    op.create_index('idx_event_organizer_created', 'events', ['organizer_id', 'created_at'])
    op.create_index('idx_event_location', 'events', ['longitude', 'latitude'])

    op.create_table(
        'ticket_tiers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'event_id', sa.Integer(),
            sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('tier_name', sa.String(length=50), nullable=False),
        sa.Column('tier_description', sa.String(length=150), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('online', sa.Boolean(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('limit_per_customer', sa.Integer(), nullable=False),
        sa.Column('canceled', sa.Boolean(), nullable=False),
    )
    op.create_index('ix_ticket_tiers_id', 'ticket_tiers', ['id'])
    op.create_index('ix_ticket_tiers_event_id', 'ticket_tiers', ['event_id'])

    op.create_table(
        'user_favorites',
        sa.Column(
            'user_id', sa.Integer(),
            sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True,
        ),
        sa.Column(
            'event_id', sa.Integer(),
            sa.ForeignKey('events.id', ondelete='CASCADE'), primary_key=True,
        ),
        sa.Column('position', sa.Integer(), nullable=False),
    )

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column(
            'user_id', sa.Integer(),
            sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('event_id', sa.Integer(), sa.ForeignKey('events.id'), nullable=False),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('ticket_tiers.id'), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('paid', sa.Boolean(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=True),
        sa.Column('refund_request_id', sa.String(length=36), nullable=True),
        sa.Column('refund_created_at', sa.DateTime(), nullable=True),
        sa.Column('refund_resolved', sa.Boolean(), nullable=True),
        sa.Column(
            'refund_status', sa.Enum('ACCEPTED', 'REJECTED', name='refundstatus'),
            nullable=True,
        ),
        sa.Column('refund_reason', sa.Text(), nullable=True),
        sa.Column('refund_processed', sa.Boolean(), nullable=True),
    )
    op.create_index('ix_bookings_id', 'bookings', ['id'])
    op.create_index('ix_bookings_order_id', 'bookings', ['order_id'])
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_event_id', 'bookings', ['event_id'])
    op.create_index('ix_bookings_ticket_id', 'bookings', ['ticket_id'])
    op.create_index('ix_bookings_created_at', 'bookings', ['created_at'])
    op.create_index('ix_bookings_active', 'bookings', ['active'])
    op.create_index('ix_bookings_refund_request_id', 'bookings', ['refund_request_id'])
    op.create_index('idx_booking_user_active', 'bookings', ['user_id', 'active'])
    op.create_index('idx_booking_event_active', 'bookings', ['event_id', 'active'])
    op.create_index('idx_booking_ticket_active', 'bookings', ['ticket_id', 'active'])


def downgrade() -> None:
    op.drop_table('bookings')
    op.drop_table('user_favorites')
    op.drop_table('ticket_tiers')
    op.drop_table('events')
    op.drop_table('users')
    for enum_name in ('refundstatus', 'feepolicy', 'eventcategory', 'eventtype', 'userrole'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
