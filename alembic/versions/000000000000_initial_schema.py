"""initial_schema

Revision ID: 000000000000
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '000000000000'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONB = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')
ACTIVE_LEAD_FILTER = "status IN ('prospect', 'lead', 'negotiation')"


def _timestamps(updated: bool = True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False)
        )
    return columns


def upgrade() -> None:
    # Create properties table
    op.create_table(
        'properties',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('apn', sa.String(length=64), nullable=False, comment='Normalized assessor parcel number (or CRAWL- synthetic key)'),
        sa.Column('county', sa.String(length=64), nullable=False, comment='Normalized county name'),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('state', sa.String(length=2), nullable=True),
        sa.Column('zip', sa.String(length=10), nullable=True),
        sa.Column('owner_name', sa.String(length=255), nullable=True),
        sa.Column('owner_phone', sa.String(length=32), nullable=True),
        sa.Column('owner_email', sa.String(length=255), nullable=True),
        sa.Column('owner_flags', JSONB, nullable=False, comment='Owner situation flags and raw vendor payloads'),
        sa.Column('estimated_value', sa.Float(), nullable=True),
        sa.Column('equity_percent', sa.Float(), nullable=True),
        sa.Column('property_type', sa.String(length=50), nullable=True),
        sa.Column('bedrooms', sa.Integer(), nullable=True),
        sa.Column('bathrooms', sa.Float(), nullable=True),
        sa.Column('sqft', sa.Integer(), nullable=True),
        sa.Column('year_built', sa.Integer(), nullable=True),
        sa.Column('lot_size', sa.Float(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('apn', 'county', name='uq_properties_apn_county'),
    )
    op.create_index('idx_properties_county', 'properties', ['county'], unique=False)

    # Create distress_events table
    op.create_table(
        'distress_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=50), nullable=False, comment='Distress type: probate, pre_foreclosure, tax_lien, ...'),
        sa.Column('source', sa.String(length=100), nullable=False, comment='Source identifier, e.g. obituary:spokesman_obits'),
        sa.Column('severity', sa.Float(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('event_date', sa.Date(), nullable=True, comment='Date the distress occurred (filing, death, notice), when known'),
        sa.Column('fingerprint', sa.String(length=64), nullable=False, comment='SHA-256 of apn:county:event_type:source'),
        sa.Column('raw_data', JSONB, nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('fingerprint', name='uq_distress_events_fingerprint'),
        sa.CheckConstraint('severity >= 0 AND severity <= 10', name='ck_distress_events_severity'),
    )
    op.create_index('idx_distress_events_property', 'distress_events', ['property_id'], unique=False)

    # Create scoring_records table
    op.create_table(
        'scoring_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('model_version', sa.String(length=32), nullable=False),
        sa.Column('composite_score', sa.Integer(), nullable=False),
        sa.Column('motivation_score', sa.Float(), nullable=False),
        sa.Column('deal_score', sa.Float(), nullable=False),
        sa.Column('severity_multiplier', sa.Float(), nullable=False),
        sa.Column('recency_decay', sa.Float(), nullable=False),
        sa.Column('stacking_bonus', sa.Float(), nullable=False),
        sa.Column('owner_factor_score', sa.Float(), nullable=False),
        sa.Column('equity_factor_score', sa.Float(), nullable=False),
        sa.Column('ai_boost', sa.Float(), nullable=False),
        sa.Column('blended_score', sa.Integer(), nullable=True, comment='Heat score after the deterministic/predictive blend'),
        sa.Column('factors', JSONB, nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('composite_score >= 0 AND composite_score <= 100', name='ck_scoring_records_composite'),
    )
    op.create_index('idx_scoring_records_property_created', 'scoring_records', ['property_id', 'created_at'], unique=False)

    # Create scoring_predictions table
    op.create_table(
        'scoring_predictions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('model_version', sa.String(length=32), nullable=False),
        sa.Column('predictive_score', sa.Integer(), nullable=False),
        sa.Column('days_until_distress', sa.Integer(), nullable=False),
        sa.Column('confidence', sa.Integer(), nullable=False),
        sa.Column('label', sa.String(length=20), nullable=False),
        sa.Column('owner_age_inference', sa.Integer(), nullable=True),
        sa.Column('equity_burn_rate', sa.Float(), nullable=True),
        sa.Column('absentee_duration_days', sa.Integer(), nullable=True),
        sa.Column('tax_delinquency_trend', sa.Float(), nullable=True),
        sa.Column('life_event_probability', sa.Float(), nullable=True),
        sa.Column('features', JSONB, nullable=False),
        sa.Column('factors', JSONB, nullable=False),
        sa.Column('weights', JSONB, nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_scoring_predictions_property_created', 'scoring_predictions', ['property_id', 'created_at'], unique=False)

    # Create leads table
    op.create_table(
        'leads',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=100), nullable=True),
        sa.Column('tags', JSONB, nullable=False),
        sa.Column('assigned_to', sa.String(length=100), nullable=True),
        sa.Column('lock_version', sa.Integer(), nullable=False, comment='Optimistic concurrency counter, incremented on every write'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('promoted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ghost_mode', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('prospect', 'lead', 'negotiation', 'disposition', 'nurture', 'dead', 'closed')",
            name='ck_leads_status',
        ),
    )
    # At most one active lead per property
    op.create_index(
        'uq_leads_active_property',
        'leads',
        ['property_id'],
        unique=True,
        postgresql_where=sa.text(ACTIVE_LEAD_FILTER),
        sqlite_where=sa.text(ACTIVE_LEAD_FILTER),
    )
    op.create_index('idx_leads_status_priority', 'leads', ['status', 'priority'], unique=False)

    # Create event_log table
    op.create_table(
        'event_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('actor', sa.String(length=100), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=100), nullable=True),
        sa.Column('details', JSONB, nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_event_log_action', 'event_log', ['action'], unique=False)
    op.create_index('idx_event_log_entity', 'event_log', ['entity_type', 'entity_id'], unique=False)

    # Create compliance_entries table
    op.create_table(
        'compliance_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('phone', sa.String(length=10), nullable=False, comment='Last 10 digits'),
        sa.Column('list_type', sa.String(length=20), nullable=False),
        sa.Column('source', sa.String(length=100), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('phone', 'list_type', name='uq_compliance_phone_list'),
        sa.CheckConstraint("list_type IN ('dnc', 'litigant', 'opt_out')", name='ck_compliance_list_type'),
    )

    # Create scoring_weight_sets table
    op.create_table(
        'scoring_weight_sets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('model_version', sa.String(length=32), nullable=False),
        sa.Column('weights', JSONB, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # Create data_ingestion_runs table
    op.create_table(
        'data_ingestion_runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('source_type', sa.String(length=50), nullable=False, comment='Phase or source: reasoning, propertyradar, crawlers, attom, replay'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='Job status: running, success, failure, partial'),
        sa.Column('records_processed', sa.Integer(), nullable=False),
        sa.Column('records_inserted', sa.Integer(), nullable=False),
        sa.Column('records_updated', sa.Integer(), nullable=False),
        sa.Column('records_failed', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('error_details', JSONB, nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('running', 'success', 'failure', 'partial')",
            name='ck_data_ingestion_runs_status',
        ),
    )
    op.create_index('idx_data_ingestion_runs_source_started', 'data_ingestion_runs', ['source_type', 'started_at'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_data_ingestion_runs_source_started', table_name='data_ingestion_runs')
    op.drop_table('data_ingestion_runs')
    op.drop_table('scoring_weight_sets')
    op.drop_table('compliance_entries')
    op.drop_index('idx_event_log_entity', table_name='event_log')
    op.drop_index('idx_event_log_action', table_name='event_log')
    op.drop_table('event_log')
    op.drop_index('idx_leads_status_priority', table_name='leads')
    op.drop_index('uq_leads_active_property', table_name='leads')
    op.drop_table('leads')
    op.drop_index('idx_scoring_predictions_property_created', table_name='scoring_predictions')
    op.drop_table('scoring_predictions')
    op.drop_index('idx_scoring_records_property_created', table_name='scoring_records')
    op.drop_table('scoring_records')
    op.drop_index('idx_distress_events_property', table_name='distress_events')
    op.drop_table('distress_events')
    op.drop_index('idx_properties_county', table_name='properties')
    op.drop_table('properties')
