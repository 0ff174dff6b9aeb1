from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'smart_cache_query_fingerprints',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('query_hash', sa.String(32), nullable=False),
        sa.Column('query', sa.Text, nullable=False),
        sa.Column('execution_count', sa.BigInteger, nullable=False, server_default='0'),
        sa.Column('total_time', sa.Float, nullable=False, server_default='0'),
        sa.Column('avg_time', sa.Float, nullable=False, server_default='0'),
        sa.Column('last_executed_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime),
        sa.Column('updated_at', sa.DateTime),
    )
    op.create_index('ix_smart_cache_query_fingerprints_query_hash', 'smart_cache_query_fingerprints', ['query_hash'], unique=True)
    op.create_index('ix_smart_cache_query_fingerprints_avg_time', 'smart_cache_query_fingerprints', ['avg_time'])
    op.create_index('ix_smart_cache_query_fingerprints_last_executed_at', 'smart_cache_query_fingerprints', ['last_executed_at'])
    op.create_index('ix_fingerprint_execution_count', 'smart_cache_query_fingerprints', ['execution_count'])

    op.create_table(
        'smart_cache_metrics',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('cache_key', sa.String(255), nullable=False),
        sa.Column('hits', sa.BigInteger, nullable=False, server_default='0'),
        sa.Column('misses', sa.BigInteger, nullable=False, server_default='0'),
        sa.Column('last_hit_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime),
        sa.Column('updated_at', sa.DateTime),
    )
    op.create_index('ix_smart_cache_metrics_cache_key', 'smart_cache_metrics', ['cache_key'], unique=True)
    op.create_index('ix_smart_cache_metrics_last_hit_at', 'smart_cache_metrics', ['last_hit_at'])
    op.create_index('ix_smart_cache_metrics_updated_at', 'smart_cache_metrics', ['updated_at'])

    op.create_table(
        'smart_cache_recommendations',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('query_hash', sa.String(32), nullable=False),
        sa.Column('query', sa.Text, nullable=False),
        sa.Column('priority', sa.String(16), nullable=False),
        sa.Column('suggested_ttl', sa.Integer, nullable=False),
        sa.Column('reason', sa.String(255), nullable=False),
        sa.Column('potential_savings', sa.Float, nullable=False, server_default='0'),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('auto_applied', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('applied_config', sa.JSON, nullable=True),
        sa.Column('applied_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime),
        sa.Column('updated_at', sa.DateTime),
    )
    op.create_index('ix_smart_cache_recommendations_query_hash', 'smart_cache_recommendations', ['query_hash'], unique=True)
    op.create_index('ix_smart_cache_recommendations_priority', 'smart_cache_recommendations', ['priority'])
    op.create_index('ix_smart_cache_recommendations_status', 'smart_cache_recommendations', ['status'])
    op.create_index('ix_smart_cache_recommendations_created_at', 'smart_cache_recommendations', ['created_at'])


def downgrade():
    op.drop_table('smart_cache_recommendations')
    op.drop_table('smart_cache_metrics')
    op.drop_table('smart_cache_query_fingerprints')
