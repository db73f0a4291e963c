"""create_research_cache_tables

Revision ID: 4b1f0c9e7a21
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '4b1f0c9e7a21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def _timestamps() -> list:
    return [
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='Auto-incrementing primary key'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
    ]


def upgrade() -> None:
    """
    Create the research cache tables.

    1. scraped_urls - stored pages with quality and reuse metadata
    2. search_content_usage - which request used which page
    3. url_deduplication_metrics - cache effectiveness samples
    """

    # ================================
    # scraped_urls
    # ================================
    op.create_table(
        'scraped_urls',
        *_timestamps(),
        sa.Column('url', sa.String(length=2048), nullable=False, comment='Page URL as returned by the search provider'),
        sa.Column('url_hash', sa.String(length=64), nullable=False, comment='SHA-256 hex digest of the URL'),
        sa.Column('domain', sa.String(length=255), nullable=False, comment='Lower-cased host derived from the URL'),
        sa.Column('company_name', sa.String(length=255), nullable=False, comment='Company as supplied by the first request that stored this URL'),
        sa.Column('company_key', sa.String(length=255), nullable=False, comment='Normalized company name used for uniqueness and matching'),
        sa.Column('role_title', sa.String(length=255), nullable=True, comment='Role researched, NULL for general company research'),
        sa.Column('country', sa.String(length=100), nullable=True, comment='Country researched (optional)'),
        sa.Column('title', sa.String(length=500), nullable=True, comment='Page title'),
        sa.Column('content_summary', sa.String(length=1000), nullable=True, comment='Short summary / search snippet'),
        sa.Column('content_type', sa.String(length=32), nullable=False, comment='interview_review, company_info, job_posting, news, other'),
        sa.Column('extraction_method', sa.String(length=32), nullable=False, comment='search_result, deep_extract, manual'),
        sa.Column('content_source', sa.String(length=50), nullable=False, comment='Provider/endpoint that produced the content'),
        sa.Column('language', sa.String(length=10), nullable=False, comment='Content language code'),
        sa.Column('full_content', sa.Text(), nullable=True, comment='Complete extracted text'),
        sa.Column('ai_summary', sa.Text(), nullable=True, comment='AI-generated summary of the content'),
        sa.Column('extracted_questions', JSON_TYPE, nullable=False, comment='Interview questions found in the content'),
        sa.Column('extracted_insights', JSON_TYPE, nullable=False, comment='Tips and insights found in the content'),
        sa.Column('structured_data', JSON_TYPE, nullable=False, comment='Versioned StructuredContent payload'),
        sa.Column('word_count', sa.Integer(), nullable=False, comment='Whitespace-delimited word count of full_content'),
        sa.Column('content_quality_score', sa.Float(), nullable=False, comment='Heuristic relevance score between 0 and 1'),
        sa.Column('processing_status', sa.String(length=32), nullable=False, comment='raw, processed, analyzed, failed'),
        sa.Column('error_message', sa.Text(), nullable=True, comment='Reason the row was marked failed'),
        sa.Column('times_reused', sa.Integer(), nullable=False, comment='How many research requests reused this page'),
        sa.Column('first_scraped_at', sa.DateTime(timezone=True), nullable=False, comment='When the page was first fetched (UTC)'),
        sa.Column('last_reused_at', sa.DateTime(timezone=True), nullable=True, comment='When the page was last reused (UTC)'),
        sa.CheckConstraint('content_quality_score >= 0 AND content_quality_score <= 1', name=op.f('ck_scraped_urls_quality_score_range')),
        sa.CheckConstraint('times_reused >= 0', name=op.f('ck_scraped_urls_times_reused_non_negative')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_scraped_urls')),
        sa.UniqueConstraint('url_hash', 'company_key', name='uq_scraped_url_company'),
    )
    op.create_index(op.f('ix_scraped_urls_url_hash'), 'scraped_urls', ['url_hash'], unique=False)
    op.create_index(op.f('ix_scraped_urls_domain'), 'scraped_urls', ['domain'], unique=False)
    op.create_index(op.f('ix_scraped_urls_content_type'), 'scraped_urls', ['content_type'], unique=False)
    op.create_index(op.f('ix_scraped_urls_processing_status'), 'scraped_urls', ['processing_status'], unique=False)
    op.create_index(op.f('ix_scraped_urls_first_scraped_at'), 'scraped_urls', ['first_scraped_at'], unique=False)
    op.create_index(
        'ix_scraped_urls_reuse_lookup',
        'scraped_urls',
        ['company_key', 'content_quality_score', 'times_reused'],
        unique=False,
    )

    # ================================
    # search_content_usage
    # ================================
    op.create_table(
        'search_content_usage',
        *_timestamps(),
        sa.Column('request_id', sa.String(length=255), nullable=False, comment='Identifier of the research request'),
        sa.Column('scraped_url_id', sa.Integer(), nullable=False, comment='Page that was used'),
        sa.Column('usage_type', sa.String(length=32), nullable=False, comment='reused, fresh_scrape, validation'),
        sa.Column('relevance_score', sa.Float(), nullable=False, comment='Caller-assessed relevance of the page to the request (0-1)'),
        sa.Column('contributed_to_analysis', sa.Boolean(), nullable=False, comment='Whether the page made it into the final analysis'),
        sa.CheckConstraint('relevance_score >= 0 AND relevance_score <= 1', name=op.f('ck_search_content_usage_relevance_score_range')),
        sa.ForeignKeyConstraint(
            ['scraped_url_id'],
            ['scraped_urls.id'],
            name=op.f('fk_search_content_usage_scraped_url_id_scraped_urls'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_search_content_usage')),
        sa.UniqueConstraint('request_id', 'scraped_url_id', name='uq_search_content_usage_request_url'),
    )
    op.create_index(op.f('ix_search_content_usage_request_id'), 'search_content_usage', ['request_id'], unique=False)
    op.create_index(op.f('ix_search_content_usage_scraped_url_id'), 'search_content_usage', ['scraped_url_id'], unique=False)

    # ================================
    # url_deduplication_metrics
    # ================================
    op.create_table(
        'url_deduplication_metrics',
        *_timestamps(),
        sa.Column('request_id', sa.String(length=255), nullable=True, comment='Research request the sample belongs to (optional)'),
        sa.Column('cache_hit_count', sa.Integer(), nullable=False),
        sa.Column('total_urls_needed', sa.Integer(), nullable=False),
        sa.Column('response_time_ms', sa.Integer(), nullable=False),
        sa.Column('api_calls_saved', sa.Integer(), nullable=False),
        sa.CheckConstraint(
            'cache_hit_count >= 0 AND total_urls_needed >= 0 AND response_time_ms >= 0 AND api_calls_saved >= 0',
            name=op.f('ck_url_deduplication_metrics_non_negative_counts'),
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_url_deduplication_metrics')),
    )
    op.create_index(op.f('ix_url_deduplication_metrics_request_id'), 'url_deduplication_metrics', ['request_id'], unique=False)
    op.create_index(op.f('ix_url_deduplication_metrics_created_at'), 'url_deduplication_metrics', ['created_at'], unique=False)


def downgrade() -> None:
    """Drop the research cache tables (usage first, it references scraped_urls)."""
    op.drop_index(op.f('ix_url_deduplication_metrics_created_at'), table_name='url_deduplication_metrics')
    op.drop_index(op.f('ix_url_deduplication_metrics_request_id'), table_name='url_deduplication_metrics')
    op.drop_table('url_deduplication_metrics')

    op.drop_index(op.f('ix_search_content_usage_scraped_url_id'), table_name='search_content_usage')
    op.drop_index(op.f('ix_search_content_usage_request_id'), table_name='search_content_usage')
    op.drop_table('search_content_usage')

    op.drop_index('ix_scraped_urls_reuse_lookup', table_name='scraped_urls')
    op.drop_index(op.f('ix_scraped_urls_first_scraped_at'), table_name='scraped_urls')
    op.drop_index(op.f('ix_scraped_urls_processing_status'), table_name='scraped_urls')
    op.drop_index(op.f('ix_scraped_urls_content_type'), table_name='scraped_urls')
    op.drop_index(op.f('ix_scraped_urls_domain'), table_name='scraped_urls')
    op.drop_index(op.f('ix_scraped_urls_url_hash'), table_name='scraped_urls')
    op.drop_table('scraped_urls')
