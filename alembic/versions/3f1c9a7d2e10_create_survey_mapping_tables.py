"""create_survey_mapping_tables

Revision ID: 3f1c9a7d2e10
Revises:
Create Date: 2026-01-12 10:42:03.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


mapping_kind = sa.Enum('specialty', 'column', 'region', 'provider_type', 'variable', name='mappingkind')
provider_type = sa.Enum('PHYSICIAN', 'APP', 'CALL', 'CUSTOM', name='providertype')
data_category = sa.Enum('COMPENSATION', 'CALL_PAY', 'MOONLIGHTING', 'CUSTOM', name='datacategory')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('failed_login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_id'), 'user', ['id'], unique=False)
    op.create_index(op.f('ix_user_email'), 'user', ['email'], unique=True)

    op.create_table(
        'survey',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('year', sa.String(), nullable=False),
        sa.Column('survey_type', sa.String(), nullable=False),
        sa.Column('survey_source', sa.String(), nullable=False),
        sa.Column('provider_type', provider_type, nullable=True),
        sa.Column('data_category', data_category, nullable=True),
        sa.Column('row_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_survey_id'), 'survey', ['id'], unique=False)
    op.create_index(op.f('ix_survey_user_id'), 'survey', ['user_id'], unique=False)

    op.create_table(
        'survey_row',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('survey_id', sa.Integer(), nullable=False),
        sa.Column('row_index', sa.Integer(), nullable=False),
        sa.Column('specialty', sa.String(), nullable=True),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column('provider_type', sa.String(), nullable=True),
        sa.Column('variable', sa.String(), nullable=True),
        sa.Column('p25', sa.Float(), nullable=True),
        sa.Column('p50', sa.Float(), nullable=True),
        sa.Column('p75', sa.Float(), nullable=True),
        sa.Column('p90', sa.Float(), nullable=True),
        sa.Column('n_orgs', sa.Integer(), nullable=True),
        sa.Column('n_incumbents', sa.Integer(), nullable=True),
        sa.Column('data', postgresql.JSONB(), nullable=False),
        sa.ForeignKeyConstraint(['survey_id'], ['survey.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_survey_row_id'), 'survey_row', ['id'], unique=False)
    op.create_index(op.f('ix_survey_row_survey_id'), 'survey_row', ['survey_id'], unique=False)

    op.create_table(
        'mapping',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('kind', mapping_kind, nullable=False),
        sa.Column('canonical_name', sa.String(), nullable=False),
        sa.Column('provider_type', provider_type, nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_mapping_id'), 'mapping', ['id'], unique=False)
    op.create_index(op.f('ix_mapping_user_id'), 'mapping', ['user_id'], unique=False)
    op.create_index(op.f('ix_mapping_kind'), 'mapping', ['kind'], unique=False)

    op.create_table(
        'mapping_source',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('mapping_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('kind', mapping_kind, nullable=False),
        sa.Column('raw_label', sa.String(), nullable=False),
        sa.Column('label_key', sa.String(), nullable=False),
        sa.Column('survey_source', sa.String(), nullable=False),
        sa.Column('frequency', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['mapping_id'], ['mapping.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'kind', 'label_key', 'survey_source', name='uix_mapping_source_claim')
    )
    op.create_index(op.f('ix_mapping_source_id'), 'mapping_source', ['id'], unique=False)
    op.create_index(op.f('ix_mapping_source_mapping_id'), 'mapping_source', ['mapping_id'], unique=False)

    op.create_table(
        'learned_mapping',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('mapping_type', mapping_kind, nullable=False),
        sa.Column('original', sa.String(), nullable=False),
        sa.Column('corrected', sa.String(), nullable=False),
        sa.Column('provider_type', sa.String(), nullable=True),
        sa.Column('survey_source', sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'mapping_type', 'original', name='uix_user_learned_mapping')
    )
    op.create_index(op.f('ix_learned_mapping_id'), 'learned_mapping', ['id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_learned_mapping_id'), table_name='learned_mapping')
    op.drop_table('learned_mapping')
    op.drop_index(op.f('ix_mapping_source_mapping_id'), table_name='mapping_source')
    op.drop_index(op.f('ix_mapping_source_id'), table_name='mapping_source')
    op.drop_table('mapping_source')
    op.drop_index(op.f('ix_mapping_kind'), table_name='mapping')
    op.drop_index(op.f('ix_mapping_user_id'), table_name='mapping')
    op.drop_index(op.f('ix_mapping_id'), table_name='mapping')
    op.drop_table('mapping')
    op.drop_index(op.f('ix_survey_row_survey_id'), table_name='survey_row')
    op.drop_index(op.f('ix_survey_row_id'), table_name='survey_row')
    op.drop_table('survey_row')
    op.drop_index(op.f('ix_survey_user_id'), table_name='survey')
    op.drop_index(op.f('ix_survey_id'), table_name='survey')
    op.drop_table('survey')
    op.drop_index(op.f('ix_user_email'), table_name='user')
    op.drop_index(op.f('ix_user_id'), table_name='user')
    op.drop_table('user')

    mapping_kind.drop(op.get_bind(), checkfirst=True)
    provider_type.drop(op.get_bind(), checkfirst=True)
    data_category.drop(op.get_bind(), checkfirst=True)
