"""Initial schema — kv_store"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "kv_store",
        sa.Column("key", sa.String, primary_key=True),
        sa.Column("value", sa.JSON, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    # prefix scans (trip:, vehicle:, user_trip:{id}:) use LIKE 'prefix%'
    op.execute("CREATE INDEX idx_kv_store_key_prefix ON kv_store (key text_pattern_ops)")


def downgrade() -> None:
    op.drop_index("idx_kv_store_key_prefix", table_name="kv_store")
    op.drop_table("kv_store")
