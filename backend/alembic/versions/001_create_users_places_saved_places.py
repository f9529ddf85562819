"""Create users, places and saved_places tables

Revision ID: 001
Revises: None
Create Date: 2026-10-17 00:00:00.000000+00:00

users.places and places.saved are JSON arrays of id strings kept in step
with places.creator_id and saved_places rows by the application.

Rollback: downgrade() drops all three tables (all data lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password", sa.String(255), nullable=False, comment="bcrypt digest"),
        sa.Column(
            "image",
            sa.String(255),
            nullable=False,
            comment="Relative path of the profile image from the storage root",
        ),
        sa.Column(
            "places",
            sa.JSON(),
            nullable=False,
            comment="Ids of places this user created, in creation order",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "places",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("address", sa.String(500), nullable=False),
        sa.Column("location", sa.JSON(), nullable=False, comment="[longitude, latitude]"),
        sa.Column("image", sa.String(255), nullable=False),
        sa.Column("creator_id", sa.Uuid(), nullable=False),
        sa.Column(
            "saved",
            sa.JSON(),
            nullable=False,
            comment="Ids of users who bookmarked this place",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["creator_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_places_creator_id", "places", ["creator_id"])

    op.create_table(
        "saved_places",
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("place_id", sa.Uuid(), nullable=False),
        sa.Column(
            "snapshot",
            sa.JSON(),
            nullable=False,
            comment="Copy of the place taken when it was saved",
        ),
        sa.Column(
            "saved_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["place_id"], ["places.id"]),
        sa.PrimaryKeyConstraint("user_id", "place_id"),
    )
    op.create_index("ix_saved_places_place_id", "saved_places", ["place_id"])


def downgrade() -> None:
    op.drop_index("ix_saved_places_place_id", table_name="saved_places")
    op.drop_table("saved_places")
    op.drop_index("ix_places_creator_id", table_name="places")
    op.drop_table("places")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
