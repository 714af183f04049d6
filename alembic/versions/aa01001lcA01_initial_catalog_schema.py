"""initial catalog schema

Revision ID: aa01001lcA01
Revises:
Create Date: 2026-01-12 10:00:00.000000

Hey future me - this is the whole catalog schema in one go:

- labels: short string ids ("1", "2", "3"), seeded lazily by the importer
- artists / releases / tracks: keyed on our UUIDs, upstream ids unique
- release_artists / track_artists: credit rows with a NULLABLE role
  (NULL = primary, rows from before roles existed)
- import_logs: one row per import run, started -> completed | failed

The credit tables are unique on (parent, artist, role) so the same artist can be
primary AND remixer on one release, but never credited twice in the same role.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "aa01001lcA01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # === labels ===
    op.create_table(
        "labels",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("spotify_playlist_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )

    # === artists ===
    op.create_table(
        "artists",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("spotify_id", sa.String(64), nullable=True),
        sa.Column("spotify_url", sa.String(512), nullable=True),
        sa.Column("profile_image_url", sa.String(512), nullable=True),
        sa.Column("spotify_followers", sa.Integer, nullable=True),
        sa.Column("spotify_popularity", sa.Integer, nullable=True),
        sa.Column(
            "label_id",
            sa.String(36),
            sa.ForeignKey("labels.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_artists_spotify_id", "artists", ["spotify_id"], unique=True)
    op.create_index("ix_artists_label_id", "artists", ["label_id"])
    op.create_index("ix_artists_name_lower", "artists", [sa.text("lower(name)")])

    # === releases ===
    op.create_table(
        "releases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("spotify_id", sa.String(64), nullable=True),
        sa.Column("release_type", sa.String(20), nullable=False, server_default="album"),
        sa.Column("release_date", sa.Date, nullable=True),
        sa.Column("release_date_precision", sa.String(10), nullable=True),
        sa.Column("artwork_url", sa.String(512), nullable=True),
        sa.Column("spotify_url", sa.String(512), nullable=True),
        sa.Column(
            "label_id",
            sa.String(36),
            sa.ForeignKey("labels.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="published"),
        sa.Column("spotify_popularity", sa.Integer, nullable=True),
        sa.Column("total_tracks", sa.Integer, nullable=True),
        sa.Column("upc", sa.String(32), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_releases_spotify_id", "releases", ["spotify_id"], unique=True)
    op.create_index("ix_releases_label_id", "releases", ["label_id"])
    op.create_index("ix_releases_label_date", "releases", ["label_id", "release_date"])
    op.create_index("ix_releases_release_type", "releases", ["release_type"])

    # === tracks ===
    op.create_table(
        "tracks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("duration_ms", sa.Integer, nullable=True),
        sa.Column("preview_url", sa.String(512), nullable=True),
        sa.Column("spotify_id", sa.String(64), nullable=True),
        sa.Column("spotify_uri", sa.String(255), nullable=True),
        sa.Column("spotify_url", sa.String(512), nullable=True),
        sa.Column(
            "release_id",
            sa.String(36),
            sa.ForeignKey("releases.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("track_number", sa.Integer, nullable=True),
        sa.Column("disc_number", sa.Integer, nullable=True),
        sa.Column("isrc", sa.String(32), nullable=True),
        sa.Column("spotify_popularity", sa.Integer, nullable=True),
        sa.Column("explicit", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_tracks_spotify_id", "tracks", ["spotify_id"], unique=True)
    op.create_index("ix_tracks_release_id", "tracks", ["release_id"])

    # === credits ===
    op.create_table(
        "release_artists",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "release_id",
            sa.String(36),
            sa.ForeignKey("releases.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "artist_id",
            sa.String(36),
            sa.ForeignKey("artists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.UniqueConstraint("release_id", "artist_id", "role", name="uq_release_artist_role"),
    )
    op.create_index("ix_release_artists_release_id", "release_artists", ["release_id"])
    op.create_index("ix_release_artists_artist_id", "release_artists", ["artist_id"])

    op.create_table(
        "track_artists",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "track_id",
            sa.String(36),
            sa.ForeignKey("tracks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "artist_id",
            sa.String(36),
            sa.ForeignKey("artists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.UniqueConstraint("track_id", "artist_id", "role", name="uq_track_artist_role"),
    )
    op.create_index("ix_track_artists_track_id", "track_artists", ["track_id"])
    op.create_index("ix_track_artists_artist_id", "track_artists", ["artist_id"])

    # === import_logs ===
    op.create_table(
        "import_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "label_id",
            sa.String(36),
            sa.ForeignKey("labels.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="started"),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("started_at", sa.DateTime, nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_import_logs_label_id", "import_logs", ["label_id"])
    op.create_index("ix_import_logs_label_started", "import_logs", ["label_id", "started_at"])


def downgrade() -> None:
    # Children first, FKs point upwards
    op.drop_table("import_logs")
    op.drop_table("track_artists")
    op.drop_table("release_artists")
    op.drop_table("tracks")
    op.drop_table("releases")
    op.drop_table("artists")
    op.drop_table("labels")
