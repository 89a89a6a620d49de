"""PostgreSQL storage for image records.

One table holds originals and derivatives; a derivative points at its
original through original_id. All methods are blocking and run on pooled
psycopg connections, so they are safe to call from several threads at once.
"""

import logging

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from imager.config import Settings
from imager.errors import NotFoundError, RepositoryError
from imager.models import Image, OriginalResized

logger = logging.getLogger(__name__)

CREATE_TABLE_QUERY = """
CREATE TABLE IF NOT EXISTS images (
    id SERIAL PRIMARY KEY,
    download_url TEXT NOT NULL,
    resolution TEXT NOT NULL,
    original_id INTEGER REFERENCES images (id)
)
"""

ALL_IMAGES_QUERY = """
SELECT
    a.id AS original_id,
    a.download_url AS original_download_url,
    a.resolution AS original_resolution,
    b.id AS resized_id,
    b.download_url AS resized_download_url,
    b.resolution AS resized_resolution
FROM images a
JOIN images b ON a.id = b.original_id
ORDER BY b.id
"""

ONLY_RESIZED_QUERY = (
    "SELECT id, download_url, resolution, original_id FROM images "
    "WHERE original_id IS NOT NULL ORDER BY id"
)
ONE_BY_ID_QUERY = "SELECT id, download_url, resolution, original_id FROM images WHERE id = %s"
INSERT_WITH_REFERENCE_QUERY = (
    "INSERT INTO images (download_url, resolution, original_id) VALUES (%s, %s, %s) RETURNING id"
)
INSERT_WITHOUT_REFERENCE_QUERY = (
    "INSERT INTO images (download_url, resolution) VALUES (%s, %s) RETURNING id"
)


def _row_to_image(row: dict) -> Image:
    return Image(
        id=row["id"],
        download_url=row["download_url"],
        resolution=row["resolution"],
        original_id=row.get("original_id"),
    )


def create_pool(settings: Settings) -> ConnectionPool:
    """Create (but do not open) a connection pool returning dict rows."""
    return ConnectionPool(
        settings.database_url,
        min_size=settings.db_pool_min,
        max_size=settings.db_pool_max,
        kwargs={"row_factory": dict_row},
        open=False,
    )


class ImagesRepository:
    def __init__(self, pool: ConnectionPool):
        self._pool = pool

    def ensure_schema(self):
        try:
            with self._pool.connection() as conn:
                conn.execute(CREATE_TABLE_QUERY)
        except psycopg.Error as e:
            raise RepositoryError(f"creating images table failed with error: {e}") from e

    def save(self, image: Image) -> int:
        """Insert an image row and return its new id."""
        if image.original_id:
            query = INSERT_WITH_REFERENCE_QUERY
            params = (image.download_url, image.resolution, image.original_id)
        else:
            query = INSERT_WITHOUT_REFERENCE_QUERY
            params = (image.download_url, image.resolution)
        try:
            with self._pool.connection() as conn:
                row = conn.execute(query, params).fetchone()
        except psycopg.Error as e:
            raise RepositoryError(f"inserting of '{image}' to db failed with error: {e}") from e
        return row["id"]

    def all(self) -> list[OriginalResized]:
        """Return every original paired with each of its derivatives."""
        try:
            with self._pool.connection() as conn:
                rows = conn.execute(ALL_IMAGES_QUERY).fetchall()
        except psycopg.Error as e:
            raise RepositoryError(f"error getting all images from db: {e}") from e
        return [
            OriginalResized(
                original=Image(
                    id=row["original_id"],
                    download_url=row["original_download_url"],
                    resolution=row["original_resolution"],
                ),
                resized=Image(
                    id=row["resized_id"],
                    download_url=row["resized_download_url"],
                    resolution=row["resized_resolution"],
                    original_id=row["original_id"],
                ),
            )
            for row in rows
        ]

    def only_resized(self) -> list[Image]:
        try:
            with self._pool.connection() as conn:
                rows = conn.execute(ONLY_RESIZED_QUERY).fetchall()
        except psycopg.Error as e:
            raise RepositoryError(f"error getting only resized images from db: {e}") from e
        return [_row_to_image(row) for row in rows]

    def get_one(self, image_id: int) -> Image:
        try:
            with self._pool.connection() as conn:
                row = conn.execute(ONE_BY_ID_QUERY, (image_id,)).fetchone()
        except psycopg.Error as e:
            raise RepositoryError(f"error getting image by ID: {image_id}, error: {e}") from e
        if row is None:
            raise NotFoundError(f"image with ID {image_id} not found")
        return _row_to_image(row)
