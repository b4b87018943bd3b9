import sqlite3
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from badged.config.settings import Settings
from badged.repository.base_repository import CacheRepository, CacheUnavailableError
from badged.repository.file_repository import FileRepository
from badged.schema.cache import PageRecord, SingleReleaseRecord, TotalRecord

UPDATED = datetime(2026, 10, 2, 12, tzinfo=timezone.utc)


def release_record(key: str = "/acme/widget", count: int = 25) -> SingleReleaseRecord:
    return SingleReleaseRecord(
        key=key,
        source_uri="https://api.github.com/repos/acme/widget/releases/latest",
        release_id=1,
        tag="v1.0",
        etag='"v1"',
        count=count,
        last_updated=UPDATED,
    )


class TestFileRepository(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = str(Path(self.tmp.name) / "badged.cache")
        self.repo = FileRepository(Settings(_env_file=None, cache_file_path=self.db_path))

    def tearDown(self):
        self.tmp.cleanup()

    def test_implements_protocol(self):
        self.assertIsInstance(self.repo, CacheRepository)

    async def test_find_missing_key_returns_none(self):
        self.assertIsNone(await self.repo.find_one("/nobody/nothing"))

    async def test_insert_then_find(self):
        record = release_record()

        self.assertTrue(await self.repo.insert_one(record))
        found = await self.repo.find_one(record.key)

        self.assertEqual(found, record)

    async def test_insert_never_overwrites(self):
        """A key is created once; a second insert reports failure."""
        await self.repo.insert_one(release_record(count=25))

        self.assertFalse(await self.repo.insert_one(release_record(count=99)))
        self.assertEqual((await self.repo.find_one("/acme/widget")).count, 25)

    async def test_update_merges_fields(self):
        await self.repo.insert_one(release_record())

        self.assertTrue(await self.repo.update_one("/acme/widget", {"requests": 2}))
        found = await self.repo.find_one("/acme/widget")

        self.assertEqual(found.requests, 2)
        self.assertEqual(found.count, 25)
        self.assertEqual(found.etag, '"v1"')

    async def test_update_missing_key_fails(self):
        self.assertFalse(await self.repo.update_one("/acme/widget", {"requests": 2}))

    async def test_total_record_round_trip_keeps_page_numbers(self):
        pages = {
            n: PageRecord(page=n, etag=f'"p{n}"', source_uri=f"/releases?page={n}", count=n * 10)
            for n in (1, 2)
        }
        record = TotalRecord(
            key="/acme/widget/total",
            source_uri="/repos/acme/widget/releases",
            pages=pages,
            last_page=2,
            count=30,
            last_updated=UPDATED,
        )
        await self.repo.insert_one(record)

        found = await self.repo.find_one(record.key)

        self.assertIsInstance(found, TotalRecord)
        self.assertEqual(sorted(found.pages), [1, 2])
        self.assertEqual(found.pages[2].count, 20)
        self.assertEqual(found.last_updated, UPDATED)

    async def test_corrupt_document_raises_cache_unavailable(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO downloads (key, document) VALUES (?, ?)",
                ("/broken", '{"kind": "release"}'),
            )
            conn.commit()

        with self.assertRaises(CacheUnavailableError):
            await self.repo.find_one("/broken")


if __name__ == "__main__":
    unittest.main()
