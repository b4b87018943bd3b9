import unittest

from badged.service.aggregator import download_count, release_download_count


class TestAggregator(unittest.TestCase):
    def test_release_sums_asset_counts(self):
        """A single release counts the sum of its assets."""
        release = {"assets": [{"download_count": 10}, {"download_count": 15}]}
        self.assertEqual(release_download_count(release), 25)
        self.assertEqual(download_count(release), 25)

    def test_release_without_assets_is_zero(self):
        """Missing, null or empty asset lists count as zero."""
        self.assertEqual(download_count({"assets": []}), 0)
        self.assertEqual(download_count({"assets": None}), 0)
        self.assertEqual(download_count({"id": 1}), 0)

    def test_asset_without_counter_is_zero(self):
        release = {"assets": [{"name": "a.zip"}, {"download_count": None}, {"download_count": 3}]}
        self.assertEqual(download_count(release), 3)

    def test_page_sums_every_release(self):
        """A page of releases counts the sum of the per-release sums."""
        page = [
            {"assets": [{"download_count": 1}, {"download_count": 2}]},
            {"assets": []},
            {"assets": [{"download_count": 4}]},
        ]
        self.assertEqual(download_count(page), 7)

    def test_empty_page_is_zero(self):
        self.assertEqual(download_count([]), 0)

    def test_unexpected_bodies_never_raise(self):
        """Bodies of unexpected shape count as zero."""
        self.assertEqual(download_count(None), 0)
        self.assertEqual(download_count("not a release"), 0)
        self.assertEqual(download_count([None, 5, {"assets": "bad"}]), 0)


if __name__ == "__main__":
    unittest.main()
