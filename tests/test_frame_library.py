import tempfile
import unittest
from pathlib import Path
import sys

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from storage.frame_library import FrameLibrary, make_frame_id, merge, sorted_by_timestamp
from storage.project_store import ProjectStore
from storage.records import ExtractedFrame


def frame(frame_id: str | None, timestamp: str, url: str | None = None) -> ExtractedFrame:
    return ExtractedFrame(
        id=frame_id,
        timestamp=timestamp,
        image_url=url or f"https://cdn.test/{frame_id or 'new'}.jpg",
    )


class TestFrameMerge(unittest.TestCase):
    def setUp(self) -> None:
        self.existing = {
            "f1": frame("f1", "00:10"),
            "f2": frame("f2", "00:20"),
            "f3": frame("f3", "00:30"),
        }

    def test_remerge_replaces_by_id(self) -> None:
        merged = merge(self.existing, [frame("f1", "00:15")])

        self.assertEqual(len(merged), 3)
        self.assertEqual(merged["f1"].timestamp, "00:15")
        self.assertEqual(self.existing["f1"].timestamp, "00:10")

    def test_novel_id_grows_by_one(self) -> None:
        merged = merge(self.existing, [frame("f4", "00:40")])

        self.assertEqual(len(merged), 4)
        self.assertEqual(list(merged), ["f1", "f2", "f3", "f4"])

    def test_merge_is_idempotent(self) -> None:
        batch = [frame("f2", "00:21"), frame("f9", "01:00")]

        once = merge(self.existing, batch)
        twice = merge(once, batch)

        self.assertEqual(once, twice)

    def test_missing_id_is_derived_from_timestamp(self) -> None:
        incoming = [frame(None, "01:02:03")]

        merged = merge(self.existing, incoming, now_ms=1700000000000)

        self.assertIn("frame-01-02-03-1700000000000", merged)
        self.assertEqual(make_frame_id("00:05", 42), "frame-00-05-42")
        self.assertIsNone(incoming[0].id)

    def test_last_write_wins_within_batch(self) -> None:
        merged = merge({}, [frame("a", "00:01", "https://x/1"), frame("a", "00:02", "https://x/2")])

        self.assertEqual(len(merged), 1)
        self.assertEqual(merged["a"].image_url, "https://x/2")

    def test_sorted_by_timestamp_mixes_formats(self) -> None:
        frames = [frame("a", "01:00:00"), frame("b", "59:59"), frame("c", "5"), frame("d", "00:30")]

        self.assertEqual([f.id for f in sorted_by_timestamp(frames)], ["c", "d", "b", "a"])


class TestFrameLibrary(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = ProjectStore(db_path=f"{self._tmp.name}/projects.db")
        self.store.init_db()
        self.project = self.store.create_project(title="Lecture", source_video_path="uploads/a.mp4")
        self.library = FrameLibrary(self.store)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_merge_and_save_persists_full_set(self) -> None:
        self.library.merge_and_save(self.project.id, [frame("f1", "00:10"), frame("f2", "00:20")])
        self.library.merge_and_save(self.project.id, [frame("f1", "00:12"), frame(None, "00:30")], now_ms=5)

        stored = self.store.require_project(self.project.id).extracted_frames

        self.assertEqual([f.id for f in stored], ["f1", "f2", "frame-00-30-5"])
        self.assertEqual(stored[0].timestamp, "00:12")

    def test_remove(self) -> None:
        self.library.merge_and_save(self.project.id, [frame("f1", "00:10"), frame("f2", "00:20")])

        remaining = self.library.remove(self.project.id, ["f1", "missing"])

        self.assertEqual(list(remaining), ["f2"])
        self.assertEqual(list(self.library.load(self.project.id)), ["f2"])

    def test_has_all_timestamps(self) -> None:
        self.library.merge_and_save(self.project.id, [frame("f1", "00:01:00"), frame("f2", "01:30")])

        self.assertTrue(self.library.has_all_timestamps(self.project.id, ["1:00", "90"]))
        self.assertFalse(self.library.has_all_timestamps(self.project.id, ["1:00", "02:00"]))
        self.assertFalse(self.library.has_all_timestamps(self.project.id, []))
        self.assertFalse(self.library.has_all_timestamps(self.project.id, ["not-a-time"]))


if __name__ == "__main__":
    unittest.main()
