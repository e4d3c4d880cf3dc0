import tempfile
import unittest
from pathlib import Path
import sys

from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from backend.main import app
from backend.services.project_jobs import ProjectJobConflictError, ProjectQueueStatus
from services.operation_tracker import OperationTracker
from storage.frame_library import FrameLibrary
from storage.project_store import ProjectStore
from storage.records import ExtractedFrame


class FakeJobs:
    def __init__(self, tracker: OperationTracker):
        self.tracker = tracker
        self.submitted: list[tuple] = []
        self.conflict = False

    def submit_chunk_preparation(self, project_id: str) -> str:
        if self.conflict:
            raise ProjectJobConflictError("cancelling")
        self.submitted.append(("chunks", project_id))
        return self.tracker.add("download", "Preparing audio chunks", status="pending")

    def submit_frame_capture(self, project_id: str, timestamps: list[str]) -> str:
        if self.conflict:
            raise ProjectJobConflictError("cancelling")
        self.submitted.append(("frames", project_id, timestamps))
        return self.tracker.add("frame_capture", "Capturing frames", status="pending")

    def get_status(self, project_id: str) -> ProjectQueueStatus:
        return ProjectQueueStatus(project_id=project_id, busy=bool(self.submitted), pending=len(self.submitted))

    def cancel(self, project_id: str) -> int:
        dropped = len(self.submitted)
        self.submitted = []
        return dropped


class TestApi(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = ProjectStore(db_path=f"{self._tmp.name}/projects.db")
        self.store.init_db()
        self.tracker = OperationTracker()
        self.jobs = FakeJobs(self.tracker)

        app.state.store = self.store
        app.state.library = FrameLibrary(self.store)
        app.state.tracker = self.tracker
        app.state.jobs = self.jobs

        self.client = TestClient(app)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def create_project(self, **overrides) -> dict:
        payload = {"title": "Lecture", "source_video_path": "uploads/lecture.mp4", **overrides}
        resp = self.client.post("/api/projects", json=payload)
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/api/health").json(), {"ok": True})

    def test_create_and_get_project(self) -> None:
        created = self.create_project(video_metadata={"duration": 90.5, "file_type": "video/mp4"})

        resp = self.client.get(f"/api/projects/{created['id']}")

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["title"], "Lecture")
        self.assertEqual(body["video_metadata"]["duration"], 90.5)
        self.assertEqual(body["extracted_frames"], [])

    def test_unknown_project_is_404(self) -> None:
        resp = self.client.get("/api/projects/missing")

        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"]["code"], "PROJECT_NOT_FOUND")
        self.assertEqual(self.client.post("/api/projects/missing/chunks").status_code, 404)

    def test_queue_chunk_preparation(self) -> None:
        project = self.create_project()

        resp = self.client.post(f"/api/projects/{project['id']}/chunks")

        self.assertEqual(resp.status_code, 202)
        op_id = resp.json()["operation_id"]
        self.assertEqual(self.jobs.submitted, [("chunks", project["id"])])
        self.assertEqual(self.client.get(f"/api/operations/{op_id}").json()["status"], "pending")

    def test_chunks_need_a_source_video(self) -> None:
        project = self.create_project(source_video_path=None)

        resp = self.client.post(f"/api/projects/{project['id']}/chunks")

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"]["code"], "NO_SOURCE_VIDEO")

    def test_queue_frame_capture_validates_timestamps(self) -> None:
        project = self.create_project()

        bad = self.client.post(f"/api/projects/{project['id']}/frames", json={"timestamps": ["soon"]})
        not_finite = self.client.post(f"/api/projects/{project['id']}/frames", json={"timestamps": ["00:10", "nan", "inf"]})
        good = self.client.post(f"/api/projects/{project['id']}/frames", json={"timestamps": [" 00:10 ", "1:00"]})

        self.assertEqual(bad.status_code, 422)
        self.assertEqual(not_finite.status_code, 422)
        self.assertEqual(good.status_code, 202)
        self.assertEqual(self.jobs.submitted, [("frames", project["id"], ["00:10", "1:00"])])

    def test_conflict_while_cancelling(self) -> None:
        project = self.create_project()
        self.jobs.conflict = True

        resp = self.client.post(f"/api/projects/{project['id']}/frames", json={"timestamps": ["00:10"]})

        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["detail"]["code"], "PROJECT_CANCELLING")

    def test_frames_listed_by_timestamp_and_deleted(self) -> None:
        project = self.create_project()
        app.state.library.merge_and_save(
            project["id"],
            [
                ExtractedFrame(id="late", timestamp="01:00:00", image_url="https://cdn.test/late.jpg"),
                ExtractedFrame(id="early", timestamp="00:05", image_url="https://cdn.test/early.jpg"),
            ],
        )

        listed = self.client.get(f"/api/projects/{project['id']}/frames").json()
        self.assertEqual([f["id"] for f in listed], ["early", "late"])

        resp = self.client.delete(f"/api/projects/{project['id']}/frames/early")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            [f["id"] for f in self.client.get(f"/api/projects/{project['id']}/frames").json()],
            ["late"],
        )
        self.assertEqual(self.client.delete(f"/api/projects/{project['id']}/frames/early").status_code, 404)

    def test_project_jobs_status_and_cancel(self) -> None:
        project = self.create_project()
        self.client.post(f"/api/projects/{project['id']}/chunks")

        status = self.client.get(f"/api/projects/{project['id']}/jobs").json()
        self.assertTrue(status["busy"])

        resp = self.client.delete(f"/api/projects/{project['id']}/jobs")
        self.assertEqual(resp.json(), {"project_id": project["id"], "cancelled": 1})

    def test_operations_listing_and_clearing(self) -> None:
        done = self.tracker.add("upload", "done")
        self.tracker.complete(done)
        running = self.tracker.add("chunking", "running")

        all_ops = self.client.get("/api/operations").json()
        active = self.client.get("/api/operations", params={"active": "true"}).json()

        self.assertEqual({op["id"] for op in all_ops}, {done, running})
        self.assertEqual([op["id"] for op in active], [running])

        self.assertEqual(self.client.delete("/api/operations/completed").status_code, 200)
        self.assertEqual([op["id"] for op in self.client.get("/api/operations").json()], [running])
        self.assertEqual(self.client.get("/api/operations/op-missing").status_code, 404)


if __name__ == "__main__":
    unittest.main()
