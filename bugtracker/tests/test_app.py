import os
import tempfile
import unittest
import uuid

from fastapi.testclient import TestClient

from bugtracker.app import create_app
from bugtracker.db import InMemoryBugStore, SqlBugStore
from bugtracker.dependencies import get_bug_store

SAMPLE_BUG = {
    "title": "Test Bug",
    "description": "This is a test bug for integration testing",
    "status": "open",
    "priority": "medium",
    "reportedBy": "Test User",
    "project": "Test Project",
    "stepsToReproduce": "1. Do this\n2. Then that",
}


def store_fields(**overrides) -> dict:
    fields = {
        "title": SAMPLE_BUG["title"],
        "description": SAMPLE_BUG["description"],
        "status": SAMPLE_BUG["status"],
        "priority": SAMPLE_BUG["priority"],
        "reported_by": SAMPLE_BUG["reportedBy"],
        "project": SAMPLE_BUG["project"],
        "steps_to_reproduce": SAMPLE_BUG["stepsToReproduce"],
    }
    fields.update(overrides)
    return fields


class BugApiTestCase(unittest.TestCase):
    def setUp(self):
        self.store = self.make_store()
        self.app = create_app()
        self.app.dependency_overrides[get_bug_store] = lambda: self.store
        self.client = TestClient(self.app)

    def make_store(self):
        return InMemoryBugStore()

    def tearDown(self):
        self.app.dependency_overrides.clear()


class CreateBugTests(BugApiTestCase):
    def test_create_bug(self):
        response = self.client.post("/api/bugs", json=SAMPLE_BUG)
        self.assertEqual(response.status_code, 201)
        self.assertIn("application/json", response.headers["content-type"])
        payload = response.json()
        self.assertTrue(payload["success"])
        data = payload["data"]
        self.assertEqual(data["title"], SAMPLE_BUG["title"])
        self.assertEqual(data["status"], "open")
        self.assertEqual(data["_id"], data["id"])
        self.assertIn("createdAt", data)
        self.assertIn("updatedAt", data)

        stored = self.store.get_bug(data["_id"])
        self.assertIsNotNone(stored)
        self.assertEqual(stored.description, SAMPLE_BUG["description"])

    def test_create_applies_defaults_and_trims(self):
        body = {
            "title": "  Spaced title  ",
            "description": "desc",
            "reportedBy": " Reporter ",
            "project": "Web",
        }
        response = self.client.post("/api/bugs", json=body)
        self.assertEqual(response.status_code, 201)
        data = response.json()["data"]
        self.assertEqual(data["title"], "Spaced title")
        self.assertEqual(data["reportedBy"], "Reporter")
        self.assertEqual(data["status"], "open")
        self.assertEqual(data["priority"], "medium")
        self.assertEqual(data["assignedTo"], "Unassigned")

    def test_missing_required_fields(self):
        response = self.client.post("/api/bugs", json={"title": "Incomplete Bug"})
        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertFalse(payload["success"])
        fields = {error["field"]: error["message"] for error in payload["errors"]}
        self.assertEqual(fields["description"], "Bug description is required")
        self.assertEqual(fields["reportedBy"], "Reporter name is required")
        self.assertEqual(fields["project"], "Project name is required")
        self.assertNotIn("title", fields)
        self.assertEqual(len(self.store.bugs), 0)

    def test_missing_title(self):
        body = dict(SAMPLE_BUG)
        del body["title"]
        response = self.client.post("/api/bugs", json=body)
        self.assertEqual(response.status_code, 400)
        errors = response.json()["errors"]
        self.assertEqual(
            errors, [{"field": "title", "message": "Bug title is required"}]
        )

    def test_blank_title_counts_as_missing(self):
        response = self.client.post("/api/bugs", json={**SAMPLE_BUG, "title": "   "})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"][0]["field"], "title")

    def test_title_too_long(self):
        response = self.client.post("/api/bugs", json={**SAMPLE_BUG, "title": "A" * 101})
        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertIn(
            {"field": "title", "message": "Title cannot be more than 100 characters"},
            payload["errors"],
        )

    def test_title_at_limit_is_accepted(self):
        response = self.client.post("/api/bugs", json={**SAMPLE_BUG, "title": "A" * 100})
        self.assertEqual(response.status_code, 201)

    def test_description_too_long(self):
        response = self.client.post(
            "/api/bugs", json={**SAMPLE_BUG, "description": "d" * 1001}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()["errors"],
            [
                {
                    "field": "description",
                    "message": "Description cannot be more than 1000 characters",
                }
            ],
        )

    def test_unknown_enum_values(self):
        response = self.client.post(
            "/api/bugs", json={**SAMPLE_BUG, "status": "done", "priority": "urgent"}
        )
        self.assertEqual(response.status_code, 400)
        fields = {error["field"]: error["message"] for error in response.json()["errors"]}
        self.assertEqual(
            fields["status"],
            "Status must be one of: open, in-progress, resolved, closed",
        )
        self.assertEqual(
            fields["priority"], "Priority must be one of: low, medium, high, critical"
        )


class ListBugTests(BugApiTestCase):
    def setUp(self):
        super().setUp()
        for title, status, priority in [
            ("Bug 1", "open", "low"),
            ("Bug 2", "in-progress", "medium"),
            ("Bug 3", "resolved", "high"),
            ("Bug 4", "open", "critical"),
        ]:
            self.store.create_bug(store_fields(title=title, status=status, priority=priority))

    def test_lists_all_bugs(self):
        response = self.client.get("/api/bugs")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(len(payload["data"]), 4)
        self.assertEqual(payload["count"], 4)
        self.assertEqual(payload["total"], 4)
        self.assertEqual(payload["totalPages"], 1)
        self.assertEqual(payload["currentPage"], 1)
        # Newest first by default.
        self.assertEqual(
            [bug["title"] for bug in payload["data"]], ["Bug 4", "Bug 3", "Bug 2", "Bug 1"]
        )

    def test_filter_by_status(self):
        payload = self.client.get("/api/bugs", params={"status": "open"}).json()
        self.assertEqual(len(payload["data"]), 2)
        self.assertTrue(all(bug["status"] == "open" for bug in payload["data"]))
        self.assertEqual(payload["total"], 2)

    def test_filter_by_priority(self):
        payload = self.client.get("/api/bugs", params={"priority": "high"}).json()
        self.assertEqual(len(payload["data"]), 1)
        self.assertEqual(payload["data"][0]["priority"], "high")

    def test_filters_combine(self):
        payload = self.client.get(
            "/api/bugs", params={"status": "open", "priority": "low"}
        ).json()
        self.assertEqual([bug["title"] for bug in payload["data"]], ["Bug 1"])

        payload = self.client.get(
            "/api/bugs", params={"status": "open", "project": "Elsewhere"}
        ).json()
        self.assertEqual(payload["data"], [])
        self.assertEqual(payload["totalPages"], 0)

    def test_empty_filter_is_ignored(self):
        payload = self.client.get("/api/bugs?status=&priority=").json()
        self.assertEqual(payload["total"], 4)

    def test_pagination(self):
        response = self.client.get("/api/bugs?limit=2&page=1")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(len(payload["data"]), 2)
        self.assertEqual(payload["count"], 2)
        self.assertEqual(payload["total"], 4)
        self.assertEqual(payload["totalPages"], 2)
        self.assertEqual(payload["currentPage"], 1)

        second = self.client.get("/api/bugs?limit=2&page=2").json()
        self.assertEqual(second["currentPage"], 2)
        first_ids = {bug["_id"] for bug in payload["data"]}
        second_ids = {bug["_id"] for bug in second["data"]}
        self.assertFalse(first_ids & second_ids)

    def test_sort(self):
        payload = self.client.get("/api/bugs", params={"sort": "title"}).json()
        self.assertEqual(
            [bug["title"] for bug in payload["data"]], ["Bug 1", "Bug 2", "Bug 3", "Bug 4"]
        )

    def test_invalid_paging_parameters(self):
        response = self.client.get("/api/bugs?page=0")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"][0]["field"], "page")

        response = self.client.get("/api/bugs?limit=abc")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"][0]["field"], "limit")

    def test_limit_is_clamped(self):
        payload = self.client.get("/api/bugs?limit=100000").json()
        self.assertEqual(payload["count"], 4)
        self.assertEqual(payload["totalPages"], 1)

    def test_page_far_past_the_end(self):
        response = self.client.get("/api/bugs?page=99999999999999999999&limit=2")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["data"], [])
        self.assertEqual(payload["count"], 0)
        self.assertEqual(payload["total"], 4)
        self.assertEqual(payload["totalPages"], 2)
        self.assertEqual(payload["currentPage"], 99999999999999999999)


class SqlListBugTests(ListBugTests):
    """Listing against a file-backed SQLite database."""

    def make_store(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        url = "sqlite+pysqlite:///" + os.path.join(self._tmpdir.name, "bugs.db")
        return SqlBugStore(url)

    def tearDown(self):
        super().tearDown()
        self.store.engine.dispose()
        self._tmpdir.cleanup()


class GetBugTests(BugApiTestCase):
    def setUp(self):
        super().setUp()
        self.bug = self.store.create_bug(store_fields())

    def test_get_bug(self):
        response = self.client.get(f"/api/bugs/{self.bug.bug_id}")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["data"]["_id"], self.bug.bug_id)
        self.assertEqual(payload["data"]["title"], SAMPLE_BUG["title"])

    def test_not_found(self):
        missing = uuid.uuid4().hex
        response = self.client.get(f"/api/bugs/{missing}")
        self.assertEqual(response.status_code, 404)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["message"], f"Bug not found with id {missing}")
        self.assertNotIn("errors", payload)

    def test_malformed_id(self):
        response = self.client.get("/api/bugs/invalidid")
        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["message"], "Invalid id")


class UpdateBugTests(BugApiTestCase):
    def setUp(self):
        super().setUp()
        self.bug = self.store.create_bug(store_fields())
        self.url = f"/api/bugs/{self.bug.bug_id}"

    def test_update_bug(self):
        created_at = self.bug.created_at
        updated_at = self.bug.updated_at
        response = self.client.put(
            self.url, json={"title": "Updated Bug Title", "status": "in-progress"}
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["title"], "Updated Bug Title")
        self.assertEqual(data["status"], "in-progress")
        self.assertEqual(data["description"], SAMPLE_BUG["description"])

        stored = self.store.get_bug(self.bug.bug_id)
        self.assertEqual(stored.created_at, created_at)
        self.assertGreater(stored.updated_at, updated_at)

    def test_invalid_status_transition(self):
        response = self.client.put(self.url, json={"status": "closed"})
        self.assertEqual(response.status_code, 200)

        response = self.client.put(
            self.url, json={"status": "in-progress", "title": "Should not stick"}
        )
        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertIn("Invalid status transition", payload["message"])
        self.assertEqual(
            payload["message"], "Invalid status transition from 'closed' to 'in-progress'"
        )

        stored = self.store.get_bug(self.bug.bug_id)
        self.assertEqual(stored.status.value, "closed")
        self.assertEqual(stored.title, SAMPLE_BUG["title"])

    def test_reopen_closed_bug(self):
        self.client.put(self.url, json={"status": "closed"})
        response = self.client.put(self.url, json={"status": "open"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["status"], "open")

    def test_same_status_update_is_allowed(self):
        self.client.put(self.url, json={"status": "closed"})
        response = self.client.put(
            self.url, json={"status": "closed", "assignedTo": "Dana"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["assignedTo"], "Dana")

    def test_update_validates_present_fields(self):
        response = self.client.put(self.url, json={"title": "A" * 101})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"][0]["field"], "title")

        response = self.client.put(self.url, json={"title": None})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()["errors"],
            [{"field": "title", "message": "Bug title is required"}],
        )

        response = self.client.put(self.url, json={"status": "done"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"][0]["field"], "status")

        self.assertEqual(self.store.get_bug(self.bug.bug_id).title, SAMPLE_BUG["title"])

    def test_update_not_found(self):
        response = self.client.put(f"/api/bugs/{uuid.uuid4().hex}", json={"title": "x"})
        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.json()["success"])

    def test_update_malformed_id(self):
        response = self.client.put("/api/bugs/not-an-id", json={"title": "x"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Invalid id")


class DeleteBugTests(BugApiTestCase):
    def setUp(self):
        super().setUp()
        self.bug = self.store.create_bug(store_fields())

    def test_delete_bug(self):
        response = self.client.delete(f"/api/bugs/{self.bug.bug_id}")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["data"], {})
        self.assertIn("successfully deleted", payload["message"])
        self.assertIsNone(self.store.get_bug(self.bug.bug_id))

    def test_delete_not_found(self):
        response = self.client.delete(f"/api/bugs/{uuid.uuid4().hex}")
        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.json()["success"])

    def test_delete_malformed_id(self):
        response = self.client.delete("/api/bugs/123")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(len(self.store.bugs), 1)


class StatsTests(BugApiTestCase):
    def test_stats(self):
        for title, status, priority, project in [
            ("Bug 1", "open", "low", "Project A"),
            ("Bug 2", "in-progress", "medium", "Project A"),
            ("Bug 3", "resolved", "high", "Project B"),
            ("Bug 4", "open", "critical", "Project C"),
            ("Bug 5", "open", "medium", "Project A"),
        ]:
            self.store.create_bug(
                store_fields(title=title, status=status, priority=priority, project=project)
            )

        response = self.client.get("/api/bugs/stats")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        data = payload["data"]
        self.assertEqual(set(data), {"status", "priority", "projects"})

        open_bugs = next(group for group in data["status"] if group["_id"] == "open")
        self.assertEqual(open_bugs["count"], 3)
        project_a = next(group for group in data["projects"] if group["_id"] == "Project A")
        self.assertEqual(project_a["count"], 3)
        self.assertEqual(data["projects"][0]["_id"], "Project A")
        # Statuses with no bugs are omitted.
        self.assertNotIn("closed", [group["_id"] for group in data["status"]])

    def test_stats_empty(self):
        payload = self.client.get("/api/bugs/stats").json()
        self.assertEqual(payload["data"], {"status": [], "priority": [], "projects": []})


class ServiceTests(BugApiTestCase):
    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_unknown_route(self):
        response = self.client.get("/api/nothing-here")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(
            response.json(),
            {"success": False, "message": "Not Found - /api/nothing-here"},
        )

    def test_server_error_hides_details(self):
        class BrokenStore(InMemoryBugStore):
            def list_bugs(self, query):
                raise RuntimeError("connection refused by db-host-7")

        self.app.dependency_overrides[get_bug_store] = lambda: BrokenStore()
        client = TestClient(self.app, raise_server_exceptions=False)
        with self.assertLogs("bugtracker.app", level="ERROR"):
            response = client.get("/api/bugs")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"success": False, "message": "Server Error"})
        self.assertNotIn("db-host-7", response.text)


if __name__ == "__main__":
    unittest.main()
