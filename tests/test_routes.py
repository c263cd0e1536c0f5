import pytest

from app import create_app
from src.agents.deck_agent import routes
from src.db import deck_storage, jobs_dal


@pytest.fixture
def client(jobs_coll, deck_fs, monkeypatch):
    monkeypatch.delenv("WORKER_SECRET", raising=False)
    app = create_app({"TESTING": True})
    return app.test_client()


def _finished_job(sample_input, data=b"PK-deck"):
    job = jobs_dal.create_job("deck", sample_input)
    jobs_dal.update_job(job["id"], {"status": "running"})
    path = deck_storage.save_deck(job["id"], data)
    return jobs_dal.complete_job(job["id"], {"meta": {"finalOutline": ["Cover"]}, "slides": []}, path)


class TestGenerate:
    def test_creates_pending_job(self, client, sample_input, jobs_coll):
        response = client.post("/api/deck/generate", json={"prompt": "Company deck", "dataJson": sample_input})
        assert response.status_code == 200
        job_id = response.get_json()["jobId"]
        assert jobs_dal.get_job(job_id)["status"] == "pending"

    @pytest.mark.parametrize(
        "body",
        [{"prompt": "x"}, {"dataJson": "text"}, {"dataJson": {}, "prompt": 5}],
    )
    def test_rejects_bad_bodies(self, client, body):
        response = client.post("/api/deck/generate", json=body)
        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_rejects_non_json(self, client):
        response = client.post("/api/deck/generate", data="nope", content_type="text/plain")
        assert response.status_code == 400


class TestStatus:
    def test_requires_job_id(self, client):
        assert client.get("/api/deck/status").status_code == 400

    def test_unknown_job(self, client):
        assert client.get("/api/deck/status?jobId=missing").status_code == 404

    def test_pending_job(self, client, sample_input):
        job = jobs_dal.create_job("deck", sample_input)
        body = client.get(f"/api/deck/status?jobId={job['id']}").get_json()
        assert body["status"] == "pending"
        assert body["progress"] == 0
        assert "downloadUrl" not in body
        assert body["debug"]["finalOutline"] == []

    def test_done_job_links_download(self, client, sample_input):
        job = _finished_job(sample_input)
        body = client.get(f"/api/deck/status?jobId={job['id']}").get_json()
        assert body["status"] == "done"
        assert body["downloadUrl"] == f"/api/deck/download/{job['id']}"
        assert body["debug"]["finalOutline"] == ["Cover"]


class TestWorker:
    def test_empty_queue(self, client):
        body = client.post("/api/deck/worker").get_json()
        assert body == {"ok": True, "processedJobId": None, "error": None}

    def test_processes_claimed_job(self, client, sample_input, monkeypatch):
        seen = []

        def fake_process(job):
            seen.append(job)
            return {"ok": True, "processedJobId": job["id"]}

        monkeypatch.setattr(routes, "process_one_job", fake_process)
        job = jobs_dal.create_job("deck", sample_input)
        body = client.post("/api/deck/worker").get_json()
        assert body == {"ok": True, "processedJobId": job["id"], "error": None}
        assert seen[0]["status"] == "running"

    def test_secret_is_enforced(self, client, monkeypatch):
        monkeypatch.setenv("WORKER_SECRET", "s3cret")
        assert client.post("/api/deck/worker").status_code == 401
        authorized = client.post("/api/deck/worker", headers={"Authorization": "Bearer s3cret"})
        assert authorized.status_code == 200


class TestDownload:
    def test_download_finished_deck(self, client, sample_input):
        job = _finished_job(sample_input)
        response = client.get(f"/api/deck/download/{job['id']}")
        assert response.status_code == 200
        assert response.data == b"PK-deck"
        assert response.mimetype == deck_storage.PPTX_CONTENT_TYPE
        assert f"deck-{job['id']}.pptx" in response.headers["Content-Disposition"]

    def test_unfinished_deck(self, client, sample_input):
        job = jobs_dal.create_job("deck", sample_input)
        assert client.get(f"/api/deck/download/{job['id']}").status_code == 404

    def test_unknown_job(self, client):
        assert client.get("/api/deck/download/missing").status_code == 404


class TestApp:
    def test_health(self, client, monkeypatch):
        monkeypatch.setenv("DECK_GENERATION_MODE", "remote")
        assert client.get("/healthz").get_json() == {"ok": True, "mode": "remote"}
        assert client.get("/").get_json()["status"] == "ok"
