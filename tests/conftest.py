"""Shared fixtures: supplier documents, scripted chat collaborators and in-memory storage."""

from __future__ import annotations

import copy
import io
import itertools
from typing import Any, Dict, List, Optional

import pytest
from PIL import Image
from pymongo import ReturnDocument

from src.agents.deck_agent.llm_client import LLMError
from src.db import deck_storage, jobs_dal
from src.deck_generation.fact_index import build_fact_index

SAMPLE_INPUT: Dict[str, Any] = {
    "Company Profile / 公司概況": {
        "Company English Name / 公司英文名": "Harbour Line Interiors Ltd",
        "Year Established / 成立年份": 2008,
        "Headquarters / 總部": "Hong Kong",
        "Number of Employees / 員工人數": 120,
    },
    "Services / 服務": [
        "Workplace interior design",
        "Design and build delivery",
        "Project management",
    ],
    "Selected Projects / 項目": [
        {
            "Project Name": "Central Tower Office Fit-out",
            "Area (sqft)": 45000,
            "Client": "Pacific Harbour Bank",
        }
    ],
    "Awards / 獎項": ["Asia Design Award 2019"],
    "Contact / 聯絡": {
        "Email / 電郵": "hello@harbourline.example",
        "Contact Number / 聯繫電話": "+852 2345 6789",
    },
    "Litigation / 訴訟": "None",
}

PROJECT_IMAGE = "https://cdn.example.com/projects/central-tower.jpg"
LOGO_IMAGE = "https://cdn.example.com/brand/logo.png"


@pytest.fixture
def sample_input() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_INPUT)


@pytest.fixture
def sample_input_with_images() -> Dict[str, Any]:
    data = copy.deepcopy(SAMPLE_INPUT)
    data["Selected Projects / 項目"][0]["Project Photo"] = PROJECT_IMAGE
    data["Company Logo"] = LOGO_IMAGE
    return data


@pytest.fixture
def fact_index(sample_input):
    return build_fact_index(sample_input)


# ---------------------------------------------------------------------------
# Chat collaborators


class ScriptedChat:
    """Returns queued responses in order; an Exception in the queue is raised instead."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, messages, *, temperature=0.2, timeout_s=30.0, model=None):
        self.calls.append({"messages": messages, "temperature": temperature, "timeout_s": timeout_s})
        if not self.responses:
            raise LLMError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return copy.deepcopy(response)


@pytest.fixture
def scripted_chat():
    return ScriptedChat


@pytest.fixture
def failing_chat():
    return ScriptedChat([])


# ---------------------------------------------------------------------------
# In-memory Mongo stand-ins


def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    return all(doc.get(key) == value for key, value in (query or {}).items())


class InMemoryCollection:
    """The subset of a pymongo collection the jobs DAL uses."""

    def __init__(self):
        self.docs: List[Dict[str, Any]] = []

    def insert_one(self, doc: Dict[str, Any]):
        self.docs.append(copy.deepcopy(doc))

    def find_one(self, query: Dict[str, Any]):
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find_one_and_update(self, query, update, sort=None, return_document=ReturnDocument.BEFORE):
        candidates = [doc for doc in self.docs if _matches(doc, query)]
        for field, direction in reversed(sort or []):
            candidates.sort(key=lambda d: d.get(field), reverse=direction < 0)
        if not candidates:
            return None
        target = candidates[0]
        before = copy.deepcopy(target)
        target.update(copy.deepcopy(update.get("$set") or {}))
        return copy.deepcopy(target) if return_document == ReturnDocument.AFTER else before


class _StoredFile:
    def __init__(self, file_id: int, data: bytes, filename: str):
        self._id = file_id
        self.data = data
        self.filename = filename

    def read(self) -> bytes:
        return self.data


class InMemoryGridFS:
    def __init__(self):
        self.files: List[_StoredFile] = []
        self._ids = itertools.count(1)

    def put(self, data: bytes, filename: str = "", **kwargs):
        stored = _StoredFile(next(self._ids), data, filename)
        self.files.append(stored)
        return stored._id

    def find(self, query: Dict[str, Any]):
        return [f for f in self.files if f.filename == query.get("filename")]

    def find_one(self, query: Dict[str, Any]):
        found = self.find(query)
        return found[-1] if found else None

    def delete(self, file_id):
        self.files = [f for f in self.files if f._id != file_id]


@pytest.fixture
def jobs_coll(monkeypatch):
    coll = InMemoryCollection()
    monkeypatch.setattr(jobs_dal, "get_jobs_coll", lambda: coll)
    return coll


@pytest.fixture
def deck_fs(monkeypatch):
    fs = InMemoryGridFS()
    monkeypatch.setattr(deck_storage, "get_deck_fs", lambda db=None: fs)
    return fs


# ---------------------------------------------------------------------------
# HTTP


def png_bytes(size=(64, 40), color=(40, 90, 160)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, content: bytes = b"", headers=None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 400
        self._payload = payload
        self.content = content
        self.text = "" if payload is None else str(payload)
        self.headers = headers or {}

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeSession:
    """Routes GET/request calls to canned responses keyed by URL."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = dict(responses or {})
        self.calls: List[Dict[str, Any]] = []

    def _respond(self, method: str, url: str, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.get(url)
        if isinstance(response, list):
            response = response.pop(0) if response else None
        if isinstance(response, Exception):
            raise response
        return response if response is not None else FakeResponse(404)

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)

    def request(self, method, url, **kwargs):
        return self._respond(method, url, **kwargs)


@pytest.fixture
def image_session():
    return FakeSession(
        {
            PROJECT_IMAGE: FakeResponse(200, content=png_bytes(), headers={"content-type": "image/png"}),
            LOGO_IMAGE: FakeResponse(200, content=png_bytes((40, 40)), headers={"content-type": "image/png"}),
        }
    )
