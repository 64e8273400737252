from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from types import SimpleNamespace
from typing import Any

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from talkmate import crud
from talkmate.api.deps import get_db, get_llm_client, get_tts_client
from talkmate.core.supabase import get_supabase
from talkmate.main import app
from talkmate.storage import clear_url_cache

USER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
OTHER_USER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
USER_TOKEN = "user-token"
OTHER_TOKEN = "other-token"


class FakeBucket:
    """In-memory stand-in for a Supabase storage bucket, including folder listings."""

    def __init__(self, name: str = "tts-audio"):
        self.name = name
        self.objects: dict[str, bytes] = {}
        self.list_calls: list[tuple[str, dict]] = []
        self.remove_calls: list[list[str]] = []
        self.fail_list_for: set[str] = set()
        self.fail_remove_calls: set[int] = set()

    def list(self, path: str = "", options: dict | None = None) -> list[dict]:
        options = options or {}
        folder = path.strip("/")
        self.list_calls.append((folder, options))
        if folder in self.fail_list_for:
            raise RuntimeError(f"cannot list {folder}")

        prefix = f"{folder}/" if folder else ""
        files: dict[str, dict] = {}
        folders: dict[str, dict] = {}
        for key in self.objects:
            if not key.startswith(prefix):
                continue
            head, sep, _ = key[len(prefix):].partition("/")
            if sep:
                folders[head] = {"name": head, "id": None}
            else:
                files[head] = {"name": head, "id": f"obj-{key}"}
        entries = sorted([*folders.values(), *files.values()], key=lambda e: e["name"])
        search = options.get("search")
        if search:
            entries = [e for e in entries if search in e["name"]]
        offset = options.get("offset", 0)
        limit = options.get("limit", 100)
        return entries[offset:offset + limit]

    def upload(self, path: str, data: bytes, file_options: dict | None = None) -> dict:
        self.objects[path] = data
        return {"path": path}

    def remove(self, paths: list[str]) -> list[dict]:
        call_index = len(self.remove_calls)
        self.remove_calls.append(list(paths))
        if call_index in self.fail_remove_calls:
            raise RuntimeError("remove failed")
        for path in paths:
            self.objects.pop(path, None)
        return [{"name": p} for p in paths]

    def get_public_url(self, path: str) -> str:
        return f"https://storage.test/{self.name}/{path}?"


class FakeAdmin:
    def __init__(self):
        self.deleted: list[str] = []
        self.fail = False

    def delete_user(self, user_id: str) -> None:
        if self.fail:
            raise RuntimeError("admin api unavailable")
        self.deleted.append(user_id)


class FakeAuth:
    def __init__(self, users: dict[str, SimpleNamespace]):
        self.users = users
        self.admin = FakeAdmin()

    def get_user(self, token: str) -> SimpleNamespace:
        if token not in self.users:
            raise RuntimeError("invalid JWT")
        return SimpleNamespace(user=self.users[token])


class FakeStorage:
    def __init__(self):
        self.buckets: dict[str, FakeBucket] = {}

    def from_(self, name: str) -> FakeBucket:
        return self.buckets.setdefault(name, FakeBucket(name))


class FakeSupabase:
    def __init__(self):
        self.auth = FakeAuth(
            {
                USER_TOKEN: SimpleNamespace(
                    id=str(USER_ID), email="learner@example.com", user_metadata={"name": "Mina"}
                ),
                OTHER_TOKEN: SimpleNamespace(
                    id=str(OTHER_USER_ID), email=None, user_metadata={}
                ),
            }
        )
        self.storage = FakeStorage()

    @property
    def bucket(self) -> FakeBucket:
        return self.storage.from_("tts-audio")


class FakeLLM:
    """Replays queued model outputs. An Exception in a queue is raised instead of returned."""

    model_name = "fake-model"

    def __init__(self):
        self.chat_replies: list[Any] = []
        self.text_replies: list[Any] = []
        self.structured_replies: list[Any] = []
        self.chat_calls: list[list[dict[str, str]]] = []
        self.structured_calls: list[dict[str, Any]] = []

    @staticmethod
    def _next(queue: list[Any], default: Any) -> Any:
        value = queue.pop(0) if queue else default
        if isinstance(value, Exception):
            raise value
        return value

    async def generate_chat(self, messages, *, temperature: float = 0.7) -> str:
        self.chat_calls.append(messages)
        return self._next(self.chat_replies, "¡Hola! ¿Qué tal?")

    async def generate_text(self, system_prompt, user_prompt, *, temperature: float = 0.2) -> str:
        return self._next(self.text_replies, "¡Hola! Soy tu amiga. ¿Cómo estás?")

    async def generate_structured(self, system_prompt, user_prompt, response_schema):
        self.structured_calls.append(
            {"system_prompt": system_prompt, "user_prompt": user_prompt, "schema": response_schema}
        )
        value = self._next(self.structured_replies, None)
        if value is None:
            raise ValueError("no structured reply queued")
        return response_schema.model_validate(value)


class FakeTTS:
    def __init__(self):
        self.calls: list[tuple[str, str | None]] = []
        self.error: Exception | None = None

    async def synthesize(self, text: str, language: str | None = None) -> bytes:
        self.calls.append((text, language))
        if self.error is not None:
            raise self.error
        return b"ID3-fake-mp3"


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="db")
def db_fixture(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(name="supabase")
def supabase_fixture() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture(name="llm")
def llm_fixture() -> FakeLLM:
    return FakeLLM()


@pytest.fixture(name="tts")
def tts_fixture() -> FakeTTS:
    return FakeTTS()


@pytest.fixture(autouse=True)
def reset_url_cache():
    clear_url_cache()
    yield
    clear_url_cache()


@pytest.fixture(name="client")
def client_fixture(engine, supabase, llm, tts) -> Generator[TestClient, None, None]:
    def override_db():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_supabase] = lambda: supabase
    app.dependency_overrides[get_llm_client] = lambda: llm
    app.dependency_overrides[get_tts_client] = lambda: tts
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {USER_TOKEN}"}


@pytest.fixture
def other_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {OTHER_TOKEN}"}


@pytest.fixture
def consented(db) -> None:
    crud.record_consent(session=db, user_id=USER_ID)