import uuid
from unittest.mock import patch

from sqlalchemy.exc import OperationalError
from sqlmodel import select

from talkmate import crud
from talkmate.models import LearningCard
from talkmate.tests.conftest import OTHER_USER_ID, USER_ID

PROMPT = {"prompt": "해변에 갔어.", "hint": "ir → fui"}


def test_guest_card_is_not_stored(client, db, llm):
    llm.structured_replies.append(PROMPT)

    response = client.post("/api/v1/learning/prepare", json={"text": "Fui a la playa."})

    assert response.status_code == 200
    assert response.json() == {"card_id": None, "prompt": "해변에 갔어.", "hint": "ir → fui", "warning": None}
    assert db.exec(select(LearningCard)).all() == []


def test_signed_in_card_is_stored_and_reused(client, db, llm, auth_headers):
    chat_session = crud.create_chat_session(
        session=db, user_id=USER_ID, language_code="es", level_code="beginner", persona_code="friend"
    )
    message_id = str(uuid.uuid4())
    body = {"text": " Fui a la playa. ", "session_id": str(chat_session.id), "message_id": message_id}
    llm.structured_replies.append(PROMPT)

    first = client.post("/api/v1/learning/prepare", json=body, headers=auth_headers).json()
    second = client.post("/api/v1/learning/prepare", json=body, headers=auth_headers).json()

    assert first["card_id"] is not None
    assert second == first
    assert len(llm.structured_calls) == 1
    card = db.exec(select(LearningCard)).one()
    assert card.target_text == "Fui a la playa."
    assert card.session_id == chat_session.id


def test_cached_card_is_per_ui_language(client, db, llm, auth_headers):
    english = {"prompt": "I went to the beach.", "hint": "ir → fui"}
    llm.structured_replies.extend([PROMPT, english])
    body = {"text": "Fui a la playa."}

    korean = client.post("/api/v1/learning/prepare", json={**body, "ui_lang": "ko"}, headers=auth_headers)
    first_en = client.post("/api/v1/learning/prepare", json={**body, "ui_lang": "en"}, headers=auth_headers)
    again_en = client.post("/api/v1/learning/prepare", json={**body, "ui_lang": "en"}, headers=auth_headers)

    assert korean.json()["prompt"] == "해변에 갔어."
    assert first_en.json()["prompt"] == again_en.json()["prompt"] == "I went to the beach."
    assert len(llm.structured_calls) == 2
    assert sorted(c.ui_lang for c in db.exec(select(LearningCard)).all()) == ["en", "ko"]


def test_failed_insert_still_returns_the_card(client, llm, auth_headers):
    llm.structured_replies.append(PROMPT)

    with patch(
        "talkmate.api.routes.learning.crud.create_learning_card",
        side_effect=OperationalError("INSERT", {}, Exception("disk full")),
    ):
        response = client.post(
            "/api/v1/learning/prepare", json={"text": "Fui a la playa."}, headers=auth_headers
        )

    assert response.status_code == 200
    body = response.json()
    assert body["card_id"] is None
    assert body["prompt"] == "해변에 갔어."
    assert body["warning"]


def test_prepare_requires_text(client):
    assert client.post("/api/v1/learning/prepare", json={}).json()["detail"] == "NO_TEXT"
    assert client.post("/api/v1/learning/prepare", json={"text": " "}).json()["detail"] == "EMPTY_TEXT"


def _card(db, owner=USER_ID) -> LearningCard:
    return crud.create_learning_card(
        session=db, user_id=owner, target_text="Fui a la playa.", prompt_text="해변에 갔어.", hint=""
    )


def test_answer_is_graded(client, db, llm, auth_headers):
    card = _card(db)
    llm.structured_replies.append(
        {"correct_answer": "Fui a la playa.", "tip": "좋아!", "is_correct": True}
    )

    response = client.post(
        "/api/v1/learning/answer",
        json={"card_id": str(card.id), "user_answer": "Fui a la playa"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json() == {"correct_answer": "Fui a la playa.", "tip": "좋아!", "is_correct": True}


def test_answer_checks_card_ownership(client, db, auth_headers):
    theirs = _card(db, owner=OTHER_USER_ID)

    forbidden = client.post(
        "/api/v1/learning/answer",
        json={"card_id": str(theirs.id), "user_answer": "x"},
        headers=auth_headers,
    )
    missing = client.post(
        "/api/v1/learning/answer",
        json={"card_id": str(uuid.uuid4()), "user_answer": "x"},
        headers=auth_headers,
    )

    assert (forbidden.status_code, forbidden.json()["detail"]) == (403, "FORBIDDEN")
    assert (missing.status_code, missing.json()["detail"]) == (404, "CARD_NOT_FOUND")


def test_answer_respects_the_learning_limit(client, db, auth_headers):
    card = _card(db)
    for _ in range(10):
        crud.consume_usage(session=db, user_id=USER_ID, kind="learning", plan="standard")

    response = client.post(
        "/api/v1/learning/answer",
        json={"card_id": str(card.id), "user_answer": "x"},
        headers=auth_headers,
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "LEARNING_LIMIT_EXCEEDED"


def test_answer_requires_a_token(client):
    response = client.post(
        "/api/v1/learning/answer", json={"card_id": str(uuid.uuid4()), "user_answer": "x"}
    )
    assert response.status_code == 401
