from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from lingo_srs.config import Settings
from lingo_srs.main import app, get_service
from lingo_srs.services import FlashcardService


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(tmp_path, clock):
    service = FlashcardService(Settings(data_dir=tmp_path), clock=clock)
    service.load_data()
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_card(client, **overrides):
    payload = {"front": "marhaban", "back": "hello", "transliteration": "marhaban", "category": "Greeting"}
    payload.update(overrides)
    response = client.post("/cards", json=payload)
    assert response.status_code == 201
    return response.json()


def test_api_flow(client):
    # 1. Empty deck
    response = client.get("/stats")
    assert response.status_code == 200
    stats = response.json()
    assert stats["total_cards"] == 0
    assert stats["retention_rate"] == 0.0

    # 2. Add a card
    card = create_card(client)
    card_id = card["id"]
    assert card["interval"] == 0
    assert card["repetitions"] == 0
    assert card["ease_factor"] == 2.5

    # 3. Review it
    response = client.post(f"/cards/{card_id}/progress", json={"quality": 5})
    assert response.status_code == 200
    reviewed = response.json()
    assert reviewed["id"] == card_id
    assert reviewed["interval"] == 1
    assert reviewed["repetitions"] == 1
    assert reviewed["ease_factor"] == pytest.approx(2.6)

    response = client.post(f"/cards/{card_id}/progress", json={"quality": 4})
    assert response.json()["interval"] == 6

    # 4. Dashboard
    stats = client.get("/stats").json()
    assert stats["total_cards"] == 1
    assert stats["known_cards"] == 1
    assert stats["retention_rate"] == 100.0
    assert stats["due_now"] == 0
    assert stats["due_within"] == 1
    assert stats["categories"] == {"Greeting": 1}

    # 5. Delete
    response = client.delete(f"/cards/{card_id}")
    assert response.status_code == 200
    assert client.get(f"/cards/{card_id}").status_code == 404


def test_review_clamps_out_of_range_quality(client):
    card = create_card(client)
    response = client.post(f"/cards/{card['id']}/progress", json={"quality": 9})
    assert response.status_code == 200
    assert response.json()["ease_factor"] == pytest.approx(2.6)

    response = client.post(f"/cards/{card['id']}/progress", json={"quality": -4})
    assert response.status_code == 200
    body = response.json()
    assert body["repetitions"] == 0
    assert body["interval"] == 1


def test_review_rejects_non_integer_quality(client):
    card = create_card(client)
    response = client.post(f"/cards/{card['id']}/progress", json={"quality": "great"})
    assert response.status_code == 422


def test_review_unknown_card(client):
    response = client.post("/cards/does-not-exist/progress", json={"quality": 3})
    assert response.status_code == 404


def test_card_rejects_unknown_category_and_difficulty(client):
    payload = {"front": "kura", "back": "ball"}
    response = client.post("/cards", json={**payload, "category": "Sports"})
    assert response.status_code == 422
    response = client.post("/cards", json={**payload, "difficulty": "Expert"})
    assert response.status_code == 422

    card = create_card(client)
    response = client.put(f"/cards/{card['id']}", json={"difficulty": "Expert"})
    assert response.status_code == 422
    assert client.get("/cards", params={"category": "Sports"}).status_code == 422


def test_list_cards_with_filters(client):
    hello = create_card(client)
    peace = create_card(client, front="salam", back="peace")
    bread = create_card(client, front="khubz", back="bread", category="Food", difficulty="Intermediate")

    ids = [c["id"] for c in client.get("/cards").json()]
    assert ids == [hello["id"], peace["id"], bread["id"]]

    response = client.get("/cards", params={"category": "Greeting"})
    assert [c["id"] for c in response.json()] == [hello["id"], peace["id"]]
    response = client.get("/cards", params={"difficulty": "Intermediate"})
    assert [c["id"] for c in response.json()] == [bread["id"]]
    response = client.get("/cards", params={"limit": 1, "offset": 1})
    assert [c["id"] for c in response.json()] == [peace["id"]]

    assert client.get("/cards", params={"limit": 0}).status_code == 422
    assert client.get("/cards", params={"offset": -1}).status_code == 422


def test_card_example_and_media(client):
    card = create_card(
        client,
        example={"text": "marhaban ya sadiqi", "translation": "hello my friend"},
        audio_url="https://cdn.example.org/marhaban.mp3",
    )
    assert card["example"] == {
        "text": "marhaban ya sadiqi", "transliteration": "", "translation": "hello my friend",
    }
    assert card["audio_url"] == "https://cdn.example.org/marhaban.mp3"
    assert card["image_url"] == ""

    fetched = client.get(f"/cards/{card['id']}").json()
    assert fetched["example"]["text"] == "marhaban ya sadiqi"


def test_update_card(client):
    card = create_card(client)
    response = client.put(f"/cards/{card['id']}", json={"back": "hi"})
    assert response.status_code == 200
    assert response.json()["back"] == "hi"
    assert response.json()["front"] == "marhaban"

    assert client.put("/cards/missing", json={"back": "hi"}).status_code == 404
    assert client.delete("/cards/missing").status_code == 404


def test_due_and_forecast(client, clock):
    create_card(client)
    create_card(client, front="shukran", back="thank you")
    clock.advance(minutes=1)

    response = client.get("/cards/due")
    assert response.status_code == 200
    # new cards are due from the moment they are created
    assert len(response.json()) == 2

    response = client.get("/cards/forecast", params={"days": 3})
    assert response.json() == {"days": 3, "count": 2}

    response = client.get("/cards/forecast", params={"days": -1})
    assert response.json()["count"] == 0


def test_activity_and_reset(client):
    response = client.post("/learners/amal/activity")
    assert response.status_code == 200
    body = response.json()
    assert body["learner_id"] == "amal"
    assert body["streak"] == 0
    assert body["last_active_at"] is not None
    assert set(body) == {"learner_id", "streak", "last_active_at"}

    # same day: streak unchanged
    assert client.post("/learners/amal/activity").json()["streak"] == 0
    assert client.get("/stats", params={"learner_id": "amal"}).json()["streak"] == 0

    card = create_card(client)
    client.post(f"/cards/{card['id']}/progress", json={"quality": 5})
    response = client.post("/reset-progress")
    assert response.status_code == 200
    assert response.json() == {"reset": 1}

    card = client.get(f"/cards/{card['id']}").json()
    assert card["interval"] == 0
    assert card["ease_factor"] == 2.5


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


@patch("uvicorn.run")
def test_start_runs_uvicorn(mock_run):
    import start

    start.main()
    mock_run.assert_called_once()
    args, kwargs = mock_run.call_args
    assert args == ("lingo_srs.main:app",)
    assert kwargs["port"] == Settings().port
