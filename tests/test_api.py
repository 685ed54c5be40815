"""Integration tests for the BookNet HTTP API."""

from uuid import uuid4

import pytest
from httpx import AsyncClient

from booknet.core.dependencies import get_preference_refresher
from booknet.infrastructure.tasks.refreshers import InProcessPreferenceRefresher
from booknet.main import app

from conftest import auth_headers


async def _register(client: AsyncClient, title: str, author: str, genres: list[str]) -> dict:
    resp = await client.post(
        "/books",
        json={
            "external_id": f"ol-{uuid4().hex[:10]}",
            "title": title,
            "author": author,
            "genres": genres,
        },
    )
    assert resp.status_code == 201
    return resp.json()


# ── Auth ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_unauthenticated_access(client: AsyncClient):
    resp = await client.get("/recommendations")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token(client: AsyncClient):
    resp = await client.get(
        "/recommendations", headers={"Authorization": "Bearer not-a-real-token"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_token_for_missing_user(client: AsyncClient):
    resp = await client.get("/recommendations", headers=auth_headers(uuid4()))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_inactive_user_rejected(client: AsyncClient, factory):
    user = await factory.user(is_active=False)
    resp = await client.get("/recommendations", headers=auth_headers(user.id))
    assert resp.status_code == 401


# ── Catalog ────────────────────────────────────────


@pytest.mark.asyncio
async def test_register_and_fetch_book(auth_client: AsyncClient):
    book = await _register(auth_client, "Dune", "Frank Herbert", ["Sci-Fi", "Sci-Fi", "Classic"])
    assert book["genres"] == ["Sci-Fi", "Classic"]
    assert book["average_rating"] == 0.0
    assert book["total_ratings"] == 0

    resp = await auth_client.get(f"/books/{book['id']}")
    assert resp.status_code == 200
    assert resp.json()["title"] == "Dune"


@pytest.mark.asyncio
async def test_register_duplicate_external_id(auth_client: AsyncClient):
    payload = {"external_id": "ol-dune", "title": "Dune", "author": "Frank Herbert"}
    assert (await auth_client.post("/books", json=payload)).status_code == 201
    resp = await auth_client.post("/books", json=payload)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_missing_book(auth_client: AsyncClient):
    resp = await auth_client.get(f"/books/{uuid4()}")
    assert resp.status_code == 404


# ── Library ────────────────────────────────────────


@pytest.mark.asyncio
async def test_add_to_library_schedules_refresh(auth_client: AsyncClient, reader, refresher):
    book = await _register(auth_client, "The Hobbit", "J.R.R. Tolkien", ["Fantasy"])

    resp = await auth_client.post("/library", json={"book_id": book["id"], "status": "read"})

    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "read"
    assert data["title"] == "The Hobbit"
    assert data["date_completed"] is not None
    assert resp.headers["X-Task-ID"] == "task-123"
    assert refresher.calls == [reader.id]


@pytest.mark.asyncio
async def test_add_duplicate_to_library(auth_client: AsyncClient, refresher):
    book = await _register(auth_client, "The Hobbit", "J.R.R. Tolkien", ["Fantasy"])
    await auth_client.post("/library", json={"book_id": book["id"]})

    resp = await auth_client.post("/library", json={"book_id": book["id"]})

    assert resp.status_code == 409
    assert len(refresher.calls) == 1


@pytest.mark.asyncio
async def test_add_unknown_book_to_library(auth_client: AsyncClient, refresher):
    resp = await auth_client.post("/library", json={"book_id": str(uuid4())})
    assert resp.status_code == 404
    assert refresher.calls == []


@pytest.mark.asyncio
async def test_invalid_status_rejected(auth_client: AsyncClient):
    book = await _register(auth_client, "The Hobbit", "J.R.R. Tolkien", ["Fantasy"])
    resp = await auth_client.post("/library", json={"book_id": book["id"], "status": "finished"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_status_change_stamps_dates(auth_client: AsyncClient):
    book = await _register(auth_client, "The Hobbit", "J.R.R. Tolkien", ["Fantasy"])
    await auth_client.post("/library", json={"book_id": book["id"]})

    resp = await auth_client.patch(f"/library/{book['id']}/status", json={"status": "reading"})

    assert resp.status_code == 200
    assert resp.json()["status"] == "reading"
    assert resp.json()["date_started"] is not None
    assert resp.json()["date_completed"] is None


@pytest.mark.asyncio
async def test_list_library_by_status(auth_client: AsyncClient):
    hobbit = await _register(auth_client, "The Hobbit", "J.R.R. Tolkien", ["Fantasy"])
    dune = await _register(auth_client, "Dune", "Frank Herbert", ["Sci-Fi"])
    await auth_client.post("/library", json={"book_id": hobbit["id"], "status": "read"})
    await auth_client.post("/library", json={"book_id": dune["id"]})

    everything = await auth_client.get("/library")
    finished = await auth_client.get("/library", params={"status": "read"})

    assert len(everything.json()) == 2
    assert [e["title"] for e in finished.json()] == ["The Hobbit"]
    assert finished.json()[0]["genres"] == ["Fantasy"]


# ── Ratings ────────────────────────────────────────


@pytest.mark.asyncio
async def test_rating_updates_book_aggregate(auth_client: AsyncClient, refresher):
    book = await _register(auth_client, "The Hobbit", "J.R.R. Tolkien", ["Fantasy"])
    await auth_client.post("/library", json={"book_id": book["id"], "status": "read"})

    resp = await auth_client.patch(f"/library/{book['id']}/rating", json={"rating": 4.5})

    assert resp.status_code == 200
    assert resp.json()["rating"] == 4.5
    assert resp.json()["book_average_rating"] == 4.5
    assert resp.json()["book_total_ratings"] == 1
    assert len(refresher.calls) == 2

    stored = await auth_client.get(f"/books/{book['id']}")
    assert stored.json()["average_rating"] == 4.5
    assert stored.json()["total_ratings"] == 1


@pytest.mark.asyncio
async def test_rerating_does_not_double_count(auth_client: AsyncClient):
    book = await _register(auth_client, "The Hobbit", "J.R.R. Tolkien", ["Fantasy"])
    await auth_client.post("/library", json={"book_id": book["id"], "status": "read"})
    await auth_client.patch(f"/library/{book['id']}/rating", json={"rating": 5})

    resp = await auth_client.patch(f"/library/{book['id']}/rating", json={"rating": 3})

    assert resp.json()["book_average_rating"] == 3.0
    assert resp.json()["book_total_ratings"] == 1


@pytest.mark.asyncio
async def test_off_scale_rating_rejected(auth_client: AsyncClient, refresher):
    book = await _register(auth_client, "The Hobbit", "J.R.R. Tolkien", ["Fantasy"])
    await auth_client.post("/library", json={"book_id": book["id"]})

    resp = await auth_client.patch(f"/library/{book['id']}/rating", json={"rating": 4.3})

    assert resp.status_code == 400
    assert len(refresher.calls) == 1


@pytest.mark.asyncio
async def test_rating_book_not_in_library(auth_client: AsyncClient):
    book = await _register(auth_client, "The Hobbit", "J.R.R. Tolkien", ["Fantasy"])
    resp = await auth_client.patch(f"/library/{book['id']}/rating", json={"rating": 4})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_removing_rated_entry_withdraws_rating(auth_client: AsyncClient):
    book = await _register(auth_client, "The Hobbit", "J.R.R. Tolkien", ["Fantasy"])
    await auth_client.post("/library", json={"book_id": book["id"], "status": "read"})
    await auth_client.patch(f"/library/{book['id']}/rating", json={"rating": 4})

    resp = await auth_client.delete(f"/library/{book['id']}")
    assert resp.status_code == 200

    stored = await auth_client.get(f"/books/{book['id']}")
    assert stored.json()["average_rating"] == 0.0
    assert stored.json()["total_ratings"] == 0
    assert (await auth_client.delete(f"/library/{book['id']}")).status_code == 404


# ── Favorites ──────────────────────────────────────


@pytest.mark.asyncio
async def test_favorite_lifecycle(auth_client: AsyncClient, refresher):
    book = await _register(auth_client, "Dune", "Frank Herbert", ["Sci-Fi"])

    assert (await auth_client.put(f"/library/{book['id']}/favorite")).status_code == 200
    assert (await auth_client.put(f"/library/{book['id']}/favorite")).status_code == 409
    assert (await auth_client.delete(f"/library/{book['id']}/favorite")).status_code == 200
    assert (await auth_client.delete(f"/library/{book['id']}/favorite")).status_code == 404
    assert len(refresher.calls) == 2


@pytest.mark.asyncio
async def test_no_task_header_without_task_id(auth_client: AsyncClient, refresher):
    refresher.task_id = None
    book = await _register(auth_client, "Dune", "Frank Herbert", ["Sci-Fi"])

    resp = await auth_client.post("/library", json={"book_id": book["id"]})

    assert resp.status_code == 201
    assert "X-Task-ID" not in resp.headers


# ── Recommendations ────────────────────────────────


@pytest.mark.asyncio
async def test_recommendations_follow_refreshed_preferences(auth_client: AsyncClient):
    hobbit = await _register(auth_client, "The Hobbit", "J.R.R. Tolkien", ["Fantasy"])
    await _register(auth_client, "The Silmarillion", "J.R.R. Tolkien", ["Fantasy"])
    await _register(auth_client, "Gone Girl", "Gillian Flynn", ["Mystery"])
    await auth_client.post("/library", json={"book_id": hobbit["id"], "status": "read"})
    await auth_client.patch(f"/library/{hobbit['id']}/rating", json={"rating": 5})

    resp = await auth_client.post("/recommendations/refresh")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Preferences updated successfully"}

    resp = await auth_client.get("/recommendations")
    assert resp.status_code == 200
    data = resp.json()
    assert [r["title"] for r in data["recommendations"]] == ["The Silmarillion"]
    assert data["based_on"] == {"top_genres": ["Fantasy"], "top_authors": ["J.R.R. Tolkien"]}


@pytest.mark.asyncio
async def test_recommendations_without_history(auth_client: AsyncClient):
    await _register(auth_client, "Dune", "Frank Herbert", ["Sci-Fi"])

    resp = await auth_client.get("/recommendations", params={"limit": 5})

    assert resp.status_code == 200
    data = resp.json()
    assert [r["title"] for r in data["recommendations"]] == ["Dune"]
    assert data["based_on"] == {"top_genres": [], "top_authors": []}


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", ["0", "abc"])
async def test_bad_limit_rejected(auth_client: AsyncClient, limit):
    resp = await auth_client.get("/recommendations", params={"limit": limit})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_genre_recommendations(auth_client: AsyncClient):
    await _register(auth_client, "Dune", "Frank Herbert", ["Sci-Fi"])
    await _register(auth_client, "Gone Girl", "Gillian Flynn", ["Mystery"])

    resp = await auth_client.get("/recommendations/genres", params={"genre": "Mystery"})

    assert resp.status_code == 200
    assert [r["title"] for r in resp.json()["recommendations"]] == ["Gone Girl"]


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [{}, {"genre": ""}, {"genre": "   "}])
async def test_genre_required(auth_client: AsyncClient, params):
    resp = await auth_client.get("/recommendations/genres", params=params)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Genre query parameter required"


@pytest.mark.asyncio
async def test_profile_before_first_refresh(auth_client: AsyncClient, reader):
    resp = await auth_client.get("/recommendations/profile")
    assert resp.status_code == 200
    data = resp.json()
    assert data["user_id"] == str(reader.id)
    assert data["preferred_genres"] == {}
    assert data["last_computed_at"] is None


@pytest.mark.asyncio
async def test_in_process_refresh_updates_profile(auth_client: AsyncClient, session_maker):
    in_process = InProcessPreferenceRefresher(session_maker)
    app.dependency_overrides[get_preference_refresher] = lambda: in_process
    book = await _register(auth_client, "Dune", "Frank Herbert", ["Sci-Fi"])

    resp = await auth_client.post("/library", json={"book_id": book["id"], "status": "read"})
    assert resp.status_code == 201
    assert resp.headers["X-Task-ID"].startswith("preferences.recompute:")
    await in_process.drain()
    await auth_client.patch(f"/library/{book['id']}/rating", json={"rating": 5})
    await in_process.drain()
    assert in_process.pending == 0

    profile = (await auth_client.get("/recommendations/profile")).json()
    assert profile["preferred_genres"] == {"Sci-Fi": 1.0}
    assert profile["preferred_authors"] == {"Frank Herbert": 1.0}
    assert profile["total_books_read"] == 1
