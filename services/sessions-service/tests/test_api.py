from conftest import USER_ID

FINISH_URL = "/workouts/sessions/finish"

PAYLOAD = {
    "started_at": "2025-01-05T17:00:00Z",
    "ended_at": "2025-01-05T18:15:00Z",
    "exercises": [
        {
            "exercise_id": "bench",
            "sets": [{"order_index": 1, "actual_reps": 5, "actual_weight_kg": 100}],
        }
    ],
}


async def test_finish_session_endpoint(client, profile):
    response = await client.post(FINISH_URL, json=PAYLOAD, headers={"X-User-Id": USER_ID})

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["session_id"] > 0
    assert body["xp_awarded"] == 50
    assert body["duration_seconds"] == 4500
    assert body["total_volume_kg"] == 500
    assert body["exercises_performed_summary"] == "Bench Press"
    assert body["rank_up_counts"] == {"muscle": 0, "muscle_group": 0, "overall": 0}


async def test_finish_requires_user_header(client, profile):
    response = await client.post(FINISH_URL, json=PAYLOAD)

    assert response.status_code == 401


async def test_finish_unknown_profile_returns_404(client, catalog):
    response = await client.post(FINISH_URL, json=PAYLOAD, headers={"X-User-Id": "ghost"})

    assert response.status_code == 404
    assert "ghost" in response.json()["detail"]


async def test_exercise_needs_exactly_one_reference(client, profile):
    payload = {
        **PAYLOAD,
        "exercises": [{"exercise_id": "bench", "custom_exercise_id": "mine", "sets": []}],
    }

    response = await client.post(FINISH_URL, json=payload, headers={"X-User-Id": USER_ID})

    assert response.status_code == 422


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
