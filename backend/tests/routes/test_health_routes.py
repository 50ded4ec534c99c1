def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["realtime"] is False
    assert body["timestamp"].endswith("Z")


def test_metrics_exposition(client):
    # one booking so the outcome counter has a sample
    client.post(
        "/api/bookings/create",
        json={
            "name": "Dana Reyes",
            "date": "2030-05-17",
            "time": "10:00",
            "hours": 1,
            "paymentMethod": "cash",
        },
    )

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    text = response.text
    assert "mixlab_booking_outcomes_total" in text
    assert "mixlab_service_operation_duration_seconds" in text
