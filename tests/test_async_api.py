# tests/test_async_api.py
import pytest
from httpx import ASGITransport, AsyncClient

from slot_booking.main import app


@pytest.fixture
async def async_client(client):
    # ``client`` installs the database override
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_booking_flow_async(async_client: AsyncClient):
    response = await async_client.post(
        "/api/bookings",
        json={
            "name": "Anil Verma",
            "phone": "+919812345678",
            "date": "2030-03-04",
            "time_slot": "10:30",
            "purpose": "Document verification",
            "location": "Records office",
        }
    )
    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Anil Verma"

    status = await async_client.get("/api/user/weekly-status", params={"phone": "+919812345678", "date": "2030-03-08"})
    assert status.json()["hasBookedThisWeek"] is True
