"""
Password change cooldown tests.
"""
from core.rate_limit import InMemoryCooldownStore, is_cooling_down, start_cooldown
from tests.conftest import DEFAULT_PASSWORD, auth_headers, insert_user


class TestCooldownStore:
    """Pure cooldown checks"""

    def test_no_entry_means_no_cooldown(self):
        assert not is_cooling_down(1, 1000.0, InMemoryCooldownStore())

    def test_cooldown_expires(self):
        store = InMemoryCooldownStore()
        until = start_cooldown(1, 1000.0, 60, store)

        assert until == 1060.0
        assert is_cooling_down(1, 1059.9, store)
        assert not is_cooling_down(1, 1060.0, store)
        assert not is_cooling_down(2, 1030.0, store)


class TestPasswordChangeCooldown:
    """PATCH /api/me/password throttling"""

    async def test_second_change_within_a_minute_is_refused(self, client, db):
        await insert_user(db, 1)
        headers = auth_headers(1)

        first = await client.patch(
            "/api/me/password",
            json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "newsecret1"},
            headers=headers,
        )
        assert first.status_code == 200, f"Password change failed: {first.text}"
        assert first.json() == {"success": True}

        second = await client.patch(
            "/api/me/password",
            json={"currentPassword": "newsecret1", "newPassword": "newsecret2"},
            headers=headers,
        )
        assert second.status_code == 400
        assert second.json()["message"] == "Please wait 1 minute before changing password again"

    async def test_wrong_current_password(self, client, db):
        await insert_user(db, 1)

        response = await client.patch(
            "/api/me/password",
            json={"currentPassword": "not-it", "newPassword": "newsecret1"},
            headers=auth_headers(1),
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Current password is incorrect"
