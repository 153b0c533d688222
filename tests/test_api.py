"""
API tests for maps, characters, edit sessions, backup and health,
run against an in-memory database.
"""

import json
import uuid

import pytest

from legend_logger.dependencies import get_persistence
from legend_logger.exceptions import StorageFailure

from conftest import make_jpeg, make_png


async def upload_map(client, name="Dungeon", content=None):
    files = {"image": ("map.png", content if content is not None else make_png(), "image/png")}
    data = {"name": name} if name is not None else {}
    response = await client.post("/api/maps", files=files, data=data)
    assert response.status_code == 201, response.text
    return response.json()


async def add_character(client, map_id, x=10.0, y=10.0, size=50.0):
    response = await client.post(
        f"/api/maps/{map_id}/characters",
        json={"position": {"x": x, "y": y}, "color": {"r": 1, "g": 0, "b": 0, "a": 1}, "size": size},
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_check(self, client) -> None:
        response = await client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database_status"] == "connected"


class TestMapsApi:

    @pytest.mark.asyncio
    async def test_create_and_get_map(self, client) -> None:
        created = await upload_map(client, "Dungeon", make_jpeg(30, 20))

        assert created["name"] == "Dungeon"
        assert created["image_width"] == 30
        assert created["image_url"] == f"/api/maps/{created['id']}/image"

        response = await client.get(f"/api/maps/{created['id']}")
        assert response.status_code == 200
        assert response.json()["characters"] == []

        image = await client.get(created["image_url"])
        assert image.status_code == 200
        assert image.headers["content-type"] == "image/png"
        assert image.content.startswith(b"\x89PNG")

    @pytest.mark.asyncio
    async def test_create_without_name_uses_import_label(self, client) -> None:
        created = await upload_map(client, name=None)

        assert created["name"] == "New Map"

    @pytest.mark.asyncio
    async def test_create_rejects_non_image(self, client) -> None:
        response = await client.post(
            "/api/maps",
            files={"image": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_list_maps_newest_first(self, client) -> None:
        first = await upload_map(client, "First")
        second = await upload_map(client, "Second")

        response = await client.get("/api/maps")

        assert response.status_code == 200
        ids = [m["id"] for m in response.json()]
        assert ids == [second["id"], first["id"]]

    @pytest.mark.asyncio
    async def test_rename_map(self, client) -> None:
        created = await upload_map(client)

        response = await client.patch(f"/api/maps/{created['id']}", json={"name": "Crypt"})

        assert response.status_code == 200
        assert response.json()["name"] == "Crypt"
        assert (await client.get(f"/api/maps/{created['id']}")).json()["name"] == "Crypt"

    @pytest.mark.asyncio
    async def test_unknown_map_is_404(self, client) -> None:
        missing = uuid.uuid4()

        assert (await client.get(f"/api/maps/{missing}")).status_code == 404
        assert (await client.patch(f"/api/maps/{missing}", json={"name": "x"})).status_code == 404
        assert (await client.delete(f"/api/maps/{missing}")).status_code == 404
        assert (await client.get(f"/api/maps/{missing}/image")).status_code == 404

    @pytest.mark.asyncio
    async def test_delete_map_removes_characters(self, client) -> None:
        created = await upload_map(client)
        await add_character(client, created["id"])

        response = await client.delete(f"/api/maps/{created['id']}")

        assert response.status_code == 204
        assert (await client.get(f"/api/maps/{created['id']}/characters")).status_code == 404
        assert (await client.get("/api/maps")).json() == []


class TestCharactersApi:

    @pytest.mark.asyncio
    async def test_add_and_update_character(self, client) -> None:
        created = await upload_map(client)
        character = await add_character(client, created["id"])

        assert character["name"] == "Billy Bob"
        assert character["map_id"] == created["id"]

        response = await client.patch(
            f"/api/characters/{character['id']}",
            json={"position": {"x": 20, "y": 30}, "size": 80},
        )
        assert response.status_code == 200

        listed = (await client.get(f"/api/maps/{created['id']}/characters")).json()
        assert len(listed) == 1
        assert listed[0]["position"] == {"x": 20.0, "y": 30.0}
        assert listed[0]["size"] == 80.0
        assert listed[0]["color"] == {"r": 1.0, "g": 0.0, "b": 0.0, "a": 1.0}

    @pytest.mark.asyncio
    async def test_add_character_to_unknown_map_is_404(self, client) -> None:
        response = await client.post(
            f"/api/maps/{uuid.uuid4()}/characters",
            json={"position": {"x": 1, "y": 1}, "color": {"r": 0, "g": 0, "b": 0}, "size": 5},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_character_payload_is_422(self, client) -> None:
        created = await upload_map(client)

        response = await client.post(
            f"/api/maps/{created['id']}/characters",
            json={"position": {"x": 1, "y": 1}, "color": {"r": 2, "g": 0, "b": 0}, "size": 0},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_update_unknown_character_is_404(self, client) -> None:
        response = await client.patch(
            "/api/characters/9999",
            json={"position": {"x": 1, "y": 1}, "size": 5},
        )

        assert response.status_code == 404


class TestSessionsApi:

    @pytest.mark.asyncio
    async def test_edit_session_flow(self, client) -> None:
        created = await upload_map(client)

        opened = await client.post(f"/api/maps/{created['id']}/sessions", params={"locked": "false"})
        assert opened.status_code == 201
        session = opened.json()
        assert session["state"] == "hydrated"
        assert session["locked"] is False
        events_url = f"/api/sessions/{session['session_id']}/events"

        added = (await client.post(events_url, json={
            "type": "add_token",
            "position": {"x": 10, "y": 10},
            "color": {"r": 1, "g": 0, "b": 0, "a": 1},
            "size": 50,
        })).json()
        assert added["applied"] is True
        token_id = added["layout"]["tokens"][0]["id"]

        await client.post(events_url, json={"type": "drag_changed", "token_id": token_id, "position": {"x": 20, "y": 30}})
        await client.post(events_url, json={"type": "drag_ended", "token_id": token_id})
        await client.post(events_url, json={"type": "pinch_ended", "token_id": token_id, "scale": 1.6})
        selected = (await client.post(events_url, json={"type": "tap_selected", "token_id": token_id})).json()
        assert selected["layout"]["selected_token_id"] == token_id
        assert selected["layout"]["state"] == "session"

        closed = await client.delete(f"/api/sessions/{session['session_id']}")
        assert closed.status_code == 200
        assert closed.json()["flushed"] == 0

        listed = (await client.get(f"/api/maps/{created['id']}/characters")).json()
        assert len(listed) == 1
        assert listed[0]["position"] == {"x": 20.0, "y": 30.0}
        assert listed[0]["size"] == pytest.approx(80.0)
        assert listed[0]["color"] == {"r": 1.0, "g": 0.0, "b": 0.0, "a": 1.0}

    @pytest.mark.asyncio
    async def test_locked_session_ignores_add(self, client) -> None:
        created = await upload_map(client)
        session = (await client.post(f"/api/maps/{created['id']}/sessions")).json()
        assert session["locked"] is True

        result = (await client.post(
            f"/api/sessions/{session['session_id']}/events", json={"type": "add_token"}
        )).json()

        assert result["applied"] is False
        assert result["layout"]["tokens"] == []

    @pytest.mark.asyncio
    async def test_rename_through_session(self, client) -> None:
        created = await upload_map(client)
        session = (await client.post(f"/api/maps/{created['id']}/sessions")).json()

        result = (await client.post(
            f"/api/sessions/{session['session_id']}/events", json={"type": "rename", "name": "Crypt"}
        )).json()

        assert result["layout"]["title"] == "Crypt"
        assert (await client.get(f"/api/maps/{created['id']}")).json()["name"] == "Crypt"

    @pytest.mark.asyncio
    async def test_unknown_event_type_is_422(self, client) -> None:
        created = await upload_map(client)
        session = (await client.post(f"/api/maps/{created['id']}/sessions")).json()

        response = await client.post(
            f"/api/sessions/{session['session_id']}/events", json={"type": "explode"}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_session_holds_no_transaction_between_events(self, app, client) -> None:
        created = await upload_map(client)
        await add_character(client, created["id"])
        session = (await client.post(f"/api/maps/{created['id']}/sessions", params={"locked": "false"})).json()
        store = app.state.layouts.get(session["session_id"]).store
        assert not store.session.in_transaction()

        await client.post(f"/api/sessions/{session['session_id']}/events", json={"type": "add_token"})

        assert not store.session.in_transaction()

    @pytest.mark.asyncio
    async def test_non_finite_numbers_are_422(self, client) -> None:
        created = await upload_map(client)
        session = (await client.post(f"/api/maps/{created['id']}/sessions", params={"locked": "false"})).json()
        headers = {"content-type": "application/json"}

        pinch = await client.post(
            f"/api/sessions/{session['session_id']}/events",
            content=b'{"type": "pinch_ended", "token_id": "t", "scale": NaN}',
            headers=headers,
        )
        drag = await client.post(
            f"/api/sessions/{session['session_id']}/events",
            content=b'{"type": "drag_changed", "token_id": "t", "position": {"x": Infinity, "y": 1}}',
            headers=headers,
        )
        character = await client.post(
            f"/api/maps/{created['id']}/characters",
            content=b'{"position": {"x": 1, "y": 1}, "color": {"r": 0, "g": 0, "b": 0}, "size": Infinity}',
            headers=headers,
        )

        assert pinch.status_code == 422
        assert drag.status_code == 422
        assert character.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_session_and_map_are_404(self, client) -> None:
        assert (await client.post(f"/api/maps/{uuid.uuid4()}/sessions")).status_code == 404
        assert (await client.get("/api/sessions/nope")).status_code == 404
        assert (await client.delete("/api/sessions/nope")).status_code == 404
        response = await client.post("/api/sessions/nope/events", json={"type": "toggle_lock"})
        assert response.status_code == 404


class TestBackupApi:

    @pytest.mark.asyncio
    async def test_export_then_import_into_empty_database(self, client) -> None:
        created = await upload_map(client, "Dungeon")
        await add_character(client, created["id"], x=3, y=4, size=12)

        exported = await client.get("/api/system/backup/export")
        assert exported.status_code == 200
        backup = exported.json()
        assert len(backup["maps"]) == 1
        assert backup["maps"][0]["characters"][0]["size"] == 12.0

        # Merge into a database that already has the map: nothing new
        merged = await client.post(
            "/api/system/backup/import",
            files={"file": ("backup.json", json.dumps(backup).encode(), "application/json")},
        )
        assert merged.json()["maps_skipped"] == 1

        replaced = await client.post(
            "/api/system/backup/import",
            params={"mode": "replace"},
            files={"file": ("backup.json", json.dumps(backup).encode(), "application/json")},
        )
        assert replaced.status_code == 200
        assert replaced.json()["maps_imported"] == 1
        assert replaced.json()["characters_imported"] == 1

        restored = (await client.get(f"/api/maps/{created['id']}")).json()
        assert restored["name"] == "Dungeon"
        assert restored["characters"][0]["position"] == {"x": 3.0, "y": 4.0}

        info = (await client.get("/api/system/backup/info")).json()
        assert info["maps_count"] == 1
        assert info["characters_count"] == 1

    @pytest.mark.asyncio
    async def test_merge_import_only_adds_missing_maps(self, client) -> None:
        kept = await upload_map(client, "Dungeon")
        await add_character(client, kept["id"])
        backup = (await client.get("/api/system/backup/export")).content
        other = await upload_map(client, "Forest")
        await client.delete(f"/api/maps/{kept['id']}")
        files = {"file": ("backup.json", backup, "application/json")}

        first = (await client.post("/api/system/backup/import", files=files)).json()
        second = (await client.post("/api/system/backup/import", files=files)).json()

        assert (first["maps_imported"], first["maps_skipped"]) == (1, 0)
        assert (second["maps_imported"], second["maps_skipped"]) == (0, 1)
        ids = {m["id"] for m in (await client.get("/api/maps")).json()}
        assert ids == {kept["id"], other["id"]}
        assert len((await client.get(f"/api/maps/{kept['id']}/characters")).json()) == 1

    @pytest.mark.asyncio
    async def test_replace_import_removes_maps_missing_from_backup(self, client) -> None:
        kept = await upload_map(client, "Dungeon")
        await add_character(client, kept["id"])
        backup = (await client.get("/api/system/backup/export")).content
        dropped = await upload_map(client, "Forest")
        await add_character(client, dropped["id"])
        await add_character(client, dropped["id"])

        result = await client.post(
            "/api/system/backup/import",
            params={"mode": "replace"},
            files={"file": ("backup.json", backup, "application/json")},
        )

        assert result.json()["maps_imported"] == 1
        assert [m["id"] for m in (await client.get("/api/maps")).json()] == [kept["id"]]
        assert (await client.get(f"/api/maps/{dropped['id']}/characters")).status_code == 404
        assert (await client.get("/api/system/backup/info")).json()["characters_count"] == 1

    @pytest.mark.asyncio
    async def test_import_rejects_non_finite_numbers(self, client) -> None:
        backup = (
            b'{"version": "1.0", "maps": [{"id": "%s", "characters": '
            b'[{"position_x": NaN, "size": 5, "color": {"r": 0, "g": 0, "b": 0}}]}]}'
            % str(uuid.uuid4()).encode()
        )

        response = await client.post(
            "/api/system/backup/import",
            files={"file": ("backup.json", backup, "application/json")},
        )

        assert response.status_code == 400
        assert (await client.get("/api/maps")).json() == []

    @pytest.mark.asyncio
    async def test_import_rejects_invalid_json(self, client) -> None:
        response = await client.post(
            "/api/system/backup/import",
            files={"file": ("backup.json", b"{not json", "application/json")},
        )

        assert response.status_code == 400


class TestStorageFailure:

    @pytest.mark.asyncio
    async def test_storage_failure_becomes_503(self, app, client) -> None:
        class FailingPersistence:
            async def list_maps(self):
                raise StorageFailure("disk full")

        app.dependency_overrides[get_persistence] = lambda: FailingPersistence()

        response = await client.get("/api/maps")

        assert response.status_code == 503
        assert "Storage failure" in response.json()["detail"]
