from urllib.parse import quote

import checkin_svc.routers.attendees as attendees_router
import checkin_svc.services.scans as scans
from checkin_svc.core.errors import StoreUnavailable
from checkin_svc.services import stats as stats_service


def test_stats_count_by_status_and_people_inside(client, seed, scan):
    seed("S1", "S2", "S3", "S4")
    res = client.get("/stats")
    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 4
    assert body["not_checked_in"] == 4
    assert body["checked_in"] == 0
    assert body["checked_out"] == 0
    assert body["currently_inside"] == 0

    for ident in ("S1", "S2", "S3"):
        assert scan(ident, "check_in").status_code == 200
    assert scan("S3", "check_out").status_code == 200
    assert scan("S2", "check_in").status_code == 409  # rejected scans do not count

    body = client.get("/stats").json()
    assert body["total"] == 4
    assert body["not_checked_in"] == 1
    assert body["checked_in"] == 2
    assert body["checked_out"] == 1
    assert body["currently_inside"] == 2
    assert body["refreshed_at"] is not None


def test_people_inside_follows_attendees_even_when_the_log_is_short(client, seed, scan, monkeypatch):
    seed("S-IN", "S-OUT")
    assert scan("S-OUT", "check_in").status_code == 200
    assert scan("S-OUT", "check_out").status_code == 200

    real = scans.store_call

    async def no_log(aw, *, what="store call"):
        if what == "scan log append":
            aw.close()
            raise StoreUnavailable()
        return await real(aw, what=what)

    monkeypatch.setattr(scans, "store_call", no_log)
    res = scan("S-IN", "check_in")
    assert res.json()["log_recorded"] is False

    body = client.get("/stats").json()
    assert body["checked_in"] == 1
    assert body["checked_out"] == 1
    assert body["currently_inside"] == 1


def test_stats_refresh_failure_never_fails_the_scan(client, seed, scan, monkeypatch):
    seed("S-BROKEN")

    async def broken(db):
        raise RuntimeError("projection unavailable")

    monkeypatch.setattr(stats_service, "refresh_stats", broken)
    res = scan("S-BROKEN", "check_in")
    assert res.status_code == 200
    assert res.json()["status"] == "checked_in"


def test_list_filters_by_status_newest_change_first(client, seed, scan):
    seed("L1", "L2", "L3")
    assert scan("L3", "check_in").status_code == 200
    assert scan("L1", "check_in").status_code == 200

    res = client.get("/attendees", params={"status": "checked_in"})
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["count"] == 2
    assert [a["scan_identifier"] for a in body["data"]] == ["L1", "L3"]

    res = client.get("/attendees", params={"status": "not_checked_in"})
    assert [a["scan_identifier"] for a in res.json()["data"]] == ["L2"]


def test_list_rejects_unknown_status(client):
    assert client.get("/attendees", params={"status": "inside"}).status_code == 422


def test_list_limit_is_capped(client, seed, monkeypatch):
    seed("C1", "C2", "C3", "C4")
    monkeypatch.setattr(attendees_router.settings, "attendees_max_limit", 3)
    assert client.get("/attendees", params={"limit": 2}).json()["count"] == 2
    assert client.get("/attendees", params={"limit": 100}).json()["count"] == 3
    assert client.get("/attendees").json()["count"] == 3


def test_get_unknown_attendee_is_404(client):
    res = client.get("/attendees/MISSING")
    assert res.status_code == 404
    assert res.json()["detail"]["code"] == "not_found"


def test_ticket_qr_png(client, seed):
    seed("QR-PRINT")
    res = client.get("/attendees/QR-PRINT/qr.png")
    assert res.status_code == 200
    assert res.headers["content-type"] == "image/png"
    assert res.content.startswith(b"\x89PNG")


def test_identifiers_with_slashes_are_reachable(client, seed, scan):
    ident = "https://tix.example.org/t/ABC-42"
    seed(ident)
    assert scan(ident, "check_in").status_code == 200

    path = quote(ident, safe="")
    res = client.get(f"/attendees/{path}")
    assert res.status_code == 200
    assert res.json()["scan_identifier"] == ident
    assert res.json()["status"] == "checked_in"

    logs = client.get(f"/attendees/{path}/scans")
    assert logs.status_code == 200
    assert [l["scan_type"] for l in logs.json()] == ["check_in"]

    png = client.get(f"/attendees/{path}/qr.png")
    assert png.status_code == 200
    assert png.content.startswith(b"\x89PNG")
