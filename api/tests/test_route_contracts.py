import pytest

pytest.importorskip("fastapi")

import app.main as m


def _iter_http_routes():
    for route in m.app.routes:
        path = getattr(route, "path", None)
        methods = getattr(route, "methods", None)
        if not path or not methods:
            continue
        for method in sorted(methods):
            if method in {"HEAD", "OPTIONS"}:
                continue
            yield method, path


def test_no_duplicate_http_method_path_pairs():
    seen: set[tuple[str, str]] = set()
    duplicates: list[tuple[str, str]] = []
    for pair in _iter_http_routes():
        if pair in seen:
            duplicates.append(pair)
        seen.add(pair)
    assert duplicates == []


def test_scaffold_namespace_contains_only_health_routes():
    scaffold_routes = [(method, path) for method, path in _iter_http_routes() if path.startswith("/_scaffold/")]
    assert {path for _, path in scaffold_routes} == {
        "/_scaffold/members/health",
        "/_scaffold/groups/health",
        "/_scaffold/match/health",
        "/_scaffold/session/health",
    }
    for method, _ in scaffold_routes:
        assert method == "GET"


def test_matchmaking_surface_is_mounted():
    routes = set(_iter_http_routes())
    for expected in [
        ("POST", "/groups"),
        ("POST", "/groups/{group_id}/join"),
        ("GET", "/groups/{group_id}/candidates"),
        ("POST", "/groups/{group_id}/like/{target_group_id}"),
        ("POST", "/groups/{group_id}/pass/{target_group_id}"),
        ("GET", "/matches/{match_id}"),
        ("GET", "/groups/{group_id}/session"),
    ]:
        assert expected in routes
