"""
An in-memory GitHub API for one organization, served through
httpx.MockTransport.
"""

import math
from datetime import datetime, timedelta, timezone

import httpx

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def days_ago(days: int) -> str:
    return (NOW - timedelta(days=days)).isoformat().replace("+00:00", "Z")


def repo_payload(
    name: str,
    stars: int = 0,
    forks: int = 0,
    issues: int = 0,
    watchers: int = 0,
    language: str | None = None,
    updated_days_ago: int | None = 1,
    archived: bool = False,
) -> dict:
    """Repository JSON as returned by GET /orgs/{org}/repos."""
    return {
        "id": abs(hash(name)),
        "name": name,
        "full_name": f"acme/{name}",
        "html_url": f"https://github.com/acme/{name}",
        "description": f"{name} description",
        "stargazers_count": stars,
        "forks_count": forks,
        "watchers_count": watchers,
        "open_issues_count": issues,
        "language": language,
        "updated_at": None if updated_days_ago is None else days_ago(updated_days_ago),
        "archived": archived,
        "private": False,
    }


class FakeGitHub:
    """
    Minimal GitHub REST API for one organization.

    Every request is recorded in ``requests``. Paths listed in ``failures``
    answer with the given status code instead.
    """

    def __init__(
        self,
        organization: str = "acme",
        repos: list[dict] | None = None,
        members: list[str] | None = None,
        contributors: dict[str, list[tuple[str, int]]] | None = None,
        users: dict[str, int] | None = None,
        pull_requests: tuple[int, int] = (0, 0),
        dependents: dict[str, int] | None = None,
    ):
        self.organization = organization
        self.repos = repos or []
        self.members = members or []
        self.contributors = contributors or {}
        self.users = users or {}
        self.pull_requests = pull_requests
        self.dependents = dependents or {}
        self.failures: dict[str, int] = {}
        self.requests: list[httpx.Request] = []

    def paths(self, prefix: str = "") -> list[str]:
        return [r.url.path for r in self.requests if r.url.path.startswith(prefix)]

    def _page(self, items: list, request: httpx.Request) -> httpx.Response:
        page = int(request.url.params.get("page", 1))
        per_page = int(request.url.params.get("per_page", 30))
        start = (page - 1) * per_page
        headers = {}
        last_page = math.ceil(len(items) / per_page)
        if last_page > 1:
            base = f"https://api.github.com{request.url.path}?per_page={per_page}"
            headers["Link"] = (
                f'<{base}&page={page + 1}>; rel="next", '
                f'<{base}&page={last_page}>; rel="last"'
            )
        return httpx.Response(
            200, json=items[start : start + per_page], headers=headers
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        org = self.organization

        if path in self.failures:
            return httpx.Response(self.failures[path], json={"message": "failure"})

        if request.url.host == "github.com":
            repo = path.split("/")[2]
            count = self.dependents.get(repo)
            if count is None:
                return httpx.Response(200, text="<html><p>No dependents yet</p></html>")
            return httpx.Response(
                200, text=f'<a class="btn-link selected">{count:,} Repositories</a>'
            )

        if path == f"/orgs/{org}":
            return httpx.Response(200, json={"login": org})
        if path == f"/orgs/{org}/repos":
            return self._page(self.repos, request)
        if path == f"/orgs/{org}/members":
            return self._page([{"login": m} for m in self.members], request)
        if path.startswith(f"/repos/{org}/") and path.endswith("/contributors"):
            entries = self.contributors.get(path.split("/")[3], [])
            if not entries:
                return httpx.Response(204)
            return httpx.Response(
                200,
                json=[
                    {"login": login, "contributions": count, "type": "User"}
                    for login, count in entries
                ],
            )
        if path.startswith("/users/"):
            login = path.split("/")[2]
            if login not in self.users:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(
                200,
                json={
                    "login": login,
                    "html_url": f"https://github.com/{login}",
                    "avatar_url": f"https://avatars.example/{login}",
                    "followers": self.users[login],
                },
            )
        if path == "/search/issues":
            query = request.url.params["q"]
            total = self.pull_requests[0 if "state:open" in query else 1]
            return httpx.Response(200, json={"total_count": total, "items": []})

        return httpx.Response(404, json={"message": "Not Found"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_org() -> FakeGitHub:
    return FakeGitHub(
        repos=[
            repo_payload(
                "core-lib",
                stars=500,
                forks=100,
                issues=20,
                watchers=500,
                language="Python",
                updated_days_ago=2,
            ),
            repo_payload(
                "web-client-js",
                stars=200,
                forks=50,
                issues=5,
                watchers=200,
                language="TypeScript",
                updated_days_ago=10,
            ),
            repo_payload(
                "docs", stars=50, forks=10, issues=1, watchers=50, updated_days_ago=400
            ),
            repo_payload(
                "legacy",
                stars=10,
                forks=1,
                issues=60,
                watchers=10,
                language="Python",
                updated_days_ago=250,
                archived=True,
            ),
            repo_payload(
                "tooling-go",
                stars=30,
                forks=5,
                issues=3,
                watchers=30,
                language="Go",
                updated_days_ago=40,
            ),
        ],
        members=["Alice", "carol"],
        contributors={
            "core-lib": [("alice", 300), ("bob", 50), ("dave", 10)],
            "web-client-js": [("Alice", 20), ("erin", 40)],
            "docs": [("carol", 5)],
            "tooling-go": [("bob", 7)],
        },
        # dave has no profile: user lookups for him fail with 404
        users={"alice": 100, "bob": 20, "erin": 7, "carol": 1},
        pull_requests=(12, 340),
        dependents={"core-lib": 1500, "tooling-go": 12},
    )
