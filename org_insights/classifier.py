"""
Contributor identity deduplication, aggregation and classification.

Identities are compared case-insensitively; the first casing seen is kept
for display.
"""

from typing import Iterable, NamedTuple

from org_insights.models import Contributor


def identity_key(login: str) -> str:
    """Case-insensitive key for a username."""
    return login.casefold()


class MembershipSet:
    """Case-insensitive set of organization member logins."""

    def __init__(self, logins: Iterable[str] = ()):
        self._keys = {identity_key(login) for login in logins if login}

    def __contains__(self, login: object) -> bool:
        return isinstance(login, str) and identity_key(login) in self._keys

    def __len__(self) -> int:
        return len(self._keys)


class ContributorTally(NamedTuple):
    """Aggregated contributions of one identity across repositories."""

    login: str
    contributions: int
    repositories: frozenset[str]

    @property
    def repositories_contributed_to(self) -> int:
        return len(self.repositories)


class Classification(NamedTuple):
    internal: list[str]
    external: list[str]

    @property
    def internal_count(self) -> int:
        return len(self.internal)

    @property
    def external_count(self) -> int:
        return len(self.external)


def dedupe_identities(logins: Iterable[str]) -> list[str]:
    """
    Collapse logins differing only by case, preserving first-seen order.

    Empty logins (e.g. anonymous contributors) are dropped.
    """
    seen: dict[str, str] = {}
    for login in logins:
        if login and identity_key(login) not in seen:
            seen[identity_key(login)] = login
    return list(seen.values())


def aggregate_contributions(
    per_repository: Iterable[tuple[str, list[Contributor]]],
) -> list[ContributorTally]:
    """
    Sum contributions and collect distinct repositories per identity.

    Args:
        per_repository: (repository name, contributors) pairs.

    Returns:
        One tally per identity, in first-seen order.
    """
    tallies: dict[str, ContributorTally] = {}
    for repo_name, contributors in per_repository:
        for contributor in contributors:
            if not contributor.login:
                continue
            key = identity_key(contributor.login)
            existing = tallies.get(key)
            if existing is None:
                tallies[key] = ContributorTally(
                    contributor.login,
                    contributor.contributions,
                    frozenset({repo_name}),
                )
            else:
                tallies[key] = existing._replace(
                    contributions=existing.contributions + contributor.contributions,
                    repositories=existing.repositories | {repo_name},
                )
    return list(tallies.values())


def classify(identities: Iterable[str], membership: MembershipSet) -> Classification:
    """Partition identities into organization members and outside contributors."""
    internal: list[str] = []
    external: list[str] = []
    for login in identities:
        (internal if login in membership else external).append(login)
    return Classification(internal, external)


def rank_top_contributors(
    tallies: Iterable[ContributorTally], limit: int
) -> list[ContributorTally]:
    """Highest contribution counts first; ties keep their input order."""
    ranked = sorted(tallies, key=lambda tally: tally.contributions, reverse=True)
    return ranked[:limit]
