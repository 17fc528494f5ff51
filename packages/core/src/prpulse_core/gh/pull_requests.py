from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone

import requests
from github import Auth, Github, GithubException, RateLimitExceededException

from prpulse_core.errors import ClientError, RateLimited, ServerError
from prpulse_core.models import PullRequest, ReviewThread, ThreadComment, parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_IGNORED_COMMENTERS = ("github-actions", "vercel")
DEFAULT_RATE_LIMIT_WAIT = timedelta(minutes=1)
_TOKEN_EXPIRY_WARNING = timedelta(days=10)
_EXPIRATION_HEADER = "github-authentication-token-expiration"

# The "first: N" sizes are calibrated: set them too high and GitHub answers
# with MAX_NODE_LIMIT_EXCEEDED. Review threads cannot be filtered on
# isResolved server-side, so they are overfetched.
SEARCH_QUERY = """
query($searchQuery: String!) {
  search(type: ISSUE, query: $searchQuery, first: 100) {
    edges {
      node {
        ... on PullRequest {
          title
          url
          isDraft
          reviewRequests(first: 100) {
            nodes { requestedReviewer { ... on User { login } } }
          }
          repository { url name owner { login } }
          reviewDecision
          updatedAt
          author { login }
          additions
          deletions
          comments(last: 5) {
            edges { node { updatedAt author { login } url } }
          }
          reviewThreads(first: 15) {
            edges {
              node {
                isResolved
                isOutdated
                isCollapsed
                comments(first: 30) {
                  nodes {
                    author { login }
                    url
                    reactions(first: 7) { edges { node { content user { login } } } }
                  }
                }
              }
            }
          }
          reviews(first: 20) {
            edges { node { author { login } state } }
          }
        }
      }
    }
  }
}
"""

VIEWER_QUERY = "query { viewer { login } }"


def search_query_for(username: str) -> str:
    return f"state:open involves:{username} type:pr archived:false"


def _client(token: str, timeout: float) -> Github:
    # retry=None: backoff is owned by the poll scheduler, not by PyGithub.
    # timeout bounds each socket connect/read, not the whole request.
    return Github(auth=Auth.Token(token), timeout=timeout, retry=None)


def _header(headers: dict | None, name: str) -> str | None:
    for key, value in (headers or {}).items():
        if key.lower() == name:
            return value
    return None


def _unblock_at(headers: dict | None, now: datetime) -> datetime:
    """Work out when GitHub will let us back in from the rate-limit headers."""
    reset = _header(headers, "x-ratelimit-reset")
    if reset:
        try:
            return datetime.fromtimestamp(int(reset), tz=timezone.utc)
        except ValueError:
            logger.warning("Unparseable x-ratelimit-reset header: %r", reset)
    retry_after = _header(headers, "retry-after")
    if retry_after:
        try:
            return now + timedelta(seconds=int(retry_after))
        except ValueError:
            logger.warning("Unparseable retry-after header: %r", retry_after)
    return now + DEFAULT_RATE_LIMIT_WAIT


def _is_graphql_rate_limit(data) -> bool:
    if not isinstance(data, dict):
        return False
    return any(isinstance(e, dict) and e.get("type") == "RATE_LIMITED" for e in data.get("errors") or [])


def parse_token_expiration(expiration: str | None) -> datetime | None:
    """Parse GitHub's token expiration header ("2024-01-31 12:00:00 +0100")."""
    if not expiration:
        return None
    try:
        return datetime.strptime(expiration, "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        return None


def check_token_expiration(expiration: str | None, now: datetime | None = None) -> datetime | None:
    """Warn when the token expires within ten days.

    Returns the expiry time, or None when the header is missing or malformed.
    """
    if not expiration:
        return None
    expires = parse_token_expiration(expiration)
    if expires is None:
        logger.error("Could not parse GitHub token expiration %r", expiration)
        return None
    now = now or datetime.now(timezone.utc)
    if expires < now + _TOKEN_EXPIRY_WARNING:
        logger.warning("GitHub token expires soon: %s (%d days left)", expires.isoformat(), (expires - now).days)
    return expires


def graphql_request(token: str, query: str, variables: dict | None = None, timeout: float = 60.0) -> tuple[dict, dict]:
    """Run one GraphQL query and translate every failure into a FetchError.

    GraphQL can answer 200 and still carry errors in the body; PyGithub turns
    those into a GithubException, and a RATE_LIMITED entry among them is
    surfaced as RateLimited rather than a generic client error.
    """
    now = datetime.now(timezone.utc)
    try:
        headers, data = _client(token, timeout).requester.graphql_query(query, variables or {})
    except RateLimitExceededException as e:
        raise RateLimited(_unblock_at(e.headers, now), f"rate limited by GitHub: {e}") from e
    except GithubException as e:
        if _is_graphql_rate_limit(e.data):
            logger.error("GitHub rate limited: %s", e.data)
            raise RateLimited(_unblock_at(e.headers, now), "rate limited by GitHub GraphQL") from e
        if e.status is not None and e.status >= 500:
            raise ServerError(f"GitHub response code {e.status}") from e
        raise ClientError(f"GitHub response code {e.status}: {e.data}") from e
    except requests.exceptions.RequestException as e:
        # timeouts and dropped connections are transient
        raise ServerError(f"could not request GitHub: {e}") from e

    check_token_expiration(_header(headers, _EXPIRATION_HEADER), now)
    if not isinstance(data, dict):
        raise ClientError("GitHub returned a non-JSON-object response")
    return headers, data


def viewer(token: str, timeout: float = 60.0) -> tuple[str, datetime | None]:
    """Return the login that owns ``token`` and when the token expires (None if never)."""
    headers, data = graphql_request(token, VIEWER_QUERY, timeout=timeout)
    login = ((data.get("data") or {}).get("viewer") or {}).get("login")
    if not login:
        raise ClientError("GitHub did not return a viewer login for this token")
    return login, parse_token_expiration(_header(headers, _EXPIRATION_HEADER))


def _login(obj) -> str:
    return (obj or {}).get("login") or ""


def _parse_thread(node: dict) -> ReviewThread:
    comments = []
    for c in (node.get("comments") or {}).get("nodes") or []:
        reactors = {
            _login((r.get("node") or {}).get("user")) for r in (c.get("reactions") or {}).get("edges") or []
        }
        reactors.discard("")
        comments.append(ThreadComment(author=_login(c.get("author")), reactors=reactors))
    return ReviewThread(
        is_resolved=bool(node.get("isResolved")),
        is_outdated=bool(node.get("isOutdated")),
        is_collapsed=bool(node.get("isCollapsed")),
        comments=comments,
    )


def parse_pull_request(node: dict, ignored_commenters=DEFAULT_IGNORED_COMMENTERS) -> PullRequest:
    """Build a PullRequest from one search result node.

    Threads are attached but not classified; that is the refresh loop's job.
    """
    url = node.get("url") or ""

    last_commenter = ""
    for edge in (node.get("comments") or {}).get("edges") or []:
        login = _login((edge.get("node") or {}).get("author"))
        if login in ignored_commenters:
            continue
        last_commenter = login

    review_status = node.get("reviewDecision") or ""
    if not review_status:
        # A separate approval may exist in the reviews list without being
        # reflected in reviewDecision; CHANGES_REQUESTED still wins over it.
        for edge in (node.get("reviews") or {}).get("edges") or []:
            if (edge.get("node") or {}).get("state") == "APPROVED":
                review_status = "APPROVED"
                break

    requested = []
    for n in (node.get("reviewRequests") or {}).get("nodes") or []:
        login = _login((n or {}).get("requestedReviewer"))
        if login:
            requested.append(login)

    repository = node.get("repository") or {}
    return PullRequest(
        url=url,
        title=node.get("title") or "",
        author=_login(node.get("author")),
        repo_name=repository.get("name") or "",
        repo_owner=_login(repository.get("owner")),
        repo_url=repository.get("url") or "",
        review_status=review_status,
        is_draft=bool(node.get("isDraft")),
        additions=node.get("additions") or 0,
        deletions=node.get("deletions") or 0,
        last_updated=parse_timestamp(node.get("updatedAt"), context=url),
        last_commenter=last_commenter,
        review_requested_from=requested,
        raw_json=json.dumps(node),
        threads=[_parse_thread(e.get("node") or {}) for e in (node.get("reviewThreads") or {}).get("edges") or []],
    )


def fetch_pull_requests(
    token: str,
    username: str,
    timeout: float = 60.0,
    ignored_commenters=DEFAULT_IGNORED_COMMENTERS,
) -> list[PullRequest]:
    """Fetch every open, non-archived PR involving ``username``.

    Raises ClientError, ServerError or RateLimited.
    """
    logger.debug("Querying GitHub for PRs involving %s", username)
    _, data = graphql_request(token, SEARCH_QUERY, {"searchQuery": search_query_for(username)}, timeout=timeout)

    edges = (((data.get("data") or {}).get("search") or {}).get("edges")) or []
    prs = []
    seen = set()
    for edge in edges:
        node = edge.get("node") or {}
        if not node.get("url"):
            # search hits that are not pull requests come back as empty nodes
            continue
        if node["url"] in seen:
            continue
        seen.add(node["url"])
        pr = parse_pull_request(node, ignored_commenters)
        logger.debug("Fetched PR %s", pr.url)
        prs.append(pr)

    logger.info("Fetched %d PRs from GitHub", len(prs))
    return prs
