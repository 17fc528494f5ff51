"""Golden scoring cases.

A golden case freezes one PR together with the score it got, the user it
was scored for and the clock reading, so later changes to the scoring rules
can be checked against real PRs. The dashboard writes them (when enabled);
the test suite replays every ``golden_case_*.json`` it finds.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from prpulse_core.models import PullRequest, from_dict, parse_timestamp, to_dict
from prpulse_core.scoring import Score, score_pull_request

logger = logging.getLogger(__name__)

_PREFIX = "golden_case_"


@dataclass
class GoldenCase:
    pull_request: PullRequest
    score: Score
    username: str  # the score is computed for this user
    now: datetime  # older or newer PRs score differently

    @classmethod
    def capture(cls, pr: PullRequest, username: str, now: datetime) -> GoldenCase:
        return cls(pull_request=pr, score=score_pull_request(pr, username, now), username=username, now=now)

    def rescore(self) -> Score:
        return score_pull_request(self.pull_request, self.username, self.now)


def case_id(pr: PullRequest) -> str:
    return hashlib.sha1(pr.url.encode()).hexdigest()[:12]


def save_golden_case(case: GoldenCase, directory: str | Path) -> Path:
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{_PREFIX}{case_id(case.pull_request)}.json"
    payload = {
        "pull_request": to_dict(case.pull_request),
        "score": {"total": case.score.total, "reasons": case.score.reasons},
        "username": case.username,
        "now": case.now.isoformat(),
    }
    path.write_text(json.dumps(payload, indent=2) + "\n")
    logger.info("Wrote golden case for %s to %s", case.pull_request.url, path)
    return path


def load_golden_case(path: str | Path) -> GoldenCase:
    data = json.loads(Path(path).read_text())
    return GoldenCase(
        pull_request=from_dict(data["pull_request"]),
        score=Score(total=data["score"]["total"], reasons=list(data["score"]["reasons"])),
        username=data["username"],
        now=parse_timestamp(data["now"]),
    )


def load_golden_cases(directory: str | Path) -> list[GoldenCase]:
    """Load every golden case in ``directory``, sorted by file name."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return [load_golden_case(p) for p in sorted(directory.glob(f"{_PREFIX}*.json"))]
