"""HTTP client for the Faith Coach drill grading function."""
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from triunely_arena.config import settings
from triunely_arena.models import Drill, Grade

logger = logging.getLogger(__name__)


@dataclass
class GradeResult:
    ok: bool
    grade: Optional[Grade] = None
    error: Optional[str] = None
    status: Any = None
    details: Any = None


def build_drill_payload(drill: Drill) -> Dict[str, Any]:
    return {
        "id": drill.id,
        "title": drill.title,
        "prompt": drill.prompt,
        "opponent_type": drill.opponent_type,
        "key_points": list(drill.key_points or []),
        "scripture_refs": list(drill.scripture_refs or []),
    }


class GraderClient:
    """Client for the remote grader. One request per call, no retries."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url or settings.grader_url
        self.api_key = settings.grader_api_key if api_key is None else api_key
        self.timeout = settings.grader_timeout if timeout is None else timeout
        self.transport = transport

    def _build_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def grade(self, drill: Drill, user_answer: str) -> GradeResult:
        """
        Grade a drill answer.

        Args:
            drill: The drill being answered
            user_answer: The composed answer text

        Returns:
            GradeResult; ``ok`` is False for every kind of failure, with
            ``error`` and ``status`` describing it.
        """
        if drill is None or not drill.id:
            return GradeResult(ok=False, error="Missing drill.")
        if not str(user_answer or "").strip():
            return GradeResult(ok=False, error="Missing user answer.")

        payload = {"drill": build_drill_payload(drill), "userAnswer": user_answer}
        started = time.monotonic()
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.base_url, headers=self._build_headers(), json=payload)
        except httpx.TimeoutException as e:
            logger.warning(f"Grader timed out after {self.timeout}s for drill {drill.id}")
            return GradeResult(ok=False, error=f"Grader timed out: {e}", status="timeout", details=repr(e))
        except httpx.HTTPError as e:
            logger.warning(f"Grader request failed for drill {drill.id}: {e}")
            return GradeResult(ok=False, error=str(e) or e.__class__.__name__, status="thrown", details=repr(e))

        logger.info(f"Grader responded {response.status_code} in {time.monotonic() - started:.2f}s")

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            message = None
            if isinstance(body, dict):
                message = body.get("error") or body.get("message")
            return GradeResult(
                ok=False,
                error=message or response.reason_phrase or "Grader returned non-2xx",
                status=response.status_code,
                details=body if body is not None else response.text,
            )

        if not isinstance(body, dict):
            return GradeResult(
                ok=False, error="Malformed grader response.", status=response.status_code, details=response.text,
            )

        if not body.get("ok"):
            return GradeResult(ok=False, error=body.get("error") or "Grading failed.", status=200, details=body)

        return GradeResult(ok=True, grade=Grade.from_payload(body.get("grade")), status=response.status_code)
