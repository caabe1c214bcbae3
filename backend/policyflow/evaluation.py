from typing import Any, Dict, Optional, Protocol

import httpx
from pydantic import ValidationError

from . import config
from .logging import get_logger
from .models import PolicyEvaluation

logger = get_logger(__name__)


class PolicyEvaluationError(Exception):
    """The rule-evaluation service could not be reached or answered garbage."""


class PolicyEvaluator(Protocol):
    async def evaluate(self, data: Dict[str, Any], rule: str) -> PolicyEvaluation:
        ...


class HttpPolicyEvaluator:
    """Client for the rule-evaluation service's ``POST /run`` endpoint.

    A fresh ``AsyncClient`` is used per call unless one is injected; tests pass
    a client built on ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or config.POLICY_API_SERVER).rstrip("/")
        self.timeout = timeout if timeout is not None else config.POLICY_API_TIMEOUT
        self._client = client

    async def evaluate(self, data: Dict[str, Any], rule: str) -> PolicyEvaluation:
        url = f"{self.base_url}/run"
        payload = {"data": data, "rule": rule}
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("policy evaluation rejected", rule=rule, status_code=e.response.status_code)
            raise PolicyEvaluationError(
                f"Policy service returned HTTP {e.response.status_code} for rule '{rule}'"
            ) from e
        except httpx.RequestError as e:
            logger.warning("policy evaluation unreachable", rule=rule, error=str(e))
            raise PolicyEvaluationError(f"Policy service request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise PolicyEvaluationError("Policy service returned a non-JSON body") from e
        if not isinstance(body, dict):
            raise PolicyEvaluationError("Policy service returned an unexpected payload")

        return parse_evaluation(body)


def parse_evaluation(body: Dict[str, Any]) -> PolicyEvaluation:
    # The editor proxy renames the service's "error" to "errors"; accept both.
    error = body.get("error", body.get("errors"))
    try:
        return PolicyEvaluation(
            result=body.get("result"),
            error=str(error) if error else None,
            trace=body.get("trace"),
            rule=body.get("rule"),
            data=body.get("data"),
        )
    except ValidationError as e:
        raise PolicyEvaluationError(f"Policy service response is malformed: {e}") from e
