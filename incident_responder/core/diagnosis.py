"""
Incident Responder - Diagnosis Sources
======================================

Turn incident context into a remediation plan.

Providers:
- RuleBasedDiagnosisSource: deterministic plan per incident class, never fails
- OpenAIDiagnosisSource: asks an OpenAI-compatible chat completions endpoint

Every provider's answer goes through ``parse_plan``; anything that does not
validate raises DiagnosisError and the orchestrator falls back to
``fallback_plan`` for the incident class.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

import httpx
from pydantic import ValidationError

from incident_responder.api.schemas import DiagnosisPlan, DiagnosisRequest
from incident_responder.config import DiagnosisProvider, Settings
from incident_responder.constants import FixKind, IncidentClass
from incident_responder.exceptions import DiagnosisError
from incident_responder.utils.http_client import ServiceClient, ServiceClientConfig
from incident_responder.utils.logging import get_logger
from incident_responder.utils.retry import RetryConfig, retry_async

logger = get_logger(__name__)


# =============================================================================
# FALLBACK PLANS
# =============================================================================

FALLBACK_PLANS: dict[IncidentClass, DiagnosisPlan] = {
    IncidentClass.SERVICE_DOWN: DiagnosisPlan(
        diagnosis="Service process has crashed or stopped responding",
        fix_kind=FixKind.RESTART,
        steps=[
            "Stop the service if it's still partially running",
            "Restart the service process",
            "Verify health check passes",
        ],
        confidence=0.9,
    ),
    IncidentClass.CONFIG_ERROR: DiagnosisPlan(
        diagnosis="Configuration file contains invalid values",
        fix_kind=FixKind.CONFIG,
        steps=[
            "Restore database_url to 'localhost:5432'",
            "Reset timeout to '30s'",
            "Restart service to apply changes",
        ],
        confidence=0.85,
    ),
    IncidentClass.DEPENDENCY_FAILURE: DiagnosisPlan(
        diagnosis="External dependency (database) is unreachable",
        fix_kind=FixKind.CONFIG,
        steps=[
            "Update database_url to valid host",
            "Verify database is running",
            "Restart service to reconnect",
        ],
        confidence=0.8,
    ),
    IncidentClass.RESOURCE_EXHAUSTION: DiagnosisPlan(
        diagnosis="System resources exhausted (port blocked or memory full)",
        fix_kind=FixKind.RESTART,
        steps=[
            "Stop the service",
            "Clear any blocked resources",
            "Restart service on clean port",
        ],
        confidence=0.75,
    ),
}

DEFAULT_FALLBACK_PLAN = DiagnosisPlan(
    diagnosis="Unknown incident type",
    fix_kind=FixKind.RESTART,
    steps=["Attempt service restart", "Monitor logs for errors"],
    confidence=0.5,
)


def fallback_plan(incident_class: Optional[IncidentClass]) -> DiagnosisPlan:
    """Deterministic plan for a class; a restart plan when the class is unknown."""
    plan = FALLBACK_PLANS.get(incident_class, DEFAULT_FALLBACK_PLAN)
    return plan.model_copy(deep=True)


def _strip_fences(content: str) -> str:
    content = content.strip()
    for prefix in ("```json", "```"):
        if content.startswith(prefix):
            content = content[len(prefix):]
            break
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def parse_plan(raw: Union[str, dict[str, Any]]) -> DiagnosisPlan:
    """
    Validate a provider answer into a DiagnosisPlan.

    Strings may be wrapped in markdown code fences.

    Raises:
        DiagnosisError: if the answer is not JSON or does not validate
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(_strip_fences(raw))
        except ValueError as e:
            raise DiagnosisError(f"JSON parsing error: {e}") from e

    if not isinstance(raw, dict):
        raise DiagnosisError(f"Expected a JSON object, got {type(raw).__name__}")

    try:
        return DiagnosisPlan.model_validate(raw)
    except ValidationError as e:
        raise DiagnosisError(f"Invalid remediation plan: {e}") from e


# =============================================================================
# PROVIDERS
# =============================================================================

class BaseDiagnosisSource(ABC):
    """Base class for diagnosis sources."""

    name = "base"

    @abstractmethod
    async def _request_plan(self, request: DiagnosisRequest) -> Union[str, dict[str, Any]]:
        """Ask the provider; return its raw answer."""
        pass

    async def diagnose(self, request: DiagnosisRequest) -> DiagnosisPlan:
        """
        Produce a validated plan for an incident.

        Raises:
            DiagnosisError: if the provider failed or answered with an invalid plan
        """
        logger.info(
            f"Requesting diagnosis from {self.name} for {request.incident_class.value} incident",
            extra={"provider": self.name, "incident_class": request.incident_class.value}
        )

        plan = parse_plan(await self._request_plan(request))

        logger.info(
            f"Diagnosis: {plan.diagnosis}",
            extra={"provider": self.name, "fix_kind": plan.fix_kind.value}
        )
        return plan

    async def close(self) -> None:
        pass


class RuleBasedDiagnosisSource(BaseDiagnosisSource):
    """Answers with the fallback plan for the incident class."""

    name = "rules"

    async def _request_plan(self, request: DiagnosisRequest) -> dict[str, Any]:
        return fallback_plan(request.incident_class).model_dump()


class OpenAIDiagnosisSource(BaseDiagnosisSource):
    """
    Diagnosis through an OpenAI-compatible ``/chat/completions`` endpoint.

    Transport errors are retried up to ``max_attempts`` times. HTTP error
    statuses, empty answers and invalid JSON are not retried.
    """

    name = "openai"

    SYSTEM_PROMPT = """You are an expert Site Reliability Engineer and DevOps specialist. Your job is to analyze system incidents and provide actionable fixes.

When analyzing an incident, you should:
1. Carefully examine all symptoms, logs, and configuration details
2. Identify the root cause
3. Provide a clear, step-by-step remediation plan
4. Consider the safest and most effective approach

You must respond ONLY with valid JSON in this exact format:
{
  "diagnosis": "Clear explanation of the root cause",
  "fix_type": "restart|config|code",
  "fix_steps": ["Step 1", "Step 2", ...],
  "code": "Any code needed (only if fix_type is code)",
  "confidence": 0.95
}

Rules:
- fix_type must be one of: "restart", "config", "code"
- For restart: service just needs to be restarted
- For config: configuration needs to be corrected (name the setting and its correct value in fix_steps)
- For code: actual code changes needed (provide the code in the "code" field)
- Be concise but complete
- Only respond with JSON, no additional text"""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4",
        temperature: float = 0.3,
        timeout_seconds: float = 30.0,
        max_attempts: int = 2,
        known_good_config: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        stop_event: Optional[asyncio.Event] = None
    ):
        self.model = model
        self.temperature = temperature
        self.known_good_config = known_good_config or {}
        self._api_key = api_key
        self._stop = stop_event
        self._retry_config = RetryConfig(
            max_attempts=max_attempts,
            base_delay=0.5,
            max_delay=5.0,
            retryable_exceptions=(httpx.TransportError,),
        )
        self._client = ServiceClient(
            base_url,
            ServiceClientConfig(timeout_seconds=timeout_seconds),
            transport=transport,
        )

    def build_prompt(self, request: DiagnosisRequest) -> str:
        lines = [
            "# INCIDENT ANALYSIS REQUEST",
            "",
            "## Incident Details",
            f"- Type: {request.incident_class.value}",
            f"- Detected At: {request.detected_at.strftime('%Y-%m-%d %H:%M:%S')}",
            "",
            "## Symptoms",
        ]
        if request.symptoms:
            lines.extend(f"{i}. {symptom}" for i, symptom in enumerate(request.symptoms, 1))
        else:
            lines.append("No specific symptoms recorded")

        lines.extend(["", "## Recent Logs"])
        if request.logs:
            lines.append("```")
            lines.extend(request.logs)
            lines.append("```")
        else:
            lines.append("No recent logs available")

        if self.known_good_config:
            lines.extend([
                "",
                "## Known-Good Configuration",
                "```json",
                json.dumps(self.known_good_config, indent=2),
                "```",
            ])

        lines.extend([
            "",
            "Respond ONLY with valid JSON. No markdown, no explanations outside the JSON.",
        ])
        return "\n".join(lines)

    async def _complete(self, payload: dict[str, Any]) -> httpx.Response:
        return await self._client.post(
            "/chat/completions",
            data=payload,
            headers={"Authorization": f"Bearer {self._api_key}"}
        )

    async def _request_plan(self, request: DiagnosisRequest) -> str:
        payload = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": [
                {"role": "system", "content": self.SYSTEM_PROMPT},
                {"role": "user", "content": self.build_prompt(request)},
            ],
        }

        try:
            response = await retry_async(
                self._complete, payload, config=self._retry_config, stop_event=self._stop
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise DiagnosisError(f"OpenAI API error: {e}") from e
        except ValueError as e:
            raise DiagnosisError(f"OpenAI returned a non-JSON body: {e}") from e

        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise DiagnosisError("no response from OpenAI") from e

        if not content:
            raise DiagnosisError("no response from OpenAI")

        return content

    async def close(self) -> None:
        await self._client.close()


def get_diagnosis_source(
    settings: Settings,
    stop_event: Optional[asyncio.Event] = None
) -> BaseDiagnosisSource:
    """Build the diagnosis source selected by configuration."""
    if settings.diagnosis_provider == DiagnosisProvider.OPENAI:
        if settings.openai_api_key:
            return OpenAIDiagnosisSource(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                model=settings.openai_model,
                temperature=settings.diagnosis_temperature,
                timeout_seconds=settings.diagnosis_timeout_seconds,
                max_attempts=settings.diagnosis_max_attempts,
                known_good_config=settings.known_good_config,
                stop_event=stop_event,
            )
        logger.warning("No OpenAI API key configured, using rule-based diagnosis")

    return RuleBasedDiagnosisSource()
