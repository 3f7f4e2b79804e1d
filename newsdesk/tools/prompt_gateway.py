"""
Prompt gateway - the single boundary between the engines and the model.

invoke() renders a template, picks a key from the rotation pool, calls the
text generator, extracts and validates the JSON answer, and appends exactly
one usage-ledger row. It never raises for model-side problems: the caller
gets a GatewayResult holding either the validated value or a typed failure.

    result = await gateway.invoke(EVENT_CLUSTERING, {"articles": payload})
    if not result.ok:
        ...  # result.failure.kind is TRANSIENT or MALFORMED
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import Settings, get_settings
from ..database import Database
from . import json_repair
from .key_pool import KeyRotationPool
from .llm_service import TextGenerator
from .prompts import get_template
from .usage_ledger import UsageLedger, estimate_tokens

logger = logging.getLogger(__name__)

UNCONFIGURED_KEY = "UNCONFIGURED"


class FailureKind(str, Enum):
    TRANSIENT = "TRANSIENT"    # network / timeout / provider error
    MALFORMED = "MALFORMED"    # no parseable JSON, or required fields missing


class GatewayFailure(BaseModel):
    kind: FailureKind
    message: str
    raw_text: Optional[str] = None


class ParseError(GatewayFailure):
    """The model answered, but not with usable JSON. Carries the raw text."""
    kind: FailureKind = FailureKind.MALFORMED


class GatewayResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    template_id: str
    key_name: Optional[str] = None
    value: Any = None
    failure: Optional[GatewayFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class PromptGateway:

    def __init__(
        self,
        db: Database,
        pool: KeyRotationPool,
        generator: TextGenerator,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.pool = pool
        self.generator = generator
        self.settings = settings or get_settings()

    async def invoke(
        self,
        template_id: str,
        variables: Dict[str, Any],
        subject_id: Optional[int] = None,
    ) -> GatewayResult:
        template = get_template(template_id)
        prompt = template.render(variables)
        key_name = self.pool.next_available(template.operation)
        tokens = estimate_tokens(prompt, self.settings.chars_per_token)

        try:
            raw = await self.generator.generate(prompt, key_name)
        except Exception as e:
            logger.error(f"{template_id}: generation failed on {key_name or UNCONFIGURED_KEY}: {e}")
            failure = GatewayFailure(kind=FailureKind.TRANSIENT, message=str(e) or type(e).__name__)
            return self._finish(template, key_name, tokens, subject_id, failure=failure)

        try:
            value = _first_valid(template, raw)
        except (json_repair.JSONExtractionError, ValidationError) as e:
            logger.error(f"{template_id}: malformed response: {e}\nResponse: {(raw or '')[:500]}")
            failure = ParseError(message=str(e)[:1000], raw_text=raw)
            return self._finish(template, key_name, tokens, subject_id, failure=failure)

        return self._finish(template, key_name, tokens, subject_id, value=value)

    def _finish(self, template, key_name, tokens, subject_id, value=None, failure=None) -> GatewayResult:
        with self.db.get_session() as session:
            UsageLedger(session).record(
                key_name=key_name or UNCONFIGURED_KEY,
                operation=template.operation,
                token_estimate=tokens,
                success=failure is None,
                subject_id=subject_id,
                error_message=f"{failure.kind.value}: {failure.message}" if failure else None,
            )
        return GatewayResult(
            template_id=template.template_id,
            key_name=key_name,
            value=value,
            failure=failure,
        )


def _first_valid(template, raw: str) -> Any:
    """Validate each JSON value in the response in turn; the first that fits wins.

    Re-raises the first ValidationError when values were found but none fit.
    """
    first_error: Optional[ValidationError] = None
    for data in json_repair.iter_json_values(raw):
        try:
            return template.validate(data)
        except ValidationError as e:
            first_error = first_error or e
    if first_error is not None:
        raise first_error
    raise json_repair.JSONExtractionError(f"No parseable JSON found in response: {(raw or '').strip()[:200]!r}")
