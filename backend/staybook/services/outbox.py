"""
Side-effect outbox.

Emails and remote image deletions are queued while a request runs and
dispatched only after its database write has been committed. Failures never
propagate to the caller: each one is logged (the request_id bound by the
middleware travels with the log line) and counted in Prometheus, so a lost
notification is observable instead of silently swallowed.
"""

from dataclasses import dataclass, field
from typing import Literal

from staybook.core.logging import get_logger
from staybook.core.metrics import record_side_effect
from staybook.infrastructure.image_store import ImageStore
from staybook.infrastructure.mailer import Mailer

logger = get_logger(__name__)


@dataclass
class SideEffect:
    kind: Literal["email", "image_delete"]
    payload: dict
    ok: bool | None = None
    error: str | None = None


@dataclass
class SideEffectOutbox:
    image_store: ImageStore
    mailer: Mailer
    pending: list[SideEffect] = field(default_factory=list)
    dispatched: list[SideEffect] = field(default_factory=list)

    def enqueue_email(self, to: str | None, subject: str, html: str) -> None:
        if not to:
            logger.warning("email_skipped_no_recipient", subject=subject)
            return
        self.pending.append(SideEffect("email", {"to": to, "subject": subject, "html": html}))

    def enqueue_image_delete(self, url: str) -> None:
        self.pending.append(SideEffect("image_delete", {"url": url}))

    def discard(self) -> None:
        """Drop queued effects of a write that did not commit."""
        if self.pending:
            logger.info("outbox_discarded", count=len(self.pending))
        self.pending.clear()

    async def _run(self, effect: SideEffect) -> None:
        if effect.kind == "email":
            await self.mailer.send(
                effect.payload["to"], effect.payload["subject"], effect.payload["html"]
            )
        else:
            found = await self.image_store.delete(effect.payload["url"])
            if not found:
                logger.info("image_already_gone", url=effect.payload["url"])

    async def dispatch(self) -> list[SideEffect]:
        batch, self.pending = self.pending, []
        for effect in batch:
            try:
                await self._run(effect)
                effect.ok = True
            except Exception as e:
                effect.ok = False
                effect.error = str(e)
                logger.error(
                    "side_effect_failed",
                    kind=effect.kind,
                    error=str(e),
                    **{k: v for k, v in effect.payload.items() if k != "html"},
                )
            record_side_effect(effect.kind, bool(effect.ok))
            self.dispatched.append(effect)
        return batch
