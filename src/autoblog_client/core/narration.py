"""Forward-only narration state machine and legacy streaming simulation."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable

from autoblog_client.domain.models import InsightCard, NarrationMoment, NarrationSession

logger = logging.getLogger(__name__)

TRANSITION_DELAY_SECONDS = 0.5
SIMULATED_TOKEN_INTERVAL_SECONDS = 0.03
_TOKEN_RE = re.compile(r"\s+|\S+\s*")


def tokenize_for_simulation(text: str) -> list[str]:
    """Split text on whitespace boundaries; the tokens concatenate back to `text`."""
    tokens = _TOKEN_RE.findall(text)
    # Leading whitespace is its own token; fold it into the first word.
    if len(tokens) > 1 and not tokens[0].strip():
        tokens[1] = tokens[0] + tokens[1]
        tokens = tokens[1:]
    return tokens


class NarrationController:
    """Tracks the UX moment and narrative text for one analysis job at a time."""

    def __init__(
        self,
        *,
        transition_delay: float = TRANSITION_DELAY_SECONDS,
        on_change: Callable[[NarrationSession], None] | None = None,
    ) -> None:
        self._transition_delay = transition_delay
        self._on_change = on_change
        self._session = NarrationSession(job_id=None)
        self._transition_timer: asyncio.TimerHandle | None = None
        self._frozen = False

    @property
    def session(self) -> NarrationSession:
        return self._session

    @property
    def moment(self) -> NarrationMoment:
        return self._session.moment

    @property
    def frozen(self) -> bool:
        return self._frozen

    def bind(self, job_id: str) -> bool:
        """Attach to `job_id`; a different id discards all state of the previous job."""
        if job_id == self._session.job_id and not self._frozen:
            return False
        self._cancel_transition()
        self._frozen = False
        self._publish(NarrationSession(job_id=job_id))
        logger.debug("narration.bind job_id=%s", job_id)
        return True

    def start_streaming(self) -> None:
        self._mutate(is_streaming=True)

    def append_scraping_thought(self, text: str) -> None:
        if self._frozen or not text:
            return
        separator = "" if text.endswith(" ") else " "
        self._mutate(scraping_narrative=self._session.scraping_narrative + text + separator)

    def begin_transition(self) -> None:
        if self._frozen or not self._advance(NarrationMoment.TRANSITION):
            return
        loop = asyncio.get_running_loop()
        self._transition_timer = loop.call_later(self._transition_delay, self._finish_transition)

    def append_analysis_chunk(self, text: str) -> None:
        if self._frozen:
            return
        if text:
            self._mutate(analysis_narrative=self._session.analysis_narrative + text)
        self._advance(NarrationMoment.ANALYSIS)

    def add_insight_card(self, card: InsightCard) -> None:
        if self._frozen:
            return
        if card.title or card.content:
            self._mutate(insight_cards=(*self._session.insight_cards, card))
        self._advance(NarrationMoment.ANALYSIS)

    def narrative_complete(self) -> None:
        if not self._frozen:
            self._advance(NarrationMoment.ANALYSIS)

    def complete(self) -> None:
        if self._frozen:
            return
        self._cancel_transition()
        self._mutate(is_streaming=False)
        self._advance(NarrationMoment.AUDIENCES)

    def mark_unavailable(self) -> None:
        """Narration is optional: record that it is missing and let the workflow continue."""
        if self._frozen:
            return
        self._cancel_transition()
        self._mutate(narrative_available=False, is_streaming=False)
        self._advance(NarrationMoment.AUDIENCES)

    def abort(self) -> None:
        if self._frozen:
            return
        self._cancel_transition()
        self._frozen = True
        logger.debug("narration.abort job_id=%s", self._session.job_id)

    def _finish_transition(self) -> None:
        self._transition_timer = None
        if not self._frozen and self._session.moment == NarrationMoment.TRANSITION:
            self._advance(NarrationMoment.ANALYSIS)

    def _advance(self, moment: NarrationMoment) -> bool:
        if moment.order <= self._session.moment.order:
            return False
        self._mutate(moment=moment)
        return True

    def _mutate(self, **changes: object) -> None:
        if self._frozen:
            return
        self._publish(self._session.evolve(**changes))

    def _publish(self, session: NarrationSession) -> None:
        self._session = session
        if self._on_change is not None:
            self._on_change(session)

    def _cancel_transition(self) -> None:
        if self._transition_timer is not None:
            self._transition_timer.cancel()
            self._transition_timer = None
