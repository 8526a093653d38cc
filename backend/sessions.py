"""In-process session registry.

One DecisionService per session slug, created on first use and backed by
data/sessions/<slug>.json. All sessions share one AI client so the
backend's rate limit is tracked in one place.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from boot_hill.combat import CombatState
from boot_hill.config import DecisionConfig
from boot_hill.diagnostics import ExtractionLog
from boot_hill.llm import AIClient, HttpAIClient
from boot_hill.pipeline.service import DecisionService

from backend import storage

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], AIClient]


def default_client() -> AIClient:
    return HttpAIClient(storage.ai_client_config())


@dataclass
class Session:
    slug: str
    service: DecisionService
    combat: CombatState = field(default_factory=CombatState)
    location: str | None = None

    def save(self) -> None:
        storage.save_session(self.slug, self.service.history, self.combat, self.location)


class SessionRegistry:
    def __init__(self, client_factory: ClientFactory | None = None) -> None:
        self._client_factory = client_factory or default_client
        self._client: AIClient | None = None
        self._sessions: dict[str, Session] = {}

    @property
    def client(self) -> AIClient:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def get(self, slug: str) -> Session:
        """Return the live session for slug, loading it from disk on first use."""
        session = self._sessions.get(slug)
        if session is None:
            log = ExtractionLog()
            history, combat, location = storage.load_session(slug, log)
            logger.debug("loaded session %s entries=%d", slug, len(history.get_decision_history()))
            service = DecisionService(self.client, storage.decision_config(), history=history, log=log)
            session = Session(slug, service, combat, location)
            self._sessions[slug] = session
        return session

    def apply_config(self, config: DecisionConfig) -> None:
        """Push new decision tuning into every live session."""
        for session in self._sessions.values():
            session.service.config = config
            session.service.detector.config = config

    def reset_client(self) -> None:
        """Drop the shared client so the next request picks up new settings."""
        self._client = None
        for session in self._sessions.values():
            session.service.client = self.client

    def __len__(self) -> int:
        return len(self._sessions)
