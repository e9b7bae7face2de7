"""Task selection: fixed order locally, adaptive policies via a provider.

Adaptive providers are opaque collaborators. Whatever goes wrong on their
side, delivery continues with the fixed-order choice.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from config.registry import get_provider, provider_key
from ecd.registry import Registry, TaskCatalog
from observability import log_event
from policy_gateway import PolicyRequest, ProviderDecision

from .errors import PolicyUnavailableError
from .state import Session

logger = logging.getLogger(__name__)

ProviderFn = Callable[[PolicyRequest], Any]


@dataclass
class Selection:
    task_id: Optional[str]
    source: str = "fixed"
    student_model: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None


def fixed_next(session: Session) -> Optional[str]:
    """First task in delivery order without a response, or ``None``."""

    answered = set(session.answered_task_ids())
    for task_id in session.task_ids:
        if task_id not in answered:
            return task_id
    return None


class PolicyEngine:
    def __init__(
        self,
        registry: Registry,
        catalog: Optional[TaskCatalog] = None,
        *,
        default_provider: Optional[ProviderFn] = None,
    ) -> None:
        self._registry = registry
        self._catalog = catalog
        self._default_provider = default_provider

    def next(self, session: Session, catalog: Optional[TaskCatalog] = None) -> Optional[str]:
        return self.select(session, catalog).task_id

    def select(self, session: Session, catalog: Optional[TaskCatalog] = None) -> Selection:
        fallback = fixed_next(session)
        if not session.is_adaptive or fallback is None:
            return Selection(task_id=fallback)
        try:
            decision = self._ask_provider(session, catalog or self._catalog)
        except Exception as exc:  # noqa: BLE001
            return self._fall_back(session, fallback, exc)
        return Selection(task_id=decision.task_id, source="policy", student_model=decision.student_model)

    def _ask_provider(self, session: Session, catalog: Optional[TaskCatalog]) -> ProviderDecision:
        if session.next_task_policy is None:
            raise PolicyUnavailableError(f"Session uses {session.selection_strategy} without a policy", session_id=session.id)
        policy = self._registry.policy(session.next_task_policy.policy_id)
        if policy is None:
            raise PolicyUnavailableError(f"Policy {session.next_task_policy.policy_id} not found", session_id=session.id)

        candidates = session.unanswered_task_ids()
        if catalog is not None:
            missing = set(catalog.missing(candidates))
            candidates = [task_id for task_id in candidates if task_id not in missing]
        request = PolicyRequest(
            policy_id=policy.id,
            type=policy.type,
            config=policy.config.model_dump(mode="json", by_alias=True),
            session_id=session.id,
            student_id=session.student_id,
            history=[resp.model_dump(mode="json", by_alias=True) for resp in session.responses],
            candidates=candidates,
            student_model=session.student_model,
        )
        provider = self._provider_for(policy.type)
        raw = provider(request)
        decision = raw if isinstance(raw, ProviderDecision) else ProviderDecision.model_validate(raw)
        if decision.task_id is not None and decision.task_id not in candidates:
            raise PolicyUnavailableError(
                f"Provider chose {decision.task_id}, which is not an unanswered task of the session",
                session_id=session.id,
            )
        return decision

    def _provider_for(self, policy_type: str) -> ProviderFn:
        try:
            return get_provider(provider_key(policy_type))
        except KeyError:
            if self._default_provider is not None:
                return self._default_provider
        raise PolicyUnavailableError(f"No provider configured for {policy_type} policies")

    def _fall_back(self, session: Session, fallback: Optional[str], exc: Exception) -> Selection:
        reason = str(exc) or type(exc).__name__
        logger.warning("Adaptive selection failed for session %s, using fixed order: %s", session.id, reason)
        log_event(
            "policy_fallback",
            session.id,
            level=logging.WARNING,
            strategy=session.selection_strategy,
            policy_id=session.next_task_policy.policy_id if session.next_task_policy else None,
            task_id=fallback,
            reason=reason,
        )
        return Selection(task_id=fallback, source="fallback", reason=reason)


__all__ = ["PolicyEngine", "Selection", "fixed_next"]
