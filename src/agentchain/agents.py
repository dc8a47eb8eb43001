"""
AgentChain SDK Agent Manager Module

In-process agent records with a read-through cache.

Classes:
    AgentType: Agent categories
    AgentStatus: Agent lifecycle states
    Agent: Agent record
    AgentManager: CRUD and lifecycle operations

Example:
    >>> agent = sdk.agents.create_agent(
    ...     owner_id="user-1",
    ...     type=AgentType.TRADING_BOT,
    ...     metadata={"name": "Scout", "description": "Watches pools"},
    ... )
    >>> sdk.agents.deploy_agent(agent.id).status
    <AgentStatus.DEPLOYED: 'deployed'>
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .cache import TTLCache
from .exceptions import AgentNotFoundError, AgentStateError, AgentValidationError
from .ids import generate_id

logger = logging.getLogger("agentchain.agents")

AGENT_TTL = 30 * 60


class AgentType(str, Enum):
    TRADING_BOT = "trading_bot"
    SOCIAL_AGENT = "social_agent"
    AUTOMATION_AGENT = "automation_agent"
    ENTERPRISE_SOLUTION = "enterprise_solution"
    CUSTOM = "custom"


class AgentStatus(str, Enum):
    DRAFT = "draft"
    DEPLOYED = "deployed"
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"
    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Agent:
    """
    Agent record.

    ``metadata`` is an opaque mapping; only ``name`` is required.
    """

    id: str
    owner_id: str
    type: AgentType
    status: AgentStatus
    metadata: Dict[str, Any]
    created_at: datetime
    updated_at: datetime
    deployment_config: Dict[str, Any] = field(default_factory=dict)
    token_address: Optional[str] = None
    deployed_at: Optional[datetime] = None


class AgentManager:
    """
    Agent record manager.

    Args:
        cache: Shared cache (None disables caching)
    """

    def __init__(self, cache: Optional[TTLCache] = None) -> None:
        self._cache = cache
        self._agents: Dict[str, Agent] = {}

    def create_agent(
        self,
        owner_id: str,
        type: AgentType,
        metadata: Dict[str, Any],
        deployment_config: Optional[Dict[str, Any]] = None,
    ) -> Agent:
        """
        Create an agent in DRAFT status.

        Raises:
            AgentValidationError: Missing owner or metadata name
        """
        if not owner_id:
            raise AgentValidationError("Agent owner is required")
        self._validate_metadata(metadata)

        now = _utcnow()
        agent = Agent(
            id=generate_id("agent_"),
            owner_id=owner_id,
            type=AgentType(type),
            status=AgentStatus.DRAFT,
            metadata=dict(metadata),
            deployment_config=dict(deployment_config or {}),
            created_at=now,
            updated_at=now,
        )
        self._store(agent)
        logger.info("Agent created: id=%s, type=%s, owner=%s", agent.id, agent.type.value, owner_id)
        return agent

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        if self._cache is not None:
            cached = self._cache.get(f"agent:{agent_id}")
            if cached is not None:
                return cached

        agent = self._agents.get(agent_id)
        if agent is not None and self._cache is not None:
            self._cache.set(f"agent:{agent_id}", agent, AGENT_TTL)
        return agent

    def update_agent(
        self,
        agent_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        status: Optional[AgentStatus] = None,
        deployment_config: Optional[Dict[str, Any]] = None,
    ) -> Agent:
        """
        Merge metadata/deployment_config into the agent and optionally set its status.

        Raises:
            AgentNotFoundError: Unknown agent id
            AgentValidationError: Merged metadata lost its name
        """
        agent = self._require(agent_id)
        changes: Dict[str, Any] = {"updated_at": _utcnow()}
        if metadata is not None:
            merged = {**agent.metadata, **metadata}
            self._validate_metadata(merged)
            changes["metadata"] = merged
        if deployment_config is not None:
            changes["deployment_config"] = {**agent.deployment_config, **deployment_config}
        if status is not None:
            changes["status"] = AgentStatus(status)

        updated = replace(agent, **changes)
        self._store(updated)
        logger.info("Agent updated: id=%s, status=%s", agent_id, updated.status.value)
        return updated

    def delete_agent(self, agent_id: str) -> bool:
        existed = self._agents.pop(agent_id, None) is not None
        if self._cache is not None:
            self._cache.delete(f"agent:{agent_id}")
        if existed:
            logger.info("Agent deleted: id=%s", agent_id)
        return existed

    def list_agents(
        self,
        owner_id: Optional[str] = None,
        type: Optional[AgentType] = None,
        status: Optional[AgentStatus] = None,
        limit: int = 50,
        offset: int = 0,
        sort_by: str = "created_at",
        descending: bool = True,
    ) -> List[Agent]:
        if sort_by not in ("created_at", "updated_at"):
            raise ValueError("sort_by must be 'created_at' or 'updated_at'")

        agents = list(self._agents.values())
        if owner_id is not None:
            agents = [a for a in agents if a.owner_id == owner_id]
        if type is not None:
            agents = [a for a in agents if a.type == type]
        if status is not None:
            agents = [a for a in agents if a.status == status]

        agents.sort(key=lambda a: getattr(a, sort_by), reverse=descending)
        return agents[offset:offset + limit]

    # ============ Lifecycle ============

    def deploy_agent(self, agent_id: str) -> Agent:
        """
        Move a DRAFT agent to DEPLOYED.

        Raises:
            AgentStateError: Agent is not a draft
        """
        agent = self._require(agent_id)
        if agent.status is not AgentStatus.DRAFT:
            raise AgentStateError(agent_id, agent.status.value, "deploy")
        now = _utcnow()
        deployed = replace(agent, status=AgentStatus.DEPLOYED, deployed_at=now, updated_at=now)
        self._store(deployed)
        logger.info("Agent deployed: id=%s", agent_id)
        return deployed

    def pause_agent(self, agent_id: str) -> Agent:
        return self.update_agent(agent_id, status=AgentStatus.PAUSED)

    def resume_agent(self, agent_id: str) -> Agent:
        return self.update_agent(agent_id, status=AgentStatus.ACTIVE)

    def archive_agent(self, agent_id: str) -> Agent:
        return self.update_agent(agent_id, status=AgentStatus.ARCHIVED)

    def get_agent_stats(self, owner_id: Optional[str] = None) -> Dict[str, Any]:
        agents = [a for a in self._agents.values() if owner_id is None or a.owner_id == owner_id]
        by_status = {s.value: 0 for s in AgentStatus}
        by_type = {t.value: 0 for t in AgentType}
        for agent in agents:
            by_status[agent.status.value] += 1
            by_type[agent.type.value] += 1
        return {"total": len(agents), "by_status": by_status, "by_type": by_type}

    # ============ Internals ============

    def _require(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def _store(self, agent: Agent) -> None:
        self._agents[agent.id] = agent
        if self._cache is not None:
            self._cache.set(f"agent:{agent.id}", agent, AGENT_TTL)

    @staticmethod
    def _validate_metadata(metadata: Dict[str, Any]) -> None:
        if not isinstance(metadata, dict):
            raise AgentValidationError("Agent metadata must be a mapping")
        name = metadata.get("name")
        if not isinstance(name, str) or not name.strip():
            raise AgentValidationError("Agent name is required", {"field": "name"})
