"""Agent service - CRUD, metrics and evolution for user-owned agents"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.config import settings
from agenthub.db.models import Agent, Skill
from agenthub.services.agent_creator import AgentProfileDraft
from agenthub.services.agent_evolution import EvolutionSuggestion

logger = logging.getLogger(__name__)

# Fields a caller may change through update_agent()
UPDATABLE_FIELDS = {
    "name", "description", "expertise", "system_prompt", "knowledge_facts",
    "knowledge_sources", "capabilities", "conversation_style",
}
EVOLVABLE_FIELDS = {"expertise", "capabilities", "knowledge_facts", "system_prompt"}


class AgentService:
    """Agent storage. Every query is scoped to the owning user."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_agent(self, user_id: str, draft: AgentProfileDraft) -> Agent:
        now = datetime.utcnow()
        agent = Agent(
            user_id=user_id,
            name=draft.name,
            description=draft.description,
            expertise=list(draft.expertise),
            system_prompt=draft.system_prompt,
            knowledge_facts=list(draft.knowledge_base.facts),
            knowledge_sources=list(draft.knowledge_base.sources),
            knowledge_updated_at=draft.knowledge_base.last_updated or now,
            capabilities=list(draft.capabilities),
            conversation_style=dict(draft.conversation_style),
            questions_handled=0,
            success_rate=0.0,
            avg_response_time=0.0,
            last_used=now,
            evolution_history=[],
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.db.add(agent)
        await self.db.commit()
        await self.db.refresh(agent)
        logger.info("[AGENTS] Created %r (%s) for %s", agent.name, agent.id, user_id)
        return agent

    async def get_agent(self, agent_id: str, user_id: str) -> Optional[Agent]:
        result = await self.db.execute(
            select(Agent).where(Agent.id == agent_id, Agent.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_agents(self, user_id: str) -> List[Agent]:
        """All agents of a user, most recently used first."""
        result = await self.db.execute(
            select(Agent).where(Agent.user_id == user_id).order_by(Agent.last_used.desc())
        )
        return list(result.scalars().all())

    async def update_agent(self, agent_id: str, user_id: str, updates: Dict[str, Any]) -> Optional[Agent]:
        """Apply field updates and bump the version. Unknown keys are ignored."""
        agent = await self.get_agent(agent_id, user_id)
        if agent is None:
            return None
        for key, value in updates.items():
            if key in UPDATABLE_FIELDS and value is not None:
                setattr(agent, key, value)
        if "knowledge_facts" in updates or "knowledge_sources" in updates:
            agent.knowledge_updated_at = datetime.utcnow()
        agent.version = (agent.version or 1) + 1
        agent.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(agent)
        return agent

    async def delete_agent(self, agent_id: str, user_id: str) -> bool:
        """Delete an agent together with its skills."""
        agent = await self.get_agent(agent_id, user_id)
        if agent is None:
            return False
        result = await self.db.execute(delete(Skill).where(Skill.agent_id == agent_id))
        await self.db.delete(agent)
        await self.db.commit()
        logger.info("[AGENTS] Deleted %s and %d skill(s)", agent_id, result.rowcount or 0)
        return True

    async def apply_evolution(
        self,
        agent_id: str,
        user_id: str,
        suggestion: EvolutionSuggestion,
        improvement: Optional[str] = None,
    ) -> Optional[Agent]:
        """
        Persist an evolution suggestion.

        New knowledge facts are merged into the existing ones; other fields
        are replaced. A history entry is appended and the history is capped
        at max_evolution_history, dropping the oldest entries.
        """
        agent = await self.get_agent(agent_id, user_id)
        if agent is None:
            return None

        changed = []
        for key, value in suggestion.updated_fields.items():
            if key not in EVOLVABLE_FIELDS:
                continue
            if key == "knowledge_facts":
                existing = list(agent.knowledge_facts or [])
                value = existing + [f for f in value if f not in existing]
                agent.knowledge_updated_at = datetime.utcnow()
            setattr(agent, key, value)
            changed.append(key)

        entry = {
            "date": datetime.utcnow().isoformat(),
            "improvement": improvement or "; ".join(suggestion.suggestions) or "Agent evolved",
            "reason": suggestion.reasoning,
            "changedFields": changed,
        }
        history = list(agent.evolution_history or []) + [entry]
        agent.evolution_history = history[-settings.max_evolution_history:]
        agent.version = (agent.version or 1) + 1
        agent.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(agent)
        logger.info("[EVOLUTION] %s evolved to v%d (%s)", agent.name, agent.version, ", ".join(changed) or "no fields")
        return agent

    async def update_metrics(
        self,
        agent_id: str,
        questions_handled: Optional[int] = None,
        success_rate: Optional[float] = None,
        avg_response_time: Optional[float] = None,
    ) -> None:
        agent = await self.db.get(Agent, agent_id)
        if agent is None:
            return
        if questions_handled is not None:
            agent.questions_handled = questions_handled
        if success_rate is not None:
            agent.success_rate = success_rate
        if avg_response_time is not None:
            agent.avg_response_time = avg_response_time
        agent.last_used = datetime.utcnow()
        await self.db.commit()

    async def increment_questions_handled(self, agent_id: str, response_time_ms: Optional[float] = None) -> None:
        agent = await self.db.get(Agent, agent_id)
        if agent is None:
            return
        count = agent.questions_handled or 0
        if response_time_ms is not None:
            agent.avg_response_time = ((agent.avg_response_time or 0.0) * count + response_time_ms) / (count + 1)
        agent.questions_handled = count + 1
        agent.last_used = datetime.utcnow()
        await self.db.commit()

    async def search_by_expertise(self, user_id: str, keywords: List[str]) -> List[Agent]:
        """Agents whose name, description or expertise mention any keyword."""
        keywords = [k.lower() for k in keywords if k]
        if not keywords:
            return []
        conditions = []
        for keyword in keywords:
            pattern = f"%{keyword}%"
            conditions.append(func.lower(Agent.name).like(pattern))
            conditions.append(func.lower(Agent.description).like(pattern))
        result = await self.db.execute(
            select(Agent).where(Agent.user_id == user_id, or_(*conditions))
        )
        found = {a.id: a for a in result.scalars().all()}

        # JSON arrays are matched in Python so this works on any backend
        for agent in await self.list_agents(user_id):
            expertise = [e.lower() for e in (agent.expertise or [])]
            if any(k in e for k in keywords for e in expertise):
                found.setdefault(agent.id, agent)
        return list(found.values())

    async def count_agents(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(Agent.id)).where(Agent.user_id == user_id)
        )
        return result.scalar() or 0

    async def most_used(self, user_id: str, limit: int = 5) -> List[Agent]:
        result = await self.db.execute(
            select(Agent)
            .where(Agent.user_id == user_id)
            .order_by(Agent.questions_handled.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
