"""Skill service - storage and usage counters for agent skills"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agenthub.db.models import Skill

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"name", "description", "version", "skill_content", "resources", "metadata_json"}


class SkillService:
    """Skill storage. Ownership is checked against user_id where one is given."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_skill(
        self,
        agent_id: str,
        user_id: str,
        name: str,
        description: str,
        skill_content: str,
        version: str = "1.0.0",
        resources: Optional[List[Dict[str, Any]]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Skill:
        now = datetime.utcnow()
        skill = Skill(
            agent_id=agent_id,
            user_id=user_id,
            name=name,
            description=description,
            version=version or "1.0.0",
            skill_content=skill_content,
            resources=resources or [],
            metadata_json=metadata or {},
            times_invoked=0,
            last_used=now,
            success_rate=0.0,
            average_response_time=0.0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(skill)
        await self.db.commit()
        await self.db.refresh(skill)
        logger.info("[SKILLS] Created skill %r for agent %s", name, agent_id)
        return skill

    async def list_skills(self, agent_id: str, user_id: Optional[str] = None) -> List[Skill]:
        """Skills of one agent, most invoked first."""
        query = select(Skill).where(Skill.agent_id == agent_id)
        if user_id is not None:
            query = query.where(Skill.user_id == user_id)
        result = await self.db.execute(query.order_by(Skill.times_invoked.desc()))
        return list(result.scalars().all())

    async def list_for_agents(self, agent_ids: List[str]) -> Dict[str, List[Skill]]:
        if not agent_ids:
            return {}
        result = await self.db.execute(select(Skill).where(Skill.agent_id.in_(agent_ids)))
        grouped: Dict[str, List[Skill]] = {agent_id: [] for agent_id in agent_ids}
        for skill in result.scalars().all():
            grouped[skill.agent_id].append(skill)
        return grouped

    async def get_skill(self, skill_id: str, user_id: Optional[str] = None) -> Optional[Skill]:
        query = select(Skill).where(Skill.id == skill_id)
        if user_id is not None:
            query = query.where(Skill.user_id == user_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def update_skill(self, skill_id: str, user_id: str, updates: Dict[str, Any]) -> Optional[Skill]:
        skill = await self.get_skill(skill_id, user_id)
        if skill is None:
            return None
        for key, value in updates.items():
            if key in UPDATABLE_FIELDS and value is not None:
                setattr(skill, key, value)
        skill.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(skill)
        return skill

    async def delete_skill(self, skill_id: str, user_id: str) -> bool:
        skill = await self.get_skill(skill_id, user_id)
        if skill is None:
            return False
        await self.db.delete(skill)
        await self.db.commit()
        return True

    async def increment_usage(self, skill_id: str, response_time_ms: float) -> None:
        """Count one invocation and fold its response time into the running mean."""
        skill = await self.db.get(Skill, skill_id)
        if skill is None:
            return
        count = skill.times_invoked or 0
        average = skill.average_response_time or 0.0
        skill.average_response_time = (average * count + response_time_ms) / (count + 1)
        skill.times_invoked = count + 1
        skill.last_used = datetime.utcnow()
        await self.db.commit()

    async def update_success_rate(self, skill_id: str, was_successful: bool) -> None:
        """Fold the outcome of the invocation increment_usage() just counted into the rate."""
        skill = await self.db.get(Skill, skill_id)
        if skill is None:
            return
        count = skill.times_invoked or 0
        # The stored rate covers the count - 1 earlier invocations
        successes = round((skill.success_rate or 0.0) * max(count - 1, 0)) + (1 if was_successful else 0)
        skill.success_rate = min(1.0, successes / max(count, 1))
        await self.db.commit()

    async def search(self, query: str, agent_id: Optional[str] = None, user_id: Optional[str] = None) -> List[Skill]:
        """Skills whose name, description or tags mention the query."""
        stmt = select(Skill)
        if agent_id is not None:
            stmt = stmt.where(Skill.agent_id == agent_id)
        if user_id is not None:
            stmt = stmt.where(Skill.user_id == user_id)
        result = await self.db.execute(stmt)
        q = query.lower()
        return [
            s for s in result.scalars().all()
            if q in (s.name or "").lower()
            or q in (s.description or "").lower()
            or any(q in str(tag).lower() for tag in s.tags)
        ]
