"""Append-only store for prompt and agent versions."""
import hashlib
import json
from typing import Dict, Any, Optional, List
from datetime import datetime, timezone
from pathlib import Path
import difflib

from core.interfaces import Repository
from models.entities import Agent, Prompt, LabeledRecord
from utils.error_handling import NotFoundError
from utils.logging_utils import get_logger

logger = get_logger("version_store")


def prompt_hash(template: str) -> str:
    """Short SHA256 fingerprint of a template."""
    return hashlib.sha256(template.encode()).hexdigest()[:16]


class VersionStore(Repository):
    """
    In-memory Repository with optional JSON persistence.

    Prompts and agents are never overwritten: creating an existing version or
    key raises ``ValueError``. Each derived version keeps a back-reference to
    its parent, so lineage is a chain that can be walked to the root.
    Labeled records live in memory only.
    """

    def __init__(self, storage_path: Optional[Path] = None):
        """
        Args:
            storage_path: JSON file holding prompts and agents; loaded if present
        """
        self.storage_path = Path(storage_path) if storage_path else None
        self._prompts: Dict[str, Prompt] = {}
        self._agents: Dict[str, Agent] = {}
        self._records: List[LabeledRecord] = []

        if self.storage_path and self.storage_path.exists():
            self._load()

    # Seeding

    def add_prompt(self, prompt: Prompt) -> Prompt:
        if prompt.version in self._prompts:
            raise ValueError(f"Prompt version '{prompt.version}' already exists")
        if prompt.parent_version and prompt.parent_version not in self._prompts:
            raise NotFoundError("Prompt", prompt.parent_version)
        self._prompts[prompt.version] = prompt
        self._save()
        return prompt

    def add_agent(self, agent: Agent) -> Agent:
        if agent.key in self._agents:
            raise ValueError(f"Agent '{agent.key}' already exists")
        if agent.prompt_version not in self._prompts:
            raise NotFoundError("Prompt", agent.prompt_version)
        self._agents[agent.key] = agent
        self._save()
        return agent

    def add_labeled_records(self, records: List[LabeledRecord]):
        self._records.extend(records)

    # Repository

    async def find_agent_by_key(self, key: str) -> Optional[Agent]:
        return self._agents.get(key)

    async def find_prompt_by_version(self, version: str) -> Optional[Prompt]:
        return self._prompts.get(version)

    async def find_labeled_sample(self, limit: int) -> List[LabeledRecord]:
        return list(self._records[:limit])

    async def create_prompt_version(
        self,
        version: str,
        template: str,
        parent_version: Optional[str],
        applied_techniques: List[str]
    ) -> Prompt:
        parent = self._prompts.get(parent_version) if parent_version else None
        if parent_version and parent is None:
            raise NotFoundError("Prompt", parent_version)

        prompt = Prompt(
            version=version,
            name=f"{parent.name} (Optimized)" if parent else version,
            template=template,
            description=f"Optimized version of {parent.name}" if parent else None,
            parent_version=parent_version,
            applied_techniques=list(applied_techniques),
            created_by="ai",
            metadata={
                "prompt_hash": prompt_hash(template),
                "optimization_date": datetime.now(timezone.utc).isoformat(),
            },
        )
        self.add_prompt(prompt)
        logger.info(
            "Prompt version created",
            version=version,
            parent_version=parent_version,
            prompt_hash=prompt.metadata["prompt_hash"],
            applied_techniques=applied_techniques
        )
        return prompt

    async def create_agent_version(
        self,
        key: str,
        based_on: Agent,
        prompt_version: str,
        iteration: int
    ) -> Agent:
        agent = based_on.model_copy(update={
            "key": key,
            "name": f"{based_on.name} (Iteration {iteration})",
            "prompt_version": prompt_version,
            "description": f"Optimized version of {based_on.key} at iteration {iteration}",
            "base_agent_key": based_on.key,
            "iteration": iteration,
            "created_at": datetime.now(),
            "metadata": {**based_on.metadata, "base_agent": based_on.key, "optimization_iteration": iteration},
        })
        self.add_agent(agent)
        logger.info("Agent version created", key=key, based_on=based_on.key, prompt_version=prompt_version)
        return agent

    # Lineage

    def get_prompt_lineage(self, version: str) -> List[Prompt]:
        """Prompts from the root ancestor down to ``version``."""
        chain = []
        current = self._prompts.get(version)
        if current is None:
            raise NotFoundError("Prompt", version)
        while current is not None:
            chain.append(current)
            current = self._prompts.get(current.parent_version) if current.parent_version else None
        return list(reversed(chain))

    def get_agent_lineage(self, key: str) -> List[Agent]:
        """Agents from the original base agent down to ``key``."""
        chain = []
        current = self._agents.get(key)
        if current is None:
            raise NotFoundError("Agent", key)
        while current is not None:
            chain.append(current)
            current = self._agents.get(current.base_agent_key) if current.base_agent_key else None
        return list(reversed(chain))

    def diff_versions(self, version1: str, version2: str) -> Dict[str, Any]:
        """
        Get diff between two prompt versions.

        Returns:
            Dictionary with diff information
        """
        v1 = self._prompts.get(version1)
        v2 = self._prompts.get(version2)
        if v1 is None:
            raise NotFoundError("Prompt", version1)
        if v2 is None:
            raise NotFoundError("Prompt", version2)

        diff = list(difflib.unified_diff(
            v1.template.splitlines(keepends=True),
            v2.template.splitlines(keepends=True),
            fromfile=version1,
            tofile=version2,
            lineterm=''
        ))

        return {
            "from_version": version1,
            "to_version": version2,
            "from_hash": prompt_hash(v1.template),
            "to_hash": prompt_hash(v2.template),
            "diff": diff,
            "lines_changed": len([
                line for line in diff
                if line.startswith(('+', '-')) and not line.startswith(('+++', '---'))
            ]),
        }

    # Persistence

    def _load(self):
        with open(self.storage_path, 'r') as f:
            data = json.load(f)
        self._prompts = {p["version"]: Prompt.model_validate(p) for p in data.get("prompts", [])}
        self._agents = {a["key"]: Agent.model_validate(a) for a in data.get("agents", [])}
        logger.debug(
            "Version store loaded",
            path=str(self.storage_path),
            prompts=len(self._prompts),
            agents=len(self._agents)
        )

    def _save(self):
        if self.storage_path is None:
            return
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "prompts": [p.model_dump(mode='json') for p in self._prompts.values()],
            "agents": [a.model_dump(mode='json') for a in self._agents.values()],
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        with open(self.storage_path, 'w') as f:
            json.dump(data, f, indent=2)
