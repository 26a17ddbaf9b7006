"""
Smart-Cycle topic rotation.

Balanced round-robin over an ordered topic catalog: the current cycle is the
minimum completion count across the catalog, and the next topic is the first
one (in catalog order) still sitting at that count. No topic comes up twice in
a cycle before every topic has come up once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from ..stores import CompletionStore
from ..topics import get_topics_for_module

logger = logging.getLogger(__name__)


def cycle_count(catalog: Sequence[str], completions: Mapping[str, int]) -> int:
	if not catalog:
		return 0
	return min(completions.get(topic, 0) for topic in catalog)


def select_next_topic(catalog: Sequence[str], completions: Mapping[str, int]) -> Optional[str]:
	"""Return the next due topic, or None for an empty catalog. Pure and deterministic."""
	if not catalog:
		return None
	current = cycle_count(catalog, completions)
	for topic in catalog:
		if completions.get(topic, 0) == current:
			return topic
	# unreachable while current is the minimum over catalog
	return catalog[0]


def topic_label(topic: str, completions: Mapping[str, int]) -> str:
	count = completions.get(topic, 0)
	if count > 0:
		return f"{topic} ({count} completed)"
	return topic


@dataclass
class TopicCycleSnapshot:
	module: str
	subtype: Optional[str]
	catalog: List[str]
	completions: Dict[str, int] = field(default_factory=dict)

	@property
	def cycle_count(self) -> int:
		return cycle_count(self.catalog, self.completions)

	@property
	def next_topic(self) -> Optional[str]:
		return select_next_topic(self.catalog, self.completions)

	def labels(self) -> Dict[str, str]:
		return {topic: topic_label(topic, self.completions) for topic in self.catalog}


class SmartTopicCycle:
	"""Reads completion counters and records completions for one user."""

	def __init__(self, store: CompletionStore) -> None:
		self.store = store

	def snapshot(self, user_id: Optional[str], module: str, subtype: Optional[str] = None) -> TopicCycleSnapshot:
		catalog = get_topics_for_module(module, subtype)
		completions = self.store.counts(user_id, module) if user_id else {}
		return TopicCycleSnapshot(module=module, subtype=subtype, catalog=catalog, completions=completions)

	def increment_completion(self, user_id: str, module: str, topic: str) -> int:
		"""Record that the user finished a test on `topic`. Call on completion, never on selection."""
		count = self.store.increment(user_id, module, topic)
		logger.info("Topic completion %s/%s for %s is now %d", module, topic, user_id, count)
		return count
