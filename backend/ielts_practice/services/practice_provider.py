from __future__ import annotations

import json
import logging
import random
import re
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ..errors import InvalidPayload, ProviderError
from ..gemini_client import GeminiClient
from ..schemas import GenerationOptions
from ..topics import get_topics_for_module

logger = logging.getLogger(__name__)


@dataclass
class ProviderResult:
	payload: Dict[str, Any]
	tokens_used: int = 0


def _extract_json_object(text: str) -> Dict[str, Any]:
	try:
		data = json.loads(text)
		if isinstance(data, dict):
			return data
	except ValueError:
		pass
	code_block = re.search(r"```json\s*([\s\S]*?)\s*```", text)
	if code_block:
		try:
			data = json.loads(code_block.group(1))
			if isinstance(data, dict):
				return data
		except ValueError:
			pass
	first = text.find("{")
	last = text.rfind("}")
	if first != -1 and last != -1 and last > first:
		try:
			data = json.loads(text[first : last + 1])
			if isinstance(data, dict):
				return data
		except ValueError:
			pass
	raise InvalidPayload("LLM did not return a valid JSON object.")


_QUESTION_SHAPE = (
	'"questionGroups": [{\n'
	'    "instruction": "Instructions shown to the candidate",\n'
	'    "question_type": "%(question_type)s",\n'
	'    "questions": [{"question_number": 1, "question_text": "...", "options": null, "correct_answer": "...", "explanation": "..."}]\n'
	"  }]"
)


def _reading_prompt(options: GenerationOptions, topic: str) -> str:
	config = options.module_config()
	length = config.get("passage_words", "600-800")
	return (
		"You are an IELTS Academic Reading test writer.\n"
		f"1. Write a reading passage of {length} words on the topic \"{topic}\" at {options.difficulty} difficulty, "
		"with paragraph labels like [A], [B].\n"
		f"2. Write {options.question_count} {options.question_type} questions answerable from the passage only.\n"
		"Return ONLY JSON of this shape:\n"
		'{\n  "passage": {"title": "...", "content": "..."},\n  '
		+ _QUESTION_SHAPE % {"question_type": options.question_type}
		+ "\n}"
	)


def _listening_prompt(options: GenerationOptions, topic: str) -> str:
	config = options.module_config()
	speakers = config.get("speakers", 2)
	return (
		"You are an IELTS Listening test writer.\n"
		f"1. Write a dialogue script for {speakers} speakers about \"{topic}\" at {options.difficulty} difficulty, "
		f"lasting about {options.time_minutes} minutes when read aloud.\n"
		f"2. Write {options.question_count} {options.question_type} questions answerable from the script only.\n"
		"Return ONLY JSON of this shape:\n"
		'{\n  "dialogue": "Speaker1: ...\\nSpeaker2: ...",\n  '
		+ _QUESTION_SHAPE % {"question_type": options.question_type}
		+ "\n}"
	)


def _writing_prompt(options: GenerationOptions, topic: str) -> str:
	task = "Task 1 (describe a chart, diagram or process)" if options.question_type == "TASK_1" else "Task 2 (essay)"
	return (
		f"You are an IELTS Writing examiner. Create one {task} prompt on \"{topic}\" at {options.difficulty} difficulty.\n"
		"Put the task in question_text and a band 9 model answer in correct_answer.\n"
		"Return ONLY JSON of this shape:\n{\n  "
		+ _QUESTION_SHAPE % {"question_type": options.question_type}
		+ "\n}"
	)


def _speaking_prompt(options: GenerationOptions, topic: str) -> str:
	return (
		f"You are an IELTS Speaking examiner. Create {options.question_count} {options.question_type} speaking questions "
		f"on \"{topic}\" at {options.difficulty} difficulty.\n"
		"Put each question in question_text and a concise band 8+ sample answer in correct_answer.\n"
		"Return ONLY JSON of this shape:\n{\n  "
		+ _QUESTION_SHAPE % {"question_type": options.question_type}
		+ "\n}"
	)


_PROMPT_BUILDERS = {
	"reading": _reading_prompt,
	"listening": _listening_prompt,
	"writing": _writing_prompt,
	"speaking": _speaking_prompt,
}


class GeminiPracticeProvider:
	"""Generates a practice test payload with one Gemini call."""

	def __init__(
		self,
		client_factory: Callable[[], GeminiClient] = GeminiClient,
		*,
		rng: Optional[random.Random] = None,
	) -> None:
		self.client_factory = client_factory
		self.rng = rng or random.Random()

	def pick_topic(self, options: GenerationOptions) -> str:
		if options.topic_preference:
			return options.topic_preference
		catalog = get_topics_for_module(options.module, options.question_type)
		return self.rng.choice(catalog) if catalog else "General"

	async def generate(self, options: GenerationOptions) -> ProviderResult:
		topic = self.pick_topic(options)
		prompt = _PROMPT_BUILDERS[options.module](options, topic)
		try:
			client = self.client_factory()
		except ValueError as err:
			raise ProviderError(str(err), kind="invalid_key") from err
		try:
			response = await client.generate(prompt)
		finally:
			await client.aclose()
		data = _extract_json_object(response.text)
		data.setdefault("testId", f"ai-{uuid.uuid4().hex}")
		data.setdefault("topic", topic)
		data["module"] = options.module
		logger.info("Gemini produced %s payload on %r (%d tokens)", options.module, topic, response.tokens_used)
		return ProviderResult(payload=data, tokens_used=response.tokens_used)
