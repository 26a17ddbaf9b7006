from __future__ import annotations
from typing import Any, Dict, Optional

from .errors import InvalidPayload


def _populated(value: Any) -> bool:
	if value is None:
		return False
	if isinstance(value, str):
		return bool(value.strip())
	if isinstance(value, (list, dict)):
		return bool(value)
	return True


def payload_problem(module: str, payload: Any) -> Optional[str]:
	"""Return a description of the first structural problem in `payload`, or None if it is valid.

	Only structure is checked: question groups, their type and questions, and
	that every question carries a number and a correct answer. Reading payloads
	must also carry passage content. Answer correctness is never judged here.
	"""
	if not isinstance(payload, dict):
		return "payload is not an object"
	groups = payload.get("questionGroups")
	if not isinstance(groups, list) or not groups:
		return "questionGroups missing or empty"
	for gi, group in enumerate(groups):
		if not isinstance(group, dict):
			return f"group {gi} is not an object"
		qtype = group.get("question_type")
		if not isinstance(qtype, str) or not qtype.strip():
			return f"group {gi} has no question_type"
		questions = group.get("questions")
		if not isinstance(questions, list) or not questions:
			return f"group {gi} has no questions"
		for qi, question in enumerate(questions):
			if not isinstance(question, dict):
				return f"group {gi} question {qi} is not an object"
			if not _populated(question.get("question_number")):
				return f"group {gi} question {qi} has no question_number"
			if not _populated(question.get("correct_answer")):
				return f"group {gi} question {qi} has no correct_answer"
	if module == "reading":
		passage = payload.get("passage")
		content = passage.get("content") if isinstance(passage, dict) else passage
		if not isinstance(content, str) or not content.strip():
			return "reading passage content missing"
	return None


def is_valid_payload(module: str, payload: Any) -> bool:
	return payload_problem(module, payload) is None


def validate_payload(module: str, payload: Any) -> Dict[str, Any]:
	problem = payload_problem(module, payload)
	if problem is not None:
		raise InvalidPayload(f"Invalid {module} payload: {problem}", module=module)
	return payload
