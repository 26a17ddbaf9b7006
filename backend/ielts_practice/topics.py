from __future__ import annotations
from typing import Dict, List, Optional, Tuple

# Common IELTS topics per module. Order matters: Smart-Cycle breaks ties by catalog position.

MODULES: Tuple[str, ...] = ("reading", "listening", "writing", "speaking")

READING_TOPICS: Tuple[str, ...] = (
	"Climate Change & Environment",
	"Technology & Innovation",
	"Health & Medicine",
	"Education & Learning",
	"History & Archaeology",
	"Space & Astronomy",
	"Psychology & Behavior",
	"Business & Economics",
	"Art & Culture",
	"Language & Communication",
	"Wildlife & Conservation",
	"Urban Development",
	"Agriculture & Food",
	"Transport & Infrastructure",
	"Energy & Resources",
	"Ocean & Marine Life",
	"Ancient Civilizations",
	"Social Issues",
	"Scientific Research",
	"Architecture & Design",
)

LISTENING_TOPICS: Tuple[str, ...] = (
	"University & Campus Life",
	"Travel & Tourism",
	"Job Interview & Employment",
	"Accommodation & Housing",
	"Health & Fitness",
	"Library & Study Resources",
	"Shopping & Services",
	"Transport & Directions",
	"Events & Entertainment",
	"Banking & Finance",
	"Food & Restaurants",
	"Sports & Recreation",
	"Museum & Exhibition",
	"Environment & Nature",
	"Technology & Gadgets",
	"Community Services",
	"Medical Appointments",
	"Course Registration",
	"Research Projects",
	"Local Facilities",
)

WRITING_TASK1_TOPICS: Tuple[str, ...] = (
	"Population Statistics",
	"Economic Data",
	"Environmental Trends",
	"Technology Adoption",
	"Education Statistics",
	"Health & Lifestyle Data",
	"Transport & Traffic",
	"Energy Consumption",
	"Employment Trends",
	"Consumer Behavior",
	"Process Diagrams",
	"Map Comparisons",
	"Life Cycle Diagrams",
	"Manufacturing Process",
	"Natural Phenomena",
)

WRITING_TASK2_TOPICS: Tuple[str, ...] = (
	"Education System",
	"Technology in Society",
	"Environment & Pollution",
	"Health & Lifestyle",
	"Work & Career",
	"Government & Policy",
	"Crime & Punishment",
	"Globalization",
	"Media & Advertising",
	"Culture & Traditions",
	"Youth & Children",
	"Urban vs Rural Life",
	"Travel & Tourism",
	"Arts & Creativity",
	"Science & Research",
	"Social Issues",
	"Economic Development",
	"Communication",
	"Sports & Competition",
	"Gender Equality",
)

SPEAKING_TOPICS_PART1: Tuple[str, ...] = (
	"Hometown & Living Area",
	"Accommodation & Home",
	"Work & Career",
	"Study & Education",
	"Daily Routine",
	"Family & Friends",
	"Food & Cooking",
	"Shopping & Spending",
	"Hobbies & Leisure",
	"Sports & Fitness",
	"Music & Art",
	"Books & Films",
	"Travel & Holidays",
	"Transport",
	"Weather & Seasons",
	"Technology & Gadgets",
	"Social Media",
	"Health & Lifestyle",
	"Clothes & Fashion",
	"Pets & Animals",
	"Weekend Plans",
	"Celebrations & Festivals",
)

SPEAKING_TOPICS_PART2: Tuple[str, ...] = (
	"Describe a person you admire",
	"Describe a memorable trip",
	"Describe a place in your city",
	"Describe an important event",
	"Describe a time you helped someone",
	"Describe a challenging experience",
	"Describe an achievement you are proud of",
	"Describe a gift you received",
	"Describe a skill you learned",
	"Describe a book/movie you enjoyed",
	"Describe a piece of technology you use",
	"Describe a hobby you enjoy",
	"Describe a time you solved a problem",
	"Describe a time you learned something new",
	"Describe a time you worked in a team",
	"Describe a special meal",
	"Describe an object you use every day",
	"Describe a rule you would change",
)

SPEAKING_TOPICS_PART3: Tuple[str, ...] = (
	"Education & Learning",
	"Work Culture & Careers",
	"Technology and Society",
	"Media & Communication",
	"Environment & Climate",
	"Health in Modern Life",
	"City Life vs Rural Life",
	"Transport and Urban Planning",
	"Culture & Traditions",
	"Tourism & Globalisation",
	"Arts and Public Funding",
	"Sports and Wellbeing",
	"Family Roles and Relationships",
	"Consumerism & Advertising",
	"Crime and Safety",
	"The Future of Work",
)

SPEAKING_TOPICS_FULL: Tuple[str, ...] = (
	"Hometown & Living Area",
	"Work & Career",
	"Study & Education",
	"Technology",
	"Travel & Holidays",
	"Food & Cooking",
	"Health & Fitness",
	"Sports & Leisure",
	"Music & Art",
	"Books & Films",
	"Shopping & Spending",
	"Transport",
	"Environment",
	"Family & Friends",
	"Culture & Traditions",
	"Media & Communication",
	"City Life",
	"Education (Deep Dive)",
	"Technology (Deep Dive)",
)

_SPEAKING_BY_PART: Dict[str, Tuple[str, ...]] = {
	"PART_1": SPEAKING_TOPICS_PART1,
	"PART_2": SPEAKING_TOPICS_PART2,
	"PART_3": SPEAKING_TOPICS_PART3,
}


def get_topics_for_module(module: str, subtype: Optional[str] = None) -> List[str]:
	"""Return the ordered catalog for a module and optional subtype (empty for unknown modules)."""
	if module == "reading":
		return list(READING_TOPICS)
	if module == "listening":
		return list(LISTENING_TOPICS)
	if module == "writing":
		return list(WRITING_TASK1_TOPICS if subtype == "TASK_1" else WRITING_TASK2_TOPICS)
	if module == "speaking":
		return list(_SPEAKING_BY_PART.get(subtype or "", SPEAKING_TOPICS_FULL))
	return []
