from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Question(BaseModel):
	id: str
	type: str = "multiple_choice"
	question: str
	options: List[str]
	correct_answer: str
	explanation: Optional[str] = None


class Lesson(BaseModel):
	id: int
	title: str
	description: str
	category: str
	level: int = 1
	xp_reward: int = 10
	order: int = 0
	is_locked: bool = False
	questions: List[Question] = Field(default_factory=list)
	# Reading lessons carry the passage read aloud and practised
	body: Optional[str] = None


READING_BODY = (
	"The pandemic has changed our relationship with food in ways both subtle and dramatic. "
	"Restaurants have adapted to new safety protocols, while home cooking has become more popular than ever. "
	"Many people have discovered the joy of cooking at home. They have learned to prepare meals that were "
	"once only available in restaurants. Online grocery shopping has also become a necessity for many families. "
	"Food delivery services have seen unprecedented growth during this time. These companies have hired "
	"thousands of new drivers to meet the increased demand. Many restaurants now offer takeout and delivery "
	"options that they never had before. Looking ahead to 2021, experts predict that these changes will "
	"continue to shape how we eat. Home cooking will likely remain popular, and restaurants will continue to "
	"innovate with new service models. The way we think about food and dining may never be the same."
)


def _seed_lessons() -> List[Lesson]:
	return [
		Lesson(
			id=1,
			title="Basic Greetings",
			description="Learn how to say hello and introduce yourself",
			category="vocabulary",
			xp_reward=15,
			order=1,
			questions=[
				Question(
					id="1",
					question="What does 'Hello' mean?",
					options=["Olá", "Adeus", "Por favor", "Obrigado"],
					correct_answer="Olá",
					explanation="'Hello' is a common greeting that means 'Olá' in Portuguese.",
				),
				Question(
					id="2",
					question="How do you say 'Good morning'?",
					options=["Good night", "Good morning", "Good evening", "Good afternoon"],
					correct_answer="Good morning",
					explanation="'Good morning' is used to greet someone in the morning.",
				),
			],
		),
		Lesson(
			id=2,
			title="Family Members",
			description="Learn words for family relationships",
			category="vocabulary",
			xp_reward=20,
			order=2,
			questions=[
				Question(
					id="1",
					question="What does 'Mother' mean?",
					options=["Mãe", "Pai", "Irmã", "Avó"],
					correct_answer="Mãe",
					explanation="'Mother' means 'Mãe' in Portuguese.",
				),
				Question(
					id="2",
					question="What does 'Father' mean?",
					options=["Mãe", "Pai", "Irmão", "Avô"],
					correct_answer="Pai",
					explanation="'Father' means 'Pai' in Portuguese.",
				),
			],
		),
		Lesson(
			id=3,
			title="Colors",
			description="Learn basic color names in English",
			category="vocabulary",
			xp_reward=15,
			order=3,
			questions=[
				Question(
					id="1",
					question="What does 'Red' mean?",
					options=["Vermelho", "Azul", "Verde", "Amarelo"],
					correct_answer="Vermelho",
					explanation="'Red' means 'Vermelho' in Portuguese.",
				),
				Question(
					id="2",
					question="What does 'Blue' mean?",
					options=["Vermelho", "Azul", "Verde", "Amarelo"],
					correct_answer="Azul",
					explanation="'Blue' means 'Azul' in Portuguese.",
				),
			],
		),
		Lesson(
			id=4,
			title="How Will We Eat in 2021?",
			description="Read along with Teacher Tommy and practise your pronunciation",
			category="reading",
			xp_reward=25,
			order=4,
			body=READING_BODY,
		),
	]


class LessonCatalog:
	"""In-memory lesson store, seeded at startup."""

	def __init__(self, lessons: Optional[List[Lesson]] = None) -> None:
		self._lessons: Dict[int, Lesson] = {}
		for lesson in (_seed_lessons() if lessons is None else lessons):
			self._lessons[lesson.id] = lesson
		self._next_id = max(self._lessons, default=0) + 1

	def all(self) -> List[Lesson]:
		return sorted(self._lessons.values(), key=lambda l: l.order)

	def by_category(self, category: str) -> List[Lesson]:
		return [l for l in self.all() if l.category == category]

	def get(self, lesson_id: int) -> Optional[Lesson]:
		return self._lessons.get(lesson_id)

	def add(self, lesson: Lesson) -> Lesson:
		lesson = lesson.model_copy(update={"id": self._next_id})
		self._lessons[lesson.id] = lesson
		self._next_id += 1
		return lesson


catalog = LessonCatalog()
