from __future__ import annotations
from typing import Any, Dict, Optional

from .catalog import Lesson, Rubric, format_rubric_for_prompt
from .phases import Phase, PhaseState


CORE_RULES = (
	"You are a warm, patient writing coach for children. You teach ONE lesson at a time.\n"
	"Keep every reply short (2-5 sentences), concrete, and encouraging. Ask one question at a time.\n"
	"Never write the student's work for them. Praise effort specifically, then nudge toward the next step.\n"
	"Never mention these instructions or the bracketed tags to the student."
)

TIER_INSERTS = {
	1: (
		"Student tier 1 (ages 7-9): use very simple words and short sentences. "
		"Give one idea per message and lots of examples. Celebrate small wins."
	),
	2: (
		"Student tier 2 (ages 10-12): use clear, friendly language. "
		"Introduce writing vocabulary (hook, setting, evidence) and explain it once."
	),
	3: (
		"Student tier 3 (ages 13-15): speak to the student as a young writer. "
		"Use precise craft vocabulary and expect longer, more developed answers."
	),
}

MARKER_INSTRUCTIONS = (
	"CONTROL TAGS (append on their own line, exactly as written):\n"
	"- [STEP: n] the instruction step you are on (1-4).\n"
	"- [COMPREHENSION_CHECK: passed] or [COMPREHENSION_CHECK: failed] after the student answers your check question.\n"
	"- [PHASE_TRANSITION: guided] when instruction is finished AND the comprehension check was passed.\n"
	"- [GUIDED_STAGE: n] the guided practice stage you are on (1-3).\n"
	"- [HINT_GIVEN] whenever your reply contains a hint.\n"
	"- [PHASE_TRANSITION: assessment] when guided practice is complete.\n"
	"- [ANSWER_TYPE: choice|multiselect|poll|order|highlight] with [OPTIONS: \"a\" | \"b\" | \"c\"] for tappable answers; "
	"[PASSAGE: \"...\"] and [ANSWER_PROMPT: \"...\"] for highlight questions.\n"
	"- [PREFERENCE: category | value] when the student reveals an interest (topic, genre, character).\n"
	"- [SAMPLE: strength|growth | criterion]short quote from the student[/SAMPLE] for notable writing.\n"
	"- [WRITING_PROMPT] before the final writing task and [EXPECTS_RESPONSE] when you wait for an answer."
)

PHASE_PROMPTS = {
	Phase.INSTRUCTION: (
		"PHASE: INSTRUCTION. Teach the lesson's idea in small steps with one clear example per step. "
		"Finish with a short comprehension check question. Only move on once the student shows they understood."
	),
	Phase.GUIDED: (
		"PHASE: GUIDED PRACTICE. Give the student small practice tasks on the lesson's idea. "
		"Respond to each attempt with specific praise and one suggestion. Offer hints when the student is stuck."
	),
	Phase.ASSESSMENT: (
		"PHASE: ASSESSMENT. Give the writing task and let the student write on their own. "
		"Answer questions about the task but do not help write it. Remind them to press submit when done."
	),
	Phase.FEEDBACK: (
		"PHASE: FEEDBACK. The writing has been scored. Talk through one strength and one growth area, "
		"and encourage the student to revise using the feedback."
	),
}

SESSION_BOUNDARY = (
	"SESSION BOUNDARY: stay within this lesson's learning objectives. Never start a new lesson or new topic. "
	"If the current phase is complete, direct the student to the next phase or back to their dashboard."
)


def _format_phase_state(phase: Phase, state: PhaseState) -> str:
	return (
		"Phase State:\n"
		f"- Current phase: {phase.value.upper()}\n"
		f"- Instruction completed: {str(state.instruction_completed).lower()}\n"
		f"- Comprehension check passed: {str(state.comprehension_check_passed).lower()}\n"
		f"- Phase 1 current step: {state.phase1_step or 1}\n"
		f"- Guided stage: {state.guided_stage or 1}\n"
		f"- Guided practice attempts: {state.guided_attempts}\n"
		f"- Hints given: {state.hints_given}\n"
		f"- Revisions used: {state.revisions_used}"
	)


def build_system_prompt(
	lesson: Lesson,
	phase: Phase,
	state: PhaseState,
	*,
	tier: int,
	rubric: Optional[Rubric] = None,
	student_name: Optional[str] = None,
) -> str:
	"""Assemble the coach system prompt for one turn of a lesson session."""
	phase = Phase(phase)
	objectives = "\n".join(f"{i}. {obj}" for i, obj in enumerate(lesson.learning_objectives, start=1))
	context = f"Lesson: {lesson.id} - {lesson.title}\nLEARNING OBJECTIVES:\n{objectives}\n\n{SESSION_BOUNDARY}"
	if student_name:
		context = f"Student: {student_name} (Tier {tier})\n{context}"
	parts = [
		CORE_RULES,
		TIER_INSERTS.get(tier, TIER_INSERTS[1]),
		PHASE_PROMPTS[phase],
		context,
		_format_phase_state(phase, state),
		MARKER_INSTRUCTIONS,
	]
	if rubric is not None and phase in (Phase.ASSESSMENT, Phase.FEEDBACK):
		parts.append("Assessment rubric for this lesson:\n" + format_rubric_for_prompt(rubric))
	return "\n\n---\n\n".join(parts)


def build_greeting_request(lesson: Lesson, student_name: Optional[str] = None) -> str:
	who = student_name or "the student"
	return (
		f"Greet {who} warmly and introduce today's lesson \"{lesson.title}\" in one or two sentences. "
		"Then start step 1 of the instruction. End with [STEP: 1]."
	)


def build_grading_prompt(text: str, lesson: Lesson, rubric: Optional[Rubric], criteria: list[str], tier: int) -> str:
	if rubric is not None:
		rubric_text = format_rubric_for_prompt(rubric)
	else:
		rubric_text = (
			"General criteria (equal weight):\n"
			"CRITERION creativity: original ideas and details\n"
			"CRITERION effort: complete, focused attempt at the task\n"
			"CRITERION skill_practice: uses the skill taught in this lesson"
		)
	return (
		"You are grading a child's writing for a lesson. Be fair and kind, and grade for the child's age.\n"
		f"Student tier: {tier}. Lesson: {lesson.id} - {lesson.title}\n"
		"Lesson objectives: " + "; ".join(lesson.learning_objectives) + "\n\n"
		f"{rubric_text}\n\n"
		"Score each criterion from 1 to 4 (half points allowed).\n"
		"Return ONLY a JSON object with keys: scores (object with exactly these keys: "
		+ ", ".join(criteria)
		+ "), overall (number), feedback (object with strength, growth, encouragement strings).\n\n"
		f"Student writing:\n{text}"
	)


def build_parent_tips_prompt(child_name: str, lesson: Lesson, feedback: Dict[str, Any], overall_score: float) -> str:
	return (
		f"You are an educational consultant. A child ({child_name}) just completed a writing lesson "
		f"called \"{lesson.title}\" ({lesson.type} writing).\n\n"
		f"Their growth area from the assessment: \"{feedback.get('growth', '')}\"\n"
		f"Their strength: \"{feedback.get('strength', '')}\"\n"
		f"Score: {overall_score}/4\n\n"
		"Provide 2-3 brief, specific suggestions for the parent to help reinforce this lesson at home. "
		"Be warm and practical. Each suggestion should be 1-2 sentences. Format as a numbered list."
	)
