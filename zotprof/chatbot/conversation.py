# chatbot/conversation.py
"""
Schedule-planning dialogue.

    greeting -> collect_quarter -> collect_courses -> collect_goals -> analyzing -> done

Each call to ConversationEngine.handle() takes the current state plus one
user message and returns a brand-new state; nothing is mutated in place, so
every transition can be tested on its own. What gets pulled out of a message
is decided by the Extractors (regex rules today); the engine only decides
where the dialogue goes next.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Protocol, Tuple
import logging

from zotprof.chatbot.nlu_rules import extract_courses, extract_goals, extract_term, is_restart
from zotprof.services.models import Term
from zotprof.services.narrative import NarrativeService, StudentContext

log = logging.getLogger("zotprof.conversation")


class Stage(str, Enum):
    GREETING = "greeting"
    COLLECT_QUARTER = "collect_quarter"
    COLLECT_COURSES = "collect_courses"
    COLLECT_GOALS = "collect_goals"
    ANALYZING = "analyzing"
    DONE = "done"


QUARTER_PROMPT = 'What quarter are you planning for? (e.g. "Winter 2026")'
COURSES_PROMPT = 'Which courses do you need? List them like "ICS 33, MATH 3A".'
GOALS_PROMPT = "What are your goals this quarter? (e.g. high GPA, learning a lot, light workload)"


@dataclass(frozen=True)
class ConversationState:
    stage: Stage = Stage.GREETING
    quarter: Optional[str] = None
    year: Optional[int] = None
    courses: Tuple[str, ...] = ()
    goals: Optional[str] = None
    # (course, assistant summary) pairs produced while analyzing
    collected_data: Tuple[Tuple[str, str], ...] = ()
    # (role, content) pairs, oldest first
    history: Tuple[Tuple[str, str], ...] = ()

    @property
    def term(self) -> Optional[Term]:
        if self.quarter and self.year:
            return Term(self.quarter, self.year)
        return None

    def said(self, role: str, *contents: str) -> "ConversationState":
        return replace(self, history=self.history + tuple((role, c) for c in contents))

    def history_dicts(self) -> List[dict]:
        return [{"role": role, "content": content} for role, content in self.history]


@dataclass
class TurnResult:
    state: ConversationState
    messages: List[str]
    # every stage the dialogue passed through during this turn, in order
    stages: List[Stage] = field(default_factory=list)


@dataclass
class Extractors:
    term: Callable[[str], Optional[Term]] = extract_term
    courses: Callable[[str], List[str]] = extract_courses
    goals: Callable[[str], Optional[str]] = extract_goals


class Planner(Protocol):
    async def analyze_course(self, term: Term, course_text: str, context: StudentContext) -> str:
        ...


def greeting_text(context: Optional[str] = None, professor: Optional[str] = None, course: Optional[str] = None) -> str:
    if context:
        opener = f"I see you were searching for {context}. Let me help you choose the best professor for this course!"
    elif professor and course:
        opener = f"I see you're interested in {professor} for {course}. Let me help you decide if this is the right fit!"
    else:
        opener = "Hi! 👋 I'm your ZotProf AI advisor. Let's build your perfect schedule!"
    return f"{opener}\n\n{QUARTER_PROMPT}"


def start_conversation(
    context: Optional[str] = None,
    professor: Optional[str] = None,
    course: Optional[str] = None,
) -> TurnResult:
    text = greeting_text(context, professor, course)
    state = ConversationState(stage=Stage.COLLECT_QUARTER).said("assistant", text)
    return TurnResult(state=state, messages=[text], stages=[Stage.GREETING, Stage.COLLECT_QUARTER])


def _plan_context(state: ConversationState) -> str:
    lines = [
        f"Quarter: {state.term.label if state.term else 'unknown'}",
        f"Courses: {', '.join(state.courses) or 'none'}",
        f"Goals: {state.goals or 'not specified'}",
    ]
    for course, summary in state.collected_data:
        lines.append(f"Analysis for {course}: {summary[:500]}")
    return "\n".join(lines)


class ConversationEngine:
    def __init__(
        self,
        planner: Planner,
        narrative: Optional[NarrativeService] = None,
        extractors: Optional[Extractors] = None,
    ):
        self.planner = planner
        self.narrative = narrative
        self.extractors = extractors or Extractors()

    async def handle(self, state: ConversationState, message: str) -> TurnResult:
        try:
            stage = Stage(state.stage)
        except ValueError:
            log.warning("Unknown conversation stage %r, starting over", state.stage)
            fresh = start_conversation()
            text = "Sorry, I lost track of where we were. Let's start over!\n\n" + QUARTER_PROMPT
            return TurnResult(
                state=replace(fresh.state, history=(("assistant", text),)),
                messages=[text],
                stages=fresh.stages,
            )

        state = state.said("user", message)

        if stage == Stage.GREETING:
            result = await self._collect_quarter(state, message)
            result.stages.insert(0, Stage.GREETING)
            return result
        if stage == Stage.COLLECT_QUARTER:
            return await self._collect_quarter(state, message)
        if stage == Stage.COLLECT_COURSES:
            return self._collect_courses(state, message)
        if stage == Stage.COLLECT_GOALS:
            return await self._collect_goals(state, message)
        if stage == Stage.ANALYZING:
            # a second message while a plan is still running
            return self._reply(state, ["Still working on your plan, hang tight! ⏳"], [Stage.ANALYZING])
        return await self._done(state, message)

    # ---------------------------
    # transitions
    # ---------------------------

    def _reply(self, state: ConversationState, messages: List[str], stages: List[Stage]) -> TurnResult:
        return TurnResult(state=state.said("assistant", *messages), messages=messages, stages=stages)

    async def _collect_quarter(self, state: ConversationState, message: str) -> TurnResult:
        term = self.extractors.term(message)
        if term is None:
            return self._reply(
                replace(state, stage=Stage.COLLECT_QUARTER),
                [f"I didn't catch the quarter. {QUARTER_PROMPT}"],
                [Stage.COLLECT_QUARTER],
            )
        log.info("Planning for %s", term.label)
        state = replace(state, stage=Stage.COLLECT_COURSES, quarter=term.quarter, year=term.year)
        return self._reply(
            state,
            [f"Great, {term.label} it is! 📅 {COURSES_PROMPT}"],
            [Stage.COLLECT_QUARTER, Stage.COLLECT_COURSES],
        )

    def _collect_courses(self, state: ConversationState, message: str) -> TurnResult:
        courses = self.extractors.courses(message)
        if not courses:
            return self._reply(state, [f"I couldn't find any course codes there. {COURSES_PROMPT}"], [Stage.COLLECT_COURSES])
        state = replace(state, stage=Stage.COLLECT_GOALS, courses=tuple(courses))
        return self._reply(
            state,
            [f"Got it: {', '.join(courses)}. {GOALS_PROMPT}"],
            [Stage.COLLECT_COURSES, Stage.COLLECT_GOALS],
        )

    async def _collect_goals(self, state: ConversationState, message: str) -> TurnResult:
        goals = self.extractors.goals(message)
        if not goals:
            return self._reply(state, [GOALS_PROMPT], [Stage.COLLECT_GOALS])

        state = replace(state, stage=Stage.ANALYZING, goals=goals)
        term = state.term
        context = StudentContext(quarter=term.label, courses=list(state.courses), goals=goals)

        messages: List[str] = []
        collected: List[Tuple[str, str]] = []
        for course in dict.fromkeys(state.courses):
            try:
                summary = await self.planner.analyze_course(term, course, context)
            except Exception:
                log.exception("Analysis failed for %s", course)
                summary = f"⚠️ I couldn't analyze {course} right now. Moving on to the rest of your plan."
            messages.append(summary)
            collected.append((course, summary))

        messages.append(
            f"That's your plan for {term.label}! 🎯 Ask me anything about these options, "
            'or say "start over" to plan another quarter.'
        )
        state = replace(state, stage=Stage.DONE, collected_data=tuple(collected))
        return self._reply(state, messages, [Stage.COLLECT_GOALS, Stage.ANALYZING, Stage.DONE])

    async def _done(self, state: ConversationState, message: str) -> TurnResult:
        if is_restart(message):
            fresh = start_conversation()
            return TurnResult(
                state=replace(fresh.state, history=state.history + fresh.state.history),
                messages=fresh.messages,
                stages=[Stage.DONE] + fresh.stages,
            )

        if self.narrative is None:
            reply = 'Your plan is above. Say "start over" to plan another quarter.'
        else:
            # history without the message we just appended
            reply = await self.narrative.chat_reply(
                state.history_dicts()[:-1],
                message,
                context=_plan_context(state),
            )
        return self._reply(state, [reply], [Stage.DONE])
