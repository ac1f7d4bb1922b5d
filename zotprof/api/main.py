# zotprof/api/main.py

from collections import OrderedDict
from typing import Any, Dict, List, Literal, Optional
from urllib.parse import parse_qs, urlencode, urlsplit
import logging
import uuid

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from zotprof.settings import CORS_ORIGINS, DEFAULT_TERM, MAX_SESSIONS
from zotprof.chatbot.actions import CoursePlanner, open_sources, search_course, search_professor
from zotprof.chatbot.conversation import ConversationEngine, ConversationState, start_conversation
from zotprof.chatbot.llm_intent import parse_search_intent
from zotprof.chatbot.nlu_rules import extract_term
from zotprof.services.errors import NarrativeError
from zotprof.services.models import Term
from zotprof.services.narrative import NarrativeService

log = logging.getLogger("zotprof.api")

app = FastAPI(
    title="ZotProf API",
    version="0.2.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# One conversation per browser session. Each session has a single writer,
# so there is no locking here. Least recently used sessions are dropped once
# there are more than MAX_SESSIONS.
SESSIONS: "OrderedDict[str, ConversationState]" = OrderedDict()


def _save_session(session_id: str, state: ConversationState) -> None:
    SESSIONS[session_id] = state
    SESSIONS.move_to_end(session_id)
    while len(SESSIONS) > MAX_SESSIONS:
        expired, _ = SESSIONS.popitem(last=False)
        log.info("Dropping chat session %s", expired)


# ---------------------------
# Search <-> chat handoff links
# ---------------------------


def build_search_url(query: str, search_type: str = "class") -> str:
    return "/search?" + urlencode({"q": query, "type": search_type})


def build_chat_url(
    context: Optional[str] = None,
    professor: Optional[str] = None,
    course: Optional[str] = None,
) -> str:
    params = {k: v for k, v in (("context", context), ("professor", professor), ("course", course)) if v}
    return "/chat" + ("?" + urlencode(params) if params else "")


def parse_handoff_params(url: str) -> Dict[str, Optional[str]]:
    qs = parse_qs(urlsplit(url).query)
    return {key: (qs.get(key) or [None])[0] for key in ("q", "type", "context", "professor", "course")}


def _resolve_term(raw: Optional[str]) -> Term:
    term = extract_term(raw or "")
    return term or Term.from_label(DEFAULT_TERM)


# ---------------------------
# Models
# ---------------------------


class SearchResponse(BaseModel):
    query: str
    type: str
    term: str
    course_code: Optional[str] = None
    course_title: str = ""
    found: bool
    message: Optional[str] = None
    chat_url: str
    results: List[dict]


class ChatStartRequest(BaseModel):
    context: Optional[str] = None
    professor: Optional[str] = None
    course: Optional[str] = None


class ChatRequest(BaseModel):
    session_id: str
    message: str


class ChatResponse(BaseModel):
    session_id: str
    stage: str
    messages: List[str]
    # link back to the search the chat was opened from
    search_url: Optional[str] = None


class SummaryRequest(BaseModel):
    type: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class SummaryResponse(BaseModel):
    summary: str


class IntentRequest(BaseModel):
    query: Optional[str] = None


# ---------------------------
# Routes
# ---------------------------


@app.get("/")
def healthcheck():
    return {"status": "ok", "service": "zotprof-api"}


@app.get("/api/search", response_model=SearchResponse)
async def search(
    q: str = Query(..., min_length=1),
    type: Literal["class", "professor"] = "class",
    term: Optional[str] = None,
):
    resolved = _resolve_term(term)
    async with open_sources() as sources:
        if type == "professor":
            result = await search_professor(sources, q, resolved)
        else:
            result = await search_course(sources, q, resolved)

    payload = result.to_dict()
    for row in payload["results"]:
        row["ask_ai_url"] = build_chat_url(professor=row["name"], course=q)
    return SearchResponse(type=type, chat_url=build_chat_url(context=q), **payload)


@app.post("/api/chat/start", response_model=ChatResponse)
def chat_start(req: ChatStartRequest):
    result = start_conversation(req.context, req.professor, req.course)
    session_id = uuid.uuid4().hex
    _save_session(session_id, result.state)
    back = req.context or req.course
    return ChatResponse(
        session_id=session_id,
        stage=result.state.stage.value,
        messages=result.messages,
        search_url=build_search_url(back) if back else None,
    )


@app.post("/api/chat", response_model=ChatResponse)
async def chat(req: ChatRequest):
    state = SESSIONS.get(req.session_id)
    if state is None:
        raise HTTPException(status_code=404, detail="Unknown session, start a new chat.")
    text = req.message.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message is required")

    async with open_sources() as sources:
        engine = ConversationEngine(CoursePlanner(sources), sources.narrative)
        result = await engine.handle(state, text)

    _save_session(req.session_id, result.state)
    return ChatResponse(session_id=req.session_id, stage=result.state.stage.value, messages=result.messages)


@app.post("/generate-ai-summary", response_model=SummaryResponse)
async def generate_ai_summary(req: SummaryRequest):
    if not req.type or not req.data:
        raise HTTPException(status_code=400, detail="Type and data are required")

    try:
        summary = await NarrativeService().summarize(req.type, req.data)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid summary type")
    except NarrativeError as e:
        if e.status_code == 429:
            raise HTTPException(status_code=429, detail="Rate limit exceeded. Please try again later.")
        if e.status_code == 402:
            raise HTTPException(status_code=402, detail="Payment required. Please add credits to your workspace.")
        raise HTTPException(status_code=500, detail="Failed to generate summary")
    return SummaryResponse(summary=summary)


@app.post("/search-intent")
def search_intent(req: IntentRequest):
    query = (req.query or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query is required")
    return parse_search_intent(query)
