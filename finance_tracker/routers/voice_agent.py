import time
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from finance_tracker.auth import get_current_user
from finance_tracker.config import get_settings
from finance_tracker.database import get_db
from finance_tracker.errors import BadRequestError, FinanceAPIError, NotFoundError
from finance_tracker.models import User, VoiceInteraction
from finance_tracker.responses import envelope
from finance_tracker.schemas import QuickQuestionRequest, VoiceInteractionOut
from finance_tracker.services.gemini import GeminiService, get_gemini_service
from finance_tracker.services.uploads import public_uri, save_upload, validate_audio_file
from finance_tracker.services.voice_dispatch import execute_endpoint, map_intent_to_type

logger = structlog.get_logger(__name__)

router = APIRouter()


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _entities(parameters) -> list[dict]:
    if not isinstance(parameters, dict):
        return []
    return [{"type": key, "value": value, "confidence": 90} for key, value in parameters.items()]


async def _fail(
    db: Session,
    gemini: GeminiService,
    interaction: VoiceInteraction,
    query: str,
    exc: Exception,
    error_type: str,
    started: float,
) -> JSONResponse:
    """Record the failure on `interaction` and answer 500 with a friendly sentence."""
    if isinstance(exc, FinanceAPIError):
        message = exc.message
        logger.warning(
            "voice_agent_failed",
            interaction_id=interaction.id,
            error_type=error_type,
            error=message,
        )
    else:
        # the session may hold a half-applied change from the failed step
        db.rollback()
        message = str(exc) or exc.__class__.__name__
        logger.exception(
            "voice_agent_failed", interaction_id=interaction.id, error_type=error_type
        )
    friendly = await gemini.format_error_response(query, message)

    interaction.processing_status = "failed"
    interaction.error_type = error_type
    interaction.error_message = message
    interaction.response_text = friendly
    interaction.response_type = "error"
    interaction.action_taken = "none"
    interaction.total_processing_time_ms = _elapsed_ms(started)
    db.commit()

    content = {
        "success": False,
        "message": friendly,
        "data": {"interactionId": interaction.id},
    }
    if get_settings().is_development:
        content["error"] = message
    return JSONResponse(status_code=500, content=content)


def _complete(
    interaction: VoiceInteraction, intent: str, confidence: float, entities: list, response: str
) -> None:
    interaction.intent_raw = intent
    interaction.intent_type = map_intent_to_type(intent)
    interaction.intent_confidence = confidence
    interaction.entities = entities
    interaction.response_text = response
    interaction.response_type = "information"
    interaction.action_taken = "data_retrieved"
    interaction.processing_status = "completed"


@router.post("/process")
async def process_voice_query(
    audio: Optional[UploadFile] = File(None),
    duration: float = Form(0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gemini: GeminiService = Depends(get_gemini_service),
):
    started = time.perf_counter()
    if audio is None:
        raise BadRequestError("No audio file uploaded")

    path = await save_upload(audio, "voice", get_settings().max_audio_size_bytes)
    try:
        recording = validate_audio_file(path)
    except BadRequestError:
        path.unlink(missing_ok=True)
        raise

    interaction = VoiceInteraction(
        user_id=current_user.id,
        recording_uri=public_uri(path),
        recording_duration=duration,
        recording_format=recording["format"],
        recording_size=recording["size"],
        processing_status="processing",
    )
    db.add(interaction)
    db.commit()
    db.refresh(interaction)
    logger.info("voice_interaction_started", interaction_id=interaction.id, user_id=current_user.id)

    try:
        understood = await gemini.transcribe_and_understand(path)
    except Exception as exc:
        return await _fail(db, gemini, interaction, "your request", exc, "transcription_failed", started)

    query = understood.get("transcription") or "your request"
    try:
        interaction.transcription_text = query
        interaction.transcription_confidence = understood["confidence"] * 100
        interaction.transcription_time_ms = _elapsed_ms(started)
        interaction.endpoint = understood["endpoint"]

        api_data = execute_endpoint(
            db,
            understood["endpoint"],
            understood["method"],
            understood["parameters"],
            current_user,
        )
        response = await gemini.format_natural_response(api_data, understood["intent"], query)
        _complete(
            interaction,
            understood["intent"],
            understood["confidence"] * 100,
            _entities(understood["parameters"]),
            response,
        )
        interaction.total_processing_time_ms = _elapsed_ms(started)
        db.commit()
    except Exception as exc:
        return await _fail(db, gemini, interaction, query, exc, "action_failed", started)

    logger.info(
        "voice_interaction_completed",
        interaction_id=interaction.id,
        intent=understood["intent"],
        endpoint=understood["endpoint"],
        duration_ms=interaction.total_processing_time_ms,
    )
    return envelope(
        {
            "interactionId": interaction.id,
            "transcription": query,
            "intent": understood["intent"],
            "response": response,
            "confidence": understood["confidence"],
            "processingTime": interaction.total_processing_time_ms,
            "apiData": api_data,
        },
        message="Voice query processed successfully",
    )


@router.post("/quick-question")
async def quick_question(
    body: QuickQuestionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gemini: GeminiService = Depends(get_gemini_service),
):
    started = time.perf_counter()
    question = (body.question or "").strip()
    if not question:
        raise BadRequestError("Question is required")

    interaction = VoiceInteraction(
        user_id=current_user.id,
        transcription_text=question,
        transcription_confidence=100,
        is_quick_question=True,
        quick_question_type=body.type,
        processing_status="processing",
    )
    db.add(interaction)
    db.commit()
    db.refresh(interaction)

    try:
        understood = await gemini.understand_text_query(question)
    except Exception as exc:
        return await _fail(db, gemini, interaction, question, exc, "understanding_failed", started)

    try:
        interaction.endpoint = understood["endpoint"]
        api_data = execute_endpoint(
            db,
            understood["endpoint"],
            understood["method"],
            understood["parameters"],
            current_user,
        )
        response = await gemini.format_natural_response(api_data, understood["intent"], question)
        _complete(interaction, understood["intent"], 100, [], response)
        interaction.total_processing_time_ms = _elapsed_ms(started)
        db.commit()
    except Exception as exc:
        return await _fail(db, gemini, interaction, question, exc, "action_failed", started)

    return envelope(
        {
            "interactionId": interaction.id,
            "question": question,
            "response": response,
            "apiData": api_data,
            "processingTime": interaction.total_processing_time_ms,
        },
        message="Quick question processed",
    )


@router.get("/history")
async def get_history(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    interactions = (
        db.query(VoiceInteraction)
        .filter(VoiceInteraction.user_id == current_user.id)
        .order_by(VoiceInteraction.created_at.desc(), VoiceInteraction.id.desc())
        .limit(limit)
        .all()
    )
    return envelope(
        {
            "interactions": [VoiceInteractionOut.model_validate(i) for i in interactions],
            "count": len(interactions),
        }
    )


@router.get("/interactions/{interaction_id}")
async def get_interaction(
    interaction_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    interaction = (
        db.query(VoiceInteraction)
        .filter(
            VoiceInteraction.id == interaction_id,
            VoiceInteraction.user_id == current_user.id,
        )
        .first()
    )
    if not interaction:
        raise NotFoundError("Voice interaction not found")
    return envelope({"interaction": VoiceInteractionOut.model_validate(interaction)})
