from __future__ import annotations

import logging
import time
from dataclasses import asdict

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from melodify.logging_utils import (
    clear_request_context,
    composition_seed,
    configure_logging,
    current_request_id,
    log_event,
    new_request_id,
    request_elapsed_ms,
    set_request_context,
)
from melodify.models import (
    AdjustMelodyRequest,
    AnalyzeRequest,
    GenerateMelodyRequest,
    Melody,
    MelodyRequest,
    MelodyResponse,
    PoemAnalysis,
    StyleRequest,
    VariationRequest,
    VariationResponse,
)
from melodify.services.composer import (
    MelodyOptions,
    adjust_melody_params,
    generate_melody,
    melody_to_abc,
    regenerate_melody,
)
from melodify.services.poem_analysis import analyze_poem
from melodify.services.score_validation import validate_melody_diagnostics
from melodify.services.section_melody import generate_sectioned_melody
from melodify.services.seeded_random import random_seed
from melodify.services.variations import (
    VariationOptions,
    apply_style_preset,
    generate_variation,
    get_available_presets,
    get_preset_by_name,
    get_variation_description,
    summarize_variation,
)

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Melodify")


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or new_request_id()
    set_request_context(request_id=request_id, route=request.url.path, method=request.method)
    started = time.perf_counter()
    log_event(logger, "request_started")
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = request_elapsed_ms(started)
        log_event(logger, "request_completed", status_code=500, duration_ms=elapsed_ms)
        raise

    elapsed_ms = request_elapsed_ms(started)
    log_event(logger, "request_completed", status_code=response.status_code, duration_ms=elapsed_ms)
    response.headers["X-Request-ID"] = request_id
    clear_request_context()
    return response


@app.exception_handler(Exception)
async def global_exception_handler(_request: Request, exc: Exception):
    request_id = current_request_id()
    logger.exception(
        "unhandled_exception",
        extra={"event": "unhandled_exception", "request_id": request_id},
    )
    response = JSONResponse(
        status_code=500,
        content={
            "detail": "Something went wrong while processing your request. Please try again.",
            "request_id": request_id,
        },
        headers={"X-Request-ID": request_id},
    )
    clear_request_context()
    return response


def _handle_user_error(action: str, exc: ValueError) -> HTTPException:
    log_event(logger, "request_failed", level=logging.WARNING, action=action, reason=str(exc))
    return HTTPException(
        status_code=422,
        detail={
            "message": f"{action} failed. Please adjust inputs and try again.",
            "request_id": current_request_id(),
        },
    )


def _require_valid_melody(melody: Melody, action: str) -> list[str]:
    report = validate_melody_diagnostics(melody)
    if not report.valid:
        log_event(logger, "validation_failed", level=logging.ERROR, action=action, diagnostics=report.errors)
        raise ValueError(f"{action} could not proceed due to invalid melody data.")
    if report.warnings:
        log_event(logger, "validation_failed", level=logging.WARNING, action=action, diagnostics=report.warnings)
    return report.warnings


def _melody_response(melody: Melody, action: str, **extra) -> MelodyResponse:
    warnings = _require_valid_melody(melody, action)
    return MelodyResponse(melody=melody, abc=melody_to_abc(melody), warnings=warnings, **extra)


def _melody_options(payload: GenerateMelodyRequest, seed: int) -> MelodyOptions:
    return MelodyOptions(
        seed=seed,
        title=payload.title,
        force_params=payload.force_params.as_update() if payload.force_params else None,
        respect_breath_points=payload.respect_breath_points,
    )


@app.post("/api/analyze", response_model=PoemAnalysis)
def analyze_endpoint(payload: AnalyzeRequest):
    try:
        return analyze_poem(payload.text, mood=payload.mood)
    except ValueError as exc:
        raise _handle_user_error("Poem analysis", exc) from exc


def _compose(payload: GenerateMelodyRequest, action: str, regenerate: bool) -> MelodyResponse:
    seed = payload.seed if payload.seed is not None else random_seed()
    try:
        with composition_seed(seed):
            analysis = analyze_poem(payload.text, mood=payload.mood)
            options = _melody_options(payload, seed)
            if payload.by_section:
                melody = generate_sectioned_melody(analysis, options)
            elif regenerate:
                melody = regenerate_melody(analysis, seed, options)
            else:
                melody = generate_melody(analysis, options)
        return _melody_response(
            melody,
            action,
            seed=seed,
            structure_pattern=analysis.structure.structure_pattern,
            analysis_summary=analysis.structure.summary,
        )
    except ValueError as exc:
        raise _handle_user_error(action, exc) from exc


@app.post("/api/generate-melody", response_model=MelodyResponse)
def generate_melody_endpoint(payload: GenerateMelodyRequest):
    return _compose(payload, "Melody generation", regenerate=False)


@app.post("/api/regenerate-melody", response_model=MelodyResponse)
def regenerate_melody_endpoint(payload: GenerateMelodyRequest):
    return _compose(payload, "Melody regeneration", regenerate=True)


@app.post("/api/adjust-melody", response_model=MelodyResponse)
def adjust_melody_endpoint(payload: AdjustMelodyRequest):
    action = "Melody adjustment"
    try:
        _require_valid_melody(payload.melody, action)
        return _melody_response(adjust_melody_params(payload.melody, payload.params), action)
    except ValueError as exc:
        raise _handle_user_error(action, exc) from exc


@app.post("/api/melody-abc")
def melody_abc_endpoint(payload: MelodyRequest):
    try:
        return {"abc": melody_to_abc(payload.melody)}
    except ValueError as exc:
        raise _handle_user_error("ABC export", exc) from exc


@app.post("/api/apply-style", response_model=MelodyResponse)
def apply_style_endpoint(payload: StyleRequest):
    action = "Style application"
    try:
        preset = get_preset_by_name(payload.style)
        if preset is None:
            raise ValueError(f"Unknown style preset '{payload.style}'.")
        _require_valid_melody(payload.melody, action)
        return _melody_response(apply_style_preset(payload.melody, preset), action)
    except ValueError as exc:
        raise _handle_user_error(action, exc) from exc


@app.post("/api/variation", response_model=VariationResponse)
def variation_endpoint(payload: VariationRequest):
    action = "Melody variation"
    options = VariationOptions(
        ornament_probability=payload.options.ornament_probability,
        seed=payload.options.seed,
        invert_pivot=payload.options.invert_pivot,
        transpose_semitones=payload.options.transpose_semitones,
    )
    try:
        _require_valid_melody(payload.melody, action)
        varied = generate_variation(payload.melody, payload.variation_type, options)
        response = _melody_response(varied, action)
    except ValueError as exc:
        raise _handle_user_error(action, exc) from exc
    summary = summarize_variation(payload.melody, varied)
    return VariationResponse(
        **response.model_dump(),
        summary=f"{get_variation_description(payload.variation_type)} ({summary.describe()})",
    )


@app.post("/api/validate-melody")
def validate_melody_endpoint(payload: MelodyRequest):
    report = validate_melody_diagnostics(payload.melody)
    if report.errors:
        log_event(logger, "validation_failed", level=logging.WARNING, action="Melody validation", diagnostics=report.errors)
    else:
        log_event(logger, "validation_passed", action="Melody validation")
    return {"valid": report.valid, "errors": report.errors, "warnings": report.warnings}


@app.get("/api/styles")
def styles_endpoint():
    return {"styles": [asdict(preset) for preset in get_available_presets()]}
