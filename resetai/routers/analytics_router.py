"""
/analytics router
-----------------
Focus analytics and recovery narratives.

GET  /analytics/neuro-flow   — Today's Neuro-Flow score + focus streak
POST /analytics/resume       — Deep cognitive resume after an absence
POST /analytics/predict      — Distraction probability for an activity snapshot
POST /analytics/detect       — Context-loss verdict for an activity snapshot

predict / detect are stateless: the snapshot is never stored.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from resetai.config import Settings, get_settings
from resetai.models.api.analytics import PredictRequest, ResumeRequest
from resetai.models.domain.activity import ContextLossDetection, DistractionPrediction
from resetai.models.domain.neuroflow import NeuroFlowScore
from resetai.models.domain.recovery import CognitiveResume
from resetai.services.distraction_service import detect_context_loss, predict_distraction
from resetai.services.neuroflow_service import NeuroFlowService
from resetai.services.recovery_service import ResumeService
from resetai.store.base import ContextStore
from resetai.store.provider import get_store

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/neuro-flow", response_model=NeuroFlowScore)
def neuro_flow(
    user_id: str = Query(..., alias="userId"),
    store: ContextStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> NeuroFlowScore:
    """
    Score is computed over today's contexts in RESETAI_TIMEZONE.
    The result is also written to the user record as focusScore.
    """
    return NeuroFlowService(store, tz=settings.tzinfo).get_score(user_id)


@router.post("/resume", response_model=CognitiveResume)
def cognitive_resume(
    req: ResumeRequest,
    store: ContextStore = Depends(get_store),
) -> CognitiveResume:
    return ResumeService(store).get_resume(req.user_id, req.absence_duration)


@router.post("/predict", response_model=DistractionPrediction)
def predict(
    req: PredictRequest,
    settings: Settings = Depends(get_settings),
) -> DistractionPrediction:
    sensitivity = req.sensitivity if req.sensitivity is not None else settings.default_sensitivity
    return predict_distraction(req.snapshot, sensitivity, tz=settings.tzinfo)


@router.post("/detect", response_model=ContextLossDetection)
def detect(
    req: PredictRequest,
    settings: Settings = Depends(get_settings),
) -> ContextLossDetection:
    sensitivity = req.sensitivity if req.sensitivity is not None else settings.default_sensitivity
    return detect_context_loss(req.snapshot, sensitivity, tz=settings.tzinfo)
